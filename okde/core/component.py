from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from ..array_backend.utils import _ensure_vector, _ensure_square_matrix
from ..linalg.operations import inv, logdet, mah_dist_squared
from ..linalg.utils import clamp_eigenvalues, is_psd
from ._utils import _regularize_kernel_cov, _gaussian_log_norm, _point_or_batch
from .exceptions import (
    DimensionMismatchError,
    EmptyInputError,
    InvalidCovarianceError,
    InvalidWeightError,
    ShapeMismatchError,
)

__all__ = [
    "GaussianComponent",
    "merge_components",
]


class GaussianComponent:
    """A single weighted Gaussian w * N(mu, Sigma).

    The covariance may be singular (a zero matrix represents an exact
    observation). The inverse and log-determinant used for density
    evaluation are computed lazily from a regularized copy of the covariance
    and cached; they are dropped whenever the covariance changes, which only
    happens by building a new component.

    Attributes:
        mean (NDArray): Mean vector, shape (d,).
        cov (NDArray): Covariance matrix, shape (d, d).
        weight (float): Non-negative mixture weight.
    """

    def __init__(self, mean: NDArray, cov: NDArray | None = None, weight: float = 1.0, *, validate: bool = True):
        """Initializes a Gaussian component.

        Args:
            mean (NDArray): Mean vector of shape (d,) or (d, 1).
            cov (NDArray | None): Covariance of shape (d, d). ``None`` means
                the zero matrix.
            weight (float): Non-negative weight. Defaults to 1.0.
            validate (bool): Check that ``cov`` is positive semi-definite.
                Internal callers that build covariances by moment matching
                pass ``False``.

        Raises:
            ShapeMismatchError: If ``cov`` does not match the mean dimension.
            InvalidCovarianceError: If ``cov`` is not symmetric PSD.
            InvalidWeightError: If ``weight`` is negative or not finite.
        """
        m = _ensure_vector(mean)
        d = m.shape[0]
        if cov is None:
            C = np.zeros((d, d), dtype=float)
        else:
            try:
                C = _ensure_square_matrix(cov)
            except ValueError as e:
                raise ShapeMismatchError(f"covariance must be a square matrix: {e}") from e
            if C.shape[0] != d:
                raise ShapeMismatchError(f"covariance must be ({d}, {d}) to match the mean. Got {C.shape}.")
            if validate and not is_psd(C):
                raise InvalidCovarianceError("covariance must be symmetric positive semi-definite.")
            C = 0.5 * (C + C.T)

        self._mean = m
        self._cov = C
        self.weight = weight

        self._precision: NDArray | None = None
        self._logdet: float | None = None

    @property
    def weight(self) -> float:
        return self._weight

    @weight.setter
    def weight(self, value: float) -> None:
        w = float(value)
        if not np.isfinite(w) or w < 0.0:
            raise InvalidWeightError(f"weight must be finite and non-negative. Got {value!r}.")
        self._weight = w

    @property
    def mean(self) -> NDArray:
        return self._mean

    @property
    def cov(self) -> NDArray:
        return self._cov

    @property
    def dimension(self) -> int:
        return int(self._mean.shape[0])

    @property
    def second_moment(self) -> NDArray:
        """E[x x^T] = Sigma + mu mu^T."""
        return self._cov + np.outer(self._mean, self._mean)

    # --------------------------- cached quantities ---------------------------

    def _ensure_cache(self) -> None:
        if self._precision is None:
            C = _regularize_kernel_cov(self._cov)
            self._precision = inv(C)
            self._logdet = logdet(C)

    @property
    def precision(self) -> NDArray:
        """Inverse of the (regularized) covariance."""
        self._ensure_cache()
        return self._precision

    @property
    def logdet(self) -> float:
        """Log-determinant of the (regularized) covariance."""
        self._ensure_cache()
        return self._logdet

    # --------------------------- evaluation ---------------------------

    def log_density(self, values: NDArray) -> NDArray[np.floating]:
        """Unweighted Gaussian log-density, shape (n,)."""
        X, _ = _point_or_batch(values, self.dimension)
        if X.shape[1] != self.dimension:
            raise DimensionMismatchError(f"points must have dimension {self.dimension}. Got {X.shape[1]}.")
        self._ensure_cache()
        diff = X - self._mean
        maha = np.einsum("nd,de,ne->n", diff, self._precision, diff)
        return _gaussian_log_norm(self._logdet, self.dimension) - 0.5 * maha

    def density(self, values: NDArray) -> NDArray[np.floating]:
        """Unweighted Gaussian density, shape (n,)."""
        return np.exp(self.log_density(values))

    def mahalanobis_squared(self, values: NDArray) -> NDArray[np.floating]:
        X, _ = _point_or_batch(values, self.dimension)
        if X.shape[1] != self.dimension:
            raise DimensionMismatchError(f"points must have dimension {self.dimension}. Got {X.shape[1]}.")
        return mah_dist_squared(X, _regularize_kernel_cov(self._cov), self._mean)

    # --------------------------- derived components ---------------------------

    def smoothed(self, bandwidth: NDArray) -> 'GaussianComponent':
        """Returns the kernel w * N(mu, Sigma + H) for bandwidth matrix H."""
        return GaussianComponent(self._mean, self._cov + bandwidth, self._weight, validate=False)

    def marginal(self, dims) -> 'GaussianComponent':
        """Marginal over the coordinates listed in ``dims``."""
        idx = np.asarray(dims, dtype=int).reshape(-1)
        return GaussianComponent(self._mean[idx], self._cov[np.ix_(idx, idx)], self._weight, validate=False)

    def copy(self) -> 'GaussianComponent':
        return GaussianComponent(self._mean.copy(), self._cov.copy(), self._weight, validate=False)

    def __repr__(self) -> str:
        return f"GaussianComponent(dimension={self.dimension}, weight={self._weight:.6g})"


def merge_components(*components: GaussianComponent) -> GaussianComponent:
    """Merges weighted Gaussians into one by moment matching.

    The merged component reproduces the total weight, the weighted mean and
    the weighted second moment of its inputs:

        w = sum_i w_i
        mu = sum_i w_i mu_i / w
        Sigma = sum_i (w_i / w) (Sigma_i + (mu_i - mu)(mu_i - mu)^T)

    The covariance is projected back onto the PSD cone to absorb rounding.

    Args:
        *components (GaussianComponent): Components of equal dimension.

    Returns:
        GaussianComponent: The moment-matched component.

    Raises:
        EmptyInputError: If no components are given.
        DimensionMismatchError: If the components differ in dimension.
    """
    if not components:
        raise EmptyInputError("merge_components needs at least one component.")
    d = components[0].dimension
    if any(c.dimension != d for c in components):
        raise DimensionMismatchError("cannot merge components of different dimension.")

    ws = np.array([c.weight for c in components], dtype=float)
    means = np.stack([c.mean for c in components])     # (k, d)
    covs = np.stack([c.cov for c in components])       # (k, d, d)

    w_merge = float(ws.sum())
    if w_merge <= 0.0:
        # all-zero weights: fall back to an unweighted match
        alphas = np.full(len(components), 1.0 / len(components))
    else:
        alphas = ws / w_merge

    m_merge = alphas @ means
    diff = means - m_merge
    spread = np.einsum("k,kd,ke->de", alphas, diff, diff)
    C_merge = np.einsum("k,kde->de", alphas, covs) + spread
    C_merge = clamp_eigenvalues(C_merge, 0.0)

    return GaussianComponent(m_merge, C_merge, w_merge, validate=False)
