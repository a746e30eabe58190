from __future__ import annotations

from typing import Any, Iterable, Optional

import numpy as np
from numpy.typing import NDArray
from scipy.special import logsumexp
from scipy.stats import multivariate_normal

from ..array_backend.utils import _ensure_square_matrix
from ..linalg.operations import inv, logdet
from ..linalg.utils import is_psd
from ._utils import _regularize_kernel_cov, _gaussian_log_norm, _point_or_batch
from .component import GaussianComponent, merge_components
from .distributions import Distribution
from .exceptions import (
    DimensionMismatchError,
    EmptyMixtureError,
    InvalidCovarianceError,
    InvalidWeightError,
)

__all__ = [
    "MixtureModel",
    "WEIGHT_TOL",
]

WEIGHT_TOL = 1e-9

# Query points are evaluated in blocks to bound the (n, K, d) work array
_EVAL_BLOCK = 1024


class MixtureModel(Distribution):
    """Weighted mixture of Gaussian components with a shared kernel bandwidth.

    Represents the density

        p(x) = Sum_k w_k N(x | mu_k, Sigma_k + H)

    where the component covariances Sigma_k are the ones maintained by
    updates and merges, and H is a bandwidth matrix shared by all components
    (the zero matrix unless set). The component order is the insertion order,
    with a merged component taking the slot of the earlier of its parents.

    The mixture starts uninitialized (no dimension, no components) and becomes
    active when the first components are added; its dimension never changes
    afterwards.

    Shape policy:
        - ``evaluate(point)`` -> float, ``evaluate(points)`` -> (n,)
        - ``density`` / ``log_density`` -> (n, 1)
        - ``sample(n)`` -> (n, d)

    Attributes:
        _components: Ordered list of :class:`GaussianComponent`.
        _d: Dimension, ``None`` while uninitialized.
        _H: Bandwidth matrix, shape (d, d).
        _kernels: Cached stacked kernel quantities, ``None`` when stale.
    """

    def __init__(
        self,
        components: Optional[Iterable[GaussianComponent]] = None,
        *,
        bandwidth: Optional[NDArray] = None,
        dimension: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """Initializes a mixture.

        Args:
            components: Optional initial components. Their weights are used as
                given and are not renormalized.
            bandwidth: Optional bandwidth matrix H of shape (d, d).
            dimension: Optional dimension for an empty mixture.
            rng: Random generator used by :meth:`sample`.

        Raises:
            DimensionMismatchError: If components or bandwidth disagree in dimension.
        """
        self._components: list[GaussianComponent] = []
        self._d: Optional[int] = None if dimension is None else int(dimension)
        self._H: Optional[NDArray] = None
        self._kernels: Optional[dict[str, NDArray]] = None
        self._rng = rng or np.random.default_rng()

        if components is not None:
            self.extend(components)
        if bandwidth is not None:
            self.set_bandwidth(bandwidth)

    # --------------------------- state ---------------------------

    @property
    def dimension(self) -> Optional[int]:
        """int | None: Dimension ``d``, ``None`` while uninitialized."""
        return self._d

    @property
    def is_initialized(self) -> bool:
        return self._d is not None and len(self._components) > 0

    @property
    def n_components(self) -> int:
        return len(self._components)

    def __len__(self) -> int:
        return len(self._components)

    @property
    def is_normalized(self) -> bool:
        """bool: Whether the weights sum to one within ``WEIGHT_TOL``."""
        return bool(self._components) and abs(float(self.weights.sum()) - 1.0) <= WEIGHT_TOL

    @property
    def components(self) -> tuple[GaussianComponent, ...]:
        return tuple(self._components)

    @property
    def weights(self) -> NDArray:
        """NDArray: Component weights, shape (K,)."""
        return np.array([c.weight for c in self._components], dtype=float)

    @property
    def means(self) -> NDArray:
        """NDArray: Component means, shape (K, d)."""
        self._require_components()
        return np.stack([c.mean for c in self._components])

    @property
    def covariances(self) -> NDArray:
        """NDArray: Component covariances without the bandwidth, shape (K, d, d)."""
        self._require_components()
        return np.stack([c.cov for c in self._components])

    @property
    def bandwidth(self) -> NDArray:
        """NDArray: Bandwidth matrix H, shape (d, d)."""
        if self._d is None:
            raise EmptyMixtureError("bandwidth is undefined before the dimension is set.")
        if self._H is None:
            return np.zeros((self._d, self._d), dtype=float)
        return self._H.copy()

    def _require_components(self) -> None:
        if not self._components:
            raise EmptyMixtureError("mixture has no components.")

    def _check_dimension(self, d: int) -> None:
        if self._d is None:
            self._d = int(d)
        elif d != self._d:
            raise DimensionMismatchError(f"expected dimension {self._d}. Got {d}.")

    # --------------------------- mutation ---------------------------

    def set_bandwidth(self, bandwidth: NDArray) -> None:
        """Sets the shared bandwidth matrix H.

        Raises:
            DimensionMismatchError: If H does not match the mixture dimension.
            InvalidCovarianceError: If H is not symmetric PSD.
        """
        H = _ensure_square_matrix(bandwidth)
        self._check_dimension(H.shape[0])
        if not is_psd(H):
            raise InvalidCovarianceError("bandwidth must be symmetric positive semi-definite.")
        self._H = 0.5 * (H + H.T)
        self._kernels = None

    def extend(self, components: Iterable[GaussianComponent]) -> None:
        """Appends components in order."""
        new = list(components)
        for c in new:
            self._check_dimension(c.dimension)
        self._components.extend(new)
        self._kernels = None

    def replace_components(self, components: Iterable[GaussianComponent]) -> None:
        """Replaces the whole component collection in place."""
        new = list(components)
        for c in new:
            if self._d is not None and c.dimension != self._d:
                raise DimensionMismatchError(f"expected dimension {self._d}. Got {c.dimension}.")
        if new and self._d is None:
            self._d = new[0].dimension
        self._components = new
        self._kernels = None

    def scale_weights(self, factor: float) -> None:
        """Multiplies every component weight by ``factor``."""
        f = float(factor)
        if not np.isfinite(f) or f < 0.0:
            raise InvalidWeightError(f"weight scale must be finite and non-negative. Got {factor!r}.")
        for c in self._components:
            c.weight = c.weight * f
        self._kernels = None

    def normalize(self) -> None:
        """Rescales the weights to sum to one.

        Raises:
            EmptyMixtureError: If the mixture has no components.
            InvalidWeightError: If the weights sum to zero.
        """
        self._require_components()
        total = float(self.weights.sum())
        if total <= 0.0:
            raise InvalidWeightError("weights must sum to a positive value.")
        for c in self._components:
            c.weight = c.weight / total
        self._kernels = None

    # --------------------------- kernel cache ---------------------------

    def kernel_components(self) -> list[GaussianComponent]:
        """Components convolved with the bandwidth, N(mu_k, Sigma_k + H)."""
        if self._H is None:
            return [c.copy() for c in self._components]
        return [c.smoothed(self._H) for c in self._components]

    def _ensure_kernels(self) -> dict[str, NDArray]:
        if self._kernels is None:
            self._require_components()
            covs = self.covariances
            if self._H is not None:
                covs = covs + self._H
            covs = _regularize_kernel_cov(covs)
            logdets = np.atleast_1d(logdet(covs))
            self._kernels = {
                "means": self.means,
                "covs": covs,
                "precisions": inv(covs),
                "logdets": logdets,
                "log_norms": _gaussian_log_norm(logdets, self._d),
                "weights": self.weights,
            }
        return self._kernels

    # --------------------------- evaluation ---------------------------

    def _as_query(self, points: NDArray) -> tuple[NDArray, bool]:
        self._require_components()
        X, single = _point_or_batch(points, self._d)
        if X.shape[1] != self._d:
            raise DimensionMismatchError(f"points must have dimension {self._d}. Got {X.shape[1]}.")
        return X, single

    def _component_log_densities(self, X: NDArray) -> NDArray:
        """log N(x_n | mu_k, Sigma_k + H) for every point and kernel, shape (n, K)."""
        K = self._ensure_kernels()
        out = np.empty((X.shape[0], len(self._components)), dtype=float)
        for start in range(0, X.shape[0], _EVAL_BLOCK):
            block = X[start:start + _EVAL_BLOCK]
            diff = block[:, None, :] - K["means"][None, :, :]                  # (b, K, d)
            maha = np.einsum("nkd,kde,nke->nk", diff, K["precisions"], diff)   # (b, K)
            out[start:start + _EVAL_BLOCK] = K["log_norms"][None, :] - 0.5 * maha
        return out

    def evaluate(self, points: NDArray) -> float | NDArray[np.floating]:
        """Evaluates the mixture density.

        Computes:
            ``p(x) = Sum_k w_k N(x | mu_k, Sigma_k + H)``

        Args:
            points: A single point of shape (d,) or (d, 1), or a batch of
                shape (n, d) or a sequence of (d, 1) column vectors.

        Returns:
            float for a single point, otherwise an order-preserving array of
            shape (n,). Values are finite and non-negative.

        Raises:
            EmptyMixtureError: If the mixture has no components.
            DimensionMismatchError: If the points do not have dimension d.
        """
        X, single = self._as_query(points)
        w = self._ensure_kernels()["weights"]
        p = np.exp(self._component_log_densities(X)) @ w
        p = np.maximum(p, 0.0)
        return float(p[0]) if single else p

    def density(self, values: NDArray) -> NDArray[np.floating]:
        """Mixture density as a column vector, shape (n, 1)."""
        p = self.evaluate(values)
        return np.atleast_1d(np.asarray(p, dtype=float)).reshape(-1, 1)

    def log_density(self, values: NDArray) -> NDArray[np.floating]:
        """Log mixture density via a stable log-sum-exp, shape (n, 1)."""
        X, _ = self._as_query(values)
        w = self._ensure_kernels()["weights"]
        with np.errstate(divide="ignore"):
            log_w = np.log(w)
        lp = logsumexp(self._component_log_densities(X) + log_w[None, :], axis=1)
        return np.asarray(lp, dtype=float).reshape(-1, 1)

    def mahalanobis_distances(self, points: NDArray) -> NDArray[np.floating]:
        """Mahalanobis distances from each point to each kernel, shape (n, K)."""
        X, _ = self._as_query(points)
        K = self._ensure_kernels()
        diff = X[:, None, :] - K["means"][None, :, :]
        maha = np.einsum("nkd,kde,nke->nk", diff, K["precisions"], diff)
        return np.sqrt(np.maximum(maha, 0.0))

    # --------------------------- moments ---------------------------

    def moment_matched(self) -> GaussianComponent:
        """Single Gaussian with the mixture's weight, mean and covariance (without H)."""
        self._require_components()
        return merge_components(*self._components)

    def mean(self) -> NDArray[np.floating]:
        """Returns the mixture mean, shape (d,)."""
        return self.moment_matched().mean

    def cov(self) -> NDArray[np.floating]:
        """Returns the covariance of the smoothed density, Cov + H, shape (d, d)."""
        return self.moment_matched().cov + self.bandwidth

    def sample(self, n_samples: int) -> NDArray[np.floating]:
        """Draws samples from the smoothed mixture.

        Each draw picks a component according to the weights and adds
        Gaussian noise from N(0, Sigma_k + H).

        Args:
            n_samples: Number of samples to draw.

        Returns:
            Random samples of shape (n_samples, d).
        """
        K = self._ensure_kernels()
        n = int(n_samples)
        w = K["weights"] / K["weights"].sum()
        idx = self._rng.choice(len(self._components), size=n, replace=True, p=w)
        out = np.empty((n, self._d), dtype=float)
        for k in np.unique(idx):
            rows = np.flatnonzero(idx == k)
            draws = multivariate_normal(mean=K["means"][k], cov=K["covs"][k]).rvs(
                size=rows.size, random_state=self._rng
            )
            out[rows] = np.asarray(draws, dtype=float).reshape(rows.size, self._d)
        return out

    # --------------------------- derived mixtures ---------------------------

    def marginal(self, dims) -> 'MixtureModel':
        """Mixture over the coordinates listed in ``dims``.

        Raises:
            EmptyMixtureError: If the mixture has no components.
            DimensionMismatchError: If a coordinate index is out of range.
        """
        self._require_components()
        idx = np.asarray(dims, dtype=int).reshape(-1)
        if idx.size == 0 or np.any(idx < 0) or np.any(idx >= self._d):
            raise DimensionMismatchError(f"marginal dims must be in [0, {self._d}). Got {idx.tolist()}.")
        H = None if self._H is None else self._H[np.ix_(idx, idx)]
        return MixtureModel([c.marginal(idx) for c in self._components], bandwidth=H, rng=self._rng)

    def copy(self) -> 'MixtureModel':
        """Independent snapshot of the components and bandwidth."""
        out = MixtureModel([c.copy() for c in self._components], dimension=self._d, rng=self._rng)
        if self._H is not None:
            out._H = self._H.copy()
        return out

    @classmethod
    def from_distribution(cls, convert_from: 'Distribution', num_samples: int = 1024, **fit_kwargs: Any) -> 'MixtureModel':
        """Builds a mixture of point components from another distribution.

        A :class:`MixtureModel` source is copied. Otherwise stored samples are
        used when the source exposes ``samples`` (and optional ``weights``),
        and ``num_samples`` draws are taken from it when it does not.

        Args:
            convert_from: Source distribution.
            num_samples: Number of draws for sample-based conversion.
            **fit_kwargs: Optional ``bandwidth`` matrix and ``rng``.

        Returns:
            MixtureModel with equal (or the source's) weights summing to one.
        """
        if isinstance(convert_from, MixtureModel):
            return convert_from.copy()

        if hasattr(convert_from, "samples"):
            X = np.asarray(convert_from.samples, dtype=float)
            w = getattr(convert_from, "weights", None)
        else:
            X = np.asarray(convert_from.sample(num_samples), dtype=float)
            w = None
        X = X.reshape(X.shape[0], -1)
        w = np.full(X.shape[0], 1.0 / X.shape[0]) if w is None else np.asarray(w, dtype=float)

        out = cls([GaussianComponent(x, None, wi) for x, wi in zip(X, w)],
                  bandwidth=fit_kwargs.get("bandwidth"), rng=fit_kwargs.get("rng"))
        out.normalize()
        return out

    def __repr__(self) -> str:
        return f"MixtureModel(dimension={self._d}, n_components={len(self._components)})"
