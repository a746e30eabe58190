from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np
from numpy.typing import NDArray

from ..array_backend.utils import (
    _ensure_batch_matrix,
    _ensure_batch_real_scalar,
    _ensure_batch_vector,
    _ensure_square_matrix,
    _ensure_vector,
)
from ..linalg.utils import is_psd
from .bandwidth import BANDWIDTH_RULES, build_bandwidth, estimate_bandwidth
from .component import GaussianComponent
from .compression import CompressionEngine
from .distributions import Distribution
from .divergence import Divergence
from .exceptions import (
    DimensionMismatchError,
    EmptyInputError,
    InvalidCovarianceError,
    InvalidWeightError,
    ShapeMismatchError,
)
from .mixture import MixtureModel

__all__ = [
    "SampleModel",
]

logger = logging.getLogger(__name__)


class SampleModel(Distribution):
    """Online kernel density estimate of a stream of weighted observations.

    Each observation is a Gaussian kernel (sample, covariance, weight). On
    every update the existing evidence is discounted by the forgetting
    factor, the new kernels are appended, the weights are renormalized, the
    bandwidth is re-estimated and the mixture is compressed. The estimated
    density is

        p(x) = Sum_k w_k N(x | mu_k, Sigma_k + H).

    The model owns its :class:`MixtureModel` and is its only mutator. It is
    not thread-safe: concurrent callers must serialize updates, and readers
    that run alongside an update should evaluate a :meth:`snapshot`.

    Attributes:
        forgetting_factor (float): Decay in (0, 1] applied to old evidence per update.
        compression_threshold (float): Merge threshold of the compression engine.
    """

    def __init__(
        self,
        forgetting_factor: float = 1.0,
        compression_threshold: float = 0.02,
        *,
        distance: str | Divergence = "hellinger",
        rule: str = "scott",
        bandwidth: float | NDArray | None = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """Initializes an empty sample model.

        Args:
            forgetting_factor (float): In (0, 1]. 1.0 keeps all evidence.
            compression_threshold (float): Non-negative merge threshold.
                Larger values compress more aggressively.
            distance (str | Divergence): Pair distance, 'hellinger' (default)
                or 'bhattacharyya', or a :class:`Divergence` instance.
            rule (str): Bandwidth rule, 'scott' or 'silverman'. Used only when
                ``bandwidth`` is ``None``.
            bandwidth (float | NDArray | None): Fixed bandwidth (scalar h,
                vector of per-axis h, or matrix H). ``None`` re-estimates
                the bandwidth after every update.
            rng (Optional[np.random.Generator]): Generator used by :meth:`sample`.

        Raises:
            ValueError: If any argument is out of range.
        """
        ff = float(forgetting_factor)
        if not (0.0 < ff <= 1.0):
            raise ValueError(f"forgetting_factor must be in (0, 1]. Got {forgetting_factor!r}.")
        if rule.lower() not in BANDWIDTH_RULES:
            raise ValueError("rule must be 'scott' or 'silverman'.")

        self._ff = ff
        self._engine = CompressionEngine(compression_threshold, distance)
        self._rule = rule.lower()
        self._fixed_bandwidth = bandwidth
        self._rng = rng or np.random.default_rng()
        self._mixture = MixtureModel(rng=self._rng)

        # total decayed weight and decayed observation count seen so far
        self._mass = 0.0
        self._n_eff = 0.0

    # --------------------------- properties ---------------------------

    @property
    def forgetting_factor(self) -> float:
        return self._ff

    @property
    def compression_threshold(self) -> float:
        return self._engine.threshold

    @property
    def mixture(self) -> MixtureModel:
        """MixtureModel: The live mixture. Use :meth:`snapshot` for a copy."""
        return self._mixture

    @property
    def is_initialized(self) -> bool:
        return self._mixture.is_initialized

    @property
    def dimension(self) -> Optional[int]:
        return self._mixture.dimension

    @property
    def n_components(self) -> int:
        return self._mixture.n_components

    @property
    def n_effective(self) -> float:
        """float: Observation count discounted by the forgetting factor."""
        return self._n_eff

    @property
    def components(self) -> tuple[GaussianComponent, ...]:
        return self._mixture.components

    @property
    def weights(self) -> NDArray:
        return self._mixture.weights

    @property
    def means(self) -> NDArray:
        return self._mixture.means

    @property
    def covariances(self) -> NDArray:
        return self._mixture.covariances

    @property
    def bandwidth(self) -> NDArray:
        return self._mixture.bandwidth

    # --------------------------- updates ---------------------------

    def _parse_update(self, samples, covariances, weights) -> tuple[NDArray, NDArray, NDArray]:
        """Canonicalizes update input to (B, d), (B, d, d) and (B,) arrays.

        A scalar ``weights`` (or, without weights, a single (d, d) covariance)
        selects the single-observation form.
        """
        for name, value in (("samples", samples), ("covariances", covariances), ("weights", weights)):
            if value is None:
                continue
            try:
                size = np.size(value)
            except ValueError as e:
                # ragged nested sequences
                raise ShapeMismatchError(f"{name} must be a rectangular array: {e}") from e
            if size == 0:
                raise EmptyInputError(f"{name} must not be empty.")

        if weights is not None:
            single = np.ndim(weights) == 0
        else:
            single = np.ndim(covariances) == 2

        try:
            if single:
                X = _ensure_vector(samples).reshape(1, -1)
                C = _ensure_square_matrix(covariances)[np.newaxis]
            else:
                X = _ensure_batch_vector(samples)
                C = _ensure_batch_matrix(covariances)
        except (TypeError, ValueError) as e:
            raise ShapeMismatchError(str(e)) from e

        n, d = X.shape
        if weights is None:
            w = np.ones(n, dtype=float)
        else:
            try:
                w = _ensure_batch_real_scalar(weights)
            except ValueError as e:
                if np.ndim(weights) > 1:
                    raise ShapeMismatchError(str(e)) from e
                raise InvalidWeightError(str(e)) from e

        if C.shape[0] != n or w.shape[0] != n:
            raise ShapeMismatchError(
                f"samples, covariances and weights must have equal length. Got {n}, {C.shape[0]} and {w.shape[0]}."
            )
        if C.shape[1:] != (d, d):
            raise ShapeMismatchError(f"covariances must be ({d}, {d}) to match the samples. Got {C.shape[1:]}.")
        if self.dimension is not None and d != self.dimension:
            raise DimensionMismatchError(f"samples must have dimension {self.dimension}. Got {d}.")

        if not np.all(np.isfinite(X)):
            raise ValueError("samples must be finite.")
        if not np.all(np.isfinite(w)) or np.any(w <= 0.0):
            raise InvalidWeightError("weights must be finite and positive.")
        for i, Ci in enumerate(C):
            if not is_psd(Ci):
                raise InvalidCovarianceError(f"covariance {i} is not symmetric positive semi-definite.")

        return X, C, w

    def update_distribution(self, samples: NDArray, covariances: NDArray, weights: NDArray | float | None = None) -> None:
        """Folds new weighted observations into the estimate.

        Accepts either a batch, ``samples`` (n, d) (or a sequence of (d, 1)
        columns), ``covariances`` (n, d, d) and ``weights`` (n,), or a single
        observation, ``sample`` (d,) or (d, 1), ``covariance`` (d, d) and a
        scalar ``weight``. Both forms run the same update. Omitted weights
        default to 1.0 per observation.

        The update discounts existing evidence by the forgetting factor,
        appends one component per observation, renormalizes the weights to sum
        to one, re-estimates the bandwidth and compresses the mixture before
        returning. Nothing is modified if validation fails.

        Args:
            samples (NDArray): Observation(s).
            covariances (NDArray): Covariance(s) of the observation(s); the zero
                matrix marks an exact observation.
            weights (NDArray | float | None): Positive weight(s).

        Raises:
            EmptyInputError: If no observations are given.
            ShapeMismatchError: If the inputs disagree in length or shape.
            DimensionMismatchError: If the dimension differs from the established one.
            InvalidWeightError: If a weight is not positive.
            InvalidCovarianceError: If a covariance is not symmetric PSD.
        """
        X, C, w = self._parse_update(samples, covariances, weights)
        n = X.shape[0]

        decayed_mass = self._mass * self._ff
        new_mass = decayed_mass + float(w.sum())

        mixture = self._mixture
        if mixture.n_components:
            mixture.scale_weights(decayed_mass / new_mass)
        mixture.extend(GaussianComponent(x, c, wi / new_mass, validate=False) for x, c, wi in zip(X, C, w))
        mixture.normalize()

        self._mass = new_mass
        self._n_eff = self._n_eff * self._ff + n

        self._refresh_bandwidth()
        self._engine.compress(mixture)
        logger.debug("Updated with %d observation(s): %d components, n_eff=%.6g",
                     n, mixture.n_components, self._n_eff)

    def _refresh_bandwidth(self) -> None:
        d = self._mixture.dimension
        if self._fixed_bandwidth is not None:
            H = build_bandwidth(self._fixed_bandwidth, d)
        else:
            H = estimate_bandwidth(self._mixture.moment_matched().cov, self._n_eff, self._rule)
        self._mixture.set_bandwidth(H)

    def compress(self) -> None:
        """Runs the compression engine on the current mixture.

        Updates already compress, so this is a no-op unless the mixture was
        modified directly.
        """
        self._engine.compress(self._mixture)

    # --------------------------- evaluation ---------------------------

    def evaluate(self, points: NDArray) -> float | NDArray[np.floating]:
        """Density at a single point (float) or at a batch of points (n,).

        Raises:
            EmptyMixtureError: If no observation has been added yet.
            DimensionMismatchError: If the points do not match the dimension.
        """
        return self._mixture.evaluate(points)

    def density(self, values: NDArray) -> NDArray[np.floating]:
        return self._mixture.density(values)

    def log_density(self, values: NDArray) -> NDArray[np.floating]:
        return self._mixture.log_density(values)

    def mahalanobis_distances(self, points: NDArray) -> NDArray[np.floating]:
        """Mahalanobis distances from each point to each kernel, shape (n, K)."""
        return self._mixture.mahalanobis_distances(points)

    def mean(self) -> NDArray[np.floating]:
        return self._mixture.mean()

    def cov(self) -> NDArray[np.floating]:
        return self._mixture.cov()

    def sample(self, n_samples: int) -> NDArray[np.floating]:
        return self._mixture.sample(n_samples)

    def marginal(self, dims) -> MixtureModel:
        """Snapshot of the estimate marginalized onto ``dims``."""
        return self._mixture.marginal(dims)

    def snapshot(self) -> MixtureModel:
        """Independent copy of the current mixture for concurrent readers."""
        return self._mixture.copy()

    # --------------------------- conversion ---------------------------

    @classmethod
    def from_distribution(cls, convert_from: 'Distribution', num_samples: int = 1024, **fit_kwargs: Any) -> 'SampleModel':
        """Builds a sample model from the samples of another distribution.

        Stored samples (and weights) are used when ``convert_from`` exposes
        ``samples``; otherwise ``num_samples`` draws are taken. All samples
        are ingested as exact observations in a single batch update.

        Args:
            convert_from: Source distribution.
            num_samples: Number of draws for sample-based conversion.
            **fit_kwargs: Constructor arguments (``forgetting_factor``,
                ``compression_threshold``, ``distance``, ``rule``,
                ``bandwidth``, ``rng``).

        Returns:
            SampleModel: A model holding one compressed batch of observations.
        """
        if hasattr(convert_from, "samples"):
            X = np.asarray(convert_from.samples, dtype=float)
            w = getattr(convert_from, "weights", None)
        else:
            X = np.asarray(convert_from.sample(num_samples), dtype=float)
            w = None
        X = X.reshape(X.shape[0], -1)
        d = X.shape[1]

        model = cls(**fit_kwargs)
        model.update_distribution(X, np.zeros((X.shape[0], d, d)), None if w is None else np.asarray(w, dtype=float))
        return model

    def __repr__(self) -> str:
        return (f"SampleModel(forgetting_factor={self._ff!r}, compression_threshold={self.compression_threshold!r}, "
                f"n_components={self.n_components})")
