"""
Pairwise distances between Gaussian components used to decide which
components are similar enough to merge.

Every strategy works on stacks of paired Gaussians so that the compression
loop can score one component against all others in a single call. Both
strategies provided here are built on the Bhattacharyya distance

    D_B = 1/8 dmu^T S^{-1} dmu + 1/2 log( |S| / sqrt(|S_1| |S_2|) ),
    S = (S_1 + S_2) / 2,

which is symmetric and zero only for identical Gaussians.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
from numpy.typing import NDArray

from ..linalg.operations import batch_mah_dist_squared, logdet
from .component import GaussianComponent
from ._utils import _regularize_kernel_cov

__all__ = [
    "Divergence",
    "BhattacharyyaDistance",
    "HellingerDistance",
    "get_divergence",
]


class Divergence(ABC):
    """Symmetric distance between two Gaussians.

    Subclasses implement :meth:`pairwise`. They may also implement
    :meth:`bhattacharyya_limit`, which lets the compression loop discard
    pairs whose means are too far apart without evaluating the full
    distance.
    """

    name: str = "divergence"

    @abstractmethod
    def pairwise(self, means_a: NDArray, covs_a: NDArray, means_b: NDArray, covs_b: NDArray,
                 logdets_a: NDArray | None = None, logdets_b: NDArray | None = None) -> NDArray[np.floating]:
        """Distances between row-paired Gaussians.

        Args:
            means_a (NDArray): Means, shape (P, d).
            covs_a (NDArray): Positive-definite covariances, shape (P, d, d).
            means_b (NDArray): Means, shape (P, d).
            covs_b (NDArray): Positive-definite covariances, shape (P, d, d).
            logdets_a (NDArray | None): Optional precomputed log|covs_a|, shape (P,).
            logdets_b (NDArray | None): Optional precomputed log|covs_b|, shape (P,).

        Returns:
            NDArray[np.floating]: Non-negative distances, shape (P,).
        """
        raise NotImplementedError

    def bhattacharyya_limit(self, threshold: float) -> float | None:
        """Largest Bhattacharyya distance at which this distance is still <= threshold.

        ``None`` disables mean-separation pruning.
        """
        return None

    def __call__(self, a: GaussianComponent, b: GaussianComponent) -> float:
        covs_a = _regularize_kernel_cov(a.cov)[None]
        covs_b = _regularize_kernel_cov(b.cov)[None]
        return float(self.pairwise(a.mean[None], covs_a, b.mean[None], covs_b)[0])

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class BhattacharyyaDistance(Divergence):
    """Bhattacharyya distance D_B in [0, inf)."""

    name = "bhattacharyya"

    def pairwise(self, means_a, covs_a, means_b, covs_b, logdets_a=None, logdets_b=None):
        if logdets_a is None:
            logdets_a = np.atleast_1d(logdet(covs_a))
        if logdets_b is None:
            logdets_b = np.atleast_1d(logdet(covs_b))

        S = 0.5 * (covs_a + covs_b)
        dmu = means_a - means_b
        maha = batch_mah_dist_squared(dmu, S)
        _, logdet_S = np.linalg.slogdet(S)
        db = 0.125 * maha + 0.5 * (logdet_S - 0.5 * (logdets_a + logdets_b))
        return np.maximum(db, 0.0)

    def bhattacharyya_limit(self, threshold: float) -> float | None:
        return float(threshold)


class HellingerDistance(BhattacharyyaDistance):
    """Squared Hellinger distance H^2 = 1 - exp(-D_B), in [0, 1]."""

    name = "hellinger"

    def pairwise(self, means_a, covs_a, means_b, covs_b, logdets_a=None, logdets_b=None):
        db = super().pairwise(means_a, covs_a, means_b, covs_b, logdets_a, logdets_b)
        return -np.expm1(-db)

    def bhattacharyya_limit(self, threshold: float) -> float | None:
        if threshold >= 1.0:
            return None
        return float(-np.log1p(-threshold))


_DIVERGENCES = {
    BhattacharyyaDistance.name: BhattacharyyaDistance,
    HellingerDistance.name: HellingerDistance,
}


def get_divergence(distance: str | Divergence) -> Divergence:
    """Resolves a distance name or instance to a :class:`Divergence`.

    Raises:
        ValueError: If the name is unknown or the object is not a Divergence.
    """
    if isinstance(distance, Divergence):
        return distance
    if isinstance(distance, str):
        try:
            return _DIVERGENCES[distance.lower()]()
        except KeyError:
            raise ValueError(
                f"distance must be one of {sorted(_DIVERGENCES)} or a Divergence instance. Got {distance!r}."
            ) from None
    raise ValueError(f"distance must be a string or a Divergence instance. Got {type(distance).__name__}.")
