"""
Greedy pairwise compression of a Gaussian mixture.

Pairs of components are scored with a :class:`~okde.core.divergence.Divergence`
on their smoothed covariances (Sigma_k + H). While some pair is within the
threshold, the closest pair is replaced by its moment-matched merge. Ties are
broken by the lower sum of the two slot indices, then by the lower first index.
Slots are the component positions at the start of the pass and are never
renumbered, so a dead slot still counts towards the index sum of later pairs.

Only pairs within the threshold are ever kept, in a heap keyed by distance.
A merge writes the new component into the slot of the earlier parent and bumps
the version of both slots, so heap entries that mention a merged slot are
skipped when popped. Distances are then computed between the new component and
the surviving ones only; all other pair distances are unaffected by a merge.
Pairs whose means are too far apart to be within the threshold are discarded
before the full distance is evaluated.
"""
from __future__ import annotations

import heapq
import logging
from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from ..linalg.operations import logdet
from ._utils import _regularize_kernel_cov
from .component import GaussianComponent, merge_components
from .divergence import Divergence, get_divergence
from .exceptions import EmptyMixtureError
from .mixture import MixtureModel

__all__ = [
    "CompressionEngine",
    "compress",
]

logger = logging.getLogger(__name__)

# Rows scanned per block when pairing every component with every other
_ROW_BLOCK = 256
# Pairs scored per call to the divergence
_PAIR_BLOCK = 65536
# Slack on the mean-separation bound so rounding never prunes an eligible pair
_PRUNE_SLACK = 1.0 + 1e-6


class _MergeState:
    """Working arrays for one compression pass, indexed by component slot."""

    def __init__(self, mixture: MixtureModel, divergence: Divergence):
        self.divergence = divergence
        self.components: list[GaussianComponent | None] = list(mixture.components)
        self.H = mixture.bandwidth

        self.means = mixture.means.copy()                                    # (K, d)
        self.kcovs = _regularize_kernel_cov(mixture.covariances + self.H)    # (K, d, d)
        self.logdets = np.atleast_1d(logdet(self.kcovs))                     # (K,)
        self.lam_max = np.linalg.eigvalsh(self.kcovs)[:, -1]                 # (K,)

        K = len(self.components)
        self.alive = np.ones(K, dtype=bool)
        self.version = np.zeros(K, dtype=np.int64)

    def _score(self, a: NDArray, b: NDArray) -> NDArray:
        out = np.empty(a.size, dtype=float)
        for start in range(0, a.size, _PAIR_BLOCK):
            ia = a[start:start + _PAIR_BLOCK]
            ib = b[start:start + _PAIR_BLOCK]
            out[start:start + _PAIR_BLOCK] = self.divergence.pairwise(
                self.means[ia], self.kcovs[ia], self.means[ib], self.kcovs[ib],
                self.logdets[ia], self.logdets[ib],
            )
        return out

    def _prune(self, rows: NDArray, cols: NDArray, limit: float | None) -> NDArray:
        """Mask of (row, col) pairs that may be within the threshold, shape (r, c)."""
        if limit is None:
            return np.ones((rows.size, cols.size), dtype=bool)
        diff = self.means[rows][:, None, :] - self.means[cols][None, :, :]
        d2 = np.einsum("rcd,rcd->rc", diff, diff)
        lam = np.maximum(self.lam_max[rows][:, None], self.lam_max[cols][None, :])
        # D_B >= |dmu|^2 / (8 lambda_max(S)) and lambda_max(S) <= max of the two
        return d2 <= 8.0 * limit * lam * _PRUNE_SLACK

    def initial_pairs(self, threshold: float) -> Iterator[tuple[float, int, int]]:
        limit = self.divergence.bhattacharyya_limit(threshold)
        K = len(self.components)
        cols = np.arange(K)
        for r0 in range(0, K, _ROW_BLOCK):
            rows = np.arange(r0, min(r0 + _ROW_BLOCK, K))
            mask = (cols[None, :] > rows[:, None]) & self._prune(rows, cols, limit)
            ia, ib = np.nonzero(mask)
            if ia.size == 0:
                continue
            a, b = rows[ia], cols[ib]
            dist = self._score(a, b)
            keep = dist <= threshold
            yield from zip(dist[keep].tolist(), a[keep].tolist(), b[keep].tolist())

    def neighbours(self, slot: int, threshold: float) -> Iterator[tuple[float, int]]:
        others = np.flatnonzero(self.alive)
        others = others[others != slot]
        if others.size == 0:
            return
        limit = self.divergence.bhattacharyya_limit(threshold)
        others = others[self._prune(np.array([slot]), others, limit)[0]]
        if others.size == 0:
            return
        dist = self._score(np.full(others.size, slot), others)
        keep = dist <= threshold
        yield from zip(dist[keep].tolist(), others[keep].tolist())

    def merge(self, a: int, b: int) -> None:
        merged = merge_components(self.components[a], self.components[b])
        self.components[a] = merged
        self.components[b] = None

        kcov = _regularize_kernel_cov(merged.cov + self.H)
        self.means[a] = merged.mean
        self.kcovs[a] = kcov
        self.logdets[a] = logdet(kcov)
        self.lam_max[a] = np.linalg.eigvalsh(kcov)[-1]

        self.alive[b] = False
        self.version[a] += 1
        self.version[b] += 1

    def surviving(self) -> list[GaussianComponent]:
        return [c for c in self.components if c is not None]


class CompressionEngine:
    """Bounds mixture size by merging components closer than a threshold.

    Attributes:
        threshold (float): Pairs with distance <= threshold are merged.
        divergence (Divergence): Distance used to score pairs.
    """

    def __init__(self, threshold: float, distance: str | Divergence = "hellinger"):
        """Initializes the engine.

        Args:
            threshold (float): Non-negative merge threshold, in the units of
                ``distance``.
            distance (str | Divergence): 'hellinger', 'bhattacharyya' or a
                :class:`Divergence` instance.

        Raises:
            ValueError: If ``threshold`` is negative or NaN, or the distance is unknown.
        """
        t = float(threshold)
        if np.isnan(t) or t < 0.0:
            raise ValueError(f"compression threshold must be non-negative. Got {threshold!r}.")
        self.threshold = t
        self.divergence = get_divergence(distance)

    def compress(self, mixture: MixtureModel) -> MixtureModel:
        """Merges the closest pairs of components until none is within the threshold.

        The mixture is modified in place and returned. Total weight, and the
        mixture's first and second moments, are preserved by every merge.

        Args:
            mixture (MixtureModel): Mixture to compress.

        Returns:
            MixtureModel: The same mixture object.

        Raises:
            EmptyMixtureError: If the mixture has no components.
        """
        n_before = mixture.n_components
        if n_before == 0:
            raise EmptyMixtureError("cannot compress an empty mixture.")
        if n_before == 1:
            return mixture

        state = _MergeState(mixture, self.divergence)
        heap: list[tuple[float, int, int, int, int, int]] = []
        for dist, a, b in state.initial_pairs(self.threshold):
            heap.append((dist, a + b, a, b, 0, 0))
        heapq.heapify(heap)

        n_merges = 0
        while heap:
            dist, _, a, b, va, vb = heapq.heappop(heap)
            if state.version[a] != va or state.version[b] != vb:
                continue
            state.merge(a, b)
            n_merges += 1
            for d_new, other in state.neighbours(a, self.threshold):
                lo, hi = (a, other) if a < other else (other, a)
                heapq.heappush(heap, (d_new, lo + hi, lo, hi,
                                      int(state.version[lo]), int(state.version[hi])))

        if n_merges:
            mixture.replace_components(state.surviving())
        logger.debug("Compressed mixture from %d to %d components (%d merges, threshold=%g, distance=%s)",
                     n_before, mixture.n_components, n_merges, self.threshold, self.divergence.name)
        return mixture

    def __repr__(self) -> str:
        return f"CompressionEngine(threshold={self.threshold!r}, distance={self.divergence.name!r})"


def compress(mixture: MixtureModel, threshold: float, distance: str | Divergence = "hellinger") -> MixtureModel:
    """Compresses ``mixture`` in place with a one-off :class:`CompressionEngine`."""
    return CompressionEngine(threshold, distance).compress(mixture)
