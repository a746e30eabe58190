"""
Kernel bandwidth selection for the online density estimate.

Observations usually arrive as point masses (zero covariance), so the
density is the mixture convolved with a shared bandwidth matrix H. With no
fixed bandwidth, H is re-estimated after every update from the covariance of
the whole mixture and the effective number of observations, using the same
Scott / Silverman factors as ``scipy.stats.gaussian_kde``.
"""
from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from ..array_backend.utils import _as_array
from ..linalg.utils import clamp_eigenvalues, is_psd
from .exceptions import InvalidCovarianceError

__all__ = [
    "bandwidth_factor",
    "build_bandwidth",
    "estimate_bandwidth",
    "BANDWIDTH_RULES",
]

logger = logging.getLogger(__name__)

BANDWIDTH_RULES = ("scott", "silverman")

# Floors on the eigenvalues of the data covariance before scaling, so that
# H stays positive definite for degenerate (collinear or repeated) data
BANDWIDTH_EIG_RELATIVE = 1e-4
BANDWIDTH_EIG_FLOOR = 1e-8


def bandwidth_factor(n_eff: float, d: int, rule: str = "scott") -> float:
    """Scalar bandwidth factor for ``n_eff`` observations in ``d`` dimensions.

    Args:
        n_eff (float): Effective number of observations, > 0.
        d (int): Dimension.
        rule (str): 'scott' or 'silverman'.

    Returns:
        float: Factor f such that H = f^2 * Cov.

    Raises:
        ValueError: If ``rule`` is unknown or ``n_eff`` is not positive.
    """
    if n_eff <= 0:
        raise ValueError(f"n_eff must be positive. Got {n_eff!r}.")
    if rule.lower() == "scott":
        return float(n_eff ** (-1.0 / (d + 4.0)))
    elif rule.lower() == "silverman":
        return float((n_eff * (d + 2.0) / 4.0) ** (-1.0 / (d + 4.0)))
    raise ValueError("rule must be 'scott' or 'silverman'.")


def build_bandwidth(bandwidth: float | NDArray, d: int) -> NDArray[np.floating]:
    """Constructs a fixed bandwidth matrix H.

    Args:
        bandwidth (float | NDArray): Bandwidth definition.
            - Scalar: uses isotropic H = (h^2)I.
            - Vector: uses diagonal H = diag(h₁², …, h_d^2).
            - Matrix: directly uses user-provided H.
        d (int): Dimension.

    Returns:
        Bandwidth matrix H, shape (d, d).

    Raises:
        ValueError: If the provided bandwidth is invalid.
    """
    bw = _as_array(bandwidth)
    if bw.ndim == 0:
        h = float(bw)
        if h <= 0:
            raise ValueError("bandwidth scalar must be > 0.")
        return (h * h) * np.eye(d, dtype=float)
    elif bw.ndim == 1:
        if bw.shape[0] != d:
            raise ValueError("bandwidth vector must have shape (d,).")
        if np.any(bw <= 0):
            raise ValueError("bandwidth vector entries must be > 0.")
        return np.diag(bw * bw)
    elif bw.ndim == 2:
        if bw.shape != (d, d):
            raise ValueError("bandwidth matrix must be (d, d).")
        if not is_psd(bw):
            raise InvalidCovarianceError("bandwidth matrix must be symmetric positive semi-definite.")
        return 0.5 * (bw + bw.T)
    raise ValueError("Unsupported bandwidth shape.")


def estimate_bandwidth(cov: NDArray, n_eff: float, rule: str = "scott") -> NDArray[np.floating]:
    """Rule-of-thumb bandwidth H = f(n_eff, d)^2 * Cov.

    Eigenvalues of ``cov`` are first raised to at least
    ``BANDWIDTH_EIG_RELATIVE`` times the largest one (and to at least
    ``BANDWIDTH_EIG_FLOOR``), so the result is positive definite even for
    a single observation or perfectly collinear data.

    Args:
        cov (NDArray): Covariance of the data, shape (d, d).
        n_eff (float): Effective number of observations.
        rule (str): 'scott' or 'silverman'.

    Returns:
        NDArray[np.floating]: Bandwidth matrix, shape (d, d).
    """
    C = clamp_eigenvalues(cov, BANDWIDTH_EIG_FLOOR, relative=BANDWIDTH_EIG_RELATIVE)
    d = C.shape[0]
    factor = bandwidth_factor(n_eff, d, rule)
    logger.debug("Bandwidth factor %.6g for n_eff=%.6g (rule=%s)", factor, n_eff, rule)
    return (factor ** 2) * C
