from numpy.typing import NDArray

import numpy as np

from ..linalg.utils import clamp_eigenvalues

# Eigenvalue bounds applied to covariances that are inverted
KERNEL_EIG_FLOOR = 1e-12
KERNEL_EIG_RELATIVE = 1e-10

LOG_2PI = float(np.log(2.0 * np.pi))


def _regularize_kernel_cov(C: NDArray) -> NDArray:
    """Makes one or a stack of covariances safely invertible.

    Eigenvalues below ``KERNEL_EIG_FLOOR`` or below ``KERNEL_EIG_RELATIVE``
    times the largest eigenvalue are raised to that bound. Well conditioned
    matrices pass through unchanged apart from symmetrization.

    Args:
        C (NDArray): Covariance of shape (d, d) or stack of shape (K, d, d).

    Returns:
        NDArray: Symmetric positive-definite matrices of the same shape.
    """
    return clamp_eigenvalues(C, KERNEL_EIG_FLOOR, relative=KERNEL_EIG_RELATIVE)


def _gaussian_log_norm(logdet: NDArray | float, d: int) -> NDArray | float:
    """Log of the Gaussian normalizing constant, -(d log 2pi + log|C|)/2."""
    return -0.5 * (d * LOG_2PI + logdet)


def _point_or_batch(x: NDArray, d: int | None) -> tuple[NDArray, bool]:
    """Normalizes query input to (n, d) and reports whether it was a single point.

    A single point may be given as (d,) or as a (d, 1) column vector. Anything
    else is treated as a batch of row vectors, with (n, d, 1) stacks of column
    vectors flattened to (n, d).

    Args:
        x (NDArray): Query input.
        d (int | None): Dimension of the mixture, used to recognize columns.

    Returns:
        tuple[NDArray, bool]: The (n, d) float array and a single-point flag.
    """
    arr = np.asarray(x, dtype=float)
    if arr.ndim == 0:
        return arr.reshape(1, 1), True
    if arr.ndim == 1:
        return arr.reshape(1, -1), True
    if arr.ndim == 2 and d is not None and d > 1 and arr.shape == (d, 1):
        return arr.reshape(1, -1), True
    if arr.ndim == 3 and arr.shape[2] == 1:
        return arr[:, :, 0], False
    if arr.ndim == 2:
        return arr, False
    raise ValueError(f"points must be (d,), (d, 1), (n, d) or (n, d, 1). Got shape {arr.shape}.")
