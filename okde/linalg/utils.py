# linalg/utils.py

from __future__ import annotations

import numpy as np

from ..custom_types import Array, ArrayLike
from ..array_backend.utils import _as_array, _ensure_square_matrix


def clamp_eigenvalues(matrix: ArrayLike, floor: float = 0.0, *, relative: float = 0.0) -> Array:
    """
    Project one or a stack of symmetric matrices onto the positive semi-definite
    cone by raising small eigenvalues.

    Each matrix is symmetrized and re-assembled from its eigendecomposition
    with eigenvalues replaced by ``max(lambda, floor, relative * lambda_max)``.
    Matrices that already satisfy the bound are returned (symmetrized) as is.

    Args:
        matrix: array-like of shape (d, d) or (B, d, d).
        floor: absolute lower bound on the eigenvalues.
        relative: lower bound expressed as a fraction of the largest eigenvalue.

    Returns:
        Array of the same shape as the input.
    """
    C = _as_array(matrix)
    if C.ndim < 2 or C.shape[-1] != C.shape[-2]:
        raise np.linalg.LinAlgError(f"clamp_eigenvalues: expected square matrices. Got shape {C.shape}.")
    C = 0.5 * (C + np.swapaxes(C, -1, -2))

    stack = C.reshape((-1,) + C.shape[-2:])
    vals, vecs = np.linalg.eigh(stack)
    bound = np.maximum(floor, relative * vals[:, -1:])
    need = np.any(vals < bound, axis=1)
    if not np.any(need):
        return C

    # only rebuild the matrices that violate the bound
    vals = np.maximum(vals[need], bound[need])
    vecs = vecs[need]
    rebuilt = (vecs * vals[:, None, :]) @ np.swapaxes(vecs, -1, -2)
    out = stack.copy()
    out[need] = 0.5 * (rebuilt + np.swapaxes(rebuilt, -1, -2))
    return out.reshape(C.shape)


def is_psd(matrix: ArrayLike, *, tol: float = 1e-10) -> bool:
    """
    Check that a square matrix is symmetric positive semi-definite.

    Symmetry and the smallest eigenvalue are both judged relative to the
    scale of the matrix, so `tol` is dimensionless.
    """
    C = _ensure_square_matrix(matrix)
    if not np.all(np.isfinite(C)):
        return False
    scale = max(float(np.max(np.abs(C))), 1.0)
    if not np.allclose(C, C.T, rtol=0.0, atol=tol * scale):
        return False
    eigmin = float(np.linalg.eigvalsh(0.5 * (C + C.T)).min())
    return eigmin >= -tol * scale
