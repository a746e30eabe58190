# linalg/operations.py
"""
Dense linear algebra used by the mixture code. Every function accepts either
a single matrix of shape (d, d) or a stack of matrices of shape (B, d, d), so
that per-component quantities can be computed for a whole mixture in one call.
Specialized operations like `mah_dist_squared()` are built on the core
`solve()` and `logdet()` functions.
"""

import numpy as np

from ..custom_types import Array, ArrayLike
from ..array_backend.utils import _as_array, _ensure_matrix


def _check_square(A: Array) -> None:
    if A.ndim < 2 or A.shape[-1] != A.shape[-2]:
        raise np.linalg.LinAlgError(f"Matrix is not square. Has shape {A.shape}")


# -----------------------------------------------------------------------------
# Core operations
# -----------------------------------------------------------------------------

def solve(A: ArrayLike, b: ArrayLike) -> Array:
    A = _as_array(A)
    _check_square(A)
    return np.linalg.solve(A, _as_array(b))

def inv(A: ArrayLike) -> Array:
    A = _as_array(A)
    _check_square(A)
    return np.linalg.inv(A)

def logdet(A: ArrayLike) -> float | Array:
    """ Log-determinant of a positive definite matrix, or of each matrix in a stack.

    Raises:
        np.linalg.LinAlgError: If a determinant is not positive.
    """
    A = _as_array(A)
    _check_square(A)
    sign, logabsdet = np.linalg.slogdet(A)
    if np.any(sign <= 0):
        raise np.linalg.LinAlgError("logdet: matrix has a non-positive determinant.")
    return float(logabsdet) if A.ndim == 2 else logabsdet


# -----------------------------------------------------------------------------
# Other specialized operations
# -----------------------------------------------------------------------------

def mah_dist_squared(x: ArrayLike,
                     A: ArrayLike,
                     y: ArrayLike | None = None) -> Array:
    """ Compute squared Mahalanobis distance(s) between one or more vectors

    The squared Mahalanobis distance between vectors :math:`x` and :math:`y`
    with respect to the invertible weight matrix :math:`A` is defined as:

    .. math::

        D^2(x, y; A) = (x - y)^\\top A^{-1} (x - y)

    If multiple observations are provided as rows in the matrix `x` or `y`,
    either both contain the same number of rows, or one of them is a single
    point that is broadcast. If `y` is `None`, it is taken as the zero vector.

    Args:
        x: ArrayLike, of shape (d,) or (n,d).
        A: ArrayLike, invertible and shape (d,d).
        y: ArrayLike or None, shape (d,) or (n,d).

    Returns:
        Array of shape (n,)
    """
    A = _as_array(A)
    _check_square(A)
    d = A.shape[0]
    X = _ensure_matrix(x, num_cols=d)
    if y is not None:
        Y = _ensure_matrix(y, num_cols=d)
        if Y.shape[0] not in (1, X.shape[0]):
            raise ValueError("y must have same batch dimension `n` as x, or have batch dimension one.")
        X = X - Y

    Ainv_Xt = solve(A, X.T).T  # (n, d)
    return np.sum(X * Ainv_Xt, axis=1)


def batch_mah_dist_squared(x: ArrayLike, A: ArrayLike) -> Array:
    """ Squared Mahalanobis norms of a stack of vectors, each under its own matrix.

    Args:
        x: ArrayLike, shape (B, d).
        A: ArrayLike, shape (B, d, d), each invertible.

    Returns:
        Array of shape (B,) with entries x_b^T A_b^{-1} x_b.
    """
    X = _as_array(x)
    A = _as_array(A)
    _check_square(A)
    if A.ndim != 3 or X.shape != A.shape[:2]:
        raise ValueError(f"batch_mah_dist_squared: incompatible shapes {X.shape} and {A.shape}.")
    z = solve(A, X[..., None])[..., 0]
    return np.sum(X * z, axis=-1)
