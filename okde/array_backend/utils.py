# array_backend/utils.py
"""
Utility functions for array canonicalization used by okde.

All functions that return arrays accept `copy: bool = True`. When `copy=True`
the returned array is guaranteed to be a different object from the input, so
callers may keep the result without aliasing user-owned buffers.
"""

from __future__ import annotations

import numpy as np
from typing import Any

from ..custom_types import Array, ArrayLike


def _as_array(x: Any) -> Array:
    try:
        return np.asarray(x, dtype=float)
    except Exception as e:
        raise TypeError(
            f"Could not convert input to a real array.\n"
            f"Input type: {type(x).__name__}\n"
            f"Original error: {e}"
        ) from e


def _is_numpy_scalar(x: Any) -> bool:
    """Return true if object is a numpy generic or Python scalar"""
    return np.isscalar(x) or isinstance(x, np.generic)


def _ensure_real_scalar(x: Any) -> float:
    """
    Return a Python float for inputs that contain a single real value.

    Accepts Python scalars, numpy scalar types and arrays holding one element.

    Raises:
      ValueError if input contains more than one element, is complex-valued
      or is not finite.
    """
    if _is_numpy_scalar(x) and np.iscomplexobj(x):
        raise ValueError(f"_ensure_real_scalar: input is complex-valued: {x!r}")
    if isinstance(x, np.ndarray) and np.iscomplexobj(x):
        raise ValueError(f"_ensure_real_scalar: input is complex-valued (shape={x.shape}).")

    arr = _as_array(x)
    if arr.size != 1:
        raise ValueError(f"_ensure_real_scalar: input must contain exactly one element; got size={arr.size}, shape={arr.shape}")
    value = float(arr.reshape(()))
    if not np.isfinite(value):
        raise ValueError(f"_ensure_real_scalar: input is not finite: {value!r}")
    return value


def _ensure_vector(x: ArrayLike, *, length: int | None = None, copy: bool = True) -> Array:
    """
    Ensure input is returned as a 1-D vector (canonical shape (n,)).

    Accepts:
      - 1D arrays -> (n,)
      - 2D arrays shaped (n,1) or (1,n) -> flattened
      - 0D scalar -> treated as length-1 vector (1,)

    Raises:
      ValueError for incompatible shapes (ndim > 2 or 2D with both dims >1)
    """
    arr = _as_array(x)

    if arr.ndim == 0:
        out = arr.reshape((1,))
    elif arr.ndim == 1:
        out = arr
    elif arr.ndim == 2:
        num_rows, num_cols = arr.shape
        if num_rows == 1 or num_cols == 1:
            out = np.ravel(arr)
        else:
            raise ValueError(f"_ensure_vector: 2D input has shape {arr.shape}, which is not a vector (expected (n,1) or (1,n)).")
    else:
        raise ValueError(f"_ensure_vector: input has too many dimensions (ndim={arr.ndim}).")

    if length is not None and out.size != length:
        raise ValueError(f"_ensure_vector: required length {length}. Got {out.size}.")

    return out.copy() if copy else out


def _ensure_matrix(x: ArrayLike, *, num_rows: int | None = None, num_cols: int | None = None,
                   copy: bool = True) -> Array:
    """ Ensure input is a 2D matrix

    - Scalar inputs (0D) become arrays of shape (1, 1)
    - 1D inputs become row matrices of shape (1, n)
    - 2D inputs are passed through as is
    - Other shapes raise an error
    """
    arr = _as_array(x)

    if arr.ndim == 2:
        out = arr
    elif arr.ndim == 1:
        out = arr.reshape(1, -1)
    elif arr.ndim == 0:
        out = arr.reshape(1, 1)
    else:
        raise ValueError(f"_ensure_matrix: Input cannot be converted to a 2D matrix. Shape {arr.shape}")

    if num_rows is not None and out.shape[0] != num_rows:
        raise ValueError(f"_ensure_matrix: Required {num_rows} rows. Got {out.shape[0]}.")

    if num_cols is not None and out.shape[1] != num_cols:
        raise ValueError(f"_ensure_matrix: Required {num_cols} columns. Got {out.shape[1]}.")

    return out.copy() if copy else out


def _ensure_square_matrix(x: ArrayLike, n: int | None = None, *, copy: bool = True) -> Array:
    """Ensure input is a 2d square matrix"""
    matrix = _ensure_matrix(x, copy=copy)
    num_rows, num_cols = matrix.shape
    if num_rows != num_cols:
        raise ValueError(f"Array is not square. Shape {matrix.shape}")

    if n is not None and matrix.shape[0] != n:
        raise ValueError(f"Required matrix dimension {n}. Got {matrix.shape[0]}.")

    return matrix


# ------------------------------------------------------------------------------
# Batch arrays
# ------------------------------------------------------------------------------

def _ensure_batch_vector(x: ArrayLike, length: int | None = None,
                         *, copy: bool = True) -> Array:
    """Ensure `x` is a batch of vectors and return shape (B, d).

    Two-dimensional arrays are returned unchanged. Lower dimensional arrays
    are treated as a single vector and returned as a singleton batch (1, d).
    A sequence of (d, 1) column vectors, which arrives as a (B, d, 1) array,
    is squeezed to (B, d). Other shapes raise an error.

    Examples:
      - Input shape (d,) -> returned shape (1, d)
      - Input shape (B, d) -> returned shape (B, d)
      - Input shape (B, d, 1) -> returned shape (B, d)

    Raises:
        ValueError: If the input cannot be interpreted as a batch of vectors.
    """
    arr = _as_array(x)

    if arr.ndim < 2:
        v = _ensure_vector(arr, length=length, copy=copy)
        return v.reshape(1, -1)

    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[:, :, 0]

    if arr.ndim != 2:
        raise ValueError(
            f"_ensure_batch_vector: Array of shape {arr.shape} is not a batch vector. Require shape (n_batch, d)."
        )

    if length is not None and arr.shape[1] != length:
        raise ValueError(f"_ensure_batch_vector: Required vector length {length}. Got {arr.shape[1]}.")

    return arr.copy() if copy else arr


def _ensure_batch_matrix(x: ArrayLike, num_rows: int | None = None, num_cols: int | None = None,
                         *, copy: bool = True) -> Array:
    """Ensure `x` is a batch of matrices and return shape (B, n, m).

    Three-dimensional arrays are returned unchanged. A single 2D matrix is
    returned as a singleton batch (1, n, m). Other shapes raise an error.

    Raises:
        ValueError: If the input cannot be interpreted as a batch of matrices.
    """
    arr = _as_array(x)

    if arr.ndim == 2:
        arr = arr[np.newaxis, ...]
    elif arr.ndim != 3:
        raise ValueError(
            f"Array of shape {arr.shape} is not a batch matrix. Require shape (n_batch, n_row, n_col)."
        )

    if num_rows is not None and arr.shape[1] != num_rows:
        raise ValueError(f"_ensure_batch_matrix: Required {num_rows} rows. Got {arr.shape[1]}.")

    if num_cols is not None and arr.shape[2] != num_cols:
        raise ValueError(f"_ensure_batch_matrix: Required {num_cols} columns. Got {arr.shape[2]}.")

    return arr.copy() if copy else arr


def _ensure_batch_real_scalar(x: ArrayLike, *, copy: bool = True) -> Array:
    """
    Ensure `x` is a batch of real scalars with shape (B,).

    - scalar -> (1,)
    - 1D array (B,) -> returned (B,)
    - higher-dimensional inputs raise an error

    Raises:
        ValueError if the input contains complex numbers or has ndim >= 2.
    """
    if _is_numpy_scalar(x):
        return np.array([_ensure_real_scalar(x)], dtype=float)

    if isinstance(x, np.ndarray) and np.iscomplexobj(x):
        raise ValueError("_ensure_batch_real_scalar: input contains complex values.")
    arr = _as_array(x)
    if arr.ndim == 0:
        return arr.reshape((1,)).copy()
    if arr.ndim == 1:
        return arr.copy() if copy else arr
    raise ValueError(f"_ensure_batch_real_scalar: expected scalar or 1D array. Got shape={arr.shape}.")
