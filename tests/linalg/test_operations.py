# tests/linalg/test_operations.py
import numpy as np
import pytest
from numpy.testing import assert_allclose

from okde.linalg.operations import (
    batch_mah_dist_squared,
    inv,
    logdet,
    mah_dist_squared,
    solve,
)


# -----------------------------------------------------------------------------
# Baseline/reference functions to compare against
# -----------------------------------------------------------------------------

def baseline_mah_dist_squared(x, A, y):
    d = A.shape[0]
    X = np.asarray(x).reshape(-1, d)
    if y is not None:
        Y = np.asarray(y).reshape(-1, d)
        if Y.shape[0] == 1:
            Y = np.repeat(Y, X.shape[0], axis=0)
        X = X - Y

    out = np.empty(X.shape[0], dtype=float)
    for i, xi in enumerate(X):
        zi = np.linalg.solve(A, xi)
        out[i] = float(np.dot(xi, zi))
    return out


@pytest.fixture(scope="module")
def pd_matrix():
    rng = np.random.default_rng(26423)
    root = rng.normal(size=(5, 5))
    return root @ root.T + 0.1 * np.eye(5)


@pytest.fixture(scope="module")
def pd_stack():
    rng = np.random.default_rng(7)
    roots = rng.normal(size=(6, 3, 3))
    return roots @ np.swapaxes(roots, 1, 2) + 0.1 * np.eye(3)


# -----------------------------------------------------------------------------
# Mahalanobis distance
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("batch_mode", ["batch", "single"])
@pytest.mark.parametrize("with_y", [False, True])
def test_mah_dist_squared_against_baseline(batch_mode, with_y, pd_matrix):
    rng = np.random.default_rng(1)
    dim = pd_matrix.shape[0]
    if batch_mode == "batch":
        x = rng.normal(size=(20, dim))
        y = rng.normal(size=(20, dim)) if with_y else None
    else:
        x = rng.normal(size=(dim,))
        y = rng.normal(size=(dim,)) if with_y else None

    expected = baseline_mah_dist_squared(x, pd_matrix, y)
    got = mah_dist_squared(x, pd_matrix, y)
    assert_allclose(got, expected, rtol=1e-10)


def test_mah_dist_squared_broadcast_y(pd_matrix):
    rng = np.random.default_rng(2)
    x = rng.normal(size=(7, 5))
    y = rng.normal(size=(5,))
    expected = baseline_mah_dist_squared(x, pd_matrix, np.repeat(y[None], 7, axis=0))
    assert_allclose(mah_dist_squared(x, pd_matrix, y), expected, rtol=1e-10)


def test_mah_dist_squared_incorrect_shape_raises(pd_matrix):
    x_bad = np.ones((5, 6))
    with pytest.raises(ValueError):
        mah_dist_squared(x_bad, pd_matrix)


def test_batch_mah_dist_squared_matches_loop(pd_stack):
    rng = np.random.default_rng(3)
    X = rng.normal(size=(pd_stack.shape[0], 3))
    expected = [baseline_mah_dist_squared(x, A, None)[0] for x, A in zip(X, pd_stack)]
    assert_allclose(batch_mah_dist_squared(X, pd_stack), expected, rtol=1e-10)

    with pytest.raises(ValueError):
        batch_mah_dist_squared(X[:2], pd_stack)


# -----------------------------------------------------------------------------
# logdet / inv / solve
# -----------------------------------------------------------------------------

def test_logdet_single_and_stack(pd_matrix, pd_stack):
    sign, expected = np.linalg.slogdet(pd_matrix)
    got = logdet(pd_matrix)
    assert isinstance(got, float)
    assert_allclose(got, expected)

    got_stack = logdet(pd_stack)
    assert got_stack.shape == (pd_stack.shape[0],)
    assert_allclose(got_stack, [np.linalg.slogdet(A)[1] for A in pd_stack])


def test_logdet_matches_cholesky_formula(pd_matrix):
    L = np.linalg.cholesky(pd_matrix)
    assert_allclose(2.0 * np.sum(np.log(np.diag(L))), logdet(pd_matrix))


def test_logdet_rejects_non_positive_determinant():
    with pytest.raises(np.linalg.LinAlgError):
        logdet(np.diag([1.0, -1.0]))


def test_inv_and_solve(pd_stack):
    P = inv(pd_stack)
    assert_allclose(P @ pd_stack, np.broadcast_to(np.eye(3), pd_stack.shape), atol=1e-8)
    b = np.ones((pd_stack.shape[0], 3, 1))
    assert_allclose(pd_stack @ solve(pd_stack, b), b, atol=1e-8)


def test_non_square_raises():
    with pytest.raises(np.linalg.LinAlgError):
        inv(np.ones((2, 3)))
