import numpy as np
import pytest
from scipy.stats import multivariate_normal

from okde import (
    GaussianComponent,
    merge_components,
    DimensionMismatchError,
    EmptyInputError,
    InvalidCovarianceError,
    InvalidWeightError,
    ShapeMismatchError,
)


# ------------------------------- Construction -------------------------------

def test_init_defaults_to_zero_covariance():
    c = GaussianComponent(np.array([1.0, 2.0]))
    assert c.dimension == 2
    assert c.weight == 1.0
    np.testing.assert_array_equal(c.cov, np.zeros((2, 2)))


def test_init_accepts_column_vector_mean(cov_matrix):
    c = GaussianComponent(np.array([[1.0], [2.0]]), cov_matrix, 0.5)
    np.testing.assert_array_equal(c.mean, [1.0, 2.0])
    assert c.weight == 0.5


@pytest.mark.parametrize("bad_cov", [
    np.array([[1.0, 2.0], [2.0, 1.0]]),   # indefinite
    np.array([[1.0, 0.5], [0.0, 1.0]]),   # not symmetric
])
def test_init_rejects_invalid_covariance(bad_cov):
    with pytest.raises(InvalidCovarianceError):
        GaussianComponent(np.zeros(2), bad_cov)


def test_init_rejects_mismatched_covariance():
    with pytest.raises(ShapeMismatchError):
        GaussianComponent(np.zeros(2), np.eye(3))
    with pytest.raises(ShapeMismatchError):
        GaussianComponent(np.zeros(2), np.ones((2, 3)))


@pytest.mark.parametrize("bad_weight", [-1.0, np.nan, np.inf])
def test_init_rejects_invalid_weight(bad_weight):
    with pytest.raises(InvalidWeightError):
        GaussianComponent(np.zeros(2), np.eye(2), bad_weight)


# ------------------------------- Evaluation -------------------------------

def test_density_matches_scipy(cov_matrix, rng):
    mean = np.array([0.5, -1.0])
    c = GaussianComponent(mean, cov_matrix)
    X = rng.normal(size=(10, 2))
    expected = multivariate_normal(mean=mean, cov=cov_matrix).pdf(X)
    np.testing.assert_allclose(c.density(X), expected, rtol=1e-10)
    np.testing.assert_allclose(c.log_density(X), np.log(expected), rtol=1e-10)


def test_cached_precision_and_logdet(cov_matrix):
    c = GaussianComponent(np.zeros(2), cov_matrix)
    np.testing.assert_allclose(c.precision @ cov_matrix, np.eye(2), atol=1e-12)
    np.testing.assert_allclose(c.logdet, np.linalg.slogdet(cov_matrix)[1])
    assert c.precision is c.precision


def test_zero_covariance_density_is_finite():
    c = GaussianComponent(np.array([1.0, 1.0]))
    p = c.density(np.array([[1.0, 1.0], [1.0, 1.1]]))
    assert np.all(np.isfinite(p))
    assert np.all(p >= 0.0)


def test_density_dimension_mismatch(cov_matrix):
    c = GaussianComponent(np.zeros(2), cov_matrix)
    with pytest.raises(DimensionMismatchError):
        c.density(np.zeros((4, 3)))


def test_mahalanobis_squared(cov_matrix):
    c = GaussianComponent(np.zeros(2), cov_matrix)
    x = np.array([1.0, 2.0])
    expected = x @ np.linalg.solve(cov_matrix, x)
    np.testing.assert_allclose(c.mahalanobis_squared(x), [expected])


def test_smoothed_and_marginal(cov_matrix):
    c = GaussianComponent(np.array([1.0, 2.0]), cov_matrix, 0.3)
    H = 0.1 * np.eye(2)
    s = c.smoothed(H)
    np.testing.assert_allclose(s.cov, cov_matrix + H)
    assert s.weight == 0.3

    m = c.marginal([1])
    assert m.dimension == 1
    np.testing.assert_allclose(m.mean, [2.0])
    np.testing.assert_allclose(m.cov, [[cov_matrix[1, 1]]])


# ------------------------------- Merging -------------------------------

def test_merge_preserves_weight_and_moments():
    a = GaussianComponent(np.array([0.0, 1.0]), np.array([[1.0, 0.3], [0.3, 0.5]]), 0.3)
    b = GaussianComponent(np.array([2.0, -1.0]), np.array([[0.2, 0.0], [0.0, 0.4]]), 0.7)
    m = merge_components(a, b)

    assert m.weight == pytest.approx(1.0)
    np.testing.assert_allclose(m.weight * m.mean, a.weight * a.mean + b.weight * b.mean, atol=1e-12)
    np.testing.assert_allclose(
        m.weight * m.second_moment,
        a.weight * a.second_moment + b.weight * b.second_moment,
        atol=1e-12,
    )
    assert np.linalg.eigvalsh(m.cov).min() >= 0.0


def test_merge_of_point_masses_spans_their_spread():
    a = GaussianComponent(np.array([1.0, 2.0]), None, 1.0)
    b = GaussianComponent(np.array([3.0, 4.0]), None, 1.0)
    m = merge_components(a, b)
    np.testing.assert_allclose(m.mean, [2.0, 3.0])
    np.testing.assert_allclose(m.cov, [[1.0, 1.0], [1.0, 1.0]], atol=1e-12)


def test_merge_is_order_independent(rng):
    comps = [GaussianComponent(rng.normal(size=2), np.eye(2) * rng.uniform(0.1, 1.0), rng.uniform(0.1, 1.0))
             for _ in range(4)]
    m1 = merge_components(*comps)
    m2 = merge_components(*comps[::-1])
    np.testing.assert_allclose(m1.mean, m2.mean, atol=1e-12)
    np.testing.assert_allclose(m1.cov, m2.cov, atol=1e-12)


def test_merge_errors():
    with pytest.raises(EmptyInputError):
        merge_components()
    with pytest.raises(DimensionMismatchError):
        merge_components(GaussianComponent(np.zeros(2)), GaussianComponent(np.zeros(3)))
