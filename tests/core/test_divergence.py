import numpy as np
import pytest

from okde import GaussianComponent, BhattacharyyaDistance, HellingerDistance
from okde.core.divergence import Divergence, get_divergence


def _random_pd(rng, n, d):
    roots = rng.normal(size=(n, d, d))
    return roots @ np.swapaxes(roots, 1, 2) + 0.05 * np.eye(d)


def test_identical_gaussians_have_zero_distance(cov_matrix):
    a = GaussianComponent(np.array([1.0, 2.0]), cov_matrix)
    for div in (BhattacharyyaDistance(), HellingerDistance()):
        assert div(a, a) == 0.0


def test_distances_are_symmetric(rng):
    covs = _random_pd(rng, 2, 3)
    a = GaussianComponent(rng.normal(size=3), covs[0])
    b = GaussianComponent(rng.normal(size=3), covs[1])
    for div in (BhattacharyyaDistance(), HellingerDistance()):
        assert div(a, b) == pytest.approx(div(b, a), rel=1e-12)


def test_bhattacharyya_closed_form_for_equal_covariances():
    C = np.array([[2.0, 0.5], [0.5, 1.0]])
    a = GaussianComponent(np.array([0.0, 0.0]), C)
    b = GaussianComponent(np.array([1.0, -1.0]), C)
    dmu = a.mean - b.mean
    expected = 0.125 * dmu @ np.linalg.solve(C, dmu)
    assert BhattacharyyaDistance()(a, b) == pytest.approx(expected, rel=1e-12)
    assert HellingerDistance()(a, b) == pytest.approx(1.0 - np.exp(-expected), rel=1e-12)


def test_hellinger_is_bounded_and_grows_with_separation():
    C = np.eye(2)
    a = GaussianComponent(np.zeros(2), C)
    h = HellingerDistance()
    dists = [h(a, GaussianComponent(np.array([s, 0.0]), C)) for s in (0.1, 1.0, 5.0, 50.0)]
    assert all(0.0 <= x <= 1.0 for x in dists)
    assert dists == sorted(dists)
    assert dists[-1] == pytest.approx(1.0)


def test_covariance_difference_counts_for_equal_means():
    a = GaussianComponent(np.zeros(2), np.eye(2))
    b = GaussianComponent(np.zeros(2), 4.0 * np.eye(2))
    assert BhattacharyyaDistance()(a, b) > 0.0


def test_pairwise_is_vectorized(rng):
    n, d = 12, 2
    ma, mb = rng.normal(size=(n, d)), rng.normal(size=(n, d))
    ca, cb = _random_pd(rng, n, d), _random_pd(rng, n, d)
    div = HellingerDistance()
    got = div.pairwise(ma, ca, mb, cb)
    expected = [div(GaussianComponent(ma[i], ca[i]), GaussianComponent(mb[i], cb[i])) for i in range(n)]
    np.testing.assert_allclose(got, expected, rtol=1e-10)


def test_mean_separation_bound_holds(rng):
    """D_B >= |dmu|^2 / (8 max lambda_max) justifies pruning by mean separation."""
    n, d = 200, 3
    ma, mb = rng.normal(size=(n, d)), rng.normal(size=(n, d))
    ca, cb = _random_pd(rng, n, d), _random_pd(rng, n, d)
    db = BhattacharyyaDistance().pairwise(ma, ca, mb, cb)
    lam = np.maximum(np.linalg.eigvalsh(ca)[:, -1], np.linalg.eigvalsh(cb)[:, -1])
    bound = np.sum((ma - mb) ** 2, axis=1) / (8.0 * lam)
    assert np.all(db >= bound * (1.0 - 1e-10))


def test_bhattacharyya_limits():
    assert BhattacharyyaDistance().bhattacharyya_limit(0.3) == 0.3
    assert HellingerDistance().bhattacharyya_limit(0.0) == 0.0
    assert HellingerDistance().bhattacharyya_limit(0.5) == pytest.approx(np.log(2.0))
    assert HellingerDistance().bhattacharyya_limit(1.0) is None


def test_get_divergence():
    assert isinstance(get_divergence("hellinger"), HellingerDistance)
    assert isinstance(get_divergence("Bhattacharyya"), BhattacharyyaDistance)
    custom = HellingerDistance()
    assert get_divergence(custom) is custom
    with pytest.raises(ValueError):
        get_divergence("kl")
    with pytest.raises(ValueError):
        get_divergence(3)


def test_divergence_is_abstract():
    with pytest.raises(TypeError):
        Divergence()
