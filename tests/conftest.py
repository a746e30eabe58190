import pytest
import numpy as np

from okde import GaussianComponent, MixtureModel


@pytest.fixture
def rng():
    return np.random.default_rng(42)

@pytest.fixture
def dim():
    return 2

@pytest.fixture
def cov_matrix(dim):
    A = np.eye(dim) * 2.0
    A[0, 1] = A[1, 0] = 0.3
    return A

@pytest.fixture
def zero_cov(dim):
    return np.zeros((dim, dim))

@pytest.fixture
def two_component_mixture():
    comps = [
        GaussianComponent(np.array([0.0, 0.0]), np.array([[1.0, 0.2], [0.2, 0.5]]), 0.25),
        GaussianComponent(np.array([2.0, -1.0]), np.array([[0.3, 0.0], [0.0, 0.8]]), 0.75),
    ]
    return MixtureModel(comps)

@pytest.fixture
def random_mixture(rng):
    """40 weighted components in 2D with small random covariances and a bandwidth."""
    n, d = 40, 2
    means = rng.uniform(0.0, 1.0, size=(n, d))
    roots = rng.normal(scale=0.05, size=(n, d, d))
    covs = roots @ np.swapaxes(roots, 1, 2) + 1e-4 * np.eye(d)
    w = rng.uniform(0.5, 1.5, size=n)
    w = w / w.sum()
    comps = [GaussianComponent(m, C, wi) for m, C, wi in zip(means, covs, w)]
    return MixtureModel(comps, bandwidth=0.01 * np.eye(d))
