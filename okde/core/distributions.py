from __future__ import annotations

from typing import Any
from abc import ABC, abstractmethod

import numpy as np
from numpy.typing import NDArray

__all__ = [
    "Distribution",
]


class Distribution(ABC):
    """
    Abstract base class for probability distributions over ℝᵈ.

    Subclasses are expected to implement methods for computing moments and
    may implement density, log-density and sampling. Subclasses that cannot
    support a specific optional operation may leave it unimplemented.
    """

    def sample(self, n_samples: int) -> NDArray[np.floating]:
        """
        Samples data points from the distribution.

        Args:
            n_samples: The number of samples to generate.

        Returns:
            NDArray: An array of shape (n_samples, d).

        Raises:
            NotImplementedError: If the subclass does not implement this method.
        """
        raise NotImplementedError("This method may be implemented by subclasses (optional)")

    def density(self, data: NDArray) -> NDArray[np.floating]:
        """
        Computes the probability density p(data) under this distribution.

        Args:
            data: Input array of observations for which to compute densities.

        Returns:
            NDArray[np.floating]: Column vector of density values, shape (n, 1).

        Raises:
            NotImplementedError: If the subclass does not implement this method.
        """
        raise NotImplementedError("This method may be implemented by subclasses (optional)")

    def log_density(self, data: NDArray) -> NDArray[np.floating]:
        """
        Computes the log-probability density log p(data).

        Args:
            data: Input array of observations for which to compute log-densities.

        Returns:
            NDArray[np.floating]: Column vector of log-density values, shape (n, 1).

        Raises:
            NotImplementedError: If the subclass does not implement this method.
        """
        raise NotImplementedError("This method may be implemented by subclasses (optional)")

    @abstractmethod
    def mean(self) -> NDArray[np.floating]:
        """Mean vector of shape (d,)."""
        raise NotImplementedError

    @abstractmethod
    def cov(self) -> NDArray[np.floating]:
        """Covariance matrix of shape (d, d)."""
        raise NotImplementedError

    @classmethod
    @abstractmethod
    def from_distribution(
        cls,
        convert_from: 'Distribution',
        **fit_kwargs: Any,
    ) -> 'Distribution':
        """
        Constructs a new distribution by fitting or converting from another.

        Args:
            convert_from: The source distribution to fit or convert from.
            **fit_kwargs: Additional fitting parameters specific to the subclass.

        Returns:
            Distribution: A new instance of `cls` fitted to the source distribution.
        """
        raise NotImplementedError("This method should be implemented by subclasses")
