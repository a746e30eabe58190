"""Errors raised by the mixture, compression and update code.

All of them derive from ``ValueError`` so callers that guard against bad
input with ``except ValueError`` keep working.
"""

__all__ = [
    "OKDEError",
    "ShapeMismatchError",
    "DimensionMismatchError",
    "InvalidWeightError",
    "InvalidCovarianceError",
    "EmptyInputError",
    "EmptyMixtureError",
]


class OKDEError(ValueError):
    """Base class for all okde input errors."""


class ShapeMismatchError(OKDEError):
    """Parallel inputs (samples, covariances, weights) disagree in length or shape."""


class DimensionMismatchError(OKDEError):
    """A point or sample does not match the dimension established by the mixture."""


class InvalidWeightError(OKDEError):
    """A weight is non-positive or not finite."""


class InvalidCovarianceError(OKDEError):
    """A covariance matrix is not symmetric positive semi-definite."""


class EmptyInputError(OKDEError):
    """An update was called with no samples."""


class EmptyMixtureError(OKDEError):
    """An operation that needs at least one component was called on an empty mixture."""
