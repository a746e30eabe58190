from okde.core import (
    Distribution,
    GaussianComponent,
    merge_components,
    MixtureModel,
    Divergence,
    BhattacharyyaDistance,
    HellingerDistance,
    CompressionEngine,
    compress,
    SampleModel,
    OKDEError,
    ShapeMismatchError,
    DimensionMismatchError,
    InvalidWeightError,
    InvalidCovarianceError,
    EmptyInputError,
    EmptyMixtureError,
)

__version__ = "0.1.0"
