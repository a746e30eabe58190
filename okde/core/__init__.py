from .exceptions import *
from .distributions import Distribution
from .component import GaussianComponent, merge_components
from .mixture import MixtureModel
from .divergence import Divergence, BhattacharyyaDistance, HellingerDistance, get_divergence
from .compression import CompressionEngine, compress
from .bandwidth import bandwidth_factor, build_bandwidth, estimate_bandwidth
from .sample_model import SampleModel
