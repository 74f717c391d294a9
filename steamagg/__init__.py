"""steamagg - Steam profile aggregator."""

from steamagg.models.identity import IdentityRecord
from steamagg.models.snapshot import ScrapeSnapshot
from steamagg.models.profile import MergedProfile
from steamagg.config import AggregatorConfig
from steamagg.core.orchestrator import Aggregator
from steamagg.core.merger import to_response

__version__ = "0.1.0"

__all__ = [
    # Main interface
    "Aggregator",
    "AggregatorConfig",
    # Models
    "IdentityRecord",
    "ScrapeSnapshot",
    "MergedProfile",
    # Serialization
    "to_response",
    "__version__",
]
