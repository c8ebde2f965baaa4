"""On-disk stores: analysis cache, baseline, integration state."""

from craft_audit.store.baseline import BaselineResult, filter_baseline, load_baseline, write_baseline
from craft_audit.store.cache import AnalysisCache
from craft_audit.store.state import filter_unsent, load_sent_fingerprints, write_sent_fingerprints

__all__ = [
    "AnalysisCache",
    "BaselineResult",
    "filter_baseline",
    "filter_unsent",
    "load_baseline",
    "load_sent_fingerprints",
    "write_baseline",
    "write_sent_fingerprints",
]
