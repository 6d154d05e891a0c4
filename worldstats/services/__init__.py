from .charts import ChartService
from .comparison import ComparisonService
from .country import CountryService
from .merge import FIELD_OWNERS, UpdateAccumulator, merge_update
from .summary import SummaryService
from .sync import ProviderOutcome, SyncReport, SyncService, SyncState, apply_update

__all__ = [
    "ChartService",
    "ComparisonService",
    "CountryService",
    "FIELD_OWNERS",
    "ProviderOutcome",
    "SummaryService",
    "SyncReport",
    "SyncService",
    "SyncState",
    "UpdateAccumulator",
    "apply_update",
    "merge_update",
]
