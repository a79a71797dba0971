"""Domain entities."""

from .record import (
    DEFAULT_MAX_RESULTS,
    MAX_RESULTS_CEILING,
    AggregatedResult,
    CanonicalRecord,
    Failure,
    FetchOutcome,
    QueryExpansionPlan,
    SearchMeta,
    SearchMode,
    SearchRequest,
    SortPolicy,
    SourceGroup,
    SourceTag,
    Success,
    make_record_id,
)

__all__ = [
    "DEFAULT_MAX_RESULTS",
    "MAX_RESULTS_CEILING",
    "AggregatedResult",
    "CanonicalRecord",
    "Failure",
    "FetchOutcome",
    "QueryExpansionPlan",
    "SearchMeta",
    "SearchMode",
    "SearchRequest",
    "SortPolicy",
    "SourceGroup",
    "SourceTag",
    "Success",
    "make_record_id",
]
