"""
Domain Layer - Core Business Types

Contains:
- entities: CanonicalRecord, SearchRequest, QueryExpansionPlan, outcomes, results
"""

from .entities import (
    AggregatedResult,
    CanonicalRecord,
    Failure,
    FetchOutcome,
    QueryExpansionPlan,
    SearchMeta,
    SearchRequest,
    SourceTag,
    Success,
)

__all__ = [
    "AggregatedResult",
    "CanonicalRecord",
    "Failure",
    "FetchOutcome",
    "QueryExpansionPlan",
    "SearchMeta",
    "SearchRequest",
    "SourceTag",
    "Success",
]
