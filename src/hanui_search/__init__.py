"""
Hanui Search - federated biomedical literature search and normalization

Searches PubMed, KCI, KampoDB, J-STAGE, Semantic Scholar and
ClinicalTrials.gov concurrently, normalizes every response into one canonical
record shape and merges the results into a single ranked list.

Usage:
    from hanui_search import ApplicationContainer, SearchRequest, Settings

    container = ApplicationContainer()
    container.config.from_dict(Settings.from_env().as_dict())
    engine = container.engine()

    result = await engine.search(SearchRequest("침 치료 요통", max_results=5))
    for record in result.records:
        print(f"{record.id}: {record.title} ({record.source_tag.label})")
    await engine.aclose()
"""

from .config import Settings
from .container import ApplicationContainer
from .domain.entities.record import (
    AggregatedResult,
    CanonicalRecord,
    QueryExpansionPlan,
    SearchMode,
    SearchRequest,
    SortPolicy,
    SourceGroup,
    SourceTag,
)

__version__ = "1.0.0"

__all__ = [
    "AggregatedResult",
    "ApplicationContainer",
    "CanonicalRecord",
    "QueryExpansionPlan",
    "SearchMode",
    "SearchRequest",
    "Settings",
    "SortPolicy",
    "SourceGroup",
    "SourceTag",
]
