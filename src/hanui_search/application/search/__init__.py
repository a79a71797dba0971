"""Search use cases: plan → fetch → aggregate."""

from .engine import FederatedSearchEngine
from .orchestrator import FetchOrchestrator
from .query_planner import QueryExpansionPlanner, needs_expansion
from .result_aggregator import ResultAggregator, parse_publication_date

__all__ = [
    "FederatedSearchEngine",
    "FetchOrchestrator",
    "QueryExpansionPlanner",
    "ResultAggregator",
    "needs_expansion",
    "parse_publication_date",
]
