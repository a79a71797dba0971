"""
FederatedSearchEngine - the single entry point for a search request

    SearchRequest
        │  empty query → AggregatedResult.empty(), no backend called
        ▼
    QueryExpansionPlanner.plan()      (once per request)
        ▼
    FetchOrchestrator.run()           (concurrent, per-adapter timeouts)
        ▼
    ResultAggregator.aggregate()      (merge, order, pin, truncate, meta)
"""

from __future__ import annotations

import logging

import httpx

from hanui_search.domain.entities.record import AggregatedResult, SearchRequest
from hanui_search.infrastructure.sources import KciAdapter, PubMedAdapter, SourceAdapter
from hanui_search.shared.exceptions import InvalidQueryError, NotFoundError

from .orchestrator import FetchOrchestrator
from .query_planner import QueryExpansionPlanner
from .result_aggregator import ResultAggregator

logger = logging.getLogger(__name__)


class FederatedSearchEngine:
    """Ties planner, orchestrator and aggregator together."""

    def __init__(
        self,
        planner: QueryExpansionPlanner,
        orchestrator: FetchOrchestrator,
        aggregator: ResultAggregator | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._planner = planner
        self._orchestrator = orchestrator
        self._aggregator = aggregator or ResultAggregator()
        self._http_client = http_client

    async def search(self, request: SearchRequest) -> AggregatedResult:
        """
        Run one federated search.

        Raises:
            AggregationError: Merging the outcomes failed (the only fatal error)
        """
        if request.is_empty:
            logger.debug("Empty query, skipping all sources")
            return AggregatedResult.empty()

        plan = await self._planner.plan(request.raw_query, request.category, request.mode)
        outcomes = await self._orchestrator.run(request, plan)
        return self._aggregator.aggregate(request, plan, outcomes)

    async def fetch_abstract(self, record_id: str) -> str:
        """
        Full abstract for a PubMed or KCI record id.

        Raises:
            InvalidQueryError: Id is empty or belongs to a source without abstract lookup
            NotFoundError: The source has no abstract for the id
        """
        record_id = (record_id or "").strip()
        if not record_id:
            raise InvalidQueryError(record_id, "Record id is required")

        prefix, _, native_id = record_id.partition("_")
        adapter = self._abstract_source(prefix)
        if adapter is None or not native_id:
            raise InvalidQueryError(record_id, "Abstract lookup supports only PubMed and KCI records")

        abstract = await adapter.fetch_abstract(native_id)
        if not abstract:
            raise NotFoundError("Abstract", record_id)
        return abstract

    def _abstract_source(self, prefix: str) -> PubMedAdapter | KciAdapter | None:
        for adapter in self._orchestrator.adapters:
            if isinstance(adapter, PubMedAdapter | KciAdapter) and adapter.source_tag.id_prefix == prefix:
                return adapter
        return None

    @property
    def adapters(self) -> list[SourceAdapter]:
        return self._orchestrator.adapters

    async def aclose(self) -> None:
        """Close the generator, every adapter's HTTP client and the shared one, if any."""
        await self._planner.aclose()
        for adapter in self._orchestrator.adapters:
            await adapter.close()
        if self._http_client is not None:
            await self._http_client.aclose()
