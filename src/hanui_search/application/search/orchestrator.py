"""
FetchOrchestrator - concurrent fan-out over source adapters

Every enabled adapter runs in one ``asyncio.TaskGroup``, each inside its own
``asyncio.timeout(adapter.budget)``. A failing or slow adapter becomes a
``Failure`` outcome and never aborts its siblings; cancellation of the caller
propagates into every in-flight adapter task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from hanui_search.domain.entities.record import (
    FetchOutcome,
    Failure,
    QueryExpansionPlan,
    SearchRequest,
    SourceTag,
    Success,
)
from hanui_search.infrastructure.sources import SourceAdapter
from hanui_search.shared.exceptions import AdapterTransportError, HanuiSearchError

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """Runs the enabled adapters for a request and collects their outcomes."""

    def __init__(self, adapters: Sequence[SourceAdapter]) -> None:
        self._adapters = list(adapters)

    @property
    def adapters(self) -> list[SourceAdapter]:
        return list(self._adapters)

    def enabled_adapters(self, request: SearchRequest, plan: QueryExpansionPlan) -> list[SourceAdapter]:
        return [a for a in self._adapters if a.is_enabled(request, plan)]

    async def run(self, request: SearchRequest, plan: QueryExpansionPlan) -> dict[SourceTag, FetchOutcome]:
        """
        Fetch from every enabled adapter concurrently.

        Returns:
            Outcome per adapter, in registration order
        """
        adapters = self.enabled_adapters(request, plan)
        if not adapters:
            return {}

        async with asyncio.TaskGroup() as tg:
            tasks = {
                adapter.source_tag: tg.create_task(self._run_one(adapter, plan.query_for(adapter.source_tag), request))
                for adapter in adapters
            }

        outcomes = {tag: task.result() for tag, task in tasks.items()}
        failed = [tag.label for tag, outcome in outcomes.items() if not outcome.ok]
        logger.info(
            f"Fetched from {len(outcomes)} sources "
            f"({len(outcomes) - len(failed)} ok{', failed: ' + ', '.join(failed) if failed else ''})"
        )
        return outcomes

    async def _run_one(self, adapter: SourceAdapter, query: str, request: SearchRequest) -> FetchOutcome:
        source = adapter.source_tag
        try:
            async with asyncio.timeout(adapter.budget):
                records = await adapter.fetch(query, request)
        except TimeoutError as e:
            error = AdapterTransportError(source.label, f"timed out after {adapter.budget:g}s")
            error.__cause__ = e
            logger.warning(f"{source.label} failed: {error.reason}")
            return Failure(source=source, reason=error.reason, error=error)
        except AdapterTransportError as e:
            logger.warning(f"{source.label} failed: {e.reason}")
            return Failure(source=source, reason=e.reason, error=e)
        except HanuiSearchError as e:
            logger.warning(f"{source.label} failed: {e}")
            return Failure(source=source, reason=str(e), error=e)
        except Exception as e:
            logger.exception(f"{source.label} raised an unexpected error")
            return Failure(source=source, reason=f"unexpected error: {e!r}", error=e)

        logger.debug(f"{source.label}: {len(records)} records")
        return Success(source=source, records=tuple(records))
