"""
Source adapter abstraction.

Each adapter owns one backend's wire protocol: it translates the query into
the backend's request syntax, fetches, and normalizes the response into
CanonicalRecord objects. Nothing outside the adapter assumes a wire shape.

Contract for ``fetch``:
    - returns ``[]`` when the backend has no results (not a failure)
    - raises on transport/HTTP/parse failure; the orchestrator turns that
      into a Failure outcome
    - may return placeholder records when a backend only partially answered
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import ClassVar

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    QueryExpansionPlan,
    SearchRequest,
    SourceGroup,
    SourceTag,
)

from .base_client import BaseAPIClient


class SourceAdapter(BaseAPIClient, ABC):
    """Uniform capability over every backend: ``fetch(query, request) -> records``."""

    source_tag: ClassVar[SourceTag]
    source_group: ClassVar[SourceGroup] = SourceGroup.PAPERS

    @property
    def budget(self) -> float:
        """Total seconds the orchestrator allows this adapter."""
        return self._timeout

    def is_enabled(self, request: SearchRequest, plan: QueryExpansionPlan) -> bool:
        """Whether this adapter takes part in the given request."""
        return request.source_group is self.source_group

    @abstractmethod
    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        """Fetch, parse and normalize records for ``query``."""

    def _dedupe(self, records: Iterable[CanonicalRecord]) -> list[CanonicalRecord]:
        """Drop repeated native ids within this backend's own response, keeping the first."""
        seen: set[str] = set()
        unique: list[CanonicalRecord] = []
        for record in records:
            if record.id in seen:
                self.logger.debug(f"{self._service_name}: duplicate id {record.id} dropped")
                continue
            seen.add(record.id)
            unique.append(record)
        return unique

    def _log_unstable_id(self, record_id: str) -> None:
        self.logger.warning(
            f"{self._service_name}: native id missing, generated unstable id {record_id}"
        )
