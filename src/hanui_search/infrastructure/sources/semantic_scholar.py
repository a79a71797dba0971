"""
Semantic Scholar Integration

Cross-domain citation-graph search via the Semantic Scholar Graph API.
Receives the English expansion, concatenated with the Chinese one when the
two differ.

API Documentation: https://api.semanticscholar.org/api-docs/
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    SearchRequest,
    SourceTag,
    make_record_id,
)
from hanui_search.shared.exceptions import ParseError

from .adapter import SourceAdapter

S2_API_BASE = "https://api.semanticscholar.org/graph/v1"
S2_PAPER_PAGE = "https://www.semanticscholar.org/paper/{id}"

# Requested explicitly; the search endpoint returns only paperId and title otherwise
SEARCH_FIELDS = ("title", "url", "abstract", "venue", "year", "authors", "citationCount")


class SemanticScholarAdapter(SourceAdapter):
    """Semantic Scholar paper search adapter."""

    source_tag = SourceTag.SEMANTIC_SCHOLAR
    _service_name = "Semantic Scholar"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 15.0,
        user_agent: str = "hanui-search/1.0",
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Args:
            api_key: Optional S2 API key (raises the shared rate limit)
        """
        headers = {"Accept": "application/json", "User-Agent": user_agent}
        if api_key:
            headers["x-api-key"] = api_key
        super().__init__(
            base_url=S2_API_BASE,
            timeout=timeout,
            min_interval=0.1 if api_key else 0.5,
            headers=headers,
            http_client=http_client,
            logger=logger,
        )

    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        if not query:
            return []

        params: dict[str, Any] = {
            "query": query,
            "limit": str(request.max_results),
            "fields": ",".join(SEARCH_FIELDS),
        }
        if request.full_text_only:
            params["openAccessPdf"] = ""

        data = await self._make_request("/paper/search", params=params)
        if not isinstance(data, dict):
            raise ParseError("Search response is not an object", source=self._service_name)

        papers = data.get("data") or []
        records = [self._normalize_paper(p) for p in papers if isinstance(p, dict)]
        self.logger.info(f"Semantic Scholar: {len(records)} papers for {query!r}")
        return self._dedupe(records)

    def _normalize_paper(self, paper: dict[str, Any]) -> CanonicalRecord:
        paper_id = str(paper.get("paperId") or "")
        record_id, stable = make_record_id(self.source_tag, paper_id)
        if not stable:
            self._log_unstable_id(record_id)

        authors = ", ".join(
            str(a.get("name", "")).strip() for a in paper.get("authors") or [] if a.get("name")
        )
        year = paper.get("year")

        return CanonicalRecord(
            id=record_id,
            title=(paper.get("title") or "").strip() or "Untitled",
            source_tag=self.source_tag,
            authors=authors or "Unknown Authors",
            venue=(paper.get("venue") or "").strip() or "Semantic Scholar",
            publication_date=str(year) if year else "Unknown Date",
            abstract=(paper.get("abstract") or "").strip()
            or "[AI Search Result] Abstract not available in search snippet.",
            tags=frozenset({"AI-Recommended"}),
            source_url=paper.get("url") or S2_PAPER_PAGE.format(id=paper_id),
            record_type="Scholarly Article",
            stable_id=stable,
        )
