"""Tests for SemanticScholarAdapter."""

from __future__ import annotations

import httpx
import pytest
from payloads import SEMANTIC_SCHOLAR_JSON, mock_http_client

from hanui_search.domain.entities.record import SearchRequest, SourceTag
from hanui_search.infrastructure.sources.semantic_scholar import SEARCH_FIELDS, SemanticScholarAdapter
from hanui_search.shared.exceptions import ParseError, RateLimitError


def make_adapter(handler, api_key: str | None = None) -> SemanticScholarAdapter:
    adapter = SemanticScholarAdapter(api_key=api_key, http_client=mock_http_client(handler))
    adapter._min_interval = 0  # skip rate limiting in tests
    adapter._MAX_RETRIES = 0
    return adapter


def recording_handler(seen: list[httpx.Request], payload=SEMANTIC_SCHOLAR_JSON):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=payload)

    return handler


# ============================================================
# Init
# ============================================================


class TestInit:
    def test_interval_depends_on_key(self):
        assert SemanticScholarAdapter()._min_interval == 0.5
        assert SemanticScholarAdapter(api_key="k")._min_interval == 0.1

    async def test_api_key_header(self):
        seen: list[httpx.Request] = []
        await make_adapter(recording_handler(seen), api_key="test_key").fetch("x", SearchRequest("x"))
        assert seen[0].headers["x-api-key"] == "test_key"

    async def test_no_key_header_without_key(self):
        seen: list[httpx.Request] = []
        await make_adapter(recording_handler(seen)).fetch("x", SearchRequest("x"))
        assert "x-api-key" not in seen[0].headers


# ============================================================
# fetch
# ============================================================


class TestFetch:
    async def test_request_params(self):
        seen: list[httpx.Request] = []
        await make_adapter(recording_handler(seen)).fetch("acupuncture 针刺", SearchRequest("x", max_results=6))

        request = seen[0]
        assert request.url.path.endswith("/paper/search")
        assert request.url.params["query"] == "acupuncture 针刺"
        assert request.url.params["limit"] == "6"
        assert request.url.params["fields"] == ",".join(SEARCH_FIELDS)
        assert "openAccessPdf" not in request.url.params

    async def test_full_text_only_filter(self):
        seen: list[httpx.Request] = []
        await make_adapter(recording_handler(seen)).fetch("x", SearchRequest("x", full_text_only=True))
        assert "openAccessPdf" in seen[0].url.params

    async def test_papers_normalized(self):
        seen: list[httpx.Request] = []
        records = await make_adapter(recording_handler(seen)).fetch("x", SearchRequest("x"))

        assert [r.id for r in records] == ["semanticscholar_a1b2c3", "semanticscholar_d4e5f6"]
        first = records[0]
        assert first.source_tag is SourceTag.SEMANTIC_SCHOLAR
        assert first.authors == "Ana Silva, Wei Zhang"
        assert first.venue == "BMJ"
        assert first.publication_date == "2022"
        assert first.abstract == "We pooled 40 trials."
        assert first.tags == frozenset({"AI-Recommended"})
        assert first.record_type == "Scholarly Article"

    async def test_sparse_paper_defaults(self):
        seen: list[httpx.Request] = []
        second = (await make_adapter(recording_handler(seen)).fetch("x", SearchRequest("x")))[1]

        assert second.title == "针刺治疗腰痛"
        assert second.authors == "Unknown Authors"
        assert second.venue == "Semantic Scholar"
        assert second.publication_date == "Unknown Date"
        assert second.abstract.startswith("[AI Search Result]")
        assert second.source_url == "https://www.semanticscholar.org/paper/d4e5f6"

    async def test_no_data_is_empty(self):
        seen: list[httpx.Request] = []
        adapter = make_adapter(recording_handler(seen, payload={"total": 0}))
        assert await adapter.fetch("x", SearchRequest("x")) == []

    async def test_non_object_body_raises(self):
        seen: list[httpx.Request] = []
        adapter = make_adapter(recording_handler(seen, payload=["unexpected"]))
        with pytest.raises(ParseError):
            await adapter.fetch("x", SearchRequest("x"))

    async def test_rate_limited(self):
        adapter = make_adapter(lambda request: httpx.Response(429, headers={"Retry-After": "2"}))
        with pytest.raises(RateLimitError) as exc_info:
            await adapter.fetch("x", SearchRequest("x"))
        assert exc_info.value.context.retry_after == 2.0

    async def test_invalid_json_raises(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ParseError):
            await adapter.fetch("x", SearchRequest("x"))
