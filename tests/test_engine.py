"""End-to-end tests for FederatedSearchEngine over mocked backends."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import httpx
import pytest
from payloads import (
    CLINICAL_TRIALS_JSON,
    JSTAGE_FEED_XML,
    KCI_SEARCH_XML,
    PUBMED_EFETCH_XML,
    PUBMED_ESEARCH_JSON,
    SEMANTIC_SCHOLAR_JSON,
    mock_http_client,
)

from hanui_search.application.search import (
    FederatedSearchEngine,
    FetchOrchestrator,
    QueryExpansionPlanner,
    ResultAggregator,
)
from hanui_search.domain.entities.record import SearchRequest, SourceGroup, SourceTag
from hanui_search.infrastructure.sources import build_adapters
from hanui_search.infrastructure.sources.pubmed import DETAILS_UNAVAILABLE
from hanui_search.shared.exceptions import InvalidQueryError, NotFoundError

KAMPO_FORMULAS = {
    "KT-001": {"info": {"name": "Kakkonto", "name_jp": "葛根湯"}, "crude": [{"name": "Puerariae Radix"}], "disease": []},
    "KT-002": {"info": {"name": "Shakuyakukanzoto"}, "crude": [], "disease": [{"name": "Muscle cramp"}]},
}


class Backends:
    """Routes every request by host and records what was asked."""

    def __init__(self, efetch_status: int = 200, pubmed_text: str = "Acupuncture abstract."):
        self.efetch_status = efetch_status
        self.pubmed_text = pubmed_text
        self.requests: list[httpx.Request] = []

    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]

    def params_for(self, host: str) -> list[httpx.QueryParams]:
        return [r.url.params for r in self.requests if r.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path, params = request.url.host, request.url.path, request.url.params
        if host == "eutils.ncbi.nlm.nih.gov":
            if path.endswith("/esearch.fcgi"):
                return httpx.Response(200, json=PUBMED_ESEARCH_JSON)
            if params.get("retmode") == "text":
                return httpx.Response(200, text=self.pubmed_text)
            if self.efetch_status != 200:
                return httpx.Response(self.efetch_status)
            return httpx.Response(200, text=PUBMED_EFETCH_XML)
        if host == "open.kci.go.kr":
            return httpx.Response(200, text=KCI_SEARCH_XML)
        if host == "wakanmoview.inm.u-toyama.ac.jp":
            _, formula_id, section = path.rsplit("/", 2)
            return httpx.Response(200, json=KAMPO_FORMULAS[formula_id][section])
        if host == "api.jstage.jst.go.jp":
            return httpx.Response(200, text=JSTAGE_FEED_XML)
        if host == "api.semanticscholar.org":
            return httpx.Response(200, json=SEMANTIC_SCHOLAR_JSON)
        if host == "clinicaltrials.gov":
            return httpx.Response(200, json=CLINICAL_TRIALS_JSON)
        return httpx.Response(404)


def make_engine(settings, backends: Backends, generator=None) -> FederatedSearchEngine:
    client = mock_http_client(backends)
    adapters = build_adapters(settings, http_client=client)
    for adapter in adapters:
        adapter._min_interval = 0
        adapter._MAX_RETRIES = 0
    return FederatedSearchEngine(
        planner=QueryExpansionPlanner(generator, timeout=settings.expansion_timeout),
        orchestrator=FetchOrchestrator(adapters),
        aggregator=ResultAggregator(),
        http_client=client,
    )


@pytest.fixture
def backends() -> Backends:
    return Backends()


# ============================================================
# search
# ============================================================


class TestSearch:
    async def test_empty_query_calls_nothing(self, settings, backends, mock_generator):
        engine = make_engine(settings, backends, mock_generator)
        result = await engine.search(SearchRequest("   "))

        assert result.records == []
        assert result.meta is None
        assert result.to_dict() == {"papers": []}
        assert backends.requests == []
        mock_generator.generate.assert_not_awaited()

    async def test_english_query_without_expansion(self, settings, backends, mock_generator):
        engine = make_engine(settings, backends, mock_generator)
        result = await engine.search(SearchRequest("acupuncture", max_results=20))

        mock_generator.generate.assert_not_awaited()
        assert "wakanmoview.inm.u-toyama.ac.jp" not in backends.hosts()
        assert "clinicaltrials.gov" not in backends.hosts()
        assert result.meta.counts == {"pubmed": 3, "kci": 2, "jstage": 2, "semantic_scholar": 2}
        assert result.meta.translated_query is None
        assert result.meta.total_count == len(result.records) == 9

    async def test_korean_query_with_expansion(self, settings, backends, mock_generator):
        engine = make_engine(settings, backends, mock_generator)
        result = await engine.search(SearchRequest("요통 침 치료", max_results=20))

        mock_generator.generate.assert_awaited_once()
        assert [r.id for r in result.records[:2]] == ["kampodb_KT-001", "kampodb_KT-002"]
        assert result.meta.translated_query == "acupuncture for low back pain"
        assert result.meta.queries["kampodb"] == "KT-001,KT-002"

        esearch = backends.params_for("eutils.ncbi.nlm.nih.gov")[0]
        assert esearch["term"] == "acupuncture for low back pain"
        assert backends.params_for("open.kci.go.kr")[0]["keyword"] == "요통 침 치료"
        assert backends.params_for("api.jstage.jst.go.jp")[0]["keyword"] == "腰痛 鍼治療"
        assert backends.params_for("api.semanticscholar.org")[0]["query"] == "acupuncture for low back pain 针刺 腰痛"

    async def test_result_respects_max_results(self, settings, backends):
        engine = make_engine(settings, backends)
        result = await engine.search(SearchRequest("acupuncture", max_results=3))

        assert len(result.records) == 3
        assert backends.params_for("eutils.ncbi.nlm.nih.gov")[0]["retmax"] == "3"
        assert backends.params_for("open.kci.go.kr")[0]["displayCount"] == "3"

    async def test_pubmed_detail_failure_degrades_to_placeholders(self, settings, mock_generator):
        backends = Backends(efetch_status=404)
        engine = make_engine(settings, backends, mock_generator)
        result = await engine.search(SearchRequest("acupuncture", max_results=20))

        pubmed = [r for r in result.records if r.source_tag is SourceTag.PUBMED]
        assert len(pubmed) == 3
        assert all(r.authors == DETAILS_UNAVAILABLE for r in pubmed)
        assert result.meta.counts["pubmed"] == 3
        assert "pubmed" not in result.meta.failures

    async def test_failing_backend_contributes_nothing(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "api.semanticscholar.org":
                return httpx.Response(400)
            return Backends()(request)

        engine = make_engine(settings, handler)
        result = await engine.search(SearchRequest("acupuncture", max_results=20))

        assert result.meta.counts["semantic_scholar"] == 0
        assert "semantic_scholar" in result.meta.failures
        assert result.meta.total_count == 7

    async def test_trials_group_only_queries_registry(self, settings, backends, mock_generator):
        engine = make_engine(settings, backends, mock_generator)
        request = SearchRequest("요통 침", source_group=SourceGroup.TRIALS)
        result = await engine.search(request)

        assert set(backends.hosts()) == {"clinicaltrials.gov"}
        assert backends.params_for("clinicaltrials.gov")[0]["query.term"] == "low back pain acupuncture"
        assert list(result.meta.counts) == ["clinical_trials"]
        assert {r.source_tag for r in result.records} == {SourceTag.CLINICAL_TRIALS}

    async def test_expansion_failure_still_searches(self, settings, backends):
        generator = AsyncMock()
        generator.generate.side_effect = RuntimeError("llm down")
        engine = make_engine(settings, backends, generator)
        result = await engine.search(SearchRequest("요통"))

        assert result.meta.translated_query is None
        assert backends.params_for("eutils.ncbi.nlm.nih.gov")[0]["term"] == "요통"
        assert result.records


# ============================================================
# fetch_abstract
# ============================================================


class TestFetchAbstract:
    async def test_pubmed(self, settings, backends):
        engine = make_engine(settings, backends)
        assert await engine.fetch_abstract("pubmed_38000001") == "Acupuncture abstract."
        assert backends.params_for("eutils.ncbi.nlm.nih.gov")[0]["id"] == "38000001"

    async def test_kci(self, settings, backends):
        engine = make_engine(settings, backends)
        abstract = await engine.fetch_abstract("kci_ART002900001")
        assert abstract.startswith("회전근개 파열")

    @pytest.mark.parametrize("record_id", ["", "   ", "jstage_73_12", "kampodb_KT-001", "pubmed_", "nonsense"])
    async def test_unsupported_ids(self, settings, backends, record_id):
        engine = make_engine(settings, backends)
        with pytest.raises(InvalidQueryError):
            await engine.fetch_abstract(record_id)
        assert backends.requests == []

    async def test_empty_abstract_not_found(self, settings):
        backends = Backends(pubmed_text="  ")
        engine = make_engine(settings, backends)
        with pytest.raises(NotFoundError):
            await engine.fetch_abstract("pubmed_1")

    async def test_kci_unavailable_without_key(self, settings, backends):
        engine = make_engine(replace(settings, kci_api_key=None), backends)
        with pytest.raises(InvalidQueryError):
            await engine.fetch_abstract("kci_ART002900001")


# ============================================================
# Lifecycle
# ============================================================


class TestLifecycle:
    def test_adapters_in_registration_order(self, settings, backends):
        engine = make_engine(settings, backends)
        assert [a.source_tag for a in engine.adapters] == [
            SourceTag.KAMPODB,
            SourceTag.PUBMED,
            SourceTag.KCI,
            SourceTag.JSTAGE,
            SourceTag.SEMANTIC_SCHOLAR,
            SourceTag.CLINICAL_TRIALS,
        ]

    async def test_aclose(self, settings, backends, mock_generator):
        engine = make_engine(settings, backends, mock_generator)
        await engine.aclose()

        mock_generator.close.assert_awaited_once()
        assert engine._http_client.is_closed
