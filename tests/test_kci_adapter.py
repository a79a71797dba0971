"""Tests for KciAdapter."""

from __future__ import annotations

import httpx
import pytest
from payloads import KCI_SEARCH_XML, mock_http_client

from hanui_search.domain.entities.record import SearchRequest, SourceTag
from hanui_search.infrastructure.sources.kci import KciAdapter, classify_subject, select_abstract
from hanui_search.shared.exceptions import ConfigurationError, ParseError
from hanui_search.shared.text import parse_xml


def make_adapter(handler) -> KciAdapter:
    adapter = KciAdapter(api_key="test-kci-key", http_client=mock_http_client(handler))
    adapter._min_interval = 0
    adapter._MAX_RETRIES = 0
    return adapter


# ============================================================
# Helpers
# ============================================================


class TestClassifySubject:
    @pytest.mark.parametrize(
        ("subject", "expected"),
        [
            ("증례보고", "Case Report"),
            ("임상 사례 연구", "Case Report"),
            ("문헌 검토", "Review"),
            ("체계적 리뷰", "Review"),
            ("원저", "Journal Article"),
            ("", "Journal Article"),
        ],
    )
    def test_mapping(self, subject, expected):
        assert classify_subject(subject) == expected


class TestSelectAbstract:
    def test_prefers_original_language(self):
        info = parse_xml(
            "<articleInfo><abstract-group>"
            '<abstract lang="english">English</abstract>'
            '<abstract lang="korean">한국어</abstract>'
            "</abstract-group></articleInfo>"
        )
        assert select_abstract(info) == "한국어"

    def test_falls_back_to_first(self):
        info = parse_xml(
            '<articleInfo><abstract-group><abstract lang="english">Only</abstract></abstract-group></articleInfo>'
        )
        assert select_abstract(info) == "Only"

    def test_missing_group(self):
        assert select_abstract(parse_xml("<articleInfo/>")) == ""
        assert select_abstract(None) == ""


# ============================================================
# Init
# ============================================================


class TestInit:
    def test_requires_key(self):
        with pytest.raises(ConfigurationError):
            KciAdapter(api_key="")


# ============================================================
# fetch
# ============================================================


class TestFetch:
    async def test_request_params(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=KCI_SEARCH_XML)

        adapter = make_adapter(handler)
        await adapter.fetch("회전근개 침", SearchRequest("회전근개 침", max_results=7))

        params = seen[0].url.params
        assert params["key"] == "test-kci-key"
        assert params["apiCode"] == "articleSearch"
        assert params["keyword"] == "회전근개 침"
        assert params["displayCount"] == "7"

    async def test_records_normalized(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text=KCI_SEARCH_XML))
        records = await adapter.fetch("침", SearchRequest("침"))

        assert [r.id for r in records] == ["kci_ART002900001", "kci_ART002700002"]
        first = records[0]
        assert first.source_tag is SourceTag.KCI
        assert first.title == "회전근개 파열 환자의 침 치료 증례"
        assert first.authors == "김철수, 이영희"
        assert first.venue == "대한한의학회지"
        assert first.publication_date == "2023"
        assert first.abstract == "회전근개 파열에 대한 침 치료 효과를 보고한다."
        assert first.record_type == "Case Report"
        assert first.source_url.endswith("artiId=ART002900001")
        assert first.tags == frozenset({"KCI"})

    async def test_defaults_for_sparse_record(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text=KCI_SEARCH_XML))
        second = (await adapter.fetch("침", SearchRequest("침")))[1]

        assert second.authors == "Unknown Authors"
        assert second.abstract == "[KCI Article] Click to view details."
        assert second.record_type == "Review"
        assert second.publication_date == "2021"

    async def test_no_output_data_is_empty(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="<MetaData><inputData/></MetaData>"))
        assert await adapter.fetch("침", SearchRequest("침")) == []

    async def test_record_without_id_gets_unstable_id(self):
        xml = "<MetaData><outputData><record><title>무제</title></record></outputData></MetaData>"
        adapter = make_adapter(lambda request: httpx.Response(200, text=xml))
        record = (await adapter.fetch("침", SearchRequest("침")))[0]

        assert record.id.startswith("kci_")
        assert record.stable_id is False
        assert record.title == "무제"

    async def test_malformed_xml_raises(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="<MetaData><outputData>"))
        with pytest.raises(ParseError):
            await adapter.fetch("침", SearchRequest("침"))

    async def test_empty_query(self):
        adapter = make_adapter(lambda request: httpx.Response(500))
        assert await adapter.fetch("", SearchRequest("x")) == []


# ============================================================
# fetch_abstract
# ============================================================


class TestFetchAbstract:
    async def test_article_detail(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=KCI_SEARCH_XML)

        adapter = make_adapter(handler)
        abstract = await adapter.fetch_abstract("ART002900001")

        assert abstract == "회전근개 파열에 대한 침 치료 효과를 보고한다."
        assert seen[0].url.params["apiCode"] == "articleDetail"
        assert seen[0].url.params["id"] == "ART002900001"

    async def test_missing_record(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="<MetaData><outputData/></MetaData>"))
        assert await adapter.fetch_abstract("ART000") is None
