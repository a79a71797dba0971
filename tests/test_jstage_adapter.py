"""Tests for JStageAdapter."""

from __future__ import annotations

import httpx
import pytest
from payloads import JSTAGE_FEED_XML, mock_http_client

from hanui_search.domain.entities.record import SearchRequest, SourceTag
from hanui_search.infrastructure.sources.jstage import JStageAdapter, _native_id
from hanui_search.shared.exceptions import ParseError, ServiceUnavailableError


def make_adapter(handler) -> JStageAdapter:
    adapter = JStageAdapter(http_client=mock_http_client(handler))
    adapter._min_interval = 0
    adapter._MAX_RETRIES = 0
    return adapter


@pytest.fixture
async def records():
    adapter = make_adapter(lambda request: httpx.Response(200, text=JSTAGE_FEED_XML))
    return await adapter.fetch("鍼 腰痛", SearchRequest("침 요통"))


# ============================================================
# fetch
# ============================================================


class TestFetch:
    async def test_request_params(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=JSTAGE_FEED_XML)

        await make_adapter(handler).fetch("鍼 腰痛", SearchRequest("침 요통", max_results=4))

        params = seen[0].url.params
        assert params["service"] == "3"
        assert params["keyword"] == "鍼 腰痛"
        assert params["count"] == "4"

    async def test_bilingual_entry(self, records):
        record = records[0]
        assert record.id == "jstage_jjsam_73_1_73_12"
        assert record.source_tag is SourceTag.JSTAGE
        assert record.title == "Effect of acupuncture on chronic low back pain"
        assert record.authors == "Taro Yamada, Hanako Suzuki"
        assert record.venue == "Journal of the Japan Society of Acupuncture"
        assert record.publication_date == "2023"
        assert record.abstract == "[JP] 慢性腰痛に対する鍼治療の効果\n[EN] Effect of acupuncture on chronic low back pain"
        assert record.source_url == "https://www.jstage.jst.go.jp/article/jjsam/73/1/73_12/_article/"
        assert record.record_type == "Journal Article"

    async def test_japanese_only_entry(self, records):
        record = records[1]
        assert record.id == "jstage_kampomed_70_2_70_101"
        assert record.title == "漢方薬の使用実態"
        assert record.authors == "Unknown Authors"
        assert record.venue == "日本東洋医学雑誌"
        assert record.publication_date == "2019-06"
        assert record.abstract == "[JP] 漢方薬の使用実態\n[EN] N/A"

    async def test_entry_without_link_gets_unstable_id(self):
        feed = '<feed xmlns="http://www.w3.org/2005/Atom"><entry><title>Untitled entry</title></entry></feed>'
        adapter = make_adapter(lambda request: httpx.Response(200, text=feed))
        record = (await adapter.fetch("x", SearchRequest("x")))[0]

        assert record.stable_id is False
        assert record.id.startswith("jstage_")
        assert record.venue == "J-STAGE"
        assert record.source_url == "https://www.jstage.jst.go.jp/article/"

    async def test_empty_feed(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="<feed/>"))
        assert await adapter.fetch("x", SearchRequest("x")) == []

    async def test_malformed_feed_raises(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="<feed><entry>"))
        with pytest.raises(ParseError):
            await adapter.fetch("x", SearchRequest("x"))

    async def test_server_error_raises(self):
        adapter = make_adapter(lambda request: httpx.Response(503))
        with pytest.raises(ServiceUnavailableError):
            await adapter.fetch("x", SearchRequest("x"))

    async def test_shared_article_codes_kept_apart(self):
        entries = "".join(
            f"<entry><title>{title}</title><link href=\"{link}\"/></entry>"
            for title, link in [
                ("Paper A", "https://www.jstage.jst.go.jp/article/jjsam/73/1/73_12/_article/-char/ja/"),
                ("Paper B", "https://www.jstage.jst.go.jp/article/kampomed/70/2/70_101/_article/-char/ja/"),
                ("Paper C", "https://www.jstage.jst.go.jp/article/kampomed/73/1/73_12/_article"),
            ]
        )
        feed = f'<feed xmlns="http://www.w3.org/2005/Atom">{entries}</feed>'
        adapter = make_adapter(lambda request: httpx.Response(200, text=feed))
        records = await adapter.fetch("鍼", SearchRequest("침"))

        assert [(r.id, r.title) for r in records] == [
            ("jstage_jjsam_73_1_73_12", "Paper A"),
            ("jstage_kampomed_70_2_70_101", "Paper B"),
            ("jstage_kampomed_73_1_73_12", "Paper C"),
        ]

    async def test_repeated_entry_dropped(self):
        entry = '<entry><title>Same</title><id>https://www.jstage.jst.go.jp/article/jjsam/73/1/73_12/_pdf</id></entry>'
        feed = f'<feed xmlns="http://www.w3.org/2005/Atom">{entry}{entry}</feed>'
        adapter = make_adapter(lambda request: httpx.Response(200, text=feed))
        assert len(await adapter.fetch("鍼", SearchRequest("침"))) == 1


# ============================================================
# Native ids
# ============================================================


class TestNativeId:
    @pytest.mark.parametrize(
        ("link", "expected"),
        [
            ("https://www.jstage.jst.go.jp/article/jjsam/73/1/73_12/_article/-char/ja/", "jjsam_73_1_73_12"),
            ("https://www.jstage.jst.go.jp/article/jjsam/73/1/73_12/_pdf", "jjsam_73_1_73_12"),
            ("https://www.jstage.jst.go.jp/article/kampomed/70/2/70_101", "kampomed_70_2_70_101"),
            ("https://www.jstage.jst.go.jp/article/kampomed/70/2/70_101/-char/en?from=search", "kampomed_70_2_70_101"),
            ("https://example.org/record/abc123/", "abc123"),
            ("", ""),
        ],
    )
    def test_native_id(self, link, expected):
        assert _native_id(link) == expected
