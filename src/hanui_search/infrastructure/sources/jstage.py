"""
J-STAGE (Japanese scholarly literature) adapter.

The search API (service=3, article search) answers with an Atom feed whose
entries carry bilingual ``<en>``/``<ja>`` children for title, authors and
journal, plus ``prism:*`` bibliographic elements.

API Documentation: https://www.jstage.jst.go.jp/static/pages/JstageServices/TAB3/-char/ja
"""

from __future__ import annotations

import logging
from itertools import takewhile

import httpx

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    SearchRequest,
    SourceTag,
    make_record_id,
)
from hanui_search.shared.text import ElementNode, first_text, flatten, parse_xml

from .adapter import SourceAdapter

JSTAGE_API_URL = "https://api.jstage.jst.go.jp/searchapi/do"
JSTAGE_ARTICLE_ROOT = "https://www.jstage.jst.go.jp/article/"

# Trailing URL segments that select a view of an article rather than the article
_VIEW_PREFIXES = ("_", "-char")


def _bilingual(entry: ElementNode, tag: str, lang: str) -> str:
    return flatten(entry.path(tag, lang))


def _entry_link(entry: ElementNode) -> str:
    link = entry.find("link")
    return first_text(entry.find("id")) or (link.attr("href") if link else "") or _bilingual(
        entry, "article_link", "en"
    )


def _authors(entry: ElementNode) -> str:
    author = entry.find("author")
    if author is None:
        return ""
    holder = author.find("en") or author.find("ja") or author
    return ", ".join(name for name in (flatten(n) for n in holder.find_all("name")) if name)


def _native_id(link: str) -> str:
    """
    Journal, volume, issue and article code from an article URL.

    ``.../article/kampomed/70/2/70_101/_article/-char/ja/`` gives
    ``kampomed_70_2_70_101``. Article codes repeat across journals, so the
    whole path is kept; view segments (``_article``, ``_pdf``, ``-char/ja``)
    are dropped. Links outside ``/article/`` fall back to their last segment.
    """
    path = link.split("?", 1)[0].split("#", 1)[0]
    _, marker, tail = path.partition("/article/")
    segments = [part for part in (tail if marker else path).split("/") if part]
    kept = list(takewhile(lambda part: not part.startswith(_VIEW_PREFIXES), segments))
    if marker:
        return "_".join(kept)
    return kept[-1] if kept else ""


class JStageAdapter(SourceAdapter):
    """Japanese literature adapter; receives the Japanese expansion."""

    source_tag = SourceTag.JSTAGE
    _service_name = "J-STAGE"

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "hanui-search/1.0",
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            base_url=JSTAGE_API_URL,
            timeout=timeout,
            min_interval=0.2,
            headers={"User-Agent": user_agent},
            http_client=http_client,
            logger=logger,
        )

    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        if not query:
            return []

        params = {"service": "3", "keyword": query, "count": str(request.max_results)}
        xml_text = await self._make_request("", params=params, expect_json=False)
        feed = parse_xml(xml_text, source=self._service_name)
        records = [self._parse_entry(entry) for entry in feed.find_all("entry")]
        self.logger.info(f"J-STAGE: {len(records)} entries for {query!r}")
        return self._dedupe(records)

    def _parse_entry(self, entry: ElementNode) -> CanonicalRecord:
        title_en = first_text(entry.path("article_title", "en"), entry.find("title"))
        title_ja = _bilingual(entry, "article_title", "ja")

        link = _entry_link(entry)
        short_id = _native_id(link)
        record_id, stable = make_record_id(self.source_tag, short_id)
        if not stable:
            self._log_unstable_id(record_id)

        venue = first_text(
            entry.path("material_title", "en"),
            entry.path("material_title", "ja"),
            entry.find("publicationName"),
        )
        pub_date = first_text(entry.find("pubyear"), entry.find("publicationDate"), entry.find("updated"))

        return CanonicalRecord(
            id=record_id,
            title=title_en or title_ja or "Untitled",
            source_tag=self.source_tag,
            authors=_authors(entry) or "Unknown Authors",
            venue=venue or "J-STAGE",
            publication_date=pub_date or "Unknown Date",
            abstract=f"[JP] {title_ja or 'N/A'}\n[EN] {title_en or 'N/A'}",
            tags=frozenset({"J-STAGE"}),
            source_url=link or JSTAGE_ARTICLE_ROOT,
            record_type="Journal Article",
            stable_id=stable,
        )
