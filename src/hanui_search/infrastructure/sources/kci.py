"""
Korea Citation Index (KCI) open API adapter.

The KCI open API returns a custom XML document:

    <MetaData>
      <outputData>
        <record>
          <journalInfo> journal-name, pub-year ... </journalInfo>
          <articleInfo article-id="ART..."> title-group, author-group,
                       abstract-group, article-categories ... </articleInfo>
        </record>
      </outputData>
    </MetaData>

An API key is mandatory; without one the adapter is not registered.
"""

from __future__ import annotations

import logging
import re

import httpx

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    SearchRequest,
    SourceTag,
    make_record_id,
)
from hanui_search.shared.exceptions import ConfigurationError
from hanui_search.shared.text import ElementNode, clean_text, first_text, flatten, parse_xml

from .adapter import SourceAdapter

KCI_API_URL = "https://open.kci.go.kr/po/openapi/openApiSearch.kci"
ARTICLE_URL = (
    "https://www.kci.go.kr/kciportal/ci/sereArticleSearch/ciSereArtiView.kci?sereArticleSearchBean.artiId={id}"
)

# Known tokenization artifacts in KCI titles and abstracts
KCI_TEXT_FIXES: dict[re.Pattern[str], str] = {
    re.compile(r"회전근\s+개"): "회전근개",
}

_PREFERRED_ABSTRACT_LANGS = ("original", "korean")


def classify_subject(subject: str) -> str:
    """Map a KCI subject line to a record type."""
    if "사례" in subject or "증례" in subject:
        return "Case Report"
    if "리뷰" in subject or "검토" in subject:
        return "Review"
    return "Journal Article"


def select_abstract(article_info: ElementNode | None) -> str:
    """Abstract text, preferring the original-language (Korean) variant."""
    group = article_info.find("abstract-group") if article_info else None
    if group is None:
        return ""
    abstracts = group.find_all("abstract")
    if not abstracts:
        return ""
    preferred = next(
        (a for a in abstracts if a.attr("lang") in _PREFERRED_ABSTRACT_LANGS),
        abstracts[0],
    )
    return flatten(preferred)


class KciAdapter(SourceAdapter):
    """Korean national literature index adapter."""

    source_tag = SourceTag.KCI
    _service_name = "KCI"

    def __init__(
        self,
        api_key: str,
        timeout: float = 15.0,
        user_agent: str = "hanui-search/1.0",
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("KCI adapter requires KCI_API_KEY")
        super().__init__(
            base_url=KCI_API_URL,
            timeout=timeout,
            min_interval=0.2,
            headers={"User-Agent": user_agent},
            http_client=http_client,
            logger=logger,
        )
        self._api_key = api_key

    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        if not query:
            return []

        params = {
            "key": self._api_key,
            "apiCode": "articleSearch",
            "keyword": query,
            "displayCount": str(request.max_results),
        }
        xml_text = await self._make_request("", params=params, expect_json=False)
        records = [self._parse_record(node) for node in self._records(xml_text)]
        self.logger.info(f"KCI: {len(records)} records for {query!r}")
        return self._dedupe(records)

    def _records(self, xml_text: str) -> list[ElementNode]:
        root = parse_xml(xml_text, source=self._service_name)
        output = root.find("outputData")
        if output is None:
            self.logger.debug("KCI: response has no outputData")
            return []
        return output.find_all("record")

    def _parse_record(self, record: ElementNode) -> CanonicalRecord:
        article_info = record.find("articleInfo")
        journal_info = record.find("journalInfo")

        native_id = (article_info.attr("article-id") if article_info else "") or first_text(
            record.find("articleId"), record.find("id")
        )
        record_id, stable = make_record_id(self.source_tag, native_id)
        if not stable:
            self._log_unstable_id(record_id)
        article_id = record_id.removeprefix(f"{self.source_tag.id_prefix}_")

        title = first_text(
            article_info.path("title-group", "article-title") if article_info else None,
            record.find("title"),
        )

        author_group = article_info.find("author-group") if article_info else None
        if author_group is not None:
            names = [first_text(a.find("name"), a) for a in author_group.find_all("author")]
            authors = ", ".join(name for name in names if name)
        else:
            authors = flatten(record.find("authorName"))

        subject = ""
        if article_info is not None:
            subject = flatten(article_info.path("article-categories", "subj-group", "subject"))

        abstract = select_abstract(article_info)

        return CanonicalRecord(
            id=record_id,
            title=clean_text(title, KCI_TEXT_FIXES) or "Untitled",
            source_tag=self.source_tag,
            authors=authors or "Unknown Authors",
            venue=first_text(
                journal_info.find("journal-name") if journal_info else None,
                record.find("journalName"),
            )
            or "Unknown Journal",
            publication_date=first_text(
                journal_info.find("pub-year") if journal_info else None,
                record.find("pubYear"),
            )
            or "Unknown Date",
            abstract=clean_text(abstract, KCI_TEXT_FIXES) or "[KCI Article] Click to view details.",
            tags=frozenset({"KCI"}),
            source_url=ARTICLE_URL.format(id=article_id),
            record_type=classify_subject(subject),
            stable_id=stable,
        )

    async def fetch_abstract(self, article_id: str) -> str | None:
        """Abstract of a single article via the ``articleDetail`` API."""
        params = {"key": self._api_key, "apiCode": "articleDetail", "id": article_id}
        xml_text = await self._make_request("", params=params, expect_json=False)
        records = self._records(xml_text)
        if not records:
            return None
        abstract = select_abstract(records[0].find("articleInfo"))
        return clean_text(abstract, KCI_TEXT_FIXES) or None
