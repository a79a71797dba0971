"""
PubMed (NCBI E-utilities) adapter - two-phase search.

Phase 1: ESearch (JSON) resolves the query to a capped PMID list, honoring
sort, publication-date range and mode/full-text filters.
Phase 2: one batch EFetch (XML) for every resolved PMID.

If phase 2 fails after phase 1 resolved identifiers, the adapter degrades to
one placeholder record per PMID instead of failing, so the count and links
of the results survive a partial outage.

API Documentation: https://www.ncbi.nlm.nih.gov/books/NBK25499/
"""

from __future__ import annotations

import asyncio
import logging
import re

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    SearchMode,
    SearchRequest,
    SortPolicy,
    SourceTag,
    make_record_id,
)
from hanui_search.shared.exceptions import (
    HanuiSearchError,
    ParseError,
    ServiceUnavailableError,
)
from hanui_search.shared.text import ElementNode, first_text, flatten, parse_xml

from .adapter import SourceAdapter

EUTILS_BASE = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"

# Publication-type clauses ANDed into the ESearch term per search mode
MODE_FILTERS: dict[SearchMode, str] = {
    SearchMode.EVIDENCE: '("meta-analysis"[pt] OR "systematic review"[pt])',
    SearchMode.CLINICAL: (
        '("case reports"[pt] OR "clinical trial"[pt] OR "meta-analysis"[pt] OR "systematic review"[pt])'
    ),
}
FULL_TEXT_FILTER = '("free full text"[sb] OR "open access"[filter])'

# First match wins when an article carries several publication types
PRIORITY_TYPES = ("Meta-Analysis", "Systematic Review", "Clinical Trial", "Case Reports", "Review")

DETAILS_UNAVAILABLE = "Details unavailable"

# Some abstracts carry runs of stray "P" tokens from upstream conversion
_P_ARTIFACT = re.compile(r"\bP(?:\s+P){2,}\b")


def build_term(query: str, request: SearchRequest) -> str:
    """Combine the query with the mode and full-text filter clauses."""
    parts = [query]
    mode_filter = MODE_FILTERS.get(request.mode)
    if mode_filter:
        parts.append(mode_filter)
    if request.full_text_only:
        parts.append(FULL_TEXT_FILTER)
    return " AND ".join(parts)


class PubMedAdapter(SourceAdapter):
    """Global biomedical index adapter."""

    source_tag = SourceTag.PUBMED
    _service_name = "PubMed"

    def __init__(
        self,
        email: str = "hanui-search@example.com",
        api_key: str | None = None,
        timeout: float = 15.0,
        batch_timeout: float = 30.0,
        user_agent: str = "hanui-search/1.0",
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            base_url=EUTILS_BASE,
            timeout=timeout,
            # NCBI: 3 req/s without a key, 10 req/s with one
            min_interval=0.1 if api_key else 0.34,
            headers={"User-Agent": user_agent},
            http_client=http_client,
            logger=logger,
        )
        self._email = email
        self._api_key = api_key
        self._batch_timeout = batch_timeout

    @property
    def budget(self) -> float:
        # Phase 1 and phase 2 are bounded separately; phase 2 must be able to
        # time out and degrade before the orchestrator gives up on the adapter.
        return self._timeout + self._batch_timeout + 1.0

    def _common_params(self) -> dict[str, str]:
        params = {"db": "pubmed", "tool": "hanui-search", "email": self._email}
        if self._api_key:
            params["api_key"] = self._api_key
        return params

    # =========================================================================
    # Phase 1: ESearch
    # =========================================================================

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, max=2),
        retry=retry_if_exception_type(ServiceUnavailableError),
        reraise=True,
    )
    async def search_ids(self, term: str, request: SearchRequest) -> list[str]:
        """Resolve a search term to at most ``request.max_results`` PMIDs."""
        params = {
            **self._common_params(),
            "term": term,
            "retmode": "json",
            "retmax": str(request.max_results),
        }
        if request.sort is SortPolicy.DATE:
            params["sort"] = "pub_date"
        if request.min_date:
            params["mindate"] = request.min_date
            params["datetype"] = "pdat"
        if request.max_date:
            params["maxdate"] = request.max_date
            params["datetype"] = "pdat"

        data = await self._make_request("/esearch.fcgi", params=params)
        if not isinstance(data, dict) or not isinstance(data.get("esearchresult"), dict):
            raise ParseError("ESearch response missing esearchresult", source=self._service_name)

        result = data["esearchresult"]
        if result.get("ERROR"):
            # NCBI reports transient backend failures inside a 200 body
            raise ServiceUnavailableError(str(result["ERROR"]), service=self._service_name)

        ids: list[str] = []
        for raw_id in result.get("idlist") or []:
            pmid = str(raw_id).strip()
            if pmid and pmid not in ids:
                ids.append(pmid)
        return ids[: request.max_results]

    # =========================================================================
    # Phase 2: batch EFetch
    # =========================================================================

    async def fetch_details(self, ids: list[str]) -> list[CanonicalRecord]:
        """Fetch and parse full records for every PMID in one request."""
        params = {
            **self._common_params(),
            "id": ",".join(ids),
            "rettype": "abstract",
            "retmode": "xml",
        }
        xml_text = await self._make_request(
            "/efetch.fcgi",
            params=params,
            expect_json=False,
            timeout=self._batch_timeout,
        )
        return self.parse_articles(xml_text)

    def parse_articles(self, xml_text: str) -> list[CanonicalRecord]:
        root = parse_xml(xml_text, source=self._service_name)
        return [self._parse_article(node) for node in root.find_all("PubmedArticle")]

    def _parse_article(self, node: ElementNode) -> CanonicalRecord:
        citation = node.find("MedlineCitation")
        pmid = flatten(citation.find("PMID")) if citation else ""
        record_id, stable = make_record_id(self.source_tag, pmid)
        if not stable:
            self._log_unstable_id(record_id)

        article = citation.find("Article") if citation else None
        if article is None:
            self.logger.warning(f"PubMed: unexpected article structure for PMID {pmid or '?'}")
            return CanonicalRecord(
                id=record_id,
                title=f"[PubMed] Details could not be parsed (ID: {pmid or 'unknown'})",
                source_tag=self.source_tag,
                authors="N/A",
                venue="PubMed",
                publication_date="Unknown",
                abstract="The record structure differed from the expected PubMed schema.",
                tags=frozenset({"PubMed"}),
                source_url=ARTICLE_URL.format(pmid=pmid),
                stable_id=stable,
            )

        authors = []
        author_list = article.find("AuthorList")
        for author in author_list.find_all("Author") if author_list else []:
            name = " ".join(
                part for part in (flatten(author.find("LastName")), flatten(author.find("Initials"))) if part
            ) or flatten(author.find("CollectiveName"))
            if name:
                authors.append(name)

        pub_date = article.path("Journal", "JournalIssue", "PubDate")
        date_str = ""
        if pub_date is not None:
            date_str = " ".join(
                part for part in (flatten(pub_date.find("Year")), flatten(pub_date.find("Month"))) if part
            ) or flatten(pub_date.find("MedlineDate"))

        abstract = ""
        abstract_node = article.find("Abstract")
        if abstract_node is not None:
            abstract = " ".join(flatten(part) for part in abstract_node.find_all("AbstractText"))
            abstract = _P_ARTIFACT.sub(" ", abstract)
            abstract = " ".join(abstract.split())

        return CanonicalRecord(
            id=record_id,
            title=flatten(article.find("ArticleTitle")) or "Untitled",
            source_tag=self.source_tag,
            authors=", ".join(authors) or "Unknown Authors",
            venue=first_text(article.path("Journal", "Title")) or "Unknown Journal",
            publication_date=date_str or "Unknown Date",
            abstract=abstract or "No abstract available.",
            tags=frozenset({"PubMed"}),
            source_url=ARTICLE_URL.format(pmid=pmid),
            record_type=self._publication_type(article),
            stable_id=stable,
        )

    @staticmethod
    def _publication_type(article: ElementNode) -> str:
        type_list = article.find("PublicationTypeList")
        types = [flatten(pt) for pt in type_list.find_all("PublicationType")] if type_list else []
        for preferred in PRIORITY_TYPES:
            if preferred in types:
                return preferred
        return types[0] if types else "Journal Article"

    def placeholders(self, ids: list[str]) -> list[CanonicalRecord]:
        """One degraded record per resolved PMID."""
        return [
            CanonicalRecord(
                id=f"{self.source_tag.id_prefix}_{pmid}",
                title=f"PubMed Article (ID: {pmid})",
                source_tag=self.source_tag,
                authors=DETAILS_UNAVAILABLE,
                venue="PubMed",
                publication_date="Unknown",
                abstract=f"[PubMed ID: {pmid}] {DETAILS_UNAVAILABLE}: failed to load article details.",
                tags=frozenset({"PubMed"}),
                source_url=ARTICLE_URL.format(pmid=pmid),
            )
            for pmid in ids
        ]

    # =========================================================================
    # Adapter entry point
    # =========================================================================

    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        if not query:
            return []

        term = build_term(query, request)
        async with asyncio.timeout(self._timeout):
            ids = await self.search_ids(term, request)
        self.logger.info(f"PubMed: {len(ids)} ids for term {term!r}")
        if not ids:
            return []

        try:
            async with asyncio.timeout(self._batch_timeout):
                records = await self.fetch_details(ids)
            if not records:
                raise ParseError("EFetch returned no articles", source=self._service_name)
        except (HanuiSearchError, TimeoutError) as e:
            self.logger.warning(
                f"PubMed: detail fetch failed after resolving {len(ids)} ids, "
                f"returning placeholders (AdapterPartialDegradation): {e!r}"
            )
            return self.placeholders(ids)

        return self._dedupe(records)

    async def fetch_abstract(self, pmid: str) -> str | None:
        """Plain-text abstract for a single PMID."""
        params = {**self._common_params(), "id": pmid, "rettype": "abstract", "retmode": "text"}
        text = await self._make_request("/efetch.fcgi", params=params, expect_json=False)
        return str(text).strip() or None
