"""
Canonical Record Model for Federated Search

Every backend response is normalized into a CanonicalRecord. The request,
expansion plan, per-backend outcome and final aggregated result are defined
alongside it so that every layer shares one vocabulary.

Architecture Decision:
    Plain dataclasses, frozen where the value must not change after
    construction (records and plans are built once per request inside an
    adapter or the planner and then only read).

Example:
    >>> record = CanonicalRecord(
    ...     id="pubmed_12345678",
    ...     title="Acupuncture for chronic pain",
    ...     source_tag=SourceTag.PUBMED,
    ... )
    >>> record.to_dict()["source"]
    'PubMed'
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from hanui_search.shared.exceptions import InvalidParameterError

# Fan-out cost bound: no request may ask a backend for more than this
MAX_RESULTS_CEILING = 20
DEFAULT_MAX_RESULTS = 10


class SourceTag(Enum):
    """One value per backend."""

    PUBMED = "pubmed"
    KCI = "kci"
    KAMPODB = "kampodb"
    JSTAGE = "jstage"
    SEMANTIC_SCHOLAR = "semantic_scholar"
    CLINICAL_TRIALS = "clinical_trials"

    @property
    def label(self) -> str:
        """Display name used by the presentation layer."""
        return _SOURCE_LABELS[self]

    @property
    def id_prefix(self) -> str:
        """Prefix of every record id produced by this backend."""
        return _ID_PREFIXES[self]


_SOURCE_LABELS = {
    SourceTag.PUBMED: "PubMed",
    SourceTag.KCI: "KCI",
    SourceTag.KAMPODB: "KampoDB",
    SourceTag.JSTAGE: "J-STAGE",
    SourceTag.SEMANTIC_SCHOLAR: "Semantic Scholar",
    SourceTag.CLINICAL_TRIALS: "ClinicalTrials.gov",
}

_ID_PREFIXES = {
    SourceTag.PUBMED: "pubmed",
    SourceTag.KCI: "kci",
    SourceTag.KAMPODB: "kampodb",
    SourceTag.JSTAGE: "jstage",
    SourceTag.SEMANTIC_SCHOLAR: "semanticscholar",
    SourceTag.CLINICAL_TRIALS: "nct",
}


class SortPolicy(Enum):
    DATE = "date"
    RELEVANCE = "relevance"


class SearchMode(Enum):
    GENERAL = "general"
    CLINICAL = "clinical"
    EVIDENCE = "evidence"
    LATEST = "latest"
    SAVED = "saved"


class SourceGroup(Enum):
    PAPERS = "papers"
    TRIALS = "trials"


E = TypeVar("E", bound=Enum)


def _coerce_enum(enum_cls: type[E], value: Any, default: E) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


# E-utilities publication-date bounds: YYYY, YYYY/MM or YYYY/MM/DD
_PDAT = re.compile(r"^\d{4}(?:/\d{1,2}(?:/\d{1,2})?)?$")


def _normalize_pdat(name: str, value: str | None) -> str | None:
    """``2020-01-05`` and ``2020.01.05`` are accepted as ``2020/01/05``."""
    text = re.sub(r"[-.]", "/", (value or "").strip())
    if not text:
        return None
    if not _PDAT.match(text):
        raise InvalidParameterError(name, value, "a date as YYYY, YYYY/MM or YYYY/MM/DD")
    return text


def make_record_id(source: SourceTag, native_id: str | None) -> tuple[str, bool]:
    """
    Build a record id from a backend's native identifier.

    Returns:
        Tuple of (record id, stable flag). The flag is False when the native
        identifier was missing and a random suffix had to be generated.
    """
    native = (native_id or "").strip()
    if native:
        return f"{source.id_prefix}_{native}", True
    return f"{source.id_prefix}_{secrets.token_hex(4)}", False


# =============================================================================
# Canonical record
# =============================================================================


@dataclass(frozen=True)
class CanonicalRecord:
    """
    The unified paper/trial shape all backends are normalized into.

    ``publication_date`` is a best-effort string and is NOT guaranteed to be
    parseable; the aggregator treats unparsable dates as oldest.
    """

    id: str
    title: str
    source_tag: SourceTag
    authors: str = ""
    venue: str = ""
    publication_date: str = ""
    abstract: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    source_url: str = ""
    record_type: str | None = None
    stable_id: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the keys the presentation and TTS layers consume."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "journal": self.venue,
            "date": self.publication_date,
            "abstract": self.abstract,
            "tags": sorted(self.tags),
            "originalUrl": self.source_url,
            "source": self.source_tag.label,
        }
        if self.record_type:
            data["type"] = self.record_type
        return data


# =============================================================================
# Request
# =============================================================================


@dataclass
class SearchRequest:
    """
    Caller input for one federated search.

    ``max_results`` is clamped into [1, MAX_RESULTS_CEILING] at construction,
    before any backend is called.
    """

    raw_query: str
    max_results: int = DEFAULT_MAX_RESULTS
    sort: SortPolicy = SortPolicy.DATE
    mode: SearchMode = SearchMode.GENERAL
    category: str | None = None
    full_text_only: bool = False
    source_group: SourceGroup = SourceGroup.PAPERS
    min_date: str | None = None  # YYYY[/MM[/DD]], PubMed only
    max_date: str | None = None

    def __post_init__(self) -> None:
        self.raw_query = (self.raw_query or "").strip()
        self.max_results = max(1, min(int(self.max_results), MAX_RESULTS_CEILING))
        self.category = (self.category or "").strip() or None
        self.min_date = _normalize_pdat("min_date", self.min_date)
        self.max_date = _normalize_pdat("max_date", self.max_date)

    @property
    def is_empty(self) -> bool:
        return not self.raw_query

    @classmethod
    def from_params(
        cls,
        query: str | None,
        *,
        limit: int | str | None = None,
        sort: str | None = None,
        mode: str | None = None,
        category: str | None = None,
        full_text_only: bool | str | None = None,
        source_group: str | None = None,
        min_date: str | None = None,
        max_date: str | None = None,
    ) -> SearchRequest:
        """
        Build a request from loosely typed query parameters.

        Unknown enum values fall back to defaults; date bounds may use "-" or
        "." separators.

        Raises:
            InvalidParameterError: A date bound is not YYYY, YYYY/MM or YYYY/MM/DD
        """
        try:
            max_results = int(limit) if limit is not None else DEFAULT_MAX_RESULTS
        except (TypeError, ValueError):
            max_results = DEFAULT_MAX_RESULTS

        if isinstance(full_text_only, str):
            full_text = full_text_only.strip().lower() in ("1", "true", "yes")
        else:
            full_text = bool(full_text_only)

        return cls(
            raw_query=query or "",
            max_results=max_results,
            sort=_coerce_enum(SortPolicy, sort, SortPolicy.DATE),
            mode=_coerce_enum(SearchMode, mode, SearchMode.GENERAL),
            category=category,
            full_text_only=full_text,
            source_group=_coerce_enum(SourceGroup, source_group, SourceGroup.PAPERS),
            min_date=min_date,
            max_date=max_date,
        )


# =============================================================================
# Expansion plan
# =============================================================================


@dataclass(frozen=True)
class QueryExpansionPlan:
    """
    Per-backend query strings produced by the expansion step.

    When expansion is skipped or fails every field equals the raw query and
    no formula ids are recommended.
    """

    raw_query: str
    english_query: str
    japanese_query: str
    chinese_query: str
    trials_query: str
    kampo_ids: tuple[str, ...] = ()
    expanded: bool = False

    @classmethod
    def identity(cls, raw_query: str) -> QueryExpansionPlan:
        return cls(
            raw_query=raw_query,
            english_query=raw_query,
            japanese_query=raw_query,
            chinese_query=raw_query,
            trials_query=raw_query,
        )

    @property
    def translated_query(self) -> str | None:
        """English query when it differs from the raw query."""
        if self.english_query != self.raw_query:
            return self.english_query
        return None

    def query_for(self, source: SourceTag) -> str:
        """The query string a given backend receives."""
        if source is SourceTag.PUBMED:
            return self.english_query
        if source is SourceTag.JSTAGE:
            return self.japanese_query
        if source is SourceTag.SEMANTIC_SCHOLAR:
            if self.chinese_query and self.chinese_query != self.english_query:
                return f"{self.english_query} {self.chinese_query}"
            return self.english_query
        if source is SourceTag.CLINICAL_TRIALS:
            return self.trials_query
        if source is SourceTag.KAMPODB:
            return ",".join(self.kampo_ids)
        # KCI is a Korean-language index and takes the user's own wording
        return self.raw_query


# =============================================================================
# Fetch outcomes
# =============================================================================


@dataclass(frozen=True)
class Success:
    """An adapter returned whatever it could normalize (possibly placeholders)."""

    source: SourceTag
    records: tuple[CanonicalRecord, ...] = ()

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """An adapter failed entirely; it contributes zero records."""

    source: SourceTag
    reason: str
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def records(self) -> tuple[CanonicalRecord, ...]:
        return ()


FetchOutcome = Success | Failure


# =============================================================================
# Aggregated result
# =============================================================================


@dataclass
class SearchMeta:
    """Provenance for an aggregated result."""

    query: str
    translated_query: str | None = None
    queries: dict[str, str] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    total_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "query": self.query,
            "counts": dict(self.counts),
            "totalCount": self.total_count,
        }
        if self.translated_query:
            data["translatedQuery"] = self.translated_query
        if self.queries:
            data["queries"] = dict(self.queries)
        if self.failures:
            data["failures"] = dict(self.failures)
        return data


@dataclass
class AggregatedResult:
    """Final ordered records plus provenance metadata; owned by the caller."""

    records: list[CanonicalRecord] = field(default_factory=list)
    meta: SearchMeta | None = None

    @classmethod
    def empty(cls) -> AggregatedResult:
        return cls(records=[], meta=None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"papers": [r.to_dict() for r in self.records]}
        if self.meta is not None:
            data["meta"] = self.meta.to_dict()
        return data
