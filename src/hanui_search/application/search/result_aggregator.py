"""
ResultAggregator - Multi-Source Result Merging and Ranking

Merges the successful adapter outcomes of one request into a single ordered
list plus provenance metadata:

1. Concatenate successful record lists (in adapter registration order)
2. Order: publication date descending (default), or round-robin over
   backends for ``sort=relevance``; unparsable dates always trail
3. Pin KampoDB formula records first
4. Truncate to ``max_results``
5. Build SearchMeta (counts per enabled backend, queries that differ from
   the raw query, failure reasons)

Architecture Decision:
    ResultAggregator operates on CanonicalRecord objects and does NOT make
    API calls. No deduplication is attempted across backends: different
    backends return disjoint identifiers for the same logical paper.

Example:
    >>> aggregator = ResultAggregator()
    >>> result = aggregator.aggregate(request, plan, outcomes)
    >>> result.meta.total_count
    10
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import date, datetime

from hanui_search.domain.entities.record import (
    AggregatedResult,
    CanonicalRecord,
    FetchOutcome,
    QueryExpansionPlan,
    SearchMeta,
    SearchMode,
    SearchRequest,
    SortPolicy,
    SourceTag,
)
from hanui_search.shared.exceptions import AggregationError

logger = logging.getLogger(__name__)

# Sources whose records are placed ahead of every ranked record
PINNED_SOURCES = frozenset({SourceTag.KAMPODB})

_MONTHS = {
    name: index
    for index, names in enumerate(
        (
            ("jan", "january"),
            ("feb", "february"),
            ("mar", "march"),
            ("apr", "april"),
            ("may",),
            ("jun", "june"),
            ("jul", "july"),
            ("aug", "august"),
            ("sep", "sept", "september"),
            ("oct", "october"),
            ("nov", "november"),
            ("dec", "december"),
        ),
        start=1,
    )
    for name in names
}

_NUMERIC_DATE = re.compile(r"\b(\d{4})[/.\-](\d{1,2})(?:[/.\-](\d{1,2}))?\b")
_YEAR_MONTH_NAME = re.compile(r"\b(\d{4})\s+([A-Za-z]{3,9})\.?(?:\s+(\d{1,2}))?\b")
_MONTH_NAME_YEAR = re.compile(r"\b([A-Za-z]{3,9})\.?\s+(?:(\d{1,2}),?\s+)?(\d{4})\b")
_YEAR = re.compile(r"(?<!\d)(1[89]\d{2}|2\d{3})(?!\d)")


def _safe_date(year: int, month: int = 1, day: int = 1) -> date | None:
    if not 1 <= month <= 12:
        return None
    try:
        return date(year, month, day or 1)
    except ValueError:
        try:
            return date(year, month, 1)
        except ValueError:
            return None


def parse_publication_date(value: str | None) -> date | None:
    """
    Best-effort parse of a backend's date string.

    Handles ``YYYY``, ``YYYY Mon``, ``YYYY Mon DD``, ``Mon YYYY``,
    ``YYYY/MM/DD``, ``YYYY-MM-DD``, ``YYYY.MM``, ISO datetimes and free text
    containing a 4-digit year. Returns None when nothing usable is found.
    """
    text = (value or "").strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    if match := _NUMERIC_DATE.search(text):
        year, month, day = match.groups()
        parsed = _safe_date(int(year), int(month), int(day) if day else 1)
        if parsed:
            return parsed

    if (match := _YEAR_MONTH_NAME.search(text)) and (month := _MONTHS.get(match.group(2).lower())):
        day = match.group(3)
        parsed = _safe_date(int(match.group(1)), month, int(day) if day else 1)
        if parsed:
            return parsed

    if (match := _MONTH_NAME_YEAR.search(text)) and (month := _MONTHS.get(match.group(1).lower())):
        day = match.group(2)
        parsed = _safe_date(int(match.group(3)), month, int(day) if day else 1)
        if parsed:
            return parsed

    if match := _YEAR.search(text):
        return date(int(match.group(1)), 1, 1)

    return None


def _date_key(record: CanonicalRecord) -> tuple[bool, int]:
    parsed = parse_publication_date(record.publication_date)
    if parsed is None:
        return (True, 0)
    return (False, -parsed.toordinal())


class ResultAggregator:
    """Pure merge/sort/pin/truncate over one request's outcomes."""

    def aggregate(
        self,
        request: SearchRequest,
        plan: QueryExpansionPlan,
        outcomes: Mapping[SourceTag, FetchOutcome],
    ) -> AggregatedResult:
        """
        Build the final result.

        Raises:
            AggregationError: Any failure while merging, ordering or building meta
        """
        try:
            records = self.merge(outcomes)
            ordered = self.order(records, request)
            final = ordered[: request.max_results]
            meta = self.build_meta(request, plan, outcomes, final)
        except AggregationError:
            raise
        except Exception as e:
            raise AggregationError(f"Failed to aggregate results: {e!r}") from e

        logger.info(f"Aggregated {len(records)} records from {len(outcomes)} sources, returning {len(final)}")
        return AggregatedResult(records=final, meta=meta)

    @staticmethod
    def merge(outcomes: Mapping[SourceTag, FetchOutcome]) -> list[CanonicalRecord]:
        """Concatenate the records of every successful outcome."""
        merged: list[CanonicalRecord] = []
        for outcome in outcomes.values():
            if outcome.ok:
                merged.extend(outcome.records)
        return merged

    def order(self, records: list[CanonicalRecord], request: SearchRequest) -> list[CanonicalRecord]:
        """Pinned sources first, then the ranked remainder."""
        pinned = [r for r in records if r.source_tag in PINNED_SOURCES]
        ranked = [r for r in records if r.source_tag not in PINNED_SOURCES]

        if request.sort is SortPolicy.RELEVANCE and request.mode is not SearchMode.LATEST:
            ranked = self._interleave(ranked)
        else:
            ranked = sorted(ranked, key=_date_key)
        return pinned + ranked

    @staticmethod
    def _interleave(records: list[CanonicalRecord]) -> list[CanonicalRecord]:
        """Round-robin across sources by backend rank; undated records trail."""
        source_order: dict[SourceTag, int] = {}
        positions: dict[SourceTag, int] = {}
        keyed = []
        for record in records:
            source_index = source_order.setdefault(record.source_tag, len(source_order))
            position = positions.get(record.source_tag, 0)
            positions[record.source_tag] = position + 1
            undated = parse_publication_date(record.publication_date) is None
            keyed.append(((undated, position, source_index), record))
        return [record for _, record in sorted(keyed, key=lambda item: item[0])]

    @staticmethod
    def build_meta(
        request: SearchRequest,
        plan: QueryExpansionPlan,
        outcomes: Mapping[SourceTag, FetchOutcome],
        final: list[CanonicalRecord],
    ) -> SearchMeta:
        counts = {tag.value: len(outcome.records) for tag, outcome in outcomes.items()}
        failures = {tag.value: outcome.reason for tag, outcome in outcomes.items() if not outcome.ok}

        queries: dict[str, str] = {}
        for tag in outcomes:
            used = plan.query_for(tag)
            if used and used != request.raw_query:
                queries[tag.value] = used

        return SearchMeta(
            query=request.raw_query,
            translated_query=plan.translated_query,
            queries=queries,
            counts=counts,
            failures=failures,
            total_count=len(final),
        )
