"""
QueryExpansionPlanner - per-backend query strings via text generation

Non-English queries (and any query carrying a category hint) are expanded by
one text-generation call into:

    english   general index (PubMed) and citation graph (Semantic Scholar)
    japanese  J-STAGE
    chinese   appended to the Semantic Scholar query
    trials    ClinicalTrials.gov
    kampoIds  up to MAX_KAMPO_IDS KampoDB formula ids

Expansion is strictly best-effort: a missing generator, transport error,
timeout or unparsable answer yields the identity plan and is logged, never
raised.

Query Flow:
    SearchRequest → QueryExpansionPlanner → QueryExpansionPlan → FetchOrchestrator

Example:
    >>> planner = QueryExpansionPlanner(generator=None)
    >>> plan = await planner.plan("acupuncture")
    >>> plan.expanded
    False
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

from hanui_search.domain.entities.record import QueryExpansionPlan, SearchMode
from hanui_search.infrastructure.llm import TextGenerator
from hanui_search.infrastructure.sources.kampodb import FORMULA_ID
from hanui_search.shared.exceptions import ExpansionError

logger = logging.getLogger(__name__)

MAX_KAMPO_IDS = 3

# Hangul jamo/syllables, kana and CJK unified ideographs
_CJK_SCRIPT = re.compile(r"[\u1100-\u11ff\u3130-\u318f\uac00-\ud7a3\u3040-\u30ff\u4e00-\u9fff]")
_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)

SYSTEM_INSTRUCTION = (
    "You are a biomedical librarian specialising in Korean, Japanese and Chinese "
    "traditional medicine. Answer with a single JSON object and nothing else."
)

EXPANSION_PROMPT = """Expand the following medical search term for several literature databases.{focus}{category}

Search term: "{query}"

Return JSON with exactly these keys:
{{
  "english": "concise English phrase optimised for PubMed",
  "kampoIds": ["up to {max_ids} KampoDB formula ids relevant to the term, or an empty list"],
  "japanese": "Japanese phrase for J-STAGE",
  "chinese": "Chinese phrase for traditional Chinese medicine literature",
  "trials": "short English condition/intervention phrase for ClinicalTrials.gov"
}}"""

MODE_FOCUS = {
    SearchMode.CLINICAL: " Focus on clinical trials, case reports, and experimental studies.",
    SearchMode.EVIDENCE: " Focus on systematic reviews and meta-analyses.",
}


def needs_expansion(raw_query: str, category: str | None = None) -> bool:
    """True when the query has CJK/Hangul script or a category hint is present."""
    return bool(category) or bool(_CJK_SCRIPT.search(raw_query))


def build_prompt(raw_query: str, category: str | None, mode: SearchMode) -> str:
    return EXPANSION_PROMPT.format(
        query=raw_query,
        focus=MODE_FOCUS.get(mode, ""),
        category=f" The user is browsing the category: {category}." if category else "",
        max_ids=MAX_KAMPO_IDS,
    )


def _clean_phrase(value: Any, fallback: str) -> str:
    if not isinstance(value, str):
        return fallback
    cleaned = value.strip().strip("\"'").rstrip(".").strip()
    return cleaned or fallback


def _clean_ids(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    ids: list[str] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, str | int):
            continue
        formula_id = str(item).strip()
        if not FORMULA_ID.match(formula_id):
            if formula_id:
                logger.debug(f"Dropping malformed formula id {formula_id!r}")
            continue
        if formula_id not in ids:
            ids.append(formula_id)
    return tuple(ids[:MAX_KAMPO_IDS])


def parse_expansion(raw_query: str, text: str) -> QueryExpansionPlan:
    """
    Parse a generator answer into a plan.

    Tolerates code fences and surrounding prose by taking the outermost
    ``{...}`` block. Missing or non-string fields fall back to the raw query.

    Raises:
        ExpansionError: No JSON object could be decoded
    """
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise ExpansionError("No JSON object in expansion response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExpansionError(f"Malformed expansion JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExpansionError("Expansion JSON is not an object")

    return QueryExpansionPlan(
        raw_query=raw_query,
        english_query=_clean_phrase(data.get("english"), raw_query),
        japanese_query=_clean_phrase(data.get("japanese"), raw_query),
        chinese_query=_clean_phrase(data.get("chinese"), raw_query),
        trials_query=_clean_phrase(data.get("trials"), raw_query),
        kampo_ids=_clean_ids(data.get("kampoIds")),
        expanded=True,
    )


class QueryExpansionPlanner:
    """Produces one QueryExpansionPlan per request."""

    def __init__(self, generator: TextGenerator | None, timeout: float = 15.0) -> None:
        self._generator = generator
        self._timeout = timeout

    async def plan(
        self,
        raw_query: str,
        category: str | None = None,
        mode: SearchMode = SearchMode.GENERAL,
    ) -> QueryExpansionPlan:
        if not needs_expansion(raw_query, category):
            return QueryExpansionPlan.identity(raw_query)
        if self._generator is None:
            logger.info("No text generator configured; using raw query for every source")
            return QueryExpansionPlan.identity(raw_query)

        try:
            plan = await self._expand(raw_query, category, mode)
        except ExpansionError as e:
            logger.warning(f"Query expansion failed for {raw_query!r}, using raw query: {e}")
            return QueryExpansionPlan.identity(raw_query)

        logger.info(
            f"Expanded {raw_query!r} (mode={mode.value}) -> english={plan.english_query!r}, "
            f"kampo_ids={list(plan.kampo_ids)}"
        )
        return plan

    async def _expand(self, raw_query: str, category: str | None, mode: SearchMode) -> QueryExpansionPlan:
        prompt = build_prompt(raw_query, category, mode)
        try:
            async with asyncio.timeout(self._timeout):
                text = await self._generator.generate(prompt, SYSTEM_INSTRUCTION)
        except ExpansionError:
            raise
        except TimeoutError as e:
            raise ExpansionError(f"Expansion timed out after {self._timeout}s") from e
        except Exception as e:
            raise ExpansionError(f"Text generator error: {e!r}") from e
        return parse_expansion(raw_query, text)

    async def aclose(self) -> None:
        close = getattr(self._generator, "close", None)
        if close is not None:
            await close()
