"""
KampoDB formulary knowledge-base adapter.

Unlike the literature backends, KampoDB is not searched by keyword: the
expansion step recommends formula ids and this adapter turns each one into a
synthesized record from three concurrent sub-fetches:

    /formula/{id}/info     name, Japanese name (required)
    /formula/{id}/crude    constituent crude drugs
    /formula/{id}/disease  associated diseases (top entries used)

API: https://wakanmoview.inm.u-toyama.ac.jp/kampo/
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date
from typing import Any

import httpx

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    QueryExpansionPlan,
    SearchRequest,
    SourceTag,
)
from hanui_search.shared.exceptions import AdapterTransportError, HanuiSearchError

from .adapter import SourceAdapter

KAMPODB_API_URL = "https://wakanmoview.inm.u-toyama.ac.jp/kampo/api"
FORMULA_URL = "https://wakanmoview.inm.u-toyama.ac.jp/kampo/formula/{id}"

# Ids are interpolated into URL paths and comma-joined in the plan
FORMULA_ID = re.compile(r"^[A-Za-z0-9_-]+$")

MAX_DISEASES = 5
NO_INFORMATION = "정보 없음"


def _names(items: Any, limit: int | None = None) -> list[str]:
    if not isinstance(items, list):
        return []
    names = [str(item.get("name", "")).strip() for item in items if isinstance(item, dict)]
    names = [name for name in names if name]
    return names[:limit] if limit is not None else names


class KampoAdapter(SourceAdapter):
    """Synthesizes one record per recommended Kampo formula id."""

    source_tag = SourceTag.KAMPODB
    _service_name = "KampoDB"

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "hanui-search/1.0",
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            base_url=KAMPODB_API_URL,
            timeout=timeout,
            min_interval=0.0,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            http_client=http_client,
            logger=logger,
        )

    def is_enabled(self, request: SearchRequest, plan: QueryExpansionPlan) -> bool:
        return super().is_enabled(request, plan) and bool(plan.kampo_ids)

    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        formula_ids = list(dict.fromkeys(part.strip() for part in query.split(",") if part.strip()))
        rejected = [fid for fid in formula_ids if not FORMULA_ID.match(fid)]
        if rejected:
            self.logger.warning(f"KampoDB: ignoring malformed formula ids {rejected}")
            formula_ids = [fid for fid in formula_ids if fid not in rejected]
        if not formula_ids:
            return []

        self.logger.info(f"KampoDB: fetching formulas {', '.join(formula_ids)}")
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(self._fetch_formula(fid)) for fid in formula_ids]

        records = [record for task in tasks if (record := task.result()) is not None]
        if not records:
            raise AdapterTransportError(self._service_name, "no formula info could be retrieved")
        return self._dedupe(records)

    async def _fetch_formula(self, formula_id: str) -> CanonicalRecord | None:
        """
        Record for one formula, or None when its info endpoint failed.

        A failed info fetch cancels the sibling crude/disease fetches.
        """
        info_error: BaseException | None = None
        try:
            async with asyncio.TaskGroup() as tg:
                info_task = tg.create_task(self._make_request(f"/formula/{formula_id}/info"))
                crude_task = tg.create_task(self._optional_list(formula_id, "crude"))
                disease_task = tg.create_task(self._optional_list(formula_id, "disease"))
        except* HanuiSearchError as eg:
            info_error = eg.exceptions[0]

        if info_error is not None:
            self.logger.warning(f"KampoDB: info for formula {formula_id} unavailable, skipped: {info_error}")
            return None

        info = info_task.result()
        if not isinstance(info, dict) or not info.get("name"):
            self.logger.warning(f"KampoDB: formula {formula_id} info has no name, skipped")
            return None

        return self._build_record(formula_id, info, crude_task.result(), disease_task.result())

    async def _optional_list(self, formula_id: str, section: str) -> list[Any]:
        """Crude/disease sections degrade to an empty list on failure."""
        try:
            data = await self._make_request(f"/formula/{formula_id}/{section}")
        except HanuiSearchError as e:
            self.logger.debug(f"KampoDB: {section} for formula {formula_id} unavailable: {e}")
            return []
        return data if isinstance(data, list) else []

    def _build_record(
        self, formula_id: str, info: dict[str, Any], crudes: list[Any], diseases: list[Any]
    ) -> CanonicalRecord:
        name = str(info["name"]).strip()
        name_jp = str(info.get("name_jp") or "").strip()
        title = f"[한방] {name} ({name_jp})" if name_jp else f"[한방] {name}"

        crude_list = ", ".join(_names(crudes)) or NO_INFORMATION
        disease_list = ", ".join(_names(diseases, MAX_DISEASES)) or NO_INFORMATION
        abstract = (
            f"[구성 약재] {crude_list}\n\n"
            f"[주요 적응증/활성] {disease_list}\n\n"
            "* KampoDB 데이터를 기반으로 생성된 정보입니다. "
            "상세 기전 및 근거는 KampoDB 홈페이지에서 확인할 수 있습니다."
        )

        return CanonicalRecord(
            id=f"{self.source_tag.id_prefix}_{formula_id}",
            title=title,
            source_tag=self.source_tag,
            authors="Toyama University (KampoDB)",
            venue="KampoDB (WAKAN-YAKU Research)",
            publication_date=date.today().isoformat(),
            abstract=abstract,
            tags=frozenset({"Kampo", "Traditional Medicine"}),
            source_url=FORMULA_URL.format(id=formula_id),
            record_type="Formula",
        )
