"""
ClinicalTrials.gov API Client

Trial-registry adapter, enabled only for the ``trials`` source group. It
receives the trials expansion of the query.
This is a FREE public API with no registration required.

API Documentation: https://clinicaltrials.gov/data-api/api
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from hanui_search.domain.entities.record import (
    CanonicalRecord,
    SearchRequest,
    SourceGroup,
    SourceTag,
    make_record_id,
)
from hanui_search.shared.exceptions import ParseError

from .adapter import SourceAdapter

# Base URL for ClinicalTrials.gov API v2
BASE_URL = "https://clinicaltrials.gov/api/v2"
STUDY_URL = "https://clinicaltrials.gov/study/{nct_id}"


class ClinicalTrialsAdapter(SourceAdapter):
    """Client for the ClinicalTrials.gov public API."""

    source_tag = SourceTag.CLINICAL_TRIALS
    source_group = SourceGroup.TRIALS
    _service_name = "ClinicalTrials.gov"

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "hanui-search/1.0",
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            base_url=BASE_URL,
            timeout=timeout,
            min_interval=0.1,
            headers={"Accept": "application/json", "User-Agent": user_agent},
            http_client=http_client,
            logger=logger,
        )

    async def fetch(self, query: str, request: SearchRequest) -> list[CanonicalRecord]:
        if not query:
            return []

        params: dict[str, Any] = {
            "query.term": query,
            "pageSize": request.max_results,
        }
        data = await self._make_request("/studies", params=params)
        if not isinstance(data, dict):
            raise ParseError("Studies response is not an object", source=self._service_name)

        studies = data.get("studies") or []
        records = [self._normalize_study(s) for s in studies if isinstance(s, dict)]
        self.logger.info(f"ClinicalTrials.gov: {len(records)} studies for {query!r}")
        return self._dedupe(records)

    def _normalize_study(self, study: dict[str, Any]) -> CanonicalRecord:
        """Normalize one v2 study into a record."""
        protocol = study.get("protocolSection", {})
        id_module = protocol.get("identificationModule", {})
        status_module = protocol.get("statusModule", {})
        description_module = protocol.get("descriptionModule", {})
        conditions_module = protocol.get("conditionsModule", {})
        arms_module = protocol.get("armsInterventionsModule", {})
        sponsor_module = protocol.get("sponsorCollaboratorsModule", {})

        nct_id = str(id_module.get("nctId") or "").strip()
        record_id, stable = make_record_id(self.source_tag, nct_id)
        if not stable:
            self._log_unstable_id(record_id)

        summary = (description_module.get("briefSummary") or "").strip()
        if not summary:
            conditions = ", ".join(conditions_module.get("conditions", []))
            interventions = ", ".join(
                i.get("name", "") for i in arms_module.get("interventions", []) if i.get("name")
            )
            summary = f"Conditions: {conditions or 'N/A'}. Interventions: {interventions or 'N/A'}."

        phases = protocol.get("designModule", {}).get("phases", [])

        return CanonicalRecord(
            id=record_id,
            title=(id_module.get("briefTitle") or id_module.get("officialTitle") or "").strip() or "Untitled",
            source_tag=self.source_tag,
            authors=(sponsor_module.get("leadSponsor", {}).get("name") or "").strip() or "Unknown Sponsor",
            venue=status_module.get("overallStatus") or "UNKNOWN",
            publication_date=status_module.get("startDateStruct", {}).get("date") or "Unknown Date",
            abstract=summary,
            tags=frozenset({"ClinicalTrials.gov", *phases}),
            source_url=STUDY_URL.format(nct_id=nct_id) if nct_id else "https://clinicaltrials.gov/",
            record_type="Clinical Trial",
            stable_id=stable,
        )
