"""
Source Adapters - one module per backend

Every adapter translates a query into its backend's wire protocol and
normalizes the answer into CanonicalRecord objects.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                   FetchOrchestrator                     │
    └───────────────────────────┬─────────────────────────────┘
                                │
    ┌───────────────────────────▼─────────────────────────────┐
    │                SourceAdapter (ABC)                      │
    │  ┌────────┬──────┬─────────┬─────────┬──────────────┐  │
    │  │ PubMed │ KCI  │ KampoDB │ J-STAGE │ Sem. Scholar │  │  papers
    │  └────────┴──────┴─────────┴─────────┴──────────────┘  │
    │  ┌──────────────────────────────────────────────────┐  │
    │  │               ClinicalTrials.gov                 │  │  trials
    │  └──────────────────────────────────────────────────┘  │
    │                  BaseAPIClient (httpx)                  │
    └─────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging

import httpx

from hanui_search.config import Settings
from hanui_search.domain.entities.record import SourceTag

from .adapter import SourceAdapter
from .base_client import BaseAPIClient
from .clinical_trials import ClinicalTrialsAdapter
from .jstage import JStageAdapter
from .kampodb import KampoAdapter
from .kci import KciAdapter
from .pubmed import PubMedAdapter
from .semantic_scholar import SemanticScholarAdapter

logger = logging.getLogger(__name__)

# Registration order; also the order of outcomes and of relevance interleaving
ADAPTER_ORDER = (
    SourceTag.KAMPODB,
    SourceTag.PUBMED,
    SourceTag.KCI,
    SourceTag.JSTAGE,
    SourceTag.SEMANTIC_SCHOLAR,
    SourceTag.CLINICAL_TRIALS,
)


def build_adapters(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> list[SourceAdapter]:
    """
    Build every configured adapter in registration order.

    Adapters listed in ``settings.disabled_sources`` are skipped, as is KCI
    when no API key is configured.

    Args:
        settings: Runtime settings
        http_client: Shared client (tests pass one with a MockTransport);
                     when None each adapter owns its own client
    """
    disabled = set(settings.disabled_sources)
    common = {"user_agent": settings.user_agent, "http_client": http_client}

    adapters: list[SourceAdapter] = []
    for tag in ADAPTER_ORDER:
        if tag.value in disabled:
            logger.info(f"Source {tag.label} disabled by configuration")
            continue

        match tag:
            case SourceTag.PUBMED:
                adapters.append(
                    PubMedAdapter(
                        email=settings.ncbi_email,
                        api_key=settings.ncbi_api_key,
                        timeout=settings.fetch_timeout,
                        batch_timeout=settings.batch_timeout,
                        **common,
                    )
                )
            case SourceTag.KCI:
                if not settings.kci_api_key:
                    logger.info("KCI_API_KEY not set; KCI adapter not registered")
                    continue
                adapters.append(KciAdapter(api_key=settings.kci_api_key, timeout=settings.fetch_timeout, **common))
            case SourceTag.KAMPODB:
                adapters.append(KampoAdapter(timeout=settings.fetch_timeout, **common))
            case SourceTag.JSTAGE:
                adapters.append(JStageAdapter(timeout=settings.fetch_timeout, **common))
            case SourceTag.SEMANTIC_SCHOLAR:
                adapters.append(
                    SemanticScholarAdapter(api_key=settings.s2_api_key, timeout=settings.fetch_timeout, **common)
                )
            case SourceTag.CLINICAL_TRIALS:
                adapters.append(ClinicalTrialsAdapter(timeout=settings.fetch_timeout, **common))

    return adapters


__all__ = [
    "ADAPTER_ORDER",
    "BaseAPIClient",
    "ClinicalTrialsAdapter",
    "JStageAdapter",
    "KampoAdapter",
    "KciAdapter",
    "PubMedAdapter",
    "SemanticScholarAdapter",
    "SourceAdapter",
    "build_adapters",
]
