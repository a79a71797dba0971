"""
Runtime settings, read from environment variables.

Environment Variables:
    NCBI_EMAIL / NCBI_API_KEY (alias PUBMED_API_KEY): NCBI E-utilities identity
    KCI_API_KEY: Korea Citation Index open API key (KCI is disabled without it)
    S2_API_KEY: Optional Semantic Scholar key
    OPENAI_API_KEY / OPENAI_BASE_URL / HANUI_LLM_MODEL: query expansion model
    HANUI_FETCH_TIMEOUT: Per-backend timeout in seconds (default 15)
    HANUI_BATCH_TIMEOUT: Timeout for two-phase batch backends (default 30)
    HANUI_EXPANSION_TIMEOUT: Timeout for the expansion call (default 15)
    HANUI_DISABLED_SOURCES: Comma-separated source tags to switch off
    HANUI_USER_AGENT: User-Agent sent to every backend

HTTP_PROXY / HTTPS_PROXY are honored by httpx directly.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from hanui_search.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EMAIL = "hanui-search@example.com"
DEFAULT_USER_AGENT = "hanui-search/1.0"
DEFAULT_LLM_MODEL = "gpt-4o-mini"


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        msg = f"{name} must be a number of seconds, got {raw!r}"
        raise ConfigurationError(msg) from e
    if value <= 0:
        msg = f"{name} must be positive, got {raw!r}"
        raise ConfigurationError(msg)
    return value


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration for the search engine."""

    ncbi_email: str = DEFAULT_EMAIL
    ncbi_api_key: str | None = None
    kci_api_key: str | None = None
    s2_api_key: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    fetch_timeout: float = 15.0
    batch_timeout: float = 30.0
    expansion_timeout: float = 15.0
    disabled_sources: tuple[str, ...] = field(default_factory=tuple)
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.batch_timeout < self.fetch_timeout:
            msg = (
                f"batch_timeout ({self.batch_timeout}s) must not be shorter than "
                f"fetch_timeout ({self.fetch_timeout}s)"
            )
            raise ConfigurationError(msg)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables (or an explicit mapping in tests)."""
        env = os.environ if env is None else env

        disabled = tuple(
            part.strip().lower() for part in env.get("HANUI_DISABLED_SOURCES", "").split(",") if part.strip()
        )

        settings = cls(
            ncbi_email=env.get("NCBI_EMAIL", "").strip() or DEFAULT_EMAIL,
            ncbi_api_key=(env.get("NCBI_API_KEY") or env.get("PUBMED_API_KEY") or "").strip() or None,
            kci_api_key=env.get("KCI_API_KEY", "").strip() or None,
            s2_api_key=env.get("S2_API_KEY", "").strip() or None,
            openai_api_key=(env.get("OPENAI_API_KEY") or env.get("OPEN_AI_API_KEY") or "").strip() or None,
            openai_base_url=env.get("OPENAI_BASE_URL", "").strip() or None,
            llm_model=env.get("HANUI_LLM_MODEL", "").strip() or DEFAULT_LLM_MODEL,
            fetch_timeout=_float_env(env, "HANUI_FETCH_TIMEOUT", 15.0),
            batch_timeout=_float_env(env, "HANUI_BATCH_TIMEOUT", 30.0),
            expansion_timeout=_float_env(env, "HANUI_EXPANSION_TIMEOUT", 15.0),
            disabled_sources=disabled,
            user_agent=env.get("HANUI_USER_AGENT", "").strip() or DEFAULT_USER_AGENT,
        )

        if not settings.openai_api_key:
            logger.info("OPENAI_API_KEY not set; query expansion will fall back to the raw query")
        if not settings.kci_api_key:
            logger.info("KCI_API_KEY not set; KCI source disabled")
        return settings

    def as_dict(self) -> dict[str, Any]:
        """Plain dict for ``ApplicationContainer.config.from_dict``."""
        data = asdict(self)
        data["disabled_sources"] = list(self.disabled_sources)
        return data
