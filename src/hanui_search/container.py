"""
Application DI Container (dependency-injector).

Centralizes service creation and lifecycle management.

Usage::

    from hanui_search.config import Settings
    from hanui_search.container import ApplicationContainer

    container = ApplicationContainer()
    container.config.from_dict(Settings.from_env().as_dict())

    engine = container.engine()
    result = await engine.search(SearchRequest("침 치료"))

    # In tests — override any provider:
    container.text_generator.override(providers.Object(fake_generator))
"""

from __future__ import annotations

import logging
from typing import Any

from dependency_injector import containers, providers

logger = logging.getLogger(__name__)


def _create_settings(config: dict[str, Any]) -> object:
    from hanui_search.config import Settings

    data = dict(config)
    data["disabled_sources"] = tuple(data.get("disabled_sources") or ())
    return Settings(**data)


def _create_text_generator(
    api_key: str | None,
    model: str,
    base_url: str | None,
    timeout: float,
) -> object | None:
    """Lazy factory for the OpenAI text generator; None when no key is configured."""
    if not api_key:
        logger.info("Query expansion disabled: no OPENAI_API_KEY")
        return None

    from hanui_search.infrastructure.llm import OpenAITextGenerator

    return OpenAITextGenerator(api_key=api_key, model=model, base_url=base_url, timeout=timeout)


def _create_adapters(settings: Any) -> list[object]:
    """Lazy factory for the configured source adapters."""
    from hanui_search.infrastructure.sources import build_adapters

    adapters = build_adapters(settings)
    logger.info(f"Registered sources: {', '.join(a.source_tag.label for a in adapters)}")
    return adapters


def _create_planner(generator: Any, timeout: float) -> object:
    from hanui_search.application.search.query_planner import QueryExpansionPlanner

    return QueryExpansionPlanner(generator=generator, timeout=timeout)


def _create_orchestrator(adapters: list[Any]) -> object:
    from hanui_search.application.search.orchestrator import FetchOrchestrator

    return FetchOrchestrator(adapters)


def _create_aggregator() -> object:
    from hanui_search.application.search.result_aggregator import ResultAggregator

    return ResultAggregator()


def _create_engine(planner: Any, orchestrator: Any, aggregator: Any) -> object:
    from hanui_search.application.search.engine import FederatedSearchEngine

    return FederatedSearchEngine(planner=planner, orchestrator=orchestrator, aggregator=aggregator)


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for the federated search engine.

    Manages creation and lifecycle of all core services:
    - ``text_generator``: LLM used for query expansion (None without a key)
    - ``adapters``: one SourceAdapter per enabled backend
    - ``planner`` / ``orchestrator`` / ``aggregator``: the search pipeline
    - ``engine``: FederatedSearchEngine façade
    """

    config = providers.Configuration()

    settings = providers.Singleton(_create_settings, config)

    text_generator = providers.Singleton(
        _create_text_generator,
        api_key=config.openai_api_key,
        model=config.llm_model,
        base_url=config.openai_base_url,
        timeout=config.expansion_timeout,
    )

    adapters = providers.Singleton(_create_adapters, settings=settings)

    planner = providers.Singleton(
        _create_planner,
        generator=text_generator,
        timeout=config.expansion_timeout,
    )

    orchestrator = providers.Singleton(_create_orchestrator, adapters=adapters)

    aggregator = providers.Singleton(_create_aggregator)

    engine = providers.Singleton(
        _create_engine,
        planner=planner,
        orchestrator=orchestrator,
        aggregator=aggregator,
    )


__all__ = ["ApplicationContainer"]
