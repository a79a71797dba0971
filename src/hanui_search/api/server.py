"""
HTTP API Server - inbound query surface for the presentation layer.

Endpoints:
    GET /api/papers            federated search → {papers, meta}
    GET /api/papers/abstract   full abstract for a PubMed/KCI record id
    GET /health                liveness plus the registered sources
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hanui_search.application.search.engine import FederatedSearchEngine
from hanui_search.config import Settings
from hanui_search.container import ApplicationContainer
from hanui_search.domain.entities.record import SearchRequest
from hanui_search.shared.exceptions import (
    HanuiSearchError,
    InvalidParameterError,
    InvalidQueryError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_PORT = 8765


# Pydantic models for API responses
class PaperModel(BaseModel):
    """One canonical record as consumed by the presentation and TTS layers."""

    id: str
    title: str
    authors: str
    journal: str
    date: str
    abstract: str
    tags: list[str] = Field(default_factory=list)
    originalUrl: str
    source: str
    type: str | None = None


class MetaModel(BaseModel):
    """Provenance for an aggregated result."""

    query: str
    translatedQuery: str | None = None
    queries: dict[str, str] | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    failures: dict[str, str] | None = None
    totalCount: int = 0


class PapersResponse(BaseModel):
    papers: list[PaperModel] = Field(default_factory=list)
    meta: MetaModel | None = None


class AbstractResponse(BaseModel):
    id: str
    abstract: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    sources: list[str] = Field(default_factory=list)


def _error(status_code: int, error: HanuiSearchError) -> JSONResponse:
    """Error body: ``error`` message plus category, severity and retry hints."""
    return JSONResponse(status_code=status_code, content=error.to_dict())


def create_api_server(engine: FederatedSearchEngine | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        engine: Pre-built engine (tests inject one). When None the lifespan
                builds the engine from environment settings and closes it on
                shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = engine is None
        if owned:
            container = ApplicationContainer()
            container.config.from_dict(Settings.from_env().as_dict())
            app.state.engine = container.engine()
        else:
            app.state.engine = engine
        logger.info("HTTP API server initialized")

        yield

        logger.info("HTTP API server shutting down")
        if owned:
            await app.state.engine.aclose()

    app = FastAPI(
        title="Hanui Search API",
        description="Federated biomedical literature search across PubMed, KCI, KampoDB, "
        "J-STAGE, Semantic Scholar and ClinicalTrials.gov.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint."""
        current: FederatedSearchEngine | None = getattr(request.app.state, "engine", None)
        if current is None:
            return HealthResponse(status="initializing")
        return HealthResponse(status="healthy", sources=[a.source_tag.label for a in current.adapters])

    @app.get(
        "/api/papers",
        response_model=PapersResponse,
        response_model_exclude_none=True,
        responses={400: {"description": "Invalid date bound"}, 500: {"description": "Aggregation failed"}},
    )
    async def search_papers(
        request: Request,
        q: str = Query(default="", description="Free-text query, any script"),
        limit: int | None = Query(default=None, description="Result cap (clamped to 1..20)"),
        sort: str | None = Query(default=None, description="date | relevance"),
        mode: str | None = Query(default=None, description="general | clinical | evidence | latest | saved"),
        fullTextOnly: str | None = Query(default=None),
        category: str | None = Query(default=None, description="Topical hint"),
        sourceType: str | None = Query(default=None, description="papers | trials"),
        minDate: str | None = Query(default=None, description="PubMed publication date lower bound, YYYY[/MM[/DD]]"),
        maxDate: str | None = Query(default=None, description="PubMed publication date upper bound"),
    ) -> Any:
        """Federated search across every enabled backend."""
        try:
            search_request = SearchRequest.from_params(
                q,
                limit=limit,
                sort=sort,
                mode=mode,
                category=category,
                full_text_only=fullTextOnly,
                source_group=sourceType,
                min_date=minDate,
                max_date=maxDate,
            )
        except InvalidParameterError as e:
            return _error(400, e)

        try:
            result = await request.app.state.engine.search(search_request)
        except HanuiSearchError as e:
            logger.error(f"Search failed for {q!r}: {e}")
            return _error(500, e)

        return PapersResponse.model_validate(result.to_dict())

    @app.get(
        "/api/papers/abstract",
        response_model=AbstractResponse,
        responses={400: {"description": "Unsupported id"}, 404: {"description": "No abstract"}},
    )
    async def get_abstract(
        request: Request,
        id: str = Query(default="", description="Record id, e.g. pubmed_12345678 or kci_ART001"),
    ) -> Any:
        """Full abstract for a single PubMed or KCI record."""
        try:
            abstract = await request.app.state.engine.fetch_abstract(id)
        except InvalidQueryError as e:
            return _error(400, e)
        except NotFoundError as e:
            return _error(404, e)
        except HanuiSearchError as e:
            logger.error(f"Abstract lookup failed for {id!r}: {e}")
            return _error(502, e)
        return AbstractResponse(id=id, abstract=abstract)

    return app


def run_api_server(host: str = "127.0.0.1", port: int = DEFAULT_API_PORT) -> None:
    """
    Run the HTTP API server.

    Args:
        host: Host to bind to (default: 127.0.0.1 for local only)
        port: Port to bind to (default: 8765)
    """
    import uvicorn

    logger.info(f"Starting HTTP API server on {host}:{port}")
    uvicorn.run(create_api_server(), host=host, port=port, log_level="info")


def main() -> None:
    parser = argparse.ArgumentParser(description="Hanui Search HTTP API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=DEFAULT_API_PORT, help="Port to bind to")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_api_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
