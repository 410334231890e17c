"""repo-index HTTP service.

Indexes code and documentation from configured GitHub repositories into a
FAISS vector store and serves semantic search over it.

Run with::

    uvicorn repo_index.main:app --app-dir backend
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repo_index.config import AppSettings, get_config
from repo_index.context import RetrievalContext
from repo_index.log import configure_logging
from repo_index.rag.indexer import IndexingOrchestrator
from repo_index.rag.query import QueryService
from repo_index.rag.router import router as search_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[AppSettings] = None,
    context: Optional[RetrievalContext] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to the context's settings, then
                  to ``get_config()``.
        context:  Pre-built retrieval context (tests inject fakes here).
                  When omitted one is built from *settings* at startup.
    """
    if settings is None:
        settings = context.settings if context is not None else get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.logging.level)

        ctx = context or RetrievalContext(settings)
        await ctx.connect()

        app.state.context = ctx
        app.state.query_service = QueryService(
            ctx.embeddings, ctx.store, default_limit=settings.query.default_limit,
        )
        app.state.orchestrator = IndexingOrchestrator(ctx)
        logger.info(
            "repo-index ready on http://%s:%d (%d repositories configured)",
            settings.server.host, settings.server.port, len(settings.repositories),
        )

        yield

        await ctx.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="repo-index API",
        description="Semantic search over indexed repository code and documentation",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    app.include_router(search_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Liveness plus a summary of degraded modes."""
        ctx: RetrievalContext = request.app.state.context
        return {
            "status": "ok",
            "vector_store": "connected" if ctx.store.is_connected else "unavailable",
            "embedding_model": ctx.embeddings.model_id,
        }

    return app


app = create_app()
