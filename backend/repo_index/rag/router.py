"""Search and indexing endpoints.

Endpoints:
    POST /v1/search             Search all indexed content
    POST /v1/search/compact     Search Compact contracts only
    POST /v1/search/typescript  Search TypeScript/JavaScript only
    POST /v1/search/docs        Search Markdown documentation only
    POST /v1/index              Full index of configured repositories
    POST /v1/index/incremental  Re-index files changed since a timestamp
    GET  /v1/stats              Vector store statistics
"""
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from repo_index.context import RetrievalContext
from repo_index.errors import ValidationError

from .indexer import IndexingOrchestrator
from .query import QueryService
from .schemas import (
    IncrementalIndexRequest,
    IndexRepositoryResult,
    IndexRequest,
    IndexResponse,
    SearchRequest,
    SearchResponse,
    StatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["search"])


def _context(request: Request) -> RetrievalContext:
    return request.app.state.context


def _query_service(request: Request) -> QueryService:
    return request.app.state.query_service


def _orchestrator(request: Request) -> IndexingOrchestrator:
    return request.app.state.orchestrator


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

async def _search(
    request: Request,
    body: SearchRequest,
    language: Optional[str],
    endpoint: str,
) -> SearchResponse | JSONResponse:
    repository = None
    if body.filter is not None:
        language = language or body.filter.language
        repository = body.filter.repository

    try:
        return await _query_service(request).query(
            body.query,
            limit=body.limit,
            language=language,
            repository=repository,
        )
    except ValidationError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    except Exception as exc:
        logger.exception("[%s] Search failed: %s", endpoint, exc)
        return JSONResponse({"error": "Search failed"}, status_code=500)


@router.post("/search", response_model=SearchResponse)
async def search(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
    """Search across every indexed language, optionally filtered."""
    return await _search(request, body, None, "v1/search")


@router.post("/search/compact", response_model=SearchResponse)
async def search_compact(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
    return await _search(request, body, "compact", "v1/search/compact")


@router.post("/search/typescript", response_model=SearchResponse)
async def search_typescript(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
    return await _search(request, body, "typescript", "v1/search/typescript")


@router.post("/search/docs", response_model=SearchResponse)
async def search_docs(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
    return await _search(request, body, "markdown", "v1/search/docs")


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------

@router.post("/index", response_model=IndexResponse)
async def index_repositories(
    request: Request,
    body: Optional[IndexRequest] = None,
) -> IndexResponse | JSONResponse:
    """Run a full index of all (or the named) configured repositories."""
    settings = _context(request).settings

    repositories = None
    if body is not None and body.repositories:
        repositories = []
        for name in body.repositories:
            repo_cfg = settings.find_repository(name)
            if repo_cfg is None:
                return JSONResponse(
                    {"error": f"Repository not configured: {name}"}, status_code=404,
                )
            repositories.append(repo_cfg)

    try:
        stats = await _orchestrator(request).index_all_repositories(repositories)
    except Exception as exc:
        logger.exception("[v1/index] Indexing failed: %s", exc)
        return JSONResponse({"error": "Indexing failed"}, status_code=500)

    return IndexResponse(
        total_files=stats.total_files,
        total_chunks=stats.total_chunks,
        total_code_units=stats.total_code_units,
        repositories_indexed=stats.repositories_indexed,
        repositories_failed=stats.repositories_failed,
        last_indexed=stats.last_indexed,
    )


@router.post("/index/incremental", response_model=IndexRepositoryResult)
async def index_incremental(
    request: Request,
    body: IncrementalIndexRequest,
) -> IndexRepositoryResult | JSONResponse:
    """Re-index one configured repository's files changed since ``since``."""
    repo_cfg = _context(request).settings.find_repository(f"{body.owner}/{body.repo}")
    if repo_cfg is None:
        return JSONResponse(
            {"error": f"Repository not configured: {body.owner}/{body.repo}"}, status_code=404,
        )

    try:
        result = await _orchestrator(request).incremental_update(repo_cfg, body.since)
    except Exception as exc:
        logger.exception("[v1/index/incremental] Update failed for %s: %s", repo_cfg.full_name, exc)
        return JSONResponse({"error": "Incremental update failed"}, status_code=500)

    return IndexRepositoryResult(
        repository=result.repository,
        file_count=result.file_count,
        chunk_count=result.chunk_count,
        code_unit_count=result.code_unit_count,
        pruned_paths=result.pruned_paths,
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(request: Request) -> StatsResponse:
    ctx = _context(request)
    store_stats = await ctx.store.get_stats()
    return StatsResponse(
        count=store_stats["count"],
        connected=ctx.store.is_connected,
        embedding_model=ctx.embeddings.model_id,
        degraded_embeddings=ctx.embeddings.is_degraded,
    )
