"""Pydantic schemas for the search and indexing API.

Response bodies use camelCase keys (``relevanceScore``, ``filePath``,
``totalResults``); Python code uses the snake_case field names.
"""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchFilter(BaseModel):
    """Optional metadata filter for POST /v1/search."""

    language: Optional[str] = Field(
        default=None, description="compact, typescript, markdown or text"
    )
    repository: Optional[str] = Field(
        default=None, description="owner/repo the results must come from"
    )


class SearchRequest(BaseModel):
    """Request body for the /v1/search endpoints.

    ``query`` and ``limit`` are validated by the query service rather than
    by pydantic so that bad input maps to 400 with a uniform message.
    """

    query: Any = Field(default=None, description="Natural language or code query, 1-1000 chars")
    limit: Any = Field(default=None, description="Max results, clamped to 1-50 (default 10)")
    filter: Optional[SearchFilter] = Field(default=None, description="Optional metadata filter")


class ResultSource(_CamelModel):
    repository: str
    file_path: str
    lines: str


class SearchResultItem(_CamelModel):
    id: str
    content: str
    relevance_score: float
    source: ResultSource
    code_type: str
    code_name: str = ""
    language: str = ""
    repo_version: str = ""
    pragma_version: Optional[str] = None


class SearchResponse(_CamelModel):
    results: List[SearchResultItem]
    query: str
    total_results: int


class IndexRepositoryResult(_CamelModel):
    repository: str
    file_count: int
    chunk_count: int
    code_unit_count: int
    pruned_paths: List[str] = Field(default_factory=list)


class IndexRequest(BaseModel):
    """Request body for POST /v1/index.  Empty means every configured repository."""

    repositories: Optional[List[str]] = Field(
        default=None, description="Repository names (repo or owner/repo) to index"
    )


class IndexResponse(_CamelModel):
    total_files: int
    total_chunks: int
    total_code_units: int
    repositories_indexed: List[str]
    repositories_failed: List[str]
    last_indexed: str


class IncrementalIndexRequest(BaseModel):
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    since: str = Field(..., min_length=1, description="ISO-8601 timestamp")


class StatsResponse(_CamelModel):
    count: int
    connected: bool
    embedding_model: str
    degraded_embeddings: bool
