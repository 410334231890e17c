"""Query service: validate → embed → search → format.

Input is validated before any embedding call is made.  Filters can come
from explicit arguments or from ``language:``, ``repo:`` and ``type:``
tokens embedded in the query text; explicit arguments win.
"""
import logging
from typing import Any, Dict, Optional

from repo_index.embeddings import EmbeddingGenerator
from repo_index.errors import ValidationError

from .models import SearchResult
from .schemas import ResultSource, SearchResponse, SearchResultItem
from .search_utils import parse_query
from .store import VectorStoreAdapter

logger = logging.getLogger(__name__)

MAX_QUERY_CHARS = 1000
DEFAULT_LIMIT = 10
MIN_LIMIT = 1
MAX_LIMIT = 50

_QUERY_TOKENS = ["language", "repo", "type"]


def validate_query(text: Any) -> str:
    """Return *text* stripped.

    Raises:
        ValidationError: If *text* is not a string, is empty after
            stripping, or is longer than 1000 characters.
    """
    if not isinstance(text, str):
        raise ValidationError("query is required (1-1000 chars)", field="query")
    stripped = text.strip()
    if not stripped or len(stripped) > MAX_QUERY_CHARS:
        raise ValidationError("query is required (1-1000 chars)", field="query")
    return stripped


def clamp_limit(limit: Any, default: int = DEFAULT_LIMIT) -> int:
    """Clamp *limit* to [1, 50]; anything non-numeric becomes *default*."""
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        return default
    return int(min(max(MIN_LIMIT, limit), MAX_LIMIT))


class QueryService:
    """Semantic search over the indexed chunks.

    Args:
        embeddings:    Generator used to embed the query text.
        store:         Vector store adapter to search.
        default_limit: Result count when the caller gives none.
    """

    def __init__(
        self,
        embeddings: EmbeddingGenerator,
        store: VectorStoreAdapter,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._embeddings = embeddings
        self._store = store
        self._default_limit = default_limit

    async def query(
        self,
        text: Any,
        limit: Any = None,
        language: Optional[str] = None,
        repository: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> SearchResponse:
        """Search and return attributed results, best first.

        Raises:
            ValidationError: On invalid query text (no embedding call made).
            EmbeddingError:  If the query cannot be embedded.
        """
        query = validate_query(text)
        top_k = clamp_limit(limit, self._default_limit)

        parsed = parse_query(query, keys=_QUERY_TOKENS)
        metadata_filter: Dict[str, Any] = dict(filters or {})

        language = language or _first(parsed.filters.get("language"))
        repository = repository or _first(parsed.filters.get("repo"))
        code_type = _first(parsed.filters.get("type"))
        if language:
            metadata_filter["language"] = language.lower()
        if repository:
            metadata_filter["repository"] = repository
        if code_type:
            metadata_filter["code_unit_type"] = code_type.lower()

        # A query made only of filter tokens still needs something to embed.
        embed_text = parsed.terms or query

        logger.info(
            "[QueryService] query=%r limit=%d filter=%s", embed_text[:80], top_k, metadata_filter,
        )
        vector = await self._embeddings.generate_embedding(embed_text)
        hits = await self._store.search(vector, limit=top_k, metadata_filter=metadata_filter or None)

        return SearchResponse(
            results=[format_result(hit) for hit in hits],
            query=query,
            total_results=len(hits),
        )


def format_result(hit: SearchResult) -> SearchResultItem:
    meta = hit.metadata
    return SearchResultItem(
        id=hit.id,
        content=hit.content,
        relevance_score=hit.score,
        source=ResultSource(
            repository=meta.repository,
            file_path=meta.file_path,
            lines=f"{meta.start_line}-{meta.end_line}",
        ),
        code_type=meta.code_unit_type or "unknown",
        code_name=meta.code_unit_name or "",
        language=meta.language,
        repo_version=meta.repo_version,
        pragma_version=meta.pragma_version,
    )


def _first(values: Optional[list]) -> Optional[str]:
    return values[0] if values else None
