"""Async vector store adapter used by the orchestrator and query service.

Wraps ``FaissVectorStore`` and runs its blocking calls in worker threads.
When the store is disabled or fails to open, the adapter enters
*unreachable* mode: every call logs a warning and returns an empty or
neutral result, so retrieval degrades instead of failing.  Backend errors
at call time are wrapped in ``StoreError``, logged, and absorbed the same
way.
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from repo_index.errors import StoreError

from .models import IndexedDocument, SearchResult
from .vector_store import FaissVectorStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VectorStoreAdapter:
    """Async facade over the FAISS store.

    Args:
        dim:      Embedding dimensionality.
        data_dir: Persistence directory (``None`` keeps the index in memory).
        enabled:  ``False`` starts the adapter in unreachable mode.
    """

    def __init__(self, dim: int, data_dir: Optional[str] = None, enabled: bool = True) -> None:
        self._dim = dim
        self._data_dir = Path(data_dir) if data_dir else None
        self._enabled = enabled
        self._store: Optional[FaissVectorStore] = None

    @property
    def is_connected(self) -> bool:
        return self._store is not None

    async def connect(self) -> bool:
        """Open the store, loading a persisted index if one exists.

        Returns:
            True when the store is usable.  False means unreachable mode.
        """
        if not self._enabled:
            logger.warning("[VectorStoreAdapter] Vector store disabled; running without an index")
            return False

        try:
            self._store = await asyncio.to_thread(self._open)
        except Exception as exc:
            err = StoreError(f"Could not open vector store: {exc}", operation="connect")
            logger.warning("[VectorStoreAdapter] %s; running without an index", err.message)
            self._store = None
            return False
        return True

    def _open(self) -> FaissVectorStore:
        store = FaissVectorStore(dim=self._dim, data_dir=self._data_dir)
        if store.load():
            logger.info("[VectorStoreAdapter] Restored %d chunks", store.size)
        return store

    async def close(self) -> None:
        if self._store is not None and self._data_dir is not None:
            await self.persist()
        self._store = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_documents(self, documents: list[IndexedDocument]) -> int:
        """Upsert documents by id.  Returns the number written (0 on failure)."""
        if not documents:
            return 0
        return await self._call("add_documents", 0, lambda s: s.upsert(documents))

    async def delete_by_path(self, repository: str, file_path: str) -> int:
        return await self._call(
            "delete_by_path",
            0,
            lambda s: s.delete_where({"repository": repository, "file_path": file_path}),
        )

    async def delete_repository(self, repository: str) -> int:
        return await self._call(
            "delete_repository", 0, lambda s: s.delete_where({"repository": repository}),
        )

    async def clear(self) -> None:
        await self._call("clear", None, lambda s: s.clear())

    async def persist(self) -> None:
        if self._data_dir is None:
            return
        await self._call("persist", None, lambda s: s.save())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(
        self,
        query_embedding: list[float],
        limit: int = 10,
        metadata_filter: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        """Nearest chunks, best first, with relevance scores in [0, 1]."""
        hits = await self._call(
            "search", [], lambda s: s.search(query_embedding, top_k=limit, filters=metadata_filter),
        )
        return [
            SearchResult(id=cid, content=content, score=_relevance(score), metadata=meta)
            for cid, score, content, meta in hits
        ]

    async def get_stats(self) -> dict[str, int]:
        count = await self._call("get_stats", 0, lambda s: s.count())
        return {"count": count}

    async def count(self, metadata_filter: Optional[dict[str, Any]] = None) -> int:
        return await self._call("count", 0, lambda s: s.count(metadata_filter))

    async def list_file_paths(self, repository: str) -> list[str]:
        return await self._call("list_file_paths", [], lambda s: s.file_paths(repository))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, neutral: T, fn: Callable[[FaissVectorStore], T]) -> T:
        store = self._store
        if store is None:
            logger.warning("[VectorStoreAdapter] %s skipped: vector store unavailable", operation)
            return neutral

        try:
            return await asyncio.to_thread(fn, store)
        except Exception as exc:
            err = StoreError(f"Vector store {operation} failed: {exc}", operation=operation)
            logger.error("[VectorStoreAdapter] %s", err.message)
            return neutral


def _relevance(cosine: float) -> float:
    """Map cosine similarity to a [0, 1] relevance score."""
    return max(0.0, min(1.0, cosine))
