"""FAISS-based vector store for indexed chunks.

Uses ``IndexFlatIP`` on L2-normalised vectors, so inner-product scores are
cosine similarities.  Brute-force search is fast enough for the expected
scale (tens of thousands of chunks across all repositories).

Persistence: ``faiss.write_index`` plus a JSON sidecar holding the
position → id map, chunk text and chunk metadata.

Thread safety: every operation holds ``_lock``.  Removal rebuilds the index,
so unlike an append-only store, searches cannot run lock-free.
"""
import fnmatch
import json
import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

import numpy as np

from .models import ChunkMetadata, IndexedDocument

logger = logging.getLogger(__name__)

INDEX_FILE = "index.faiss"
SIDECAR_FILE = "metadata.json"


def matches_filters(meta: ChunkMetadata, filters: Optional[dict]) -> bool:
    """Return True if *meta* passes every filter.

    Each key names a ``ChunkMetadata`` field and maps to a value (equality)
    or a list/tuple/set (membership).  ``file_patterns`` is special: a list
    of glob patterns matched against ``file_path``.  ``None`` values are
    ignored.
    """
    if not filters:
        return True

    for key, expected in filters.items():
        if expected is None:
            continue
        if key == "file_patterns":
            if not any(fnmatch.fnmatch(meta.file_path, p) for p in expected):
                return False
            continue

        actual = getattr(meta, key, None)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False

    return True


class FaissVectorStore:
    """Id-addressed wrapper around a FAISS ``IndexFlatIP`` index.

    Args:
        dim:      Vector dimensionality.
        data_dir: Optional directory for persistence (``save`` / ``load``).
    """

    def __init__(self, dim: int, data_dir: Optional[Path] = None) -> None:
        import faiss

        self._dim = dim
        self._data_dir = Path(data_dir) if data_dir else None
        self._index = faiss.IndexFlatIP(dim)
        self._id_map: list[str] = []  # position → chunk id
        self._metadata: dict[str, ChunkMetadata] = {}
        self._content: dict[str, str] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def size(self) -> int:
        return self._index.ntotal

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def upsert(self, documents: list[IndexedDocument]) -> int:
        """Insert documents, replacing any already stored under the same id.

        Within *documents* the last occurrence of an id wins.

        Raises:
            ValueError: If any embedding has the wrong length or is empty.
        """
        if not documents:
            return 0

        latest: dict[str, IndexedDocument] = {}
        for doc in documents:
            if len(doc.embedding) != self._dim:
                raise ValueError(
                    f"Embedding for {doc.id} has {len(doc.embedding)} dims, expected {self._dim}"
                )
            latest[doc.id] = doc

        vecs = self._normalise(np.array([d.embedding for d in latest.values()], dtype=np.float32))

        with self._lock:
            self._remove_where(lambda cid: cid in latest)
            self._index.add(vecs)
            for doc in latest.values():
                self._id_map.append(doc.id)
                self._metadata[doc.id] = doc.metadata
                self._content[doc.id] = doc.content

        return len(latest)

    def remove(self, chunk_ids: Iterable[str]) -> int:
        """Remove chunks by id.  Returns the number actually removed."""
        to_remove = set(chunk_ids)
        with self._lock:
            return self._remove_where(lambda cid: cid in to_remove)

    def delete_where(self, filters: dict) -> int:
        """Remove every chunk whose metadata matches *filters*."""
        with self._lock:
            return self._remove_where(
                lambda cid: matches_filters(self._metadata[cid], filters)
            )

    def clear(self) -> None:
        """Reset the index and all metadata."""
        import faiss

        with self._lock:
            self._index = faiss.IndexFlatIP(self._dim)
            self._id_map = []
            self._metadata = {}
            self._content = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        filters: Optional[dict] = None,
    ) -> list[tuple[str, float, str, ChunkMetadata]]:
        """Return up to *top_k* ``(chunk_id, score, content, metadata)`` tuples.

        Scores are cosine similarities, highest first.  With *filters* the
        whole index is scanned so that matching chunks are never crowded out
        by non-matching nearer neighbours.
        """
        if len(query_vector) != self._dim:
            raise ValueError(
                f"Query vector has {len(query_vector)} dims, expected {self._dim}"
            )

        vec = self._normalise(np.array([query_vector], dtype=np.float32))

        with self._lock:
            total = self._index.ntotal
            if total == 0 or top_k <= 0:
                return []

            fetch_k = total if filters else min(top_k, total)
            scores, indices = self._index.search(vec, fetch_k)

            results: list[tuple[str, float, str, ChunkMetadata]] = []
            for score, idx in zip(scores[0], indices[0]):
                if idx < 0:
                    continue
                chunk_id = self._id_map[idx]
                meta = self._metadata[chunk_id]
                if not matches_filters(meta, filters):
                    continue
                results.append((chunk_id, float(score), self._content.get(chunk_id, ""), meta))
                if len(results) >= top_k:
                    break

        return results

    def count(self, filters: Optional[dict] = None) -> int:
        with self._lock:
            if not filters:
                return len(self._id_map)
            return sum(1 for m in self._metadata.values() if matches_filters(m, filters))

    def file_paths(self, repository: Optional[str] = None) -> list[str]:
        """Distinct file paths stored, optionally for one repository."""
        with self._lock:
            paths = {
                m.file_path for m in self._metadata.values()
                if repository is None or m.repository == repository
            }
        return sorted(paths)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the index and sidecar to ``data_dir``."""
        import faiss

        if self._data_dir is None:
            raise ValueError("No data_dir configured for persistence")

        self._data_dir.mkdir(parents=True, exist_ok=True)
        index_path = self._data_dir / INDEX_FILE
        sidecar_path = self._data_dir / SIDECAR_FILE

        with self._lock:
            faiss.write_index(self._index, str(index_path))
            payload = {
                "dim": self._dim,
                "id_map": self._id_map,
                "metadata": {k: v.to_dict() for k, v in self._metadata.items()},
                "content": self._content,
            }
            sidecar_path.write_text(json.dumps(payload), encoding="utf-8")
            total = self._index.ntotal

        logger.info("[VectorStore] Saved %d vectors to %s", total, index_path)

    def load(self) -> bool:
        """Load a previously saved index.  Returns True on success.

        An index written with a different dimensionality (the embedding
        provider changed) is ignored; the next full index rebuilds it.
        """
        import faiss

        if self._data_dir is None:
            return False

        index_path = self._data_dir / INDEX_FILE
        sidecar_path = self._data_dir / SIDECAR_FILE
        if not index_path.exists() or not sidecar_path.exists():
            return False

        try:
            loaded_index = faiss.read_index(str(index_path))
            payload = json.loads(sidecar_path.read_text(encoding="utf-8"))
        except (OSError, RuntimeError, ValueError) as exc:
            logger.warning("[VectorStore] Failed to load index from %s: %s", index_path, exc)
            return False

        if loaded_index.d != self._dim:
            logger.warning(
                "[VectorStore] Stored index has %d dims but %d are configured; starting empty",
                loaded_index.d, self._dim,
            )
            return False

        id_map = payload.get("id_map", [])
        if len(id_map) != loaded_index.ntotal:
            logger.warning("[VectorStore] Sidecar does not match index at %s; starting empty", index_path)
            return False

        with self._lock:
            self._index = loaded_index
            self._id_map = id_map
            self._metadata = {
                k: ChunkMetadata.from_dict(v) for k, v in payload.get("metadata", {}).items()
            }
            self._content = payload.get("content", {})

        logger.info("[VectorStore] Loaded %d vectors from %s", loaded_index.ntotal, index_path)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _remove_where(self, predicate: Callable[[str], bool]) -> int:
        """Rebuild the index without ids matching *predicate*.  Caller holds the lock."""
        import faiss

        mask = np.array([not predicate(cid) for cid in self._id_map], dtype=bool)
        removed = int(mask.size - mask.sum())
        if removed == 0:
            return 0

        total = self._index.ntotal
        kept_vecs = self._index.reconstruct_n(0, total)[mask] if total else None

        kept_ids = []
        for cid, keep in zip(self._id_map, mask):
            if keep:
                kept_ids.append(cid)
            else:
                self._metadata.pop(cid, None)
                self._content.pop(cid, None)

        self._index = faiss.IndexFlatIP(self._dim)
        if kept_ids:
            self._index.add(np.ascontiguousarray(kept_vecs, dtype=np.float32))
        self._id_map = kept_ids
        return removed

    @staticmethod
    def _normalise(vecs: np.ndarray) -> np.ndarray:
        """L2-normalise each row in place and return the array."""
        import faiss

        faiss.normalize_L2(vecs)
        return vecs
