"""Indexing orchestrator: fetch → parse → chunk → embed → store.

Full indexing rewrites every file of a repository and prunes files that
disappeared from the tree.  Incremental updates re-index only the files
touched by commits since a timestamp.  Both are idempotent: chunk ids are
derived from ``(repository, file_path, start_line)`` and each file's old
chunks are deleted before its new ones are written.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from repo_index.config import RepositorySettings
from repo_index.context import RetrievalContext
from repo_index.errors import FetchError
from repo_index.sources.patterns import filter_paths

from .chunker import create_chunks, utc_now_iso
from .models import Chunk, IndexedDocument, SourceFile
from .parser import parse_file

logger = logging.getLogger(__name__)


@dataclass
class RepositoryIndexResult:
    repository: str
    file_count: int = 0
    chunk_count: int = 0
    code_unit_count: int = 0
    pruned_paths: list[str] = field(default_factory=list)


@dataclass
class IndexStats:
    total_files: int = 0
    total_chunks: int = 0
    total_code_units: int = 0
    repositories_indexed: list[str] = field(default_factory=list)
    repositories_failed: list[str] = field(default_factory=list)
    last_indexed: str = ""


class IndexingOrchestrator:
    """Drives indexing passes against the components of a RetrievalContext."""

    def __init__(self, context: RetrievalContext) -> None:
        self._ctx = context
        self._settings = context.settings

    # ------------------------------------------------------------------
    # Full indexing
    # ------------------------------------------------------------------

    async def index_repository(
        self,
        repo_cfg: RepositorySettings,
        indexed_at: Optional[str] = None,
    ) -> RepositoryIndexResult:
        """Index every matching file of one repository.

        Raises:
            FetchError:     If the repository tree cannot be listed.
            EmbeddingError: If embedding fails; the store is left untouched.
        """
        repository = repo_cfg.full_name
        indexed_at = indexed_at or utc_now_iso()
        logger.info("[Indexer] Full index of %s@%s", repository, repo_cfg.branch)

        listing = await self._ctx.github.list_matching_paths(repo_cfg)
        paths = listing.paths
        files = await self._ctx.github.fetch_files(
            repo_cfg.owner, repo_cfg.repo, paths, repo_cfg.branch,
        )

        per_file, unit_count = self._chunk_files(files, repo_cfg, indexed_at)
        chunk_count = await self._embed_and_store(repository, per_file)

        pruned: list[str] = []
        if listing.truncated:
            logger.warning(
                "[Indexer] %s: tree listing is incomplete, skipping pruning", repository,
            )
        elif self._settings.indexing.prune_deleted:
            live = set(paths)
            for stored_path in await self._ctx.store.list_file_paths(repository):
                if stored_path not in live:
                    await self._ctx.store.delete_by_path(repository, stored_path)
                    pruned.append(stored_path)
            if pruned:
                logger.info("[Indexer] %s: pruned %d deleted file(s)", repository, len(pruned))

        await self._ctx.store.persist()

        logger.info(
            "[Indexer] %s: %d files, %d chunks, %d code units",
            repository, len(files), chunk_count, unit_count,
        )
        return RepositoryIndexResult(
            repository=repository,
            file_count=len(files),
            chunk_count=chunk_count,
            code_unit_count=unit_count,
            pruned_paths=pruned,
        )

    async def index_all_repositories(
        self,
        repositories: Optional[Sequence[RepositorySettings]] = None,
    ) -> IndexStats:
        """Index repositories one after another; a failure skips only that repository."""
        repositories = list(repositories if repositories is not None else self._settings.repositories)
        indexed_at = utc_now_iso()
        stats = IndexStats(last_indexed=indexed_at)

        logger.info("[Indexer] Starting full index of %d repositories", len(repositories))
        for repo_cfg in repositories:
            try:
                result = await self.index_repository(repo_cfg, indexed_at=indexed_at)
            except Exception as exc:
                logger.error("[Indexer] Failed to index %s: %s", repo_cfg.full_name, exc)
                stats.repositories_failed.append(repo_cfg.full_name)
                continue

            stats.total_files += result.file_count
            stats.total_chunks += result.chunk_count
            stats.total_code_units += result.code_unit_count
            stats.repositories_indexed.append(result.repository)

        logger.info(
            "[Indexer] Indexing complete: %d indexed, %d failed, %d files, %d chunks",
            len(stats.repositories_indexed), len(stats.repositories_failed),
            stats.total_files, stats.total_chunks,
        )
        return stats

    # ------------------------------------------------------------------
    # Incremental indexing
    # ------------------------------------------------------------------

    async def incremental_update(
        self,
        repo_cfg: RepositorySettings,
        since: str,
        indexed_at: Optional[str] = None,
    ) -> RepositoryIndexResult:
        """Re-index files changed since *since* (ISO-8601).

        Files that no longer exist lose their chunks.  Files that cannot be
        fetched keep their existing chunks.
        """
        repository = repo_cfg.full_name
        indexed_at = indexed_at or utc_now_iso()

        changed = await self._ctx.github.get_changed_files(
            repo_cfg.owner, repo_cfg.repo, since, branch=repo_cfg.branch,
        )
        paths = filter_paths(changed, repo_cfg.patterns, repo_cfg.exclude)
        logger.info(
            "[Indexer] %s: %d changed path(s) since %s, %d match patterns",
            repository, len(changed), since, len(paths),
        )

        files: list[SourceFile] = []
        removed: list[str] = []
        for path in paths:
            try:
                source = await self._ctx.github.get_file_content(
                    repo_cfg.owner, repo_cfg.repo, path, repo_cfg.branch,
                )
            except FetchError as exc:
                logger.warning(
                    "[Indexer] %s: keeping existing chunks for %s, fetch failed: %s",
                    repository, path, exc.message,
                )
                continue
            if source is None:
                removed.append(path)
            else:
                files.append(source)

        per_file, unit_count = self._chunk_files(files, repo_cfg, indexed_at)
        chunk_count = await self._embed_and_store(repository, per_file)

        for path in removed:
            await self._ctx.store.delete_by_path(repository, path)

        await self._ctx.store.persist()

        logger.info(
            "[Indexer] %s: incremental update re-indexed %d file(s) (%d chunks), removed %d",
            repository, len(files), chunk_count, len(removed),
        )
        return RepositoryIndexResult(
            repository=repository,
            file_count=len(files),
            chunk_count=chunk_count,
            code_unit_count=unit_count,
            pruned_paths=removed,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _chunk_files(
        self,
        files: list[SourceFile],
        repo_cfg: RepositorySettings,
        indexed_at: str,
    ) -> tuple[list[tuple[str, list[Chunk]]], int]:
        indexing = self._settings.indexing
        per_file: list[tuple[str, list[Chunk]]] = []
        unit_count = 0

        for source in files:
            parsed = parse_file(source.path, source.content)
            unit_count += len(parsed.code_units)
            chunks = create_chunks(
                parsed,
                repository=repo_cfg.full_name,
                repo_version=repo_cfg.branch,
                indexed_at=indexed_at,
                window_chars=indexing.window_chars,
                overlap_lines=indexing.overlap_lines,
            )
            per_file.append((source.path, chunks))

        return per_file, unit_count

    async def _embed_and_store(
        self,
        repository: str,
        per_file: list[tuple[str, list[Chunk]]],
    ) -> int:
        """Embed all chunks in one pass, then replace each file's chunks."""
        texts = [c.text for _, chunks in per_file for c in chunks]
        logger.info("[Indexer] %s: generating embeddings for %d chunks", repository, len(texts))
        vectors = await self._ctx.embeddings.generate_embeddings(texts)

        offset = 0
        for path, chunks in per_file:
            docs = [
                IndexedDocument.from_chunk(chunk, vectors[offset + i])
                for i, chunk in enumerate(chunks)
            ]
            offset += len(chunks)
            await self._ctx.store.delete_by_path(repository, path)
            await self._ctx.store.add_documents(docs)

        return len(texts)
