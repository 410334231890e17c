"""End-to-end indexing tests: FakeGitHub → parser → chunker → fallback
embeddings → tmp FAISS store.
"""
from unittest.mock import AsyncMock

import pytest

from repo_index.config import RepositorySettings
from repo_index.errors import EmbeddingError
from repo_index.rag.indexer import IndexingOrchestrator

from fakes import COUNTER_CONTRACT

REPO = "org/contract-lib"
PATH = "src/counter.compact"
SINCE = "2026-01-01T00:00:00Z"

CIRCUIT_ONLY = """pragma language_version >= 0.14.0;

export circuit increment(): [] {
  return;
}
"""


async def _chunks(context, file_path=None, repository=REPO):
    """Every stored chunk for a repository (or one of its files)."""
    filters = {"repository": repository}
    if file_path:
        filters["file_path"] = file_path
    query = await context.embeddings.generate_embedding("anything")
    return await context.store.search(query, limit=1000, metadata_filter=filters)


class TestFullIndex:
    @pytest.mark.asyncio
    async def test_counter_contract(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "README.md": "# Counter\n"})

        result = await IndexingOrchestrator(context).index_repository(contract_repo, indexed_at="T0")

        assert result.file_count == 1
        assert result.code_unit_count == 2
        assert result.chunk_count == 2

        stored = await _chunks(context)
        assert {c.metadata.chunk_type for c in stored} == {"code_unit"}
        assert {c.metadata.code_unit_name for c in stored} == {"counter", "increment"}
        assert {c.id for c in stored} == {f"{REPO}:{PATH}:6", f"{REPO}:{PATH}:9"}
        for c in stored:
            assert c.metadata.language == "compact"
            assert c.metadata.repo_version == "main"
            assert c.metadata.pragma_version == "0.14.0"
            assert c.metadata.indexed_at == "T0"

    @pytest.mark.asyncio
    async def test_reindex_is_idempotent(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})
        orchestrator = IndexingOrchestrator(context)

        await orchestrator.index_repository(contract_repo)
        first = sorted(c.id for c in await _chunks(context))
        await orchestrator.index_repository(contract_repo)
        second = sorted(c.id for c in await _chunks(context))

        assert first == second
        assert await context.store.count() == 2

    @pytest.mark.asyncio
    async def test_file_without_units_is_still_indexed(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {"src/empty.compact": "pragma language_version >= 0.14.0;\n// nothing here\n"})

        result = await IndexingOrchestrator(context).index_repository(contract_repo)

        assert result.chunk_count == 1
        stored = await _chunks(context)
        assert stored[0].metadata.chunk_type == "file_chunk"
        assert stored[0].metadata.start_line == 1

    @pytest.mark.asyncio
    async def test_deleted_files_are_pruned(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "src/old.compact": CIRCUIT_ONLY})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)

        del fake_github.files[REPO]["src/old.compact"]
        result = await orchestrator.index_repository(contract_repo)

        assert result.pruned_paths == ["src/old.compact"]
        assert await context.store.list_file_paths(REPO) == [PATH]

    @pytest.mark.asyncio
    async def test_truncated_tree_does_not_prune(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "src/other.compact": CIRCUIT_ONLY})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)
        other_chunks = await _chunks(context, "src/other.compact")
        assert other_chunks

        fake_github.partial_trees[REPO] = [PATH]
        result = await orchestrator.index_repository(contract_repo)

        assert result.pruned_paths == []
        assert await context.store.list_file_paths(REPO) == [PATH, "src/other.compact"]
        assert len(await _chunks(context, "src/other.compact")) == len(other_chunks)

    @pytest.mark.asyncio
    async def test_malformed_file_body_is_skipped(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "src/bad.compact": CIRCUIT_ONLY})
        fake_github.malformed_paths.add("src/bad.compact")

        result = await IndexingOrchestrator(context).index_repository(contract_repo)

        assert result.file_count == 1
        assert await context.store.list_file_paths(REPO) == [PATH]

    @pytest.mark.asyncio
    async def test_unfetchable_file_is_skipped(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "src/bad.compact": CIRCUIT_ONLY})
        fake_github.failing_paths.add("src/bad.compact")

        result = await IndexingOrchestrator(context).index_repository(contract_repo)

        assert result.file_count == 1
        assert await context.store.list_file_paths(REPO) == [PATH]

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_store_untouched(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)

        context.embeddings.generate_embeddings = AsyncMock(side_effect=EmbeddingError("provider down"))
        with pytest.raises(EmbeddingError):
            await orchestrator.index_repository(contract_repo)

        assert await context.store.count() == 2


class TestIndexAll:
    @pytest.mark.asyncio
    async def test_failure_is_isolated_per_repository(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})
        missing = RepositorySettings(owner="org", repo="missing", patterns=["**/*.compact"])

        stats = await IndexingOrchestrator(context).index_all_repositories([missing, contract_repo])

        assert stats.repositories_failed == ["org/missing"]
        assert stats.repositories_indexed == [REPO]
        assert stats.total_files == 1
        assert stats.total_chunks == 2
        assert stats.total_code_units == 2
        assert stats.last_indexed

    @pytest.mark.asyncio
    async def test_defaults_to_configured_repositories(self, context, fake_github):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})

        stats = await IndexingOrchestrator(context).index_all_repositories()
        assert stats.repositories_indexed == [REPO]


class TestIncrementalUpdate:
    @pytest.mark.asyncio
    async def test_shrunk_file_leaves_no_stale_chunks(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)

        fake_github.files[REPO][PATH] = CIRCUIT_ONLY
        fake_github.add_commit(REPO, "c1", [PATH])
        result = await orchestrator.incremental_update(contract_repo, SINCE)

        assert result.file_count == 1
        stored = await _chunks(context, PATH)
        assert [c.metadata.code_unit_name for c in stored] == ["increment"]
        assert all("Uint<64>" not in c.content for c in stored)
        assert stored[0].id == f"{REPO}:{PATH}:3"

    @pytest.mark.asyncio
    async def test_untouched_files_keep_their_chunks(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "src/other.compact": CIRCUIT_ONLY})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)

        fake_github.add_commit(REPO, "c1", [PATH])
        await orchestrator.incremental_update(contract_repo, SINCE)

        assert len(await _chunks(context, "src/other.compact")) == 1

    @pytest.mark.asyncio
    async def test_deleted_file_loses_chunks(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)

        del fake_github.files[REPO][PATH]
        fake_github.add_commit(REPO, "c1", [PATH])
        result = await orchestrator.incremental_update(contract_repo, SINCE)

        assert result.pruned_paths == [PATH]
        assert await context.store.count() == 0

    @pytest.mark.asyncio
    async def test_fetch_error_keeps_old_chunks(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})
        orchestrator = IndexingOrchestrator(context)
        await orchestrator.index_repository(contract_repo)

        fake_github.failing_paths.add(PATH)
        fake_github.add_commit(REPO, "c1", [PATH])
        result = await orchestrator.incremental_update(contract_repo, SINCE)

        assert result.file_count == 0
        assert await context.store.count() == 2

    @pytest.mark.asyncio
    async def test_non_matching_changes_are_ignored(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT, "src/index.ts": "export {}"})
        fake_github.add_commit(REPO, "c1", ["src/index.ts"])

        result = await IndexingOrchestrator(context).incremental_update(contract_repo, SINCE)

        assert result.file_count == 0
        assert await context.store.count() == 0

    @pytest.mark.asyncio
    async def test_no_commits_is_a_noop(self, context, fake_github, contract_repo):
        fake_github.add_repo(REPO, {PATH: COUNTER_CONTRACT})

        result = await IndexingOrchestrator(context).incremental_update(contract_repo, SINCE)
        assert result.file_count == 0
        assert result.chunk_count == 0
