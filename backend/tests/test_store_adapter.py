"""Tests for VectorStoreAdapter: async wrapper, relevance scores and unreachable mode."""
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from repo_index.rag.models import ChunkMetadata, IndexedDocument
from repo_index.rag.store import VectorStoreAdapter

DIM = 4


def _doc(doc_id, vec, language="compact", file_path="src/a.compact", repository="org/repo"):
    return IndexedDocument(
        id=doc_id,
        content=f"body {doc_id}",
        embedding=vec,
        metadata=ChunkMetadata(
            repository=repository,
            file_path=file_path,
            language=language,
            start_line=1,
            end_line=3,
        ),
    )


@pytest_asyncio.fixture
async def adapter(tmp_path):
    store = VectorStoreAdapter(dim=DIM, data_dir=str(tmp_path / "index"))
    assert await store.connect() is True
    yield store
    await store.close()


class TestConnectedAdapter:
    @pytest.mark.asyncio
    async def test_add_and_search(self, adapter):
        written = await adapter.add_documents([
            _doc("a", [1.0, 0.0, 0.0, 0.0]),
            _doc("b", [0.0, 1.0, 0.0, 0.0]),
        ])
        assert written == 2

        results = await adapter.search([1.0, 0.0, 0.0, 0.0], limit=2)
        assert [r.id for r in results] == ["a", "b"]
        assert results[0].content == "body a"
        assert results[0].score == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_relevance_is_clamped_to_unit_interval(self, adapter):
        await adapter.add_documents([_doc("opposite", [-1.0, 0.0, 0.0, 0.0])])
        results = await adapter.search([1.0, 0.0, 0.0, 0.0], limit=1)

        assert results[0].score == 0.0
        for r in results:
            assert 0.0 <= r.score <= 1.0

    @pytest.mark.asyncio
    async def test_language_filter(self, adapter):
        await adapter.add_documents([
            _doc("c", [1.0, 0.0, 0.0, 0.0], language="compact"),
            _doc("t", [1.0, 0.1, 0.0, 0.0], language="typescript", file_path="src/a.ts"),
        ])

        compact = await adapter.search([1.0, 0.0, 0.0, 0.0], limit=10, metadata_filter={"language": "compact"})
        ts = await adapter.search([1.0, 0.0, 0.0, 0.0], limit=10, metadata_filter={"language": "typescript"})

        assert [r.metadata.language for r in compact] == ["compact"]
        assert [r.metadata.language for r in ts] == ["typescript"]

    @pytest.mark.asyncio
    async def test_delete_by_path_and_repository(self, adapter):
        await adapter.add_documents([
            _doc("a", [1.0, 0.0, 0.0, 0.0], file_path="a.compact"),
            _doc("b", [0.0, 1.0, 0.0, 0.0], file_path="b.compact"),
            _doc("c", [0.0, 0.0, 1.0, 0.0], repository="org/other"),
        ])

        assert await adapter.delete_by_path("org/repo", "a.compact") == 1
        assert await adapter.list_file_paths("org/repo") == ["b.compact"]

        assert await adapter.delete_repository("org/repo") == 1
        assert await adapter.get_stats() == {"count": 1}

    @pytest.mark.asyncio
    async def test_persists_across_reconnect(self, tmp_path):
        data_dir = str(tmp_path / "index")
        first = VectorStoreAdapter(dim=DIM, data_dir=data_dir)
        await first.connect()
        await first.add_documents([_doc("a", [1.0, 0.0, 0.0, 0.0])])
        await first.close()

        second = VectorStoreAdapter(dim=DIM, data_dir=data_dir)
        await second.connect()
        assert await second.count() == 1
        await second.close()

    @pytest.mark.asyncio
    async def test_backend_error_becomes_neutral_result(self, adapter, caplog):
        adapter._store = MagicMock()
        adapter._store.search.side_effect = RuntimeError("disk gone")

        assert await adapter.search([1.0, 0.0, 0.0, 0.0]) == []
        assert "Vector store search failed" in caplog.text


class TestUnreachableAdapter:
    @pytest.mark.asyncio
    async def test_disabled_store_returns_neutral_results(self, caplog):
        store = VectorStoreAdapter(dim=DIM, enabled=False)
        assert await store.connect() is False
        assert store.is_connected is False

        assert await store.search([1.0, 0.0, 0.0, 0.0]) == []
        assert await store.add_documents([_doc("a", [1.0, 0.0, 0.0, 0.0])]) == 0
        assert await store.delete_by_path("org/repo", "a.compact") == 0
        assert await store.get_stats() == {"count": 0}
        assert await store.list_file_paths("org/repo") == []
        assert "vector store unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_open_failure_enters_unreachable_mode(self, monkeypatch):
        store = VectorStoreAdapter(dim=DIM)

        def boom():
            raise RuntimeError("cannot open")

        monkeypatch.setattr(store, "_open", boom)
        assert await store.connect() is False
        assert await store.search([1.0, 0.0, 0.0, 0.0]) == []
