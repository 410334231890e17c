"""Shared fixtures: a RetrievalContext wired to FakeGitHub with offline
embeddings and a tmp FAISS store.
"""
import pytest
import pytest_asyncio

from repo_index.config import RepositorySettings
from repo_index.context import RetrievalContext
from repo_index.embeddings import EmbeddingGenerator, FallbackEmbeddingProvider
from repo_index.rag.store import VectorStoreAdapter
from repo_index.sources.github import GitHubClient

from fakes import API_URL, DIM, FakeGitHub, make_settings


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def contract_repo() -> RepositorySettings:
    return RepositorySettings(
        owner="org",
        repo="contract-lib",
        branch="main",
        patterns=["**/*.compact"],
        exclude=["node_modules/**"],
    )


@pytest_asyncio.fixture
async def context(tmp_path, fake_github, contract_repo):
    """A connected RetrievalContext backed by FakeGitHub and a tmp FAISS store."""
    settings = make_settings(tmp_path, [contract_repo])
    ctx = RetrievalContext(
        settings,
        github=GitHubClient(base_url=API_URL, transport=fake_github.transport()),
        embeddings=EmbeddingGenerator(FallbackEmbeddingProvider(dim=DIM), batch_size=4),
        store=VectorStoreAdapter(dim=DIM, data_dir=settings.vector_store.data_dir),
    )
    await ctx.connect()
    yield ctx
    await ctx.close()
