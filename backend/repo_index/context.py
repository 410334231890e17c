"""RetrievalContext: owns the fetcher, embedding generator and store.

Lifecycle is explicit::

    ctx = RetrievalContext(settings)
    await ctx.connect()
    ...  # hand ctx to IndexingOrchestrator / QueryService
    await ctx.close()

Components can be injected for tests; anything not injected is built from
the settings.
"""
import logging
from typing import Optional

from repo_index.config import AppSettings
from repo_index.embeddings import EmbeddingGenerator, build_embedding_provider
from repo_index.rag.store import VectorStoreAdapter
from repo_index.sources.github import GitHubClient

logger = logging.getLogger(__name__)


class RetrievalContext:
    def __init__(
        self,
        settings: AppSettings,
        github: Optional[GitHubClient] = None,
        embeddings: Optional[EmbeddingGenerator] = None,
        store: Optional[VectorStoreAdapter] = None,
    ) -> None:
        self.settings = settings

        self.github = github or GitHubClient(
            token=settings.secrets.github.token,
            base_url=settings.github.api_url,
            timeout=settings.github.timeout_seconds,
            fetch_concurrency=settings.github.fetch_concurrency,
            commits_per_page=settings.github.commits_per_page,
        )
        self.embeddings = embeddings or EmbeddingGenerator(
            build_embedding_provider(settings),
            batch_size=settings.embedding.batch_size,
        )
        self.store = store or VectorStoreAdapter(
            dim=self.embeddings.dim,
            data_dir=settings.vector_store.data_dir,
            enabled=settings.vector_store.enabled,
        )

    async def connect(self) -> None:
        connected = await self.store.connect()
        logger.info(
            "[RetrievalContext] Ready (embedding model=%s dim=%d, store connected=%s)",
            self.embeddings.model_id, self.embeddings.dim, connected,
        )

    async def close(self) -> None:
        await self.store.close()
        await self.github.close()
        logger.info("[RetrievalContext] Closed")
