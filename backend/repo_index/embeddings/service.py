"""EmbeddingGenerator: batching layer over an EmbeddingProvider.

Texts are split into fixed-size batches that are sent one after another;
each blocking provider call runs in a worker thread so the event loop stays
responsive.  Provider failures and malformed responses surface as
``EmbeddingError``.
"""
import asyncio
import logging
from typing import Sequence

import numpy as np

from repo_index.config import AppSettings
from repo_index.errors import EmbeddingError

from .bedrock import BedrockEmbeddingProvider
from .fallback import FallbackEmbeddingProvider
from .openai_provider import OpenAIEmbeddingProvider
from .provider import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class EmbeddingGenerator:
    """Generate embeddings in sequential batches.

    Args:
        provider:   Concrete embedding provider.
        batch_size: Maximum texts per provider call.
    """

    def __init__(self, provider: EmbeddingProvider, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self._provider = provider
        self._batch_size = max(1, batch_size)

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def model_id(self) -> str:
        return self._provider.model_id

    @property
    def dim(self) -> int:
        return self._provider.dim

    @property
    def is_degraded(self) -> bool:
        """True when vectors come from the offline fallback provider."""
        return isinstance(self._provider, FallbackEmbeddingProvider)

    async def generate_embedding(self, text: str, input_type: str = "search_query") -> list[float]:
        vectors = await self._embed_batch([text], input_type)
        return vectors[0]

    async def generate_embeddings(
        self,
        texts: Sequence[str],
        input_type: str = "search_document",
    ) -> list[list[float]]:
        """Embed *texts*, preserving order.

        Raises:
            EmbeddingError: If any batch fails or returns the wrong shape.
        """
        texts = list(texts)
        if not texts:
            return []

        total_batches = (len(texts) + self._batch_size - 1) // self._batch_size
        vectors: list[list[float]] = []

        for batch_idx, offset in enumerate(range(0, len(texts), self._batch_size)):
            batch = texts[offset:offset + self._batch_size]
            logger.info(
                "[EmbeddingGenerator] Embedding batch %d/%d (%d texts)",
                batch_idx + 1, total_batches, len(batch),
            )
            vectors.extend(await self._embed_batch(batch, input_type))

        return vectors

    async def _embed_batch(self, batch: list[str], input_type: str) -> list[list[float]]:
        model = self._provider.model_id
        try:
            vectors = await asyncio.to_thread(self._provider.embed, batch, input_type)
        except Exception as exc:
            logger.error("[EmbeddingGenerator] Provider %s failed: %s", model, exc)
            raise EmbeddingError(f"Embedding provider failed: {exc}", model=model) from exc

        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} vectors for {len(batch)} texts",
                model=model,
            )
        for vec in vectors:
            if len(vec) != self._provider.dim:
                raise EmbeddingError(
                    f"Provider returned a {len(vec)}-dim vector, expected {self._provider.dim}",
                    model=model,
                )
        return vectors


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 if either is zero).

    Raises:
        ValueError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def build_embedding_provider(settings: AppSettings) -> EmbeddingProvider:
    """Instantiate the configured provider.

    A provider whose credential is missing is replaced by the fallback
    provider, with a warning.
    """
    cfg = settings.embedding
    secrets = settings.secrets

    if cfg.provider == "openai":
        if secrets.openai.api_key:
            logger.info("[Embeddings] Using OpenAI provider (model=%s)", cfg.openai_model_name)
            return OpenAIEmbeddingProvider(
                api_key=secrets.openai.api_key,
                model=cfg.openai_model_name,
                dim=cfg.dim,
            )
        logger.warning(
            "[Embeddings] No OpenAI API key configured; using fallback embeddings. "
            "Search results will not be semantically meaningful."
        )

    elif cfg.provider == "bedrock":
        if secrets.aws.access_key_id and secrets.aws.secret_access_key:
            logger.info("[Embeddings] Using Bedrock provider (model=%s)", cfg.bedrock_model_id)
            return BedrockEmbeddingProvider(
                model_id=cfg.bedrock_model_id,
                dim=cfg.bedrock_dim,
                aws_access_key_id=secrets.aws.access_key_id,
                aws_secret_access_key=secrets.aws.secret_access_key,
                aws_session_token=secrets.aws.session_token,
                region_name=secrets.aws.region,
            )
        logger.warning(
            "[Embeddings] No AWS credentials configured; using fallback embeddings. "
            "Search results will not be semantically meaningful."
        )

    else:
        logger.warning("[Embeddings] Fallback embedding provider selected explicitly")

    return FallbackEmbeddingProvider(dim=cfg.dim)
