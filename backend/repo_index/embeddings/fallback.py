"""Offline embedding provider used when no credential is configured.

Vectors are unit-length and deterministic per text (seeded from the text's
SHA-256) but carry no semantic meaning: search results in this mode are
effectively arbitrary.  It exists so the pipeline can run end to end in
development and tests without network access.
"""
import hashlib
import logging

import numpy as np

from .provider import EmbeddingProvider

logger = logging.getLogger(__name__)

FALLBACK_MODEL_ID = "fallback"
DEFAULT_DIM = 1536


class FallbackEmbeddingProvider(EmbeddingProvider):
    def __init__(self, dim: int = DEFAULT_DIM) -> None:
        self._dim = dim

    @property
    def model_id(self) -> str:
        return FALLBACK_MODEL_ID

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, texts: list[str], input_type: str = "search_document") -> list[list[float]]:
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(self._dim).astype(np.float32)
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec /= norm
        return vec.tolist()
