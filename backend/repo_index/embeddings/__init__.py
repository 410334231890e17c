"""Embedding providers and the batching generator.

OpenAI is the default provider, AWS Bedrock (Cohere) the alternative; both
degrade to deterministic offline vectors when no credential is configured.
"""
from .provider import EmbeddingProvider
from .openai_provider import OpenAIEmbeddingProvider
from .bedrock import BedrockEmbeddingProvider
from .fallback import FallbackEmbeddingProvider
from .service import EmbeddingGenerator, build_embedding_provider, cosine_similarity

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "BedrockEmbeddingProvider",
    "FallbackEmbeddingProvider",
    "EmbeddingGenerator",
    "build_embedding_provider",
    "cosine_similarity",
]
