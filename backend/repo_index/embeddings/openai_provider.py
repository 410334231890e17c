"""OpenAI embeddings provider.

Usage:
    provider = OpenAIEmbeddingProvider(api_key="sk-...")
    vectors = provider.embed(["circuit increment(): [] { ... }"])
"""
import logging
from typing import Optional

from .provider import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIM = 1536

# Roughly the model's 8191-token input limit for code-heavy text.
MAX_INPUT_CHARS = 8000


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider using OpenAI's embeddings endpoint.

    Args:
        api_key:      OpenAI API key.
        model:        Embedding model name.
        dim:          Expected vector length.  Passed as ``dimensions`` to
                      ``text-embedding-3-*`` models, which support shortening.
        organization: Optional organization ID.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        dim: int = DEFAULT_DIM,
        organization: Optional[str] = None,
    ) -> None:
        self.api_key = api_key
        self.organization = organization
        self._model = model
        self._dim = dim
        self._client: Optional[object] = None

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dim(self) -> int:
        return self._dim

    def _get_client(self) -> object:
        """Get or create the OpenAI client."""
        if self._client is None:
            import openai

            kwargs = {"api_key": self.api_key}
            if self.organization:
                kwargs["organization"] = self.organization
            self._client = openai.OpenAI(**kwargs)
        return self._client

    def embed(self, texts: list[str], input_type: str = "search_document") -> list[list[float]]:
        client = self._get_client()

        inputs = [t[:MAX_INPUT_CHARS] for t in texts]
        kwargs = {"model": self._model, "input": inputs}
        if self._model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self._dim

        logger.debug("[embeddings/openai] model=%s texts=%d", self._model, len(inputs))
        response = client.embeddings.create(**kwargs)

        # The API may return items out of order; ``index`` is authoritative.
        items = sorted(response.data, key=lambda d: d.index)
        return [list(item.embedding) for item in items]
