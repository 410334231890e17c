"""Cohere Embed on AWS Bedrock.

Requests use the Cohere schema (``texts`` / ``input_type`` / ``truncate``).
Responses come back either flat, ``{"embeddings": [[...]]}``, or keyed by
vector type as Embed v4 does, ``{"embeddings": {"float": [[...]]}}``.
"""
import json
import logging
from typing import Any, Optional

from .provider import EmbeddingProvider

logger = logging.getLogger(__name__)

BEDROCK_MODEL_ID = "cohere.embed-english-v3"
BEDROCK_DIM = 1024
BEDROCK_REGION = "us-east-1"

# Bedrock rejects longer texts itself; Cohere's own truncation never runs.
MAX_TEXT_CHARS = 2048


def clip_texts(texts: list[str], limit: int = MAX_TEXT_CHARS) -> list[str]:
    clipped = [t[:limit] for t in texts]
    overlong = sum(1 for t in texts if len(t) > limit)
    if overlong:
        logger.debug("[embeddings/bedrock] Clipped %d text(s) to %d chars", overlong, limit)
    return clipped


def parse_vectors(data: dict[str, Any]) -> list[list[float]]:
    """Pull the float vectors out of a decoded Cohere response.

    Raises:
        ValueError: If no float embeddings are present.
    """
    vectors = data.get("embeddings")
    if isinstance(vectors, dict):
        vectors = vectors.get("float")
    if vectors is None:
        raise ValueError(
            f"Unexpected Bedrock response, no float embeddings: {sorted(data)}"
        )
    return vectors


class BedrockEmbeddingProvider(EmbeddingProvider):
    """Embeds through ``bedrock-runtime:invoke_model``.

    Explicit keys are optional; without them boto3 resolves credentials from
    its default chain (env, profile, instance role).
    """

    def __init__(
        self,
        model_id: str = BEDROCK_MODEL_ID,
        dim: int = BEDROCK_DIM,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        region_name: Optional[str] = None,
    ) -> None:
        self._model = model_id
        self._vector_dim = dim
        self._client_kwargs: dict[str, str] = {"region_name": region_name or BEDROCK_REGION}
        for key, value in (
            ("aws_access_key_id", aws_access_key_id),
            ("aws_secret_access_key", aws_secret_access_key),
            ("aws_session_token", aws_session_token),
        ):
            if value:
                self._client_kwargs[key] = value
        self._client: Optional[Any] = None

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dim(self) -> int:
        return self._vector_dim

    def _runtime(self) -> Any:
        if self._client is None:
            import boto3

            self._client = boto3.client("bedrock-runtime", **self._client_kwargs)
        return self._client

    def embed(self, texts: list[str], input_type: str = "search_document") -> list[list[float]]:
        payload = {"texts": clip_texts(texts), "input_type": input_type, "truncate": "END"}
        response = self._runtime().invoke_model(
            modelId=self._model,
            body=json.dumps(payload),
            contentType="application/json",
            accept="application/json",
        )
        vectors = parse_vectors(json.loads(response["body"].read()))
        logger.debug("[embeddings/bedrock] %s returned %d vector(s)", self._model, len(vectors))
        return vectors
