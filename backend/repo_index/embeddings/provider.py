"""Interface shared by the OpenAI, Bedrock and offline embedding back-ends."""
from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """One embedding model behind a synchronous ``embed`` call.

    ``EmbeddingGenerator`` runs ``embed`` in a worker thread, one batch at a
    time; implementations never see the event loop.
    """

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Name reported in logs, ``/health`` and ``/v1/stats``."""

    @property
    @abstractmethod
    def dim(self) -> int:
        """Vector length; the store is sized from it."""

    @abstractmethod
    def embed(self, texts: list[str], input_type: str = "search_document") -> list[list[float]]:
        """Return one vector per text, in input order.

        ``input_type`` is ``"search_document"`` while indexing and
        ``"search_query"`` for queries; only Cohere models use it.
        Provider errors propagate; the generator wraps them.
        """
