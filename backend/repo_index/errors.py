"""Exception taxonomy for the indexing and retrieval pipeline.

Errors are isolated per unit of work (file, repository, query):

* ``FetchError``     : code host / network failure.  Per-file failures are
                        skipped; per-repository failures abort that
                        repository only.
* ``ParseError``     : malformed source.  Logged by the parser, never
                        raised out of it.
* ``EmbeddingError`` : embedding provider failure.  Fails the current
                        repository's indexing pass.
* ``StoreError``     : vector store failure.  Logged by the adapter and
                        turned into a neutral result.
* ``ValidationError``: bad query input, raised before any expensive call.
"""
from typing import Any, Dict, Optional


class RetrievalError(Exception):
    """Base exception for all repo-index errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary suitable for a JSON body."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class FetchError(RetrievalError):
    """Raised when the code host cannot be reached or returns an error."""

    def __init__(
        self,
        message: str = "Failed to fetch from code host",
        repository: Optional[str] = None,
        path: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if repository:
            error_details["repository"] = repository
        if path:
            error_details["path"] = path
        if status is not None:
            error_details["status"] = status
        self.status = status
        super().__init__(
            message=message,
            status_code=502,
            code="FETCH_ERROR",
            details=error_details,
        )


class ParseError(RetrievalError):
    """Describes a source file the parser could not extract units from."""

    def __init__(
        self,
        message: str = "Source parsing failed",
        path: Optional[str] = None,
        language: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if path:
            error_details["path"] = path
        if language:
            error_details["language"] = language
        super().__init__(
            message=message,
            status_code=422,
            code="PARSE_ERROR",
            details=error_details,
        )


class EmbeddingError(RetrievalError):
    """Raised when the embedding provider fails or returns a bad shape."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="EMBEDDING_ERROR",
            details=error_details,
        )


class StoreError(RetrievalError):
    """Raised by the vector store backend; the adapter logs and absorbs it."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        super().__init__(
            message=message,
            status_code=503,
            code="STORE_ERROR",
            details=error_details,
        )


class ValidationError(RetrievalError):
    """Raised for invalid query input."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=400,
            code="VALIDATION_ERROR",
            details=error_details,
        )
