"""Logging setup shared by the HTTP app and the indexing CLI."""
import logging

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# httpx/httpcore log every TCP connection and TLS handshake; botocore.auth
# logs the signed canonical request including the session token.
_NOISY_LOGGERS = (
    "botocore",
    "boto3",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
    "openai",
    "faiss",
)


def configure_logging(level: str = "info") -> None:
    """Configure the root logger and silence verbose third-party loggers."""
    logging.basicConfig(level=logging.INFO, format=_FORMAT)

    configured_level = getattr(logging, level.upper(), None)
    if isinstance(configured_level, int):
        logging.getLogger().setLevel(configured_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
