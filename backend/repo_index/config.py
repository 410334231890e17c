"""repo-index configuration.

Loads settings from two YAML files:
  * repo_index.settings.yaml : non-secret configuration
  * repo_index.secrets.yaml  : secrets (never committed)

File locations can be overridden with ``REPO_INDEX_SETTINGS`` and
``REPO_INDEX_SECRETS``.  Secrets missing from the YAML file fall back to the
usual environment variables (``GITHUB_TOKEN``, ``OPENAI_API_KEY``,
``AWS_ACCESS_KEY_ID`` …).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("repo_index.settings.yaml")
SECRETS_FILE  = Path("repo_index.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class GitHubSecrets(BaseModel):
    token: Optional[str] = None


class OpenAISecrets(BaseModel):
    api_key: Optional[str] = None


class AwsSecrets(BaseModel):
    access_key_id:     Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token:     Optional[str] = None
    region:            Optional[str] = "us-east-1"


class Secrets(BaseModel):
    github: GitHubSecrets = Field(default_factory=GitHubSecrets)
    openai: OpenAISecrets = Field(default_factory=OpenAISecrets)
    aws:    AwsSecrets    = Field(default_factory=AwsSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class GitHubSettings(BaseModel):
    """Code host connection settings."""
    api_url:           str   = "https://api.github.com"
    timeout_seconds:   float = 30.0
    fetch_concurrency: int   = Field(default=5, ge=1, le=10)
    commits_per_page:  int   = 30


class EmbeddingSettings(BaseModel):
    """Embedding provider settings.

    ``fallback`` selects the offline pseudo-random provider explicitly; the
    other providers also degrade to it when their credential is missing.
    """
    provider:          Literal["openai", "bedrock", "fallback"] = "openai"
    openai_model_name: str = "text-embedding-3-small"
    bedrock_model_id:  str = "cohere.embed-english-v3"
    bedrock_dim:       int = Field(default=1024, gt=0)
    dim:               int = Field(default=1536, gt=0)  # openai + fallback
    batch_size:        int = Field(default=100, ge=1)


class VectorStoreSettings(BaseModel):
    enabled:  bool = True
    data_dir: str  = "./data/vector_index"


class IndexingSettings(BaseModel):
    """Fallback windowing and pruning behaviour for the orchestrator."""
    window_chars:  int  = Field(default=2000, gt=0)
    overlap_lines: int  = Field(default=5, ge=0)
    prune_deleted: bool = True


class QuerySettings(BaseModel):
    default_limit: int = Field(default=10, ge=1, le=50)


class RepositorySettings(BaseModel):
    """One repository to index."""
    owner:    str
    repo:     str
    branch:   str       = "main"
    patterns: List[str] = Field(default_factory=lambda: ["**/*"])
    exclude:  List[str] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @field_validator("patterns")
    @classmethod
    def _patterns_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("patterns must contain at least one glob")
        return v


def _default_repositories() -> List[RepositorySettings]:
    return [
        RepositorySettings(
            owner="midnightntwrk",
            repo="compact",
            patterns=["**/*.compact", "**/*.ts", "**/*.md"],
            exclude=["node_modules/**", "dist/**"],
        ),
        RepositorySettings(
            owner="midnightntwrk",
            repo="midnight-js",
            patterns=["**/*.ts", "**/*.md"],
            exclude=["node_modules/**", "dist/**"],
        ),
        RepositorySettings(
            owner="midnightntwrk",
            repo="example-counter",
            patterns=["**/*.compact", "**/*.ts", "**/*.md"],
            exclude=["node_modules/**", "dist/**"],
        ),
        RepositorySettings(
            owner="midnightntwrk",
            repo="example-bboard",
            patterns=["**/*.compact", "**/*.ts", "**/*.tsx", "**/*.md"],
            exclude=["node_modules/**", "dist/**"],
        ),
        RepositorySettings(
            owner="midnightntwrk",
            repo="midnight-docs",
            patterns=["**/*.md", "**/*.mdx"],
            exclude=["node_modules/**"],
        ),
    ]


class AppSettings(BaseModel):
    server:       ServerSettings           = Field(default_factory=ServerSettings)
    logging:      LoggingSettings          = Field(default_factory=LoggingSettings)
    github:       GitHubSettings           = Field(default_factory=GitHubSettings)
    embedding:    EmbeddingSettings        = Field(default_factory=EmbeddingSettings)
    vector_store: VectorStoreSettings      = Field(default_factory=VectorStoreSettings)
    indexing:     IndexingSettings         = Field(default_factory=IndexingSettings)
    query:        QuerySettings            = Field(default_factory=QuerySettings)
    repositories: List[RepositorySettings] = Field(default_factory=_default_repositories)
    secrets:      Secrets                  = Field(default_factory=Secrets)

    def find_repository(self, name: str) -> Optional[RepositorySettings]:
        """Look up a configured repository by ``repo`` or ``owner/repo``."""
        wanted = name.lower()
        for repo_cfg in self.repositories:
            if wanted in (repo_cfg.repo.lower(), repo_cfg.full_name.lower()):
                return repo_cfg
        return None


# ---------------------------------------------------------------------------
# Environment fallbacks for secrets
# ---------------------------------------------------------------------------


def _apply_env_secrets(secrets: Secrets) -> None:
    """Fill secrets left empty in YAML from well-known environment variables."""
    if not secrets.github.token:
        secrets.github.token = os.environ.get("GITHUB_TOKEN") or None
    if not secrets.openai.api_key:
        secrets.openai.api_key = os.environ.get("OPENAI_API_KEY") or None
    if not secrets.aws.access_key_id:
        secrets.aws.access_key_id = os.environ.get("AWS_ACCESS_KEY_ID") or None
    if not secrets.aws.secret_access_key:
        secrets.aws.secret_access_key = os.environ.get("AWS_SECRET_ACCESS_KEY") or None
    if not secrets.aws.session_token:
        secrets.aws.session_token = os.environ.get("AWS_SESSION_TOKEN") or None


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = settings_path or Path(os.environ.get("REPO_INDEX_SETTINGS", SETTINGS_FILE))
    secrets_path  = secrets_path or Path(os.environ.get("REPO_INDEX_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _apply_env_secrets(app_settings.secrets)

    logger.info(
        "Settings loaded (repositories=%d, embedding.provider=%s, vector_store.enabled=%s)",
        len(app_settings.repositories),
        app_settings.embedding.provider,
        app_settings.vector_store.enabled,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Forget cached settings (used by tests)."""
    global _config
    _config = None
