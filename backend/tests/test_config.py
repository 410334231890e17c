"""Tests for settings loading: YAML files, env-var locations and secret fallbacks."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from repo_index.config import (
    AppSettings,
    EmbeddingSettings,
    GitHubSettings,
    get_config,
    load_settings,
    reset_config,
)

SECRET_VARS = (
    "GITHUB_TOKEN",
    "OPENAI_API_KEY",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in SECRET_VARS + ("REPO_INDEX_SETTINGS", "REPO_INDEX_SECRETS"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadSettings:
    def test_missing_files_give_defaults(self, tmp_path):
        cfg = load_settings(tmp_path / "none.yaml", tmp_path / "none-secrets.yaml")

        assert cfg.embedding.provider == "openai"
        assert cfg.embedding.dim == 1536
        assert cfg.query.default_limit == 10
        assert cfg.indexing.window_chars == 2000
        assert cfg.indexing.overlap_lines == 5
        assert {r.repo for r in cfg.repositories} >= {"compact", "midnight-docs"}
        assert cfg.secrets.github.token is None

    def test_yaml_values(self, tmp_path):
        settings = _write(tmp_path / "settings.yaml", (
            "embedding:\n"
            "  provider: bedrock\n"
            "  bedrock_dim: 512\n"
            "vector_store:\n"
            "  data_dir: /var/lib/index\n"
            "repositories:\n"
            "  - owner: org\n"
            "    repo: contract-lib\n"
            "    branch: develop\n"
            "    patterns: ['**/*.compact']\n"
        ))
        secrets = _write(tmp_path / "secrets.yaml", (
            "github:\n"
            "  token: ghp_yaml\n"
            "aws:\n"
            "  access_key_id: AK\n"
            "  secret_access_key: SK\n"
        ))

        cfg = load_settings(settings, secrets)

        assert cfg.embedding.provider == "bedrock"
        assert cfg.embedding.bedrock_dim == 512
        assert cfg.vector_store.data_dir == "/var/lib/index"
        assert [r.full_name for r in cfg.repositories] == ["org/contract-lib"]
        assert cfg.repositories[0].branch == "develop"
        assert cfg.secrets.github.token == "ghp_yaml"
        assert cfg.secrets.aws.access_key_id == "AK"

    def test_env_locations(self, tmp_path, monkeypatch):
        settings = _write(tmp_path / "custom.yaml", "query:\n  default_limit: 25\n")
        monkeypatch.setenv("REPO_INDEX_SETTINGS", str(settings))
        monkeypatch.setenv("REPO_INDEX_SECRETS", str(tmp_path / "absent.yaml"))

        assert load_settings().query.default_limit == 25

    def test_invalid_value_rejected(self, tmp_path):
        settings = _write(tmp_path / "settings.yaml", "embedding:\n  provider: cohere\n")
        with pytest.raises(ValidationError):
            load_settings(settings, tmp_path / "absent.yaml")


class TestSecretFallbacks:
    def test_env_fills_missing_secrets(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("AWS_SESSION_TOKEN", "session")

        cfg = load_settings(tmp_path / "a.yaml", tmp_path / "b.yaml")

        assert cfg.secrets.github.token == "ghp_env"
        assert cfg.secrets.openai.api_key == "sk-env"
        assert cfg.secrets.aws.session_token == "session"

    def test_yaml_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")
        secrets = _write(tmp_path / "secrets.yaml", "github:\n  token: ghp_yaml\n")

        cfg = load_settings(tmp_path / "a.yaml", secrets)
        assert cfg.secrets.github.token == "ghp_yaml"

    def test_empty_env_value_is_none(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "")
        cfg = load_settings(tmp_path / "a.yaml", tmp_path / "b.yaml")
        assert cfg.secrets.openai.api_key is None


class TestModels:
    def test_find_repository_by_name_or_full_name(self):
        cfg = AppSettings()
        assert cfg.find_repository("example-counter").owner == "midnightntwrk"
        assert cfg.find_repository("MidnightNtwrk/Compact").repo == "compact"
        assert cfg.find_repository("unknown") is None

    def test_fetch_concurrency_bounds(self):
        with pytest.raises(ValidationError):
            GitHubSettings(fetch_concurrency=0)
        with pytest.raises(ValidationError):
            GitHubSettings(fetch_concurrency=11)

    def test_batch_size_positive(self):
        with pytest.raises(ValidationError):
            EmbeddingSettings(batch_size=0)

    def test_get_config_is_cached(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REPO_INDEX_SETTINGS", str(tmp_path / "none.yaml"))
        monkeypatch.setenv("REPO_INDEX_SECRETS", str(tmp_path / "none-secrets.yaml"))

        assert get_config() is get_config()
