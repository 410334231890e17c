"""Tests for the repo-index command line entry point."""
import pytest

from repo_index.scripts import index_repos

from fakes import make_settings


def test_since_requires_repo(capsys):
    with pytest.raises(SystemExit) as exc_info:
        index_repos.main(["--since", "2026-01-01T00:00:00Z"])

    assert exc_info.value.code == 2
    assert "--since requires --repo" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_unknown_repository_lists_available(tmp_path, contract_repo, capsys):
    settings = make_settings(tmp_path, [contract_repo])

    assert await index_repos.run(settings, "nope", None) == 1
    out = capsys.readouterr().out
    assert "unknown repository: nope" in out
    assert "contract-lib" in out


def test_parser_options():
    args = index_repos.build_parser().parse_args(["--repo", "compact", "--since", "2026-01-01"])
    assert args.repo == "compact"
    assert args.since == "2026-01-01"
    assert args.settings is None
