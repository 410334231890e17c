"""Index configured repositories from the command line.

Usage:
    repo-index                      # index every configured repository
    repo-index --repo compact       # index one repository (repo or owner/repo)
    repo-index --repo compact --since 2026-01-01T00:00:00Z   # incremental
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from repo_index.config import AppSettings, load_settings
from repo_index.context import RetrievalContext
from repo_index.log import configure_logging
from repo_index.rag.indexer import IndexingOrchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-index",
        description="Index repository code and docs into the vector store",
    )
    parser.add_argument("--repo", help="Index only this configured repository")
    parser.add_argument(
        "--since",
        help="ISO-8601 timestamp; re-index only files changed since then (requires --repo)",
    )
    parser.add_argument("--settings", type=Path, help="Path to repo_index.settings.yaml")
    parser.add_argument("--secrets", type=Path, help="Path to repo_index.secrets.yaml")
    return parser


async def run(settings: AppSettings, repo: Optional[str], since: Optional[str]) -> int:
    if repo is not None:
        repo_cfg = settings.find_repository(repo)
        if repo_cfg is None:
            available = ", ".join(r.repo for r in settings.repositories)
            print(f"Error: unknown repository: {repo}")
            print(f"Available repositories: {available}")
            return 1

    ctx = RetrievalContext(settings)
    await ctx.connect()
    try:
        orchestrator = IndexingOrchestrator(ctx)
        if repo is None:
            stats = await orchestrator.index_all_repositories()
            print("Full indexing complete")
            print(f"  Repositories: {len(stats.repositories_indexed)} indexed, "
                  f"{len(stats.repositories_failed)} failed")
            print(f"  Files:        {stats.total_files}")
            print(f"  Chunks:       {stats.total_chunks}")
            print(f"  Code units:   {stats.total_code_units}")
            for name in stats.repositories_failed:
                print(f"  FAILED: {name}")
        else:
            if since:
                result = await orchestrator.incremental_update(repo_cfg, since)
            else:
                result = await orchestrator.index_repository(repo_cfg)
            print(f"Indexed {result.repository}")
            print(f"  Files:      {result.file_count}")
            print(f"  Chunks:     {result.chunk_count}")
            print(f"  Code units: {result.code_unit_count}")
            if result.pruned_paths:
                print(f"  Removed:    {len(result.pruned_paths)} path(s)")

        store_stats = await ctx.store.get_stats()
        print(f"Vector store now contains {store_stats['count']} documents")
    finally:
        await ctx.close()
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    if args.since and not args.repo:
        print("Error: --since requires --repo")
        sys.exit(2)

    settings = load_settings(args.settings, args.secrets)
    configure_logging(settings.logging.level)

    try:
        code = asyncio.run(run(settings, args.repo, args.since))
    except Exception as exc:
        logger.error("Indexing failed: %s", exc)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
