"""GitHub REST API client for repository ingestion.

Lists a repository's tree at a branch, fetches file contents, and reports
which files changed since a timestamp for incremental re-indexing.

All calls go through one ``httpx.AsyncClient``.  File fetches for a single
repository are bounded by a semaphore and gathered in input order so that
downstream chunk ids are deterministic.
"""
import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence
from urllib.parse import quote

import httpx

from repo_index.config import RepositorySettings
from repo_index.errors import FetchError
from repo_index.rag.models import SourceFile

from .patterns import filter_paths

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


@dataclass
class Commit:
    sha: str
    message: str
    author: str
    date: str
    url: str


@dataclass
class RepositoryInfo:
    owner: str
    repo: str
    branch: str
    last_commit: Optional[Commit]


@dataclass
class TreeListing:
    """Blob paths of a repository tree.

    ``truncated`` is set when GitHub cut the recursive listing short; the
    paths are then only a subset of the tree.
    """

    paths: list[str] = field(default_factory=list)
    truncated: bool = False


class GitHubClient:
    """Async GitHub client.

    Args:
        token:             Optional bearer token; anonymous requests are
                           rate-limited but work for public repositories.
        base_url:          API root (GitHub Enterprise installs differ).
        timeout:           Per-request timeout in seconds.
        fetch_concurrency: Maximum file fetches in flight.
        transport:         Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        fetch_concurrency: int = 5,
        commits_per_page: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "repo-index",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._fetch_concurrency = max(1, fetch_concurrency)
        self._commits_per_page = commits_per_page

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Low-level request helper
    # ------------------------------------------------------------------

    async def _get_json(
        self,
        url: str,
        repository: str,
        params: Optional[dict[str, Any]] = None,
        path: Optional[str] = None,
        expect: Any = dict,
    ) -> Any:
        """GET *url* and decode the body as JSON of type *expect*.

        Raises:
            FetchError: On transport errors, error statuses, and bodies that
                        are not JSON or not the expected shape.
        """
        try:
            resp = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise FetchError(
                f"Request to {url} failed: {exc}",
                repository=repository,
                path=path,
            ) from exc

        if resp.status_code >= 400:
            raise FetchError(
                f"GitHub returned {resp.status_code} for {url}",
                repository=repository,
                path=path,
                status=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError(
                f"GitHub returned a malformed body for {url}",
                repository=repository,
                path=path,
                status=resp.status_code,
            ) from exc

        if not isinstance(data, expect):
            raise FetchError(
                f"GitHub returned an unexpected {type(data).__name__} body for {url}",
                repository=repository,
                path=path,
                status=resp.status_code,
            )
        return data

    # ------------------------------------------------------------------
    # Trees and contents
    # ------------------------------------------------------------------

    async def get_repository_tree(self, owner: str, repo: str, ref: str = "main") -> TreeListing:
        """Return every blob path in the repository at branch *ref*.

        Raises:
            FetchError: If the branch or tree cannot be read.
        """
        repository = f"{owner}/{repo}"
        ref_url = f"/repos/{owner}/{repo}/git/ref/heads/{quote(ref, safe='/')}"
        ref_data = await self._get_json(ref_url, repository)
        tree_sha = (ref_data.get("object") or {}).get("sha")
        if not tree_sha:
            raise FetchError(f"No commit sha in response for {ref_url}", repository=repository)

        tree_data = await self._get_json(
            f"/repos/{owner}/{repo}/git/trees/{tree_sha}",
            repository,
            params={"recursive": "1"},
        )
        truncated = bool(tree_data.get("truncated"))
        if truncated:
            logger.warning("[GitHub] Tree listing for %s is truncated", repository)

        paths = [
            item["path"]
            for item in tree_data.get("tree") or []
            if isinstance(item, dict) and item.get("type") == "blob" and item.get("path")
        ]
        return TreeListing(paths=paths, truncated=truncated)

    async def list_matching_paths(self, repo_cfg: RepositorySettings) -> TreeListing:
        """The repository tree narrowed to *repo_cfg*'s include/exclude patterns."""
        tree = await self.get_repository_tree(repo_cfg.owner, repo_cfg.repo, repo_cfg.branch)
        matching = filter_paths(tree.paths, repo_cfg.patterns, repo_cfg.exclude)
        logger.info(
            "[GitHub] %s: %d of %d paths match include/exclude patterns",
            repo_cfg.full_name, len(matching), len(tree.paths),
        )
        return TreeListing(paths=matching, truncated=tree.truncated)

    async def get_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> Optional[SourceFile]:
        """Fetch one file.

        Returns:
            The file, or None when the path does not exist (404) or is not a
            regular file (directory, symlink, submodule).

        Raises:
            FetchError: On any other failure, including undecodable content.
        """
        params = {"ref": ref} if ref else None
        repository = f"{owner}/{repo}"
        try:
            data = await self._get_json(
                f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}",
                repository,
                params=params,
                path=path,
                expect=(dict, list),
            )
        except FetchError as exc:
            if exc.status == 404:
                return None
            raise

        if isinstance(data, list) or data.get("type") != "file":
            return None

        raw = data.get("content") or ""
        if data.get("encoding") == "base64":
            try:
                content = base64.b64decode(raw).decode("utf-8", errors="replace")
            except (binascii.Error, TypeError) as exc:
                raise FetchError(
                    f"Content of {path} is not valid base64",
                    repository=repository,
                    path=path,
                ) from exc
        else:
            content = raw

        return SourceFile(
            path=data.get("path", path),
            content=content,
            hash=data.get("sha", ""),
            size=data.get("size", len(content)),
        )

    async def fetch_files(
        self,
        owner: str,
        repo: str,
        paths: Sequence[str],
        ref: Optional[str] = None,
    ) -> list[SourceFile]:
        """Fetch *paths* concurrently; failures are logged and skipped.

        The result preserves the order of *paths*.
        """
        semaphore = asyncio.Semaphore(self._fetch_concurrency)

        async def _fetch(path: str) -> Optional[SourceFile]:
            async with semaphore:
                try:
                    return await self.get_file_content(owner, repo, path, ref)
                except FetchError as exc:
                    logger.warning(
                        "[GitHub] Skipping %s in %s/%s: %s", path, owner, repo, exc.message,
                    )
                    return None

        results = await asyncio.gather(*(_fetch(p) for p in paths))
        return [f for f in results if f is not None]

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    async def get_recent_commits(
        self,
        owner: str,
        repo: str,
        since: Optional[str] = None,
        branch: Optional[str] = None,
        per_page: Optional[int] = None,
    ) -> list[Commit]:
        """List commits on *branch*, newest first.  Returns [] on failure."""
        params: dict[str, Any] = {"per_page": per_page or self._commits_per_page}
        if since:
            params["since"] = since
        if branch:
            params["sha"] = branch

        try:
            data = await self._get_json(
                f"/repos/{owner}/{repo}/commits", f"{owner}/{repo}", params=params, expect=list,
            )
        except FetchError as exc:
            logger.error("[GitHub] Failed to list commits for %s/%s: %s", owner, repo, exc.message)
            return []

        return [_to_commit(item) for item in data if isinstance(item, dict)]

    async def get_changed_files(
        self,
        owner: str,
        repo: str,
        since: str,
        branch: Optional[str] = None,
    ) -> list[str]:
        """Paths touched by commits since *since*, first-seen order, no duplicates.

        Returns [] if any commit cannot be read.
        """
        commits = await self.get_recent_commits(owner, repo, since=since, branch=branch)
        changed: dict[str, None] = {}

        try:
            for commit in commits:
                data = await self._get_json(
                    f"/repos/{owner}/{repo}/commits/{commit.sha}", f"{owner}/{repo}",
                )
                for entry in data.get("files") or []:
                    if not isinstance(entry, dict):
                        continue
                    filename = entry.get("filename")
                    if filename:
                        changed.setdefault(filename, None)
                    # a rename removes the old path from the tree
                    previous = entry.get("previous_filename")
                    if previous:
                        changed.setdefault(previous, None)
        except FetchError as exc:
            logger.error("[GitHub] Failed to read changed files for %s/%s: %s", owner, repo, exc.message)
            return []

        logger.info(
            "[GitHub] %s/%s: %d commit(s) and %d changed path(s) since %s",
            owner, repo, len(commits), len(changed), since,
        )
        return list(changed)

    async def get_repository_info(self, owner: str, repo: str) -> RepositoryInfo:
        """Default branch and latest commit.

        Raises:
            FetchError: If the repository cannot be read.
        """
        repo_data = await self._get_json(f"/repos/{owner}/{repo}", f"{owner}/{repo}")
        commits = await self.get_recent_commits(owner, repo, per_page=1)
        return RepositoryInfo(
            owner=owner,
            repo=repo,
            branch=repo_data.get("default_branch", "main"),
            last_commit=commits[0] if commits else None,
        )


def _to_commit(item: dict[str, Any]) -> Commit:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    return Commit(
        sha=item.get("sha", ""),
        message=commit.get("message", ""),
        author=author.get("name") or "Unknown",
        date=author.get("date") or "",
        url=item.get("html_url", ""),
    )
