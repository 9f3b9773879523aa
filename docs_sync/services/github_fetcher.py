"""GitHub repository fetcher service for documentation files"""

import asyncio
import fnmatch
import logging
import os
from base64 import b64decode
from pathlib import PurePosixPath

import httpx

from docs_sync.models.sources_config import FetchingConfig, GitHubConfig, SourceRepository

logger = logging.getLogger(__name__)


class GitHubFetchError(Exception):
    """Raised when GitHub API fetch fails"""

    pass


class GitHubFetchResult:
    """Result of fetching a file from GitHub"""

    def __init__(
        self,
        path: str,
        content: str | None = None,
        success: bool = False,
        error_message: str | None = None,
    ):
        self.path = path
        self.content = content
        self.success = success
        self.error_message = error_message


class GitHubFetcher:
    """Fetch the markdown tree of an upstream repository at a revision"""

    def __init__(
        self,
        github_config: GitHubConfig | None = None,
        fetching_config: FetchingConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize GitHub fetcher

        Args:
            github_config: GitHub API configuration
            fetching_config: Timeouts, retries and concurrency limits
            transport: Optional httpx transport (used by tests)
        """
        self.github_config = github_config or GitHubConfig()
        self.fetching_config = fetching_config or FetchingConfig()
        self.token = self.github_config.token or os.getenv("GITHUB_TOKEN")
        self.api_url = self.github_config.api_url.rstrip("/")

        # Setup HTTP client with auth if token is available
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            # Use 'token' prefix for classic GitHub tokens (ghp_*)
            # Use 'Bearer' prefix for fine-grained tokens (github_pat_*)
            prefix = "Bearer" if self.token.startswith("github_pat_") else "token"
            headers["Authorization"] = f"{prefix} {self.token}"

        self.client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(float(self.fetching_config.timeout)),
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def fetch_repo_files(
        self,
        repo_source: SourceRepository,
        revision: str | None = None,
        branch: str | None = None,
    ) -> tuple[list[GitHubFetchResult], str]:
        """
        Fetch the markdown files of a source repository

        Args:
            repo_source: Source repository configuration
            revision: Commit SHA to fetch (None = head of the tracked branch)
            branch: Tracked branch, when already resolved by the caller

        Returns:
            Tuple of (fetch_results, revision)
            - fetch_results: One successful GitHubFetchResult per matching file
            - revision: Commit SHA the files were read at

        Raises:
            GitHubFetchError: If the tree or any file cannot be fetched
        """
        owner, repo = repo_source.repo_owner, repo_source.repo_name
        logger.info(f"Fetching files from {owner}/{repo}")

        try:
            if revision is None:
                branch = branch or await self.resolve_branch(repo_source)
                revision = await self._get_branch_head(owner, repo, branch)
                logger.info(f"Using {branch} at {revision[:7]}")

            tree = await self._get_repo_tree(owner, repo, revision)

            matching_files = self._filter_files_by_patterns(
                tree, repo_source.markdown_root, repo_source.paths
            )
            logger.info(f"Found {len(matching_files)} matching files")

            results = await self._fetch_files_content(owner, repo, matching_files, revision)
        except GitHubFetchError:
            raise
        except Exception as e:
            logger.error(f"Failed to fetch from GitHub repo: {e}")
            raise GitHubFetchError(f"Failed to fetch from GitHub: {e}") from e

        failed = [r for r in results if not r.success]
        if failed:
            for result in failed:
                logger.error(f"✗ {result.path}: {result.error_message}")
            raise GitHubFetchError(
                f"Failed to fetch {len(failed)} of {len(results)} files from "
                f"{owner}/{repo}@{revision[:7]}"
            )

        return results, revision

    async def resolve_branch(self, repo_source: SourceRepository) -> str:
        """Tracked branch of a source, looking up the default branch when unset"""
        if repo_source.branch:
            return repo_source.branch
        return await self._get_default_branch(repo_source.repo_owner, repo_source.repo_name)

    async def _get(self, url: str) -> httpx.Response:
        """GET with retries on transport errors and 5xx responses"""
        attempts = self.fetching_config.max_retries
        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.get(url)
                if response.status_code < 500 or attempt == attempts:
                    response.raise_for_status()
                    return response
                logger.warning(
                    f"GitHub returned {response.status_code} for {url} "
                    f"(attempt {attempt}/{attempts})"
                )
            except httpx.TransportError as e:
                if attempt == attempts:
                    raise
                logger.warning(f"Request to {url} failed: {e} (attempt {attempt}/{attempts})")
            await asyncio.sleep(0.5 * attempt)
        raise GitHubFetchError(f"Exhausted retries for {url}")

    async def _get_default_branch(self, owner: str, repo: str) -> str:
        """Get the default branch of a repository"""
        url = f"{self.api_url}/repos/{owner}/{repo}"

        try:
            response = await self._get(url)
            return response.json()["default_branch"]
        except (httpx.HTTPError, KeyError) as e:
            logger.error(f"Failed to get default branch for {owner}/{repo}: {e}")
            raise GitHubFetchError(f"Failed to get default branch: {e}") from e

    async def _get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        """Resolve a branch name to its head commit SHA"""
        url = f"{self.api_url}/repos/{owner}/{repo}/commits/{branch}"

        try:
            response = await self._get(url)
            return response.json()["sha"]
        except (httpx.HTTPError, KeyError) as e:
            logger.error(f"Failed to resolve {owner}/{repo}@{branch}: {e}")
            raise GitHubFetchError(f"Failed to resolve branch {branch}: {e}") from e

    async def _get_repo_tree(self, owner: str, repo: str, revision: str) -> list[dict]:
        """
        Get the complete file tree of a repository

        Args:
            owner: Repository owner
            repo: Repository name
            revision: Commit SHA or branch name

        Returns:
            List of file/directory entries
        """
        url = f"{self.api_url}/repos/{owner}/{repo}/git/trees/{revision}?recursive=1"

        try:
            response = await self._get(url)
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to get repo tree: {e}")
            raise GitHubFetchError(f"Failed to get repo tree: {e}") from e

        if data.get("truncated"):
            raise GitHubFetchError(f"Repository tree for {owner}/{repo} is truncated")
        return data.get("tree", [])

    def _filter_files_by_patterns(
        self, tree: list[dict], markdown_root: str, patterns: list[str]
    ) -> list[dict]:
        """
        Filter tree entries to blobs under markdown_root matching the glob patterns

        Args:
            tree: Repository tree entries
            markdown_root: Directory to mirror ('' = repository root)
            patterns: Glob patterns relative to markdown_root

        Returns:
            Filtered list of file entries
        """
        matching_files = []
        root = PurePosixPath(markdown_root) if markdown_root else None

        for entry in tree:
            # Only consider blob (file) entries
            if entry["type"] != "blob":
                continue

            path = PurePosixPath(entry["path"])
            if root is not None:
                if root not in path.parents:
                    continue
                relative = str(path.relative_to(root))
            else:
                relative = str(path)

            # Check if path matches any pattern
            for pattern in patterns:
                if fnmatch.fnmatch(relative, pattern):
                    matching_files.append(entry)
                    break

        return matching_files

    async def _fetch_files_content(
        self,
        owner: str,
        repo: str,
        files: list[dict],
        revision: str,
    ) -> list[GitHubFetchResult]:
        """
        Fetch content for all files

        Args:
            owner: Repository owner
            repo: Repository name
            files: List of file entries from tree
            revision: Commit SHA

        Returns:
            List of GitHubFetchResult objects
        """
        semaphore = asyncio.Semaphore(self.fetching_config.concurrent_limit)

        async def fetch_with_limit(file_entry: dict) -> GitHubFetchResult:
            async with semaphore:
                return await self._fetch_file_content(owner, repo, file_entry, revision)

        return list(await asyncio.gather(*[fetch_with_limit(entry) for entry in files]))

    async def _fetch_file_content(
        self, owner: str, repo: str, file_entry: dict, revision: str
    ) -> GitHubFetchResult:
        """
        Fetch content for a single file

        Args:
            owner: Repository owner
            repo: Repository name
            file_entry: File entry from tree
            revision: Commit SHA

        Returns:
            GitHubFetchResult object
        """
        path = file_entry["path"]
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{path}?ref={revision}"

        try:
            response = await self._get(url)
            data = response.json()

            # Decode base64 content
            content_b64 = data.get("content", "")
            content = b64decode(content_b64).decode("utf-8")

            logger.debug(f"✓ Fetched {path}")
            return GitHubFetchResult(path=path, content=content, success=True)

        except Exception as e:
            logger.warning(f"✗ Failed to fetch {path}: {e}")
            return GitHubFetchResult(path=path, success=False, error_message=str(e))

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
