"""Documentation synchronization service - upstream repositories into the site"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path

import httpx

from docs_sync.config import config
from docs_sync.models.document import Document
from docs_sync.models.event import ChangeEvent
from docs_sync.models.sources_config import SourceRepository, SourcesConfig
from docs_sync.models.sync_result import PublishResult, SyncResult
from docs_sync.services.change_detector import ChangeDetector
from docs_sync.services.front_matter import FrontMatterError, PathMappingError, Transformer
from docs_sync.services.github_fetcher import GitHubFetcher, GitHubFetchError
from docs_sync.services.publisher import Publisher, PublishError
from docs_sync.services.sidebar import SidebarChecker, SidebarError
from docs_sync.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Raised when documentation sync fails catastrophically"""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class DocSync:
    """Run the fetch -> transform -> publish pipeline for source repositories"""

    def __init__(
        self,
        sources_config: SourcesConfig,
        fetcher: GitHubFetcher | None = None,
        transformer: Transformer | None = None,
        publisher: Publisher | None = None,
        sidebar: SidebarChecker | None = None,
        telemetry: TelemetryService | None = None,
        deploy_hook_url: str | None = None,
        deploy_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize documentation sync service

        Args:
            sources_config: Loaded sources.yaml
            fetcher: GitHubFetcher (optional, creates new if None)
            transformer: Transformer (optional, creates new if None)
            publisher: Publisher (optional, built from application config if None)
            sidebar: SidebarChecker (optional, built from sources_config.sidebars_file)
            telemetry: TelemetryService (optional, telemetry skipped if None)
            deploy_hook_url: Build hook POSTed after a push (optional)
            deploy_transport: httpx transport for the deploy hook (used by tests)
        """
        self.sources_config = sources_config
        self.detector = ChangeDetector(sources_config)
        self.fetcher = fetcher or GitHubFetcher(sources_config.github, sources_config.fetching)
        self.transformer = transformer or Transformer(
            sources_config.github, docs_root=sources_config.docs_root
        )
        self.publisher = publisher or Publisher(
            repo_root=config.repo_root,
            docs_root=sources_config.docs_root,
            git_user_name=config.git_user_name,
            git_user_email=config.git_user_email,
            remote=config.git_remote,
            branch=config.git_branch,
            dry_run=config.dry_run,
        )
        if sidebar is None and sources_config.sidebars_file:
            sidebar = SidebarChecker(Path(self.publisher.repo_root) / sources_config.sidebars_file)
        self.sidebar = sidebar
        self.telemetry = telemetry
        self.deploy_hook_url = deploy_hook_url
        self.deploy_transport = deploy_transport

    async def __aenter__(self) -> "DocSync":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.fetcher.close()

    async def sync_event(self, event: ChangeEvent, *, push: bool = True) -> SyncResult | None:
        """
        Sync the source an upstream event concerns

        Returns:
            SyncResult, or None when the event does not trigger a sync
        """
        source = self.detector.detect(event)
        if source is None:
            return None
        return await self.sync_source(source, revision=event.after, push=push)

    async def sync_all(self, *, push: bool = True) -> list[SyncResult]:
        """Sync every enabled source, one after another"""
        results = []
        for source in self.sources_config.get_enabled_github_repos():
            results.append(await self.sync_source(source, push=push))
        return results

    async def sync_named(
        self, names: list[str], revision: str | None = None, *, push: bool = True
    ) -> list[SyncResult]:
        """
        Sync sources by name

        Raises:
            SyncError: If a name does not match an enabled source, or a revision is
                given for more than one source
        """
        sources = []
        for name in names:
            source = self.sources_config.get_source(name)
            if source is None:
                raise SyncError(f"Unknown or disabled source: {name}")
            sources.append(source)
        if revision and len(sources) != 1:
            raise SyncError("A revision can only be given when syncing a single source")

        return [await self.sync_source(source, revision, push=push) for source in sources]

    async def sync_source(
        self, source: SourceRepository, revision: str | None = None, *, push: bool = True
    ) -> SyncResult:
        """
        Synchronize one source repository into its destination directory

        Args:
            source: Source repository to sync
            revision: Upstream commit SHA (None = head of the tracked branch)
            push: Push the sync commit to the site repository's remote

        Returns:
            SyncResult; failures are reported with success=False and nothing committed
        """
        start_time = datetime.now()
        logger.info(f"Starting documentation sync of {source.name} from {source.full_name}")

        documents: list[Document] = []
        publish_result = PublishResult()
        missing: list[str] = []
        error: str | None = None

        try:
            branch = await self.fetcher.resolve_branch(source)
            results, revision = await self.fetcher.fetch_repo_files(
                source, revision=revision, branch=branch
            )

            documents = [
                self.transformer.transform(source, r.path, r.content, branch, revision)
                for r in results
            ]

            publish_result = await asyncio.to_thread(
                self.publisher.publish, source, documents, revision, push
            )

            missing = self._check_sidebar(documents)

            if publish_result.pushed:
                await self._trigger_deploy(source)

        except (GitHubFetchError, FrontMatterError, PathMappingError, PublishError) as e:
            logger.error(f"Sync of {source.name} aborted: {e}")
            error = str(e)
        except Exception as e:
            logger.error(f"Sync of {source.name} failed with exception: {e}", exc_info=True)
            error = f"Documentation sync failed: {e}"

        end_time = datetime.now()
        result = SyncResult(
            source=source.name,
            revision=revision,
            success=error is None,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=(end_time - start_time).total_seconds(),
            documents=len(documents),
            files_written=publish_result.files_written,
            files_removed=publish_result.files_removed,
            committed=publish_result.committed,
            commit_sha=publish_result.commit_sha,
            pushed=publish_result.pushed,
            missing_sidebar_entries=missing,
            error=error,
        )

        if result.success:
            logger.info(
                f"✓ Sync of {source.name} complete: {len(result.files_written)} written, "
                f"{len(result.files_removed)} removed in {result.duration_seconds:.1f}s"
            )
        if self.telemetry:
            self.telemetry.log_sync(result)
        return result

    def _check_sidebar(self, documents: list[Document]) -> list[str]:
        """Warn about synced documents with no sidebar entry (not enforced)"""
        if self.sidebar is None:
            return []
        try:
            missing = self.sidebar.missing_entries(documents, self.sources_config.docs_root)
        except SidebarError as e:
            logger.warning(f"Skipping sidebar check: {e}")
            return []

        for identifier in missing:
            logger.warning(f"⚠ No sidebar entry for synced doc '{identifier}'")
        return missing

    async def _trigger_deploy(self, source: SourceRepository) -> None:
        """POST the site build hook (Netlify style)"""
        if not self.deploy_hook_url:
            return
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(30.0), transport=self.deploy_transport
            ) as client:
                response = await client.post(
                    self.deploy_hook_url, params={"trigger_title": f"docs sync: {source.name}"}
                )
                response.raise_for_status()
            logger.info(f"Triggered site deploy for {source.name}")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to trigger deploy hook: {e}")
