"""Command line entry points for syncing implementation guides into the site"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from docs_sync.config import config
from docs_sync.models.document import Document
from docs_sync.models.sources_config import SourcesConfig
from docs_sync.models.sync_result import SyncResult
from docs_sync.services.change_detector import EventParseError
from docs_sync.services.doc_sync import DocSync, SyncError
from docs_sync.services.front_matter import (
    FrontMatterError,
    destination_root,
    split_front_matter,
)
from docs_sync.services.publisher import Publisher
from docs_sync.services.sidebar import SidebarChecker, SidebarError
from docs_sync.services.telemetry import get_telemetry_service
from docs_sync.utils.sources_loader import load_sources_config

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure logging for CLI (stdout for CI logs)"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _build_doc_sync(sources_config: SourcesConfig, dry_run: bool) -> DocSync:
    publisher = Publisher(
        repo_root=config.repo_root,
        docs_root=sources_config.docs_root,
        git_user_name=config.git_user_name,
        git_user_email=config.git_user_email,
        remote=config.git_remote,
        branch=config.git_branch,
        dry_run=dry_run or config.dry_run,
    )
    return DocSync(
        sources_config,
        publisher=publisher,
        telemetry=get_telemetry_service(),
        deploy_hook_url=config.deploy_hook_url,
    )


def _report(results: list[SyncResult]) -> int:
    """Print one line per result; exit code 1 when any run failed"""
    exit_code = 0
    for result in results:
        if result.success:
            action = f"committed {result.commit_sha[:7]}" if result.committed else "no changes"
            if result.pushed:
                action += ", pushed"
            click.echo(
                f"✓ {result.source}: {result.documents} docs, {len(result.files_written)} "
                f"written, {len(result.files_removed)} removed ({action})"
            )
        else:
            click.echo(f"✗ {result.source}: {result.error}", err=True)
            exit_code = 1
        for identifier in result.missing_sidebar_entries:
            click.echo(f"  ⚠ no sidebar entry for {identifier}")
    return exit_code


@click.group()
@click.option(
    "--sources",
    "sources_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to sources.yaml (default: SOURCES_CONFIG_PATH or sources.yaml)",
)
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, sources_path: str | None, debug: bool) -> None:
    """Sync implementation guide markdown from upstream repositories into the site"""
    # Load .env file first (won't override existing env vars)
    if Path(".env").exists():
        load_dotenv()
    setup_logging("DEBUG" if debug else config.log_level)

    ctx.ensure_object(dict)
    ctx.obj["sources_path"] = sources_path or config.sources_config_path


def _load(ctx: click.Context) -> SourcesConfig:
    try:
        return load_sources_config(ctx.obj["sources_path"])
    except FileNotFoundError as e:
        raise click.ClickException(f"Configuration file not found: {e}") from e
    except ValueError as e:
        raise click.ClickException(f"Configuration error: {e}") from e


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--revision", default=None, help="Upstream commit SHA (single source only)")
@click.option("--no-push", is_flag=True, help="Commit without pushing")
@click.option("--dry-run", is_flag=True, help="Preview changes without writing")
@click.pass_context
def sync(
    ctx: click.Context, names: tuple[str, ...], revision: str | None, no_push: bool, dry_run: bool
) -> None:
    """Sync the named sources (all enabled sources when none are given)"""
    sources_config = _load(ctx)

    async def run() -> list[SyncResult]:
        async with _build_doc_sync(sources_config, dry_run) as doc_sync:
            if names:
                return await doc_sync.sync_named(list(names), revision, push=not no_push)
            if revision:
                raise SyncError("--revision requires a source name")
            return await doc_sync.sync_all(push=not no_push)

    try:
        results = asyncio.run(run())
    except SyncError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        click.echo("\nSync cancelled.", err=True)
        sys.exit(130)

    sys.exit(_report(results))


@cli.command("handle-event")
@click.argument("payload_file", type=click.File("r"))
@click.option("--event", "event_name", default="push", show_default=True, help="GitHub event name")
@click.option("--no-push", is_flag=True, help="Commit without pushing")
@click.option("--dry-run", is_flag=True, help="Preview changes without writing")
@click.pass_context
def handle_event(ctx: click.Context, payload_file, event_name: str, no_push: bool, dry_run: bool):
    """Run detection and sync for a saved webhook payload (e.g. $GITHUB_EVENT_PATH)"""
    sources_config = _load(ctx)

    try:
        payload = json.load(payload_file)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON payload: {e}") from e

    async def run() -> SyncResult | None:
        async with _build_doc_sync(sources_config, dry_run) as doc_sync:
            event = doc_sync.detector.from_payload(event_name, payload)
            if event is None:
                return None
            return await doc_sync.sync_event(event, push=not no_push)

    try:
        result = asyncio.run(run())
    except EventParseError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        click.echo("\nSync cancelled.", err=True)
        sys.exit(130)

    if result is None:
        click.echo("Event does not concern a tracked markdown tree; nothing to do")
        sys.exit(0)
    sys.exit(_report([result]))


@cli.command("check-sidebar")
@click.pass_context
def check_sidebar(ctx: click.Context) -> None:
    """Report synced docs that no sidebar entry points at"""
    sources_config = _load(ctx)
    if not sources_config.sidebars_file:
        raise click.ClickException("No sidebars_file configured in sources configuration")

    repo_root = Path(config.repo_root)
    checker = SidebarChecker(repo_root / sources_config.sidebars_file)

    missing: list[str] = []
    try:
        for source in sources_config.get_enabled_github_repos():
            dest = repo_root / destination_root(sources_config.docs_root, source)
            documents = []
            for file_path in sorted(dest.rglob("*.md")) if dest.is_dir() else []:
                front_matter, body = split_front_matter(file_path.read_text(encoding="utf-8"))
                relative = file_path.relative_to(repo_root).as_posix()
                documents.append(
                    Document(
                        source=source.name,
                        source_path=relative,
                        relative_path=file_path.relative_to(dest).as_posix(),
                        destination_path=relative,
                        upstream_url=front_matter.get("custom_edit_url", ""),
                        front_matter=front_matter,
                        body=body,
                    )
                )
            missing.extend(checker.missing_entries(documents, sources_config.docs_root))
    except (SidebarError, FrontMatterError) as e:
        raise click.ClickException(str(e)) from e

    for identifier in missing:
        click.echo(f"⚠ no sidebar entry for {identifier}")
    if missing:
        sys.exit(1)
    click.echo("✓ Every synced doc has a sidebar entry")


@cli.command("list-sources")
@click.pass_context
def list_sources(ctx: click.Context) -> None:
    """List configured source repositories and their destinations"""
    sources_config = _load(ctx)
    for source in sources_config.sources.github_repos:
        state = "" if source.enabled else " (disabled)"
        root = source.markdown_root or "/"
        click.echo(
            f"{source.name}: {source.full_name}:{root} -> "
            f"{sources_config.docs_root}/{source.destination_path}{state}"
        )


@cli.command()
@click.option("--host", default=None, help="Bind address (default: SERVER_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: SERVER_PORT)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the webhook server"""
    from docs_sync.webhook_server import main as serve_main

    serve_main(host=host, port=port, sources_path=ctx.obj["sources_path"])


def main() -> None:
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
