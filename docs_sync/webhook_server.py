"""Webhook receiver that triggers documentation syncs on upstream pushes"""

import asyncio
import hashlib
import hmac
import json
import logging
import os
from collections import defaultdict
from collections.abc import Callable
from contextlib import asynccontextmanager
from urllib.parse import parse_qs

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from docs_sync.config import config
from docs_sync.models.sources_config import SourceRepository, SourcesConfig
from docs_sync.services.change_detector import ChangeDetector, EventParseError
from docs_sync.services.doc_sync import DocSync
from docs_sync.services.sync_scheduler import SyncScheduler
from docs_sync.services.telemetry import get_telemetry_service
from docs_sync.utils.sources_loader import load_sources_config

logger = logging.getLogger(__name__)

# Background resync
_sync_scheduler: SyncScheduler | None = None
_scheduler: BackgroundScheduler | None = None


def verify_signature(secret: str, body: bytes, signature_header: str | None) -> bool:
    """Check a GitHub X-Hub-Signature-256 header against the request body"""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature_header)


def _decode_payload(request: Request, body: bytes) -> dict:
    """GitHub sends either JSON or a form field named 'payload'"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        form = parse_qs(body.decode("utf-8"))
        body = form.get("payload", [""])[0].encode("utf-8")
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise ValueError("payload must be a JSON object")
    return payload


async def _run_sync(app: Starlette, source: SourceRepository, revision: str | None) -> None:
    """Run one sync; runs for the same source are serialized"""
    async with app.state.source_locks[source.name]:
        result = await app.state.doc_sync.sync_source(source, revision)
    if not result.success:
        logger.error(f"Webhook-triggered sync of {source.name} failed: {result.error}")


async def webhook(request: Request) -> JSONResponse:
    body = await request.body()

    secret = request.app.state.webhook_secret
    if secret and not verify_signature(
        secret, body, request.headers.get("X-Hub-Signature-256")
    ):
        logger.warning("Rejected webhook delivery with invalid signature")
        return JSONResponse({"error": "invalid signature"}, status_code=401)

    event_name = request.headers.get("X-GitHub-Event", "")
    delivery_id = request.headers.get("X-GitHub-Delivery")

    try:
        payload = _decode_payload(request, body)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError
        return JSONResponse({"error": f"invalid payload: {e}"}, status_code=400)

    detector: ChangeDetector = request.app.state.detector
    try:
        event = detector.from_payload(event_name, payload, delivery_id)
    except EventParseError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    source = detector.detect(event) if event else None
    if source is None:
        return JSONResponse({"status": "ignored", "delivery": delivery_id})

    return JSONResponse(
        {"status": "accepted", "source": source.name, "delivery": delivery_id},
        status_code=202,
        background=BackgroundTask(_run_sync, request.app, source, event.after),
    )


# Both routes (/ and /health) point to the same function
async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_app(
    sources_config: SourcesConfig,
    doc_sync_factory: Callable[[], DocSync] | None = None,
    webhook_secret: str | None = None,
) -> Starlette:
    """
    Build the webhook application

    Args:
        sources_config: Loaded sources.yaml
        doc_sync_factory: Builds the DocSync used for webhook-triggered runs
        webhook_secret: Overrides github.webhook_secret / GITHUB_WEBHOOK_SECRET
    """
    factory = doc_sync_factory or (
        lambda: DocSync(
            sources_config,
            telemetry=get_telemetry_service(),
            deploy_hook_url=config.deploy_hook_url,
        )
    )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        app.state.doc_sync = factory()
        try:
            yield
        finally:
            await app.state.doc_sync.close()

    app = Starlette(
        routes=[
            Route("/webhook", webhook, methods=["POST"]),
            Route("/", health_check, methods=["GET"]),
            Route("/health", health_check, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.sources_config = sources_config
    app.state.detector = ChangeDetector(sources_config)
    app.state.source_locks = defaultdict(asyncio.Lock)
    app.state.webhook_secret = (
        webhook_secret
        or sources_config.github.webhook_secret
        or os.getenv("GITHUB_WEBHOOK_SECRET")
    )
    if not app.state.webhook_secret:
        logger.warning("No webhook secret configured; deliveries are not authenticated")
    return app


def _startup_sync(sources_config: SourcesConfig) -> None:
    """Initialize periodic resync on server startup"""
    global _sync_scheduler, _scheduler

    refresh_config = sources_config.refresh
    if not refresh_config.enabled:
        logger.info("Periodic resync is disabled")
        return

    try:
        logger.info("Initializing periodic resync")
        _scheduler = BackgroundScheduler()
        _sync_scheduler = SyncScheduler(
            lambda: DocSync(
                sources_config,
                telemetry=get_telemetry_service(),
                deploy_hook_url=config.deploy_hook_url,
            )
        )
        _sync_scheduler.configure_scheduler_sync(
            scheduler=_scheduler,
            interval_hours=refresh_config.interval_hours,
            max_concurrent_jobs=refresh_config.max_concurrent_jobs,
        )
        _scheduler.start()
        logger.info("Periodic resync started successfully")
    except Exception as e:
        logger.error(f"Failed to start periodic resync: {e}")
        # Don't fail server startup if the scheduler fails to initialize


def _shutdown_sync() -> None:
    """Gracefully shutdown on server shutdown"""
    if _sync_scheduler:
        try:
            _sync_scheduler.stop_scheduler_sync()
        except Exception as e:
            logger.error(f"Error shutting down resync scheduler: {e}")

    if _scheduler:
        try:
            logger.info("Shutting down background resync scheduler")
            _scheduler.shutdown(wait=False)
        except Exception as e:
            logger.error(f"Error shutting down scheduler: {e}")


def main(
    host: str | None = None, port: int | None = None, sources_path: str | None = None
) -> None:
    """Entry point for the webhook server"""
    sources_config = load_sources_config(sources_path or config.sources_config_path)
    _startup_sync(sources_config)

    try:
        uvicorn.run(
            create_app(sources_config),
            host=host or config.server_host,
            port=port or config.server_port,
        )
    finally:
        _shutdown_sync()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
