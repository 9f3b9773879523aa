"""Detect upstream pushes that should trigger a documentation sync"""

import fnmatch
import logging
from pathlib import PurePosixPath
from typing import Any

from docs_sync.models.event import ChangeEvent
from docs_sync.models.sources_config import SourceRepository, SourcesConfig

logger = logging.getLogger(__name__)


class EventParseError(ValueError):
    """Raised when a webhook payload is missing required fields"""

    pass


class ChangeDetector:
    """Map webhook events to the source repository they concern"""

    def __init__(self, sources_config: SourcesConfig):
        self.sources_config = sources_config

    def from_payload(
        self, event_name: str, payload: dict[str, Any], delivery_id: str | None = None
    ) -> ChangeEvent | None:
        """
        Build a ChangeEvent from a GitHub webhook delivery

        Args:
            event_name: Value of the X-GitHub-Event header
            payload: Decoded JSON body
            delivery_id: Value of the X-GitHub-Delivery header

        Returns:
            ChangeEvent, or None for events that never trigger a sync (ping, ...)

        Raises:
            EventParseError: If a push or dispatch payload is malformed
        """
        if event_name == "push":
            return self.parse_push_event(payload, delivery_id)
        if event_name == "repository_dispatch":
            return self.parse_dispatch_event(payload, delivery_id)

        logger.info(f"Ignoring '{event_name}' event (delivery {delivery_id})")
        return None

    def parse_push_event(
        self, payload: dict[str, Any], delivery_id: str | None = None
    ) -> ChangeEvent:
        """Parse a GitHub push payload"""
        try:
            repository = payload["repository"]
            full_name = repository["full_name"]
        except (KeyError, TypeError) as e:
            raise EventParseError(f"Push payload has no repository: {e}") from e

        changed: list[str] = []
        removed: list[str] = []
        for commit in payload.get("commits") or []:
            for path in (commit.get("added") or []) + (commit.get("modified") or []):
                if path in removed:
                    removed.remove(path)
                if path not in changed:
                    changed.append(path)
            for path in commit.get("removed") or []:
                if path in changed:
                    changed.remove(path)
                if path not in removed:
                    removed.append(path)

        return ChangeEvent(
            repository=full_name,
            ref=payload.get("ref"),
            default_branch=repository.get("default_branch") or repository.get("master_branch"),
            before=payload.get("before"),
            after=payload.get("after"),
            changed_paths=changed,
            removed_paths=removed,
            delivery_id=delivery_id,
        )

    def parse_dispatch_event(
        self, payload: dict[str, Any], delivery_id: str | None = None
    ) -> ChangeEvent:
        """
        Parse a repository_dispatch payload

        client_payload.repository names the upstream repository to resync. It defaults
        to the repository the dispatch was sent to.
        """
        client_payload = payload.get("client_payload") or {}
        full_name = client_payload.get("repository") or (payload.get("repository") or {}).get(
            "full_name"
        )
        if not full_name:
            raise EventParseError("Dispatch payload does not name a repository")

        return ChangeEvent(
            repository=full_name,
            after=client_payload.get("revision"),
            forced=True,
            delivery_id=delivery_id,
        )

    def detect(self, event: ChangeEvent) -> SourceRepository | None:
        """
        Decide whether an event should trigger a sync

        Args:
            event: Parsed upstream event

        Returns:
            The tracked source repository, or None when the event is ignored
        """
        source = self.sources_config.find_by_full_name(event.repository)
        if source is None:
            logger.info(f"Ignoring event for untracked repository {event.repository}")
            return None

        if event.forced:
            logger.info(f"Dispatch requested sync of {source.name}")
            return source

        if event.is_deletion:
            logger.info(f"Ignoring branch deletion on {event.repository}")
            return None

        tracked_branch = source.branch or event.default_branch
        if event.branch is None or event.branch != tracked_branch:
            logger.info(
                f"Ignoring push to {event.ref} on {event.repository} "
                f"(tracking {tracked_branch})"
            )
            return None

        relevant = [
            path
            for path in event.changed_paths + event.removed_paths
            if self.is_tracked_path(source, path)
        ]
        if not relevant:
            logger.info(f"No markdown changes under '{source.markdown_root or '/'}' in push")
            return None

        logger.info(f"Detected {len(relevant)} markdown change(s) in {source.name}")
        return source

    @staticmethod
    def is_tracked_path(source: SourceRepository, path: str) -> bool:
        """Whether an upstream path is a markdown file mirrored for this source"""
        pure = PurePosixPath(path)
        if pure.suffix.lower() != ".md":
            return False

        if source.markdown_root:
            root = PurePosixPath(source.markdown_root)
            if root not in pure.parents:
                return False
            relative = str(pure.relative_to(root))
        else:
            relative = str(pure)

        return any(fnmatch.fnmatch(relative, pattern) for pattern in source.paths)
