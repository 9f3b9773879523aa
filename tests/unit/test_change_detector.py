"""Unit tests for upstream change detection"""

import pytest

from docs_sync.models.event import ChangeEvent
from docs_sync.models.sources_config import SourcesConfig
from docs_sync.services.change_detector import ChangeDetector, EventParseError


@pytest.fixture
def detector():
    sources_config = SourcesConfig(
        sources={
            "github_repos": [
                {"name": "go", "repo_owner": "pact-foundation", "repo_name": "pact-go"},
                {
                    "name": "js",
                    "repo_owner": "pact-foundation",
                    "repo_name": "pact-js",
                    "branch": "main",
                    "markdown_root": "docs",
                },
            ]
        }
    )
    return ChangeDetector(sources_config)


def _push(repository="pact-foundation/pact-go", ref="refs/heads/master", commits=None, **extra):
    payload = {
        "ref": ref,
        "before": "1" * 40,
        "after": "2" * 40,
        "repository": {"full_name": repository, "default_branch": "master"},
        "commits": commits if commits is not None else [{"added": [], "modified": ["README.md"]}],
    }
    payload.update(extra)
    return payload


class TestParsePushEvent:
    """Test push payload parsing"""

    def test_paths_are_collected_across_commits(self, detector):
        payload = _push(
            commits=[
                {"added": ["docs/a.md"], "modified": ["README.md"], "removed": []},
                {"added": [], "modified": ["docs/a.md"], "removed": ["docs/old.md"]},
            ]
        )

        event = detector.parse_push_event(payload, "delivery-1")

        assert event.repository == "pact-foundation/pact-go"
        assert event.branch == "master"
        assert event.is_default_branch
        assert event.changed_paths == ["docs/a.md", "README.md"]
        assert event.removed_paths == ["docs/old.md"]
        assert event.delivery_id == "delivery-1"

    def test_removed_then_readded_path_is_a_change(self, detector):
        payload = _push(
            commits=[
                {"removed": ["docs/a.md"]},
                {"added": ["docs/a.md"]},
            ]
        )

        event = detector.parse_push_event(payload)

        assert event.changed_paths == ["docs/a.md"]
        assert event.removed_paths == []

    def test_missing_repository_raises(self, detector):
        with pytest.raises(EventParseError):
            detector.parse_push_event({"ref": "refs/heads/master"})

    def test_ping_is_ignored(self, detector):
        assert detector.from_payload("ping", {"zen": "Keep it simple"}) is None

    def test_dispatch_forces_sync(self, detector):
        event = detector.from_payload(
            "repository_dispatch",
            {
                "action": "docs-updated",
                "client_payload": {"repository": "pact-foundation/pact-js", "revision": "abc"},
            },
        )

        assert event.forced is True
        assert event.after == "abc"
        assert detector.detect(event).name == "js"

    def test_dispatch_without_repository_raises(self, detector):
        with pytest.raises(EventParseError):
            detector.from_payload("repository_dispatch", {"client_payload": {}})


class TestDetect:
    """Test the sync decision"""

    def test_markdown_change_on_default_branch(self, detector):
        event = detector.from_payload("push", _push())

        assert detector.detect(event).name == "go"

    def test_untracked_repository(self, detector):
        event = detector.from_payload("push", _push(repository="someone/else"))

        assert detector.detect(event) is None

    def test_other_branch_is_ignored(self, detector):
        event = detector.from_payload("push", _push(ref="refs/heads/feature"))

        assert detector.detect(event) is None

    def test_tag_push_is_ignored(self, detector):
        event = detector.from_payload("push", _push(ref="refs/tags/v1.0.0"))

        assert detector.detect(event) is None

    def test_branch_deletion_is_ignored(self, detector):
        event = detector.from_payload("push", _push(after="0" * 40, deleted=True))

        assert event.is_deletion
        assert detector.detect(event) is None

    def test_no_markdown_changes(self, detector):
        event = detector.from_payload(
            "push", _push(commits=[{"modified": ["main.go", "docs/diagram.png"]}])
        )

        assert detector.detect(event) is None

    def test_removed_markdown_triggers_sync(self, detector):
        event = detector.from_payload("push", _push(commits=[{"removed": ["docs/old.md"]}]))

        assert detector.detect(event).name == "go"

    def test_configured_branch_overrides_default(self, detector):
        payload = _push(
            repository="pact-foundation/pact-js",
            ref="refs/heads/main",
            commits=[{"modified": ["docs/provider.md"]}],
        )

        assert detector.detect(detector.from_payload("push", payload)).name == "js"

    def test_changes_outside_markdown_root_are_ignored(self, detector):
        payload = _push(
            repository="pact-foundation/pact-js",
            ref="refs/heads/main",
            commits=[{"modified": ["README.md", "src/index.md"]}],
        )

        assert detector.detect(detector.from_payload("push", payload)) is None

    def test_forced_event_for_untracked_repository(self, detector):
        event = ChangeEvent(repository="someone/else", forced=True)

        assert detector.detect(event) is None
