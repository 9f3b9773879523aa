"""Integration tests for Publisher against real git repositories"""

import subprocess
import tempfile
from pathlib import Path

import pytest

from docs_sync.models.document import Document
from docs_sync.models.sources_config import SourceRepository
from docs_sync.services.publisher import Publisher, PublishError, PushConflictError

REVISION = "0123456789abcdef0123456789abcdef01234567"


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_count(repo: Path) -> int:
    return int(git(repo, "rev-list", "--count", "HEAD"))


def make_doc(path: str, body: str, source: str = "go") -> Document:
    return Document(
        source=source,
        source_path=path,
        relative_path=path,
        destination_path=f"website/docs/implementation_guides/{source}/{path}",
        upstream_url=f"https://github.com/pact-foundation/pact-{source}/blob/master/{path}",
        front_matter={
            "title": path,
            "custom_edit_url": f"https://github.com/pact-foundation/pact-{source}/edit/master/"
            f"{path}",
        },
        body=body,
    )


class TestPublisher:
    """Test writing, committing and pushing synced documents"""

    @pytest.fixture
    def site(self):
        """Site repository cloned from a bare remote, with one initial commit"""
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            remote = root / "remote.git"
            repo = root / "site"
            git(root, "init", "-q", "--bare", "-b", "master", str(remote))
            git(root, "clone", "-q", str(remote), str(repo))
            git(repo, "symbolic-ref", "HEAD", "refs/heads/master")

            (repo / "website" / "docs").mkdir(parents=True)
            (repo / "website" / "docs" / "index.md").write_text("# Pact\n")
            other = repo / "website" / "docs" / "implementation_guides" / "js"
            other.mkdir(parents=True)
            (other / "readme.md").write_text("# Pact JS\n")
            git(repo, "add", "-A")
            git(repo, "commit", "-q", "-m", "initial")
            git(repo, "push", "-q", "origin", "master")
            yield repo, remote

    @pytest.fixture
    def source(self):
        return SourceRepository(name="go", repo_owner="pact-foundation", repo_name="pact-go")

    def _publisher(self, repo: Path, **kwargs) -> Publisher:
        return Publisher(repo_root=repo, docs_root="website/docs", **kwargs)

    def test_publish_commits_and_pushes(self, site, source):
        repo, remote = site
        docs = [make_doc("README.md", "# Pact Go\n"), make_doc("docs/guide.md", "# Guide\n")]

        result = self._publisher(repo).publish(source, docs, REVISION)

        assert result.committed is True
        assert result.pushed is True
        assert sorted(result.files_written) == [
            "website/docs/implementation_guides/go/README.md",
            "website/docs/implementation_guides/go/docs/guide.md",
        ]
        guide = repo / "website/docs/implementation_guides/go/docs/guide.md"
        assert guide.read_text().endswith("---\n# Guide\n")
        assert git(remote, "rev-parse", "master") == result.commit_sha
        subject = git(repo, "log", "-1", "--format=%s")
        assert subject == "docs(go): sync from pact-foundation/pact-go@0123456"

    def test_second_run_is_a_no_op(self, site, source):
        repo, _ = site
        docs = [make_doc("README.md", "# Pact Go\n")]
        publisher = self._publisher(repo)

        publisher.publish(source, docs, REVISION)
        count = commit_count(repo)
        result = publisher.publish(source, docs, REVISION)

        assert result.committed is False
        assert result.files_written == []
        assert commit_count(repo) == count

    def test_stale_markdown_is_removed(self, site, source):
        repo, _ = site
        publisher = self._publisher(repo)
        publisher.publish(
            source, [make_doc("README.md", "A\n"), make_doc("old.md", "B\n")], REVISION
        )
        dest = repo / "website/docs/implementation_guides/go"
        (dest / "diagram.png").write_bytes(b"\x89PNG")
        git(repo, "add", "-A")
        git(repo, "commit", "-q", "-m", "add asset")

        result = publisher.publish(source, [make_doc("README.md", "A\n")], REVISION)

        assert result.files_removed == ["website/docs/implementation_guides/go/old.md"]
        assert not (dest / "old.md").exists()
        assert (dest / "diagram.png").exists()
        assert "Removed: 1 file" in git(repo, "log", "-1", "--format=%B")

    def test_files_outside_destination_are_untouched(self, site, source):
        repo, _ = site
        unrelated = repo / "website" / "docs" / "index.md"
        unrelated.write_text("# Local edit, not staged\n")

        result = self._publisher(repo).publish(
            source, [make_doc("README.md", "# Pact Go\n")], REVISION
        )

        changed = git(
            repo, "diff-tree", "--no-commit-id", "--name-only", "-r", result.commit_sha
        ).splitlines()
        assert changed == ["website/docs/implementation_guides/go/README.md"]
        assert unrelated.read_text() == "# Local edit, not staged\n"
        assert "website/docs/index.md" in git(repo, "status", "--porcelain")

    def test_document_outside_destination_is_rejected(self, site, source):
        repo, _ = site
        doc = make_doc("README.md", "x\n", source="js")

        with pytest.raises(PublishError):
            self._publisher(repo).publish(source, [doc], REVISION)

        assert git(repo, "status", "--porcelain") == ""

    def test_dry_run_writes_nothing(self, site, source):
        repo, _ = site
        count = commit_count(repo)

        result = self._publisher(repo, dry_run=True).publish(
            source, [make_doc("README.md", "x\n")], REVISION
        )

        assert result.files_written == ["website/docs/implementation_guides/go/README.md"]
        assert result.committed is False
        assert not (repo / "website/docs/implementation_guides/go").exists()
        assert commit_count(repo) == count

    def test_publish_after_remote_moved_ahead(self, site, source):
        repo, remote = site
        with tempfile.TemporaryDirectory() as other_dir:
            # Someone else pushes first
            other = Path(other_dir) / "other"
            git(Path(other_dir), "clone", "-q", str(remote), str(other))
            (other / "CHANGELOG.md").write_text("changes\n")
            git(other, "add", "-A")
            git(other, "commit", "-q", "-m", "concurrent change")
            git(other, "push", "-q", "origin", "master")
            other_head = git(other, "rev-parse", "HEAD")

        result = self._publisher(repo).publish(source, [make_doc("README.md", "x\n")], REVISION)

        assert result.pushed is True
        assert git(remote, "rev-parse", "master") == result.commit_sha
        assert git(repo, "rev-parse", f"{result.commit_sha}~1") == other_head
        assert (repo / "CHANGELOG.md").exists()

    def test_rejected_push_is_undone_and_rerun_succeeds(self, site, source):
        repo, remote = site
        hook = remote / "hooks" / "pre-receive"
        hook.write_text(
            "#!/bin/sh\n"
            'if [ -f "$GIT_DIR/reject-once" ]; then\n'
            '  rm -f "$GIT_DIR/reject-once"\n'
            '  echo "rejected" >&2\n'
            "  exit 1\n"
            "fi\n"
        )
        hook.chmod(0o755)
        (remote / "reject-once").write_text("")
        head_before = git(repo, "rev-parse", "HEAD")
        docs = [make_doc("README.md", "x\n")]
        publisher = self._publisher(repo)

        with pytest.raises(PushConflictError):
            publisher.publish(source, docs, REVISION)

        assert git(repo, "rev-parse", "HEAD") == head_before
        assert git(repo, "status", "--porcelain") == ""
        assert not (repo / "website/docs/implementation_guides/go/README.md").exists()

        result = publisher.publish(source, docs, REVISION)

        assert result.committed is True
        assert result.pushed is True
        assert git(remote, "rev-parse", "master") == result.commit_sha

    def test_crlf_content_is_not_rewritten(self, site, source):
        repo, _ = site
        docs = [make_doc("README.md", "# Go\r\nline\r\n")]
        publisher = self._publisher(repo)

        publisher.publish(source, docs, REVISION)
        written = repo / "website/docs/implementation_guides/go/README.md"
        assert written.read_bytes().endswith(b"# Go\r\nline\r\n")
        result = publisher.publish(source, docs, REVISION)

        assert result.files_written == []
        assert result.committed is False

    def test_write_failure_restores_destination(self, site, source):
        repo, _ = site
        dest = repo / "website/docs/implementation_guides/go"
        # A directory where a document must go makes the write fail
        (dest / "README.md").mkdir(parents=True)
        (dest / "README.md" / "keep.txt").write_text("keep\n")
        git(repo, "add", "-A")
        git(repo, "commit", "-q", "-m", "blocker")
        head_before = git(repo, "rev-parse", "HEAD")
        docs = [make_doc("a.md", "A\n"), make_doc("README.md", "x\n")]

        with pytest.raises(PublishError) as exc_info:
            self._publisher(repo).publish(source, docs, REVISION, push=False)

        assert not isinstance(exc_info.value, PushConflictError)
        assert git(repo, "rev-parse", "HEAD") == head_before
        assert git(repo, "status", "--porcelain") == ""
        assert not (dest / "a.md").exists()
        assert (dest / "README.md" / "keep.txt").exists()

    def test_missing_remote_skips_push(self, site, source):
        repo, _ = site
        git(repo, "remote", "remove", "origin")

        result = self._publisher(repo).publish(source, [make_doc("README.md", "x\n")], REVISION)

        assert result.committed is True
        assert result.pushed is False

    def test_commit_message(self, source):
        message = Publisher.commit_message(source, REVISION, ["a.md", "b.md"], [])

        assert message.splitlines() == [
            "docs(go): sync from pact-foundation/pact-go@0123456",
            "",
            f"Upstream revision: {REVISION}",
            "Updated: 2 files",
        ]
