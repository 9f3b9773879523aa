"""Write synced documents into the site repository and commit them"""

import logging
import subprocess
import threading
from pathlib import Path, PurePosixPath

from docs_sync.models.document import Document
from docs_sync.models.sources_config import SourceRepository
from docs_sync.models.sync_result import PublishResult
from docs_sync.services.front_matter import destination_root

logger = logging.getLogger(__name__)

# One lock per working tree: git index operations must not interleave
_repo_locks: dict[str, threading.Lock] = {}
_repo_locks_guard = threading.Lock()


def _repo_lock(repo_root: Path) -> threading.Lock:
    key = str(repo_root.resolve())
    with _repo_locks_guard:
        return _repo_locks.setdefault(key, threading.Lock())


class PublishError(Exception):
    """Raised when documents cannot be written, committed or pushed"""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class PushConflictError(PublishError):
    """Raised when the remote rejects the push (e.g. non-fast-forward)"""

    pass


class Publisher:
    """
    Mirror a source's documents into its destination directory and commit

    Only the destination directory owned by the source is written, staged and
    committed. A run produces one commit or none.
    """

    def __init__(
        self,
        repo_root: str | Path = ".",
        docs_root: str = "",
        git_user_name: str = "pact-docs-sync",
        git_user_email: str = "pact-docs-sync@users.noreply.github.com",
        remote: str = "origin",
        branch: str = "master",
        dry_run: bool = False,
    ):
        self.repo_root = Path(repo_root)
        self.docs_root = docs_root
        self.git_user_name = git_user_name
        self.git_user_email = git_user_email
        self.remote = remote
        self.branch = branch
        self.dry_run = dry_run

    def _run_git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a git command in the site repository"""
        cmd = [
            "git",
            "-C",
            str(self.repo_root),
            "-c",
            f"user.name={self.git_user_name}",
            "-c",
            f"user.email={self.git_user_email}",
            *args,
        ]
        logger.debug(f"Running: git {' '.join(args)}")
        return subprocess.run(cmd, capture_output=True, text=True, check=check)

    def publish(
        self,
        source: SourceRepository,
        documents: list[Document],
        revision: str,
        push: bool = True,
    ) -> PublishResult:
        """
        Write, commit and push a source's documents

        Args:
            source: Source repository that owns the destination directory
            documents: Transformed documents (full overwrite of the destination)
            revision: Upstream revision, recorded in the commit message
            push: Push the commit to the remote

        Returns:
            PublishResult; committed is False when the tree was already up to date

        Raises:
            PublishError: If writing or committing fails (destination restored)
            PushConflictError: If the push is rejected (local commit undone)
        """
        with _repo_lock(self.repo_root):
            return self._publish(source, documents, revision, push)

    def _publish(
        self,
        source: SourceRepository,
        documents: list[Document],
        revision: str,
        push: bool,
    ) -> PublishResult:
        dest = destination_root(self.docs_root, source)
        self._validate_paths(dest, documents)

        # Start from the remote tip
        if push and not self.dry_run and self._remote_configured():
            self.update_base()

        desired = {doc.destination_path: doc.render() for doc in documents}
        stale = self._stale_files(dest, desired)
        changed = [path for path, content in desired.items() if self._differs(path, content)]

        if self.dry_run:
            for path in changed:
                logger.info(f"Dry run - would write {path}")
            for path in stale:
                logger.info(f"Dry run - would remove {path}")
            return PublishResult(files_written=changed, files_removed=stale)

        if not changed and not stale:
            logger.info(f"{dest} is up to date")
            return PublishResult()

        previous_head = self._head()
        try:
            self._write(desired, changed, stale)
            self._run_git("add", "-A", "--", dest)

            staged = self._run_git("diff", "--cached", "--quiet", "--", dest, check=False)
            if staged.returncode == 0:
                logger.info(f"No changes to commit for {source.name}")
                return PublishResult(files_written=changed, files_removed=stale)

            message = self.commit_message(source, revision, changed, stale)
            self._run_git("commit", "-q", "-m", message, "--", dest)
            commit_sha = self._head()
            logger.info(f"Committed {commit_sha[:7]}: {message.splitlines()[0]}")
        except (OSError, subprocess.CalledProcessError) as e:
            self._restore(dest)
            detail = e.stderr.strip() if isinstance(e, subprocess.CalledProcessError) else e
            raise PublishError(f"Failed to commit {dest}: {detail}", e) from e

        result = PublishResult(
            files_written=changed,
            files_removed=stale,
            committed=True,
            commit_sha=commit_sha,
        )
        if push:
            result.pushed = self.push(dest, previous_head)
        return result

    def push(self, dest: str, previous_head: str | None) -> bool:
        """
        Push HEAD to the configured branch

        Returns:
            True if pushed, False if no remote is configured

        Raises:
            PushConflictError: If the push fails; the local commit is undone
        """
        if not self._remote_configured():
            logger.warning(f"Remote '{self.remote}' not configured, skipping push")
            return False

        try:
            self._run_git("push", "-q", self.remote, f"HEAD:{self.branch}")
        except subprocess.CalledProcessError as e:
            logger.error(f"Push to {self.remote}/{self.branch} failed: {e.stderr.strip()}")
            if previous_head:
                self._run_git("reset", "-q", "--soft", previous_head, check=False)
            else:
                self._run_git("update-ref", "-d", "HEAD", check=False)
            self._restore(dest)
            raise PushConflictError(
                f"Push to {self.remote}/{self.branch} rejected: {e.stderr.strip()}", e
            ) from e

        logger.info(f"Pushed to {self.remote}/{self.branch}")
        return True

    def update_base(self) -> bool:
        """
        Fast-forward the local branch to the remote branch

        Returns:
            True if the local branch now contains the remote tip
        """
        fetched = self._run_git("fetch", "-q", self.remote, self.branch, check=False)
        if fetched.returncode != 0:
            logger.warning(
                f"Could not fetch {self.remote}/{self.branch}: {fetched.stderr.strip()}"
            )
            return False

        merged = self._run_git("merge", "-q", "--ff-only", "FETCH_HEAD", check=False)
        if merged.returncode != 0:
            logger.warning(
                f"Cannot fast-forward to {self.remote}/{self.branch}, "
                f"push may be rejected: {merged.stderr.strip()}"
            )
            return False

        logger.debug(f"Up to date with {self.remote}/{self.branch}")
        return True

    def _remote_configured(self) -> bool:
        return self._run_git("remote", "get-url", self.remote, check=False).returncode == 0

    @staticmethod
    def commit_message(
        source: SourceRepository, revision: str, written: list[str], removed: list[str]
    ) -> str:
        """Conventional-commit style message for a sync commit"""
        subject = f"docs({source.name}): sync from {source.full_name}@{revision[:7]}"
        body = [f"Upstream revision: {revision}"]
        if written:
            body.append(f"Updated: {len(written)} file{'s' if len(written) != 1 else ''}")
        if removed:
            body.append(f"Removed: {len(removed)} file{'s' if len(removed) != 1 else ''}")
        return subject + "\n\n" + "\n".join(body)

    def _validate_paths(self, dest: str, documents: list[Document]) -> None:
        """Every document must live inside the source's destination directory"""
        dest_path = PurePosixPath(dest)
        abs_dest = (self.repo_root / dest).resolve()
        for doc in documents:
            target = PurePosixPath(doc.destination_path)
            if dest_path not in target.parents or ".." in target.parts:
                raise PublishError(f"{doc.destination_path} is outside destination {dest}")
            resolved = (self.repo_root / doc.destination_path).resolve()
            if abs_dest not in resolved.parents:
                raise PublishError(f"{doc.destination_path} resolves outside {dest}")

    def _stale_files(self, dest: str, desired: dict[str, str]) -> list[str]:
        """Markdown files in the destination that the source no longer produces"""
        abs_dest = self.repo_root / dest
        if not abs_dest.is_dir():
            return []
        stale = []
        for file_path in sorted(abs_dest.rglob("*.md")):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(self.repo_root).as_posix()
            if relative not in desired:
                stale.append(relative)
        return stale

    def _differs(self, path: str, content: str) -> bool:
        file_path = self.repo_root / path
        if not file_path.is_file():
            return True
        # Compare bytes: text mode would translate CRLF
        return file_path.read_bytes() != content.encode("utf-8")

    def _write(self, desired: dict[str, str], changed: list[str], stale: list[str]) -> None:
        for path in changed:
            file_path = self.repo_root / path
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "w", encoding="utf-8", newline="") as f:
                f.write(desired[path])
            logger.debug(f"✓ Wrote {path}")

        for path in stale:
            (self.repo_root / path).unlink()
            logger.debug(f"✓ Removed {path}")

    def _head(self) -> str | None:
        result = self._run_git("rev-parse", "--verify", "-q", "HEAD", check=False)
        return result.stdout.strip() or None

    def _restore(self, dest: str) -> None:
        """Reset the destination directory (index and working tree) to HEAD"""
        self._run_git("reset", "-q", "--", dest, check=False)
        self._run_git("checkout", "-q", "--", dest, check=False)
        self._run_git("clean", "-fdq", "--", dest, check=False)
        logger.info(f"Restored {dest} to HEAD")
