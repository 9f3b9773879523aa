"""Upstream change event model"""

from pydantic import BaseModel, Field


class ChangeEvent(BaseModel):
    """A push (or dispatch) on an upstream repository"""

    repository: str = Field(description="Upstream repository full name (owner/repo)")
    ref: str | None = Field(default=None, description="Git ref that was updated")
    default_branch: str | None = Field(
        default=None, description="Repository default branch as reported by the event"
    )
    before: str | None = Field(default=None, description="Revision before the push")
    after: str | None = Field(default=None, description="Revision after the push")
    changed_paths: list[str] = Field(
        default_factory=list, description="Paths added or modified by the push"
    )
    removed_paths: list[str] = Field(default_factory=list, description="Paths removed by the push")
    forced: bool = Field(
        default=False, description="Sync regardless of changed paths (repository_dispatch)"
    )
    delivery_id: str | None = Field(default=None, description="Webhook delivery identifier")

    @property
    def branch(self) -> str | None:
        """Branch name for refs/heads/* refs, None for tags and unknown refs"""
        if self.ref and self.ref.startswith("refs/heads/"):
            return self.ref[len("refs/heads/") :]
        return None

    @property
    def is_default_branch(self) -> bool:
        return self.branch is not None and self.branch == self.default_branch

    @property
    def is_deletion(self) -> bool:
        """A branch deletion push carries an all-zero 'after' revision"""
        return bool(self.after) and set(self.after) == {"0"}
