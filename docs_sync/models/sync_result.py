"""Models for sync run results"""

from datetime import datetime

from pydantic import BaseModel, Field


class PublishResult(BaseModel):
    """Outcome of writing documents into the site repository"""

    files_written: list[str] = Field(default_factory=list, description="Created or updated files")
    files_removed: list[str] = Field(default_factory=list, description="Deleted stale files")
    committed: bool = Field(default=False, description="Whether a commit was created")
    commit_sha: str | None = Field(default=None, description="SHA of the created commit")
    pushed: bool = Field(default=False, description="Whether the commit was pushed")


class SyncResult(BaseModel):
    """Result of a sync run for one source repository"""

    source: str = Field(description="Name of the synced source")
    revision: str | None = Field(default=None, description="Upstream revision that was synced")
    success: bool = Field(description="Whether the sync succeeded")
    start_time: datetime = Field(description="When the sync started")
    end_time: datetime = Field(description="When the sync ended")
    duration_seconds: float = Field(description="Duration in seconds")
    documents: int = Field(default=0, ge=0, description="Number of documents fetched")
    files_written: list[str] = Field(default_factory=list)
    files_removed: list[str] = Field(default_factory=list)
    committed: bool = Field(default=False)
    commit_sha: str | None = Field(default=None)
    pushed: bool = Field(default=False)
    missing_sidebar_entries: list[str] = Field(
        default_factory=list, description="Synced doc ids with no sidebar entry"
    )
    error: str | None = Field(default=None, description="Error message if failed")
