"""Data models for the documentation sync pipeline"""

from docs_sync.models.document import Document
from docs_sync.models.event import ChangeEvent
from docs_sync.models.sources_config import (
    FetchingConfig,
    GitHubConfig,
    RefreshConfig,
    SourceRepository,
    SourcesConfig,
)
from docs_sync.models.sync_result import PublishResult, SyncResult

__all__ = [
    "ChangeEvent",
    "Document",
    "FetchingConfig",
    "GitHubConfig",
    "PublishResult",
    "RefreshConfig",
    "SourceRepository",
    "SourcesConfig",
    "SyncResult",
]
