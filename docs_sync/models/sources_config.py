"""Models for sources configuration (sources.yaml)"""

from pathlib import PurePosixPath

from pydantic import BaseModel, Field, field_validator, model_validator


def _normalize_relative(value: str, field_name: str) -> str:
    """Normalize a repository-relative directory and reject escapes"""
    value = value.strip().replace("\\", "/").strip("/")
    if not value:
        return ""
    path = PurePosixPath(value)
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"{field_name} must be a relative path without '..': {value}")
    return str(path)


class SourceRepository(BaseModel):
    """An upstream implementation repository whose markdown is mirrored into the site"""

    name: str = Field(min_length=1, description="Short identifier, e.g. 'go'")
    repo_owner: str = Field(description="GitHub repository owner (username or org)")
    repo_name: str = Field(description="GitHub repository name")
    branch: str | None = Field(
        default=None, description="Branch to track (None = repository default branch)"
    )
    markdown_root: str = Field(
        default="", description="Directory in the upstream repository to mirror ('' = root)"
    )
    paths: list[str] = Field(
        default_factory=lambda: ["**/*.md", "*.md"],
        description="Glob patterns, relative to markdown_root, for files to sync",
    )
    destination: str | None = Field(
        default=None,
        description="Destination directory relative to docs root "
        "(default: implementation_guides/<name>)",
    )
    enabled: bool = Field(default=True, description="Whether this source is enabled")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if "/" in v or v in (".", ".."):
            raise ValueError(f"Invalid source name: {v}")
        return v

    @field_validator("markdown_root")
    @classmethod
    def validate_markdown_root(cls, v: str) -> str:
        return _normalize_relative(v, "markdown_root")

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str | None) -> str | None:
        if v is None:
            return None
        normalized = _normalize_relative(v, "destination")
        if not normalized:
            raise ValueError("destination must not be empty")
        return normalized

    @property
    def full_name(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def destination_path(self) -> str:
        """Destination directory relative to the docs root"""
        return self.destination or f"implementation_guides/{self.name}"


class FetchingConfig(BaseModel):
    """Configuration for fetching behavior"""

    timeout: int = Field(default=30, ge=5, le=300, description="HTTP timeout in seconds")
    max_retries: int = Field(default=3, ge=1, le=10, description="Max attempts per request")
    concurrent_limit: int = Field(default=5, ge=1, le=20, description="Max concurrent requests")


class GitHubConfig(BaseModel):
    """Configuration for GitHub API access"""

    token: str | None = Field(
        default=None, description="GitHub personal access token (or use GITHUB_TOKEN env var)"
    )
    api_url: str = Field(default="https://api.github.com", description="GitHub API base URL")
    web_url: str = Field(default="https://github.com", description="GitHub web base URL")
    webhook_secret: str | None = Field(
        default=None, description="Shared secret for webhook signatures (or GITHUB_WEBHOOK_SECRET)"
    )


class RefreshConfig(BaseModel):
    """Configuration for periodic full resync"""

    enabled: bool = Field(default=False, description="Whether periodic resync is enabled")
    interval_hours: int = Field(default=24, ge=1, le=168, description="Resync interval in hours")
    max_concurrent_jobs: int = Field(default=1, ge=1, le=5, description="Max concurrent jobs")


class SourcesConfig(BaseModel):
    """Complete sources configuration"""

    class Sources(BaseModel):
        """Container for all source types"""

        github_repos: list[SourceRepository] = Field(default_factory=list)

    docs_root: str = Field(
        default="website/docs", description="Documentation root inside the site repository"
    )
    sidebars_file: str | None = Field(
        default=None, description="Sidebar definition (sidebars.json) relative to the site repo"
    )
    sources: Sources = Field(default_factory=Sources)
    fetching: FetchingConfig = Field(default_factory=FetchingConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)

    @field_validator("docs_root")
    @classmethod
    def validate_docs_root(cls, v: str) -> str:
        return _normalize_relative(v, "docs_root")

    @model_validator(mode="after")
    def validate_disjoint_destinations(self) -> "SourcesConfig":
        """Enabled sources must own disjoint destination directories"""
        seen: dict[str, str] = {}
        for source in self.get_enabled_github_repos():
            if source.name in seen.values():
                raise ValueError(f"Duplicate source name: {source.name}")
            dest = PurePosixPath(source.destination_path)
            for other_dest, other_name in seen.items():
                other = PurePosixPath(other_dest)
                if dest == other or other in dest.parents or dest in other.parents:
                    raise ValueError(
                        f"Destinations of '{source.name}' and '{other_name}' overlap: "
                        f"{dest} / {other}"
                    )
            seen[str(dest)] = source.name
        return self

    def get_enabled_github_repos(self) -> list[SourceRepository]:
        """Get all enabled GitHub repository sources"""
        return [source for source in self.sources.github_repos if source.enabled]

    def get_source(self, name: str) -> SourceRepository | None:
        """Look up an enabled source by name"""
        for source in self.get_enabled_github_repos():
            if source.name == name:
                return source
        return None

    def find_by_full_name(self, full_name: str) -> SourceRepository | None:
        """Look up an enabled source by its owner/repo name (case-insensitive)"""
        wanted = full_name.lower()
        for source in self.get_enabled_github_repos():
            if source.full_name.lower() == wanted:
                return source
        return None
