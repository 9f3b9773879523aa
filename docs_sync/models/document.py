"""Synced markdown document model"""

from typing import Any

import yaml
from pydantic import BaseModel, Field


class Document(BaseModel):
    """A markdown file fetched from an upstream repository and rewritten for the site"""

    source: str = Field(description="Name of the originating source repository")
    source_path: str = Field(description="Path of the file inside the upstream repository")
    relative_path: str = Field(description="Path relative to the source's markdown root")
    destination_path: str = Field(description="Path relative to the site repository root")
    upstream_url: str = Field(description="Browse URL of the upstream file")
    front_matter: dict[str, Any] = Field(
        default_factory=dict, description="Metadata block (title, custom_edit_url, ...)"
    )
    body: str = Field(description="Markdown body, unchanged from upstream")

    @property
    def title(self) -> str | None:
        return self.front_matter.get("title")

    @property
    def custom_edit_url(self) -> str | None:
        return self.front_matter.get("custom_edit_url")

    def render(self) -> str:
        """Serialize metadata block and body into the file written to the site"""
        if not self.front_matter:
            return self.body
        block = yaml.safe_dump(
            self.front_matter,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
            width=1000,
        )
        return f"---\n{block}---\n{self.body}"
