"""Front matter parsing and rewriting for synced markdown documents"""

import logging
import re
from pathlib import PurePosixPath
from typing import Any

import yaml
from markdown_it import MarkdownIt
from mdit_py_plugins.front_matter import front_matter_plugin

from docs_sync.models.document import Document
from docs_sync.models.sources_config import GitHubConfig, SourceRepository

logger = logging.getLogger(__name__)


class FrontMatterError(Exception):
    """Raised when a document's metadata block cannot be parsed"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class PathMappingError(ValueError):
    """Raised when a document would be written outside its destination directory"""

    pass


_md = MarkdownIt("commonmark").use(front_matter_plugin)


def split_front_matter(text: str, path: str | None = None) -> tuple[dict[str, Any], str]:
    """
    Split a markdown document into its metadata block and body

    Args:
        text: Full markdown text
        path: File path, used in error messages

    Returns:
        Tuple of (front_matter, body). Documents without a block yield ({}, text).

    Raises:
        FrontMatterError: If the block is not valid YAML or not a mapping
    """
    tokens = _md.parse(text)
    if not tokens or tokens[0].type != "front_matter":
        return {}, text

    token = tokens[0]
    try:
        data = yaml.safe_load(token.content)
    except yaml.YAMLError as e:
        raise FrontMatterError(f"invalid YAML in metadata block: {e}", path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError(
            f"metadata block must be a mapping, got {type(data).__name__}", path
        )

    # token.map[1] is the first line after the closing fence
    body = "\n".join(text.split("\n")[token.map[1] :])
    return data, body


def extract_title(body: str) -> str | None:
    """First level-1 heading of a markdown body"""
    tokens = _md.parse(body)
    for i, token in enumerate(tokens):
        if token.type == "heading_open" and token.tag == "h1":
            content = tokens[i + 1].content.strip() if i + 1 < len(tokens) else ""
            if content:
                return content
    return None


def title_from_filename(path: str, fallback: str) -> str:
    """Human-readable title from a file name ('getting-started.md' -> 'Getting Started')"""
    stem = PurePosixPath(path).stem
    if stem.lower() in ("readme", "index"):
        return fallback
    words = [w for w in re.split(r"[-_\s]+", stem) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words) or fallback


def destination_root(docs_root: str, source: SourceRepository) -> str:
    """Directory of the site repository owned by a source"""
    return str(PurePosixPath(docs_root or ".") / source.destination_path)


def map_destination(docs_root: str, source: SourceRepository, relative_path: str) -> str:
    """
    Destination of a document: docs root + source destination + source-relative path

    Raises:
        PathMappingError: If the result would leave the source's destination directory
    """
    relative = PurePosixPath(relative_path)
    if relative.is_absolute() or ".." in relative.parts or not relative.parts:
        raise PathMappingError(f"Refusing to map unsafe path: {relative_path}")

    return str(PurePosixPath(destination_root(docs_root, source)) / relative)


class Transformer:
    """Rewrite fetched documents so the site can link back to their upstream source"""

    def __init__(self, github_config: GitHubConfig | None = None, docs_root: str = ""):
        self.github_config = github_config or GitHubConfig()
        self.web_url = self.github_config.web_url.rstrip("/")
        self.docs_root = docs_root

    def edit_url(self, source: SourceRepository, path: str, branch: str) -> str:
        return f"{self.web_url}/{source.full_name}/edit/{branch}/{path}"

    def transform(
        self,
        source: SourceRepository,
        upstream_path: str,
        text: str,
        branch: str,
        revision: str | None = None,
    ) -> Document:
        """
        Build the site document for one upstream file

        Args:
            source: Originating source repository
            upstream_path: Path of the file inside the upstream repository
            text: Upstream file content
            branch: Tracked branch, used for the edit link
            revision: Commit SHA the content was read at (defaults to branch)

        Returns:
            Document with custom_edit_url set and the body left untouched

        Raises:
            FrontMatterError: If the upstream metadata block is invalid
            PathMappingError: If the path falls outside the source's markdown root
        """
        relative_path = self._relative_to_root(source, upstream_path)
        front_matter, body = split_front_matter(text, upstream_path)

        rewritten: dict[str, Any] = {}
        if not front_matter.get("title"):
            rewritten["title"] = extract_title(body) or title_from_filename(
                upstream_path, source.name
            )
        for key, value in front_matter.items():
            if key == "title" and "title" in rewritten:
                continue
            rewritten[key] = value
        rewritten["custom_edit_url"] = self.edit_url(source, upstream_path, branch)

        return Document(
            source=source.name,
            source_path=upstream_path,
            relative_path=relative_path,
            destination_path=map_destination(self.docs_root, source, relative_path),
            upstream_url=f"{self.web_url}/{source.full_name}/blob/{revision or branch}/"
            f"{upstream_path}",
            front_matter=rewritten,
            body=body,
        )

    def _relative_to_root(self, source: SourceRepository, upstream_path: str) -> str:
        path = PurePosixPath(upstream_path)
        if not source.markdown_root:
            return str(path)
        root = PurePosixPath(source.markdown_root)
        if root not in path.parents:
            raise PathMappingError(
                f"{upstream_path} is outside markdown root {source.markdown_root}"
            )
        return str(path.relative_to(root))
