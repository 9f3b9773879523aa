"""Report synced documents that are not reachable from the site navigation"""

import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any

from docs_sync.models.document import Document

logger = logging.getLogger(__name__)


class SidebarError(Exception):
    """Raised when the sidebar definition cannot be read"""

    pass


def doc_id(document: Document, docs_root: str) -> str:
    """
    Site doc id of a document

    The id is the path relative to the docs root without the .md extension, with
    the file name replaced by the front matter 'id' when one is set.
    """
    path = PurePosixPath(document.destination_path)
    if docs_root:
        path = path.relative_to(PurePosixPath(docs_root))
    name = document.front_matter.get("id") or path.stem
    parent = path.parent.as_posix()
    return str(name) if parent == "." else f"{parent}/{name}"


class SidebarChecker:
    """Sidebar entries are maintained by hand; this only reports gaps"""

    def __init__(self, sidebars_file: str | Path):
        self.sidebars_file = Path(sidebars_file)
        self._entries: set[str] | None = None

    @property
    def entries(self) -> set[str]:
        """All doc ids referenced by the sidebar definition"""
        if self._entries is None:
            self._entries = self._load()
        return self._entries

    def _load(self) -> set[str]:
        try:
            data = json.loads(self.sidebars_file.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise SidebarError(f"Sidebar file not found: {self.sidebars_file}") from e
        except json.JSONDecodeError as e:
            raise SidebarError(f"Invalid JSON in {self.sidebars_file}: {e}") from e

        entries: set[str] = set()
        self._collect(data, entries)
        logger.debug(f"Loaded {len(entries)} sidebar entries from {self.sidebars_file}")
        return entries

    def _collect(self, node: Any, entries: set[str]) -> None:
        """Walk Docusaurus sidebar structures (v1 category maps and v2 item lists)"""
        if isinstance(node, str):
            entries.add(node)
        elif isinstance(node, list):
            for item in node:
                self._collect(item, entries)
        elif isinstance(node, dict):
            item_type = node.get("type")
            if item_type in ("doc", "ref") and "id" in node:
                entries.add(node["id"])
            elif item_type == "category":
                self._collect(node.get("items", []), entries)
                link = node.get("link") or {}
                if link.get("type") == "doc" and "id" in link:
                    entries.add(link["id"])
            elif item_type is None:
                for value in node.values():
                    self._collect(value, entries)

    def missing_entries(self, documents: list[Document], docs_root: str) -> list[str]:
        """Doc ids of documents that no sidebar entry points at"""
        missing = []
        for document in documents:
            identifier = doc_id(document, docs_root)
            if identifier not in self.entries:
                missing.append(identifier)
        return sorted(missing)
