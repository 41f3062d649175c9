"""
Navigation tree builder.

Walks the repository and keeps only Markdown files plus the directories
that (transitively) contain them. Ignored paths and tool/dependency
directories are skipped.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .ignore import IgnoreMatcher
from .paths import HEAVY_DIRECTORIES, is_markdown_name


__all__ = ["NavigationNode", "build_tree", "SKIPPED_DIRECTORIES"]

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES: frozenset[str] = HEAVY_DIRECTORIES | {".idea", ".vscode"}


@dataclass(slots=True)
class NavigationNode:
    """Tree node for sidebar navigation."""
    name: str
    path: str
    type: str  # "dir" or "file"
    children: list[NavigationNode] = field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return self.type == "dir"

    def to_dict(self) -> dict[str, Any]:
        node: dict[str, Any] = {"name": self.name, "path": self.path, "type": self.type}
        if self.is_directory:
            node["children"] = [child.to_dict() for child in self.children]
        return node


def build_tree(root: Path, ignore: IgnoreMatcher | None = None) -> NavigationNode:
    """
    Build the navigation tree rooted at ``root``.

    Ordering at every level: directories, then ``README.md`` (any case),
    then the remaining files; each group by case-insensitive name.
    """
    root = Path(root).absolute()
    ignore = ignore or IgnoreMatcher()
    node = NavigationNode(name=root.name, path="", type="dir")
    node.children = _scan_directory(root, "", ignore)
    return node


def _scan_directory(directory: Path, rel: str, ignore: IgnoreMatcher) -> list[NavigationNode]:
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as e:
        logger.warning("Cannot list %s: %s", directory, e)
        return []

    children: list[NavigationNode] = []
    for entry in entries:
        child_rel = f"{rel}/{entry.name}" if rel else entry.name
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            continue

        if is_dir:
            if entry.name in SKIPPED_DIRECTORIES or ignore.is_ignored(child_rel, is_dir=True):
                continue
            grandchildren = _scan_directory(Path(entry.path), child_rel, ignore)
            if grandchildren:
                children.append(NavigationNode(entry.name, child_rel, "dir", grandchildren))
        elif is_markdown_name(entry.name) and not ignore.is_ignored(child_rel):
            children.append(NavigationNode(entry.name, child_rel, "file"))

    children.sort(key=_sort_key)
    return children


def _sort_key(node: NavigationNode) -> tuple[int, str]:
    if node.is_directory:
        group = 0
    elif node.name.lower() == "readme.md":
        group = 1
    else:
        group = 2
    return group, node.name.lower()
