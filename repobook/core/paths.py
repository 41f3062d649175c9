"""
Repository path resolution.

Every request path is interpreted against the repository root. The
resolver is the single traversal defense: it normalizes the request, joins
it to the root and re-derives the relative path, then re-checks the
symlink-resolved location so links pointing outside the repository are
rejected as well.
"""

from __future__ import annotations

import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path

from .errors import NotAMarkdownError, NotFoundError, PathEscapeError


__all__ = [
    "MARKDOWN_EXTENSIONS",
    "HEAVY_DIRECTORIES",
    "ResolvedPath",
    "is_markdown_name",
    "looks_like_markdown_path",
    "normalize_rel",
    "resolve_within_root",
    "resolve_default_document",
    "resolve_markdown_target",
]

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS: frozenset[str] = frozenset({".md", ".markdown"})

# Dependency and VCS directories that are never watched or listed.
HEAVY_DIRECTORIES: frozenset[str] = frozenset({".git", "node_modules", "vendor"})

DEFAULT_DOCUMENT = "readme.md"


@dataclass(frozen=True, slots=True)
class ResolvedPath:
    """Absolute filesystem path plus its forward-slash repository-relative form."""
    abs_path: Path
    rel: str


def is_markdown_name(name: str) -> bool:
    """Case-insensitive check for a recognized Markdown extension."""
    return posixpath.splitext(name.lower())[1] in MARKDOWN_EXTENSIONS


def looks_like_markdown_path(rel: str) -> bool:
    """
    Syntactic document-target check used before touching the filesystem.

    The repository root (empty path), anything ending in a separator and
    anything with a Markdown extension count as documents.
    """
    if rel == "" or rel.endswith("/"):
        return True
    return is_markdown_name(posixpath.basename(rel))


def normalize_rel(requested: str) -> str:
    """
    Collapse ``.``/``..`` segments and strip leading separators.

    ``..`` segments that climb above the root are kept (``../x`` stays
    ``../x``) so the containment check can reject them.
    """
    rel = requested.replace("\\", "/").lstrip("/")
    if not rel:
        return ""
    rel = posixpath.normpath(rel)
    return "" if rel == "." else rel


def resolve_within_root(root: Path, requested: str) -> ResolvedPath:
    """
    Resolve ``requested`` against ``root``.

    Raises:
        PathEscapeError: the path (or its symlink target) leaves the root
    """
    if "\x00" in requested:
        raise PathEscapeError(requested)

    root = Path(root).absolute()
    joined = Path(os.path.normpath(root / normalize_rel(requested)))

    rel = Path(os.path.relpath(joined, root)).as_posix()
    if rel == ".":
        rel = ""
    if rel == ".." or rel.startswith("../"):
        logger.warning("Rejected path escaping repository root: %r", requested)
        raise PathEscapeError(requested)

    # Symlinks inside the repository may point anywhere.
    real_root = root.resolve()
    real = joined.resolve()
    if real != real_root and real_root not in real.parents:
        logger.warning("Rejected symlink escaping repository root: %r", requested)
        raise PathEscapeError(requested)

    return ResolvedPath(joined, rel)


def resolve_default_document(root: Path, directory: str = "") -> str:
    """
    Find the default document (``README.md``, any case) directly inside
    ``directory`` and return its repository-relative path.

    The first match in sorted listing order wins.
    """
    resolved = resolve_within_root(root, directory)
    try:
        with os.scandir(resolved.abs_path) as entries:
            names = sorted(entry.name for entry in entries if not entry.is_dir())
    except OSError as e:
        raise NotFoundError(f"cannot list directory: {resolved.rel or '.'}") from e

    for name in names:
        if name.lower() == DEFAULT_DOCUMENT:
            return posixpath.join(resolved.rel, name) if resolved.rel else name
    raise NotFoundError(f"no README.md in {resolved.rel or 'repository root'}")


def resolve_markdown_target(root: Path, rel: str) -> ResolvedPath:
    """
    Resolve a request that may name a directory or a Markdown file.

    Directories resolve to their default document; files must carry a
    Markdown extension.
    """
    resolved = resolve_within_root(root, rel)
    path = resolved.abs_path

    if path.is_dir():
        return resolve_within_root(root, resolve_default_document(root, resolved.rel))
    if not path.is_file():
        raise NotFoundError(f"not found: {resolved.rel}")
    if not is_markdown_name(path.name):
        raise NotAMarkdownError(f"not a markdown file: {resolved.rel}")
    return resolved
