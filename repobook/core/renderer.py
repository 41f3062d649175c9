"""
Document Renderer with mtime-keyed cache.

Pipeline per cache miss:
    resolve -> ignore check -> stat -> read -> parse (links rewritten)
    -> TOC -> render -> sanitize -> store

A cached result is served only while the file's ``st_mtime_ns`` is
unchanged. The cache lock covers lookup and store, never rendering, so
concurrent misses on the same file may both render; the last store wins.
"""

from __future__ import annotations

import logging
import os
import posixpath
import stat
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path

from .errors import NotAMarkdownError, NotFoundError, ParseError, RepobookError
from .ignore import IgnoreMatcher
from .link_resolver import LinkResolver
from .parser import MarkdownParser, TocEntry
from .paths import ResolvedPath, is_markdown_name, resolve_default_document, resolve_within_root
from .sanitizer import HtmlSanitizer


__all__ = ["Renderer", "RenderResult", "RenderCache"]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RenderResult:
    path: str
    title: str
    html: str
    toc: list[TocEntry] = field(default_factory=list)
    mtime: int = 0


class RenderCache:
    """
    Thread-safe path -> RenderResult map.

    ``capacity`` of 0 keeps every entry; a positive capacity evicts the
    least recently used entry on insert.
    """

    __slots__ = ("_capacity", "_entries", "_lock", "_hits", "_misses")

    def __init__(self, capacity: int = 0):
        if capacity < 0:
            raise ValueError("Capacity must not be negative")
        self._capacity = capacity
        self._entries: OrderedDict[str, RenderResult] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, path: str, mtime: int) -> RenderResult | None:
        """Return the entry for ``path`` only if it was stored for ``mtime``."""
        with self._lock:
            entry = self._entries.get(path)
            if entry is None or entry.mtime != mtime:
                self._misses += 1
                return None
            self._entries.move_to_end(path)
            self._hits += 1
            return entry

    def put(self, result: RenderResult) -> None:
        with self._lock:
            self._entries[result.path] = result
            self._entries.move_to_end(result.path)
            if self._capacity:
                while len(self._entries) > self._capacity:
                    self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self._capacity,
                "hits": self._hits,
                "misses": self._misses,
            }


class Renderer:
    """
    Renders repository Markdown files to sanitized HTML.

    Safe to call from worker threads; the parser and sanitizer hold no
    per-document state and the cache carries its own lock.
    """

    def __init__(
        self,
        root: Path,
        ignore: IgnoreMatcher | None = None,
        cache_max_entries: int = 0,
        parser: MarkdownParser | None = None,
        sanitizer: HtmlSanitizer | None = None,
    ):
        self.root = Path(root).absolute()
        self.ignore = ignore or IgnoreMatcher()
        self.parser = parser or MarkdownParser(LinkResolver(self.root))
        self.sanitizer = sanitizer or HtmlSanitizer()
        self.cache = RenderCache(cache_max_entries)

    def render_file(self, rel: str) -> RenderResult:
        """
        Render the Markdown file (or directory default document) at ``rel``.

        Raises:
            PathEscapeError: the path leaves the repository
            NotFoundError: missing, ignored, or a directory without README.md
            NotAMarkdownError: existing file without a Markdown extension
            ParseError / SanitizeError: rendering failed
        """
        resolved = self._resolve(rel)

        try:
            st = os.stat(resolved.abs_path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"not found: {resolved.rel}") from e
        if not stat.S_ISREG(st.st_mode):
            raise NotFoundError(f"not a regular file: {resolved.rel}")

        cached = self.cache.get(resolved.rel, st.st_mtime_ns)
        if cached is not None:
            return cached

        data = resolved.abs_path.read_bytes()
        result = self.render_source(
            data.decode("utf-8", errors="replace"), resolved.rel, st.st_mtime_ns,
        )
        self.cache.put(result)
        logger.debug("Rendered %s (%d bytes)", resolved.rel, len(data))
        return result

    def render_source(self, text: str, rel: str, mtime: int = 0) -> RenderResult:
        """Render Markdown ``text`` as if it were the file at ``rel``."""
        try:
            document = self.parser.parse(text, rel)
            raw_html = self.parser.render(document)
        except RepobookError:
            raise
        except Exception as e:
            logger.error("Failed to parse %s: %s", rel, e)
            raise ParseError(f"failed to render {rel}: {e}") from e

        html = self.sanitizer.sanitize(raw_html)

        title = next((entry.title for entry in document.toc if entry.level == 1), None)
        return RenderResult(
            path=rel,
            title=title or posixpath.basename(rel),
            html=html,
            toc=document.toc,
            mtime=mtime,
        )

    def stats(self) -> dict:
        return self.cache.stats

    def _resolve(self, rel: str) -> ResolvedPath:
        resolved = resolve_within_root(self.root, rel)
        is_dir = resolved.abs_path.is_dir()
        if self.ignore.is_ignored(resolved.rel, is_dir=is_dir):
            raise NotFoundError(f"ignored: {resolved.rel}")

        if is_dir:
            resolved = resolve_within_root(self.root, resolve_default_document(self.root, resolved.rel))
            if self.ignore.is_ignored(resolved.rel):
                raise NotFoundError(f"ignored: {resolved.rel}")

        if resolved.rel and not is_markdown_name(resolved.abs_path.name) and resolved.abs_path.exists():
            raise NotAMarkdownError(f"not a markdown file: {resolved.rel}")
        return resolved
