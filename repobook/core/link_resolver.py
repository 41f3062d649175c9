"""
Link Resolver for repository-relative references.

Runs as a markdown-it core rule, i.e. once per parse after inline parsing
and before HTML serialization. Every relative ``link_open``/``image``
destination is resolved against the directory of the file being rendered
and routed to one of:

- ``/file/<path>``  document route (Markdown file or folder)
- ``/repo/<path>``  raw repository asset
- unchanged         external URL, in-page fragment or empty destination

The pass is two-phase: tokens are first scanned without mutation and the
collected rewrites are applied afterwards.
"""

from __future__ import annotations

import os
import posixpath
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from markdown_it.rules_core import StateCore
from markdown_it.token import Token

from .paths import is_markdown_name, looks_like_markdown_path


__all__ = ["LinkResolver", "Rewrite", "DOCUMENT_ROUTE", "ASSET_ROUTE", "ENV_CURRENT_PATH"]


DOCUMENT_ROUTE = "/file/"
ASSET_ROUTE = "/repo/"

# markdown-it env key holding the repository-relative path being rendered.
ENV_CURRENT_PATH = "current_path"

NEW_TAB_SCHEMES = frozenset({"http", "https", "mailto", "tel"})

# Characters left unescaped when re-quoting a resolved path.
_PATH_SAFE = "/-._~!$&'()*+,;=:@"

# Oracle answering "what is at this repository-relative path?":
# "dir", "file" or None when nothing exists there.
ExistsOracle = Callable[[str], Optional[str]]


@dataclass(slots=True)
class Rewrite:
    """One pending token mutation collected during the scan phase."""
    token: Token
    attr: str
    value: str | None
    target: str | None = None
    rel: str | None = None


def filesystem_oracle(root: Path) -> ExistsOracle:
    """Build an oracle that stats paths under ``root``."""
    root = Path(root)

    def probe(rel: str) -> str | None:
        try:
            st = os.stat(root / rel)
        except (OSError, ValueError):
            return None
        return "dir" if stat.S_ISDIR(st.st_mode) else "file"

    return probe


class LinkResolver:
    """
    Classifies and rewrites relative link/image destinations.

    The filesystem check is a side effect of classification: directory names
    may look like files (``docs/v1.0``), so when the syntactic heuristic is
    inconclusive the oracle is asked whether the path is a directory.
    """

    def __init__(self, document_root: Path, exists_oracle: ExistsOracle | None = None):
        """
        Args:
            document_root: Repository root used for existence checks
            exists_oracle: Optional replacement for the filesystem probe
        """
        self.document_root = Path(document_root)
        self._exists = exists_oracle or filesystem_oracle(self.document_root)

    def __call__(self, state: StateCore) -> None:
        """markdown-it core rule entry point."""
        current = str(state.env.get(ENV_CURRENT_PATH, "") or "")
        current_dir = posixpath.dirname(current.replace("\\", "/"))

        pending = list(self.collect(state.tokens, current_dir))
        for rewrite in pending:
            self._apply(rewrite)

    def collect(self, tokens: list[Token], current_dir: str) -> Iterator[Rewrite]:
        """Scan phase: yield rewrites without touching the tokens."""
        for token in tokens:
            if token.type == "link_open":
                href = token.attrGet("href")
                if isinstance(href, str):
                    yield from self._link_rewrite(token, href, current_dir)
            elif token.type == "image":
                src = token.attrGet("src")
                if isinstance(src, str):
                    result = self.rewrite_destination(src, current_dir)
                    if result is not None:
                        yield Rewrite(token, "src", result[0])
            if token.children:
                yield from self.collect(token.children, current_dir)

    def _link_rewrite(self, token: Token, href: str, current_dir: str) -> Iterator[Rewrite]:
        result = self.rewrite_destination(href, current_dir)
        if result is not None:
            new_href, is_document = result
            if is_document:
                yield Rewrite(token, "href", new_href)
            else:
                yield Rewrite(token, "href", new_href, target="_blank", rel="noopener")
            return

        scheme = urlsplit(href.strip()).scheme.lower() if href.strip() else ""
        if scheme in NEW_TAB_SCHEMES:
            yield Rewrite(token, "href", None, target="_blank", rel="noopener noreferrer")

    @staticmethod
    def _apply(rewrite: Rewrite) -> None:
        token = rewrite.token
        if rewrite.value is not None:
            token.attrSet(rewrite.attr, rewrite.value)
        if rewrite.target is not None:
            token.attrSet("target", rewrite.target)
        if rewrite.rel is not None:
            token.attrSet("rel", rewrite.rel)

    def rewrite_destination(self, dest: str, current_dir: str) -> tuple[str, bool] | None:
        """
        Compute the internal route for ``dest``.

        Returns:
            ``(new_destination, is_document)`` or None when the destination
            must be left untouched
        """
        raw = dest.strip()
        if not raw or raw.startswith("#"):
            return None

        try:
            parts = urlsplit(raw)
        except ValueError:
            return None
        if parts.scheme or parts.netloc:
            return None
        if not parts.path:
            return None

        path = unquote(parts.path)
        resolved = self.resolve_path(path, current_dir)
        is_document = self.is_document_target(resolved, path.endswith("/"))

        route = DOCUMENT_ROUTE if is_document else ASSET_ROUTE
        new_path = route + quote(resolved, safe=_PATH_SAFE)
        return urlunsplit(("", "", new_path, parts.query, parts.fragment)), is_document

    @staticmethod
    def resolve_path(path: str, current_dir: str) -> str:
        """
        Join ``path`` to ``current_dir`` and collapse dot segments.

        A leading slash means the repository root. ``..`` never climbs
        above the root.
        """
        if path.startswith("/"):
            joined = path
        else:
            joined = posixpath.join("/", current_dir, path)
        return posixpath.normpath(joined).lstrip("/")

    def is_document_target(self, resolved: str, trailing_slash: bool = False) -> bool:
        """Syntactic heuristic first, then the existence oracle."""
        if trailing_slash or looks_like_markdown_path(resolved):
            return True

        kind = self._exists(resolved)
        if kind == "dir":
            return True
        return kind == "file" and is_markdown_name(posixpath.basename(resolved))
