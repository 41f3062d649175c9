"""
Text search over repository Markdown files.

Features:
- Fixed-string, smart-case matching (case-sensitive only when the query
  contains an uppercase letter)
- ripgrep (``rg --json``) when installed, bounded by a timeout
- Pure-Python fallback scanner with the same skip rules and a time budget
- Results from either backend filtered through the ignore rules
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .ignore import IgnoreMatcher
from .paths import is_markdown_name
from .scanner import SKIPPED_DIRECTORIES


__all__ = ["SearchMatch", "SearchResponse", "search", "search_ripgrep", "search_fallback"]

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 200
DEFAULT_TIMEOUT = 3.0


@dataclass(frozen=True, slots=True)
class SearchMatch:
    path: str
    line: int  # 1-based
    preview: str


@dataclass(slots=True)
class SearchResponse:
    query: str
    results: list[SearchMatch] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "results": [
                {"path": m.path, "line": m.line, "preview": m.preview} for m in self.results
            ],
            "truncated": self.truncated,
        }


def is_case_sensitive(query: str) -> bool:
    """Smart case: any uppercase character makes the search case-sensitive."""
    return any(ch.isupper() for ch in query)


def search(
    root: Path,
    ignore: IgnoreMatcher | None,
    query: str,
    limit: int = DEFAULT_LIMIT,
    timeout: float = DEFAULT_TIMEOUT,
) -> SearchResponse:
    """Search with ripgrep when available, else with the fallback scanner."""
    query = query.strip()
    if not query:
        return SearchResponse(query=query)
    if limit <= 0:
        limit = DEFAULT_LIMIT
    ignore = ignore or IgnoreMatcher()

    if shutil.which("rg") is not None:
        try:
            return search_ripgrep(root, ignore, query, limit, timeout)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("ripgrep search failed, using fallback: %s", e)
    return search_fallback(root, ignore, query, limit, timeout)


def _preview_line(text: str) -> str:
    return text.rstrip("\r\n")


def search_ripgrep(
    root: Path,
    ignore: IgnoreMatcher,
    query: str,
    limit: int = DEFAULT_LIMIT,
    timeout: float = DEFAULT_TIMEOUT,
) -> SearchResponse:
    """
    Run ``rg --json`` in ``root`` and collect up to ``limit`` matches.

    Raises:
        subprocess.SubprocessError: rg exited with an error and found nothing
    """
    cmd = [
        "rg",
        "--json",
        "--no-heading",
        "--line-number",
        "--color=never",
        "--smart-case",
        "--iglob=*.md",
        "--iglob=*.markdown",
        "--fixed-strings",
        "--",
        query,
        ".",
    ]
    proc = subprocess.Popen(
        cmd,
        cwd=Path(root),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )

    timed_out = threading.Event()

    def kill() -> None:
        timed_out.set()
        proc.kill()

    timer = threading.Timer(timeout, kill)
    timer.start()

    response = SearchResponse(query=query)
    stderr_text = ""
    try:
        assert proc.stdout is not None
        for raw in proc.stdout:
            match = _parse_rg_line(raw)
            if match is None or _excluded(match.path, ignore):
                continue
            response.results.append(match)
            if len(response.results) >= limit:
                response.truncated = True
                break
    finally:
        timer.cancel()
        if proc.poll() is None:
            proc.kill()
        _unused, stderr_text = proc.communicate()

    if timed_out.is_set():
        response.truncated = True
    elif proc.returncode not in (0, 1) and not response.results and not response.truncated:
        err = (stderr_text or "").strip()[:4096] or f"rg failed with exit code {proc.returncode}"
        raise subprocess.SubprocessError(err)
    return response


def _excluded(rel: str, ignore: IgnoreMatcher) -> bool:
    # rg only honours .gitignore inside git work trees and never skips
    # dependency directories on its own.
    if any(part in SKIPPED_DIRECTORIES for part in rel.split("/")[:-1]):
        return True
    return ignore.is_ignored(rel)


def _parse_rg_line(raw: str) -> SearchMatch | None:
    line = raw.strip()
    if not line:
        return None
    try:
        payload = json.loads(line)
    except ValueError:
        return None
    if payload.get("type") != "match":
        return None

    data = payload.get("data", {})
    path_data = data.get("path", {})
    path_text = path_data.get("text") if isinstance(path_data, dict) else None
    if not path_text:
        return None

    rel = Path(path_text).as_posix()
    if rel.startswith("./"):
        rel = rel[2:]
    if rel.startswith("/") or ".." in rel.split("/"):
        return None

    lines_data = data.get("lines", {})
    text = lines_data.get("text", "") if isinstance(lines_data, dict) else ""
    return SearchMatch(path=rel, line=int(data.get("line_number") or 1), preview=_preview_line(str(text)))


def search_fallback(
    root: Path,
    ignore: IgnoreMatcher,
    query: str,
    limit: int = DEFAULT_LIMIT,
    timeout: float = DEFAULT_TIMEOUT,
) -> SearchResponse:
    """
    Walk the repository and scan Markdown files line by line.

    Stops at ``limit`` matches or when the time budget runs out; both set
    ``truncated``.
    """
    root = Path(root)
    deadline = time.monotonic() + timeout
    case_sensitive = is_case_sensitive(query)
    needle = query if case_sensitive else query.lower()
    response = SearchResponse(query=query)

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(os.path.relpath(dirpath, root)).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        dirnames[:] = sorted(
            d for d in dirnames
            if d not in SKIPPED_DIRECTORIES
            and not ignore.is_ignored(f"{rel_dir}/{d}" if rel_dir else d, is_dir=True)
        )

        for name in sorted(filenames):
            if not is_markdown_name(name):
                continue
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if ignore.is_ignored(rel):
                continue

            try:
                with open(os.path.join(dirpath, name), encoding="utf-8", errors="replace") as f:
                    for line_no, line in enumerate(f, start=1):
                        if time.monotonic() > deadline:
                            response.truncated = True
                            return response
                        text = _preview_line(line)
                        if not text:
                            continue
                        haystack = text if case_sensitive else text.lower()
                        if needle not in haystack:
                            continue
                        response.results.append(SearchMatch(rel, line_no, text))
                        if len(response.results) >= limit:
                            response.truncated = True
                            return response
            except OSError as e:
                logger.debug("Skipping unreadable %s: %s", rel, e)

    return response
