"""
Error taxonomy for the repobook core.

Resolution errors (escape, not found, not markdown) are classification
results: callers decide how to surface them. Parse and sanitize errors are
unexpected and surface as a generic failure.
"""

from __future__ import annotations


__all__ = [
    "RepobookError",
    "PathEscapeError",
    "NotFoundError",
    "NotAMarkdownError",
    "ConfigError",
    "ParseError",
    "SanitizeError",
    "WatcherError",
]


class RepobookError(Exception):
    """Base class for all repobook errors."""


class PathEscapeError(RepobookError):
    """Requested path resolves outside the repository root."""

    def __init__(self, requested: str):
        super().__init__(f"path escapes repository root: {requested!r}")
        self.requested = requested


class NotFoundError(RepobookError):
    """Missing file, directory or default document."""


class NotAMarkdownError(RepobookError):
    """Resolved file does not carry a Markdown extension."""


class ConfigError(RepobookError):
    """Malformed repository configuration (e.g. the ignore-rules file)."""


class ParseError(RepobookError):
    """Markdown parsing or HTML serialization failed."""


class SanitizeError(RepobookError):
    """HTML sanitization failed."""


class WatcherError(RepobookError):
    """The filesystem watcher could not establish its initial watch set."""
