"""
Repository ignore rules.

Loads the repository-level ignore file (``.gitignore`` by default) once at
startup and answers "is this relative path excluded?" for listing,
rendering, watching and search. Matching follows the gitignore dialect via
``pathspec``; directory-only patterns (``private/``) are honoured by testing
directories with a trailing slash.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pathspec

from .errors import ConfigError


__all__ = ["IgnoreMatcher", "DEFAULT_IGNORE_FILE"]

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_FILE = ".gitignore"


class IgnoreMatcher:
    """
    Immutable gitignore-style matcher rooted at the repository.

    A matcher built without rules never matches, so callers can always hold
    one instead of checking for ``None``.
    """

    __slots__ = ("_spec", "source")

    def __init__(self, spec: pathspec.PathSpec | None = None, source: Path | None = None):
        self._spec = spec
        self.source = source

    @classmethod
    def load(cls, root: Path, filename: str = DEFAULT_IGNORE_FILE) -> IgnoreMatcher:
        """
        Read ``filename`` from the repository root.

        A missing file yields an empty matcher. A file that cannot be decoded
        or contains a rule the gitignore dialect rejects raises ConfigError.
        """
        path = Path(root) / filename
        if not path.is_file():
            return cls()

        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigError(f"{path}: ignore file is not valid UTF-8") from e
        except OSError as e:
            raise ConfigError(f"{path}: cannot read ignore file: {e}") from e

        try:
            spec = pathspec.GitIgnoreSpec.from_lines(text.splitlines())
        except ValueError as e:
            raise ConfigError(f"{path}: malformed ignore rule: {e}") from e

        logger.info("Loaded %d ignore rules from %s", len(spec.patterns), path)
        return cls(spec, path)

    @property
    def empty(self) -> bool:
        return self._spec is None or not self._spec.patterns

    def is_ignored(self, rel: str, is_dir: bool = False) -> bool:
        """
        Return whether the forward-slash relative path ``rel`` is excluded.

        As in git, nothing below an excluded directory can be re-included
        by a later ``!`` rule, so every ancestor is tested first.
        """
        if self._spec is None or not rel:
            return False
        candidate = rel.strip("/")
        if not candidate:
            return False

        parts = candidate.split("/")
        for depth in range(1, len(parts)):
            if self._spec.match_file("/".join(parts[:depth]) + "/"):
                return True

        if is_dir:
            candidate += "/"
        return self._spec.match_file(candidate)

    def __repr__(self) -> str:
        count = 0 if self._spec is None else len(self._spec.patterns)
        return f"IgnoreMatcher(source={self.source!s}, rules={count})"
