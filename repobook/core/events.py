"""Live-reload change events pushed to connected clients."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


__all__ = ["ChangeEvent", "FILE_CHANGED", "TREE_UPDATED"]


FILE_CHANGED = "file-changed"
TREE_UPDATED = "tree-updated"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """
    Tagged change notification.

    ``file-changed`` carries the repository-relative path of a Markdown file
    whose content changed; ``tree-updated`` carries nothing and tells clients
    to re-fetch the navigation tree. Clients re-fetch state instead of
    trusting deltas.
    """
    type: str
    path: str | None = None

    @classmethod
    def file_changed(cls, path: str) -> ChangeEvent:
        return cls(FILE_CHANGED, path)

    @classmethod
    def tree_updated(cls) -> ChangeEvent:
        return cls(TREE_UPDATED)

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"type": self.type}
        if self.path is not None:
            message["path"] = self.path
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_message(), separators=(",", ":"))
