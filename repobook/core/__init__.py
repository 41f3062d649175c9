# Core modules for the repository documentation viewer
# - paths / ignore: repository path resolution and ignore rules
# - link_resolver / parser / sanitizer / renderer: Markdown to safe HTML
# - scanner / search: navigation tree and text search
# - file_watcher / websocket_manager: live reload

from .errors import (
    ConfigError,
    NotAMarkdownError,
    NotFoundError,
    ParseError,
    PathEscapeError,
    RepobookError,
    SanitizeError,
    WatcherError,
)
from .events import ChangeEvent
from .ignore import IgnoreMatcher
from .link_resolver import LinkResolver
from .parser import MarkdownParser
from .sanitizer import HtmlSanitizer
from .renderer import Renderer, RenderResult
from .scanner import NavigationNode, build_tree
from .search import SearchResponse, search
from .file_watcher import FileWatcher
from .websocket_manager import WebSocketManager

__all__ = [
    "RepobookError",
    "PathEscapeError",
    "NotFoundError",
    "NotAMarkdownError",
    "ConfigError",
    "ParseError",
    "SanitizeError",
    "WatcherError",
    "ChangeEvent",
    "IgnoreMatcher",
    "LinkResolver",
    "MarkdownParser",
    "HtmlSanitizer",
    "Renderer",
    "RenderResult",
    "NavigationNode",
    "build_tree",
    "SearchResponse",
    "search",
    "FileWatcher",
    "WebSocketManager",
]
