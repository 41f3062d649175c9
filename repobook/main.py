"""
FastAPI application for browsing a repository's Markdown documentation.

Integrates:
- Renderer with mtime-keyed cache (worker threads via asyncio.to_thread)
- Repository file watcher feeding the WebSocket broadcast hub
- Navigation tree, text search and raw asset routes
- Bundled single-page UI under /app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from . import __version__
from .api import router
from .config import RepobookConfig
from .core.file_watcher import FileWatcher
from .core.ignore import IgnoreMatcher
from .core.renderer import Renderer
from .core.websocket_manager import WebSocketManager


__all__ = ["create_app", "STATIC_DIR"]

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the watcher on startup; stop it, then close the hub, on shutdown."""
    state = app.state
    watcher: FileWatcher | None = None

    if state.watch:
        watcher = FileWatcher(state.root, state.ignore, state.hub.broadcast)
        await watcher.start()
    state.watcher = watcher

    logger.info("Serving %s", state.root)
    try:
        yield
    finally:
        if watcher is not None:
            await watcher.stop()
        await state.hub.close()
        logger.info("Shutdown complete (cache: %s)", state.renderer.stats())


def create_app(
    root: Path,
    config: RepobookConfig | None = None,
    watch: bool = True,
) -> FastAPI:
    """
    Build the application for the repository at ``root``.

    Args:
        root: Repository directory to serve
        config: Settings; defaults are read from the environment
        watch: Run the filesystem watcher while the app is up

    Raises:
        ConfigError: the ignore file is unreadable or malformed
    """
    config = config or RepobookConfig()
    root = Path(root).absolute()
    if not root.is_dir():
        raise NotADirectoryError(f"not a directory: {root}")

    ignore = IgnoreMatcher.load(root, config.ignore_file)

    app = FastAPI(
        title="repobook",
        version=__version__,
        description="Browse a repository's Markdown documentation with live reload",
        lifespan=lifespan,
    )

    app.state.root = root
    app.state.config = config
    app.state.ignore = ignore
    app.state.renderer = Renderer(root, ignore, cache_max_entries=config.cache_max_entries)
    app.state.hub = WebSocketManager()
    app.state.static_dir = STATIC_DIR
    app.state.watch = watch
    app.state.watcher = None

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Routes first: /app/highlight.css is served before the static mount.
    app.include_router(router)
    app.mount("/app", StaticFiles(directory=STATIC_DIR), name="app")

    return app
