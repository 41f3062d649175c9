"""
FastAPI routes for the repository viewer.

Two routers:
- ``api_router`` (``/api``): tree, home, render, search, health
- ``site_router``: UI entry points, raw repository assets and the
  live-reload WebSocket

Every path-resolution failure (escape, missing, ignored, not Markdown)
surfaces as the same plain 404 so responses never reveal what exists
outside the served tree.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import unquote

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel, Field

from ..core.errors import (
    NotAMarkdownError,
    NotFoundError,
    ParseError,
    PathEscapeError,
    SanitizeError,
)
from ..core.paths import resolve_default_document, resolve_within_root
from ..core.scanner import NavigationNode, build_tree
from ..core.search import search

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["documents"])
site_router = APIRouter(tags=["site"])

RESOLUTION_ERRORS = (PathEscapeError, NotFoundError, NotAMarkdownError)

# Repository files are untrusted: never sniffed, never cached, never
# allowed to script the UI origin.
REPO_FILE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Cache-Control": "no-cache",
    "Content-Security-Policy": "sandbox",
}


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="not found")


# Pydantic models for API responses
class TocEntryModel(BaseModel):
    """Document heading for the outline."""
    level: int
    id: str
    title: str


class RenderResponse(BaseModel):
    """Rendered document."""
    path: str
    title: str
    html: str
    toc: list[TocEntryModel] = Field(default_factory=list)
    mtime: int


class NavigationNodeModel(BaseModel):
    """Navigation tree node."""
    name: str
    path: str
    type: str
    children: list["NavigationNodeModel"] = Field(default_factory=list)


class HomeResponse(BaseModel):
    path: str


class SearchMatchModel(BaseModel):
    path: str
    line: int
    preview: str


class SearchResponseModel(BaseModel):
    """Response for search query."""
    query: str
    results: list[SearchMatchModel] = Field(default_factory=list)
    truncated: bool = False


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    root: str
    connections: int
    cache: dict[str, Any] = Field(default_factory=dict)


# Enable recursive model for navigation
NavigationNodeModel.model_rebuild()


def _convert_node(node: NavigationNode) -> NavigationNodeModel:
    return NavigationNodeModel(
        name=node.name,
        path=node.path,
        type=node.type,
        children=[_convert_node(child) for child in node.children],
    )


@api_router.get("/tree", response_model=NavigationNodeModel)
async def get_tree(request: Request) -> NavigationNodeModel:
    """Navigation tree of Markdown files and the directories holding them."""
    state = request.app.state
    tree = await asyncio.to_thread(build_tree, state.root, state.ignore)
    return _convert_node(tree)


@api_router.get("/home", response_model=HomeResponse)
async def get_home(request: Request) -> HomeResponse:
    """Repository-relative path of the root README, or "" when there is none."""
    state = request.app.state
    try:
        path = resolve_default_document(state.root)
    except NotFoundError:
        return HomeResponse(path="")
    if state.ignore.is_ignored(path):
        return HomeResponse(path="")
    return HomeResponse(path=path)


@api_router.get("/render", response_model=RenderResponse)
async def render_document(request: Request, path: str = Query("")) -> RenderResponse:
    """
    Render a Markdown document.

    An empty ``path`` renders the root default document. Directories render
    their README.md.

    Raises:
        HTTPException 404: path cannot be served
        HTTPException 500: parsing or sanitization failed
    """
    renderer = request.app.state.renderer
    rel = unquote(path)

    try:
        result = await asyncio.to_thread(renderer.render_file, rel)
    except RESOLUTION_ERRORS as e:
        logger.debug("Render of %r refused: %s", rel, e)
        raise _not_found()
    except (ParseError, SanitizeError) as e:
        logger.error("Render of %r failed: %s", rel, e)
        raise HTTPException(status_code=500, detail="render failed")

    return RenderResponse(
        path=result.path,
        title=result.title,
        html=result.html,
        toc=[TocEntryModel(level=t.level, id=t.id, title=t.title) for t in result.toc],
        mtime=result.mtime,
    )


@api_router.get("/search", response_model=SearchResponseModel)
async def search_documents(request: Request, q: str = Query("")) -> SearchResponseModel:
    """Fixed-string, smart-case search over Markdown files."""
    state = request.app.state
    config = state.config
    response = await asyncio.to_thread(
        search, state.root, state.ignore, q, config.search_limit, config.search_timeout_seconds,
    )
    return SearchResponseModel(**response.to_dict())


@api_router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    state = request.app.state
    return HealthResponse(
        status="healthy",
        root=str(state.root),
        connections=state.hub.connection_count,
        cache=state.renderer.stats(),
    )


# ============================================
# UI entry points
# ============================================

@site_router.get("/", include_in_schema=False)
async def index(request: Request) -> FileResponse:
    return FileResponse(request.app.state.static_dir / "index.html", headers={"Cache-Control": "no-cache"})


@site_router.get("/file/{path:path}", include_in_schema=False)
async def index_for_file(path: str, request: Request) -> FileResponse:
    # Client-side routing: the UI reads the document path from the URL.
    return FileResponse(request.app.state.static_dir / "index.html", headers={"Cache-Control": "no-cache"})


@site_router.get("/app/highlight.css", include_in_schema=False)
async def highlight_css(request: Request) -> Response:
    css = request.app.state.renderer.parser.get_css()
    return Response(content=css, media_type="text/css")


# ============================================
# Raw repository assets
# ============================================

@site_router.api_route("/repo/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_repo_file(path: str, request: Request) -> FileResponse:
    """
    Serve a repository file as raw bytes.

    Directories, ignored files, missing files and out-of-root paths all
    give the same 404.
    """
    state = request.app.state
    try:
        resolved = resolve_within_root(state.root, path)
    except PathEscapeError:
        raise _not_found()

    target = resolved.abs_path
    if not resolved.rel or not target.is_file():
        raise _not_found()
    if state.ignore.is_ignored(resolved.rel):
        raise _not_found()

    return FileResponse(target, headers=REPO_FILE_HEADERS)


# ============================================
# WebSocket Endpoint for live reload
# ============================================

@site_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Live-reload channel.

    Server-push only. Messages:
        {"type": "file-changed", "path": "docs/guide.md"}
        {"type": "tree-updated"}
    """
    await websocket.app.state.hub.subscribe(websocket)
