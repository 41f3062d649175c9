"""
repobook command-line entry point.

Usage:
    repobook <path>                   # serve on 127.0.0.1, free port, open browser
    repobook <path> --port 8000       # fixed port
    repobook <path> --no-open         # do not launch a browser
    python -m repobook <path> --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import webbrowser
from pathlib import Path

import uvicorn

from .config import LOG_FORMAT, RepobookConfig
from .core.errors import RepobookError
from .main import create_app

logger = logging.getLogger("repobook")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repobook",
        description="Starts a local Markdown viewer for a repository directory.",
    )
    parser.add_argument("path", help="Repository directory to serve")
    parser.add_argument("--host", default=None, help="Host/interface to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (0 = auto)")
    parser.add_argument("--no-open", action="store_true", help="Do not open the browser automatically")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging verbosity (default: INFO)",
    )
    return parser


def load_config(args: argparse.Namespace) -> RepobookConfig:
    """Environment/.env settings with command-line overrides applied."""
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.no_open:
        overrides["open_browser"] = False
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return RepobookConfig(**overrides)


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind before starting the server so the real port is known up front."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def server_url(sock: socket.socket) -> str:
    host, port = sock.getsockname()[:2]
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}/"


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ValueError as e:
        print(f"repobook: invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=getattr(logging, config.log_level), format=LOG_FORMAT)

    root = Path(args.path).absolute()
    if not root.is_dir():
        print(f"repobook: path must be a directory: {root}", file=sys.stderr)
        return 1

    try:
        app = create_app(root, config)
        sock = bind_socket(config.host, config.port)
    except (RepobookError, OSError) as e:
        print(f"repobook: {e}", file=sys.stderr)
        return 1

    url = server_url(sock)
    print(f"repobook: serving {root}")
    print(f"repobook: open {url}")
    if config.open_browser:
        webbrowser.open(url)

    server = uvicorn.Server(uvicorn.Config(
        app,
        log_level=config.log_level.lower(),
        access_log=config.log_level == "DEBUG",
    ))
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
