"""repobook: a local, live-reloading viewer for a repository's Markdown."""

__version__ = "0.1.0"

__all__ = ["__version__"]
