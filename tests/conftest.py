"""
Test configuration and fixtures.

Provides a small on-disk repository shared by unit and integration tests.
"""

from pathlib import Path

import pytest


def write(root: Path, rel: str, content: str | bytes = "") -> Path:
    """Create ``rel`` under ``root`` with parents."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """
    Layout:
        README.md            "# Home" + links
        .gitignore           private/, *.secret.md
        docs/README.md
        docs/guide.md
        docs/v1.0/README.md  directory whose name looks like a file
        img/logo.svg
        files/report.pdf
        notes/todo.txt       directory with no Markdown
        private/hidden.md    ignored
        plan.secret.md       ignored
        node_modules/pkg/README.md
    """
    root = tmp_path / "repo"
    root.mkdir()
    write(root, "README.md", "# Home\n\nSee [the guide](docs/guide.md#setup).\n\n![logo](img/logo.svg)\n")
    write(root, ".gitignore", "private/\n*.secret.md\n")
    write(root, "docs/README.md", "# Docs\n")
    write(root, "docs/guide.md", "# Guide\n\n## Setup\n\nInstall the thing.\n")
    write(root, "docs/v1.0/README.md", "# Version 1.0\n")
    write(root, "img/logo.svg", '<svg xmlns="http://www.w3.org/2000/svg"></svg>')
    write(root, "files/report.pdf", b"%PDF-1.4\n")
    write(root, "notes/todo.txt", "nothing here\n")
    write(root, "private/hidden.md", "# Hidden\n")
    write(root, "plan.secret.md", "# Secret\n")
    write(root, "node_modules/pkg/README.md", "# Vendored\n")
    return root


@pytest.fixture
def write_file():
    """The ``write`` helper as a fixture."""
    return write
