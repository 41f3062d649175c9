"""
Unit Tests for repository path resolution.

Test Coverage:
- Normalization (dots, separators, backslashes)
- Traversal rejection, including through symlinks
- Default document lookup
- Markdown target resolution
"""

import os

import pytest

from repobook.core.errors import NotAMarkdownError, NotFoundError, PathEscapeError
from repobook.core.paths import (
    is_markdown_name,
    looks_like_markdown_path,
    normalize_rel,
    resolve_default_document,
    resolve_markdown_target,
    resolve_within_root,
)


class TestNormalize:

    @pytest.mark.parametrize("requested,expected", [
        ("", ""),
        ("/", ""),
        (".", ""),
        ("docs/guide.md", "docs/guide.md"),
        ("/docs/guide.md", "docs/guide.md"),
        ("docs/./guide.md", "docs/guide.md"),
        ("docs/../README.md", "README.md"),
        ("docs\\guide.md", "docs/guide.md"),
        ("../x", "../x"),
    ])
    def test_normalize_rel(self, requested, expected):
        assert normalize_rel(requested) == expected


class TestResolveWithinRoot:

    def test_plain_path(self, repo):
        resolved = resolve_within_root(repo, "docs/guide.md")

        assert resolved.rel == "docs/guide.md"
        assert resolved.abs_path == repo / "docs" / "guide.md"

    def test_empty_path_is_root(self, repo):
        resolved = resolve_within_root(repo, "")

        assert resolved.rel == ""
        assert resolved.abs_path == repo

    def test_dot_segments_inside_root(self, repo):
        assert resolve_within_root(repo, "/docs/../README.md").rel == "README.md"

    def test_missing_paths_still_resolve(self, repo):
        """Existence is the caller's concern."""
        assert resolve_within_root(repo, "nope/missing.md").rel == "nope/missing.md"

    @pytest.mark.parametrize("requested", [
        "..",
        "../",
        "../x",
        "/../x",
        "docs/../../x",
        "a/../../../etc/passwd",
        "..\\x",
        "docs\\..\\..\\x",
    ])
    def test_traversal_is_rejected(self, repo, requested):
        with pytest.raises(PathEscapeError) as exc_info:
            resolve_within_root(repo, requested)

        assert exc_info.value.requested == requested

    def test_nul_byte_is_rejected(self, repo):
        with pytest.raises(PathEscapeError):
            resolve_within_root(repo, "README.md\x00.txt")

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlink_pointing_outside_is_rejected(self, repo, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.md").write_text("# Secret\n")
        (repo / "link").symlink_to(outside, target_is_directory=True)

        with pytest.raises(PathEscapeError):
            resolve_within_root(repo, "link/secret.md")
        with pytest.raises(PathEscapeError):
            resolve_within_root(repo, "link")

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlink_inside_root_is_allowed(self, repo):
        (repo / "alias").symlink_to(repo / "docs", target_is_directory=True)

        resolved = resolve_within_root(repo, "alias/guide.md")

        assert resolved.rel == "alias/guide.md"


class TestDefaultDocument:

    def test_root_readme(self, repo):
        assert resolve_default_document(repo) == "README.md"

    def test_subdirectory_readme(self, repo):
        assert resolve_default_document(repo, "docs") == "docs/README.md"

    def test_case_insensitive(self, repo, write_file):
        write_file(repo, "lower/readme.md", "# lower\n")

        assert resolve_default_document(repo, "lower") == "lower/readme.md"

    def test_directory_named_readme_is_skipped(self, repo, write_file):
        write_file(repo, "odd/README.md/inner.md", "# inner\n")

        with pytest.raises(NotFoundError):
            resolve_default_document(repo, "odd")

    def test_missing_readme(self, repo):
        with pytest.raises(NotFoundError):
            resolve_default_document(repo, "notes")

    def test_missing_directory(self, repo):
        with pytest.raises(NotFoundError):
            resolve_default_document(repo, "does-not-exist")


class TestMarkdownTarget:

    def test_directory_resolves_to_readme(self, repo):
        assert resolve_markdown_target(repo, "docs").rel == "docs/README.md"

    def test_dotted_directory_resolves_to_readme(self, repo):
        assert resolve_markdown_target(repo, "docs/v1.0").rel == "docs/v1.0/README.md"

    def test_markdown_file(self, repo):
        assert resolve_markdown_target(repo, "docs/guide.md").rel == "docs/guide.md"

    def test_non_markdown_file(self, repo):
        with pytest.raises(NotAMarkdownError):
            resolve_markdown_target(repo, "files/report.pdf")

    def test_missing_file(self, repo):
        with pytest.raises(NotFoundError):
            resolve_markdown_target(repo, "missing.md")

    def test_escape(self, repo):
        with pytest.raises(PathEscapeError):
            resolve_markdown_target(repo, "../README.md")


class TestPredicates:

    @pytest.mark.parametrize("name,expected", [
        ("a.md", True),
        ("A.MD", True),
        ("notes.markdown", True),
        ("a.mdx", False),
        ("md", False),
        ("logo.svg", False),
    ])
    def test_is_markdown_name(self, name, expected):
        assert is_markdown_name(name) is expected

    @pytest.mark.parametrize("rel,expected", [
        ("", True),
        ("docs/", True),
        ("docs/guide.md", True),
        ("img/logo.svg", False),
        ("docs/v1.0", False),
        ("docs", False),
    ])
    def test_looks_like_markdown_path(self, rel, expected):
        assert looks_like_markdown_path(rel) is expected
