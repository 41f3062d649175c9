"""
Unit Tests for the Renderer and its cache.

Test Coverage:
- Resolution (default documents, ignore rules, non-Markdown, traversal)
- Rendered output (links rewritten, sanitized, title and outline)
- mtime-keyed caching and LRU bounding
- Error wrapping
"""

import os
from unittest.mock import Mock

import pytest

from repobook.core.errors import (
    NotAMarkdownError,
    NotFoundError,
    ParseError,
    PathEscapeError,
    SanitizeError,
)
from repobook.core.ignore import IgnoreMatcher
from repobook.core.renderer import RenderCache, Renderer, RenderResult


@pytest.fixture
def renderer(repo):
    return Renderer(repo, IgnoreMatcher.load(repo))


class TestResolution:

    def test_root_readme(self, renderer):
        result = renderer.render_file("")

        assert result.path == "README.md"
        assert result.title == "Home"

    @pytest.mark.parametrize("rel,expected", [
        ("docs", "docs/README.md"),
        ("docs/", "docs/README.md"),
        ("docs/v1.0", "docs/v1.0/README.md"),
        ("docs/guide.md", "docs/guide.md"),
        ("/docs/./guide.md", "docs/guide.md"),
    ])
    def test_paths(self, renderer, rel, expected):
        assert renderer.render_file(rel).path == expected

    @pytest.mark.parametrize("rel", ["private/hidden.md", "private", "plan.secret.md"])
    def test_ignored_is_not_found(self, renderer, rel):
        with pytest.raises(NotFoundError):
            renderer.render_file(rel)

    def test_missing(self, renderer):
        with pytest.raises(NotFoundError):
            renderer.render_file("missing.md")

    def test_directory_without_readme(self, renderer):
        with pytest.raises(NotFoundError):
            renderer.render_file("notes")

    def test_not_markdown(self, renderer):
        with pytest.raises(NotAMarkdownError):
            renderer.render_file("files/report.pdf")

    def test_escape(self, renderer):
        with pytest.raises(PathEscapeError):
            renderer.render_file("../outside.md")


class TestOutput:

    def test_links_rewritten(self, renderer):
        html = renderer.render_file("README.md").html

        assert 'href="/file/docs/guide.md#setup"' in html
        assert 'src="/repo/img/logo.svg"' in html

    def test_script_stripped(self, renderer, repo, write_file):
        write_file(repo, "evil.md", "# Evil\n\n<script>alert(1)</script>\n\n<img src=x onerror=alert(2)>\n")

        html = renderer.render_file("evil.md").html

        assert "<script" not in html
        assert "alert" not in html

    def test_toc_and_title(self, renderer):
        result = renderer.render_file("docs/guide.md")

        assert result.title == "Guide"
        assert [(t.level, t.id, t.title) for t in result.toc] == [
            (1, "guide", "Guide"),
            (2, "setup", "Setup"),
        ]
        assert '<h2 id="setup">' in result.html

    def test_title_falls_back_to_file_name(self, renderer, repo, write_file):
        write_file(repo, "docs/sub.md", "## Only a subheading\n")

        assert renderer.render_file("docs/sub.md").title == "sub.md"

    def test_highlighting_survives_sanitizer(self, renderer, repo, write_file):
        write_file(repo, "code.md", "```python\nimport os\n```\n")

        html = renderer.render_file("code.md").html

        assert 'class="highlight"' in html
        assert '<span class="kn">import</span>' in html

    def test_invalid_utf8_is_replaced(self, renderer, repo, write_file):
        write_file(repo, "bytes.md", b"# Caf\xe9\n")

        result = renderer.render_file("bytes.md")

        assert result.title == "Caf\ufffd"

    def test_mtime_recorded(self, renderer, repo):
        result = renderer.render_file("README.md")

        assert result.mtime == os.stat(repo / "README.md").st_mtime_ns


class TestCaching:

    def test_hit_on_unchanged_mtime(self, renderer):
        first = renderer.render_file("docs/guide.md")
        second = renderer.render_file("docs/guide.md")

        assert second is first
        assert renderer.stats()["hits"] == 1
        assert renderer.stats()["misses"] == 1

    def test_mtime_is_the_only_validity_key(self, renderer, repo):
        """Content changed but mtime restored: the stale render is served."""
        path = repo / "docs" / "guide.md"
        first = renderer.render_file("docs/guide.md")
        st = os.stat(path)

        path.write_text("# Rewritten\n", encoding="utf-8")
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns))

        assert renderer.render_file("docs/guide.md").html == first.html

    def test_new_mtime_rerenders(self, renderer, repo):
        path = repo / "docs" / "guide.md"
        renderer.render_file("docs/guide.md")
        st = os.stat(path)

        path.write_text("# Rewritten\n", encoding="utf-8")
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))

        result = renderer.render_file("docs/guide.md")
        assert result.title == "Rewritten"
        assert renderer.stats()["misses"] == 2

    def test_bounded_cache_evicts_least_recent(self, repo):
        renderer = Renderer(repo, cache_max_entries=2)

        renderer.render_file("README.md")
        renderer.render_file("docs/guide.md")
        renderer.render_file("README.md")
        renderer.render_file("docs/README.md")

        assert len(renderer.cache) == 2
        assert renderer.render_file("README.md") is not None
        assert renderer.stats()["hits"] == 2


class TestRenderCache:

    def test_get_requires_matching_mtime(self):
        cache = RenderCache()
        cache.put(RenderResult(path="a.md", title="a", html="", mtime=5))

        assert cache.get("a.md", 5) is not None
        assert cache.get("a.md", 6) is None
        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1

    def test_negative_capacity(self):
        with pytest.raises(ValueError):
            RenderCache(-1)


class TestErrors:

    def test_parser_failure_is_parse_error(self, repo):
        parser = Mock()
        parser.parse.side_effect = RuntimeError("boom")
        renderer = Renderer(repo, parser=parser)

        with pytest.raises(ParseError):
            renderer.render_file("README.md")

    def test_sanitizer_failure_propagates(self, repo):
        sanitizer = Mock()
        sanitizer.sanitize.side_effect = SanitizeError("bad")
        renderer = Renderer(repo, sanitizer=sanitizer)

        with pytest.raises(SanitizeError):
            renderer.render_file("README.md")

    def test_failures_are_not_cached(self, repo):
        sanitizer = Mock()
        sanitizer.sanitize.side_effect = [SanitizeError("bad"), "<p>ok</p>"]
        renderer = Renderer(repo, sanitizer=sanitizer)

        with pytest.raises(SanitizeError):
            renderer.render_file("README.md")
        assert renderer.render_file("README.md").html == "<p>ok</p>"
