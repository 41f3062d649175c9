"""
Markdown Parser with GitHub-flavored extensions.

Supports:
- CommonMark core plus tables, strikethrough and autolinks
- Task lists and unique heading ids (mdit-py-plugins)
- Hard line breaks and raw HTML (sanitized downstream)
- Fenced code highlighting via Pygments
- Mermaid fences passed through for client-side rendering
- Repository link rewriting (see link_resolver)
- Heading outline (TOC) extraction
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.anchors import anchors_plugin
from mdit_py_plugins.tasklists import tasklists_plugin
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .link_resolver import ENV_CURRENT_PATH, LinkResolver


__all__ = ["MarkdownParser", "ParsedDocument", "TocEntry"]


_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class TocEntry:
    """One heading in the document outline."""
    level: int
    id: str
    title: str


@dataclass(slots=True)
class ParsedDocument:
    """Token stream of one parse plus its extracted outline."""
    tokens: list[Token]
    toc: list[TocEntry] = field(default_factory=list)
    env: dict[str, Any] = field(default_factory=dict)


class MarkdownParser:
    """
    markdown-it-py parser configured for repository documentation.

    One instance is shared by all render threads: parse state lives in the
    per-call ``env`` and token list, never on the parser.
    """

    def __init__(self, link_resolver: LinkResolver | None = None) -> None:
        """
        Args:
            link_resolver: Rewrites relative links during parsing; omitted
                means destinations are left as written
        """
        self.md = MarkdownIt(
            "commonmark",
            {"html": True, "linkify": True, "breaks": True, "xhtmlOut": True},
        )
        self.md.enable(["table", "strikethrough", "linkify"])
        self.md.use(tasklists_plugin)
        self.md.use(anchors_plugin, min_level=1, max_level=6)

        if link_resolver is not None:
            self.md.core.ruler.push("repobook_links", link_resolver)
        self.link_resolver = link_resolver

        self.md.renderer.rules["fence"] = self._render_fence

        self._code_formatter = HtmlFormatter(
            cssclass="highlight",
            linenos=False,
            nowrap=False,
            wrapcode=True,
        )

    def parse(self, content: str, current_path: str = "") -> ParsedDocument:
        """
        Tokenize ``content`` as the file at ``current_path``.

        Args:
            content: Markdown source
            current_path: Forward-slash path of the file relative to the
                repository root; relative links resolve against its directory
        """
        env: dict[str, Any] = {ENV_CURRENT_PATH: current_path}
        tokens = self.md.parse(content, env)
        return ParsedDocument(tokens=tokens, toc=self.extract_toc(tokens), env=env)

    def render(self, document: ParsedDocument | list[Token]) -> str:
        """Serialize tokens to (unsanitized) HTML."""
        if isinstance(document, ParsedDocument):
            return self.md.renderer.render(document.tokens, self.md.options, document.env)
        return self.md.renderer.render(document, self.md.options, {})

    @staticmethod
    def extract_toc(tokens: list[Token]) -> list[TocEntry]:
        """Collect headings in document order, skipping empty titles."""
        toc: list[TocEntry] = []
        for i, token in enumerate(tokens):
            if token.type != "heading_open":
                continue
            inline = tokens[i + 1] if i + 1 < len(tokens) else None
            if inline is None or inline.type != "inline":
                continue

            title = _WHITESPACE.sub(" ", _inline_text(inline)).strip()
            if not title:
                continue

            heading_id = token.attrGet("id")
            toc.append(TocEntry(
                level=int(token.tag[1]),
                id=heading_id if isinstance(heading_id, str) else "",
                title=title,
            ))
        return toc

    def _render_fence(self, tokens: list[Token], idx: int, options: Any, env: dict) -> str:
        """Fenced code: mermaid passthrough, Pygments, or escaped fallback."""
        token = tokens[idx]
        info = token.info.strip() if token.info else ""
        lang = info.split(maxsplit=1)[0] if info else ""
        content = token.content

        if lang.lower() == "mermaid":
            return f'<div class="mermaid">{html.escape(content)}</div>\n'

        return self._highlight_code(content, lang)

    def _highlight_code(self, content: str, lang: str) -> str:
        if lang:
            try:
                lexer = get_lexer_by_name(lang)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                return highlight(content, lexer, self._code_formatter)

        escaped = html.escape(content)
        if lang:
            return f'<pre><code class="language-{html.escape(lang)}">{escaped}</code></pre>\n'
        return f"<pre><code>{escaped}</code></pre>\n"

    def get_css(self) -> str:
        """Get Pygments CSS for syntax highlighting."""
        return self._code_formatter.get_style_defs(".highlight")


def _inline_text(inline: Token) -> str:
    parts: list[str] = []
    for child in inline.children or []:
        if child.type in ("text", "code_inline"):
            parts.append(child.content)
        elif child.type in ("softbreak", "hardbreak"):
            parts.append(" ")
        elif child.type == "image":
            # alt text lives in the image's own children
            parts.append(_inline_text(child))
    return "".join(parts)
