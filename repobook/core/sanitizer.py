"""
Allow-list HTML sanitizer.

Rendered Markdown may contain arbitrary raw HTML, so every document passes
through nh3 (ammonia) before it leaves the server. The policy is a
user-generated-content subset widened just enough for what the parser
emits: heading ids, highlight classes, task-list checkboxes and the
link-rewriter's ``target``/``rel`` attributes.
"""

from __future__ import annotations

import logging

import nh3

from .errors import SanitizeError


__all__ = ["HtmlSanitizer"]

logger = logging.getLogger(__name__)


class HtmlSanitizer:
    """Stateless nh3 wrapper; safe to share across threads."""

    ALLOWED_TAGS: frozenset[str] = frozenset({
        # Text formatting
        "a", "abbr", "b", "strong", "i", "em", "u", "mark", "small", "del",
        "s", "strike", "ins", "sub", "sup", "code", "kbd", "samp", "var",
        "cite", "q", "br", "wbr",
        # Structure
        "p", "div", "span", "pre", "blockquote", "hr", "details", "summary",
        "figure", "figcaption",
        "h1", "h2", "h3", "h4", "h5", "h6",
        # Lists
        "ul", "ol", "li", "dl", "dt", "dd",
        # Tables
        "table", "thead", "tbody", "tfoot", "tr", "th", "td", "caption",
        # Media and task lists
        "img", "input",
    })

    ALLOWED_ATTRIBUTES: dict[str, set[str]] = {
        **{f"h{level}": {"id"} for level in range(1, 7)},
        "div": {"class"},
        "pre": {"class"},
        "code": {"class"},
        "span": {"class"},
        "ul": {"class"},
        "li": {"class"},
        "a": {"href", "rel", "target", "title"},
        "img": {"src", "alt", "title"},
        "input": {"type", "checked", "disabled"},
        "td": {"colspan", "rowspan", "style"},
        "th": {"colspan", "rowspan", "style"},
        "ol": {"start"},
    }

    # Removed together with everything inside them.
    CLEAN_CONTENT_TAGS: frozenset[str] = frozenset({"script", "style"})

    URL_SCHEMES: frozenset[str] = frozenset({"http", "https", "mailto", "tel"})

    def sanitize(self, html: str) -> str:
        """
        Strip everything outside the allow-list.

        Raises:
            SanitizeError: nh3 rejected the input or the policy
        """
        try:
            return nh3.clean(
                html,
                tags=set(self.ALLOWED_TAGS),
                clean_content_tags=set(self.CLEAN_CONTENT_TAGS),
                attributes={tag: set(attrs) for tag, attrs in self.ALLOWED_ATTRIBUTES.items()},
                attribute_filter=self._filter_attribute,
                url_schemes=set(self.URL_SCHEMES),
                strip_comments=True,
                link_rel=None,
            )
        except (TypeError, ValueError) as e:
            logger.error("HTML sanitization failed: %s", e)
            raise SanitizeError(str(e)) from e

    def _filter_attribute(self, tag: str, attr: str, value: str) -> str | None:
        if attr == "style":
            # markdown-it table alignment is the only inline style kept.
            normalized = value.replace(" ", "").rstrip(";").lower()
            if normalized in ("text-align:left", "text-align:center", "text-align:right"):
                return normalized
            return None
        if tag == "input" and attr == "type":
            # Task-list checkboxes only.
            return value if value.strip().lower() == "checkbox" else None
        return value
