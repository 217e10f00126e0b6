"""HTML → LLM-ready markdown.

Pipeline:
    1. BeautifulSoup pre-pass: drop scripts, navigation, footers and
       utility/visually-hidden elements; resolve relative links.
    2. markdownify: structural conversion (ATX headings, fenced code,
       ``---`` rules), with inline emphasis flattened to plain text.
    3. :mod:`pagedistill.convert.cleanup`: ordered text rules removing
       residual state blobs and script bodies, then blank-line collapsing.
"""

from __future__ import annotations

from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from markdownify import ATX, MarkdownConverter

from pagedistill.convert.cleanup import CLEANUP_RULES, apply_rules

# ---------------------------------------------------------------------------
# Structural rules
# ---------------------------------------------------------------------------
_NON_CONTENT_TAGS = ("script", "style", "noscript", "template")

_BOILERPLATE_TAGS = ("nav", "footer")

#: Utility / accessibility classes whose elements carry no readable content.
UNWANTED_CLASSES = frozenset(
    {"skip-content", "sr-only", "hidden", "visually-hidden", "icon", "svg"}
)

_UNRESOLVABLE_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")

_CONVERTER_OPTIONS = {
    "heading_style": ATX,
    "bullets": "-",
    "escape_underscores": False,
    "escape_asterisks": False,
    "escape_misc": False,
}


def _has_unwanted_class(tag: Tag) -> bool:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return any(cls in UNWANTED_CLASSES for cls in classes)


def _resolve(value: str, base_url: str) -> str:
    stripped = value.strip()
    if not stripped or stripped.lower().startswith(_UNRESOLVABLE_PREFIXES):
        return value
    return urljoin(base_url, stripped)


def _prepare_soup(soup: BeautifulSoup, base_url: str | None) -> None:
    """Apply the structural rules to *soup* in place."""
    for tag in soup.find_all(list(_NON_CONTENT_TAGS + _BOILERPLATE_TAGS)):
        if not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(_has_unwanted_class):
        if not tag.decomposed:
            tag.decompose()

    if base_url:
        for tag in soup.find_all("a", href=True):
            tag["href"] = _resolve(tag["href"], base_url)
        for tag in soup.find_all("img", src=True):
            tag["src"] = _resolve(tag["src"], base_url)


class LlmMarkdownConverter(MarkdownConverter):
    """markdownify converter that flattens inline emphasis.

    ``<span>``, ``<b>``, ``<em>`` and ``<strong>`` become their trimmed text
    followed by a single space, so templated cards do not turn into runs of
    ``**`` markers glued to neighbouring words.
    """

    def _flatten_inline(self, el, text, parent_tags=None):
        text = (text or "").strip()
        return f"{text} " if text else ""

    convert_span = _flatten_inline
    convert_b = _flatten_inline
    convert_em = _flatten_inline
    convert_strong = _flatten_inline


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def to_markdown(html: str, *, base_url: str | None = None) -> str:
    """Convert an HTML document or fragment to compact markdown.

    Args:
        html: Markup to convert.
        base_url: When given, relative ``href``/``src`` values are made
            absolute against it.

    Returns:
        Trimmed markdown with at most one blank line between blocks.
    """
    soup = BeautifulSoup(html, "html.parser")
    _prepare_soup(soup, base_url)
    markdown = LlmMarkdownConverter(**_CONVERTER_OPTIONS).convert_soup(soup)
    return apply_rules(markdown, CLEANUP_RULES)
