"""Radial search: term-anchored fragment extraction.

Locates every text node mentioning a term and captures the surrounding markup
by walking a fixed number of ancestor levels up from the match.  The widest
ancestor allowed is kept, never the page's ``<body>``/``<html>``.

Two walks are available:

* :func:`extract_fragments` (method ``fixed_radial``) always climbs up to
  ``radius_levels`` ancestors.
* :func:`extract_repeating_fragments` (method ``radial``) stops at the first
  ancestor that has at least ``min_repeat`` look-alike siblings (a card in a
  listing) and captures its container.

Matches are never merged: N matches inside one container yield N fragments.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Iterator, List

import structlog
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from pagedistill.scraper.models import Fragment

logger = structlog.get_logger(__name__)

METHOD_FIXED = "fixed_radial"
METHOD_REPEAT = "radial"

_SKIPPED_TAGS = frozenset({"script", "style", "template"})
_TOP_LEVEL_TAGS = frozenset({"body", "html"})


@dataclass(frozen=True)
class TextAnchor:
    """A text node containing the term, plus its parent element."""

    text: NavigableString
    element: Tag


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _as_soup(document: BeautifulSoup | str) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document, "html.parser")


def _is_readable_text(node: object) -> bool:
    # Comments, doctypes and CDATA are NavigableStrings too.
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def _is_ascendable(node: object) -> bool:
    """``True`` if *node* may become a fragment boundary."""
    return (
        isinstance(node, Tag)
        and not isinstance(node, BeautifulSoup)
        and node.name not in _TOP_LEVEL_TAGS
    )


def _iter_text_nodes(root: Tag) -> Iterator[NavigableString]:
    """Depth-first, document-order walk skipping script/style subtrees."""
    stack: list = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, Tag):
            if node.name in _SKIPPED_TAGS:
                continue
            stack.extend(reversed(node.contents))
        elif _is_readable_text(node):
            yield node


def find_anchors(document: BeautifulSoup | str, term: str) -> List[TextAnchor]:
    """Return every text node whose content contains *term* (case-insensitive)."""
    soup = _as_soup(document)
    needle = term.lower()
    if not needle.strip():
        return []

    root = soup.body or soup
    anchors: List[TextAnchor] = []
    for text in _iter_text_nodes(root):
        if needle not in text.lower():
            continue
        parent = text.parent
        if not isinstance(parent, Tag) or isinstance(parent, BeautifulSoup):
            logger.debug("radial.orphan_text", text=str(text)[:80])
            continue
        anchors.append(TextAnchor(text=text, element=parent))
    return anchors


def selector_hint(element: Tag) -> str:
    """``.class-a.class-b`` when the element has classes, else its tag name."""
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    if classes:
        return "." + ".".join(classes)
    return element.name


def strip_svg(element: Tag) -> Tag:
    """Empty every SVG in *element* in place, keeping only ``xmlns``."""
    svgs = element.find_all("svg")
    if element.name == "svg":
        svgs.insert(0, element)
    for svg in svgs:
        svg.attrs = {k: v for k, v in svg.attrs.items() if k == "xmlns"}
        svg.clear()
    return element


def _snapshot(element: Tag) -> str:
    # Work on a detached copy so the live document is left untouched.
    return str(strip_svg(copy.copy(element)))


def _ascend(element: Tag, levels: int) -> Tag:
    best = element
    for _ in range(levels):
        parent = best.parent
        if not _is_ascendable(parent):
            break
        best = parent
    return best


def _lookalike_siblings(element: Tag) -> int:
    parent = element.parent
    if not isinstance(parent, Tag):
        return 0
    classes = element.get("class") or []
    return sum(
        1
        for sib in parent.find_all(True, recursive=False)
        if sib is not element
        and sib.name == element.name
        and (sib.get("class") or []) == classes
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_fragments(
    document: BeautifulSoup | str,
    term: str,
    radius_levels: int = 3,
) -> List[Fragment]:
    """Extract one fixed-radius fragment per term match.

    Args:
        document: Parsed document, or raw HTML to parse.
        term: Text to look for (case-insensitive substring).
        radius_levels: Maximum number of ancestors to climb from the match's
            parent element.  Climbing stops early before ``<body>``/``<html>``.

    Returns:
        Fragments in document order.  Empty if the term does not occur.
    """
    fragments: List[Fragment] = []
    for anchor in find_anchors(document, term):
        boundary = _ascend(anchor.element, radius_levels)
        fragments.append(
            Fragment(
                html=_snapshot(boundary),
                selector=selector_hint(boundary),
                method=METHOD_FIXED,
                term=term,
            )
        )
    logger.debug("radial.extracted", term=term, fragments=len(fragments))
    return fragments


def extract_repeating_fragments(
    document: BeautifulSoup | str,
    term: str,
    radius_levels: int = 3,
    min_repeat: int = 2,
) -> List[Fragment]:
    """Extract fragments around the nearest repeated container of each match.

    Climbs from the match's parent until an element has at least
    *min_repeat* siblings sharing its tag and class list, then promotes the
    result to that element's container (never ``<body>``/``<html>``).  When
    no repeated element is found within *radius_levels*, the match's parent
    element is used as-is.
    """
    fragments: List[Fragment] = []
    for anchor in find_anchors(document, term):
        el = anchor.element
        best = el
        repeat_count = 1
        for _ in range(radius_levels):
            group = _lookalike_siblings(el) + 1
            if group >= min_repeat:
                best = el
                repeat_count = group
                break
            if not _is_ascendable(el.parent):
                break
            el = el.parent

        if repeat_count > 1 and _is_ascendable(best.parent):
            best = best.parent

        fragments.append(
            Fragment(
                html=_snapshot(best),
                selector=selector_hint(best),
                method=METHOD_REPEAT,
                term=term,
                repeat_count=repeat_count,
            )
        )
    logger.debug("radial.extracted", term=term, fragments=len(fragments), method=METHOD_REPEAT)
    return fragments
