"""Line-level duplicate removal for normalized markdown.

Templated listing markup (cards, carousels, "featured" strips) converts into
the same lines over and over.  :func:`dedupe` removes that repetition section
by section, where sections start at fragment headers and linked-content
headings (together with the ``---`` rule introducing them), so two fragments
never cancel each other out.

Within a section, in order:

1. runs of image-reference lines collapse to their unique members;
2. a "year" line + "price" line pair repeated back-to-back collapses to one;
3. every remaining duplicate line is dropped (first occurrence wins) and
   blank-line runs collapse to a single blank line.

``dedupe(dedupe(text)) == dedupe(text)``.
"""

from __future__ import annotations

import re
from typing import Callable, List

Lines = List[str]

_BOUNDARY = re.compile(r"^\s*(?:<!-- FRAGMENT |### Linked Content )")

_RULE = "---"

_IMAGE_LINE = re.compile(r"^\s*\[?!\[[^\]]*\]\([^)]*\)(?:\]\([^)]*\))?\s*$")

_YEAR_LINE = re.compile(r"^\s*(?:19|20)\d{2}(?:\s*/\s*(?:19|20)\d{2})?\s*$")

_PRICE_LINE = re.compile(r"^\s*(?:R\$|US\$|\$|€|£)\s?\d[\d.,]*\s*$")


def is_image_line(line: str) -> bool:
    return bool(_IMAGE_LINE.match(line))


def is_year_line(line: str) -> bool:
    return bool(_YEAR_LINE.match(line))


def is_price_line(line: str) -> bool:
    return bool(_PRICE_LINE.match(line))


def _detach_rule(section: Lines) -> Lines:
    """Pop the ``---`` rule (and blank lines after it) ending *section*."""
    end = len(section)
    while end and not section[end - 1].strip():
        end -= 1
    if not end or section[end - 1].strip() != _RULE:
        return []
    head = section[end - 1:]
    del section[end - 1:]
    return head


def split_sections(lines: Lines) -> List[Lines]:
    """Split *lines* so that every boundary line opens a new section.

    A ``---`` rule directly above a boundary belongs to the new section, so
    a horizontal rule earlier in the content cannot swallow it.
    """
    sections: List[Lines] = [[]]
    for line in lines:
        if _BOUNDARY.match(line) and sections[-1]:
            sections.append(_detach_rule(sections[-1]))
        sections[-1].append(line)
    return sections


def _content_indices(lines: Lines) -> List[int]:
    # Blank lines are paragraph separators, not content.
    return [i for i, line in enumerate(lines) if line.strip()]


def collapse_image_runs(lines: Lines) -> Lines:
    """Keep only the first occurrence of each image line within a run."""
    drop = set()
    seen: set[str] = set()
    for i in _content_indices(lines):
        line = lines[i]
        if not is_image_line(line):
            seen = set()
            continue
        key = line.strip()
        if key in seen:
            drop.add(i)
        seen.add(key)
    return [line for i, line in enumerate(lines) if i not in drop]


def collapse_year_price_pairs(lines: Lines) -> Lines:
    """Drop back-to-back repeats of a ``year`` + ``price`` line pair."""
    idx = _content_indices(lines)
    drop = set()
    k = 0
    while k + 1 < len(idx):
        first, second = lines[idx[k]], lines[idx[k + 1]]
        if not (is_year_line(first) and is_price_line(second)):
            k += 1
            continue
        pair = (first.strip(), second.strip())
        k += 2
        while k + 1 < len(idx) and (lines[idx[k]].strip(), lines[idx[k + 1]].strip()) == pair:
            drop.update((idx[k], idx[k + 1]))
            k += 2
    return [line for i, line in enumerate(lines) if i not in drop]


def drop_repeated_lines(lines: Lines) -> Lines:
    """Remove duplicate lines (trimmed comparison) and squeeze blank runs."""
    seen: set[str] = set()
    kept: Lines = []
    for line in lines:
        key = line.strip()
        if key:
            if key not in seen:
                seen.add(key)
                kept.append(line)
        elif kept and kept[-1].strip():
            kept.append(line)
    return kept


SECTION_PASSES: tuple[Callable[[Lines], Lines], ...] = (
    collapse_image_runs,
    collapse_year_price_pairs,
    drop_repeated_lines,
)


def dedupe(text: str) -> str:
    """Remove repeated lines and patterns from *text*, section by section."""
    out: Lines = []
    for section in split_sections(text.split("\n")):
        for step in SECTION_PASSES:
            section = step(section)
        out.extend(section)
    return "\n".join(out).strip()
