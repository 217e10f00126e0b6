"""Acquisition strategy selection.

Decides from a first, plain fetch whether the document is probably complete
or whether its real content only appears after page scripts run.  This is a
coarse completeness probe rather than a parser: listing pages that render
their cards client-side are the main target, and false positives only cost a
browser render.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Incompleteness signals
# ---------------------------------------------------------------------------
_PLACEHOLDER_DOMAINS = ("via.placeholder.com", "placeholder.com")

_LOADING_MARKERS = ("skeleton", "placeholder")

_CARD_CLASS_PATTERN = re.compile(
    r"""class=["'][^"']*(col-md-4|vehicle-card|product-card|item-card)[^"']*["']""",
    re.IGNORECASE,
)

#: Fewer card matches than this means the listing has not been rendered yet.
MIN_CARD_MATCHES = 2


def count_cards(html: str) -> int:
    """Return the number of ``class`` attributes naming a known card pattern."""
    return len(_CARD_CLASS_PATTERN.findall(html))


def needs_rendering(html: str) -> bool:
    """Return ``True`` if *html* looks incomplete without script execution.

    Any one signal is enough:

    * a placeholder-image domain appears in the document;
    * the words ``skeleton`` or ``placeholder`` appear anywhere;
    * fewer than :data:`MIN_CARD_MATCHES` elements carry a known repeating
      card class (``product-card``, ``vehicle-card``, ``item-card``,
      ``col-md-4``).

    Pure and deterministic.
    """
    doc = html.lower()
    if any(domain in doc for domain in _PLACEHOLDER_DOMAINS):
        return True
    if any(marker in doc for marker in _LOADING_MARKERS):
        return True
    return count_cards(html) < MIN_CARD_MATCHES
