"""Scraper package: acquisition, stabilisation and extraction."""

from pagedistill.scraper.fetcher import RetryingFetcher, simple_fetch
from pagedistill.scraper.links import LinkExpander, collect_links
from pagedistill.scraper.models import FetchOutcome, Fragment, LinkTarget, ScrapeOptions, StatusClass
from pagedistill.scraper.pipeline import distill
from pagedistill.scraper.radial import extract_fragments, extract_repeating_fragments
from pagedistill.scraper.strategy import needs_rendering

__all__ = [
    "distill",
    "RetryingFetcher",
    "simple_fetch",
    "needs_rendering",
    "extract_fragments",
    "extract_repeating_fragments",
    "LinkExpander",
    "collect_links",
    "FetchOutcome",
    "Fragment",
    "LinkTarget",
    "ScrapeOptions",
    "StatusClass",
]
