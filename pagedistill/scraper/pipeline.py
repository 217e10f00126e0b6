"""Top-level acquisition pipeline.

:func:`distill` escalates through three strategies and never goes back to a
looser one once a stricter one produced output:

1. **Simple fetch.**  If the document looks complete
   (:func:`~pagedistill.scraper.strategy.needs_rendering` is false) its raw
   HTML is returned as-is.
2. **Rendered fetch.**  The document is loaded into a browser session,
   stabilised, stripped of ``<script>`` elements and serialized.  The output
   is then built from it: radial fragments, link expansion, raw HTML or
   markdown, depending on the options.
3. **Fallback.**  If rendering failed, a plain fetch is tried once more and
   its raw HTML returned.

Only when all three fail is :class:`~pagedistill.exceptions.AcquisitionError`
raised.
"""

from __future__ import annotations

from typing import List

import structlog

from pagedistill.convert.dedupe import dedupe
from pagedistill.convert.markdown import to_markdown
from pagedistill.exceptions import AcquisitionError, FetchError, RenderError
from pagedistill.scraper.fetcher import RetryingFetcher
from pagedistill.scraper.links import LinkExpander
from pagedistill.scraper.models import FetchOutcome, Fragment, ScrapeOptions
from pagedistill.scraper.radial import extract_fragments, extract_repeating_fragments
from pagedistill.scraper.session import BrowserHandle, RenderSession
from pagedistill.scraper.stabilizer import stabilize
from pagedistill.scraper.strategy import needs_rendering

logger = structlog.get_logger(__name__)

FRAGMENT_SEPARATOR = "\n\n---\n\n"

METHODS = ("fixed", "repeat")


def fragment_header(index: int, fragment: Fragment) -> str:
    repeat = f" | REPEAT: {fragment.repeat_count}" if fragment.repeat_count > 1 else ""
    return (
        f"<!-- FRAGMENT {index} | SELECTOR: {fragment.selector} "
        f"| METHOD: {fragment.method} | TERM: {fragment.term}{repeat} -->"
    )


def no_fragment_placeholder(term: str) -> str:
    return f'<!-- No fragment found for term "{term}" -->'


def links_per_fragment(max_links: int, fragments: int) -> int:
    """Share the link budget between fragments, at least one link each."""
    return max(1, max_links // max(1, fragments))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

async def fetch_page(fetcher: RetryingFetcher, url: str) -> FetchOutcome:
    """Fetch *url*, raising when no attempt produced a usable response."""
    outcome = await fetcher.fetch(url)
    outcome.raise_for_failure()
    return outcome


async def render_document(
    url: str,
    html: str,
    *,
    fetcher: RetryingFetcher,
    browsers: BrowserHandle,
    options: ScrapeOptions,
) -> str:
    """Render *html* as *url*, wait for it to settle and serialize it.

    Raises:
        RenderError: The browser could not be launched or the document
            could not be loaded or serialized.
    """
    browser = await browsers.get()
    async with RenderSession(
        browser,
        fetcher.fetch,
        insecure=options.insecure,
        diagnose=options.diagnose,
    ) as session:
        await session.load(url, html, timeout=options.timeout)
        report = await stabilize(
            session,
            ceiling=options.timeout,
            quiet=options.quiet_window,
            network_idle=options.network_idle,
            network_ceiling=options.network_max_wait,
        )
        logger.info(
            "pipeline.rendered",
            url=url,
            quiescent=report.quiescent,
            network_idle=report.network_idle,
        )
        await session.remove_scripts()
        return await session.content()


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _fragments(document: str, term: str, options: ScrapeOptions) -> List[Fragment]:
    if options.method == "repeat":
        return extract_repeating_fragments(
            document,
            term,
            radius_levels=options.radius_levels,
            min_repeat=options.min_repeat,
        )
    return extract_fragments(document, term, radius_levels=options.radius_levels)


async def radial_output(
    document: str,
    url: str,
    term: str,
    options: ScrapeOptions,
    expander: LinkExpander,
) -> str:
    """One markdown block per fragment, each optionally with its linked pages."""
    fragments = _fragments(document, term, options)
    if not fragments:
        logger.info("pipeline.no_fragments", url=url, term=term)
        return no_fragment_placeholder(term)

    budget = links_per_fragment(options.max_links, len(fragments))
    blocks: List[str] = []
    for i, fragment in enumerate(fragments, start=1):
        block = fragment_header(i, fragment) + "\n" + to_markdown(fragment.html, base_url=url)
        if options.render_links:
            block += await expander.linked_sections(
                fragment.html,
                url,
                max_links=budget,
                per_link_timeout=options.link_timeout,
            )
        blocks.append(block)
    logger.info("pipeline.fragments", url=url, count=len(blocks))
    return FRAGMENT_SEPARATOR.join(blocks)


async def build_output(
    document: str,
    url: str,
    options: ScrapeOptions,
    expander: LinkExpander,
) -> str:
    """Turn a rendered document into the final output text."""
    if options.radial and options.term:
        return dedupe(await radial_output(document, url, options.term, options, expander))
    if options.render_links:
        expanded = await expander.expand(
            document,
            url,
            max_links=options.max_links,
            per_link_timeout=options.link_timeout,
        )
        return dedupe(expanded)
    if options.full_html:
        return document
    return dedupe(to_markdown(document, base_url=url))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def distill(url: str, options: ScrapeOptions | None = None) -> str:
    """Acquire *url* and return raw HTML or normalized markdown.

    Args:
        url: Absolute http(s) URL.
        options: Run options; defaults come from settings.

    Returns:
        Raw HTML (early exit, fallback or ``full_html``) or markdown.

    Raises:
        ValueError: Radial extraction was requested without a term, or the
            extraction method is unknown.
        AcquisitionError: No strategy produced a document.
    """
    options = options or ScrapeOptions()
    if options.radial and not options.term:
        raise ValueError("radial extraction requires a term")
    if options.method not in METHODS:
        raise ValueError(f"unknown extraction method {options.method!r}")

    async with RetryingFetcher(
        max_attempts=options.max_attempts,
        timeout=options.timeout,
        insecure=options.insecure,
    ) as fetcher, BrowserHandle() as browsers:
        page: FetchOutcome | None = None

        if not options.force_browser:
            try:
                page = await fetch_page(fetcher, url)
            except FetchError as exc:
                logger.warning("pipeline.simple_fetch_failed", url=url, error=str(exc))
            else:
                if not needs_rendering(page.text):
                    logger.info("pipeline.early_exit", url=url)
                    return page.text

        try:
            if page is None:
                page = await fetch_page(fetcher, url)
            # Relative sub-resources resolve against the post-redirect URL.
            page_url = page.final_url or url
            document = await render_document(
                page_url, page.text, fetcher=fetcher, browsers=browsers, options=options
            )
            expander = LinkExpander(
                fetcher, browsers, insecure=options.insecure, diagnose=options.diagnose
            )
            return await build_output(document, page_url, options, expander)
        except (RenderError, FetchError) as exc:
            logger.warning("pipeline.render_failed", url=url, error=str(exc))

        try:
            return await fetcher.fetch_text(url)
        except FetchError as exc:
            logger.error("pipeline.all_failed", url=url, error=str(exc))
            raise AcquisitionError(f"All methods failed for {url}: {exc}") from exc
