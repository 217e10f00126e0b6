"""Bounded link expansion.

Given a document (a whole page or one radial fragment), discover the content
links it points to and append the markdown of up to ``max_links`` of them,
one at a time, as ``Linked Content`` sections.

Each linked page goes through a light pipeline: plain fetch and markdown of
its ``<body>``; only when that yields almost nothing (a client-rendered
shell) is the page rendered and stabilised with tighter bounds than the main
page.  A link that cannot be loaded becomes a placeholder section instead of
aborting the run.
"""

from __future__ import annotations

import re
from typing import List
from urllib.parse import urljoin, urlsplit

import structlog
from bs4 import BeautifulSoup

from pagedistill.convert.markdown import to_markdown
from pagedistill.exceptions import PageDistillError
from pagedistill.scraper.fetcher import RetryingFetcher
from pagedistill.scraper.models import LinkTarget
from pagedistill.scraper.session import BrowserHandle, RenderSession
from pagedistill.scraper.stabilizer import stabilize

logger = structlog.get_logger(__name__)

_SKIPPED_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "#")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".webp", ".ico")

# [text](url), but not ![alt](src)
_MARKDOWN_LINK = re.compile(r"(?<!!)\[[^\]]*\]\(\s*([^)\s]+)[^)]*\)")

#: Quick markdown longer than this is used without rendering the link.
QUICK_MARKDOWN_MIN = 100

LINK_RENDER_CEILING = 15.0
LINK_QUIET_WINDOW = 0.5
LINK_NETWORK_IDLE = 1.0
LINK_NETWORK_CEILING = 5.0


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def is_content_link(href: str) -> bool:
    """``False`` for empty, fragment-only, non-navigational and image links."""
    value = href.strip()
    if not value:
        return False
    lowered = value.lower()
    if lowered.startswith(_SKIPPED_PREFIXES):
        return False
    if "image/" in lowered:
        return False
    path = urlsplit(lowered).path
    return not path.endswith(IMAGE_EXTENSIONS)


def _absolute(href: str, base_url: str | None) -> str | None:
    try:
        url = urljoin(base_url or "", href.strip())
    except ValueError:
        return None
    if urlsplit(url).scheme not in ("http", "https"):
        return None
    return url


def collect_links(html: str, base_url: str | None = None) -> List[LinkTarget]:
    """Return the content links of *html*, absolute and de-duplicated.

    ``<a href>`` elements come first, then markdown-style ``[text](url)``
    links found in the raw text; discovery order is kept.
    """
    soup = BeautifulSoup(html, "html.parser")
    candidates = [(a["href"], "anchor") for a in soup.find_all("a", href=True)]
    candidates += [(m.group(1), "markdown") for m in _MARKDOWN_LINK.finditer(html)]

    seen: set[str] = set()
    targets: List[LinkTarget] = []
    for href, source in candidates:
        if not isinstance(href, str) or not is_content_link(href):
            continue
        url = _absolute(href, base_url)
        if url is None or url in seen:
            continue
        seen.add(url)
        targets.append(LinkTarget(url=url, source=source))
    return targets


def linked_section(index: int, url: str, body: str) -> str:
    return f"\n\n---\n\n### Linked Content {index}: {url}\n\n{body}"


def _body_html(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    return soup.body.decode_contents() if soup.body else str(soup)


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

class LinkExpander:
    """Fetches, optionally renders, and converts linked pages.

    Args:
        fetcher: Fetcher used for the linked pages and their sub-resources.
        browsers: Browser shared with the rest of the run; only launched if a
            link needs rendering.
        insecure: Ignore TLS errors inside the browser.
        diagnose: Forward page console output to the log.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        browsers: BrowserHandle,
        *,
        insecure: bool = False,
        diagnose: bool = False,
    ) -> None:
        self._fetcher = fetcher
        self._browsers = browsers
        self._insecure = insecure
        self._diagnose = diagnose

    async def render_link(self, url: str, timeout: float) -> str:
        """Return the markdown of the page at *url*.

        Raises:
            FetchError: The page could not be fetched.
            RenderError: The page needed rendering and the browser failed
                before anything could be read from it.
        """
        outcome = await self._fetcher.fetch(url)
        outcome.raise_for_failure()
        html = outcome.text
        page_url = outcome.final_url or url

        quick = to_markdown(_body_html(html), base_url=page_url)
        if len(quick) > QUICK_MARKDOWN_MIN:
            return quick

        logger.debug("links.render", url=url, quick_length=len(quick))
        ceiling = min(timeout, LINK_RENDER_CEILING)
        browser = await self._browsers.get()
        async with RenderSession(
            browser,
            self._fetcher.fetch,
            insecure=self._insecure,
            diagnose=self._diagnose,
        ) as session:
            await session.load(page_url, html, timeout=ceiling)
            await stabilize(
                session,
                ceiling=ceiling,
                quiet=LINK_QUIET_WINDOW,
                network_idle=LINK_NETWORK_IDLE,
                network_ceiling=LINK_NETWORK_CEILING,
            )
            body = await session.body_html()

        markdown = to_markdown(body, base_url=page_url)
        logger.debug("links.rendered", url=url, length=len(markdown))
        return markdown

    async def linked_sections(
        self,
        html: str,
        base_url: str | None,
        *,
        max_links: int,
        per_link_timeout: float,
    ) -> str:
        """Return the ``Linked Content`` sections for the links in *html*."""
        targets = collect_links(html, base_url)[: max(0, max_links)]
        sections: List[str] = []
        for i, target in enumerate(targets, start=1):
            logger.info("links.processing", index=i, total=len(targets), url=target.url)
            try:
                markdown = await self.render_link(target.url, per_link_timeout)
            except PageDistillError as exc:
                logger.warning("links.failed", url=target.url, error=str(exc))
                markdown = f"[Failed to load: {exc}]"
            sections.append(linked_section(i, target.url, markdown))
        return "".join(sections)

    async def expand(
        self,
        html: str,
        base_url: str | None,
        *,
        max_links: int,
        per_link_timeout: float,
    ) -> str:
        """Markdown of *html* followed by its linked sections."""
        base = to_markdown(html, base_url=base_url)
        sections = await self.linked_sections(
            html, base_url, max_links=max_links, per_link_timeout=per_link_timeout
        )
        return base + sections

