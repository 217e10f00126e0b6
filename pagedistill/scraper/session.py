"""Playwright-backed render sessions.

A :class:`RenderSession` is one exclusively-owned, live page used for one
acquisition attempt.  It owns:

* a fresh browser context and page;
* a :class:`~pagedistill.scraper.stabilizer.RequestCounter` fed by the
  context's ``request`` / ``requestfinished`` / ``requestfailed`` events;
* a :class:`~pagedistill.scraper.stabilizer.ChangeFeed` fed by a
  ``MutationObserver`` installed before any page script runs.

Network access is injected: every GET the page makes is routed through the
``resource_fetch`` callable given to the constructor (normally
:meth:`RetryingFetcher.fetch`), and the main document is served from HTML the
caller already fetched.

Sessions are async context managers and must always be closed, otherwise
contexts (and their timers and listeners) pile up across link expansion.

Install the browser binary once with::

    playwright install chromium
"""

from __future__ import annotations

from typing import Awaitable, Callable

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Request, Route
from playwright.async_api import Error as PlaywrightError

from pagedistill.config import settings
from pagedistill.exceptions import RenderError
from pagedistill.scraper.models import FetchOutcome, StatusClass
from pagedistill.scraper.stabilizer import ChangeFeed, RequestCounter

logger = structlog.get_logger(__name__)

ResourceFetch = Callable[[str], Awaitable[FetchOutcome]]

#: Resource types that never affect text content.
BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font"})

#: Response headers that no longer describe the body once httpx decoded it.
_HOP_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection"}
)

_MUTATION_BINDING = "__pagedistillMutation"

_OBSERVER_SCRIPT = """
(() => {
  const notify = () => { try { window.%(binding)s(); } catch (e) {} };
  const observer = new MutationObserver(notify);
  observer.observe(document, {
    childList: true, subtree: true, attributes: true, characterData: true
  });
})();
""" % {"binding": _MUTATION_BINDING}

_SCROLL_SCRIPT = """
() => {
  const height = document.body ? document.body.scrollHeight : 0;
  window.scrollTo(0, height);
  window.dispatchEvent(new Event('scroll'));
}
"""

_REMOVE_SCRIPTS = "() => document.querySelectorAll('script').forEach(s => s.remove())"

_BODY_HTML = """
() => document.body ? document.body.innerHTML : document.documentElement.innerHTML
"""


class RenderSession:
    """One live, owned page.

    Args:
        browser: A launched Playwright browser (see :class:`BrowserHandle`).
        resource_fetch: Coroutine function used for every sub-resource GET.
        user_agent: User-Agent for the browser context.
        insecure: Ignore TLS certificate errors inside the browser.
        diagnose: Forward page console output and page errors to the log.
    """

    def __init__(
        self,
        browser: Browser,
        resource_fetch: ResourceFetch,
        *,
        user_agent: str | None = None,
        insecure: bool = False,
        diagnose: bool = False,
    ) -> None:
        self._browser = browser
        self._resource_fetch = resource_fetch
        self._user_agent = user_agent or settings.user_agent
        self._insecure = insecure
        self._diagnose = diagnose
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._document_html: str | None = None
        self._document_served = False
        self.changes = ChangeFeed()
        self.network = RequestCounter()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def __aenter__(self) -> RenderSession:
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def open(self) -> None:
        try:
            self._context = await self._browser.new_context(
                user_agent=self._user_agent,
                ignore_https_errors=self._insecure,
            )
            self._context.on("request", self.network.started)
            self._context.on("requestfinished", self.network.finished)
            self._context.on("requestfailed", self.network.finished)
            await self._context.expose_binding(_MUTATION_BINDING, self._on_mutation)
            await self._context.add_init_script(script=_OBSERVER_SCRIPT)
            await self._context.route("**/*", self._handle_route)

            self._page = await self._context.new_page()
            if self._diagnose:
                self._page.on("console", self._on_console)
                self._page.on("pageerror", self._on_page_error)
        except PlaywrightError as exc:
            raise RenderError(f"could not open render session: {exc}") from exc

    async def close(self) -> None:
        context, self._context, self._page = self._context, None, None
        if context is None:
            return
        try:
            await context.close()
        except PlaywrightError as exc:
            logger.debug("session.close_failed", error=str(exc))

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RenderError("render session is not open")
        return self._page

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------
    async def load(self, url: str, html: str, *, timeout: float) -> None:
        """Navigate to *url*, serving *html* as its document.

        Waits for ``DOMContentLoaded`` (a failure here is a
        :class:`RenderError`), then for the load event on a best-effort basis.
        """
        self._document_html = html
        self._document_served = False
        timeout_ms = timeout * 1000
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightError as exc:
            raise RenderError(f"navigation to {url} failed: {exc}") from exc
        try:
            await self.page.wait_for_load_state("load", timeout=timeout_ms)
        except PlaywrightError as exc:
            logger.debug("session.load_event_missed", url=url, error=str(exc))

    async def scroll_to_bottom(self) -> None:
        try:
            await self.page.evaluate(_SCROLL_SCRIPT)
        except PlaywrightError as exc:
            raise RenderError(f"scroll failed: {exc}") from exc

    async def click_first(self, selector: str, *, timeout: float = 2.0) -> bool:
        """Click the first element matching *selector*; ``False`` if none."""
        try:
            handle = await self.page.query_selector(selector)
            if handle is None:
                return False
            await handle.click(timeout=timeout * 1000)
        except PlaywrightError as exc:
            raise RenderError(f"click on {selector!r} failed: {exc}") from exc
        return True

    async def remove_scripts(self) -> None:
        try:
            await self.page.evaluate(_REMOVE_SCRIPTS)
        except PlaywrightError as exc:
            raise RenderError(f"script removal failed: {exc}") from exc

    async def content(self) -> str:
        """Serialize the whole live document."""
        try:
            return await self.page.content()
        except PlaywrightError as exc:
            raise RenderError(f"serialization failed: {exc}") from exc

    async def body_html(self) -> str:
        """Serialize the children of ``<body>`` (document element if none)."""
        try:
            return await self.page.evaluate(_BODY_HTML)
        except PlaywrightError as exc:
            raise RenderError(f"serialization failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------
    def _on_mutation(self, source: object) -> None:
        self.changes.push()

    def _on_console(self, message) -> None:
        logger.debug("page.console", type=message.type, text=message.text)

    def _on_page_error(self, error) -> None:
        logger.debug("page.error", error=str(error))

    async def _handle_route(self, route: Route, request: Request) -> None:
        try:
            if (
                request.is_navigation_request()
                and not self._document_served
                and self._document_html is not None
            ):
                self._document_served = True
                await route.fulfill(
                    status=200,
                    headers={"content-type": "text/html; charset=utf-8"},
                    body=self._document_html,
                )
                return

            if request.resource_type in BLOCKED_RESOURCE_TYPES:
                await route.abort()
                return

            if request.method != "GET":
                await route.continue_()
                return

            await self._fulfill_from_fetch(route, request.url)
        except PlaywrightError as exc:
            # The page or context went away while the request was pending.
            logger.debug("session.route_dropped", url=request.url, error=str(exc))

    async def _fulfill_from_fetch(self, route: Route, url: str) -> None:
        try:
            outcome = await self._resource_fetch(url)
        except Exception as exc:  # noqa: BLE001
            # An unresolved route would hang the request forever.
            logger.debug("session.resource_failed", url=url, error=str(exc))
            await route.abort()
            return

        if outcome.status_class is StatusClass.TRANSPORT_ERROR or outcome.status_code is None:
            await route.abort()
            return

        headers = {
            k: v for k, v in outcome.headers.items() if k.lower() not in _HOP_HEADERS
        }
        await route.fulfill(status=outcome.status_code, headers=headers, body=outcome.body)


class BrowserHandle:
    """Lazily-launched Chromium shared by the sessions of one pipeline run.

    The browser process starts on the first :meth:`get` call, so runs that
    never need rendering never pay for it.  Each :class:`RenderSession` still
    gets its own context.
    """

    def __init__(self, *, headless: bool | None = None) -> None:
        self._headless = settings.headless if headless is None else headless
        self._playwright = None
        self._browser: Browser | None = None

    async def __aenter__(self) -> BrowserHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def get(self) -> Browser:
        if self._browser is not None:
            return self._browser

        # Imported lazily so that runs which never render do not need a
        # browser driver at all.
        from playwright.async_api import async_playwright  # noqa: PLC0415

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self._headless)
        except PlaywrightError as exc:
            await self.aclose()
            raise RenderError(f"could not launch browser: {exc}") from exc
        logger.debug("browser.launched", headless=self._headless)
        return self._browser

    async def aclose(self) -> None:
        browser, self._browser = self._browser, None
        pw, self._playwright = self._playwright, None
        try:
            if browser is not None:
                await browser.close()
        except PlaywrightError as exc:
            logger.debug("browser.close_failed", error=str(exc))
        finally:
            if pw is not None:
                await pw.stop()
