"""Render stabilisation: wait until a scripted page stops changing.

The waits here know nothing about the browser.  They work against two small
pieces of session state:

* :class:`ChangeFeed`: a stream of "the document changed" timestamps.  The
  Playwright session feeds it from a page-side ``MutationObserver``; tests
  feed it by hand.
* :class:`RequestCounter`: the number of in-flight network requests.

Every wait is best-effort and bounded: hitting a ceiling is not an error, it
just means "stop waiting and use what you have".
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Protocol

import structlog

from pagedistill.exceptions import RenderError

logger = structlog.get_logger(__name__)

#: Elements commonly used to lazy-load more listing items.
LOAD_MORE_SELECTOR = ".load-more, [data-load-more], .btn-load-more"

#: Pause between the synthetic scroll and the "load more" click.
CLICK_DELAY = 0.3

NETWORK_POLL_INTERVAL = 0.2


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


class ChangeFeed:
    """A stream of document-change timestamps (monotonic seconds)."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[float] = asyncio.Queue()
        self.count = 0
        self.last_change: float | None = None

    def push(self, timestamp: float | None = None) -> None:
        ts = time.monotonic() if timestamp is None else timestamp
        self.count += 1
        self.last_change = ts
        self._queue.put_nowait(ts)

    async def next_change(self) -> float:
        return await self._queue.get()

    def drain(self) -> int:
        """Discard buffered changes; return how many were dropped."""
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        return dropped


class RequestCounter:
    """In-flight request count for one render session."""

    def __init__(self) -> None:
        self.pending = 0
        self.total = 0

    def started(self, *_: object) -> None:
        self.pending += 1
        self.total += 1

    def finished(self, *_: object) -> None:
        self.pending = max(0, self.pending - 1)


class StabilizableSession(Protocol):
    changes: ChangeFeed
    network: RequestCounter

    async def scroll_to_bottom(self) -> None: ...

    async def click_first(self, selector: str) -> bool: ...


@dataclass(frozen=True)
class StabilityReport:
    quiescent: bool
    network_idle: bool
    mutations: int
    requests: int


# ---------------------------------------------------------------------------
# Waits
# ---------------------------------------------------------------------------


async def wait_for_quiescence(feed: ChangeFeed, *, quiet: float, ceiling: float) -> bool:
    """Wait until *feed* has been silent for *quiet* seconds.

    Changes buffered before the call are considered past and dropped, so the
    page always gets at least one full quiet window.

    Args:
        feed: The change stream to observe.
        quiet: Silence required, in seconds.
        ceiling: Overall bound, in seconds.  Pages that mutate forever resolve
            here.

    Returns:
        ``True`` if the quiet window was reached, ``False`` on the ceiling.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + ceiling
    feed.drain()

    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            return False
        window = min(quiet, remaining)
        try:
            await asyncio.wait_for(feed.next_change(), timeout=window)
        except asyncio.TimeoutError:
            # Silent for the whole window: settled, unless the window was
            # clipped by the ceiling.
            return window >= quiet


async def wait_for_network_idle(
    counter: RequestCounter,
    *,
    idle: float,
    ceiling: float,
    poll: float = NETWORK_POLL_INTERVAL,
) -> bool:
    """Poll *counter* until it has read zero continuously for *idle* seconds.

    Returns:
        ``True`` once idle, ``False`` if *ceiling* seconds elapsed first.
    """
    loop = asyncio.get_running_loop()
    start = loop.time()
    zero_since: float | None = start if counter.pending == 0 else None

    while loop.time() - start < ceiling:
        now = loop.time()
        if counter.pending == 0:
            if zero_since is None:
                zero_since = now
            if now - zero_since >= idle:
                return True
        else:
            zero_since = None
        await asyncio.sleep(poll)
    return False


# ---------------------------------------------------------------------------
# Interaction
# ---------------------------------------------------------------------------


async def simulate_interaction(
    session: StabilizableSession,
    *,
    click_delay: float = CLICK_DELAY,
    selector: str = LOAD_MORE_SELECTOR,
) -> bool:
    """Scroll to the bottom, then try one "load more" click.

    Absence of a button and any failure along the way are ignored.

    Returns:
        ``True`` if a button was clicked.
    """
    try:
        await session.scroll_to_bottom()
    except RenderError as exc:
        logger.debug("stabilize.scroll_failed", error=str(exc))

    await asyncio.sleep(click_delay)

    try:
        clicked = await session.click_first(selector)
    except RenderError as exc:
        logger.debug("stabilize.click_failed", error=str(exc))
        return False
    if clicked:
        logger.debug("stabilize.load_more_clicked", selector=selector)
    return clicked


async def stabilize(
    session: StabilizableSession,
    *,
    ceiling: float,
    quiet: float = 0.5,
    network_idle: float = 2.0,
    network_ceiling: float = 30.0,
) -> StabilityReport:
    """Interact with a loaded page and wait for DOM and network to settle.

    Args:
        session: A session whose document has fired its load event.
        ceiling: Upper bound for the DOM quiescence wait (the caller's
            timeout).
        quiet: Mutation-free window that counts as quiescent.
        network_idle: Zero-in-flight window that counts as idle.
        network_ceiling: Upper bound for the network wait.
    """
    await simulate_interaction(session)
    quiescent = await wait_for_quiescence(session.changes, quiet=quiet, ceiling=ceiling)
    idle = await wait_for_network_idle(
        session.network, idle=network_idle, ceiling=network_ceiling
    )
    report = StabilityReport(
        quiescent=quiescent,
        network_idle=idle,
        mutations=session.changes.count,
        requests=session.network.total,
    )
    logger.debug(
        "stabilize.done",
        quiescent=report.quiescent,
        network_idle=report.network_idle,
        mutations=report.mutations,
        requests=report.requests,
    )
    return report
