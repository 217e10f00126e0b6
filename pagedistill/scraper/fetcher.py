"""Retrying HTTP fetcher.

Every network read in the pipeline goes through :class:`RetryingFetcher`: the
first probe of a page, the document handed to the browser, each sub-resource
the browser asks for, and every linked page.

Retry policy
------------
* Status in ``[200, 500)`` is accepted.  4xx responses are passed through so
  the caller can inspect them; they are not errors.
* Status ``>= 500`` and transport failures are retried.
* Attempt *i* (0-indexed) is followed by a ``2 ** i`` second pause before the
  next one: 1 s, 2 s, 4 s …  No jitter.
* After the last attempt the outcome is surfaced as-is; call
  :meth:`~pagedistill.scraper.models.FetchOutcome.raise_for_failure` to turn
  it into an exception.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

import httpx
import structlog

from pagedistill.config import settings
from pagedistill.scraper.models import FetchOutcome, StatusClass

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

_ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def default_headers(user_agent: str | None = None) -> Dict[str, str]:
    return {
        "User-Agent": user_agent or settings.user_agent,
        "Accept": _ACCEPT_HEADER,
    }


def _classify(status_code: int) -> StatusClass:
    if status_code >= 500:
        return StatusClass.SERVER_ERROR
    if status_code >= 400:
        return StatusClass.CLIENT_ERROR
    if status_code >= 200:
        return StatusClass.SUCCESS
    # Informational codes should never be final; treat them as retryable.
    return StatusClass.SERVER_ERROR


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the 0-indexed *attempt* failed."""
    return float(2**attempt)


class RetryingFetcher:
    """HTTP GET with bounded retries and exponential backoff.

    Args:
        client: An open :class:`httpx.AsyncClient`.  When omitted the fetcher
            builds its own and closes it in :meth:`aclose`.
        max_attempts: Default attempt budget for :meth:`fetch`.
        timeout: Per-request timeout in seconds (used for the owned client).
        insecure: Disable TLS certificate validation (owned client only).
        user_agent: Override the default browser-like User-Agent.
        sleep: Awaitable used between attempts; injectable for tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        max_attempts: int | None = None,
        timeout: float | None = None,
        insecure: bool | None = None,
        user_agent: str | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=default_headers(user_agent),
            timeout=timeout if timeout is not None else settings.request_timeout,
            follow_redirects=True,
            verify=not (settings.insecure if insecure is None else insecure),
        )
        self._max_attempts = max_attempts or settings.max_fetch_attempts
        self._sleep = sleep

    async def __aenter__(self) -> RetryingFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(
        self,
        url: str,
        *,
        max_attempts: int | None = None,
        headers: Dict[str, str] | None = None,
    ) -> FetchOutcome:
        """GET *url*, retrying 5xx responses and transport failures.

        Args:
            url: Absolute URL to fetch.
            max_attempts: Attempt budget; defaults to the fetcher's.
            headers: Extra request headers.

        Returns:
            The :class:`FetchOutcome` of the last attempt made.  Never raises
            for HTTP or transport failures.
        """
        budget = max(1, max_attempts or self._max_attempts)
        outcome: FetchOutcome | None = None

        for attempt in range(budget):
            try:
                response = await self._client.get(url, headers=headers)
            except httpx.RequestError as exc:
                outcome = FetchOutcome(
                    url=url,
                    status_class=StatusClass.TRANSPORT_ERROR,
                    body=b"",
                    attempts_made=attempt + 1,
                    error=f"{type(exc).__name__}: {exc}",
                )
            else:
                status_class = _classify(response.status_code)
                outcome = FetchOutcome(
                    url=url,
                    status_class=status_class,
                    body=response.content,
                    attempts_made=attempt + 1,
                    status_code=response.status_code,
                    final_url=str(response.url),
                    headers={k: str(v) for k, v in response.headers.items()},
                    encoding=response.encoding or "utf-8",
                )
                if outcome.ok:
                    return outcome

            if attempt == budget - 1:
                break

            delay = backoff_delay(attempt)
            logger.debug(
                "fetch.retry",
                url=url,
                attempt=attempt + 1,
                status=outcome.status_code,
                error=outcome.error,
                delay=delay,
            )
            await self._sleep(delay)

        assert outcome is not None
        logger.warning(
            "fetch.exhausted",
            url=url,
            attempts=outcome.attempts_made,
            status=outcome.status_code,
            error=outcome.error,
        )
        return outcome

    async def fetch_text(self, url: str) -> str:
        """Fetch *url* and return its decoded body.

        Raises:
            TransportError: Every attempt failed at the connection level.
            UpstreamStatusError: Every attempt returned a 5xx status.
        """
        outcome = await self.fetch(url)
        outcome.raise_for_failure()
        return outcome.text


async def simple_fetch(
    url: str,
    *,
    timeout: float | None = None,
    insecure: bool | None = None,
) -> str:
    """One-shot convenience wrapper around :meth:`RetryingFetcher.fetch_text`."""
    async with RetryingFetcher(timeout=timeout, insecure=insecure) as fetcher:
        return await fetcher.fetch_text(url)
