"""Tests for the retrying fetcher.

Mocking strategy:
- ``respx`` patches ``httpx`` at the transport layer so no real network calls
  are made.
- The fetcher's ``sleep`` is an ``AsyncMock`` so backoff delays are recorded
  instead of waited for.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from pagedistill.exceptions import TransportError, UpstreamStatusError
from pagedistill.scraper.fetcher import RetryingFetcher, backoff_delay, simple_fetch
from pagedistill.scraper.models import StatusClass

_URL = "https://example.com/listing"


def _sleeps(sleep: AsyncMock) -> list[float]:
    return [c.args[0] for c in sleep.await_args_list]


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
class TestRetryPolicy:
    async def test_recovers_after_two_server_errors(self) -> None:
        """503, 503, 200 → success after exactly 3 attempts."""
        sleep = AsyncMock()
        with respx.mock:
            route = respx.get(_URL).mock(
                side_effect=[
                    httpx.Response(503),
                    httpx.Response(503),
                    httpx.Response(200, text="<p>ok</p>"),
                ]
            )
            async with RetryingFetcher(sleep=sleep) as fetcher:
                outcome = await fetcher.fetch(_URL, max_attempts=3)

        assert outcome.status_class is StatusClass.SUCCESS
        assert outcome.attempts_made == 3
        assert outcome.text == "<p>ok</p>"
        assert route.call_count == 3
        assert _sleeps(sleep) == [1.0, 2.0]

    async def test_never_exceeds_attempt_budget(self) -> None:
        sleep = AsyncMock()
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(500))
            async with RetryingFetcher(sleep=sleep) as fetcher:
                outcome = await fetcher.fetch(_URL, max_attempts=4)

        assert route.call_count == 4
        assert outcome.status_class is StatusClass.SERVER_ERROR
        assert outcome.status_code == 500
        assert outcome.attempts_made == 4
        # No pause after the final attempt.
        assert _sleeps(sleep) == [1.0, 2.0, 4.0]

    async def test_client_error_is_not_retried(self) -> None:
        sleep = AsyncMock()
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(404, text="gone"))
            async with RetryingFetcher(sleep=sleep) as fetcher:
                outcome = await fetcher.fetch(_URL)

        assert route.call_count == 1
        assert outcome.status_class is StatusClass.CLIENT_ERROR
        assert outcome.ok is True
        assert outcome.text == "gone"
        sleep.assert_not_awaited()

    async def test_transport_error_is_retried_then_surfaced(self) -> None:
        sleep = AsyncMock()
        with respx.mock:
            route = respx.get(_URL).mock(side_effect=httpx.ConnectError("refused"))
            async with RetryingFetcher(sleep=sleep) as fetcher:
                outcome = await fetcher.fetch(_URL, max_attempts=2)

        assert route.call_count == 2
        assert outcome.status_class is StatusClass.TRANSPORT_ERROR
        assert outcome.status_code is None
        assert "refused" in (outcome.error or "")
        assert _sleeps(sleep) == [1.0]

    async def test_single_attempt_never_sleeps(self) -> None:
        sleep = AsyncMock()
        with respx.mock:
            respx.get(_URL).mock(return_value=httpx.Response(502))
            async with RetryingFetcher(sleep=sleep) as fetcher:
                await fetcher.fetch(_URL, max_attempts=1)

        sleep.assert_not_awaited()


class TestBackoffDelay:
    def test_doubles_per_attempt(self) -> None:
        assert [backoff_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_cumulative_wait_before_attempt_k(self) -> None:
        k = 3
        assert sum(backoff_delay(i) for i in range(k)) == 2**k - 1


# ---------------------------------------------------------------------------
# fetch_text / simple_fetch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
class TestFetchText:
    async def test_returns_decoded_body(self) -> None:
        with respx.mock:
            respx.get(_URL).mock(return_value=httpx.Response(200, text="<h1>Olá</h1>"))
            text = await simple_fetch(_URL)

        assert text == "<h1>Olá</h1>"

    async def test_server_errors_raise_upstream_status_error(self) -> None:
        with respx.mock:
            respx.get(_URL).mock(return_value=httpx.Response(503))
            async with RetryingFetcher(sleep=AsyncMock(), max_attempts=2) as fetcher:
                with pytest.raises(UpstreamStatusError) as excinfo:
                    await fetcher.fetch_text(_URL)

        assert excinfo.value.status_code == 503
        assert excinfo.value.attempts == 2
        assert excinfo.value.url == _URL

    async def test_transport_failure_raises_transport_error(self) -> None:
        with respx.mock:
            respx.get(_URL).mock(side_effect=httpx.ReadTimeout("slow"))
            async with RetryingFetcher(sleep=AsyncMock(), max_attempts=1) as fetcher:
                with pytest.raises(TransportError):
                    await fetcher.fetch_text(_URL)

    async def test_client_error_body_is_returned(self) -> None:
        with respx.mock:
            respx.get(_URL).mock(return_value=httpx.Response(403, text="denied"))
            async with RetryingFetcher(sleep=AsyncMock()) as fetcher:
                assert await fetcher.fetch_text(_URL) == "denied"

    async def test_sends_browser_like_user_agent(self) -> None:
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(200, text="x"))
            async with RetryingFetcher(user_agent="pagedistill-test/1.0") as fetcher:
                await fetcher.fetch(_URL)

        assert route.calls.last.request.headers["User-Agent"] == "pagedistill-test/1.0"
