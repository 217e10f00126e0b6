"""Tests for link discovery and bounded link expansion.

Mocking strategy:
- ``respx`` serves linked pages for ``render_link``.
- ``RenderSession`` and ``stabilize`` are replaced in the links module so the
  render fallback never launches a browser.
- ``LinkExpander.render_link`` is patched with an ``AsyncMock`` when only the
  traversal is under test.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx

from pagedistill.exceptions import RenderError, TransportError, UpstreamStatusError
from pagedistill.scraper.fetcher import RetryingFetcher
from pagedistill.scraper.links import LinkExpander, collect_links, is_content_link

_BASE = "https://dealer.example.com/listing"

_LONG_BODY = "<p>" + "Toyota Corolla XEi 2.0, automatic, one owner. " * 5 + "</p>"


def _page_with_links(n: int) -> str:
    anchors = "".join(f'<a href="/cars/{i}">Car {i}</a>' for i in range(1, n + 1))
    return f"<html><body>{anchors}</body></html>"


def _expander() -> LinkExpander:
    return LinkExpander(MagicMock(), MagicMock())


class FakeRenderSession:
    instances: list = []

    def __init__(self, browser, resource_fetch, **kwargs) -> None:
        self.browser = browser
        self.resource_fetch = resource_fetch
        self.kwargs = kwargs
        self.load = AsyncMock()
        self.body_html = AsyncMock(return_value="<h2>Rendered listing</h2>")
        self.closed = False
        FakeRenderSession.instances.append(self)

    async def __aenter__(self) -> FakeRenderSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.closed = True


class FailingRenderSession(FakeRenderSession):
    def __init__(self, browser, resource_fetch, **kwargs) -> None:
        super().__init__(browser, resource_fetch, **kwargs)
        self.load = AsyncMock(side_effect=RenderError("navigation failed"))


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class TestIsContentLink:
    @pytest.mark.parametrize(
        "href",
        [
            "",
            "   ",
            "#reviews",
            "javascript:void(0)",
            "mailto:sales@example.com",
            "tel:+5511999999999",
            "data:text/html,hi",
            "/img/photo.JPG",
            "https://cdn.example.com/a.webp?w=300",
            "https://example.com/render?type=image/png",
        ],
    )
    def test_rejected(self, href: str) -> None:
        assert is_content_link(href) is False

    @pytest.mark.parametrize("href", ["/cars/1", "https://example.com/a.html", "details?id=3"])
    def test_accepted(self, href: str) -> None:
        assert is_content_link(href) is True


class TestCollectLinks:
    def test_resolves_relative_links(self) -> None:
        targets = collect_links('<a href="/cars/1">1</a><a href="2">2</a>', _BASE)
        assert [t.url for t in targets] == [
            "https://dealer.example.com/cars/1",
            "https://dealer.example.com/2",
        ]

    def test_deduplicates_in_discovery_order(self) -> None:
        html = '<a href="/b">b</a><a href="/a">a</a><a href="https://dealer.example.com/b">b</a>'
        assert [t.url for t in collect_links(html, _BASE)] == [
            "https://dealer.example.com/b",
            "https://dealer.example.com/a",
        ]

    def test_markdown_links_follow_anchors(self) -> None:
        html = '<a href="/a">a</a><p>See [the specs](/specs) and ![photo](/p.png)</p>'
        targets = collect_links(html, _BASE)
        assert [(t.url, t.source) for t in targets] == [
            ("https://dealer.example.com/a", "anchor"),
            ("https://dealer.example.com/specs", "markdown"),
        ]

    def test_non_http_schemes_dropped(self) -> None:
        assert collect_links('<a href="ftp://example.com/file">f</a>', _BASE) == []

    def test_relative_links_without_base_are_dropped(self) -> None:
        assert collect_links('<a href="/cars/1">1</a>') == []


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
class TestLinkedSections:
    async def test_max_links_bounds_sections_in_discovery_order(self) -> None:
        expander = _expander()
        render = AsyncMock(side_effect=lambda url, timeout: f"content of {url}")
        with patch.object(LinkExpander, "render_link", new=render):
            out = await expander.linked_sections(
                _page_with_links(15), _BASE, max_links=10, per_link_timeout=15.0
            )

        assert out.count("### Linked Content") == 10
        assert render.await_count == 10
        for i in range(1, 11):
            assert f"### Linked Content {i}: https://dealer.example.com/cars/{i}\n" in out
        assert "cars/11" not in out
        positions = [out.index(f"/cars/{i}\n") for i in range(1, 11)]
        assert positions == sorted(positions)

    async def test_failed_link_becomes_placeholder(self) -> None:
        expander = _expander()

        async def render(url: str, timeout: float) -> str:
            if url.endswith("/2"):
                raise TransportError("connection refused", url=url, attempts=3)
            return "ok"

        with patch.object(LinkExpander, "render_link", new=AsyncMock(side_effect=render)):
            out = await expander.linked_sections(
                _page_with_links(3), _BASE, max_links=3, per_link_timeout=1.0
            )

        assert "### Linked Content 2: https://dealer.example.com/cars/2\n\n[Failed to load: connection refused]" in out
        assert out.count("### Linked Content") == 3

    async def test_zero_budget_yields_nothing(self) -> None:
        expander = _expander()
        with patch.object(LinkExpander, "render_link", new=AsyncMock()) as render:
            out = await expander.linked_sections(
                _page_with_links(3), _BASE, max_links=0, per_link_timeout=1.0
            )
        assert out == ""
        render.assert_not_awaited()

    async def test_expand_prefixes_base_markdown(self) -> None:
        expander = _expander()
        with patch.object(LinkExpander, "render_link", new=AsyncMock(return_value="linked")):
            out = await expander.expand(
                '<h1>Listing</h1><a href="/cars/1">Car</a>',
                _BASE,
                max_links=5,
                per_link_timeout=1.0,
            )
        assert out.startswith("# Listing")
        assert out.endswith("### Linked Content 1: https://dealer.example.com/cars/1\n\nlinked")


# ---------------------------------------------------------------------------
# Per-link pipeline
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
class TestRenderLink:
    async def test_long_quick_markdown_skips_render(self) -> None:
        browsers = MagicMock()
        browsers.get = AsyncMock()
        with respx.mock:
            respx.get("https://dealer.example.com/cars/1").mock(
                return_value=httpx.Response(200, text=f"<html><body>{_LONG_BODY}</body></html>")
            )
            async with RetryingFetcher(sleep=AsyncMock()) as fetcher:
                md = await LinkExpander(fetcher, browsers).render_link(
                    "https://dealer.example.com/cars/1", 15.0
                )

        assert "Toyota Corolla XEi" in md
        browsers.get.assert_not_awaited()

    async def test_short_quick_markdown_falls_back_to_render(self) -> None:
        browsers = MagicMock()
        browsers.get = AsyncMock(return_value="browser")
        FakeRenderSession.instances = []
        with respx.mock, patch(
            "pagedistill.scraper.links.RenderSession", FakeRenderSession
        ), patch("pagedistill.scraper.links.stabilize", new=AsyncMock()) as stab:
            respx.get("https://dealer.example.com/spa").mock(
                return_value=httpx.Response(200, text='<html><body><div id="root"></div></body></html>')
            )
            async with RetryingFetcher(sleep=AsyncMock()) as fetcher:
                md = await LinkExpander(fetcher, browsers).render_link(
                    "https://dealer.example.com/spa", 30.0
                )

        assert md == "## Rendered listing"
        session = FakeRenderSession.instances[0]
        assert session.browser == "browser"
        assert session.closed is True
        session.load.assert_awaited_once()
        assert session.load.await_args.kwargs["timeout"] == 15.0
        kwargs = stab.await_args.kwargs
        assert kwargs["ceiling"] == 15.0
        assert kwargs["network_idle"] == 1.0
        assert kwargs["network_ceiling"] == 5.0

    async def test_server_error_raises(self) -> None:
        with respx.mock:
            respx.get("https://dealer.example.com/down").mock(return_value=httpx.Response(503))
            async with RetryingFetcher(sleep=AsyncMock(), max_attempts=2) as fetcher:
                with pytest.raises(UpstreamStatusError) as excinfo:
                    await LinkExpander(fetcher, MagicMock()).render_link(
                        "https://dealer.example.com/down", 5.0
                    )
        assert excinfo.value.status_code == 503

    async def test_client_error_body_is_converted(self) -> None:
        body = f"<html><body><h1>Not found</h1>{_LONG_BODY}</body></html>"
        with respx.mock:
            respx.get("https://dealer.example.com/gone").mock(
                return_value=httpx.Response(404, text=body)
            )
            async with RetryingFetcher(sleep=AsyncMock()) as fetcher:
                md = await LinkExpander(fetcher, MagicMock()).render_link(
                    "https://dealer.example.com/gone", 5.0
                )
        assert md.startswith("# Not found")

    async def test_render_link_loads_post_redirect_url(self) -> None:
        final = "https://www.dealer.example.com/spa/"
        browsers = MagicMock()
        browsers.get = AsyncMock(return_value="browser")
        FakeRenderSession.instances = []
        with respx.mock, patch(
            "pagedistill.scraper.links.RenderSession", FakeRenderSession
        ), patch("pagedistill.scraper.links.stabilize", new=AsyncMock()):
            respx.get("https://dealer.example.com/spa").mock(
                return_value=httpx.Response(302, headers={"Location": final})
            )
            respx.get(final).mock(
                return_value=httpx.Response(200, text='<html><body><div id="root"></div></body></html>')
            )
            async with RetryingFetcher(sleep=AsyncMock()) as fetcher:
                await LinkExpander(fetcher, browsers).render_link(
                    "https://dealer.example.com/spa", 10.0
                )

        assert FakeRenderSession.instances[0].load.await_args.args[0] == final

    async def test_session_closed_when_render_fails(self) -> None:
        browsers = MagicMock()
        browsers.get = AsyncMock(return_value="browser")
        FakeRenderSession.instances = []
        with respx.mock, patch("pagedistill.scraper.links.RenderSession", FailingRenderSession):
            respx.get("https://dealer.example.com/spa").mock(
                return_value=httpx.Response(200, text='<html><body><div id="root"></div></body></html>')
            )
            async with RetryingFetcher(sleep=AsyncMock()) as fetcher:
                out = await LinkExpander(fetcher, browsers).linked_sections(
                    '<a href="/spa">SPA</a>', _BASE, max_links=1, per_link_timeout=5.0
                )

        assert out == (
            "\n\n---\n\n### Linked Content 1: https://dealer.example.com/spa"
            "\n\n[Failed to load: navigation failed]"
        )
        assert FakeRenderSession.instances[0].closed is True
