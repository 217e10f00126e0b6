"""Tests for HTML → markdown normalization."""

from __future__ import annotations

from pagedistill.convert.markdown import to_markdown

_PAGE = """\
<html>
<head><title>Cars</title><style>.x{color:red}</style></head>
<body>
  <nav><a href="/">Home</a><a href="/about">About</a></nav>
  <span class="sr-only">Skip to content</span>
  <main>
    <h1>Used cars</h1>
    <p>Best <strong>Toyota</strong> deals <em>this week</em>.</p>
    <ul>
      <li><a href="/cars/1">Corolla</a></li>
      <li><a href="https://other.example.com/yaris">Yaris</a></li>
    </ul>
    <img src="/img/corolla.jpg" alt="Corolla">
    <script>console.log("tracking");</script>
  </main>
  <footer>© 2024 Dealer</footer>
</body>
</html>
"""


class TestStructure:
    def test_atx_headings(self) -> None:
        assert "# Used cars" in to_markdown(_PAGE)

    def test_non_content_tags_removed(self) -> None:
        md = to_markdown(_PAGE)
        assert "tracking" not in md
        assert "color:red" not in md

    def test_nav_and_footer_removed(self) -> None:
        md = to_markdown(_PAGE)
        assert "Home" not in md
        assert "Dealer" not in md

    def test_utility_classes_removed(self) -> None:
        assert "Skip to content" not in to_markdown(_PAGE)

    def test_list_items_use_dashes(self) -> None:
        md = to_markdown("<ul><li>One</li><li>Two</li></ul>")
        assert "- One" in md
        assert "- Two" in md


class TestInlineFlattening:
    def test_emphasis_becomes_plain_text(self) -> None:
        md = to_markdown(_PAGE)
        assert "*" not in md
        assert "Toyota" in md
        assert "this week" in md

    def test_empty_span_disappears(self) -> None:
        assert to_markdown("<p>a<span> </span>b</p>") == "ab"

    def test_underscores_not_escaped(self) -> None:
        assert to_markdown("<p>snake_case_name</p>") == "snake_case_name"


class TestLinkResolution:
    def test_relative_links_resolved_against_base_url(self) -> None:
        md = to_markdown(_PAGE, base_url="https://dealer.example.com/listing")
        assert "[Corolla](https://dealer.example.com/cars/1)" in md
        assert "[Yaris](https://other.example.com/yaris)" in md
        assert "https://dealer.example.com/img/corolla.jpg" in md

    def test_links_untouched_without_base_url(self) -> None:
        assert "[Corolla](/cars/1)" in to_markdown(_PAGE)

    def test_non_navigational_hrefs_untouched(self) -> None:
        md = to_markdown('<a href="mailto:sales@example.com">Mail</a>', base_url="https://x.com/")
        assert "mailto:sales@example.com" in md


class TestCleanup:
    def test_state_blobs_and_globals_removed(self) -> None:
        html = (
            '<div><p>{"props": {"pageProps": {}}, "page": "/"}</p>'
            "<p>window.__STATE__ = {a: 1}</p><p>Hello</p></div>"
        )
        assert to_markdown(html) == "Hello"

    def test_no_triple_newlines(self) -> None:
        assert "\n\n\n" not in to_markdown(_PAGE)
