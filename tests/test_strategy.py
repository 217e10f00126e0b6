"""Tests for the acquisition strategy selector."""

from __future__ import annotations

from pagedistill.scraper.strategy import count_cards, needs_rendering


def _listing(cards: int, css_class: str = "product-card") -> str:
    items = "".join(
        f'<div class="{css_class}"><h2>Item {i}</h2></div>' for i in range(cards)
    )
    return f"<html><body><main>{items}</main></body></html>"


class TestCardSignal:
    def test_three_cards_need_no_rendering(self) -> None:
        assert needs_rendering(_listing(3)) is False

    def test_single_card_needs_rendering(self) -> None:
        assert needs_rendering(_listing(1)) is True

    def test_no_cards_needs_rendering(self) -> None:
        assert needs_rendering("<html><body><p>Hello</p></body></html>") is True

    def test_card_class_inside_class_list(self) -> None:
        html = _listing(2, css_class="card vehicle-card featured")
        assert count_cards(html) == 2
        assert needs_rendering(html) is False

    def test_single_quoted_class_attribute(self) -> None:
        html = "<div class='item-card'></div><div class='col-md-4 x'></div>"
        assert count_cards(html) == 2


class TestLoadingSignals:
    def test_placeholder_image_domain(self) -> None:
        html = _listing(5).replace(
            "<main>", '<main><img src="https://via.placeholder.com/150">'
        )
        assert needs_rendering(html) is True

    def test_skeleton_marker(self) -> None:
        html = _listing(5).replace("<main>", '<main><div class="skeleton-row"></div>')
        assert needs_rendering(html) is True

    def test_marker_match_is_case_insensitive(self) -> None:
        html = _listing(5).replace("<main>", "<main><p>PlaceHolder</p>")
        assert needs_rendering(html) is True


class TestPurity:
    def test_same_input_same_answer(self) -> None:
        html = _listing(2)
        assert [needs_rendering(html) for _ in range(3)] == [False, False, False]
