"""Tests for CatalogueBrowser, the per-view filter and page state."""

import json

import pytest
from catalogue.product.product import Farmer, Product
from catalogue.query.browser import CatalogueBrowser
from protean.exceptions import ValidationError


def _ids(page):
    return [p.product_id for p in page.items]


def _many(count):
    return [
        Product(
            product_id=str(i),
            name=f"Produce {i}",
            price=float(i),
            category="Vegetables" if i % 2 else "Fruits",
            farmer=Farmer(name="Test Farm"),
            rating=4.0,
            images=json.dumps([]),
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def browser():
    return CatalogueBrowser(_many(30), page_size=12)


class TestInitialState:
    def test_starts_on_first_page_with_defaults(self, browser):
        assert browser.page == 1
        assert browser.criteria.category == ""
        assert browser.results.total_results == 30
        assert len(browser.results.items) == 12

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValueError):
            CatalogueBrowser([], page_size=0)


class TestPaging:
    def test_set_page(self, browser):
        result = browser.set_page(2)
        assert result.page == 2
        assert _ids(result)[0] == "13"

    def test_set_page_clamps_to_last_page(self, browser):
        assert browser.set_page(99).page == 3

    def test_set_page_clamps_to_first_page(self, browser):
        assert browser.set_page(-4).page == 1

    def test_set_page_on_empty_results_stays_on_first_page(self, browser):
        browser.set_search_query("durian")
        assert browser.set_page(3).page == 1


class TestFilterChangesResetPage:
    def test_set_filter_resets_page(self, browser):
        browser.set_page(3)
        result = browser.set_filter({"category": "Fruits"})
        assert result.page == 1
        assert result.total_results == 15

    def test_set_search_query_resets_page(self, browser):
        browser.set_page(2)
        result = browser.set_search_query("Produce 1")
        assert result.page == 1
        # Produce 1, 10-19
        assert result.total_results == 11

    def test_set_sort_resets_page(self, browser):
        browser.set_page(2)
        result = browser.set_sort("price_high_low")
        assert result.page == 1
        assert _ids(result)[0] == "30"

    def test_filters_accumulate(self, browser):
        browser.set_filter(category="Vegetables")
        result = browser.set_filter(priceMax=10)
        assert _ids(result) == ["1", "3", "5", "7", "9"]

    def test_clear_filters(self, browser):
        browser.set_filter(category="Fruits", sort_by="newest")
        browser.set_page(2)
        result = browser.clear_filters()
        assert result.page == 1
        assert result.total_results == 30
        assert browser.criteria.sort_by == "relevance"

    def test_invalid_filter_leaves_state_untouched(self, browser):
        browser.set_filter(category="Fruits")
        browser.set_page(2)
        with pytest.raises(ValidationError):
            browser.set_filter(colour="red")
        assert browser.criteria.category == "Fruits"
        assert browser.page == 2


class TestCatalogue:
    def test_get_product(self, browser):
        assert browser.get_product(7).name == "Produce 7"
        assert browser.get_product("404") is None

    def test_load_replaces_products_and_keeps_criteria(self, browser):
        browser.set_filter(category="Fruits")
        browser.load(_many(4))
        assert browser.criteria.category == "Fruits"
        assert _ids(browser.results) == ["2", "4"]
