"""Tests for the filter -> sort -> paginate pipeline."""

import json

import pytest
from catalogue.product.product import Farmer, Product
from catalogue.query.criteria import FilterCriteria
from catalogue.query.pipeline import filter_products, paginate, run_query, sort_products


def _ids(products):
    return [p.product_id for p in products]


def _make(product_id, price=10.0, rating=4.0, review_count=10, category="Vegetables"):
    return Product(
        product_id=str(product_id),
        name=f"Product {product_id}",
        price=price,
        category=category,
        farmer=Farmer(name="Test Farm"),
        rating=rating,
        review_count=review_count,
        images=json.dumps([]),
    )


def _filter(products, **criteria):
    return _ids(filter_products(products, FilterCriteria.build(**criteria)))


def _sort(products, **criteria):
    return _ids(sort_products(products, FilterCriteria.build(**criteria)))


class TestFilter:
    def test_no_criteria_keeps_everything(self, products):
        assert _filter(products) == ["1", "2", "3", "4"]

    def test_category_is_case_insensitive(self, products):
        assert _filter(products, category="vegetables") == ["1", "2"]

    def test_price_range_is_inclusive(self, products):
        assert _filter(products, price_min=45, price_max=60) == ["1", "2"]

    def test_price_range_without_upper_bound(self, products):
        assert _filter(products, price_min=65) == ["3", "4"]

    def test_inverted_price_range_still_filters(self, products):
        assert _filter(products, price_min=100, price_max=50) == ["2", "4"]

    def test_organic_gate(self, products):
        assert _filter(products, is_organic=True) == ["1", "2"]

    def test_in_stock_gate(self, products):
        assert _filter(products, in_stock=True) == ["1", "2", "3"]

    def test_min_rating(self, products):
        assert _filter(products, min_rating=4.5) == ["1", "3"]

    def test_search_matches_name(self, products):
        assert _filter(products, search_query="MILK") == ["4"]

    def test_search_matches_description(self, products):
        assert _filter(products, search_query="cream") == ["4"]

    def test_search_matches_category(self, products):
        assert _filter(products, search_query="fruits") == ["3"]

    def test_search_matches_farmer_name(self, products):
        assert _filter(products, search_query="valley") == ["1"]

    def test_predicates_are_a_conjunction(self, products):
        assert _filter(products, category="Vegetables", min_rating=4.3, is_organic=True) == ["1"]

    def test_nothing_matches(self, products):
        assert _filter(products, search_query="durian") == []


class TestSort:
    def test_relevance_without_search_keeps_order(self, products):
        assert _sort(products) == ["1", "2", "3", "4"]

    def test_relevance_with_search_ranks_by_rating(self, products):
        assert _sort(products, search_query="a") == ["3", "1", "2", "4"]

    def test_price_low_high(self, products):
        assert _sort(products, sort_by="price_low_high") == ["1", "2", "4", "3"]

    def test_price_high_low(self, products):
        assert _sort(products, sort_by="price_high_low") == ["3", "4", "2", "1"]

    def test_rating(self, products):
        assert _sort(products, sort_by="rating") == ["3", "1", "2", "4"]

    def test_newest_by_id_descending(self, products):
        assert _sort(products, sort_by="newest") == ["4", "3", "2", "1"]

    def test_newest_compares_numeric_ids_numerically(self):
        products = [_make(9), _make(10), _make(2)]
        assert _sort(products, sort_by="newest") == ["10", "9", "2"]

    def test_popular_by_rating_times_reviews(self, products):
        assert _sort(products, sort_by="popular") == ["3", "1", "2", "4"]

    @pytest.mark.parametrize("sort_by", ["price_low_high", "price_high_low", "rating", "popular"])
    def test_ties_keep_prior_order(self, sort_by):
        products = [_make(product_id) for product_id in ("c", "a", "b")]
        assert _sort(products, sort_by=sort_by) == ["c", "a", "b"]

    def test_sorting_does_not_mutate_input(self, products):
        before = _ids(products)
        sort_products(products, FilterCriteria.build(sort_by="price_high_low"))
        assert _ids(products) == before


class TestPaginate:
    def test_slices_pages(self):
        products = [_make(i) for i in range(1, 31)]
        first = paginate(products, 1, 12)
        last = paginate(products, 3, 12)

        assert _ids(first.items) == [str(i) for i in range(1, 13)]
        assert _ids(last.items) == [str(i) for i in range(25, 31)]
        assert first.total_results == 30
        assert first.total_pages == 3
        assert first.has_previous is False and first.has_next is True
        assert last.has_previous is True and last.has_next is False

    def test_page_past_the_end_is_empty(self):
        result = paginate([_make(1)], 5, 12)
        assert result.items == ()
        assert result.total_pages == 1

    def test_page_below_one_is_first_page(self):
        products = [_make(i) for i in range(1, 4)]
        assert paginate(products, 0, 2).page == 1

    def test_empty_collection(self):
        result = paginate([], 1, 12)
        assert result.items == ()
        assert result.total_pages == 0
        assert result.has_next is False

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValueError):
            paginate([], 1, 0)


class TestPipelineProperties:
    def test_running_twice_gives_identical_output(self, products):
        criteria = FilterCriteria.build(search_query="a", sort_by="popular")
        assert run_query(products, criteria) == run_query(products, criteria)

    def test_pages_reconstruct_the_sorted_filtered_list(self):
        products = [_make(i, price=float(i % 7 + 1), rating=float(i % 5)) for i in range(1, 41)]
        criteria = FilterCriteria.build(min_rating=1, sort_by="price_low_high")
        expected = _ids(sort_products(filter_products(products, criteria), criteria))

        first = run_query(products, criteria, 1, 7)
        collected = []
        for page in range(1, first.total_pages + 1):
            collected.extend(_ids(run_query(products, criteria, page, 7).items))

        assert collected == expected
        assert len(collected) == len(set(collected))
        assert len(collected) == first.total_results
