"""Catalogue query pipeline: filter -> sort -> paginate.

Each stage is a pure function over an immutable sequence of products, so
running the pipeline twice with the same criteria yields identical output.
Sorting relies on Python's stable sort (``reverse=True`` keeps ties in their
prior order too), which is what makes pagination deterministic.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

from catalogue.product.product import Product
from catalogue.query.criteria import FilterCriteria, SortOrder

DEFAULT_PAGE_SIZE = 12


@dataclass(frozen=True)
class PageResult:
    """One page of query results."""

    items: tuple[Product, ...]
    page: int
    page_size: int
    total_results: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_results / self.page_size)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------
def matches(product: Product, criteria: FilterCriteria) -> bool:
    """Conjunction of every active predicate in ``criteria``."""
    if criteria.category and product.category.casefold() != criteria.category.strip().casefold():
        return False
    if product.price < criteria.price_min:
        return False
    if criteria.price_max is not None and product.price > criteria.price_max:
        return False
    if criteria.is_organic and not product.is_organic:
        return False
    if criteria.in_stock and not product.in_stock:
        return False
    if product.rating < criteria.min_rating:
        return False
    if criteria.has_search:
        query = criteria.normalized_query
        if not any(query in text.casefold() for text in product.search_fields):
            return False
    return True


def filter_products(products: Sequence[Product], criteria: FilterCriteria) -> list[Product]:
    return [product for product in products if matches(product, criteria)]


# ---------------------------------------------------------------------------
# Sort
# ---------------------------------------------------------------------------
def _recency_key(product: Product):
    # Numeric ids compare numerically and rank above non-numeric ones
    product_id = str(product.product_id)
    if product_id.isdigit():
        return (1, int(product_id), "")
    return (0, 0, product_id)


def sort_products(products: Sequence[Product], criteria: FilterCriteria) -> list[Product]:
    order = criteria.sort_order

    if order == SortOrder.PRICE_LOW_HIGH:
        return sorted(products, key=lambda p: p.price)
    if order == SortOrder.PRICE_HIGH_LOW:
        return sorted(products, key=lambda p: p.price, reverse=True)
    if order == SortOrder.RATING:
        return sorted(products, key=lambda p: p.rating, reverse=True)
    if order == SortOrder.NEWEST:
        return sorted(products, key=_recency_key, reverse=True)
    if order == SortOrder.POPULAR:
        return sorted(products, key=lambda p: p.popularity, reverse=True)

    # Relevance: rank search hits by rating, otherwise keep catalogue order
    if criteria.has_search:
        return sorted(products, key=lambda p: p.rating, reverse=True)
    return list(products)


# ---------------------------------------------------------------------------
# Paginate
# ---------------------------------------------------------------------------
def paginate(products: Sequence[Product], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> PageResult:
    """Slice ``[(page - 1) * page_size, page * page_size)``.

    Pages below 1 are treated as page 1; pages past the end are empty.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    page = max(1, int(page))
    start = (page - 1) * page_size
    return PageResult(
        items=tuple(products[start : start + page_size]),
        page=page,
        page_size=page_size,
        total_results=len(products),
    )


def run_query(
    products: Sequence[Product],
    criteria: FilterCriteria,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> PageResult:
    """Run the full pipeline over ``products``."""
    return paginate(sort_products(filter_products(products, criteria), criteria), page, page_size)
