"""CatalogueBrowser — per-view filter, search and page state.

One browser is created when a catalogue view mounts and discarded when the
user navigates away; its criteria are never persisted. Any change to the
filters, search text or sort order sends the user back to page 1.
"""

from collections.abc import Iterable, Mapping

from catalogue.domain import logger
from catalogue.product.product import Product
from catalogue.query.criteria import FilterCriteria
from catalogue.query.pipeline import (
    DEFAULT_PAGE_SIZE,
    PageResult,
    filter_products,
    paginate,
    sort_products,
)


class CatalogueBrowser:
    def __init__(self, products: Iterable[Product] = (), page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self._products: tuple[Product, ...] = tuple(products)
        self._criteria = FilterCriteria.build()
        self._page = 1
        self._matching: list[Product] | None = None

    # -------------------------------------------------------------------
    # Catalogue
    # -------------------------------------------------------------------
    def load(self, products: Iterable[Product]) -> None:
        """Replace the product collection, keeping the current criteria."""
        self._products = tuple(products)
        self._invalidate()

    @property
    def products(self) -> tuple[Product, ...]:
        return self._products

    def get_product(self, product_id) -> Product | None:
        return next((p for p in self._products if str(p.product_id) == str(product_id)), None)

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    def set_filter(self, partial: Mapping | None = None, **values) -> PageResult:
        self._criteria = self._criteria.merge(partial, **values)
        self._invalidate()
        logger.debug("catalogue.filter_changed", criteria=self._criteria.to_dict())
        return self.results

    def set_search_query(self, text: str | None) -> PageResult:
        return self.set_filter(search_query=text or "")

    def set_sort(self, sort_by) -> PageResult:
        return self.set_filter(sort_by=sort_by)

    def clear_filters(self) -> PageResult:
        self._criteria = FilterCriteria.build()
        self._invalidate()
        return self.results

    def set_page(self, page: int) -> PageResult:
        """Move to ``page``, clamped into the available page range."""
        last_page = max(1, paginate(self.matching, 1, self.page_size).total_pages)
        self._page = min(max(1, int(page)), last_page)
        return self.results

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def page(self) -> int:
        return self._page

    @property
    def matching(self) -> list[Product]:
        """Every product passing the filters, in sorted order."""
        if self._matching is None:
            filtered = filter_products(self._products, self._criteria)
            self._matching = sort_products(filtered, self._criteria)
        return self._matching

    @property
    def results(self) -> PageResult:
        return paginate(self.matching, self._page, self.page_size)

    def _invalidate(self) -> None:
        self._matching = None
        self._page = 1
