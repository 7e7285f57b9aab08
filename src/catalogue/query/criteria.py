"""Filter criteria for the catalogue query pipeline."""

from collections.abc import Mapping
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, String

from catalogue.domain import catalogue

MAX_RATING = 5.0


class SortOrder(Enum):
    RELEVANCE = "relevance"
    PRICE_LOW_HIGH = "price_low_high"
    PRICE_HIGH_LOW = "price_high_low"
    RATING = "rating"
    NEWEST = "newest"
    POPULAR = "popular"


_FIELD_NAMES = (
    "category",
    "price_min",
    "price_max",
    "is_organic",
    "in_stock",
    "min_rating",
    "search_query",
    "sort_by",
)

# camelCase keys as sent by UI components
_ALIASES = {
    "priceMin": "price_min",
    "priceMax": "price_max",
    "isOrganic": "is_organic",
    "inStock": "in_stock",
    "minRating": "min_rating",
    "rating": "min_rating",
    "searchQuery": "search_query",
    "sortBy": "sort_by",
}


@catalogue.value_object
class FilterCriteria:
    """Immutable filter/sort selection for one catalogue view.

    Use ``FilterCriteria.build()`` or ``merge()`` rather than the constructor:
    they normalize out-of-range input (inverted price range, negative prices,
    ratings outside 0-5) instead of rejecting it.
    """

    category: String(max_length=100, default="")
    price_min: Float(default=0.0, min_value=0.0)
    price_max: Float(min_value=0.0)  # None means no upper bound
    is_organic: Boolean(default=False)
    in_stock: Boolean(default=False)
    min_rating: Float(default=0.0, min_value=0.0, max_value=MAX_RATING)
    search_query: String(max_length=200, default="")
    sort_by: String(choices=SortOrder, default=SortOrder.RELEVANCE.value)

    @invariant.post
    def price_range_must_be_ordered(self):
        if self.price_max is not None and self.price_min > self.price_max:
            raise ValidationError({"price_min": ["Minimum price cannot exceed maximum price"]})

    @classmethod
    def build(cls, **values) -> "FilterCriteria":
        return cls(**_normalize(values))

    def merge(self, partial: Mapping | None = None, **values) -> "FilterCriteria":
        """Return new criteria with ``partial`` applied over the current values."""
        updates = {**(partial or {}), **values}
        merged = {name: getattr(self, name) for name in _FIELD_NAMES}
        for key, value in updates.items():
            name = _ALIASES.get(key, key)
            if name not in _FIELD_NAMES:
                raise ValidationError({key: ["Unknown filter"]})
            merged[name] = value
        return self.__class__.build(**merged)

    @property
    def sort_order(self) -> SortOrder:
        return SortOrder(self.sort_by)

    @property
    def normalized_query(self) -> str:
        return (self.search_query or "").strip().casefold()

    @property
    def has_search(self) -> bool:
        return bool(self.normalized_query)


def _clamp(value, low, high=None):
    value = max(low, float(value))
    return min(value, high) if high is not None else value


def _normalize(values: dict) -> dict:
    values = {_ALIASES.get(key, key): value for key, value in values.items()}

    price_min = values.get("price_min")
    price_max = values.get("price_max")
    price_min = 0.0 if price_min is None else _clamp(price_min, 0.0)
    price_max = None if price_max is None else _clamp(price_max, 0.0)
    if price_max is not None and price_min > price_max:
        price_min, price_max = price_max, price_min
    values["price_min"] = price_min
    values["price_max"] = price_max

    if values.get("min_rating") is not None:
        values["min_rating"] = _clamp(values["min_rating"], 0.0, MAX_RATING)

    if isinstance(values.get("sort_by"), SortOrder):
        values["sort_by"] = values["sort_by"].value

    for name in ("category", "search_query"):
        if values.get(name) is None:
            values.pop(name, None)

    return values
