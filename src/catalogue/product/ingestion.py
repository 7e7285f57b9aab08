"""Catalogue ingestion: normalize remote product records into Product aggregates.

Remote records are loosely typed. ``farmer`` is sometimes a plain name and
sometimes an object, organic status shows up as ``isOrganic`` or ``organic``,
and review counts as ``reviewCount`` or ``reviews``. Everything is resolved
here, once, and records that cannot be made valid are rejected and reported
instead of leaking into the query pipeline.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from protean.exceptions import ValidationError

from catalogue.domain import logger
from catalogue.product.product import Farmer, Product


@dataclass(frozen=True)
class RejectedRecord:
    """A record that failed normalization, with the reasons."""

    index: int
    record_id: str | None
    errors: dict


@dataclass(frozen=True)
class IngestionReport:
    products: tuple[Product, ...] = ()
    rejected: tuple[RejectedRecord, ...] = field(default_factory=tuple)

    @property
    def accepted_count(self) -> int:
        return len(self.products)


def _first_present(record: Mapping, *keys, default=None):
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return default


def _record_id(record) -> str | None:
    if not isinstance(record, Mapping):
        return None
    value = _first_present(record, "id", "productId")
    return str(value) if value is not None else None


def normalize_farmer(value, location=None) -> Farmer:
    """Build a Farmer from either a bare name or a farmer object."""
    if isinstance(value, str):
        return Farmer(name=value.strip(), location=location)
    if isinstance(value, Mapping):
        return Farmer(
            name=value.get("name"),
            verified=bool(value.get("verified", False)),
            location=value.get("location") or location,
        )
    raise ValidationError({"farmer": ["Farmer must be a name or an object with a name"]})


def _normalize_images(record: Mapping) -> list[str]:
    images = record.get("images")
    if images is None:
        image = record.get("image")
        return [image] if image else []
    if not isinstance(images, list | tuple):
        raise ValidationError({"images": ["Images must be a list of URLs"]})
    return [str(url) for url in images if url]


_TRUE_WORDS = {"true", "yes", "1"}
_FALSE_WORDS = {"false", "no", "0", ""}


def _flag(value, name: str) -> bool:
    """Read a boolean that may arrive as a bool, 0/1 or a word like "false"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().casefold()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValidationError({name: [f"Expected true or false, got {value!r}"]})


def _stock_count(value) -> float:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValidationError({"stockCount": [f"Stock count must be a number, got {value!r}"]})


def _normalize_in_stock(record: Mapping) -> bool:
    if record.get("inStock") is not None:
        return _flag(record["inStock"], "inStock")
    if record.get("stockCount") is not None:
        return _stock_count(record["stockCount"]) > 0
    return True


def normalize_record(record) -> Product:
    """Normalize one raw record into a Product, raising ValidationError if it is malformed."""
    if not isinstance(record, Mapping):
        raise ValidationError({"record": ["Product record must be an object"]})

    product_id = _record_id(record)
    if not product_id:
        raise ValidationError({"id": ["Product id is required"]})

    return Product(
        product_id=product_id,
        name=record.get("name"),
        description=record.get("description"),
        price=record.get("price"),
        original_price=record.get("originalPrice"),
        category=record.get("category"),
        farmer=normalize_farmer(record.get("farmer"), location=record.get("location")),
        rating=_first_present(record, "rating", default=0.0),
        review_count=_first_present(record, "reviewCount", "reviews", default=0),
        in_stock=_normalize_in_stock(record),
        is_organic=_flag(_first_present(record, "isOrganic", "organic", default=False), "isOrganic"),
        unit=record.get("unit") or "each",
        images=json.dumps(_normalize_images(record)),
    )


def ingest_products(records: Iterable) -> IngestionReport:
    """Normalize a batch of records, keeping catalogue order and rejecting duplicates."""
    products: list[Product] = []
    rejected: list[RejectedRecord] = []
    seen: set[str] = set()

    for index, record in enumerate(records):
        try:
            product = normalize_record(record)
            if product.product_id in seen:
                raise ValidationError({"id": [f"Duplicate product id {product.product_id}"]})
        except ValidationError as exc:
            rejected.append(RejectedRecord(index=index, record_id=_record_id(record), errors=exc.messages))
            logger.warning(
                "catalogue.record_rejected",
                index=index,
                record_id=_record_id(record),
                errors=exc.messages,
            )
            continue

        seen.add(product.product_id)
        products.append(product)

    logger.info("catalogue.ingested", accepted=len(products), rejected=len(rejected))
    return IngestionReport(products=tuple(products), rejected=tuple(rejected))
