"""Product aggregate: a strict, normalized catalogue record.

The storefront only reads products. Records are normalized once at the
ingestion boundary (see ``catalogue.product.ingestion``) so that the query
pipeline and the cart never branch on record shape.
"""

import json

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    Float,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from catalogue.domain import catalogue


@catalogue.value_object(part_of="Product")
class Farmer:
    """The grower a product is sourced from."""

    name: String(required=True, max_length=255)
    verified: Boolean(default=False)
    location: String(max_length=255)


@catalogue.aggregate
class Product:
    """Product aggregate root."""

    product_id: Identifier(identifier=True, required=True)
    name: String(required=True, max_length=255)
    description: Text()
    price: Float(required=True, min_value=0.01)
    original_price: Float(min_value=0.01)
    category: String(required=True, max_length=100)
    farmer: ValueObject(Farmer, required=True)
    rating: Float(default=0.0, min_value=0.0, max_value=5.0)
    review_count: Integer(default=0, min_value=0)
    in_stock: Boolean(default=True)
    is_organic: Boolean(default=False)
    unit: String(max_length=50, default="each")
    images: Text()  # JSON array of image URLs, primary image first

    @invariant.post
    def original_price_must_exceed_price(self):
        if self.original_price is None:
            return
        if self.original_price <= self.price:
            raise ValidationError(
                {
                    "original_price": [
                        f"Original price ({self.original_price}) must be greater than price ({self.price})"
                    ]
                }
            )

    @invariant.post
    def images_must_be_a_json_list(self):
        if not self.images:
            return
        try:
            urls = json.loads(self.images)
        except (json.JSONDecodeError, TypeError):
            raise ValidationError({"images": ["Images must be valid JSON"]}) from None
        if not isinstance(urls, list) or not all(isinstance(url, str) for url in urls):
            raise ValidationError({"images": ["Images must be a JSON list of URLs"]})

    @property
    def image_urls(self) -> list[str]:
        return json.loads(self.images) if self.images else []

    @property
    def primary_image(self) -> str | None:
        urls = self.image_urls
        return urls[0] if urls else None

    @property
    def farmer_name(self) -> str:
        return self.farmer.name

    @property
    def search_fields(self) -> tuple[str, ...]:
        """Text fields a free-text search matches against."""
        return (self.name, self.description or "", self.category, self.farmer.name)

    @property
    def popularity(self) -> float:
        return self.rating * self.review_count
