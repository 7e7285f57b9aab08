"""Wishlist aggregate — saved products, at most once each."""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String

from ordering.domain import logger, ordering


@ordering.entity(part_of="Wishlist")
class WishlistItem:
    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.01)
    original_price = Float()
    image = String(max_length=500)
    farmer = String(max_length=255)
    unit = String(max_length=50)
    added_at = DateTime()

    def to_record(self) -> dict:
        record = {
            "id": str(self.product_id),
            "name": self.name,
            "price": self.price,
            "image": self.image,
            "farmer": self.farmer,
            "unit": self.unit,
        }
        if self.original_price is not None:
            record["originalPrice"] = self.original_price
        return record


@ordering.aggregate
class Wishlist:
    items = HasMany(WishlistItem)

    @invariant.post
    def no_duplicate_products(self):
        product_ids = [str(item.product_id) for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError({"items": ["A product can only be saved once"]})

    @classmethod
    def from_records(cls, records) -> "Wishlist":
        wishlist = cls()
        for record in records:
            if str(record["id"]) in wishlist:
                continue
            wishlist.add_items(
                WishlistItem(
                    product_id=str(record["id"]),
                    name=record.get("name"),
                    price=record.get("price"),
                    original_price=record.get("originalPrice"),
                    image=record.get("image"),
                    farmer=record.get("farmer"),
                    unit=record.get("unit"),
                )
            )
        return wishlist

    @property
    def item_count(self) -> int:
        return len(self.items)

    def get_item(self, product_id) -> WishlistItem | None:
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def contains(self, product_id) -> bool:
        return self.get_item(product_id) is not None

    __contains__ = contains

    def add(self, product) -> bool:
        """Save ``product``. Returns False if it was already saved."""
        if self.contains(product.product_id):
            return False
        self.add_items(
            WishlistItem(
                product_id=str(product.product_id),
                name=product.name,
                price=product.price,
                original_price=product.original_price,
                image=product.primary_image,
                farmer=product.farmer_name,
                unit=product.unit,
                added_at=datetime.now(UTC),
            )
        )
        logger.debug("wishlist.item_added", product_id=str(product.product_id))
        return True

    def remove(self, product_id) -> bool:
        item = self.get_item(product_id)
        if item is None:
            return False
        self.remove_items(item)
        logger.debug("wishlist.item_removed", product_id=str(product_id))
        return True

    def toggle(self, product) -> bool:
        """Add ``product`` if absent, remove it if present. Returns whether it is now saved."""
        if self.remove(product.product_id):
            return False
        return self.add(product)

    def clear(self) -> None:
        for item in list(self.items):
            self.remove_items(item)

    def to_records(self) -> list[dict]:
        return [item.to_record() for item in self.items]
