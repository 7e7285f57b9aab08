"""Shopping Cart aggregate — the cart ledger.

The cart owns its lines and at most one coupon. Subtotal, discount, delivery
fee and total are never edited directly: every mutation ends by recomputing
them from ``(items, coupon, delivery slot)`` inside the same atomic change,
and a post-invariant rejects any state where the stored totals disagree with
the lines.

Validation and business-rule errors are raised before anything is touched,
so a rejected command leaves the cart exactly as it was.
"""

import math
from collections.abc import Iterable
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from ordering.cart.coupons import Coupon, CouponValidator, is_eligible
from ordering.cart.pricing import CartTotals, DeliveryPolicy, DeliverySlot, calculate_totals
from ordering.domain import logger, ordering
from ordering.errors import InvalidQuantity, ItemNotFound


def _require_quantity(quantity, minimum: int = 1) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < minimum:
        raise InvalidQuantity(quantity)
    return quantity


def _require_whole_number(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(quantity)
    return quantity


@ordering.entity(part_of="ShoppingCart")
class CartItem:
    """One cart line: a product snapshot taken when it was first added."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.01)
    original_price = Float()
    image = String(max_length=500)
    farmer = String(max_length=255)
    unit = String(max_length=50)
    quantity = Integer(required=True, min_value=1)
    line_number = Integer(required=True, min_value=1)  # insertion order

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_record(self) -> dict:
        """Wire/storage layout of this line."""
        record = {
            "id": str(self.product_id),
            "name": self.name,
            "price": self.price,
            "image": self.image,
            "quantity": self.quantity,
            "farmer": self.farmer,
            "unit": self.unit,
        }
        if self.original_price is not None:
            record["originalPrice"] = self.original_price
        return record


def line_fields_from_record(record: dict) -> dict:
    """Inverse of ``CartItem.to_record`` (without the line number)."""
    product_id = record.get("id", record.get("productId"))
    if product_id is None:
        raise ValidationError({"id": ["Cart line is missing a product id"]})
    return {
        "product_id": str(product_id),
        "name": record.get("name"),
        "price": record.get("price"),
        "original_price": record.get("originalPrice"),
        "image": record.get("image"),
        "farmer": record.get("farmer"),
        "unit": record.get("unit"),
        "quantity": record.get("quantity"),
    }


@ordering.aggregate
class ShoppingCart:
    items = HasMany(CartItem)
    coupon = ValueObject(Coupon)
    delivery_slot = ValueObject(DeliverySlot)
    totals = ValueObject(CartTotals)
    free_delivery_threshold = Float(default=500.0, min_value=0.0)
    flat_delivery_fee = Float(default=50.0, min_value=0.0)
    next_line_number = Integer(default=1)
    updated_at = DateTime()

    @invariant.post
    def totals_must_reflect_items(self):
        if self.totals is None:
            return
        subtotal = sum(item.price * item.quantity for item in self.items)
        if not math.isclose(self.totals.subtotal, subtotal, rel_tol=1e-12, abs_tol=1e-9):
            raise ValidationError({"totals": ["Cart totals are out of date with the cart lines"]})

    @invariant.post
    def one_line_per_product(self):
        product_ids = [str(item.product_id) for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError({"items": ["A product can only appear once in the cart"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, free_delivery_threshold=500.0, delivery_fee=50.0):
        cart = cls(
            free_delivery_threshold=free_delivery_threshold,
            flat_delivery_fee=delivery_fee,
            updated_at=datetime.now(UTC),
        )
        with atomic_change(cart):
            cart._recalculate()
        return cart

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    @property
    def policy(self) -> DeliveryPolicy:
        return DeliveryPolicy(free_threshold=self.free_delivery_threshold, fee=self.flat_delivery_fee)

    @property
    def lines(self) -> list[CartItem]:
        """Cart lines in the order they were first added."""
        return sorted(self.items, key=lambda item: item.line_number)

    @property
    def subtotal(self) -> float:
        return self.totals.subtotal

    @property
    def discount(self) -> float:
        return self.totals.discount

    @property
    def delivery_fee(self) -> float:
        return self.totals.delivery_fee

    @property
    def total(self) -> float:
        return self.totals.total

    @property
    def item_count(self) -> int:
        return self.totals.item_count

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def coupon_eligible(self) -> bool:
        return self.coupon is not None and is_eligible(self.coupon, self.subtotal)

    @property
    def amount_for_free_delivery(self) -> float:
        return self.policy.amount_for_free_delivery(self.subtotal)

    @property
    def estimated_savings(self) -> float:
        """Savings against original prices on lines bought two or more at a time."""
        return sum(
            (item.original_price - item.price) * item.quantity
            for item in self.items
            if item.quantity >= 2 and item.original_price
        )

    def get_line(self, product_id) -> CartItem | None:
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def __contains__(self, product_id) -> bool:
        return self.get_line(product_id) is not None

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product, quantity=1) -> CartItem:
        """Add ``quantity`` of ``product``, merging into an existing line.

        ``product`` is any catalogue product exposing ``product_id``, ``name``,
        ``price``, ``original_price``, ``primary_image``, ``farmer_name`` and
        ``unit``. Price and details are snapshotted on first add.
        """
        _require_quantity(quantity)
        existing = self.get_line(product.product_id)

        with atomic_change(self):
            if existing:
                existing.quantity += quantity
                line = existing
            else:
                line = CartItem(
                    product_id=str(product.product_id),
                    name=product.name,
                    price=product.price,
                    original_price=product.original_price,
                    image=product.primary_image,
                    farmer=product.farmer_name,
                    unit=product.unit,
                    quantity=quantity,
                    line_number=self.next_line_number,
                )
                self.add_items(line)
                self.next_line_number += 1
            self._recalculate()

        logger.debug("cart.item_added", product_id=str(product.product_id), quantity=quantity)
        return line

    def update_quantity(self, product_id, quantity) -> CartItem | None:
        """Set a line's quantity; zero or less removes the line."""
        _require_whole_number(quantity)
        line = self.get_line(product_id)
        if line is None:
            raise ItemNotFound(product_id)

        if quantity <= 0:
            return self.remove_item(product_id)

        previous_quantity = line.quantity
        with atomic_change(self):
            line.quantity = quantity
            self._recalculate()

        logger.debug(
            "cart.quantity_updated",
            product_id=str(product_id),
            previous_quantity=previous_quantity,
            new_quantity=quantity,
        )
        return line

    def remove_item(self, product_id) -> None:
        """Remove a line. Removing a product that is not in the cart is a no-op."""
        line = self.get_line(product_id)
        if line is None:
            return None

        with atomic_change(self):
            self.remove_items(line)
            self._recalculate()

        logger.debug("cart.item_removed", product_id=str(product_id))
        return None

    def clear(self) -> None:
        """Empty the cart, dropping the coupon and any delivery slot."""
        with atomic_change(self):
            for line in list(self.items):
                self.remove_items(line)
            self.coupon = None
            self.delivery_slot = None
            self._recalculate()

        logger.debug("cart.cleared")

    # -------------------------------------------------------------------
    # Coupons and delivery
    # -------------------------------------------------------------------
    def apply_coupon(self, code, validator: CouponValidator) -> float:
        """Validate and attach a coupon, returning the discount it gives.

        Re-applying the active coupon is a no-op; a different coupon replaces it.
        """
        coupon, discount = validator.validate(code, self.subtotal)

        with atomic_change(self):
            self.coupon = coupon
            self._recalculate()

        logger.debug("cart.coupon_applied", code=coupon.code, discount=discount)
        return self.discount

    def remove_coupon(self) -> None:
        with atomic_change(self):
            self.coupon = None
            self._recalculate()

    def select_delivery_slot(self, slot: DeliverySlot) -> None:
        if not slot.available:
            raise ValidationError({"delivery_slot": [f"Delivery slot {slot.slot_id} is not available"]})

        with atomic_change(self):
            self.delivery_slot = slot
            self._recalculate()

    def clear_delivery_slot(self) -> None:
        with atomic_change(self):
            self.delivery_slot = None
            self._recalculate()

    # -------------------------------------------------------------------
    # Reconciliation (remote-confirmed state overriding local state)
    # -------------------------------------------------------------------
    def restore_line(self, product_id, record: dict | None, line_number: int | None = None) -> None:
        """Make one line match ``record``; ``None`` removes the line.

        A malformed record raises ``ValidationError`` before the cart changes.
        """
        line = self.get_line(product_id)
        replacement = None
        if record is not None and (record.get("quantity") or 0) >= 1:
            if line_number is None:
                line_number = line.line_number if line is not None else self.next_line_number
            replacement = CartItem(**line_fields_from_record(record), line_number=line_number)

        with atomic_change(self):
            if line is not None:
                self.remove_items(line)
            if replacement is not None:
                self.add_items(replacement)
                self.next_line_number = max(self.next_line_number, replacement.line_number + 1)
            self._recalculate()

    def restore_coupon(self, coupon: Coupon | None) -> None:
        with atomic_change(self):
            self.coupon = coupon
            self._recalculate()

    def replace_lines(self, records: Iterable[dict]) -> None:
        """Replace every line with ``records``, in order."""
        replacements = [
            CartItem(**line_fields_from_record(record), line_number=number)
            for number, record in enumerate(records, start=1)
        ]
        product_ids = [str(item.product_id) for item in replacements]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError({"items": ["A product can only appear once in the cart"]})

        with atomic_change(self):
            for line in list(self.items):
                self.remove_items(line)
            for item in replacements:
                self.add_items(item)
            self.next_line_number = len(replacements) + 1
            self._recalculate()

    def to_records(self) -> list[dict]:
        return [line.to_record() for line in self.lines]

    def _recalculate(self) -> None:
        slot_fee = self.delivery_slot.fee if self.delivery_slot else None
        self.totals = calculate_totals(self.items, self.coupon, self.policy, slot_fee)
        self.updated_at = datetime.now(UTC)
