"""Cart pricing: delivery-fee tiers and the derived cart totals.

``calculate_totals`` is the single place cart money is computed. It is a pure
function of the items, the attached coupon and the delivery override, and the
cart calls it after every mutation.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from protean.fields import Boolean, Float, Integer, String

from ordering.cart.coupons import Coupon, compute_discount, is_eligible
from ordering.domain import ordering


@ordering.value_object
class DeliverySlot:
    """A delivery window the customer can pick at checkout."""

    slot_id: String(required=True, max_length=50)
    label: String(required=True, max_length=100)
    fee: Float(required=True, min_value=0.0)
    available: Boolean(default=True)


DEFAULT_DELIVERY_SLOTS = (
    {"slot_id": "today-morning", "label": "Today 8AM - 12PM", "fee": 50.0, "available": True},
    {"slot_id": "today-evening", "label": "Today 4PM - 8PM", "fee": 50.0, "available": False},
    {"slot_id": "tomorrow-morning", "label": "Tomorrow 8AM - 12PM", "fee": 30.0, "available": True},
    {"slot_id": "tomorrow-evening", "label": "Tomorrow 4PM - 8PM", "fee": 30.0, "available": True},
    {"slot_id": "day-after-morning", "label": "Day After Tomorrow 8AM - 12PM", "fee": 20.0, "available": True},
    {"slot_id": "standard", "label": "Standard Delivery (2-3 days)", "fee": 0.0, "available": True},
)


def default_delivery_slots() -> dict[str, DeliverySlot]:
    return {record["slot_id"]: DeliverySlot(**record) for record in DEFAULT_DELIVERY_SLOTS}


@dataclass(frozen=True)
class DeliveryPolicy:
    """Free delivery from ``free_threshold``, a flat ``fee`` below it.

    A selected delivery slot's fee overrides both tiers. An empty cart has
    nothing to deliver and is never charged.
    """

    free_threshold: float = 500.0
    fee: float = 50.0

    def fee_for(self, subtotal: float, slot_fee: float | None = None) -> float:
        if subtotal <= 0:
            return 0.0
        if slot_fee is not None:
            return slot_fee
        if subtotal >= self.free_threshold:
            return 0.0
        return self.fee

    def amount_for_free_delivery(self, subtotal: float) -> float:
        if subtotal <= 0:
            return 0.0
        return max(0.0, self.free_threshold - subtotal)


@ordering.value_object
class CartTotals:
    """Derived money fields of a cart. Never edited directly."""

    subtotal: Float(default=0.0)
    discount: Float(default=0.0)
    delivery_fee: Float(default=0.0)
    total: Float(default=0.0)
    item_count: Integer(default=0)


def calculate_totals(
    items: Iterable,
    coupon: Coupon | None = None,
    policy: DeliveryPolicy | None = None,
    slot_fee: float | None = None,
) -> CartTotals:
    """Compute cart totals from lines exposing ``price`` and ``quantity``.

    The discount is zero unless ``coupon`` is attached and the subtotal meets
    its minimum order amount.
    """
    policy = policy or DeliveryPolicy()
    items = list(items)

    subtotal = sum(item.price * item.quantity for item in items)
    item_count = sum(item.quantity for item in items)
    discount = compute_discount(coupon, subtotal) if coupon and is_eligible(coupon, subtotal) else 0.0
    delivery_fee = policy.fee_for(subtotal, slot_fee)

    return CartTotals(
        subtotal=subtotal,
        discount=discount,
        delivery_fee=delivery_fee,
        total=max(0.0, subtotal - discount + delivery_fee),
        item_count=item_count,
    )
