"""Coupons — the coupon catalogue and the validator that prices a coupon against a subtotal."""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Float, String

from ordering.domain import logger, ordering
from ordering.errors import InvalidCoupon, MinOrderNotMet


class CouponType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@ordering.value_object
class Coupon:
    """A named discount rule gated by a minimum order amount."""

    code: String(required=True, max_length=50)
    discount_type: String(required=True, choices=CouponType)
    discount_value: Float(required=True, min_value=0.01)
    min_order_amount: Float(default=0.0, min_value=0.0)
    description: String(max_length=255)

    def to_record(self) -> dict:
        return {
            "code": self.code,
            "type": self.discount_type,
            "discount": self.discount_value,
            "minOrder": self.min_order_amount,
            "description": self.description,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Coupon":
        return cls(
            code=normalize_code(record["code"]),
            discount_type=record.get("type", record.get("discount_type")),
            discount_value=record.get("discount", record.get("discount_value")),
            min_order_amount=record.get("minOrder", record.get("min_order_amount", 0.0)),
            description=record.get("description"),
        )


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def round_half_up(value: float) -> int:
    """Round to the nearest whole unit, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_discount(coupon: Coupon, subtotal: float) -> float:
    """Discount ``coupon`` gives on ``subtotal``, never more than the subtotal itself."""
    if CouponType(coupon.discount_type) == CouponType.PERCENTAGE:
        discount = round_half_up(subtotal * coupon.discount_value / 100)
    else:
        discount = coupon.discount_value
    return float(max(0.0, min(discount, subtotal)))


def is_eligible(coupon: Coupon, subtotal: float) -> bool:
    return subtotal >= coupon.min_order_amount


DEFAULT_COUPONS = (
    {
        "code": "FRESH20",
        "type": "percentage",
        "discount": 20,
        "minOrder": 300,
        "description": "20% off on orders above 300",
    },
    {
        "code": "FIRST50",
        "type": "fixed",
        "discount": 50,
        "minOrder": 200,
        "description": "50 off on your first order",
    },
    {
        "code": "ORGANIC15",
        "type": "percentage",
        "discount": 15,
        "minOrder": 500,
        "description": "15% off on organic products",
    },
)


class CouponCatalogue:
    """Read-only lookup of the coupons currently on offer."""

    def __init__(self, coupons: Iterable[Coupon]):
        self._coupons = {coupon.code: coupon for coupon in coupons}

    @classmethod
    def default(cls) -> "CouponCatalogue":
        return cls(Coupon.from_record(record) for record in DEFAULT_COUPONS)

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "CouponCatalogue":
        return cls(Coupon.from_record(record) for record in records)

    def get(self, code) -> Coupon | None:
        return self._coupons.get(normalize_code(code))

    def __contains__(self, code) -> bool:
        return self.get(code) is not None

    def __iter__(self):
        return iter(self._coupons.values())

    def __len__(self) -> int:
        return len(self._coupons)


class CouponValidator:
    """Checks a code against the catalogue and a subtotal, and prices the discount."""

    def __init__(self, catalogue: CouponCatalogue):
        self.catalogue = catalogue

    def validate(self, code, subtotal: float) -> tuple[Coupon, float]:
        """Return ``(coupon, discount)`` or raise.

        Raises:
            ValidationError: the code is blank.
            InvalidCoupon: the code is not in the catalogue.
            MinOrderNotMet: the subtotal is below the coupon's minimum order.
        """
        if not normalize_code(code):
            raise ValidationError({"coupon_code": ["Please enter a coupon code"]})

        coupon = self.catalogue.get(code)
        if coupon is None:
            logger.info("coupon.rejected", code=code, reason="unknown")
            raise InvalidCoupon(normalize_code(code))

        if not is_eligible(coupon, subtotal):
            logger.info("coupon.rejected", code=coupon.code, reason="min_order", subtotal=subtotal)
            raise MinOrderNotMet(coupon.code, coupon.min_order_amount, subtotal)

        return coupon, compute_discount(coupon, subtotal)
