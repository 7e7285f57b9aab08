"""Remote cart service port (abstract interface).

Defines the contract every cart service adapter implements. The sync layer
only ever talks to this interface, so the in-memory FakeCartService and the
httpx-backed HttpCartService are interchangeable.

Every call returns the remote cart as confirmed after the change, or raises
``NetworkError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RemoteCart:
    """The cart as the remote service last confirmed it."""

    items: tuple[dict, ...] = ()
    coupon_code: str | None = None
    discount: float = 0.0

    def line(self, product_id) -> dict | None:
        return next((item for item in self.items if str(item.get("id")) == str(product_id)), None)

    @classmethod
    def from_payload(cls, payload) -> "RemoteCart":
        """Accept ``[...]`` or ``{"items": [...], "coupon": {...}}``."""
        if isinstance(payload, list):
            return cls(items=tuple(payload))
        payload = payload or {}
        coupon = payload.get("coupon") or {}
        return cls(
            items=tuple(payload.get("items", ())),
            coupon_code=coupon.get("code") if isinstance(coupon, dict) else coupon or None,
            discount=float(payload.get("discount", 0.0) or 0.0),
        )


@dataclass(frozen=True)
class CouponResult:
    code: str
    discount: float
    cart: RemoteCart = field(default_factory=RemoteCart)


class CartService(ABC):
    """Abstract remote order/catalogue service."""

    @abstractmethod
    async def fetch_cart(self) -> RemoteCart:
        """GET /cart"""
        ...

    @abstractmethod
    async def add_item(self, product_id: str, quantity: int) -> RemoteCart:
        """POST /cart/add {productId, quantity}"""
        ...

    @abstractmethod
    async def update_item(self, product_id: str, quantity: int) -> RemoteCart:
        """PUT /cart/items/{id} {quantity}"""
        ...

    @abstractmethod
    async def remove_item(self, product_id: str) -> RemoteCart:
        """DELETE /cart/items/{id}"""
        ...

    @abstractmethod
    async def clear_cart(self) -> RemoteCart:
        """DELETE /cart"""
        ...

    @abstractmethod
    async def apply_coupon(self, code: str) -> CouponResult:
        """POST /cart/coupon {code}"""
        ...

    @abstractmethod
    async def fetch_products(self) -> list[dict]:
        """GET /products — the full catalogue as raw records."""
        ...
