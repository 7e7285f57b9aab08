"""Configurable in-memory cart service for development and testing.

Keeps a server-side cart in memory and answers like the real service would.
It can be configured at runtime to:
- fail every call, or only the next N calls (retryable or not)
- delay responses, per call, so replies can arrive out of order or time out
"""

import asyncio
from collections import deque

from ordering.cart.coupons import CouponCatalogue, compute_discount, is_eligible, normalize_code
from ordering.errors import NetworkError
from ordering.remote.port import CartService, CouponResult, RemoteCart


def _line_from_product(record: dict, quantity: int) -> dict:
    farmer = record.get("farmer")
    if isinstance(farmer, dict):
        farmer = farmer.get("name")
    images = record.get("images") or []
    line = {
        "id": str(record.get("id", record.get("productId"))),
        "name": record.get("name"),
        "price": record.get("price"),
        "image": record.get("image") or (images[0] if images else None),
        "quantity": quantity,
        "farmer": farmer,
        "unit": record.get("unit"),
    }
    if record.get("originalPrice") is not None:
        line["originalPrice"] = record["originalPrice"]
    return line


class FakeCartService(CartService):
    """Configurable fake cart service."""

    def __init__(self, products: list[dict] | None = None, coupons: CouponCatalogue | None = None) -> None:
        self.products: list[dict] = list(products or [])
        self.coupons = coupons or CouponCatalogue.default()
        self.lines: dict[str, dict] = {}
        self.coupon_code: str | None = None

        self.should_succeed: bool = True
        self.failure_reason: str = "Cart service unavailable"
        self.retryable: bool = True
        self.latency: float = 0.0
        self.calls: list[dict] = []
        self._failures: deque[tuple[str, bool]] = deque()
        self._delays: deque[float] = deque()

    # -------------------------------------------------------------------
    # Runtime configuration
    # -------------------------------------------------------------------
    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Cart service unavailable",
        retryable: bool = True,
    ) -> None:
        """Configure service behaviour for every following call."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.retryable = retryable

    def fail_next(self, count: int = 1, failure_reason: str = "Cart service unavailable", retryable: bool = True):
        """Fail only the next ``count`` calls."""
        self._failures.extend([(failure_reason, retryable)] * count)

    def delay_next(self, *seconds: float) -> None:
        """Delay the next calls' responses by the given seconds, one per call."""
        self._delays.extend(seconds)

    def seed(self, records: list[dict], coupon_code: str | None = None) -> None:
        """Set the server-side cart directly."""
        self.lines = {str(record["id"]): dict(record) for record in records}
        self.coupon_code = coupon_code

    # -------------------------------------------------------------------
    # CartService
    # -------------------------------------------------------------------
    async def fetch_cart(self) -> RemoteCart:
        delay = await self._handle({"method": "fetch_cart"})
        return await self._respond(delay)

    async def add_item(self, product_id: str, quantity: int) -> RemoteCart:
        delay = await self._handle({"method": "add_item", "product_id": product_id, "quantity": quantity})
        product_id = str(product_id)
        if product_id in self.lines:
            self.lines[product_id]["quantity"] += quantity
        else:
            record = self._product(product_id)
            self.lines[product_id] = _line_from_product(record, quantity)
        return await self._respond(delay)

    async def update_item(self, product_id: str, quantity: int) -> RemoteCart:
        delay = await self._handle({"method": "update_item", "product_id": product_id, "quantity": quantity})
        product_id = str(product_id)
        if product_id not in self.lines:
            raise NetworkError(f"Item {product_id} not found in cart", retryable=False, status_code=404)
        if quantity <= 0:
            del self.lines[product_id]
        else:
            self.lines[product_id]["quantity"] = quantity
        return await self._respond(delay)

    async def remove_item(self, product_id: str) -> RemoteCart:
        delay = await self._handle({"method": "remove_item", "product_id": product_id})
        self.lines.pop(str(product_id), None)
        return await self._respond(delay)

    async def clear_cart(self) -> RemoteCart:
        delay = await self._handle({"method": "clear_cart"})
        self.lines.clear()
        self.coupon_code = None
        return await self._respond(delay)

    async def apply_coupon(self, code: str) -> CouponResult:
        delay = await self._handle({"method": "apply_coupon", "code": code})
        coupon = self.coupons.get(code)
        if coupon is None:
            raise NetworkError(f"Invalid coupon code {normalize_code(code)!r}", retryable=False, status_code=400)
        subtotal = self._subtotal()
        if not is_eligible(coupon, subtotal):
            raise NetworkError(
                f"Minimum order of {coupon.min_order_amount:g} required", retryable=False, status_code=400
            )
        self.coupon_code = coupon.code
        cart = await self._respond(delay)
        return CouponResult(code=coupon.code, discount=compute_discount(coupon, subtotal), cart=cart)

    async def fetch_products(self) -> list[dict]:
        await self._handle({"method": "fetch_products"})
        return [dict(record) for record in self.products]

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    async def _handle(self, call: dict) -> float:
        """Record the call and fail it if configured to. Returns the response delay."""
        self.calls.append(call)
        delay = self._delays.popleft() if self._delays else self.latency

        if self._failures:
            reason, retryable = self._failures.popleft()
            await asyncio.sleep(delay)
            raise NetworkError(reason, retryable=retryable, status_code=503 if retryable else 400)
        if not self.should_succeed:
            await asyncio.sleep(delay)
            raise NetworkError(self.failure_reason, retryable=self.retryable, status_code=503 if self.retryable else 400)
        return delay

    async def _respond(self, delay: float) -> RemoteCart:
        snapshot = self._snapshot()
        await asyncio.sleep(delay)
        return snapshot

    def _snapshot(self) -> RemoteCart:
        discount = 0.0
        coupon = self.coupons.get(self.coupon_code) if self.coupon_code else None
        if coupon and is_eligible(coupon, self._subtotal()):
            discount = compute_discount(coupon, self._subtotal())
        return RemoteCart(
            items=tuple(dict(line) for line in self.lines.values()),
            coupon_code=self.coupon_code,
            discount=discount,
        )

    def _subtotal(self) -> float:
        return sum(line["price"] * line["quantity"] for line in self.lines.values())

    def _product(self, product_id: str) -> dict:
        for record in self.products:
            if str(record.get("id", record.get("productId"))) == product_id:
                return record
        raise NetworkError(f"Product {product_id} not found", retryable=False, status_code=404)
