"""httpx-backed cart service.

Talks to the remote order/catalogue service over JSON. Failures are mapped
onto ``NetworkError``: timeouts, transport errors and 5xx responses are
retryable, 4xx responses are not.
"""

import httpx

from ordering.domain import logger
from ordering.errors import NetworkError
from ordering.remote.port import CartService, CouponResult, RemoteCart


class HttpCartService(CartService):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, path: str, json: dict | None = None):
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("remote.timeout", method=method, path=path)
            raise NetworkError("The cart service took too long to respond", retryable=True) from exc
        except httpx.HTTPError as exc:
            logger.warning("remote.transport_error", method=method, path=path, error=str(exc))
            raise NetworkError("Could not reach the cart service", retryable=True) from exc

        if response.status_code >= 500:
            logger.warning("remote.server_error", method=method, path=path, status=response.status_code)
            raise NetworkError(
                "The cart service is having trouble", retryable=True, status_code=response.status_code
            )
        if response.status_code >= 400:
            raise NetworkError(
                _error_message(response), retryable=False, status_code=response.status_code
            )

        if not response.content:
            return None
        return response.json()

    async def fetch_cart(self) -> RemoteCart:
        return RemoteCart.from_payload(await self._request("GET", "/cart"))

    async def add_item(self, product_id: str, quantity: int) -> RemoteCart:
        payload = await self._request("POST", "/cart/add", json={"productId": product_id, "quantity": quantity})
        return RemoteCart.from_payload(payload)

    async def update_item(self, product_id: str, quantity: int) -> RemoteCart:
        payload = await self._request("PUT", f"/cart/items/{product_id}", json={"quantity": quantity})
        return RemoteCart.from_payload(payload)

    async def remove_item(self, product_id: str) -> RemoteCart:
        return RemoteCart.from_payload(await self._request("DELETE", f"/cart/items/{product_id}"))

    async def clear_cart(self) -> RemoteCart:
        return RemoteCart.from_payload(await self._request("DELETE", "/cart"))

    async def apply_coupon(self, code: str) -> CouponResult:
        payload = await self._request("POST", "/cart/coupon", json={"code": code}) or {}
        cart = RemoteCart.from_payload(payload.get("cart", payload))
        return CouponResult(
            code=payload.get("code", code),
            discount=float(payload.get("discount", cart.discount) or 0.0),
            cart=cart,
        )

    async def fetch_products(self) -> list[dict]:
        payload = await self._request("GET", "/products")
        if isinstance(payload, dict):
            payload = payload.get("items", payload.get("products", []))
        return list(payload or [])


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Request failed with status {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body.get("error") or body)
    return str(body)
