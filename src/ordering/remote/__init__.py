"""Remote cart service factory.

Picks HttpCartService when an API base URL is configured, FakeCartService
otherwise.
"""

from ordering.remote.fake_adapter import FakeCartService
from ordering.remote.http_adapter import HttpCartService
from ordering.remote.port import CartService
from shared.settings import StorefrontSettings


def build_cart_service(settings: StorefrontSettings, products: list[dict] | None = None) -> CartService:
    if settings.api_base_url:
        return HttpCartService(settings.api_base_url, timeout=settings.request_timeout)
    return FakeCartService(products=products)
