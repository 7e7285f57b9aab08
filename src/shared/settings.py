"""Storefront settings shared by the catalogue and ordering contexts.

Values come from ``STOREFRONT_*`` environment variables. Every setting has a
default matching the storefront's published policy (free delivery from 500,
a flat 50 delivery fee below that, twelve products per catalogue page).
"""

import os
from dataclasses import dataclass, replace


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class StorefrontSettings:
    """Tunable commerce policy and remote-sync behaviour."""

    free_delivery_threshold: float = 500.0
    delivery_fee: float = 50.0
    page_size: int = 12
    api_base_url: str | None = None
    request_timeout: float = 10.0
    max_attempts: int = 3
    retry_backoff: float = 0.2

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    @classmethod
    def from_env(cls) -> "StorefrontSettings":
        """Build settings from the process environment."""
        return cls(
            free_delivery_threshold=_env_float("STOREFRONT_FREE_DELIVERY_THRESHOLD", 500.0),
            delivery_fee=_env_float("STOREFRONT_DELIVERY_FEE", 50.0),
            page_size=_env_int("STOREFRONT_PAGE_SIZE", 12),
            api_base_url=os.getenv("STOREFRONT_API_BASE_URL") or None,
            request_timeout=_env_float("STOREFRONT_REQUEST_TIMEOUT", 10.0),
            max_attempts=_env_int("STOREFRONT_MAX_ATTEMPTS", 3),
            retry_backoff=_env_float("STOREFRONT_RETRY_BACKOFF", 0.2),
        )

    def with_overrides(self, **overrides) -> "StorefrontSettings":
        return replace(self, **overrides)
