"""Ordering bounded context: shopping cart ledger, coupons, wishlist and remote sync.

The cart is an in-memory aggregate owned by one storefront session. Every
mutation recomputes the derived totals; the sync layer mirrors mutations to
the remote cart service and reconciles responses per item.
"""

from protean.domain import Domain

from shared.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

ordering = Domain(name="ordering")
