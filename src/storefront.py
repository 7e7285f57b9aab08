"""Storefront session — the composition root of the commerce state engine.

One ``Storefront`` per shopper session owns the catalogue browser, the synced
cart and the wishlist, and is the only entry point for UI commands. Cart and
wishlist are written back to local storage after every change.

Commands that talk to the remote service must run inside an event loop, and
with a protean domain context active (see ``bootstrap``).
"""

from dataclasses import dataclass
from uuid import uuid4

from protean.exceptions import ValidationError

from catalogue.domain import catalogue
from catalogue.product.ingestion import IngestionReport, ingest_products
from catalogue.query.browser import CatalogueBrowser
from catalogue.query.pipeline import PageResult
from ordering.cart.cart import ShoppingCart
from ordering.cart.coupons import CouponCatalogue, CouponValidator
from ordering.cart.pricing import CartTotals
from ordering.domain import ordering
from ordering.errors import EmptyCart, NetworkError, UnknownProduct
from ordering.remote import build_cart_service
from ordering.remote.port import CartService
from ordering.storage import CartStorage, restore_cart
from ordering.sync.commands import CartCommand
from ordering.sync.synced_cart import SyncedCart
from ordering.wishlist.wishlist import Wishlist
from shared.logging import add_context, get_logger
from shared.settings import StorefrontSettings

logger = get_logger(__name__)


def bootstrap() -> None:
    """Initialize both bounded contexts. Call once per process."""
    catalogue.init()
    ordering.init()


@dataclass(frozen=True)
class CheckoutReceipt:
    lines: tuple[dict, ...]
    totals: CartTotals
    coupon_code: str | None = None
    delivery_slot: str | None = None


class Storefront:
    def __init__(
        self,
        settings: StorefrontSettings | None = None,
        service: CartService | None = None,
        storage: CartStorage | None = None,
        coupons: CouponCatalogue | None = None,
        session_id: str | None = None,
    ):
        self.settings = settings or StorefrontSettings.from_env()
        self.session_id = session_id or uuid4().hex[:12]
        add_context(session_id=self.session_id)

        self.storage = storage or CartStorage()
        self.browser = CatalogueBrowser(page_size=self.settings.page_size)
        self.ingestion: IngestionReport | None = None

        cart = ShoppingCart.create(
            free_delivery_threshold=self.settings.free_delivery_threshold,
            delivery_fee=self.settings.delivery_fee,
        )
        restore_cart(cart, self.storage)
        self.sync = SyncedCart(
            cart,
            service or build_cart_service(self.settings),
            CouponValidator(coupons or CouponCatalogue.default()),
            settings=self.settings,
            on_change=self._save_cart,
        )
        self.wishlist = self._load_wishlist()

        logger.info("storefront.session_started", lines=len(cart.items), saved=self.wishlist.item_count)

    @property
    def cart(self) -> ShoppingCart:
        return self.sync.cart

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def start(self) -> IngestionReport:
        """Load the catalogue, then reconcile the cart with the remote copy.

        A failed cart refresh keeps the locally stored cart.
        """
        records = await self.sync.fetch_products()
        report = self.load_catalogue(records)
        try:
            await self.sync.refresh()
        except NetworkError as exc:
            logger.warning("storefront.cart_refresh_failed", error=exc.message)
        return report

    def load_catalogue(self, records) -> IngestionReport:
        self.ingestion = ingest_products(records)
        self.browser.load(self.ingestion.products)
        return self.ingestion

    # -------------------------------------------------------------------
    # Cart commands
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity=1) -> CartCommand:
        return self.sync.add_item(self._product(product_id), quantity)

    def update_quantity(self, product_id, quantity) -> CartCommand:
        return self.sync.update_quantity(product_id, quantity)

    def remove_item(self, product_id) -> CartCommand:
        return self.sync.remove_item(product_id)

    def clear_cart(self) -> CartCommand:
        return self.sync.clear()

    def apply_coupon(self, code) -> CartCommand:
        return self.sync.apply_coupon(code)

    def remove_coupon(self) -> None:
        self.sync.remove_coupon()

    def select_delivery_slot(self, slot_id):
        return self.sync.select_delivery_slot(slot_id)

    def complete_checkout(self) -> CheckoutReceipt:
        """Close the order and empty the cart."""
        if self.cart.is_empty:
            raise EmptyCart()

        receipt = CheckoutReceipt(
            lines=tuple(self.cart.to_records()),
            totals=self.cart.totals,
            coupon_code=self.cart.coupon.code if self.cart.coupon and self.cart.coupon_eligible else None,
            delivery_slot=self.cart.delivery_slot.slot_id if self.cart.delivery_slot else None,
        )
        self.sync.clear()
        logger.info("storefront.checkout_completed", total=receipt.totals.total, lines=len(receipt.lines))
        return receipt

    # -------------------------------------------------------------------
    # Catalogue commands
    # -------------------------------------------------------------------
    def set_filter(self, partial=None, **values) -> PageResult:
        return self.browser.set_filter(partial, **values)

    def set_search_query(self, text) -> PageResult:
        return self.browser.set_search_query(text)

    def set_sort(self, sort_by) -> PageResult:
        return self.browser.set_sort(sort_by)

    def set_page(self, page) -> PageResult:
        return self.browser.set_page(page)

    def clear_filters(self) -> PageResult:
        return self.browser.clear_filters()

    def leave_catalogue(self) -> None:
        """Navigate away: drop the view's criteria and ignore in-flight responses."""
        self.sync.cancel_pending()
        self.browser.clear_filters()

    # -------------------------------------------------------------------
    # Wishlist commands
    # -------------------------------------------------------------------
    def add_to_wishlist(self, product_id) -> bool:
        added = self.wishlist.add(self._product(product_id))
        self._save_wishlist()
        return added

    def remove_from_wishlist(self, product_id) -> bool:
        removed = self.wishlist.remove(product_id)
        self._save_wishlist()
        return removed

    def toggle_wishlist(self, product_id) -> bool:
        saved = self.wishlist.toggle(self._product(product_id))
        self._save_wishlist()
        return saved

    def clear_wishlist(self) -> None:
        self.wishlist.clear()
        self._save_wishlist()

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _product(self, product_id):
        product = self.browser.get_product(product_id)
        if product is None:
            raise UnknownProduct(product_id)
        return product

    def _save_cart(self, cart: ShoppingCart) -> None:
        self.storage.save_cart(cart.to_records())

    def _save_wishlist(self) -> None:
        self.storage.save_wishlist(self.wishlist.to_records())

    def _load_wishlist(self) -> Wishlist:
        try:
            return Wishlist.from_records(self.storage.load_wishlist())
        except ValidationError as exc:
            logger.warning("storage.wishlist_discarded", errors=exc.messages)
            return Wishlist()
