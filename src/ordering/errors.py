"""Error taxonomy for the ordering context.

Synchronous rejections (bad input, broken commerce rules) derive from
protean's ``ValidationError`` and leave the cart untouched. Remote-sync
failures derive from ``SyncError`` and are raised when a command is awaited.
"""

from protean.exceptions import ValidationError


class InvalidQuantity(ValidationError):
    """Quantity is not a positive whole number."""

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__({"quantity": [f"Quantity must be a whole number of at least 1, got {quantity!r}"]})


class BusinessRuleError(ValidationError):
    """A command broke a commerce rule."""

    field = "cart"

    def __init__(self, message: str):
        self.message = message
        super().__init__({self.field: [message]})


class InvalidCoupon(BusinessRuleError):
    field = "coupon_code"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Invalid coupon code {code!r}")


class MinOrderNotMet(BusinessRuleError):
    field = "coupon_code"

    def __init__(self, code: str, min_order_amount: float, subtotal: float):
        self.code = code
        self.min_order_amount = min_order_amount
        self.subtotal = subtotal
        self.deficit = round(min_order_amount - subtotal, 2)
        super().__init__(
            f"Coupon {code} needs a minimum order of {min_order_amount:g}; "
            f"add {self.deficit:g} more to use it"
        )


class ItemNotFound(BusinessRuleError):
    field = "product_id"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Item {product_id} not found in cart")


class UnknownProduct(BusinessRuleError):
    field = "product_id"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not in the catalogue")


class EmptyCart(BusinessRuleError):
    def __init__(self):
        super().__init__("Your cart is empty")


class SyncError(Exception):
    """Base class for remote-sync failures."""


class NetworkError(SyncError):
    """A remote call failed or timed out.

    ``retryable`` is False for rejections the remote service made on purpose
    (4xx responses), which retrying cannot fix.
    """

    def __init__(self, message: str, retryable: bool = True, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        if self.retryable:
            return f"{self.message}. Please try again."
        return self.message


class ConflictError(SyncError):
    """A response arrived for a superseded command and was discarded."""

    def __init__(self, message: str, sequence: int | None = None, current: int | None = None):
        super().__init__(message)
        self.sequence = sequence
        self.current = current
