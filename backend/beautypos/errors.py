"""
Checkout failure taxonomy.

Every error carries a machine-readable `code`, a human message, a `details`
dict for the client and the HTTP status routes should answer with. A raised
CheckoutError always means nothing was written.
"""
from __future__ import annotations


class CheckoutError(Exception):
    """Base class for checkout failures."""
    code = "checkout_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class EmptyCartError(CheckoutError):
    code = "empty_cart"


class InvalidLineItemError(CheckoutError):
    code = "invalid_line_item"


class InvalidPaymentError(CheckoutError):
    code = "invalid_payment"


class InsufficientStockError(CheckoutError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, product, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product: {product.name}",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product.id
        self.available = available
        self.requested = requested


class DiscountNotApplicableError(CheckoutError):
    code = "discount_not_applicable"
    status_code = 422


class InvalidDiscountError(CheckoutError):
    code = "invalid_discount"
    status_code = 422


class InsufficientPaymentError(CheckoutError):
    code = "insufficient_payment"
    status_code = 422


class PersistenceError(CheckoutError):
    """Storage fault or number collision that survived the retry budget. Safe to re-issue."""
    code = "persistence_failure"
    status_code = 409
