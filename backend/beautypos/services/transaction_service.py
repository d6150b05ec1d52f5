"""
Transaction Service - checkout engine

One checkout = one database transaction:

    Validating -> Pricing -> Reserving -> Persisting -> Committed
        |            |            |             |
        +------------+--- any failure ----------+-> Aborted

Aborted leaves no trace: stock, discount usage, sequence counter, the
transaction row and its items all roll back together.

Money is integer cents throughout. Tax is a fixed 8% of the discounted
subtotal, rounded half-up to the cent.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import joinedload
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Discount, Product, Transaction, TransactionItem, PAYMENT_METHODS
from ..errors import (
    CheckoutError,
    DiscountNotApplicableError,
    EmptyCartError,
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidLineItemError,
    InvalidPaymentError,
    PersistenceError,
)
from ..time_utils import business_date, utcnow
from ..validation import (
    ValidationError,
    is_valid_email,
    parse_amount_cents,
    parse_positive_int,
)
from .catalog_service import decrement_stock, get_product
from .concurrency import begin_write_transaction, run_with_retry
from .discount_service import evaluate_discount, get_discount, increment_usage
from .pagination import paginate
from .sequence_service import next_transaction_number

logger = logging.getLogger(__name__)

TAX_RATE_BPS = 800  # 8%

# Number collisions surface as IntegrityError; lock timeouts as OperationalError
CHECKOUT_RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass
class CheckoutRequest:
    lines: list[CheckoutLine]
    payment_method: str
    amount_paid_cents: int
    discount_id: int | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class CartPricing:
    subtotal_cents: int
    discount_amount_cents: int
    tax_amount_cents: int
    total_amount_cents: int

    @property
    def taxable_cents(self) -> int:
        return self.subtotal_cents - self.discount_amount_cents


@dataclass(frozen=True)
class PaymentSettlement:
    amount_paid_cents: int
    change_amount_cents: int


@dataclass
class _Reservation:
    products: dict[int, Product] = field(default_factory=dict)
    quantities: dict[int, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

def _optional_text(payload: dict, key: str, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def _parse_line(index: int, raw) -> CheckoutLine:
    if not isinstance(raw, dict):
        raise InvalidLineItemError("Line item must be an object", details={"index": index})
    try:
        product_id = parse_positive_int(raw.get("product_id"), "product_id")
        quantity = parse_positive_int(raw.get("quantity"), "quantity")
        unit_price_cents = parse_amount_cents(raw.get("unit_price"), "unit_price")
    except ValidationError as e:
        raise InvalidLineItemError(str(e), details={"index": index})
    return CheckoutLine(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents)


def checkout_request_from_payload(payload: dict, *, user_id: int | None = None) -> CheckoutRequest:
    """
    Build a CheckoutRequest from the JSON body of POST /api/transactions.

    Raises EmptyCartError / InvalidLineItemError / InvalidPaymentError for
    cart and payment problems, ValidationError for everything else.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = payload.get("items")
    if items is None or items == []:
        raise EmptyCartError("Cart is empty")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    lines = [_parse_line(i, raw) for i, raw in enumerate(items)]

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )
    try:
        amount_paid_cents = parse_amount_cents(payload.get("amount_paid"), "amount_paid")
    except ValidationError as e:
        raise InvalidPaymentError(str(e))

    discount_id = payload.get("discount_id")
    if discount_id is not None:
        discount_id = parse_positive_int(discount_id, "discount_id")

    customer_email = _optional_text(payload, "customer_email")
    if customer_email and not is_valid_email(customer_email):
        raise ValidationError("customer_email must be a valid email address")

    if user_id is None and payload.get("user_id") is not None:
        user_id = parse_positive_int(payload.get("user_id"), "user_id")

    return CheckoutRequest(
        lines=lines,
        payment_method=payment_method,
        amount_paid_cents=amount_paid_cents,
        discount_id=discount_id,
        customer_name=_optional_text(payload, "customer_name"),
        customer_email=customer_email,
        user_id=user_id,
    )


# ---------------------------------------------------------------------------
# Pricing (pure)
# ---------------------------------------------------------------------------

def compute_tax_cents(taxable_cents: int) -> int:
    return (taxable_cents * TAX_RATE_BPS + 5_000) // 10_000


def price_cart(lines: list[CheckoutLine], discount: Discount | None = None, *, on: date | None = None) -> CartPricing:
    """
    Subtotal from the caller's unit prices, at most one discount, then tax.

    An ineligible discount is rejected with DiscountNotApplicableError rather
    than dropped. A fixed discount larger than the subtotal is capped at the
    subtotal so totals never go negative.
    """
    subtotal = sum(line.total_cents for line in lines)

    discount_cents = 0
    if discount is not None:
        evaluation = evaluate_discount(discount, subtotal, on=on)
        if not evaluation.applicable:
            raise DiscountNotApplicableError(
                evaluation.reason or "Discount not applicable",
                details={
                    "discount_id": discount.id,
                    "subtotal_cents": subtotal,
                    "minimum_amount_cents": discount.minimum_amount_cents,
                },
            )
        discount_cents = min(evaluation.amount_cents, subtotal)

    taxable = subtotal - discount_cents
    tax = compute_tax_cents(taxable)
    return CartPricing(
        subtotal_cents=subtotal,
        discount_amount_cents=discount_cents,
        tax_amount_cents=tax,
        total_amount_cents=taxable + tax,
    )


def settle_payment(payment_method: str, amount_paid_cents: int, total_cents: int) -> PaymentSettlement:
    """Cash must cover the total and gets change; card / wallet are charged exactly."""
    if payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )
    if payment_method != "cash":
        return PaymentSettlement(amount_paid_cents=total_cents, change_amount_cents=0)
    if amount_paid_cents < total_cents:
        raise InsufficientPaymentError(
            "Amount paid is less than the total",
            details={
                "amount_paid_cents": amount_paid_cents,
                "total_amount_cents": total_cents,
                "shortfall_cents": total_cents - amount_paid_cents,
            },
        )
    return PaymentSettlement(
        amount_paid_cents=amount_paid_cents,
        change_amount_cents=amount_paid_cents - total_cents,
    )


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def _validate_cart(lines: list[CheckoutLine]) -> None:
    if not lines:
        raise EmptyCartError("Cart is empty")
    for index, line in enumerate(lines):
        if line.quantity < 1:
            raise InvalidLineItemError("quantity must be >= 1", details={"index": index})
        if line.unit_price_cents < 0:
            raise InvalidLineItemError("unit_price must be >= 0", details={"index": index})


def _reserve(lines: list[CheckoutLine]) -> _Reservation:
    """Load and lock every product in the cart and check stock for the summed quantities."""
    reservation = _Reservation()
    for index, line in enumerate(lines):
        if line.product_id not in reservation.products:
            product = get_product(line.product_id, lock=True)
            if product is None:
                raise InvalidLineItemError(
                    "Product not found",
                    details={"index": index, "product_id": line.product_id},
                )
            if not product.is_active:
                raise InvalidLineItemError(
                    f"Product is inactive: {product.name}",
                    details={"index": index, "product_id": line.product_id},
                )
            reservation.products[line.product_id] = product
        reservation.quantities[line.product_id] = reservation.quantities.get(line.product_id, 0) + line.quantity

    for product_id, requested in reservation.quantities.items():
        product = reservation.products[product_id]
        if product.stock_quantity < requested:
            raise InsufficientStockError(product, available=product.stock_quantity, requested=requested)
    return reservation


def checkout(request: CheckoutRequest) -> Transaction:
    """
    Validate, price and persist a sale, decrementing inventory.

    Raises a CheckoutError subclass on any failure; nothing is written in
    that case. Lock contention and transaction number collisions are retried
    (CHECKOUT_RETRY_ATTEMPTS) before surfacing as PersistenceError.

    The session must not hold uncommitted writes on entry; UnitOfWorkError
    is raised instead of silently rolling them back.
    """
    _validate_cart(request.lines)

    def _checkout_unit_of_work() -> Transaction:
        begin_write_transaction()
        day = business_date()

        reservation = _reserve(request.lines)

        discount = None
        if request.discount_id is not None:
            discount = get_discount(request.discount_id, lock=True)
            if discount is None:
                raise DiscountNotApplicableError(
                    "Discount not found",
                    details={"discount_id": request.discount_id},
                )

        pricing = price_cart(request.lines, discount, on=day)
        payment = settle_payment(request.payment_method, request.amount_paid_cents, pricing.total_amount_cents)

        number = next_transaction_number(day)
        txn = Transaction(
            transaction_number=number,
            business_date=day,
            user_id=request.user_id,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            subtotal_cents=pricing.subtotal_cents,
            discount_id=discount.id if discount else None,
            discount_amount_cents=pricing.discount_amount_cents,
            tax_amount_cents=pricing.tax_amount_cents,
            total_amount_cents=pricing.total_amount_cents,
            amount_paid_cents=payment.amount_paid_cents,
            change_amount_cents=payment.change_amount_cents,
            payment_method=request.payment_method,
            status="completed",
            created_at=utcnow(),
        )
        db.session.add(txn)
        db.session.flush()

        for line in request.lines:
            db.session.add(TransactionItem(
                transaction_id=txn.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=line.total_cents,
            ))

        for product_id, quantity in reservation.quantities.items():
            decrement_stock(
                reservation.products[product_id],
                quantity,
                user_id=request.user_id,
                reference_number=number,
            )

        if discount is not None:
            increment_usage(discount)

        db.session.commit()
        return txn

    attempts = current_app.config.get("CHECKOUT_RETRY_ATTEMPTS", 3)
    try:
        txn = run_with_retry(_checkout_unit_of_work, attempts=attempts, retry_on=CHECKOUT_RETRYABLE_ERRORS)
    except CheckoutError:
        db.session.rollback()
        raise
    except CHECKOUT_RETRYABLE_ERRORS as e:
        logger.error("Checkout gave up after %d attempts: %s", attempts, e)
        raise PersistenceError("Could not save the transaction, please retry") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Checkout failed in storage")
        raise PersistenceError("Could not save the transaction, please retry") from e

    logger.info(
        "Committed %s: %d line(s), total %d cents via %s",
        txn.transaction_number,
        len(request.lines),
        txn.total_amount_cents,
        txn.payment_method,
    )
    return txn


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_transaction(transaction_id: int) -> Transaction | None:
    return (
        db.session.query(Transaction)
        .options(joinedload(Transaction.items).joinedload(TransactionItem.product))
        .filter_by(id=transaction_id)
        .first()
    )


def list_transactions(
    *,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Transaction)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Transaction.transaction_number.ilike(like),
            Transaction.customer_name.ilike(like),
            Transaction.customer_email.ilike(like),
        ))
    if date_from is not None:
        query = query.filter(Transaction.business_date >= date_from)
    if date_to is not None:
        query = query.filter(Transaction.business_date <= date_to)
    query = query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
    return paginate(query, page, per_page)
