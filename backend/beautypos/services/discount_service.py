# backend/beautypos/services/discount_service.py
"""
Discount Service - evaluation and management of cart discounts

Evaluation is pure: evaluate_discount() never writes. The checkout engine
calls increment_usage() inside its own DB transaction, once per committed
sale.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import or_, update

from ..extensions import db
from ..models import Discount
from ..errors import DiscountNotApplicableError, InvalidDiscountError
from ..time_utils import business_date
from ..validation import MAX_PERCENTAGE_BPS
from .concurrency import lock_for_update
from .pagination import paginate

DISCOUNT_TYPES = ("percentage", "fixed_amount")

DISCOUNT_MUTABLE_FIELDS = {
    "name", "description", "type", "value", "minimum_amount_cents",
    "maximum_discount_cents", "valid_from", "valid_until", "usage_limit", "is_active",
}


class DiscountError(Exception):
    """Raised for discount management errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class DiscountEvaluation:
    applicable: bool
    amount_cents: int
    reason: str | None = None


def _round_half_up(numerator: int, denominator: int) -> int:
    # Operands are non-negative
    return (numerator + denominator // 2) // denominator


def validate_discount_terms(discount: Discount) -> None:
    if discount.type not in DISCOUNT_TYPES:
        raise InvalidDiscountError(
            f"Unknown discount type: {discount.type}",
            details={"discount_id": discount.id, "type": discount.type},
        )
    if discount.value is None or discount.value < 0:
        raise InvalidDiscountError(
            "Discount value cannot be negative",
            details={"discount_id": discount.id, "value": discount.value},
        )
    if discount.type == "percentage" and discount.value > MAX_PERCENTAGE_BPS:
        raise InvalidDiscountError(
            "Percentage discount cannot exceed 100%",
            details={"discount_id": discount.id, "value": discount.value},
        )


def inactive_reason(discount: Discount, on: date | None = None) -> str | None:
    """Why the discount cannot be used on `on`, or None if it is active."""
    on = on or business_date()
    if not discount.is_active:
        return "Discount is disabled"
    if discount.valid_from and on < discount.valid_from:
        return "Discount is not valid yet"
    if discount.valid_until and on > discount.valid_until:
        return "Discount has expired"
    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        return "Discount usage limit reached"
    return None


def is_discount_active(discount: Discount, on: date | None = None) -> bool:
    return inactive_reason(discount, on) is None


def evaluate_discount(discount: Discount, subtotal_cents: int, *, on: date | None = None) -> DiscountEvaluation:
    """
    Decide whether `discount` applies to `subtotal_cents` and how much it takes off.

    percentage: subtotal * value / 100, value in basis points
    fixed_amount: value in cents
    Both are capped at maximum_discount_cents and rounded half-up to the cent.
    An ineligible discount evaluates to 0 with applicable=False; callers must
    not treat that as a successful application.

    Raises InvalidDiscountError for a negative value or a percentage over 100%.
    """
    validate_discount_terms(discount)
    if subtotal_cents < 0:
        raise ValueError("subtotal_cents must be >= 0")

    reason = inactive_reason(discount, on)
    if reason:
        return DiscountEvaluation(applicable=False, amount_cents=0, reason=reason)

    minimum = discount.minimum_amount_cents or 0
    if subtotal_cents < minimum:
        return DiscountEvaluation(
            applicable=False,
            amount_cents=0,
            reason=f"Minimum purchase of {minimum} cents not met",
        )

    if discount.type == "percentage":
        amount = _round_half_up(subtotal_cents * discount.value, 100 * 100)
    else:
        amount = discount.value

    if discount.maximum_discount_cents is not None and amount > discount.maximum_discount_cents:
        amount = discount.maximum_discount_cents

    return DiscountEvaluation(applicable=True, amount_cents=amount)


def get_discount(discount_id: int, *, lock: bool = False) -> Discount | None:
    query = db.session.query(Discount).filter_by(id=discount_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.first()


def increment_usage(discount: Discount) -> None:
    """
    Count one more use. Caller owns the transaction (no commit).

    The UPDATE re-checks the usage limit so two checkouts racing for the last
    allowed use cannot both succeed.
    """
    result = db.session.execute(
        update(Discount)
        .where(
            Discount.id == discount.id,
            or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit),
        )
        .values(used_count=Discount.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise DiscountNotApplicableError(
            "Discount usage limit reached",
            details={"discount_id": discount.id},
        )
    db.session.expire(discount, ["used_count"])


def list_discounts(
    *,
    search: str | None = None,
    discount_type: str | None = None,
    is_active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Discount)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Discount.name.ilike(like), Discount.description.ilike(like)))
    if discount_type:
        query = query.filter(Discount.type == discount_type)
    if is_active is not None:
        query = query.filter(Discount.is_active.is_(is_active))
    query = query.order_by(Discount.created_at.desc(), Discount.id.desc())
    return paginate(query, page, per_page)


def get_active_discounts(on: date | None = None) -> list[Discount]:
    """Discounts a cashier may pick right now, by name."""
    on = on or business_date()
    return (
        db.session.query(Discount)
        .filter(Discount.is_active.is_(True))
        .filter(Discount.valid_from <= on, Discount.valid_until >= on)
        .filter(or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit))
        .order_by(Discount.name.asc())
        .all()
    )


def create_discount(patch: dict) -> Discount:
    discount = Discount(used_count=0)
    for key, value in patch.items():
        if key in DISCOUNT_MUTABLE_FIELDS:
            setattr(discount, key, value)
    db.session.add(discount)
    db.session.commit()
    return discount


def update_discount(discount_id: int, patch: dict) -> Discount | None:
    discount = get_discount(discount_id)
    if discount is None:
        return None
    for key, value in patch.items():
        if key in DISCOUNT_MUTABLE_FIELDS:
            setattr(discount, key, value)
    db.session.commit()
    return discount


def delete_discount(discount_id: int) -> bool:
    """Delete an unused discount. Returns False if not found."""
    discount = get_discount(discount_id)
    if discount is None:
        return False
    if discount.transactions.count() > 0:
        raise DiscountError(
            "Cannot delete discount that has been used in transactions",
            details={"discount_id": discount_id},
        )
    db.session.delete(discount)
    db.session.commit()
    return True
