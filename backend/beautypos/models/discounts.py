from __future__ import annotations

from ..extensions import db
from beautypos.time_utils import to_utc_z, to_iso_date
from beautypos.validation import format_cents


class Discount(db.Model):
    """
    Cart-level discount selectable at checkout.

    VALUE UNITS:
    - percentage: basis points (1000 = 10%)
    - fixed_amount: cents

    used_count is incremented by the checkout engine inside the sale's
    database transaction, never by evaluation.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.CheckConstraint("value >= 0", name="ck_discounts_value_nonnegative"),
        db.Index("ix_discounts_active_window", "is_active", "valid_from", "valid_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    type = db.Column(db.String(16), nullable=False)  # percentage, fixed_amount
    value = db.Column(db.Integer, nullable=False, default=0)

    minimum_amount_cents = db.Column(db.Integer, nullable=True)
    maximum_discount_cents = db.Column(db.Integer, nullable=True)

    valid_from = db.Column(db.Date, nullable=False)
    valid_until = db.Column(db.Date, nullable=False)

    usage_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "value": self.value,
            "minimum_amount_cents": self.minimum_amount_cents,
            "minimum_amount": format_cents(self.minimum_amount_cents),
            "maximum_discount_cents": self.maximum_discount_cents,
            "maximum_discount": format_cents(self.maximum_discount_cents),
            "valid_from": to_iso_date(self.valid_from),
            "valid_until": to_iso_date(self.valid_until),
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
