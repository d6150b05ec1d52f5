from __future__ import annotations

from ..extensions import db
from beautypos.time_utils import to_utc_z, to_iso_date
from beautypos.validation import format_cents


PAYMENT_METHODS = ("cash", "card", "digital_wallet")


class Transaction(db.Model):
    """
    Committed sale (append-only ledger row).

    Created exactly once per checkout by transaction_service.checkout and
    never updated afterwards. All amounts are in cents.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_transactions_number"),
        db.Index("ix_transactions_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "TXN-20261018-0001")
    transaction_number = db.Column(db.String(32), nullable=False)
    business_date = db.Column(db.Date, nullable=False, index=True)

    # Cashier
    user_id = db.Column(db.Integer, nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True, index=True)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    discount = db.relationship("Discount", backref=db.backref("transactions", lazy="dynamic"))
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "business_date": to_iso_date(self.business_date),
            "user_id": self.user_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "payment_method": self.payment_method,
            "status": self.status,
            "discount_id": self.discount_id,
            "discount": (
                {"id": self.discount.id, "name": self.discount.name, "type": self.discount.type}
                if self.discount else None
            ),
            "created_at": to_utc_z(self.created_at),
        }
        for field in ("subtotal", "discount_amount", "tax_amount", "total_amount", "amount_paid", "change_amount"):
            cents = getattr(self, f"{field}_cents")
            data[f"{field}_cents"] = cents
            data[field] = format_cents(cents)
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """Line item on a committed transaction; unit price is the price at sale time."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "total_price_cents": self.total_price_cents,
            "total_price": format_cents(self.total_price_cents),
        }


class TransactionSequence(db.Model):
    """
    Atomic per-day transaction number counter.

    WHY: Counting today's rows and adding one races under concurrent
    checkouts. The counter row is incremented inside the checkout's own
    database transaction instead.
    """
    __tablename__ = "transaction_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_date", name="uq_transaction_sequences_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_date": to_iso_date(self.business_date),
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
