# Overview: Sales aggregates over committed transactions.

from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Transaction
from ..validation import format_cents


def _money(cents: int) -> dict:
    return {"cents": cents, "amount": format_cents(cents)}


def get_daily_sales(day: date) -> dict:
    row = (
        db.session.query(
            func.count(Transaction.id).label("transactions"),
            func.coalesce(func.sum(Transaction.subtotal_cents), 0).label("subtotal"),
            func.coalesce(func.sum(Transaction.discount_amount_cents), 0).label("discounts"),
            func.coalesce(func.sum(Transaction.tax_amount_cents), 0).label("tax"),
            func.coalesce(func.sum(Transaction.total_amount_cents), 0).label("total"),
        )
        .filter(Transaction.business_date == day)
        .one()
    )
    return {
        "date": day.isoformat(),
        "sales": {
            "total_transactions": int(row.transactions or 0),
            "total_subtotal": _money(int(row.subtotal)),
            "total_discounts": _money(int(row.discounts)),
            "total_tax": _money(int(row.tax)),
            "total_sales": _money(int(row.total)),
        },
    }


def get_monthly_report(year: int, month: int) -> dict:
    """Per-day transaction count and sales for one calendar month (days with sales only)."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])

    rows = (
        db.session.query(
            Transaction.business_date,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.total_amount_cents), 0),
        )
        .filter(Transaction.business_date >= first, Transaction.business_date <= last)
        .group_by(Transaction.business_date)
        .order_by(Transaction.business_date.asc())
        .all()
    )
    return {
        "month": month,
        "year": year,
        "daily_sales": [
            {
                "date": day.isoformat(),
                "transactions": int(count),
                "total_sales": _money(int(total)),
            }
            for day, count, total in rows
        ],
    }
