# Overview: Per-day transaction number allocation.

from __future__ import annotations

from datetime import date

from sqlalchemy import update

from ..extensions import db
from ..models import TransactionSequence

TRANSACTION_PREFIX = "TXN"


def format_transaction_number(day: date, sequence: int, *, prefix: str = TRANSACTION_PREFIX, pad: int = 4) -> str:
    return f"{prefix}-{day:%Y%m%d}-{sequence:0{pad}d}"


def allocate_sequence(day: date) -> int:
    """
    Atomically take the next sequence number for `day`.

    Runs inside the caller's transaction so the number is only consumed if the
    sale commits. The first allocation of a day inserts the counter row; if a
    concurrent checkout inserts it first, the unique constraint raises
    IntegrityError and the caller's retry loop re-runs the whole unit of work,
    which then takes the UPDATE path.
    """
    stmt = (
        update(TransactionSequence)
        .where(TransactionSequence.business_date == day)
        .values(next_number=TransactionSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(TransactionSequence.next_number)
            .filter_by(business_date=day)
            .scalar()
        )
        return current - 1

    db.session.add(TransactionSequence(business_date=day, next_number=2))
    db.session.flush()
    return 1


def next_transaction_number(day: date) -> str:
    return format_transaction_number(day, allocate_sequence(day))
