from datetime import date

from beautypos.models import TransactionSequence
from beautypos.services.sequence_service import (
    allocate_sequence,
    format_transaction_number,
    next_transaction_number,
)


def test_format_pads_to_four_digits():
    assert format_transaction_number(date(2026, 10, 18), 7) == "TXN-20261018-0007"
    assert format_transaction_number(date(2026, 1, 2), 1234) == "TXN-20260102-1234"


def test_sequence_grows_past_four_digits():
    assert format_transaction_number(date(2026, 10, 18), 10000) == "TXN-20261018-10000"


def test_first_allocation_of_a_day_starts_at_one(db_session):
    day = date(2026, 10, 18)
    assert allocate_sequence(day) == 1
    assert allocate_sequence(day) == 2
    assert next_transaction_number(day) == "TXN-20261018-0003"
    db_session.commit()

    row = db_session.query(TransactionSequence).filter_by(business_date=day).one()
    assert row.next_number == 4


def test_days_are_counted_independently(db_session):
    assert allocate_sequence(date(2026, 10, 18)) == 1
    assert allocate_sequence(date(2026, 10, 18)) == 2
    assert allocate_sequence(date(2026, 10, 19)) == 1


def test_rolled_back_allocation_is_not_consumed(db_session):
    day = date(2026, 10, 18)
    allocate_sequence(day)
    db_session.commit()

    allocate_sequence(day)
    db_session.rollback()

    assert allocate_sequence(day) == 2
