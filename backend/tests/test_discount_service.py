from datetime import date

import pytest

from beautypos.errors import DiscountNotApplicableError, InvalidDiscountError
from beautypos.models import Discount
from beautypos.services import discount_service
from beautypos.services.discount_service import evaluate_discount, is_discount_active

from conftest import reload

TODAY = date(2026, 10, 18)


def _discount(**overrides) -> Discount:
    fields = dict(
        id=1,
        name="Test",
        type="percentage",
        value=1000,
        minimum_amount_cents=None,
        maximum_discount_cents=None,
        valid_from=date(2026, 10, 1),
        valid_until=date(2026, 10, 31),
        usage_limit=None,
        used_count=0,
        is_active=True,
    )
    fields.update(overrides)
    return Discount(**fields)


class TestEvaluateDiscount:
    def test_percentage_of_subtotal(self):
        result = evaluate_discount(_discount(minimum_amount_cents=10000, maximum_discount_cents=50000), 20000, on=TODAY)
        assert result.applicable
        assert result.amount_cents == 2000

    def test_fixed_amount(self):
        result = evaluate_discount(_discount(type="fixed_amount", value=750), 5000, on=TODAY)
        assert result.amount_cents == 750

    def test_maximum_caps_percentage(self):
        result = evaluate_discount(_discount(value=5000, maximum_discount_cents=1500), 10000, on=TODAY)
        assert result.amount_cents == 1500

    def test_maximum_caps_fixed_amount(self):
        result = evaluate_discount(_discount(type="fixed_amount", value=3000, maximum_discount_cents=2000), 10000, on=TODAY)
        assert result.amount_cents == 2000

    def test_rounds_half_up_to_the_cent(self):
        # 12.5% of 0.99 = 0.12375 -> 0.12 ; 15% of 0.99 = 0.1485 -> 0.15
        assert evaluate_discount(_discount(value=1250), 99, on=TODAY).amount_cents == 12
        assert evaluate_discount(_discount(value=1500), 99, on=TODAY).amount_cents == 15
        # 10% of 0.05 = 0.005 -> 0.01
        assert evaluate_discount(_discount(value=1000), 5, on=TODAY).amount_cents == 1

    def test_below_minimum_is_not_applicable(self):
        result = evaluate_discount(_discount(minimum_amount_cents=10000), 5000, on=TODAY)
        assert not result.applicable
        assert result.amount_cents == 0
        assert "Minimum" in result.reason

    def test_exactly_minimum_is_applicable(self):
        assert evaluate_discount(_discount(minimum_amount_cents=10000), 10000, on=TODAY).applicable

    def test_null_minimum_treated_as_zero(self):
        assert evaluate_discount(_discount(minimum_amount_cents=None), 0, on=TODAY).applicable

    def test_negative_value_is_invalid(self):
        with pytest.raises(InvalidDiscountError):
            evaluate_discount(_discount(value=-1), 10000, on=TODAY)

    def test_percentage_over_100_is_invalid(self):
        with pytest.raises(InvalidDiscountError):
            evaluate_discount(_discount(value=10001), 10000, on=TODAY)

    def test_fixed_amount_over_100_units_is_fine(self):
        assert evaluate_discount(_discount(type="fixed_amount", value=20000), 50000, on=TODAY).amount_cents == 20000

    def test_evaluation_does_not_touch_used_count(self):
        discount = _discount(usage_limit=5, used_count=2)
        evaluate_discount(discount, 10000, on=TODAY)
        assert discount.used_count == 2


class TestActiveWindow:
    def test_inside_window(self):
        assert is_discount_active(_discount(), TODAY)

    def test_window_bounds_are_inclusive(self):
        d = _discount()
        assert is_discount_active(d, date(2026, 10, 1))
        assert is_discount_active(d, date(2026, 10, 31))

    def test_before_window(self):
        result = evaluate_discount(_discount(), 10000, on=date(2026, 9, 30))
        assert not result.applicable
        assert result.reason == "Discount is not valid yet"

    def test_after_window(self):
        result = evaluate_discount(_discount(), 10000, on=date(2026, 11, 1))
        assert not result.applicable
        assert result.reason == "Discount has expired"

    def test_disabled(self):
        assert not evaluate_discount(_discount(is_active=False), 10000, on=TODAY).applicable

    def test_usage_limit_reached(self):
        assert not is_discount_active(_discount(usage_limit=3, used_count=3), TODAY)
        assert is_discount_active(_discount(usage_limit=3, used_count=2), TODAY)


class TestDiscountStore:
    def test_increment_usage(self, db_session, discount_10pct):
        discount_service.increment_usage(discount_10pct)
        db_session.commit()
        assert reload(Discount, discount_10pct.id).used_count == 1

    def test_increment_usage_respects_limit(self, db_session, discount_10pct):
        discount_10pct.usage_limit = 1
        discount_10pct.used_count = 1
        db_session.commit()

        with pytest.raises(DiscountNotApplicableError):
            discount_service.increment_usage(discount_10pct)
        db_session.rollback()
        assert reload(Discount, discount_10pct.id).used_count == 1

    def test_active_discounts_excludes_exhausted_and_disabled(self, db_session, discount_10pct):
        exhausted = Discount(
            name="Exhausted", type="fixed_amount", value=500,
            valid_from=discount_10pct.valid_from, valid_until=discount_10pct.valid_until,
            usage_limit=1, used_count=1,
        )
        disabled = Discount(
            name="Disabled", type="fixed_amount", value=500,
            valid_from=discount_10pct.valid_from, valid_until=discount_10pct.valid_until,
            is_active=False,
        )
        db_session.add_all([exhausted, disabled])
        db_session.commit()

        names = [d.name for d in discount_service.get_active_discounts()]
        assert names == ["Welcome 10%"]
