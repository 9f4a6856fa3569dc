"""Tests for calendar arithmetic (backoffice_kernel/domain/dates.py)."""

from datetime import date

import pytest

from backoffice_kernel.domain.dates import (
    add_months,
    installment_due_dates,
    last_day_of_month,
    month_bounds,
    period_label,
    recurrence_dates,
    validate_period,
)
from backoffice_kernel.domain.values import Frequency


class TestMonthHelpers:

    def test_last_day_of_leap_february(self):
        assert last_day_of_month(2024, 2) == date(2024, 2, 29)
        assert last_day_of_month(2025, 2) == date(2025, 2, 28)

    def test_month_bounds_are_inclusive(self):
        assert month_bounds(2025, 4) == (date(2025, 4, 1), date(2025, 4, 30))

    def test_add_months_clamps_and_returns_to_anchor(self):
        jan_31 = date(2025, 1, 31)
        assert add_months(jan_31, 1) == date(2025, 2, 28)
        assert add_months(date(2025, 2, 28), 1, anchor_day=31) == date(2025, 3, 31)

    def test_add_months_crosses_year(self):
        assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)

    def test_period_label_is_portuguese(self):
        assert period_label(date(2025, 3, 10)) == "Março/2025"

    @pytest.mark.parametrize("month,year", [(0, 2025), (13, 2025), (1, 1800)])
    def test_validate_period_rejects(self, month, year):
        with pytest.raises(ValueError):
            validate_period(month, year)


class TestInstallmentDueDates:

    def test_anchored_on_first_due_day(self):
        assert installment_due_dates(date(2025, 1, 31), 4) == [
            date(2025, 1, 31),
            date(2025, 2, 28),
            date(2025, 3, 31),
            date(2025, 4, 30),
        ]

    def test_count(self):
        assert len(installment_due_dates(date(2025, 1, 10), 12)) == 12


class TestRecurrenceDates:

    def test_monthly_clamps_to_short_months(self):
        dates = recurrence_dates(
            date(2025, 1, 31), Frequency.MONTHLY, date(2025, 1, 1), date(2025, 4, 30)
        )
        assert dates == [
            date(2025, 1, 31),
            date(2025, 2, 28),
            date(2025, 3, 31),
            date(2025, 4, 30),
        ]

    def test_monthly_skips_dates_before_start(self):
        dates = recurrence_dates(
            date(2024, 12, 5), Frequency.MONTHLY, date(2025, 1, 10), date(2025, 3, 31)
        )
        assert dates == [date(2025, 2, 5), date(2025, 3, 5)]

    def test_weekly_steps_seven_days(self):
        dates = recurrence_dates(
            date(2025, 1, 6), Frequency.WEEKLY, date(2025, 1, 6), date(2025, 1, 31)
        )
        assert dates == [date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27)]

    def test_biweekly_steps_fifteen_days(self):
        dates = recurrence_dates(
            date(2025, 1, 1), "biweekly", date(2025, 1, 1), date(2025, 2, 28)
        )
        assert dates == [date(2025, 1, 1), date(2025, 1, 16), date(2025, 1, 31), date(2025, 2, 15)]

    def test_yearly_clamps_leap_day(self):
        dates = recurrence_dates(
            date(2024, 2, 29), Frequency.YEARLY, date(2024, 2, 1), date(2026, 12, 31)
        )
        assert dates == [date(2024, 2, 29), date(2025, 2, 28), date(2026, 2, 28)]

    def test_end_inclusive(self):
        dates = recurrence_dates(
            date(2025, 1, 10), Frequency.MONTHLY, date(2025, 1, 10), date(2025, 3, 10)
        )
        assert dates[-1] == date(2025, 3, 10)

    def test_empty_when_no_occurrence_in_range(self):
        assert recurrence_dates(
            date(2025, 1, 20), Frequency.MONTHLY, date(2025, 1, 1), date(2025, 1, 15)
        ) == []

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            recurrence_dates(date(2025, 1, 1), Frequency.MONTHLY, date(2025, 2, 1), date(2025, 1, 1))

    def test_limit_enforced(self):
        with pytest.raises(ValueError, match="more than 5"):
            recurrence_dates(
                date(2025, 1, 1), Frequency.MONTHLY, date(2025, 1, 1), date(2025, 12, 31), limit=5
            )

    def test_limit_not_hit_at_exact_count(self):
        dates = recurrence_dates(
            date(2025, 1, 1), Frequency.MONTHLY, date(2025, 1, 1), date(2025, 5, 31), limit=5
        )
        assert len(dates) == 5
