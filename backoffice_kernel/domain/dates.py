"""
Calendar arithmetic for due dates, installments and recurring series.

All functions are pure and operate on ``datetime.date``.  Day-of-month
anchoring clamps to the last day of short months: an anchor of the 31st
yields Feb 28/29, Apr 30 and so on, and returns to the 31st when the month
allows it.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from backoffice_kernel.domain.values import Frequency

_STEP_DAYS = {
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 15,
}

MONTH_NAMES = (
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
)


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def first_day_of_month(year: int, month: int) -> date:
    return date(year, month, 1)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Inclusive (first, last) dates of the month."""
    return first_day_of_month(year, month), last_day_of_month(year, month)


def anchored(year: int, month: int, anchor_day: int) -> date:
    """The ``anchor_day`` of the month, clamped to its last day."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor_day, last))


def add_months(value: date, months: int, anchor_day: int | None = None) -> date:
    """Shift ``value`` by ``months`` keeping ``anchor_day`` (default: its own day)."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    return anchored(year, month + 1, anchor_day or value.day)


def installment_due_dates(first_due: date, count: int) -> list[date]:
    """Monthly due dates starting at ``first_due``, anchored on its day."""
    return [add_months(first_due, i, first_due.day) for i in range(count)]


def recurrence_dates(
    anchor: date,
    frequency: Frequency,
    start: date,
    end: date,
    limit: int | None = None,
) -> list[date]:
    """
    Occurrence dates of a recurring series within ``[start, end]``.

    Monthly and yearly occurrences fall on ``anchor.day`` (clamped).  Weekly
    and biweekly occurrences begin at ``anchor.day`` of the start month and
    step 7 or 15 days.  Dates before ``start`` are skipped.

    Raises:
        ValueError: if ``end`` precedes ``start`` or more than ``limit``
            occurrences would be produced.
    """
    if end < start:
        raise ValueError("end must not precede start")

    frequency = Frequency(frequency)
    dates: list[date] = []

    def _push(candidate: date) -> None:
        if candidate >= start:
            dates.append(candidate)
        if limit is not None and len(dates) > limit:
            raise ValueError(f"more than {limit} occurrences")

    if frequency in (Frequency.MONTHLY, Frequency.YEARLY):
        step = 1 if frequency is Frequency.MONTHLY else 12
        current = anchored(start.year, start.month, anchor.day)
        offset = 0
        while current <= end:
            _push(current)
            offset += step
            current = add_months(
                anchored(start.year, start.month, 1), offset, anchor.day
            )
    else:
        current = anchored(start.year, start.month, anchor.day)
        delta = timedelta(days=_STEP_DAYS[frequency])
        while current <= end:
            _push(current)
            current += delta
    return dates


def period_label(value: date) -> str:
    """'Março/2025' style label used in generated bill descriptions."""
    return f"{MONTH_NAMES[value.month - 1]}/{value.year}"


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be within 1..12, got {month}")
    if not 1900 <= year <= 9999:
        raise ValueError(f"year out of range: {year}")
