"""
Payroll Domain Models (``backoffice_modules.payroll.models``).

Responsibility
--------------
Frozen dataclass value objects returned by the payroll module: itemised
deduction lines, a partner's compensation breakdown, snapshot summaries
and the result of a payroll run.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0")


class DeductionSource(str, Enum):
    """Where a deduction line comes from."""

    RECURRING = "recurring"
    PENDING_BILL = "pending_bill"
    PAID_BILL = "paid_bill"
    DIRECT = "direct"


@dataclass(frozen=True)
class DeductionLine:
    source: DeductionSource
    reference_id: UUID | None
    label: str
    amount: Decimal
    on_date: date | None = None

    def to_json(self) -> dict:
        return {
            "source": self.source.value,
            "reference_id": str(self.reference_id) if self.reference_id else None,
            "label": self.label,
            "amount": str(self.amount),
            "date": self.on_date.isoformat() if self.on_date else None,
        }


@dataclass(frozen=True)
class CompensationBreakdown:
    """
    Net pay of one partner for one period, with every deduction itemised.

        forecast_deductions = recurring + pending bills
        actual_deductions   = paid unprocessed bills + direct deductions
        net_pay             = base_pay - (forecast + actual)
    """

    partner_id: UUID
    partner_code: str
    partner_name: str
    partner_document: str | None
    period_start: date
    period_end: date
    base_pay: Decimal
    lines: tuple[DeductionLine, ...] = field(default_factory=tuple)
    direct_total: Decimal = ZERO
    consumed_bill_ids: tuple[UUID, ...] = field(default_factory=tuple)
    consumed_entry_ids: tuple[UUID, ...] = field(default_factory=tuple)
    degraded: bool = False

    def total_of(self, *sources: DeductionSource) -> Decimal:
        return sum((line.amount for line in self.lines if line.source in sources), ZERO)

    @property
    def recurring_total(self) -> Decimal:
        return self.total_of(DeductionSource.RECURRING)

    @property
    def pending_total(self) -> Decimal:
        return self.total_of(DeductionSource.PENDING_BILL)

    @property
    def paid_total(self) -> Decimal:
        return self.total_of(DeductionSource.PAID_BILL)

    @property
    def forecast_deductions(self) -> Decimal:
        return self.recurring_total + self.pending_total

    @property
    def actual_deductions(self) -> Decimal:
        return self.paid_total + self.direct_total

    @property
    def total_deductions(self) -> Decimal:
        return self.forecast_deductions + self.actual_deductions

    @property
    def net_pay(self) -> Decimal:
        return self.base_pay - self.total_deductions

    def itemization(self) -> dict:
        """JSON-ready itemisation stored on the snapshot."""
        return {
            "recurring": [line.to_json() for line in self.lines if line.source is DeductionSource.RECURRING],
            "pending_bills": [line.to_json() for line in self.lines if line.source is DeductionSource.PENDING_BILL],
            "paid_bills": [line.to_json() for line in self.lines if line.source is DeductionSource.PAID_BILL],
            "direct": [line.to_json() for line in self.lines if line.source is DeductionSource.DIRECT],
            "direct_total": str(self.direct_total),
        }


@dataclass(frozen=True)
class RecurringDeduction:
    id: UUID
    partner_center_id: UUID
    label: str
    amount: Decimal
    is_active: bool


@dataclass(frozen=True)
class SnapshotSummary:
    id: UUID
    period_month: int
    period_year: int
    partner_center_id: UUID
    partner_name: str
    partner_document: str | None
    base_pay: Decimal
    forecast_deductions: Decimal
    actual_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    generated_bill_id: UUID | None
    is_paid: bool
    paid_date: date | None
    itemization: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PartnerFailure:
    partner_id: UUID
    partner_name: str
    error_code: str
    message: str


@dataclass(frozen=True)
class PayrollRunResult:
    month: int
    year: int
    snapshots: tuple[SnapshotSummary, ...] = field(default_factory=tuple)
    errors: tuple[PartnerFailure, ...] = field(default_factory=tuple)

    @property
    def generated_count(self) -> int:
        return len(self.snapshots)

    @property
    def is_complete(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class PayrollStatus:
    month: int
    year: int
    generated: bool
    snapshots: tuple[SnapshotSummary, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PayrollHistory:
    year: int
    snapshots: tuple[SnapshotSummary, ...] = field(default_factory=tuple)

    @property
    def total_base_pay(self) -> Decimal:
        return sum((s.base_pay for s in self.snapshots), ZERO)

    @property
    def total_deductions(self) -> Decimal:
        return sum((s.total_deductions for s in self.snapshots), ZERO)

    @property
    def total_net_pay(self) -> Decimal:
        return sum((s.net_pay for s in self.snapshots), ZERO)
