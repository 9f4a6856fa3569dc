"""
DTOs -- immutable read models returned by selectors.

Selectors never hand out ORM rows; callers outside the kernel (the payroll
module, scripts, tests) get these frozen dataclasses instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class CostCenterView:
    id: UUID
    code: str
    name: str
    kind: str
    parent_id: UUID | None
    is_partner: bool
    is_active: bool
    forecast_amount: Decimal
    actual_amount: Decimal
    own_forecast_amount: Decimal
    own_actual_amount: Decimal
    partner_forecast_deduction_amount: Decimal
    partner_actual_deduction_amount: Decimal
    children: tuple[CostCenterView, ...] = field(default_factory=tuple)

    @property
    def base_pay(self) -> Decimal:
        return self.forecast_amount

    def walk(self):
        """Depth-first iteration over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class PropagationMismatch:
    """A center whose aggregate differs from own + sum(children)."""

    code: str
    column: str
    stored: Decimal
    expected: Decimal


@dataclass(frozen=True)
class LedgerEntryView:
    id: UUID
    entry_date: date
    sequence: int
    direction: str
    amount: Decimal
    counterpart: str
    description: str
    cost_center_code: str | None
    bill_id: UUID | None
    running_balance: Decimal
    effect_kind: str
    processed_for_payroll: bool


@dataclass(frozen=True)
class BalanceMismatch:
    sequence: int
    stored: Decimal
    expected: Decimal


@dataclass(frozen=True)
class BillView:
    id: UUID
    kind: str
    direction: str
    description: str
    counterpart: str
    amount: Decimal
    due_date: date
    status: str
    is_paid: bool
    paid_date: date | None
    cost_center_code: str | None
    partner_responsible_id: UUID | None
    parent_id: UUID | None
    installment_number: int | None
    installment_count: int | None
    card_id: UUID | None
    is_payroll: bool
    processed_for_payroll: bool


@dataclass(frozen=True)
class BillTotals:
    """Pending and paid sums of leaf bills in a date range."""

    pending_payable: Decimal
    pending_receivable: Decimal
    paid_payable: Decimal
    paid_receivable: Decimal
    count: int
