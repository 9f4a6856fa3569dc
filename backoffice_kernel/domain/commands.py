"""
Commands -- validated request payloads for every mutating operation.

Responsibility:
    Each public mutating operation of the kernel takes one of these frozen
    dataclasses.  Validation happens in ``__post_init__`` so that no service
    ever sees a negative amount, an unknown kind or a missing description.
    Amounts are normalized to Decimal rounded with ``round_money()``; codes
    are upper-cased.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Failure modes:
    - NonPositiveAmountError, MissingFieldError, InvalidKindError,
      InvalidFrequencyError, InvalidPeriodError (all ValidationError).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from backoffice_kernel.db.types import round_money, to_money
from backoffice_kernel.domain.dates import validate_period
from backoffice_kernel.domain.values import (
    BillDirection,
    CenterKind,
    EntryDirection,
    Frequency,
)
from backoffice_kernel.exceptions import (
    InvalidFrequencyError,
    InvalidKindError,
    InvalidPeriodError,
    MissingFieldError,
    NonPositiveAmountError,
    ValidationError,
)


def _set(obj: Any, name: str, value: Any) -> None:
    object.__setattr__(obj, name, value)


def _amount(obj: Any, name: str, *, required: bool = True) -> None:
    raw = getattr(obj, name)
    if raw is None:
        if required:
            raise MissingFieldError(name)
        return
    try:
        value = round_money(to_money(raw))
    except (InvalidOperation, TypeError) as exc:
        raise NonPositiveAmountError(name, str(raw)) from exc
    if value <= 0:
        raise NonPositiveAmountError(name, str(value))
    _set(obj, name, value)


def _text(obj: Any, name: str, *, required: bool = True) -> None:
    raw = getattr(obj, name)
    value = raw.strip() if isinstance(raw, str) else raw
    if required and not value:
        raise MissingFieldError(name)
    _set(obj, name, value)


def _code(obj: Any, name: str) -> None:
    raw = getattr(obj, name)
    if raw is None:
        return
    value = raw.strip().upper()
    _set(obj, name, value or None)


def _enum(obj: Any, name: str, enum_type: type, error: type = InvalidKindError) -> None:
    raw = getattr(obj, name)
    try:
        _set(obj, name, enum_type(raw))
    except ValueError as exc:
        allowed = tuple(member.value for member in enum_type)
        raise error(name, str(raw), allowed) from exc


# ---------------------------------------------------------------------------
# Cost centers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateCostCenter:
    name: str
    code: str
    kind: CenterKind | str = CenterKind.EXPENSE
    parent_code: str | None = None
    is_partner: bool = False
    partner_document: str | None = None
    base_pay: Decimal | None = None

    def __post_init__(self):
        _text(self, "name")
        _text(self, "code")
        _code(self, "code")
        _code(self, "parent_code")
        _enum(self, "kind", CenterKind)
        if self.base_pay is not None:
            value = round_money(to_money(self.base_pay))
            if value < 0:
                raise NonPositiveAmountError("base_pay", str(value))
            _set(self, "base_pay", value)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostLedgerEntry:
    entry_date: date
    direction: EntryDirection | str
    amount: Decimal
    counterpart: str = ""
    description: str = ""
    cost_center_code: str | None = None
    bill_id: UUID | None = None

    def __post_init__(self):
        if self.entry_date is None:
            raise MissingFieldError("entry_date")
        _enum(self, "direction", EntryDirection)
        _amount(self, "amount")
        _text(self, "counterpart", required=False)
        _text(self, "description", required=False)
        _code(self, "cost_center_code")


@dataclass(frozen=True)
class EditLedgerEntry:
    """Fields left as None keep their current value."""

    amount: Decimal | None = None
    entry_date: date | None = None
    counterpart: str | None = None
    description: str | None = None
    cost_center_code: str | None = None

    def __post_init__(self):
        _amount(self, "amount", required=False)
        _text(self, "counterpart", required=False)
        _text(self, "description", required=False)
        _code(self, "cost_center_code")


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _BillFields:
    direction: BillDirection | str
    description: str
    counterpart: str = ""
    category: str | None = None
    cost_center_code: str | None = None
    card_id: UUID | None = None
    notes: str | None = None

    def _validate_common(self):
        _enum(self, "direction", BillDirection)
        _text(self, "description")
        _text(self, "counterpart", required=False)
        _text(self, "category", required=False)
        _code(self, "cost_center_code")


@dataclass(frozen=True)
class CreateBill(_BillFields):
    amount: Decimal = field(default=None)
    due_date: date = field(default=None)
    paid: bool = False
    paid_date: date | None = None

    def __post_init__(self):
        self._validate_common()
        _amount(self, "amount")
        if self.due_date is None:
            raise MissingFieldError("due_date")


@dataclass(frozen=True)
class CreateInstallmentSet(_BillFields):
    """
    Either ``total_amount`` (split in cents, remainder on the last
    installment) or explicit per-installment ``amounts``.
    """

    first_due_date: date = field(default=None)
    installment_count: int = 0
    total_amount: Decimal | None = None
    amounts: tuple[Decimal, ...] | None = None

    def __post_init__(self):
        self._validate_common()
        if self.first_due_date is None:
            raise MissingFieldError("first_due_date")
        if self.amounts is not None:
            normalized = tuple(round_money(to_money(a)) for a in self.amounts)
            if any(a <= 0 for a in normalized):
                raise NonPositiveAmountError("amounts", ",".join(map(str, normalized)))
            _set(self, "amounts", normalized)
            _set(self, "installment_count", len(normalized))
            _set(self, "total_amount", sum(normalized, Decimal("0")))
        else:
            _amount(self, "total_amount")
        if self.installment_count < 2:
            raise ValidationError("installment_count must be at least 2")


@dataclass(frozen=True)
class CreateRecurringBill(_BillFields):
    """
    ``amount`` is per instance.  ``anchor_date`` sets the day-of-month the
    instances fall on and defaults to ``start_date``.
    """

    amount: Decimal = field(default=None)
    frequency: Frequency | str = Frequency.MONTHLY
    start_date: date = field(default=None)
    end_date: date = field(default=None)
    anchor_date: date | None = None

    def __post_init__(self):
        self._validate_common()
        _amount(self, "amount")
        _enum(self, "frequency", Frequency, InvalidFrequencyError)
        if self.start_date is None:
            raise MissingFieldError("start_date")
        if self.end_date is None:
            raise MissingFieldError("end_date")
        if self.end_date < self.start_date:
            raise InvalidPeriodError(
                f"end_date {self.end_date} precedes start_date {self.start_date}"
            )
        if self.anchor_date is None:
            _set(self, "anchor_date", self.start_date)


@dataclass(frozen=True)
class UpdateBill:
    """Edits a pending leaf bill.  None keeps the current value."""

    amount: Decimal | None = None
    due_date: date | None = None
    description: str | None = None
    counterpart: str | None = None
    category: str | None = None

    def __post_init__(self):
        _amount(self, "amount", required=False)
        if self.description is not None:
            _text(self, "description")
        _text(self, "counterpart", required=False)
        _text(self, "category", required=False)


@dataclass(frozen=True)
class EditInstallmentSet:
    """
    Re-total and/or re-count the unpaid installments of a set.

    ``total_amount`` is the new total of the whole set, paid installments
    included; ``installment_count`` is the new number of installments.
    """

    total_amount: Decimal | None = None
    installment_count: int | None = None
    description: str | None = None

    def __post_init__(self):
        _amount(self, "total_amount", required=False)
        if self.installment_count is not None and self.installment_count < 1:
            raise ValidationError("installment_count must be at least 1")
        if self.description is not None:
            _text(self, "description")


# ---------------------------------------------------------------------------
# Partners and payroll
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddRecurringDeduction:
    partner_code: str
    label: str
    amount: Decimal

    def __post_init__(self):
        _text(self, "partner_code")
        _code(self, "partner_code")
        _text(self, "label")
        _amount(self, "amount")


@dataclass(frozen=True)
class UpdateRecurringDeduction:
    label: str | None = None
    amount: Decimal | None = None
    is_active: bool | None = None

    def __post_init__(self):
        if self.label is not None:
            _text(self, "label")
        _amount(self, "amount", required=False)


@dataclass(frozen=True)
class PayrollPeriod:
    month: int
    year: int

    def __post_init__(self):
        try:
            validate_period(self.month, self.year)
        except ValueError as exc:
            raise InvalidPeriodError(str(exc)) from exc
