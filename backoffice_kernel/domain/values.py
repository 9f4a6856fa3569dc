"""
Values -- enumerations and small immutable value objects of the back office.

Responsibility:
    Names every closed set the kernel stores as a string column (center
    kinds, bill kinds/statuses, ledger directions, recurrence frequencies,
    accumulator effect kinds) and the ``AccumulatorEffect`` value that a
    ledger entry records so it can be undone exactly.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models/, services/,
    selectors/ and modules.  MUST NOT import from any of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class CenterKind(str, Enum):
    EXPENSE = "expense"
    REVENUE = "revenue"


class EntryDirection(str, Enum):
    """Cash movement direction in the ledger."""

    IN = "in"
    OUT = "out"


class BillDirection(str, Enum):
    """Payable ("pagar") or receivable ("receber")."""

    PAYABLE = "pagar"
    RECEIVABLE = "receber"

    @property
    def ledger_direction(self) -> EntryDirection:
        return EntryDirection.OUT if self is BillDirection.PAYABLE else EntryDirection.IN


class BillKind(str, Enum):
    SINGLE = "single"
    INSTALLMENT_PARENT = "installment_parent"
    INSTALLMENT = "installment"
    RECURRING_TEMPLATE = "recurring_template"
    RECURRING_INSTANCE = "recurring_instance"

    @property
    def is_macro(self) -> bool:
        """Parents and templates group other bills and never move cash."""
        return self in (BillKind.INSTALLMENT_PARENT, BillKind.RECURRING_TEMPLATE)


class BillStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurringDeleteScope(str, Enum):
    """Which instances of a recurring series a delete touches."""

    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


class EffectKind(str, Enum):
    """Which cost center accumulator a cash movement changed."""

    NONE = "none"
    CENTER_ACTUAL = "center_actual"
    PARTNER_ACTUAL = "partner_actual"
    PARTNER_DEDUCTION = "partner_deduction"


@dataclass(frozen=True)
class AccumulatorEffect:
    """
    The accumulator change caused by one cash movement.

    Stored on the ledger entry so that reversing or editing the entry
    applies the exact opposite, whatever the tree looks like by then.
    """

    kind: EffectKind
    center_id: UUID | None = None
    amount: Decimal = Decimal("0")

    @classmethod
    def none(cls) -> AccumulatorEffect:
        return cls(kind=EffectKind.NONE)

    @property
    def is_noop(self) -> bool:
        return self.kind is EffectKind.NONE or self.center_id is None or not self.amount

    def inverted(self) -> AccumulatorEffect:
        return AccumulatorEffect(kind=self.kind, center_id=self.center_id, amount=-self.amount)


@dataclass(frozen=True)
class TenantContext:
    """
    Caller identity injected into every service.

    ``tenant_id`` scopes every query; ``actor_id`` is written to the audit
    columns of every row the caller creates or changes.
    """

    tenant_id: UUID
    actor_id: UUID

    def log_fields(self) -> dict[str, str]:
        return {"tenant_id": str(self.tenant_id), "actor_id": str(self.actor_id)}
