"""
Module: backoffice_kernel.models.ledger
Responsibility: ORM persistence for the cash-flow ledger ("fluxo de caixa")
    and the per-tenant sequence counter that orders same-day entries.
Architecture position: Kernel > Models.

Invariants enforced:
    - Ordering is (entry_date, sequence); sequence is unique per tenant
      (uq_ledger_entry_tenant_sequence) and strictly increasing in insertion
      order.
    - Running balance: for entries in that order,
        running_balance(i) == running_balance(i-1) + signed(amount(i))
      with running_balance(-1) == 0.  Maintained by LedgerService.
    - amount > 0; the sign comes from ``direction``.
    - effect_kind / effect_center_id / effect_amount record the accumulator
      change the entry caused so it can be undone exactly.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TenantScopedBase, UUIDString
from backoffice_kernel.domain.values import (
    AccumulatorEffect,
    EffectKind,
    EntryDirection,
)

_ZERO = Decimal("0")


class LedgerEntry(TenantScopedBase):
    """
    One posted cash movement.

    Contract:
        An entry linked to a bill (``bill_id``) exists exactly while that
        bill is paid.  Entries without a bill are direct postings.

    Guarantees:
        - ``signed_amount`` is +amount for "in", -amount for "out".
        - ``processed_for_payroll`` only flips False -> True.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sequence", name="uq_ledger_entry_tenant_sequence"),
        Index("idx_ledger_entry_order", "tenant_id", "entry_date", "sequence"),
        Index("idx_ledger_entry_bill", "bill_id"),
        CheckConstraint("amount > 0", name="ck_ledger_entry_amount_positive"),
    )

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    direction: Mapped[EntryDirection] = mapped_column(String(3), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    counterpart: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    description: Mapped[str] = mapped_column(String(4000), default="", nullable=False)

    cost_center_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    bill_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    running_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )

    effect_kind: Mapped[EffectKind] = mapped_column(
        String(30), default=EffectKind.NONE.value, nullable=False
    )
    effect_center_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    effect_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )

    processed_for_payroll: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry #{self.sequence} {self.entry_date} "
            f"{self.direction} {self.amount}>"
        )

    @property
    def signed_amount(self) -> Decimal:
        if self.direction == EntryDirection.IN:
            return self.amount
        return -self.amount

    @property
    def effect(self) -> AccumulatorEffect:
        return AccumulatorEffect(
            kind=EffectKind(self.effect_kind),
            center_id=self.effect_center_id,
            amount=self.effect_amount or _ZERO,
        )

    @effect.setter
    def effect(self, value: AccumulatorEffect) -> None:
        self.effect_kind = value.kind.value
        self.effect_center_id = value.center_id
        self.effect_amount = value.amount


class LedgerSequence(TenantScopedBase):
    """Per-tenant insertion counter backing LedgerEntry.sequence."""

    __tablename__ = "ledger_sequences"

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_ledger_sequence_tenant"),
    )

    next_value: Mapped[int] = mapped_column(BigInteger, default=1, nullable=False)
