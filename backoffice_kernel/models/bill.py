"""
Module: backoffice_kernel.models.bill
Responsibility: ORM persistence for bills ("contas") -- payables ("pagar")
    and receivables ("receber"), including installment groups and recurring
    series.
Architecture position: Kernel > Models.

Invariants enforced:
    - Macro bills (installment parents, recurring templates) have
      ``is_macro`` True, never reach the ledger and never enter any sum.
    - A non-cancelled group parent's amount equals the sum of its
      non-cancelled children.
    - ``partner_responsible_id`` is resolved once, at write time, from the
      bill's cost center when that center is a partner.
    - ``processed_for_payroll`` only flips False -> True.
    - ``forecast_amount`` is the forecast this row currently has booked on
      its cost center; releasing it books exactly the opposite.
    - status/is_paid/paid_date/in_ledger move together:
        pending   -> is_paid False, paid_date NULL, in_ledger False
        paid      -> is_paid True,  paid_date set,  in_ledger True
        cancelled -> is_paid False
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TenantScopedBase, UUIDString
from backoffice_kernel.domain.values import (
    BillDirection,
    BillKind,
    BillStatus,
    Frequency,
)


class Bill(TenantScopedBase):
    """
    A payable or receivable obligation.

    Contract:
        Leaves (single bills, installments, recurring instances) are the
        only bills that can be paid.  ``forecast_amount`` is the forecast
        this row booked (groups book on the parent), so deleting or
        cancelling reverts exactly what was booked.

    Non-goals:
        - Card statement rows; statements are recomputed from bills by the
          StatementAggregator.
    """

    __tablename__ = "bills"

    __table_args__ = (
        Index("idx_bill_tenant_due", "tenant_id", "due_date"),
        Index("idx_bill_parent", "parent_id"),
        Index("idx_bill_partner", "tenant_id", "partner_responsible_id", "status"),
        Index("idx_bill_card", "tenant_id", "card_id", "due_date"),
        CheckConstraint("amount > 0", name="ck_bill_amount_positive"),
    )

    direction: Mapped[BillDirection] = mapped_column(String(10), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    counterpart: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[BillStatus] = mapped_column(
        String(20), default=BillStatus.PENDING.value, nullable=False
    )

    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    in_ledger: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    cost_center_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    cost_center_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    partner_responsible_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    kind: Mapped[BillKind] = mapped_column(
        String(30), default=BillKind.SINGLE.value, nullable=False
    )

    is_macro: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    installment_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    installment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    frequency: Mapped[Frequency | None] = mapped_column(String(20), nullable=True)

    recurrence_start: Mapped[date | None] = mapped_column(Date, nullable=True)

    recurrence_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    card_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_payroll: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    processed_for_payroll: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    forecast_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Bill {self.kind} {self.description!r} {self.amount} {self.status}>"

    @property
    def is_cancelled(self) -> bool:
        return self.status == BillStatus.CANCELLED

    @property
    def bill_direction(self) -> BillDirection:
        return BillDirection(self.direction)
