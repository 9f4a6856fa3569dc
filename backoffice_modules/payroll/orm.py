"""
Payroll ORM Persistence Models (``backoffice_modules.payroll.orm``).

Responsibility:
    SQLAlchemy ORM models for partner recurring deductions and the monthly
    payroll snapshot ("HistoricoProLabore"), plus the session hook that
    keeps a snapshot's ``is_paid`` in step with its generated bill.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs in
    ``backoffice_modules.payroll.models``.  Inherits ``TenantScopedBase``
    (id, tenant_id, created_at, updated_at, created_by_id, updated_by_id).

Invariants enforced:
    - One snapshot per (tenant, partner, year, month)
      (uq_payroll_snapshot_period).
    - Snapshot financial fields are frozen once flushed and snapshots are
      never deleted (``protect_model``); only is_paid/paid_date change, and
      only through the generated bill's payment or reversal.
    - All monetary fields use Decimal (Numeric(38,9)) -- NEVER float.

Audit relevance:
    The snapshot is the permanent record of what a partner was paid for a
    month and which bills and ledger entries were consumed to compute it.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
    inspect,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from backoffice_kernel.db.base import TenantScopedBase, UUIDString
from backoffice_kernel.db.immutability import protect_model
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.bill import Bill

logger = get_logger("modules.payroll.orm")


# ---------------------------------------------------------------------------
# RecurringDeductionModel
# ---------------------------------------------------------------------------

class RecurringDeductionModel(TenantScopedBase):
    """
    A fixed monthly deduction from a partner's pay (health plan, advance).

    Guarantees:
        - ``amount`` is strictly positive (ck_recurring_deduction_amount).
        - Only active deductions enter the net pay.
    """

    __tablename__ = "partner_recurring_deductions"

    __table_args__ = (
        Index("idx_recurring_deduction_partner", "tenant_id", "partner_center_id", "is_active"),
        CheckConstraint("amount > 0", name="ck_recurring_deduction_amount"),
    )

    partner_center_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self):
        from backoffice_modules.payroll.models import RecurringDeduction

        return RecurringDeduction(
            id=self.id,
            partner_center_id=self.partner_center_id,
            label=self.label,
            amount=self.amount,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<RecurringDeductionModel {self.label!r} {self.amount}>"


# ---------------------------------------------------------------------------
# PayrollSnapshotModel
# ---------------------------------------------------------------------------

class PayrollSnapshotModel(TenantScopedBase):
    """
    Immutable record of one partner's payroll for one month.

    Contract:
        Written once by PayrollSnapshotter.generate(); afterwards only
        ``is_paid`` and ``paid_date`` move, following the generated bill.
    """

    __tablename__ = "payroll_snapshots"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "partner_center_id",
            "period_year",
            "period_month",
            name="uq_payroll_snapshot_period",
        ),
        Index("idx_payroll_snapshot_period", "tenant_id", "period_year", "period_month"),
        Index("idx_payroll_snapshot_bill", "generated_bill_id"),
    )

    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    partner_center_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    partner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    partner_document: Mapped[str | None] = mapped_column(String(20), nullable=True)
    base_pay: Mapped[Decimal] = mapped_column(nullable=False)
    forecast_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    actual_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    itemization: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    generated_bill_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self):
        from backoffice_modules.payroll.models import SnapshotSummary

        return SnapshotSummary(
            id=self.id,
            period_month=self.period_month,
            period_year=self.period_year,
            partner_center_id=self.partner_center_id,
            partner_name=self.partner_name,
            partner_document=self.partner_document,
            base_pay=self.base_pay,
            forecast_deductions=self.forecast_deductions,
            actual_deductions=self.actual_deductions,
            total_deductions=self.total_deductions,
            net_pay=self.net_pay,
            generated_bill_id=self.generated_bill_id,
            is_paid=self.is_paid,
            paid_date=self.paid_date,
            itemization=dict(self.itemization or {}),
        )

    def __repr__(self) -> str:
        return (
            f"<PayrollSnapshotModel {self.partner_name} "
            f"{self.period_month:02d}/{self.period_year} net={self.net_pay}>"
        )


protect_model(PayrollSnapshotModel, mutable_fields={"is_paid", "paid_date"})


# ---------------------------------------------------------------------------
# Payment sync
# ---------------------------------------------------------------------------

def _sync_snapshot_payment(session: Session, flush_context, instances) -> None:
    """Copy is_paid/paid_date from dirty payroll bills to their snapshot."""
    changed = [
        obj
        for obj in session.dirty
        if isinstance(obj, Bill)
        and obj.is_payroll
        and inspect(obj).attrs.is_paid.history.has_changes()
    ]
    if not changed:
        return
    with session.no_autoflush:
        for bill in changed:
            snapshots = session.execute(
                select(PayrollSnapshotModel).where(
                    PayrollSnapshotModel.tenant_id == bill.tenant_id,
                    PayrollSnapshotModel.generated_bill_id == bill.id,
                )
            ).scalars()
            for snapshot in snapshots:
                snapshot.is_paid = bool(bill.is_paid)
                snapshot.paid_date = bill.paid_date if bill.is_paid else None
                snapshot.updated_by_id = bill.updated_by_id
                logger.info(
                    "payroll_snapshot_payment_synced",
                    extra={
                        "snapshot_id": str(snapshot.id),
                        "bill_id": str(bill.id),
                        "is_paid": snapshot.is_paid,
                    },
                )


if not event.contains(Session, "before_flush", _sync_snapshot_payment):
    event.listen(Session, "before_flush", _sync_snapshot_payment)
