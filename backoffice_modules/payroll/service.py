"""
Payroll Services (``backoffice_modules.payroll.service``).

Responsibility
--------------
``PartnerPayrollService`` registers partners and manages their recurring
deductions.  ``PayrollSnapshotter`` closes a month: for every active
partner it creates the payroll bill, writes the immutable snapshot, marks
the consumed bills and ledger entries processed and resets the partner's
period accumulators.

Architecture position
---------------------
**Modules layer** -- orchestrates kernel services (CostCenterService,
LedgerService, BillService) and the read-only PartnerCompensation.  Kernel
limits come from ``PayrollConfig``; the kernel never reads configuration.

Invariants enforced
-------------------
* Idempotent generation: a period with any snapshot cannot be generated
  again (PayrollAlreadyGeneratedError, checked before any write while
  holding the tenant lock).
* Exactly one snapshot per (partner, period) (unique constraint).
* No double counting: every paid bill and direct entry consumed by a
  snapshot is flagged ``processed_for_payroll`` in the same SAVEPOINT.

Failure modes
-------------
* NoActivePartnersError when the tenant has no active partner.
* A partner whose generation fails is rolled back alone and reported in
  ``PayrollRunResult.errors``; the run continues with the next partner.
* A failed commit rolls the run back and propagates; with ``commit=False``
  the caller owns the transaction and nothing is rolled back here.

Audit relevance
---------------
``payroll_partner_generated``, ``payroll_partner_failed`` and
``payroll_generated`` log lines; a ``payroll_generated`` notification after
commit.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from backoffice_kernel.db.types import ZERO, round_money
from backoffice_kernel.domain.collaborators import Notifier, StatementAggregator
from backoffice_kernel.domain.commands import (
    AddRecurringDeduction,
    CreateBill,
    CreateCostCenter,
    PayrollPeriod,
    UpdateBill,
    UpdateRecurringDeduction,
)
from backoffice_kernel.domain.dates import month_bounds
from backoffice_kernel.domain.values import BillDirection, CenterKind
from backoffice_kernel.exceptions import (
    BackofficeError,
    InvalidOperationError,
    NoActivePartnersError,
    NonPositiveAmountError,
    NotAPartnerError,
    PayrollAlreadyGeneratedError,
    RecurringDeductionNotFoundError,
)
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.models.cost_center import CostCenter
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.services.bill_service import BillService
from backoffice_kernel.services.cost_center_service import CostCenterService
from backoffice_kernel.services.ledger_service import LedgerService
from backoffice_kernel.services.notification_outbox import NotificationOutbox
from backoffice_kernel.services.tenant_lock import TenantLockService
from backoffice_modules.payroll.compensation import PartnerCompensation
from backoffice_modules.payroll.config import PayrollConfig
from backoffice_modules.payroll.models import (
    CompensationBreakdown,
    PartnerFailure,
    PayrollHistory,
    PayrollRunResult,
    PayrollStatus,
    RecurringDeduction,
    SnapshotSummary,
)
from backoffice_modules.payroll.orm import PayrollSnapshotModel, RecurringDeductionModel

logger = get_logger("modules.payroll.service")


def build_kernel_services(session, context, config: PayrollConfig, clock=None,
                          statements: StatementAggregator | None = None,
                          notifier: Notifier | None = None):
    """Kernel services sharing one session, wired with ``config`` limits."""
    cost_centers = CostCenterService(
        session,
        context,
        clock,
        payroll_parent_code=config.payroll_parent_code,
        payroll_parent_name=config.payroll_parent_name,
    )
    ledger = LedgerService(
        session,
        context,
        clock,
        cost_centers=cost_centers,
        max_rebuild_entries=config.max_rebuild_entries,
        rebuild_chunk_size=config.rebuild_chunk_size,
    )
    bills = BillService(
        session,
        context,
        clock,
        cost_centers=cost_centers,
        ledger=ledger,
        statements=statements,
        notifier=notifier,
        max_installments=config.max_installments,
        max_recurring_occurrences=config.max_recurring_occurrences,
    )
    return cost_centers, ledger, bills


class PartnerPayrollService(BaseService[RecurringDeductionModel]):
    """
    Partner registration and recurring deduction maintenance.

    Contract:
        Partners are cost centers flagged ``is_partner`` under the payroll
        parent; their base pay is their own forecast.
    """

    def __init__(self, session, context, clock=None, config: PayrollConfig | None = None):
        super().__init__(session, context, clock)
        self.config = config or PayrollConfig()
        self.cost_centers = CostCenterService(
            session,
            context,
            self.clock,
            payroll_parent_code=self.config.payroll_parent_code,
            payroll_parent_name=self.config.payroll_parent_name,
        )

    def register_partner(
        self,
        name: str,
        document: str,
        base_pay: Decimal,
        code: str | None = None,
    ) -> CostCenter:
        """
        Create a partner center under the payroll parent.

        Without ``code`` one is derived from the first name ("PL-MARIA"),
        suffixed "-1", "-2", ... until unique.
        """
        with self._mutation("partner_register"):
            if not code:
                code = self._free_code(f"PL-{name.strip().split()[0].upper()}")
            partner = self.cost_centers.create_center(
                CreateCostCenter(
                    name=name,
                    code=code,
                    kind=CenterKind.EXPENSE,
                    is_partner=True,
                    partner_document=document,
                    base_pay=base_pay,
                )
            )
            logger.info(
                "partner_registered",
                extra={"center_code": partner.code, "base_pay": str(partner.base_pay)},
            )
        return partner

    def _free_code(self, base: str) -> str:
        code, counter = base, 1
        while self.cost_centers.find(code) is not None:
            code = f"{base}-{counter}"
            counter += 1
        return code

    def add_recurring_deduction(self, command: AddRecurringDeduction) -> RecurringDeduction:
        with self._mutation("recurring_deduction_add", center_code=command.partner_code):
            partner = self.cost_centers.get(command.partner_code)
            if not partner.is_partner:
                raise NotAPartnerError(partner.code)
            row = self._new(
                RecurringDeductionModel,
                partner_center_id=partner.id,
                label=command.label,
                amount=command.amount,
                is_active=True,
            )
            self.session.flush()
            logger.info(
                "recurring_deduction_added",
                extra={"center_code": partner.code, "label": row.label, "amount": str(row.amount)},
            )
        return row.to_dto()

    def update_recurring_deduction(
        self, deduction_id: UUID, command: UpdateRecurringDeduction
    ) -> RecurringDeduction:
        with self._mutation("recurring_deduction_update"):
            row = self._get_deduction(deduction_id)
            if command.label is not None:
                row.label = command.label
            if command.amount is not None:
                row.amount = command.amount
            if command.is_active is not None:
                row.is_active = command.is_active
            self._touch(row)
            logger.info(
                "recurring_deduction_updated",
                extra={"deduction_id": str(row.id), "amount": str(row.amount), "is_active": row.is_active},
            )
        return row.to_dto()

    def remove_recurring_deduction(self, deduction_id: UUID) -> None:
        with self._mutation("recurring_deduction_remove"):
            row = self._get_deduction(deduction_id)
            self.session.delete(row)
            logger.info("recurring_deduction_removed", extra={"deduction_id": str(row.id)})

    def list_recurring_deductions(self, partner_id: UUID, active_only: bool = False) -> list[RecurringDeduction]:
        stmt = self._scoped(RecurringDeductionModel).where(
            RecurringDeductionModel.partner_center_id == partner_id
        )
        if active_only:
            stmt = stmt.where(RecurringDeductionModel.is_active.is_(True))
        stmt = stmt.order_by(RecurringDeductionModel.created_at, RecurringDeductionModel.label)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def _get_deduction(self, deduction_id: UUID) -> RecurringDeductionModel:
        row = self._get_scoped(RecurringDeductionModel, deduction_id)
        if row is None:
            raise RecurringDeductionNotFoundError(str(deduction_id))
        return row


class PayrollSnapshotter(BaseService[PayrollSnapshotModel]):
    """
    Monthly payroll close.

    Contract:
        ``generate()`` owns the transaction: it commits on success (also
        when some partners failed) and rolls back only when that commit fails.
        Pass ``commit=False`` to leave the commit to the caller.

    Guarantees:
        - Per partner: bill, snapshot, processed flags and accumulator
          reset land together or not at all.
    """

    def __init__(
        self,
        session,
        context,
        clock=None,
        config: PayrollConfig | None = None,
        statements: StatementAggregator | None = None,
        notifier: Notifier | None = None,
    ):
        super().__init__(session, context, clock)
        self.config = config or PayrollConfig()
        self.cost_centers, self.ledger, self.bills = build_kernel_services(
            session, context, self.config, self.clock, statements=statements, notifier=notifier
        )
        self.compensation = PartnerCompensation(
            session, context.tenant_id, decimal_places=self.config.decimal_places
        )
        self.outbox = NotificationOutbox(session, notifier)

    # ------------------------------------------------------------------
    # Generate
    # ------------------------------------------------------------------

    def generate(self, month: int, year: int, commit: bool = True) -> PayrollRunResult:
        period = PayrollPeriod(month, year)
        start, end = month_bounds(period.year, period.month)

        with LogContext.bind(operation="payroll_generate", **self.context.log_fields()):
            TenantLockService(self.session).acquire(self.tenant_id, "payroll_generate", self.clock.now())
            if self._period_snapshots(period.month, period.year):
                raise PayrollAlreadyGeneratedError(period.month, period.year)
            partners = self.compensation.active_partners()
            if not partners:
                raise NoActivePartnersError(str(self.tenant_id))

            snapshots: list[SnapshotSummary] = []
            errors: list[PartnerFailure] = []
            for partner in partners:
                try:
                    snapshot = self._generate_for(partner, period, start, end)
                except Exception as exc:
                    failure = PartnerFailure(
                        partner_id=partner.id,
                        partner_name=partner.name,
                        error_code=exc.code if isinstance(exc, BackofficeError) else type(exc).__name__,
                        message=str(exc),
                    )
                    errors.append(failure)
                    logger.warning(
                        "payroll_partner_failed",
                        exc_info=True,
                        extra={
                            "partner_code": partner.code,
                            "error_code": failure.error_code,
                            "error": failure.message,
                        },
                    )
                    continue
                snapshots.append(snapshot.to_dto())

            result = PayrollRunResult(
                month=period.month,
                year=period.year,
                snapshots=tuple(snapshots),
                errors=tuple(errors),
            )
            if snapshots:
                self.outbox.enqueue(
                    "payroll_generated",
                    {
                        "tenant_id": str(self.tenant_id),
                        "month": period.month,
                        "year": period.year,
                        "generated": len(snapshots),
                        "failed": len(errors),
                        "total_net_pay": str(sum((s.net_pay for s in snapshots), ZERO)),
                    },
                )
            logger.info(
                "payroll_generated",
                extra={
                    "month": period.month,
                    "year": period.year,
                    "generated": len(snapshots),
                    "failed": len(errors),
                },
            )
            if commit:
                try:
                    self.session.commit()
                except Exception:
                    logger.exception(
                        "payroll_run_failed", extra={"month": period.month, "year": period.year}
                    )
                    self.session.rollback()
                    raise
        return result

    def _generate_for(
        self, partner: CostCenter, period: PayrollPeriod, start: date, end: date
    ) -> PayrollSnapshotModel:
        with self._mutation("payroll_partner_generate", partner_code=partner.code):
            breakdown = self.compensation.compute(partner.id, start, end)
            net_pay = round_money(breakdown.net_pay, self.config.decimal_places)

            bill = None
            if net_pay > 0:
                bill = self.bills.create_single(
                    CreateBill(
                        direction=BillDirection.PAYABLE,
                        description=(
                            f"{self.config.bill_description} {partner.name} - "
                            f"{period.month:02d}/{period.year}"
                        ),
                        counterpart=partner.name,
                        category=self.config.bill_category,
                        cost_center_code=partner.code,
                        notes=_bill_notes(breakdown),
                        amount=net_pay,
                        due_date=end,
                    ),
                    is_payroll=True,
                )
            else:
                logger.warning(
                    "payroll_bill_skipped",
                    extra={"partner_code": partner.code, "net_pay": str(net_pay)},
                )

            snapshot = self._new(
                PayrollSnapshotModel,
                period_month=period.month,
                period_year=period.year,
                partner_center_id=partner.id,
                partner_name=partner.name,
                partner_document=partner.partner_document,
                base_pay=breakdown.base_pay,
                forecast_deductions=breakdown.forecast_deductions,
                actual_deductions=breakdown.actual_deductions,
                total_deductions=breakdown.total_deductions,
                net_pay=net_pay,
                itemization=breakdown.itemization(),
                generated_bill_id=bill.id if bill is not None else None,
                is_paid=False,
                paid_date=None,
            )

            if breakdown.consumed_bill_ids:
                self.bills.mark_processed_for_payroll(list(breakdown.consumed_bill_ids))
            if breakdown.consumed_entry_ids:
                self.ledger.mark_processed_for_payroll(list(breakdown.consumed_entry_ids))
            # Payments counted in the closed period stay counted when reversed.
            settled = [entry.id for entry in self.ledger.open_actual_entries(partner.id)]
            if settled:
                self.ledger.mark_processed_for_payroll(settled)
            self.cost_centers.reset_partner_period(partner)
            self.session.flush()

            logger.info(
                "payroll_partner_generated",
                extra={
                    "partner_code": partner.code,
                    "base_pay": str(breakdown.base_pay),
                    "total_deductions": str(breakdown.total_deductions),
                    "net_pay": str(net_pay),
                    "consumed_bills": len(breakdown.consumed_bill_ids),
                    "consumed_entries": len(breakdown.consumed_entry_ids),
                    "settled_entries": len(settled),
                },
            )
        return snapshot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _period_snapshots(self, month: int, year: int) -> list[PayrollSnapshotModel]:
        return list(
            self.session.execute(
                self._scoped(PayrollSnapshotModel)
                .where(
                    PayrollSnapshotModel.period_month == month,
                    PayrollSnapshotModel.period_year == year,
                )
                .order_by(PayrollSnapshotModel.partner_name)
            ).scalars()
        )

    def status(self, month: int, year: int) -> PayrollStatus:
        period = PayrollPeriod(month, year)
        rows = self._period_snapshots(period.month, period.year)
        return PayrollStatus(
            month=period.month,
            year=period.year,
            generated=bool(rows),
            snapshots=tuple(row.to_dto() for row in rows),
        )

    def history(self, year: int, partner_id: UUID | None = None) -> PayrollHistory:
        stmt = self._scoped(PayrollSnapshotModel).where(PayrollSnapshotModel.period_year == year)
        if partner_id is not None:
            stmt = stmt.where(PayrollSnapshotModel.partner_center_id == partner_id)
        stmt = stmt.order_by(PayrollSnapshotModel.period_month, PayrollSnapshotModel.partner_name)
        return PayrollHistory(
            year=year,
            snapshots=tuple(row.to_dto() for row in self.session.execute(stmt).scalars()),
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_payroll_bill(self, partner_id: UUID, month: int | None = None, year: int | None = None):
        """
        Re-price the pending payroll bill of a generated period after the
        partner's base pay or recurring deductions changed.

        Bills and direct entries consumed by the snapshot stay as they were
        when it was written; only base pay and recurring deductions are
        taken fresh.  Defaults to the clock's current month.
        """
        today = self.clock.today()
        period = PayrollPeriod(month or today.month, year or today.year)
        with self._mutation("payroll_bill_refresh"):
            partner = self.compensation.partner(partner_id)
            snapshot = self.session.execute(
                self._scoped(PayrollSnapshotModel).where(
                    PayrollSnapshotModel.partner_center_id == partner.id,
                    PayrollSnapshotModel.period_month == period.month,
                    PayrollSnapshotModel.period_year == period.year,
                )
            ).scalar_one_or_none()
            if snapshot is None or snapshot.generated_bill_id is None:
                raise InvalidOperationError(
                    f"No payroll bill for {partner.code} in {period.month:02d}/{period.year}"
                )

            recurring_then = sum(
                (Decimal(line["amount"]) for line in snapshot.itemization.get("recurring", [])),
                ZERO,
            )
            consumed = snapshot.total_deductions - recurring_then
            start, end = month_bounds(period.year, period.month)
            current = self.compensation.compute(partner.id, start, end)
            net_pay = round_money(
                current.base_pay - (current.recurring_total + consumed),
                self.config.decimal_places,
            )
            if net_pay <= 0:
                raise NonPositiveAmountError("net_pay", str(net_pay))

            bill = self.bills.get(snapshot.generated_bill_id)
            previous = bill.amount
            if net_pay != previous:
                bill = self.bills.update(bill.id, UpdateBill(amount=net_pay))
            logger.info(
                "payroll_bill_refreshed",
                extra={
                    "partner_code": partner.code,
                    "bill_id": str(bill.id),
                    "previous_amount": str(previous),
                    "amount": str(bill.amount),
                },
            )
        return bill


def _bill_notes(breakdown: CompensationBreakdown) -> str:
    return (
        f"Pró-labore Base: R$ {breakdown.base_pay:.2f} | "
        f"Descontos Previstos: R$ {breakdown.forecast_deductions:.2f} | "
        f"Descontos Reais: R$ {breakdown.actual_deductions:.2f} | "
        f"Total Descontos: R$ {breakdown.total_deductions:.2f} | "
        f"Líquido: R$ {breakdown.net_pay:.2f}"
    )
