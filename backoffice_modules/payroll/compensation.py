"""
PartnerCompensation (``backoffice_modules.payroll.compensation``).

Responsibility
--------------
Pure read computation of a partner's net pay ("pró-labore líquido") for a
period:

    net_pay = base_pay - (
          sum of active recurring deductions
        + sum of pending leaf bills the partner is responsible for, due in period
        + sum of paid leaf bills the partner is responsible for, due in period,
          not yet processed by a payroll run
        + partner_actual_deduction_amount (direct ledger postings)
    )

Payroll bills, cancelled bills and bills already processed by a payroll
run are excluded; macro bills never count.

Architecture position
---------------------
**Modules layer** -- read side.  Uses kernel models and selectors; never
writes.

Failure modes
-------------
* PartnerNotFoundError for unknown ids, ids of another tenant, or centers
  that are not partners.
* ``overview()`` never raises for a single partner: a failed computation
  yields a zero-deduction breakdown flagged ``degraded`` and a
  ``partner_compensation_degraded`` warning.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import ZERO, round_money
from backoffice_kernel.domain.dates import month_bounds
from backoffice_kernel.domain.values import BillStatus, EffectKind
from backoffice_kernel.exceptions import BackofficeError, PartnerNotFoundError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.bill import Bill
from backoffice_kernel.models.cost_center import CostCenter
from backoffice_kernel.models.ledger import LedgerEntry
from backoffice_modules.payroll.models import (
    CompensationBreakdown,
    DeductionLine,
    DeductionSource,
)
from backoffice_modules.payroll.orm import RecurringDeductionModel

logger = get_logger("modules.payroll.compensation")


class PartnerCompensation:
    """
    Net pay calculator.

    Contract:
        Read-only.  Results reflect the caller's session, including
        unflushed changes made earlier in the same transaction.
    """

    def __init__(self, session: Session, tenant_id: UUID, decimal_places: int = 2):
        self.session = session
        self.tenant_id = tenant_id
        self.decimal_places = decimal_places

    def partner(self, partner_id: UUID) -> CostCenter:
        center = self.session.get(CostCenter, partner_id)
        if center is None or center.tenant_id != self.tenant_id or not center.is_partner:
            raise PartnerNotFoundError(str(partner_id))
        return center

    def active_partners(self) -> list[CostCenter]:
        return list(
            self.session.execute(
                select(CostCenter)
                .where(
                    CostCenter.tenant_id == self.tenant_id,
                    CostCenter.is_partner.is_(True),
                    CostCenter.is_active.is_(True),
                )
                .order_by(CostCenter.code)
            ).scalars()
        )

    def net_pay(self, partner_id: UUID, period_start: date, period_end: date) -> Decimal:
        return self.compute(partner_id, period_start, period_end).net_pay

    def compute(self, partner_id: UUID, period_start: date, period_end: date) -> CompensationBreakdown:
        partner = self.partner(partner_id)
        return self._compute(partner, period_start, period_end)

    def _compute(self, partner: CostCenter, period_start: date, period_end: date) -> CompensationBreakdown:
        lines: list[DeductionLine] = []

        for deduction in self._recurring(partner):
            lines.append(
                DeductionLine(DeductionSource.RECURRING, deduction.id, deduction.label, deduction.amount)
            )

        consumed_bills = []
        for bill in self._bills(partner, period_start, period_end):
            if bill.is_paid:
                consumed_bills.append(bill.id)
                lines.append(
                    DeductionLine(
                        DeductionSource.PAID_BILL, bill.id, bill.description, bill.amount, bill.paid_date
                    )
                )
            else:
                lines.append(
                    DeductionLine(
                        DeductionSource.PENDING_BILL, bill.id, bill.description, bill.amount, bill.due_date
                    )
                )

        consumed_entries = []
        for entry in self._direct_entries(partner):
            consumed_entries.append(entry.id)
            lines.append(
                DeductionLine(
                    DeductionSource.DIRECT,
                    entry.id,
                    entry.description or entry.counterpart,
                    entry.effect_amount,
                    entry.entry_date,
                )
            )

        breakdown = CompensationBreakdown(
            partner_id=partner.id,
            partner_code=partner.code,
            partner_name=partner.name,
            partner_document=partner.partner_document,
            period_start=period_start,
            period_end=period_end,
            base_pay=round_money(partner.base_pay or ZERO, self.decimal_places),
            lines=tuple(lines),
            direct_total=round_money(
                partner.partner_actual_deduction_amount or ZERO, self.decimal_places
            ),
            consumed_bill_ids=tuple(consumed_bills),
            consumed_entry_ids=tuple(consumed_entries),
        )
        logger.debug(
            "partner_compensation_computed",
            extra={
                "partner_code": partner.code,
                "base_pay": str(breakdown.base_pay),
                "total_deductions": str(breakdown.total_deductions),
                "net_pay": str(breakdown.net_pay),
            },
        )
        return breakdown

    def overview(self, month: int, year: int) -> list[CompensationBreakdown]:
        """Breakdown for every active partner; failures degrade to zero deductions."""
        start, end = month_bounds(year, month)
        results = []
        for partner in self.active_partners():
            try:
                results.append(self._compute(partner, start, end))
            except (BackofficeError, SQLAlchemyError) as exc:
                logger.warning(
                    "partner_compensation_degraded",
                    extra={"partner_code": partner.code, "error": str(exc)},
                )
                results.append(
                    CompensationBreakdown(
                        partner_id=partner.id,
                        partner_code=partner.code,
                        partner_name=partner.name,
                        partner_document=partner.partner_document,
                        period_start=start,
                        period_end=end,
                        base_pay=partner.base_pay or ZERO,
                        degraded=True,
                    )
                )
        return results

    def _recurring(self, partner: CostCenter) -> list[RecurringDeductionModel]:
        return list(
            self.session.execute(
                select(RecurringDeductionModel)
                .where(
                    RecurringDeductionModel.tenant_id == self.tenant_id,
                    RecurringDeductionModel.partner_center_id == partner.id,
                    RecurringDeductionModel.is_active.is_(True),
                )
                .order_by(RecurringDeductionModel.created_at, RecurringDeductionModel.label)
            ).scalars()
        )

    def _bills(self, partner: CostCenter, start: date, end: date) -> list[Bill]:
        return list(
            self.session.execute(
                select(Bill)
                .where(
                    Bill.tenant_id == self.tenant_id,
                    Bill.partner_responsible_id == partner.id,
                    Bill.is_macro.is_(False),
                    Bill.is_payroll.is_(False),
                    Bill.processed_for_payroll.is_(False),
                    Bill.status != BillStatus.CANCELLED.value,
                    Bill.due_date >= start,
                    Bill.due_date <= end,
                )
                .order_by(Bill.due_date, Bill.description)
            ).scalars()
        )

    def _direct_entries(self, partner: CostCenter) -> list[LedgerEntry]:
        return list(
            self.session.execute(
                select(LedgerEntry)
                .where(
                    LedgerEntry.tenant_id == self.tenant_id,
                    LedgerEntry.effect_center_id == partner.id,
                    LedgerEntry.effect_kind == EffectKind.PARTNER_DEDUCTION.value,
                    LedgerEntry.processed_for_payroll.is_(False),
                )
                .order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
            ).scalars()
        )
