"""
Module: backoffice_kernel.selectors.bill_selector
Responsibility: Read-only bill listings and totals.  Totals only ever sum
    leaf bills; group parents and recurring templates are listed but never
    summed.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from backoffice_kernel.db.types import ZERO
from backoffice_kernel.domain.dtos import BillTotals, BillView
from backoffice_kernel.domain.values import BillDirection, BillStatus
from backoffice_kernel.models.bill import Bill
from backoffice_kernel.selectors.base import BaseSelector


class BillSelector(BaseSelector[Bill]):

    def get(self, bill_id: UUID) -> BillView | None:
        row = self.session.get(Bill, bill_id)
        if row is None or row.tenant_id != self.tenant_id:
            return None
        return _to_view(row)

    def list_bills(
        self,
        start: date | None = None,
        end: date | None = None,
        status: BillStatus | str | None = None,
        include_macro: bool = False,
    ) -> list[BillView]:
        stmt = self._scoped(Bill)
        if start is not None:
            stmt = stmt.where(Bill.due_date >= start)
        if end is not None:
            stmt = stmt.where(Bill.due_date <= end)
        if status is not None:
            stmt = stmt.where(Bill.status == BillStatus(status).value)
        if not include_macro:
            stmt = stmt.where(Bill.is_macro.is_(False))
        stmt = stmt.order_by(Bill.due_date, Bill.installment_number, Bill.description)
        return [_to_view(row) for row in self.session.execute(stmt).scalars()]

    def children(self, parent_id: UUID) -> list[BillView]:
        stmt = (
            self._scoped(Bill)
            .where(Bill.parent_id == parent_id)
            .order_by(Bill.installment_number, Bill.due_date)
        )
        return [_to_view(row) for row in self.session.execute(stmt).scalars()]

    def totals(self, start: date, end: date) -> BillTotals:
        pending_payable = pending_receivable = paid_payable = paid_receivable = ZERO
        count = 0
        for bill in self.list_bills(start, end):
            if bill.status == BillStatus.CANCELLED:
                continue
            count += 1
            payable = bill.direction == BillDirection.PAYABLE
            if bill.is_paid:
                if payable:
                    paid_payable += bill.amount
                else:
                    paid_receivable += bill.amount
            elif payable:
                pending_payable += bill.amount
            else:
                pending_receivable += bill.amount
        return BillTotals(
            pending_payable=pending_payable,
            pending_receivable=pending_receivable,
            paid_payable=paid_payable,
            paid_receivable=paid_receivable,
            count=count,
        )


def _to_view(row: Bill) -> BillView:
    return BillView(
        id=row.id,
        kind=row.kind,
        direction=row.direction,
        description=row.description,
        counterpart=row.counterpart,
        amount=row.amount,
        due_date=row.due_date,
        status=row.status,
        is_paid=row.is_paid,
        paid_date=row.paid_date,
        cost_center_code=row.cost_center_code,
        partner_responsible_id=row.partner_responsible_id,
        parent_id=row.parent_id,
        installment_number=row.installment_number,
        installment_count=row.installment_count,
        card_id=row.card_id,
        is_payroll=row.is_payroll,
        processed_for_payroll=row.processed_for_payroll,
    )
