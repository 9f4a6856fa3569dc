"""
LeafBillStatementAggregator -- default card statement recompute.

A card statement ("fatura") total for a month is the sum of the card's
non-cancelled leaf bills due in that month.  Leaf means: an installment, a
recurring instance or a single bill; group parents and recurring templates
are excluded so nothing is counted twice.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import ZERO, round_money
from backoffice_kernel.domain.dates import month_bounds
from backoffice_kernel.domain.values import BillStatus
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.bill import Bill

logger = get_logger("services.statements")


class LeafBillStatementAggregator:

    def __init__(self, session: Session, tenant_id: UUID):
        self.session = session
        self.tenant_id = tenant_id

    def recompute_statement(self, card_id: UUID, month: int, year: int) -> Decimal:
        start, end = month_bounds(year, month)
        total = self.session.execute(
            select(func.coalesce(func.sum(Bill.amount), 0)).where(
                Bill.tenant_id == self.tenant_id,
                Bill.card_id == card_id,
                Bill.is_macro.is_(False),
                Bill.status != BillStatus.CANCELLED.value,
                Bill.due_date >= start,
                Bill.due_date <= end,
            )
        ).scalar_one()
        total = round_money(Decimal(str(total or ZERO)))
        logger.info(
            "card_statement_recomputed",
            extra={
                "card_id": str(card_id),
                "month": month,
                "year": year,
                "total": str(total),
            },
        )
        return total
