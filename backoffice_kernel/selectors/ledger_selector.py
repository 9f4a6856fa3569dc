"""
Module: backoffice_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: entries in chronological order,
    the current balance, and verification of the stored running balances.
Architecture position: Kernel > Selectors.

Invariants enforced:
    verify_running_balance() recomputes balance(i) = balance(i-1) +
    signed(amount(i)) from zero over (entry_date, sequence) order and
    reports every entry whose stored balance differs.
"""

from datetime import date
from decimal import Decimal

from backoffice_kernel.db.types import ZERO
from backoffice_kernel.domain.dtos import BalanceMismatch, LedgerEntryView
from backoffice_kernel.models.ledger import LedgerEntry
from backoffice_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerEntry]):

    def _ordered(self, start: date | None = None, end: date | None = None):
        stmt = self._scoped(LedgerEntry)
        if start is not None:
            stmt = stmt.where(LedgerEntry.entry_date >= start)
        if end is not None:
            stmt = stmt.where(LedgerEntry.entry_date <= end)
        return stmt.order_by(LedgerEntry.entry_date, LedgerEntry.sequence)

    def entries(self, start: date | None = None, end: date | None = None) -> list[LedgerEntryView]:
        return [_to_view(row) for row in self.session.execute(self._ordered(start, end)).scalars()]

    def balance(self) -> Decimal:
        """Running balance of the last entry, zero for an empty ledger."""
        last = self.session.execute(
            self._scoped(LedgerEntry)
            .order_by(LedgerEntry.entry_date.desc(), LedgerEntry.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        return last.running_balance if last is not None else ZERO

    def verify_running_balance(self) -> list[BalanceMismatch]:
        balance = ZERO
        mismatches = []
        for row in self.session.execute(self._ordered()).scalars():
            balance += row.signed_amount
            if row.running_balance != balance:
                mismatches.append(
                    BalanceMismatch(sequence=row.sequence, stored=row.running_balance, expected=balance)
                )
        return mismatches


def _to_view(row: LedgerEntry) -> LedgerEntryView:
    return LedgerEntryView(
        id=row.id,
        entry_date=row.entry_date,
        sequence=row.sequence,
        direction=row.direction,
        amount=row.amount,
        counterpart=row.counterpart,
        description=row.description,
        cost_center_code=row.cost_center_code,
        bill_id=row.bill_id,
        running_balance=row.running_balance,
        effect_kind=row.effect_kind,
        processed_for_payroll=row.processed_for_payroll,
    )
