"""
LedgerService -- the append-only cash-flow ledger.

Responsibility:
    Posts, edits and reverses cash movements and keeps every entry's
    ``running_balance`` correct.  Direct postings (no bill) classify and
    apply their own accumulator effect; bill-linked postings record the
    effect the bill registry applied.

Architecture position:
    Kernel > Services -- imperative shell.  Uses CostCenterService for all
    accumulator writes.

Invariants enforced:
    - Order is (entry_date, sequence); sequence comes from a per-tenant
      counter and never repeats.
    - Running balance: after any post/edit/reverse, for every entry in
      order, balance(i) == balance(i-1) + signed(amount(i)), balance(-1) == 0.
      Edits of amount or date and every reversal trigger a full
      chronological rebuild; a back-dated post rebuilds its successors.
    - Macro bills never reach the ledger.
    - A bill has at most one entry, posted by the bill registry.

Failure modes:
    - MacroBillPostingError when the linked bill is an installment parent
      or a recurring template.
    - DirectBillPostingError when a bill id arrives without the bill
      registry's payment path; BillAlreadyPaidError when the bill is
      already paid or already has an entry.
    - LedgerEntryNotFoundError for unknown ids or ids of another tenant.
    - LedgerEntryLinkedError when editing amount/center of a bill-linked
      entry; EntryProcessedForPayrollError for consumed entries.
    - LedgerRebuildLimitError when a rebuild would exceed
      ``max_rebuild_entries``; the SAVEPOINT rolls back.

Audit relevance:
    ``ledger_entry_posted``, ``ledger_entry_edited``,
    ``ledger_entry_reversed`` and ``ledger_rebuilt`` log lines carry the
    sequence, amount, balance and effect of each change.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, or_, select

from backoffice_kernel.db.types import ZERO
from backoffice_kernel.domain.commands import EditLedgerEntry, PostLedgerEntry
from backoffice_kernel.domain.values import AccumulatorEffect, BillStatus, EffectKind, EntryDirection
from backoffice_kernel.exceptions import (
    BillAlreadyPaidError,
    BillNotFoundError,
    DirectBillPostingError,
    EntryProcessedForPayrollError,
    LedgerEntryLinkedError,
    LedgerEntryNotFoundError,
    LedgerRebuildLimitError,
    MacroBillPostingError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.bill import Bill
from backoffice_kernel.models.ledger import LedgerEntry, LedgerSequence
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.services.cost_center_service import CostCenterService

logger = get_logger("services.ledger")

DEFAULT_MAX_REBUILD_ENTRIES = 50_000
DEFAULT_REBUILD_CHUNK_SIZE = 1_000


@dataclass(frozen=True)
class ReversalResult:
    entry_id: UUID
    sequence: int
    amount: Decimal
    bill_id: UUID | None
    effect_reverted: bool
    rebuilt_entries: int


class LedgerService(BaseService[LedgerEntry]):
    """
    Cash-flow postings with a maintained running balance.

    Contract:
        ``post()`` returns the flushed entry with its balance set.  Callers
        that link a bill pass the loaded ``bill`` and the ``effect`` they
        applied for it.

    Guarantees:
        - The running-balance invariant holds after every public call.
        - An entry's recorded effect is exactly what reversing it undoes.
    """

    def __init__(
        self,
        session,
        context,
        clock=None,
        cost_centers: CostCenterService | None = None,
        max_rebuild_entries: int = DEFAULT_MAX_REBUILD_ENTRIES,
        rebuild_chunk_size: int = DEFAULT_REBUILD_CHUNK_SIZE,
    ):
        super().__init__(session, context, clock)
        self.cost_centers = cost_centers or CostCenterService(session, context, self.clock)
        self.max_rebuild_entries = max_rebuild_entries
        self.rebuild_chunk_size = rebuild_chunk_size

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, entry_id: UUID) -> LedgerEntry:
        entry = self._get_scoped(LedgerEntry, entry_id)
        if entry is None:
            raise LedgerEntryNotFoundError(str(entry_id))
        return entry

    def entry_for_bill(self, bill_id: UUID) -> LedgerEntry | None:
        return self.session.execute(
            self._scoped(LedgerEntry)
            .where(LedgerEntry.bill_id == bill_id)
            .order_by(LedgerEntry.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    def open_actual_entries(self, center_id: UUID) -> list[LedgerEntry]:
        """Unprocessed entries whose recorded effect feeds the center's own actual."""
        return list(
            self.session.execute(
                self._scoped(LedgerEntry)
                .where(
                    LedgerEntry.effect_center_id == center_id,
                    LedgerEntry.effect_kind.in_(
                        [EffectKind.PARTNER_ACTUAL.value, EffectKind.CENTER_ACTUAL.value]
                    ),
                    LedgerEntry.processed_for_payroll.is_(False),
                )
                .order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Post
    # ------------------------------------------------------------------

    def post(
        self,
        command: PostLedgerEntry,
        bill: Bill | None = None,
        effect: AccumulatorEffect | None = None,
    ) -> LedgerEntry:
        bill_id = bill.id if bill is not None else command.bill_id
        with self._mutation("ledger_post", bill_id=bill_id):
            if bill is None and command.bill_id is not None:
                linked = self._get_scoped(Bill, command.bill_id)
                if linked is None:
                    raise BillNotFoundError(str(command.bill_id))
                if linked.is_macro:
                    raise MacroBillPostingError(str(linked.id))
                if linked.is_paid or linked.in_ledger:
                    raise BillAlreadyPaidError(str(linked.id))
                raise DirectBillPostingError(str(linked.id))
            if bill is not None:
                if bill.is_macro:
                    raise MacroBillPostingError(str(bill.id))
                if self.entry_for_bill(bill.id) is not None:
                    raise BillAlreadyPaidError(str(bill.id))

            if bill is None:
                effect = self.cost_centers.classify_direct_effect(
                    command.cost_center_code, command.direction, command.amount
                )
                self.cost_centers.apply_effect(effect)
            effect = effect or AccumulatorEffect.none()

            sequence = self._next_sequence()
            previous = self._balance_before(command.entry_date, sequence)
            entry = self._new(
                LedgerEntry,
                entry_date=command.entry_date,
                sequence=sequence,
                direction=EntryDirection(command.direction).value,
                amount=command.amount,
                counterpart=command.counterpart or "",
                description=command.description or "",
                cost_center_code=command.cost_center_code,
                bill_id=bill.id if bill is not None else None,
                processed_for_payroll=False,
            )
            entry.effect = effect
            entry.running_balance = previous + entry.signed_amount
            self.session.flush()

            rebuilt = 0
            if self._has_successors(entry):
                rebuilt = self._recompute(after=entry, opening=entry.running_balance)

            logger.info(
                "ledger_entry_posted",
                extra={
                    "sequence": entry.sequence,
                    "entry_date": entry.entry_date.isoformat(),
                    "direction": entry.direction,
                    "amount": str(entry.amount),
                    "running_balance": str(entry.running_balance),
                    "effect_kind": effect.kind.value,
                    "back_dated_rebuilt": rebuilt,
                },
            )
        return entry

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def edit(self, entry_id: UUID, command: EditLedgerEntry) -> LedgerEntry:
        with self._mutation("ledger_edit", entry_id=entry_id):
            entry = self.get(entry_id)

            amount_changed = command.amount is not None and command.amount != entry.amount
            center_changed = (
                command.cost_center_code is not None
                and command.cost_center_code != entry.cost_center_code
            )
            date_changed = command.entry_date is not None and command.entry_date != entry.entry_date

            if amount_changed or center_changed:
                if entry.bill_id is not None:
                    raise LedgerEntryLinkedError(
                        str(entry.id),
                        str(entry.bill_id),
                        "amount" if amount_changed else "cost_center_code",
                    )
                if entry.processed_for_payroll:
                    raise EntryProcessedForPayrollError(str(entry.id))

                self.cost_centers.revert_effect(entry.effect)
                if amount_changed:
                    entry.amount = command.amount
                if center_changed:
                    entry.cost_center_code = command.cost_center_code
                effect = self.cost_centers.classify_direct_effect(
                    entry.cost_center_code, EntryDirection(entry.direction), entry.amount
                )
                self.cost_centers.apply_effect(effect)
                entry.effect = effect

            if date_changed:
                entry.entry_date = command.entry_date
            if command.counterpart is not None:
                entry.counterpart = command.counterpart
            if command.description is not None:
                entry.description = command.description
            self._touch(entry)
            self.session.flush()

            rebuilt = 0
            if amount_changed or date_changed:
                rebuilt = self.rebuild_balances()

            logger.info(
                "ledger_entry_edited",
                extra={
                    "sequence": entry.sequence,
                    "amount_changed": amount_changed,
                    "date_changed": date_changed,
                    "center_changed": center_changed,
                    "rebuilt_entries": rebuilt,
                },
            )
        return entry

    # ------------------------------------------------------------------
    # Reverse
    # ------------------------------------------------------------------

    def reverse(self, entry_id: UUID) -> ReversalResult:
        """
        Delete the entry, return its bill to pending, undo its effect and
        rebuild every balance.
        """
        with self._mutation("ledger_reverse", entry_id=entry_id):
            entry = self.get(entry_id)
            effect = entry.effect

            bill = self._get_scoped(Bill, entry.bill_id) if entry.bill_id else None
            if bill is not None:
                bill.status = BillStatus.PENDING.value
                bill.is_paid = False
                bill.paid_date = None
                bill.in_ledger = False
                self._touch(bill)

            effect_reverted = False
            if entry.processed_for_payroll:
                logger.warning(
                    "ledger_entry_effect_consumed",
                    extra={"sequence": entry.sequence, "effect_kind": effect.kind.value},
                )
            elif not effect.is_noop:
                self.cost_centers.revert_effect(effect)
                effect_reverted = True

            result_fields = {
                "entry_id": entry.id,
                "sequence": entry.sequence,
                "amount": entry.amount,
                "bill_id": entry.bill_id,
            }
            self.session.delete(entry)
            self.session.flush()
            rebuilt = self.rebuild_balances()

            logger.info(
                "ledger_entry_reversed",
                extra={
                    "sequence": result_fields["sequence"],
                    "amount": str(result_fields["amount"]),
                    "bill_id": str(result_fields["bill_id"]) if result_fields["bill_id"] else None,
                    "effect_reverted": effect_reverted,
                    "rebuilt_entries": rebuilt,
                },
            )
        return ReversalResult(
            effect_reverted=effect_reverted,
            rebuilt_entries=rebuilt,
            **result_fields,
        )

    def mark_processed_for_payroll(self, entry_ids: list[UUID]) -> list[LedgerEntry]:
        """Flag entries consumed by a payroll run; reversing them keeps their effect."""
        with self._mutation("ledger_mark_processed", count=len(entry_ids)):
            entries = []
            for entry_id in entry_ids:
                entry = self.get(entry_id)
                if entry.processed_for_payroll:
                    raise EntryProcessedForPayrollError(str(entry.id))
                entry.processed_for_payroll = True
                self._touch(entry)
                entries.append(entry)
        return entries

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def rebuild_balances(self) -> int:
        """Recompute every running balance in chronological order."""
        with self._mutation("ledger_rebuild"):
            count = self._recompute(after=None, opening=ZERO)
            logger.info("ledger_rebuilt", extra={"entries": count})
        return count

    def _recompute(self, after: LedgerEntry | None, opening: Decimal) -> int:
        """
        Rewrite balances of every entry ordered after ``after`` (all entries
        when None), starting from ``opening``.  Pages by keyset on
        (entry_date, sequence).
        """
        pending = self._count_after(after)
        if pending > self.max_rebuild_entries:
            raise LedgerRebuildLimitError(str(self.tenant_id), pending, self.max_rebuild_entries)

        balance = opening
        cursor = (after.entry_date, after.sequence) if after is not None else None
        processed = 0
        while True:
            stmt = self._scoped(LedgerEntry)
            if cursor is not None:
                stmt = stmt.where(self._after_clause(*cursor))
            page = list(
                self.session.execute(
                    stmt.order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
                    .limit(self.rebuild_chunk_size)
                ).scalars()
            )
            if not page:
                break
            for entry in page:
                balance += entry.signed_amount
                if entry.running_balance != balance:
                    entry.running_balance = balance
            processed += len(page)
            cursor = (page[-1].entry_date, page[-1].sequence)
            self.session.flush()
        return processed

    @staticmethod
    def _after_clause(entry_date: date, sequence: int):
        return or_(
            LedgerEntry.entry_date > entry_date,
            and_(LedgerEntry.entry_date == entry_date, LedgerEntry.sequence > sequence),
        )

    def _count_after(self, after: LedgerEntry | None) -> int:
        stmt = select(func.count(LedgerEntry.id)).where(LedgerEntry.tenant_id == self.tenant_id)
        if after is not None:
            stmt = stmt.where(self._after_clause(after.entry_date, after.sequence))
        return self.session.execute(stmt).scalar_one()

    def _has_successors(self, entry: LedgerEntry) -> bool:
        return self._count_after(entry) > 0

    def _balance_before(self, entry_date: date, sequence: int) -> Decimal:
        previous = self.session.execute(
            self._scoped(LedgerEntry)
            .where(
                or_(
                    LedgerEntry.entry_date < entry_date,
                    and_(LedgerEntry.entry_date == entry_date, LedgerEntry.sequence < sequence),
                )
            )
            .order_by(LedgerEntry.entry_date.desc(), LedgerEntry.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        return previous.running_balance if previous is not None else ZERO

    def _next_sequence(self) -> int:
        counter = self.session.execute(
            self._scoped(LedgerSequence).with_for_update()
        ).scalar_one_or_none()
        if counter is None:
            counter = self._new(LedgerSequence, next_value=1)
        value = counter.next_value
        counter.next_value = value + 1
        return value
