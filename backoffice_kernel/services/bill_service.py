"""
BillService -- the bill registry ("contas a pagar / a receber").

Responsibility:
    Creates single bills, installment sets and recurring series; pays and
    un-pays them through the ledger; edits, cancels and deletes them while
    keeping forecast, actual and group totals consistent.

Architecture position:
    Kernel > Services -- imperative shell.  Delegates every accumulator write
    to CostCenterService and every cash movement to LedgerService.

Invariants enforced:
    - Macro bills (group parents, recurring templates) are never paid and
      never posted.
    - A group's forecast is booked once, on the parent; a single bill books
      its own.  Deleting or cancelling releases exactly what was booked.
    - A non-cancelled parent's amount equals the sum of its non-cancelled
      children; deleting or cancelling a child shrinks the parent.
    - ``partner_responsible_id`` is resolved at write time from the cost
      center when the center is a partner.
    - ``processed_for_payroll`` flips once; a second attempt is a conflict.

Failure modes:
    - BillNotFoundError for unknown ids or ids of another tenant.
    - MacroBillPaymentError, BillAlreadyPaidError, BillCancelledError,
      BillNotPaidError on invalid state transitions.
    - NoOccurrencesError when a recurring period yields nothing.
    - InstallmentReductionError when re-counting below the paid installments.

Audit relevance:
    ``bill_created``, ``bill_paid``, ``bill_unpaid``, ``bill_cancelled``,
    ``bill_deleted`` and ``installment_set_edited`` log lines, plus a
    notification per payment and reversal.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from backoffice_kernel.db.types import ZERO, split_amount
from backoffice_kernel.domain.collaborators import Notifier, StatementAggregator
from backoffice_kernel.domain.commands import (
    CreateBill,
    CreateInstallmentSet,
    CreateRecurringBill,
    EditInstallmentSet,
    PostLedgerEntry,
    UpdateBill,
)
from backoffice_kernel.domain.dates import (
    add_months,
    installment_due_dates,
    period_label,
    recurrence_dates,
)
from backoffice_kernel.domain.values import (
    BillKind,
    BillStatus,
    RecurringDeleteScope,
)
from backoffice_kernel.exceptions import (
    BillAlreadyPaidError,
    BillAlreadyProcessedError,
    BillCancelledError,
    BillNotFoundError,
    BillNotPaidError,
    InstallmentReductionError,
    InvalidOperationError,
    MacroBillPaymentError,
    NoOccurrencesError,
    NonPositiveAmountError,
    ValidationError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.bill import Bill
from backoffice_kernel.models.cost_center import CostCenter
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.services.cost_center_service import CostCenterService
from backoffice_kernel.services.ledger_service import LedgerService
from backoffice_kernel.services.notification_outbox import NotificationOutbox
from backoffice_kernel.services.statement_aggregator import LeafBillStatementAggregator

logger = get_logger("services.bills")

DEFAULT_MAX_INSTALLMENTS = 120
DEFAULT_MAX_RECURRING_OCCURRENCES = 520
BULK_CREATE_LIMIT = 100


class BillService(BaseService[Bill]):
    """
    Bill lifecycle: pending -> paid -> (reversed) pending, or cancelled.

    Contract:
        Every public method is all-or-nothing (one SAVEPOINT).  Card-linked
        changes recompute each touched (card, month) statement once, at the
        end of the operation.
    """

    def __init__(
        self,
        session,
        context,
        clock=None,
        cost_centers: CostCenterService | None = None,
        ledger: LedgerService | None = None,
        statements: StatementAggregator | None = None,
        notifier: Notifier | None = None,
        max_installments: int = DEFAULT_MAX_INSTALLMENTS,
        max_recurring_occurrences: int = DEFAULT_MAX_RECURRING_OCCURRENCES,
    ):
        super().__init__(session, context, clock)
        self.cost_centers = cost_centers or CostCenterService(session, context, self.clock)
        self.ledger = ledger or LedgerService(
            session, context, self.clock, cost_centers=self.cost_centers
        )
        self.statements = statements or LeafBillStatementAggregator(session, context.tenant_id)
        self.outbox = NotificationOutbox(session, notifier)
        self.max_installments = max_installments
        self.max_recurring_occurrences = max_recurring_occurrences
        self._statement_keys: set[tuple[UUID, int, int]] = set()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, bill_id: UUID) -> Bill:
        bill = self._get_scoped(Bill, bill_id)
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        return bill

    def children(self, parent: Bill, include_cancelled: bool = True) -> list[Bill]:
        stmt = self._scoped(Bill).where(Bill.parent_id == parent.id)
        if not include_cancelled:
            stmt = stmt.where(Bill.status != BillStatus.CANCELLED.value)
        return list(
            self.session.execute(
                stmt.order_by(Bill.installment_number, Bill.due_date, Bill.created_at)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_single(self, command: CreateBill, is_payroll: bool = False) -> Bill:
        with self._mutation("bill_create"):
            bill = self._new_bill(
                command,
                kind=BillKind.SINGLE,
                amount=command.amount,
                due_date=command.due_date,
                is_payroll=is_payroll,
            )
            self.session.flush()
            self.cost_centers.book_bill_forecast(bill, bill.amount)
            self._touch_statement(bill)
            if command.paid:
                self._pay(bill, command.paid_date or self.clock.today())
            self._recompute_statements()
            logger.info(
                "bill_created",
                extra={
                    "bill_id": str(bill.id),
                    "kind": bill.kind,
                    "amount": str(bill.amount),
                    "due_date": bill.due_date.isoformat(),
                    "paid": bill.is_paid,
                    "is_payroll": is_payroll,
                },
            )
        return bill

    def create_many(self, commands: list[CreateBill]) -> list[Bill]:
        """Create up to 100 single bills in one all-or-nothing operation."""
        if not commands:
            raise ValidationError("at least one bill is required")
        if len(commands) > BULK_CREATE_LIMIT:
            raise ValidationError(
                f"at most {BULK_CREATE_LIMIT} bills per request, got {len(commands)}"
            )
        with self._mutation("bill_create_many", count=len(commands)):
            return [self.create_single(command) for command in commands]

    def create_installment_set(self, command: CreateInstallmentSet) -> tuple[Bill, list[Bill]]:
        count = command.installment_count
        if count > self.max_installments:
            raise ValidationError(
                f"installment_count {count} exceeds the limit of {self.max_installments}"
            )
        amounts = list(command.amounts) if command.amounts else split_amount(
            command.total_amount, count
        )
        if any(amount <= 0 for amount in amounts):
            raise NonPositiveAmountError("installment amount", str(min(amounts)))
        due_dates = installment_due_dates(command.first_due_date, count)

        with self._mutation("installment_set_create", installment_count=count):
            parent = self._new_bill(
                command,
                kind=BillKind.INSTALLMENT_PARENT,
                amount=sum(amounts, ZERO),
                due_date=due_dates[0],
                installment_count=count,
            )
            self.session.flush()
            installments = []
            for number, (amount, due) in enumerate(zip(amounts, due_dates), start=1):
                child = self._new_bill(
                    command,
                    kind=BillKind.INSTALLMENT,
                    amount=amount,
                    due_date=due,
                    parent_id=parent.id,
                    installment_number=number,
                    installment_count=count,
                    description=_installment_description(command.description, number, count),
                )
                installments.append(child)
                self._touch_statement(child)
            self.session.flush()
            self.cost_centers.book_bill_forecast(parent, parent.amount)
            self._recompute_statements()
            logger.info(
                "bill_created",
                extra={
                    "bill_id": str(parent.id),
                    "kind": parent.kind,
                    "amount": str(parent.amount),
                    "installment_count": count,
                },
            )
        return parent, installments

    def create_recurring(self, command: CreateRecurringBill) -> tuple[Bill, list[Bill]]:
        try:
            occurrences = recurrence_dates(
                command.anchor_date,
                command.frequency,
                command.start_date,
                command.end_date,
                limit=self.max_recurring_occurrences,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if not occurrences:
            raise NoOccurrencesError(
                command.start_date, command.end_date, command.frequency.value
            )

        with self._mutation("recurring_create", occurrences=len(occurrences)):
            template = self._new_bill(
                command,
                kind=BillKind.RECURRING_TEMPLATE,
                amount=command.amount * len(occurrences),
                due_date=occurrences[0],
                frequency=command.frequency.value,
                recurrence_start=command.start_date,
                recurrence_end=command.end_date,
                installment_count=len(occurrences),
            )
            self.session.flush()
            instances = []
            for due in occurrences:
                instance = self._new_bill(
                    command,
                    kind=BillKind.RECURRING_INSTANCE,
                    amount=command.amount,
                    due_date=due,
                    parent_id=template.id,
                    frequency=command.frequency.value,
                    description=f"{command.description} - {period_label(due)}",
                )
                instances.append(instance)
                self._touch_statement(instance)
            self.session.flush()
            self.cost_centers.book_bill_forecast(template, template.amount)
            self._recompute_statements()
            logger.info(
                "bill_created",
                extra={
                    "bill_id": str(template.id),
                    "kind": template.kind,
                    "amount": str(template.amount),
                    "frequency": command.frequency.value,
                    "occurrences": len(occurrences),
                },
            )
        return template, instances

    def _new_bill(self, command, *, kind: BillKind, amount: Decimal, due_date: date, **fields) -> Bill:
        center = self.cost_centers.find(command.cost_center_code)
        if command.cost_center_code and center is None:
            logger.info("cost_center_unknown", extra={"center_code": command.cost_center_code})
        values = {
            "direction": command.direction.value,
            "description": command.description,
            "counterpart": command.counterpart or "",
            "category": command.category,
            "notes": command.notes,
            "cost_center_code": command.cost_center_code,
            "cost_center_id": center.id if center else None,
            "partner_responsible_id": center.id if center is not None and center.is_partner else None,
            "card_id": command.card_id,
            "kind": kind.value,
            "is_macro": kind.is_macro,
            "amount": amount,
            "due_date": due_date,
            "status": BillStatus.PENDING.value,
            "is_paid": False,
            "in_ledger": False,
            "is_payroll": False,
            "processed_for_payroll": False,
            "forecast_amount": ZERO,
        }
        values.update(fields)
        return self._new(Bill, **values)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def mark_paid(self, bill_id: UUID, paid_date: date | None = None) -> Bill:
        with self._mutation("bill_pay", bill_id=bill_id):
            bill = self.get(bill_id)
            if bill.is_macro:
                raise MacroBillPaymentError(str(bill.id))
            if bill.is_cancelled:
                raise BillCancelledError(str(bill.id))
            if bill.is_paid:
                raise BillAlreadyPaidError(str(bill.id))
            self._pay(bill, paid_date or self.clock.today())
            self._recompute_statements()
        return bill

    def _pay(self, bill: Bill, paid_date: date) -> None:
        effect = self.cost_centers.classify_bill_effect(bill)
        self.cost_centers.apply_effect(effect)
        bill.status = BillStatus.PAID.value
        bill.is_paid = True
        bill.paid_date = paid_date
        bill.in_ledger = True
        self._touch(bill)
        entry = self.ledger.post(
            PostLedgerEntry(
                entry_date=paid_date,
                direction=bill.bill_direction.ledger_direction,
                amount=bill.amount,
                counterpart=bill.counterpart,
                description=bill.description,
                cost_center_code=bill.cost_center_code,
                bill_id=bill.id,
            ),
            bill=bill,
            effect=effect,
        )
        self._touch_statement(bill)
        logger.info(
            "bill_paid",
            extra={
                "bill_id": str(bill.id),
                "amount": str(bill.amount),
                "paid_date": paid_date.isoformat(),
                "entry_sequence": entry.sequence,
                "effect_kind": effect.kind.value,
            },
        )
        self.outbox.enqueue(
            "bill_paid",
            {
                "tenant_id": str(self.tenant_id),
                "bill_id": str(bill.id),
                "description": bill.description,
                "amount": str(bill.amount),
                "paid_date": paid_date.isoformat(),
                "is_payroll": bill.is_payroll,
            },
        )

    def mark_unpaid(self, bill_id: UUID) -> Bill:
        """Reverse a payment; on a macro bill, reverse every paid child."""
        with self._mutation("bill_unpay", bill_id=bill_id):
            bill = self.get(bill_id)
            if bill.is_macro:
                for child in self.children(bill):
                    if child.is_paid:
                        self._unpay(child)
            else:
                if not bill.is_paid:
                    raise BillNotPaidError(str(bill.id))
                self._unpay(bill)
            self._recompute_statements()
        return bill

    def _unpay(self, bill: Bill) -> None:
        entry = self.ledger.entry_for_bill(bill.id)
        if entry is not None:
            self.ledger.reverse(entry.id)
        else:
            logger.warning("bill_paid_without_entry", extra={"bill_id": str(bill.id)})
            bill.status = BillStatus.PENDING.value
            bill.is_paid = False
            bill.paid_date = None
            bill.in_ledger = False
            self._touch(bill)
        self._touch_statement(bill)
        logger.info("bill_unpaid", extra={"bill_id": str(bill.id), "amount": str(bill.amount)})
        self.outbox.enqueue(
            "bill_unpaid",
            {
                "tenant_id": str(self.tenant_id),
                "bill_id": str(bill.id),
                "amount": str(bill.amount),
                "is_payroll": bill.is_payroll,
            },
        )

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update(self, bill_id: UUID, command: UpdateBill) -> Bill:
        """Edit a pending leaf; amount changes move its forecast by the delta."""
        with self._mutation("bill_update", bill_id=bill_id):
            bill = self.get(bill_id)
            if bill.is_macro:
                raise InvalidOperationError(
                    f"Macro bill {bill.id} cannot be edited directly"
                )
            if bill.is_cancelled:
                raise BillCancelledError(str(bill.id))
            if bill.is_paid:
                raise BillAlreadyPaidError(str(bill.id))

            self._touch_statement(bill)
            if command.amount is not None and command.amount != bill.amount:
                delta = command.amount - bill.amount
                parent = self.get(bill.parent_id) if bill.parent_id else None
                if parent is not None:
                    parent.amount = parent.amount + delta
                    self.cost_centers.book_bill_forecast(parent, delta)
                    self._touch(parent)
                else:
                    self.cost_centers.book_bill_forecast(bill, delta)
                bill.amount = command.amount
            if command.due_date is not None:
                bill.due_date = command.due_date
            if command.description is not None:
                bill.description = command.description
            if command.counterpart is not None:
                bill.counterpart = command.counterpart
            if command.category is not None:
                bill.category = command.category
            self._touch(bill)
            self._touch_statement(bill)
            self.session.flush()
            self._recompute_statements()
            logger.info(
                "bill_updated",
                extra={"bill_id": str(bill.id), "amount": str(bill.amount)},
            )
        return bill

    def edit_installment_set(self, parent_id: UUID, command: EditInstallmentSet) -> Bill:
        """
        Re-total and/or re-count the unpaid installments of a set.

        Paid installments are kept as they are.  The remaining total is split
        over the unpaid installments (remainder on the last); extra
        installments continue monthly after the last one; surplus unpaid
        installments are deleted.
        """
        with self._mutation("installment_set_edit", bill_id=parent_id):
            parent = self.get(parent_id)
            if parent.kind != BillKind.INSTALLMENT_PARENT:
                raise InvalidOperationError(f"Bill {parent.id} is not an installment set")
            if parent.is_cancelled:
                raise BillCancelledError(str(parent.id))

            installments = self.children(parent, include_cancelled=False)
            paid = [bill for bill in installments if bill.is_paid]
            unpaid = [bill for bill in installments if not bill.is_paid]
            new_count = command.installment_count or len(installments)
            if new_count < len(paid):
                raise InstallmentReductionError(str(parent.id), new_count, len(paid))

            new_total = command.total_amount if command.total_amount is not None else parent.amount
            paid_total = sum((bill.amount for bill in paid), ZERO)
            remaining_total = new_total - paid_total
            unpaid_count = new_count - len(paid)
            if unpaid_count == 0 and remaining_total != 0:
                raise ValidationError(
                    f"total {new_total} does not match the {len(paid)} paid installment(s)"
                )
            if unpaid_count > 0 and remaining_total <= 0:
                raise NonPositiveAmountError("remaining total", str(remaining_total))

            if command.description is not None:
                parent.description = command.description

            for bill in installments:
                self._touch_statement(bill)

            amounts = split_amount(remaining_total, unpaid_count) if unpaid_count else []
            kept, surplus = unpaid[:unpaid_count], unpaid[unpaid_count:]
            for bill in surplus:
                self.session.delete(bill)
            for bill, amount in zip(kept, amounts):
                bill.amount = amount
                self._touch(bill)

            anchor = installments[0].due_date if installments else parent.due_date
            last_due = max((bill.due_date for bill in installments), default=parent.due_date)
            offset = _months_between(anchor, last_due)
            for amount in amounts[len(kept):]:
                offset += 1
                kept.append(
                    self._new(
                        Bill,
                        direction=parent.direction,
                        description=parent.description,
                        counterpart=parent.counterpart,
                        category=parent.category,
                        notes=parent.notes,
                        cost_center_code=parent.cost_center_code,
                        cost_center_id=parent.cost_center_id,
                        partner_responsible_id=parent.partner_responsible_id,
                        card_id=parent.card_id,
                        kind=BillKind.INSTALLMENT.value,
                        is_macro=False,
                        parent_id=parent.id,
                        amount=amount,
                        due_date=add_months(anchor, offset, anchor.day),
                        status=BillStatus.PENDING.value,
                        is_paid=False,
                        in_ledger=False,
                        is_payroll=False,
                        processed_for_payroll=False,
                        forecast_amount=ZERO,
                    )
                )

            ordered = sorted(paid, key=lambda b: b.due_date) + sorted(kept, key=lambda b: b.due_date)
            for number, bill in enumerate(ordered, start=1):
                bill.installment_number = number
                bill.installment_count = new_count
                bill.description = _installment_description(parent.description, number, new_count)
                self._touch_statement(bill)

            self.cost_centers.book_bill_forecast(parent, new_total - parent.amount)
            parent.amount = new_total
            parent.installment_count = new_count
            self._touch(parent)
            self.session.flush()
            self._recompute_statements()
            logger.info(
                "installment_set_edited",
                extra={
                    "bill_id": str(parent.id),
                    "total": str(new_total),
                    "installment_count": new_count,
                    "paid_count": len(paid),
                    "deleted": len(surplus),
                },
            )
        return parent

    # ------------------------------------------------------------------
    # Cancel / delete
    # ------------------------------------------------------------------

    def cancel(self, bill_id: UUID) -> Bill:
        """Cancel a pending leaf, or every pending child of a macro bill."""
        with self._mutation("bill_cancel", bill_id=bill_id):
            bill = self.get(bill_id)
            if bill.is_cancelled:
                raise BillCancelledError(str(bill.id))
            if bill.is_macro:
                for child in self.children(bill, include_cancelled=False):
                    if not child.is_paid:
                        self._cancel_leaf(child)
            else:
                if bill.is_paid:
                    raise BillAlreadyPaidError(str(bill.id))
                self._cancel_leaf(bill)
            self._recompute_statements()
        return bill

    def _cancel_leaf(self, bill: Bill) -> None:
        bill.status = BillStatus.CANCELLED.value
        self._touch(bill)
        self.cost_centers.release_bill_forecast(bill)
        self._touch_statement(bill)
        if bill.parent_id is not None:
            self._shrink_parent(self.get(bill.parent_id), bill)
        logger.info("bill_cancelled", extra={"bill_id": str(bill.id), "amount": str(bill.amount)})

    def delete(self, bill_id: UUID) -> int:
        """
        Delete a bill.  A macro bill takes its children with it (paid ones
        are reversed first).  Returns the number of bills deleted.
        """
        with self._mutation("bill_delete", bill_id=bill_id):
            bill = self.get(bill_id)
            if bill.is_macro:
                deleted = self._delete_group(bill)
            else:
                self._delete_leaf(bill)
                deleted = 1
            self._recompute_statements()
        return deleted

    def _delete_group(self, parent: Bill) -> int:
        self.cost_centers.release_bill_forecast(parent)
        children = self.children(parent)
        for child in children:
            if child.is_paid:
                self._unpay(child)
            self._touch_statement(child)
            self.session.delete(child)
        self.session.delete(parent)
        self.session.flush()
        logger.info(
            "bill_deleted",
            extra={"bill_id": str(parent.id), "kind": parent.kind, "children": len(children)},
        )
        return len(children) + 1

    def _delete_leaf(self, bill: Bill) -> None:
        if bill.is_paid:
            self._unpay(bill)
        self.cost_centers.release_bill_forecast(bill)
        self._touch_statement(bill)
        parent = self.get(bill.parent_id) if bill.parent_id else None
        if parent is not None and not bill.is_cancelled:
            self._shrink_parent(parent, bill)
        self.session.delete(bill)
        self.session.flush()
        if parent is not None:
            remaining = self.children(parent)
            if not remaining:
                self.cost_centers.release_bill_forecast(parent)
                self.session.delete(parent)
            elif parent.kind == BillKind.INSTALLMENT_PARENT:
                self._renumber(parent, remaining)
        logger.info("bill_deleted", extra={"bill_id": str(bill.id), "kind": bill.kind})

    def _shrink_parent(self, parent: Bill, leaving: Bill) -> None:
        """Take ``leaving`` out of its parent's amount and forecast."""
        remaining = [
            child
            for child in self.children(parent, include_cancelled=False)
            if child.id != leaving.id
        ]
        if remaining:
            parent.amount = parent.amount - leaving.amount
            self.cost_centers.book_bill_forecast(
                parent, -min(leaving.amount, parent.forecast_amount or ZERO)
            )
        else:
            parent.status = BillStatus.CANCELLED.value
            self.cost_centers.release_bill_forecast(parent)
        self._touch(parent)

    def _renumber(self, parent: Bill, children: list[Bill]) -> None:
        live = [child for child in children if not child.is_cancelled]
        count = len(live)
        for number, child in enumerate(sorted(live, key=lambda b: b.due_date), start=1):
            child.installment_number = number
            child.installment_count = count
            child.description = _installment_description(parent.description, number, count)
        parent.installment_count = count

    def delete_recurring(self, bill_id: UUID, scope: RecurringDeleteScope | str) -> int:
        """
        Delete instances of a recurring series.

            single  the given instance (not when paid)
            future  unpaid instances due on or after the given one
            all     every unpaid instance

        Paid instances are kept.  The template goes when nothing remains.
        Returns the number of instances deleted.
        """
        scope = RecurringDeleteScope(scope)
        with self._mutation("recurring_delete", bill_id=bill_id, scope=scope.value):
            bill = self.get(bill_id)
            if bill.kind == BillKind.RECURRING_TEMPLATE:
                template = bill
            elif bill.kind == BillKind.RECURRING_INSTANCE and bill.parent_id is not None:
                template = self.get(bill.parent_id)
            else:
                raise InvalidOperationError(f"Bill {bill.id} is not part of a recurring series")

            if scope is RecurringDeleteScope.SINGLE:
                if bill is template:
                    raise InvalidOperationError("single scope requires an instance, not the template")
                if bill.is_paid:
                    raise BillAlreadyPaidError(str(bill.id))
                targets = [bill]
            else:
                instances = [child for child in self.children(template) if not child.is_paid]
                if scope is RecurringDeleteScope.FUTURE and bill is not template:
                    instances = [child for child in instances if child.due_date >= bill.due_date]
                targets = instances

            for target in targets:
                self._delete_leaf(target)
            self._recompute_statements()
            logger.info(
                "recurring_deleted",
                extra={"template_id": str(template.id), "scope": scope.value, "deleted": len(targets)},
            )
        return len(targets)

    # ------------------------------------------------------------------
    # Payroll support
    # ------------------------------------------------------------------

    def mark_processed_for_payroll(self, bill_ids: list[UUID]) -> list[Bill]:
        with self._mutation("bill_mark_processed", count=len(bill_ids)):
            bills = []
            for bill_id in bill_ids:
                bill = self.get(bill_id)
                if bill.processed_for_payroll:
                    raise BillAlreadyProcessedError(str(bill.id))
                bill.processed_for_payroll = True
                self._touch(bill)
                bills.append(bill)
        return bills

    def partner_leaf_bills(self, partner: CostCenter, start: date, end: date) -> list[Bill]:
        """Non-cancelled, non-payroll leaf bills a partner is responsible for."""
        return list(
            self.session.execute(
                self._scoped(Bill).where(
                    Bill.partner_responsible_id == partner.id,
                    Bill.is_macro.is_(False),
                    Bill.is_payroll.is_(False),
                    Bill.status != BillStatus.CANCELLED.value,
                    Bill.due_date >= start,
                    Bill.due_date <= end,
                )
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Card statements
    # ------------------------------------------------------------------

    def _touch_statement(self, bill: Bill) -> None:
        if bill.card_id is not None and not bill.is_macro:
            self._statement_keys.add((bill.card_id, bill.due_date.month, bill.due_date.year))

    def _recompute_statements(self) -> None:
        keys, self._statement_keys = sorted(self._statement_keys, key=str), set()
        for card_id, month, year in keys:
            self.statements.recompute_statement(card_id, month, year)


def _installment_description(base: str, number: int, count: int) -> str:
    return f"{base} ({number}/{count})"


def _months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)
