"""
CostCenterService -- the cost/revenue center tree and its accumulators.

Responsibility:
    Creates, renames, deactivates and deletes centers, and owns every write
    to the forecast/actual accumulators.  Ledger and bill services never
    touch those columns; they ask this service to apply an
    ``AccumulatorEffect`` or a forecast delta.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Propagation: a delta booked on a center is added to its own_* column
      and to the aggregate column of the center and every ancestor, in one
      walk of the parent chain inside the caller's transaction.
    - Partner deduction accumulators are never propagated and never touch
      actual_amount.
    - Codes are unique per tenant and upper-case.

Failure modes:
    - DuplicateCodeError, InvalidKindError, CostCenterNotFoundError on
      creation.
    - CenterHasChildrenError / CenterReferencedError on deactivate/delete.
    - CostCenterCycleError if the parent chain loops; the SAVEPOINT rolls
      back and no accumulator changes persist.
    - An unknown code on increment_* is a logged no-op (bills and entries
      may carry codes of centers deleted since).

Audit relevance:
    Every accumulator change is logged with the center code, column and
    delta (``cost_center_propagated``).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from backoffice_kernel.db.types import ZERO, round_money
from backoffice_kernel.domain.commands import CreateCostCenter
from backoffice_kernel.domain.values import (
    AccumulatorEffect,
    CenterKind,
    EffectKind,
    EntryDirection,
)
from backoffice_kernel.exceptions import (
    CenterHasChildrenError,
    CenterReferencedError,
    CostCenterCycleError,
    CostCenterNotFoundError,
    DuplicateCodeError,
    NotAPartnerError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.bill import Bill
from backoffice_kernel.models.cost_center import CostCenter
from backoffice_kernel.models.ledger import LedgerEntry
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.cost_center")

DEFAULT_PAYROLL_PARENT_CODE = "PRO-LABORE"
DEFAULT_PAYROLL_PARENT_NAME = "Pró-labore"

_ACTUAL = "actual"
_FORECAST = "forecast"


class CostCenterService(BaseService[CostCenter]):
    """
    Tree maintenance and accumulator propagation.

    Contract:
        All lookups are scoped to the caller's tenant.  ``propagate()`` is
        the single write path for ``actual_amount``/``forecast_amount``.

    Guarantees:
        - After any public call, for every center the aggregate equals its
          own amount plus the sum of its children's aggregates.
    """

    def __init__(
        self,
        session,
        context,
        clock=None,
        payroll_parent_code: str = DEFAULT_PAYROLL_PARENT_CODE,
        payroll_parent_name: str = DEFAULT_PAYROLL_PARENT_NAME,
    ):
        super().__init__(session, context, clock)
        self.payroll_parent_code = payroll_parent_code.upper()
        self.payroll_parent_name = payroll_parent_name

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find(self, code: str | None) -> CostCenter | None:
        if not code:
            return None
        return self.session.execute(
            self._scoped(CostCenter).where(CostCenter.code == code.strip().upper())
        ).scalar_one_or_none()

    def get(self, code: str) -> CostCenter:
        center = self.find(code)
        if center is None:
            raise CostCenterNotFoundError(code)
        return center

    def get_by_id(self, center_id: UUID) -> CostCenter:
        center = self._get_scoped(CostCenter, center_id)
        if center is None:
            raise CostCenterNotFoundError(str(center_id))
        return center

    def children(self, center: CostCenter, active_only: bool = False) -> list[CostCenter]:
        stmt = self._scoped(CostCenter).where(CostCenter.parent_id == center.id)
        if active_only:
            stmt = stmt.where(CostCenter.is_active.is_(True))
        return list(self.session.execute(stmt).scalars())

    def ancestors(self, center: CostCenter) -> list[CostCenter]:
        """Parent chain from the immediate parent up to the root."""
        chain: list[CostCenter] = []
        seen = {center.id}
        parent_id = center.parent_id
        while parent_id is not None:
            if parent_id in seen:
                raise CostCenterCycleError(center.code)
            seen.add(parent_id)
            parent = self._get_scoped(CostCenter, parent_id)
            if parent is None:
                logger.warning(
                    "cost_center_parent_missing",
                    extra={"center_code": center.code, "parent_id": str(parent_id)},
                )
                break
            chain.append(parent)
            parent_id = parent.parent_id
        return chain

    # ------------------------------------------------------------------
    # Tree maintenance
    # ------------------------------------------------------------------

    def create_center(self, command: CreateCostCenter) -> CostCenter:
        with self._mutation("cost_center_create", center_code=command.code):
            if self.find(command.code) is not None:
                raise DuplicateCodeError(command.code)

            parent = None
            if command.parent_code:
                parent = self.get(command.parent_code)
            elif command.is_partner:
                parent = self._ensure_payroll_parent()

            center = self._new(
                CostCenter,
                name=command.name,
                code=command.code,
                kind=CenterKind(command.kind).value,
                parent_id=parent.id if parent else None,
                is_partner=command.is_partner,
                partner_document=command.partner_document if command.is_partner else None,
                is_active=True,
                forecast_amount=ZERO,
                actual_amount=ZERO,
                own_forecast_amount=ZERO,
                own_actual_amount=ZERO,
                partner_forecast_deduction_amount=ZERO,
                partner_actual_deduction_amount=ZERO,
            )
            self.session.flush()

            if command.base_pay:
                self.propagate(center, command.base_pay, _FORECAST)

            logger.info(
                "cost_center_created",
                extra={
                    "center_code": center.code,
                    "kind": center.kind,
                    "parent_code": parent.code if parent else None,
                    "is_partner": center.is_partner,
                },
            )
        return center

    def ensure_payroll_parent(self) -> CostCenter:
        """Return the payroll parent center, creating it when missing."""
        with self._mutation("cost_center_ensure_payroll_parent"):
            return self._ensure_payroll_parent()

    def _ensure_payroll_parent(self) -> CostCenter:
        parent = self.find(self.payroll_parent_code)
        if parent is not None:
            return parent
        parent = self._new(
            CostCenter,
            name=self.payroll_parent_name,
            code=self.payroll_parent_code,
            kind=CenterKind.EXPENSE.value,
            parent_id=None,
            is_partner=False,
            is_active=True,
            forecast_amount=ZERO,
            actual_amount=ZERO,
            own_forecast_amount=ZERO,
            own_actual_amount=ZERO,
            partner_forecast_deduction_amount=ZERO,
            partner_actual_deduction_amount=ZERO,
        )
        self.session.flush()
        logger.info("payroll_parent_created", extra={"center_code": parent.code})
        return parent

    def rename(self, code: str, name: str) -> CostCenter:
        with self._mutation("cost_center_rename", center_code=code):
            center = self.get(code)
            center.name = name.strip()
            self._touch(center)
        return center

    def set_base_pay(self, code: str, amount: Decimal) -> CostCenter:
        """Set a partner's monthly base pay (its own forecast)."""
        with self._mutation("partner_base_pay_set", center_code=code):
            center = self.get(code)
            if not center.is_partner:
                raise NotAPartnerError(center.code)
            delta = round_money(Decimal(amount)) - (center.own_forecast_amount or ZERO)
            if delta:
                self.propagate(center, delta, _FORECAST)
        return center

    def deactivate(self, code: str) -> CostCenter:
        with self._mutation("cost_center_deactivate", center_code=code):
            center = self.get(code)
            active_children = self.children(center, active_only=True)
            if active_children:
                raise CenterHasChildrenError(center.code, len(active_children))
            center.is_active = False
            self._touch(center)
            logger.info("cost_center_deactivated", extra={"center_code": center.code})
        return center

    def delete(self, code: str) -> None:
        """Hard delete; only for centers without children or references."""
        with self._mutation("cost_center_delete", center_code=code):
            center = self.get(code)
            children = self.children(center)
            if children:
                raise CenterHasChildrenError(center.code, len(children))
            references = self._reference_count(center)
            if references:
                raise CenterReferencedError(center.code, references)
            self.session.delete(center)
            logger.info("cost_center_deleted", extra={"center_code": center.code})

    def _reference_count(self, center: CostCenter) -> int:
        bills = self.session.execute(
            select(func.count(Bill.id)).where(
                Bill.tenant_id == self.tenant_id,
                or_(Bill.cost_center_id == center.id, Bill.partner_responsible_id == center.id),
            )
        ).scalar_one()
        entries = self.session.execute(
            select(func.count(LedgerEntry.id)).where(
                LedgerEntry.tenant_id == self.tenant_id,
                LedgerEntry.cost_center_code == center.code,
            )
        ).scalar_one()
        return bills + entries

    # ------------------------------------------------------------------
    # Accumulators
    # ------------------------------------------------------------------

    def propagate(self, center: CostCenter, delta: Decimal, column: str = _ACTUAL) -> None:
        """
        Add ``delta`` to ``center``'s own amount and to the aggregate of the
        center and each ancestor, child first.
        """
        if not delta:
            return
        own_attr = f"own_{column}_amount"
        total_attr = f"{column}_amount"
        chain = [center, *self.ancestors(center)]

        setattr(center, own_attr, (getattr(center, own_attr) or ZERO) + delta)
        for node in chain:
            setattr(node, total_attr, (getattr(node, total_attr) or ZERO) + delta)
            self._touch(node)

        logger.info(
            "cost_center_propagated",
            extra={
                "center_code": center.code,
                "column": column,
                "delta": str(delta),
                "depth": len(chain),
            },
        )

    def increment_actual(self, code: str | None, amount: Decimal) -> CostCenter | None:
        return self._increment(code, amount, _ACTUAL)

    def increment_forecast(self, code: str | None, amount: Decimal) -> CostCenter | None:
        return self._increment(code, amount, _FORECAST)

    def _increment(self, code: str | None, amount: Decimal, column: str) -> CostCenter | None:
        with self._mutation(f"cost_center_increment_{column}", center_code=code):
            center = self.find(code)
            if center is None:
                logger.info(
                    "cost_center_unknown",
                    extra={"center_code": code, "column": column, "delta": str(amount)},
                )
                return None
            self.propagate(center, amount, column)
            return center

    def increment_partner_forecast_deduction(self, code: str | None, amount: Decimal) -> CostCenter | None:
        return self._increment_partner(code, amount, "partner_forecast_deduction_amount")

    def increment_partner_actual_deduction(self, code: str | None, amount: Decimal) -> CostCenter | None:
        return self._increment_partner(code, amount, "partner_actual_deduction_amount")

    def _increment_partner(self, code: str | None, amount: Decimal, attr: str) -> CostCenter | None:
        with self._mutation("partner_deduction_increment", center_code=code):
            center = self.find(code)
            if center is None:
                logger.info(
                    "cost_center_unknown",
                    extra={"center_code": code, "column": attr, "delta": str(amount)},
                )
                return None
            if not center.is_partner:
                raise NotAPartnerError(center.code)
            self._add_partner(center, attr, amount)
            return center

    def _add_partner(self, center: CostCenter, attr: str, amount: Decimal) -> None:
        setattr(center, attr, (getattr(center, attr) or ZERO) + amount)
        self._touch(center)
        logger.info(
            "partner_accumulator_changed",
            extra={"center_code": center.code, "column": attr, "delta": str(amount)},
        )

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def classify_direct_effect(
        self, code: str | None, direction: EntryDirection, amount: Decimal
    ) -> AccumulatorEffect:
        """
        Accumulator change for a ledger posting that is not linked to a bill.

            out, partner center      -> partner actual deduction
            out, other center        -> center actual (propagated)
            in,  revenue center      -> center actual (propagated)
            in,  expense center      -> none
        """
        center = self.find(code)
        if center is None:
            if code:
                logger.info("cost_center_unknown", extra={"center_code": code})
            return AccumulatorEffect.none()
        direction = EntryDirection(direction)
        if direction is EntryDirection.OUT:
            if center.is_partner:
                return AccumulatorEffect(EffectKind.PARTNER_DEDUCTION, center.id, amount)
            return AccumulatorEffect(EffectKind.CENTER_ACTUAL, center.id, amount)
        if center.is_revenue:
            return AccumulatorEffect(EffectKind.CENTER_ACTUAL, center.id, amount)
        return AccumulatorEffect.none()

    def classify_bill_effect(self, bill: Bill) -> AccumulatorEffect:
        """
        Accumulator change for paying ``bill``.

            non-partner center           -> center actual (propagated)
            partner center, payroll bill -> partner actual (propagated)
            partner center, other bill   -> none (counted through the bill)
        """
        center = self._get_scoped(CostCenter, bill.cost_center_id) if bill.cost_center_id else None
        if center is None:
            center = self.find(bill.cost_center_code)
        if center is None:
            return AccumulatorEffect.none()
        if center.is_partner:
            if bill.is_payroll:
                return AccumulatorEffect(EffectKind.PARTNER_ACTUAL, center.id, bill.amount)
            return AccumulatorEffect.none()
        return AccumulatorEffect(EffectKind.CENTER_ACTUAL, center.id, bill.amount)

    def apply_effect(self, effect: AccumulatorEffect) -> None:
        if effect.is_noop:
            return
        with self._mutation("accumulator_effect_apply", effect_kind=effect.kind.value):
            self._apply(effect)

    def revert_effect(self, effect: AccumulatorEffect) -> None:
        if effect.is_noop:
            return
        with self._mutation("accumulator_effect_revert", effect_kind=effect.kind.value):
            self._apply(effect.inverted())

    def _apply(self, effect: AccumulatorEffect) -> None:
        center = self._get_scoped(CostCenter, effect.center_id)
        if center is None:
            logger.info(
                "cost_center_unknown",
                extra={"center_id": str(effect.center_id), "delta": str(effect.amount)},
            )
            return
        if effect.kind is EffectKind.PARTNER_DEDUCTION:
            self._add_partner(center, "partner_actual_deduction_amount", effect.amount)
        else:
            self.propagate(center, effect.amount, _ACTUAL)

    def book_bill_forecast(self, bill: Bill, delta: Decimal) -> Decimal:
        """
        Book ``delta`` of forecast for ``bill`` and record it on the bill.

            payroll bill                 -> nothing
            partner center               -> partner forecast deduction
            other center                 -> forecast (propagated)

        Returns the delta actually booked (zero when nothing was booked).
        """
        if bill.is_payroll or not delta or bill.cost_center_id is None:
            return ZERO
        center = self._get_scoped(CostCenter, bill.cost_center_id)
        if center is None:
            return ZERO
        with self._mutation("bill_forecast_book", center_code=center.code):
            if center.is_partner:
                self._add_partner(center, "partner_forecast_deduction_amount", delta)
            else:
                self.propagate(center, delta, _FORECAST)
            bill.forecast_amount = (bill.forecast_amount or ZERO) + delta
        return delta

    def release_bill_forecast(self, bill: Bill) -> Decimal:
        """Undo whatever forecast ``bill`` still has booked."""
        booked = bill.forecast_amount or ZERO
        if not booked:
            return ZERO
        return self.book_bill_forecast(bill, -booked)

    def reset_partner_period(self, partner: CostCenter) -> tuple[Decimal, Decimal]:
        """
        Zero a partner's actual amount (propagating the negative delta) and
        its actual deduction accumulator.  Returns the previous values.
        """
        with self._mutation("partner_period_reset", center_code=partner.code):
            if not partner.is_partner:
                raise NotAPartnerError(partner.code)
            previous_actual = partner.own_actual_amount or ZERO
            previous_deduction = partner.partner_actual_deduction_amount or ZERO
            if previous_actual:
                self.propagate(partner, -previous_actual, _ACTUAL)
            if previous_deduction:
                self._add_partner(partner, "partner_actual_deduction_amount", -previous_deduction)
        return previous_actual, previous_deduction
