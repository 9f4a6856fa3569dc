"""
Module: backoffice_kernel.selectors.cost_center_selector
Responsibility: Read-only views over the cost center tree, and the
    propagation check used by tests and operational diagnostics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    verify_propagation() reports every center whose aggregate forecast or
    actual differs from its own amount plus the sum of its children's
    aggregates.  An empty result means the tree is consistent.
"""

from collections import defaultdict
from uuid import UUID

from backoffice_kernel.db.types import ZERO
from backoffice_kernel.domain.dtos import CostCenterView, PropagationMismatch
from backoffice_kernel.models.cost_center import CostCenter
from backoffice_kernel.selectors.base import BaseSelector


class CostCenterSelector(BaseSelector[CostCenter]):

    def _all(self) -> list[CostCenter]:
        return list(
            self.session.execute(self._scoped(CostCenter).order_by(CostCenter.code)).scalars()
        )

    def get(self, code: str) -> CostCenterView | None:
        row = self.session.execute(
            self._scoped(CostCenter).where(CostCenter.code == code.strip().upper())
        ).scalar_one_or_none()
        return _to_view(row) if row is not None else None

    def partners(self, active_only: bool = True) -> list[CostCenterView]:
        stmt = self._scoped(CostCenter).where(CostCenter.is_partner.is_(True))
        if active_only:
            stmt = stmt.where(CostCenter.is_active.is_(True))
        return [_to_view(row) for row in self.session.execute(stmt.order_by(CostCenter.code)).scalars()]

    def tree(self, active_only: bool = False) -> list[CostCenterView]:
        """Root views with their children nested, ordered by code."""
        rows = [row for row in self._all() if row.is_active or not active_only]
        by_parent: dict[UUID | None, list[CostCenter]] = defaultdict(list)
        ids = {row.id for row in rows}
        for row in rows:
            parent = row.parent_id if row.parent_id in ids else None
            by_parent[parent].append(row)

        def build(row: CostCenter, seen: frozenset) -> CostCenterView:
            kids = tuple(
                build(child, seen | {row.id})
                for child in by_parent.get(row.id, [])
                if child.id not in seen
            )
            return _to_view(row, kids)

        return [build(row, frozenset()) for row in by_parent.get(None, [])]

    def verify_propagation(self) -> list[PropagationMismatch]:
        rows = self._all()
        children: dict[UUID, list[CostCenter]] = defaultdict(list)
        for row in rows:
            if row.parent_id is not None:
                children[row.parent_id].append(row)

        mismatches = []
        for row in rows:
            for column in ("forecast", "actual"):
                own = getattr(row, f"own_{column}_amount") or ZERO
                stored = getattr(row, f"{column}_amount") or ZERO
                expected = own + sum(
                    (getattr(child, f"{column}_amount") or ZERO for child in children[row.id]),
                    ZERO,
                )
                if stored != expected:
                    mismatches.append(
                        PropagationMismatch(
                            code=row.code, column=column, stored=stored, expected=expected
                        )
                    )
        return mismatches


def _to_view(row: CostCenter, children: tuple = ()) -> CostCenterView:
    return CostCenterView(
        id=row.id,
        code=row.code,
        name=row.name,
        kind=row.kind,
        parent_id=row.parent_id,
        is_partner=row.is_partner,
        is_active=row.is_active,
        forecast_amount=row.forecast_amount or ZERO,
        actual_amount=row.actual_amount or ZERO,
        own_forecast_amount=row.own_forecast_amount or ZERO,
        own_actual_amount=row.own_actual_amount or ZERO,
        partner_forecast_deduction_amount=row.partner_forecast_deduction_amount or ZERO,
        partner_actual_deduction_amount=row.partner_actual_deduction_amount or ZERO,
        children=children,
    )
