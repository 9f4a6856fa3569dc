"""
Module: backoffice_kernel.models.cost_center
Responsibility: ORM persistence for the cost/revenue center tree.  A center
    holds forecast ("previsto") and actual ("realizado") accumulators; partner
    centers ("sócios") additionally hold the forecast and actual deduction
    accumulators that feed partner compensation.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - code is unique per tenant (uq_cost_center_tenant_code) and upper-case.
    - Propagation: for every center,
        actual_amount   == own_actual_amount   + sum(children.actual_amount)
        forecast_amount == own_forecast_amount + sum(children.forecast_amount)
      The own_* columns make the invariant checkable at rest.  Maintained by
      CostCenterService.propagate(); nothing else writes these columns.
    - Partner deduction accumulators are never propagated.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code) pair.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TenantScopedBase, UUIDString
from backoffice_kernel.domain.values import CenterKind

_ZERO = Decimal("0")


class CostCenter(TenantScopedBase):
    """
    A node of the tenant's cost/revenue center tree.

    Contract:
        ``parent_id`` points to another center of the same tenant or is
        NULL for a root.  Soft-deleted centers keep their totals and their
        place in the tree.

    Guarantees:
        - ``kind`` is "expense" or "revenue".
        - ``is_partner`` centers carry ``partner_document`` and their base
          pay lives in ``own_forecast_amount``.
    """

    __tablename__ = "cost_centers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_cost_center_tenant_code"),
        Index("idx_cost_center_parent", "parent_id"),
        Index("idx_cost_center_partner", "tenant_id", "is_partner", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    kind: Mapped[CenterKind] = mapped_column(String(20), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_partner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    partner_document: Mapped[str | None] = mapped_column(String(20), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Aggregates: own amount plus every descendant
    forecast_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )
    actual_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )

    # Amounts booked directly on this center
    own_forecast_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )
    own_actual_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )

    # Partner-only accumulators
    partner_forecast_deduction_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )
    partner_actual_deduction_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=_ZERO, nullable=False
    )

    def __repr__(self) -> str:
        return f"<CostCenter {self.code}: {self.name}>"

    @property
    def is_revenue(self) -> bool:
        return self.kind == CenterKind.REVENUE

    @property
    def base_pay(self) -> Decimal:
        """A partner's monthly base pay (its forecast)."""
        return self.forecast_amount or _ZERO
