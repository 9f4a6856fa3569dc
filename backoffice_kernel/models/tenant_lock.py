"""
Module: backoffice_kernel.models.tenant_lock
Responsibility: One row per tenant, locked with SELECT ... FOR UPDATE by every
    mutating kernel operation so that ledger sequences, balance rebuilds,
    tree propagation and payroll runs of one tenant never interleave.
Architecture position: Kernel > Models.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import Base, UUIDString


class TenantLock(Base):
    __tablename__ = "tenant_locks"

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_lock_tenant"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    last_operation: Mapped[str | None] = mapped_column(String(100), nullable=True)

    last_acquired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<TenantLock {self.tenant_id}>"
