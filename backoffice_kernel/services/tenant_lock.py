"""
TenantLockService -- per-tenant write serialization.

Responsibility:
    Every mutating kernel operation acquires the tenant's lock row with
    ``SELECT ... FOR UPDATE`` before touching any other row.  Writers of the
    same tenant therefore queue up; writers of different tenants never
    block each other.  The lock is released when the caller's transaction
    ends.

Architecture position:
    Kernel > Services -- imperative shell.

Failure modes:
    - On PostgreSQL a concurrent first acquisition may race on the INSERT;
      the loser's SAVEPOINT is rolled back and it locks the winner's row.
    - SQLite ignores FOR UPDATE; its database-level write lock gives the
      same serialization.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.tenant_lock import TenantLock

logger = get_logger("services.tenant_lock")


class TenantLockService:

    def __init__(self, session: Session):
        self.session = session

    def acquire(self, tenant_id: UUID, operation: str, now: datetime | None = None) -> TenantLock:
        lock = self._select_for_update(tenant_id)
        if lock is None:
            lock = self._create(tenant_id)
        lock.last_operation = operation
        lock.last_acquired_at = now
        logger.debug(
            "tenant_lock_acquired",
            extra={"lock_tenant_id": str(tenant_id), "lock_operation": operation},
        )
        return lock

    def _select_for_update(self, tenant_id: UUID) -> TenantLock | None:
        return self.session.execute(
            select(TenantLock)
            .where(TenantLock.tenant_id == tenant_id)
            .with_for_update()
        ).scalar_one_or_none()

    def _create(self, tenant_id: UUID) -> TenantLock:
        try:
            with self.session.begin_nested():
                lock = TenantLock(tenant_id=tenant_id)
                self.session.add(lock)
                self.session.flush()
            return lock
        except IntegrityError:
            logger.info(
                "tenant_lock_insert_race",
                extra={"lock_tenant_id": str(tenant_id)},
            )
            lock = self._select_for_update(tenant_id)
            if lock is None:
                raise
            return lock
