"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor (session, tenant context, clock) and the
    ``_mutation()`` scope every public mutating operation runs in:

        with self._mutation("bill_paid", bill_id=bill.id):
            ...

    The scope binds the tenant/actor log context, opens a SAVEPOINT and
    acquires the tenant lock.  If the body raises, the SAVEPOINT is rolled
    back and nothing of the operation persists; the exception propagates.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush, never commit.  The caller (a script, the
      payroll module, a test) owns commit/rollback.
    - Every row created or changed records the acting user in the
      TrackedBase audit columns.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Any, Generic, Iterator, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.db.base import Base, TenantScopedBase
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.values import TenantContext
from backoffice_kernel.logging_config import LogContext
from backoffice_kernel.services.notification_outbox import outbox_mark, outbox_rewind
from backoffice_kernel.services.tenant_lock import TenantLockService

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts the caller's ``Session`` and ``TenantContext``.  Uses
        ``session.flush()`` within the active transaction.

    Non-goals:
        - Does NOT commit or roll back the outer transaction.
        - Read models (DTOs) belong in ``backoffice_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        context: TenantContext,
        clock: Clock | None = None,
    ):
        self.session = session
        self.context = context
        self.clock = clock or SystemClock()

    @property
    def tenant_id(self) -> UUID:
        return self.context.tenant_id

    @contextmanager
    def _mutation(self, operation: str, **log_fields: Any) -> Iterator[None]:
        mark = outbox_mark(self.session)
        with LogContext.bind(operation=operation, **self.context.log_fields(), **log_fields):
            try:
                with self.session.begin_nested():
                    TenantLockService(self.session).acquire(
                        self.tenant_id, operation, self.clock.now()
                    )
                    yield
                    self.session.flush()
            except Exception:
                outbox_rewind(self.session, mark)
                raise

    def _new(self, model: type[ModelType], **fields: Any) -> ModelType:
        """Instantiate a tenant row stamped with the caller's audit fields."""
        row = model(
            tenant_id=self.tenant_id,
            created_by_id=self.context.actor_id,
            **fields,
        )
        self.session.add(row)
        return row

    def _touch(self, row: TenantScopedBase) -> None:
        row.updated_by_id = self.context.actor_id

    def _scoped(self, model: type[ModelType]):
        return select(model).where(model.tenant_id == self.tenant_id)

    def _get_scoped(self, model: type[ModelType], row_id: UUID) -> ModelType | None:
        row = self.session.get(model, row_id)
        if row is None or row.tenant_id != self.tenant_id:
            return None
        return row
