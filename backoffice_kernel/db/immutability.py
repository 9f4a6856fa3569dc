"""
ORM-Level Immutability Enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  ``protect_model()`` registers listeners that inspect attribute
history and raise ImmutabilityViolationError when a frozen column changed:

    session.flush()
         |
         v
    [before_update] --> _check_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The failed flush aborts the enclosing SAVEPOINT; the database is never
modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Mutable columns                  | Delete
------------------|----------------------------------|---------
PayrollSnapshot   | is_paid, paid_date               | never

Audit metadata (updated_at, updated_by_id) stays writable everywhere.
"""

from typing import Iterable

from sqlalchemy import event, inspect

from backoffice_kernel.exceptions import ImmutabilityViolationError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_protected: dict[type, frozenset[str]] = {}


def _changed_fields(target) -> list[str]:
    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _check_update(mapper, connection, target):
    allowed = _protected[mapper.class_] | _AUDIT_FIELDS
    frozen = [name for name in _changed_fields(target) if name not in allowed]
    if frozen:
        logger.error(
            "immutability_violation",
            extra={
                "entity_type": mapper.class_.__name__,
                "entity_id": str(target.id),
                "fields": frozen,
            },
        )
        raise ImmutabilityViolationError(
            entity_type=mapper.class_.__name__,
            entity_id=str(target.id),
            reason=f"frozen field(s) changed: {', '.join(sorted(frozen))}",
        )


def _check_delete(mapper, connection, target):
    logger.error(
        "immutability_violation",
        extra={
            "entity_type": mapper.class_.__name__,
            "entity_id": str(target.id),
            "fields": ["<delete>"],
        },
    )
    raise ImmutabilityViolationError(
        entity_type=mapper.class_.__name__,
        entity_id=str(target.id),
        reason="records of this type can never be deleted",
    )


def protect_model(model: type, mutable_fields: Iterable[str] = ()) -> None:
    """
    Freeze ``model`` rows once flushed, except for ``mutable_fields``.

    Idempotent: protecting the same model twice registers listeners once.
    """
    if model in _protected:
        return
    _protected[model] = frozenset(mutable_fields)
    event.listen(model, "before_update", _check_update)
    event.listen(model, "before_delete", _check_delete)
