"""
Module ORM Registry (``backoffice_modules._orm_registry``).

Responsibility
--------------
Ensure kernel and module ORM models are imported so that ``Base.metadata``
contains every table before tables are created.  Also provides
``create_all_tables()``, the entry point scripts and ``tests/conftest.py``
use to get a complete schema.

Architecture position
---------------------
**Modules layer** -- utility.  MUST NOT be imported by ``backoffice_kernel``
except lazily from ``create_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``backoffice_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import backoffice_kernel.models  # noqa: F401
    import backoffice_modules.payroll.orm  # noqa: F401


def create_all_tables(engine=None) -> None:
    """Create kernel + module tables on ``engine`` (default: the global engine)."""
    from backoffice_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables(engine)
