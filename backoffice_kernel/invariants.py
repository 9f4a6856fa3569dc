"""
Kernel Invariants Contract.

These invariants are structural law.  They are enforced in the kernel
services and hold for every tenant; no configuration value may switch them
off.

This module exists solely to declare them explicitly.  Enforcement is
distributed across CostCenterService, LedgerService, BillService and the
payroll snapshotter.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    ACCUMULATOR_PROPAGATION = "accumulator_propagation"
    """A center's aggregate forecast/actual equals its own amount plus the
    sum of its children's aggregates.  Enforced by CostCenterService."""

    RUNNING_BALANCE = "running_balance"
    """Every ledger entry's balance equals its predecessor's plus its signed
    amount, in (entry_date, sequence) order.  Enforced by LedgerService."""

    MACRO_NEVER_MOVES_CASH = "macro_never_moves_cash"
    """Installment parents and recurring templates are never paid, posted
    or summed.  Enforced by BillService and LedgerService."""

    GROUP_TOTAL = "group_total"
    """A non-cancelled group parent's amount equals the sum of its
    non-cancelled children.  Enforced by BillService."""

    TENANT_ISOLATION = "tenant_isolation"
    """No operation reads or writes another tenant's rows.  Enforced by the
    tenant-scoped queries of every service and selector."""

    SNAPSHOT_UNIQUENESS = "snapshot_uniqueness"
    """At most one payroll snapshot per (tenant, partner, year, month), and
    its amounts never change.  Enforced by a unique constraint and the ORM
    immutability listeners."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "backoffice_config",
    "backoffice_modules",
    "scripts",
)
