"""
Configuration Schema (``backoffice_config.schema``).

Responsibility
--------------
Frozen dataclasses describing every tunable of the back office.  Each
section validates itself in ``__post_init__`` so an invalid YAML document
fails at load time, never in the middle of an operation.

Architecture position
---------------------
**Config layer** -- pure data.  No dependency on kernel or modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LedgerSettings:
    """Bounds for the full running-balance rebuild."""

    max_rebuild_entries: int = 50_000
    rebuild_chunk_size: int = 1_000

    def __post_init__(self):
        if self.max_rebuild_entries <= 0:
            raise ValueError("ledger.max_rebuild_entries must be positive")
        if self.rebuild_chunk_size <= 0:
            raise ValueError("ledger.rebuild_chunk_size must be positive")
        if self.rebuild_chunk_size > self.max_rebuild_entries:
            raise ValueError(
                "ledger.rebuild_chunk_size must not exceed ledger.max_rebuild_entries"
            )


@dataclass(frozen=True)
class CostCenterSettings:
    """The lazily created parent that owns every partner center."""

    payroll_parent_code: str = "PRO-LABORE"
    payroll_parent_name: str = "Pró-labore"

    def __post_init__(self):
        if not self.payroll_parent_code or not self.payroll_parent_code.strip():
            raise ValueError("cost_centers.payroll_parent_code must not be empty")
        if not self.payroll_parent_name or not self.payroll_parent_name.strip():
            raise ValueError("cost_centers.payroll_parent_name must not be empty")
        object.__setattr__(self, "payroll_parent_code", self.payroll_parent_code.strip().upper())


@dataclass(frozen=True)
class PayrollSettings:
    """How generated payroll bills are labelled."""

    bill_category: str = "Pró-labore"
    bill_description: str = "Pró-labore"

    def __post_init__(self):
        if not self.bill_category:
            raise ValueError("payroll.bill_category must not be empty")
        if not self.bill_description:
            raise ValueError("payroll.bill_description must not be empty")


@dataclass(frozen=True)
class BillSettings:
    max_installments: int = 120
    max_recurring_occurrences: int = 520

    def __post_init__(self):
        if self.max_installments < 2:
            raise ValueError("bills.max_installments must be at least 2")
        if self.max_recurring_occurrences < 1:
            raise ValueError("bills.max_recurring_occurrences must be at least 1")


@dataclass(frozen=True)
class MoneySettings:
    decimal_places: int = 2

    def __post_init__(self):
        if not 0 <= self.decimal_places <= 6:
            raise ValueError("money.decimal_places must be within 0..6")


@dataclass(frozen=True)
class BackofficeSettings:
    """The whole configuration document plus its checksum."""

    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    cost_centers: CostCenterSettings = field(default_factory=CostCenterSettings)
    payroll: PayrollSettings = field(default_factory=PayrollSettings)
    bills: BillSettings = field(default_factory=BillSettings)
    money: MoneySettings = field(default_factory=MoneySettings)
    checksum: str = ""
    source: str = ""
