"""
Payroll Configuration.

Translates ``BackofficeSettings`` into the plain values the payroll module
and the kernel services it builds need.  The kernel never sees the settings
object itself.
"""

from dataclasses import dataclass

from backoffice_config import BackofficeSettings, get_active_config
from backoffice_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.config")


@dataclass(frozen=True)
class PayrollConfig:
    """
    Values the payroll module reads at runtime.

        config = PayrollConfig.from_settings(get_active_config())
    """

    bill_category: str = "Pró-labore"
    bill_description: str = "Pró-labore"
    payroll_parent_code: str = "PRO-LABORE"
    payroll_parent_name: str = "Pró-labore"
    decimal_places: int = 2
    max_rebuild_entries: int = 50_000
    rebuild_chunk_size: int = 1_000
    max_installments: int = 120
    max_recurring_occurrences: int = 520

    @classmethod
    def from_settings(cls, settings: BackofficeSettings) -> "PayrollConfig":
        config = cls(
            bill_category=settings.payroll.bill_category,
            bill_description=settings.payroll.bill_description,
            payroll_parent_code=settings.cost_centers.payroll_parent_code,
            payroll_parent_name=settings.cost_centers.payroll_parent_name,
            decimal_places=settings.money.decimal_places,
            max_rebuild_entries=settings.ledger.max_rebuild_entries,
            rebuild_chunk_size=settings.ledger.rebuild_chunk_size,
            max_installments=settings.bills.max_installments,
            max_recurring_occurrences=settings.bills.max_recurring_occurrences,
        )
        logger.debug(
            "payroll_config_built",
            extra={"checksum": settings.checksum, "bill_category": config.bill_category},
        )
        return config

    @classmethod
    def load(cls, config_path=None) -> "PayrollConfig":
        return cls.from_settings(get_active_config(config_path))
