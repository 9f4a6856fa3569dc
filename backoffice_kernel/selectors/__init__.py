"""Selectors for the back-office kernel (read side)."""

from backoffice_kernel.selectors.bill_selector import BillSelector
from backoffice_kernel.selectors.cost_center_selector import CostCenterSelector
from backoffice_kernel.selectors.ledger_selector import LedgerSelector

__all__ = [
    "BillSelector",
    "CostCenterSelector",
    "LedgerSelector",
]
