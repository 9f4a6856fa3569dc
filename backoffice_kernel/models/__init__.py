"""ORM models for the backoffice kernel."""

from backoffice_kernel.models.bill import Bill
from backoffice_kernel.models.cost_center import CostCenter
from backoffice_kernel.models.ledger import LedgerEntry, LedgerSequence
from backoffice_kernel.models.tenant_lock import TenantLock

__all__ = [
    "Bill",
    "CostCenter",
    "LedgerEntry",
    "LedgerSequence",
    "TenantLock",
]
