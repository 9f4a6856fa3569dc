"""Services for the back-office kernel (write side)."""

from backoffice_kernel.services.bill_service import BillService
from backoffice_kernel.services.cost_center_service import CostCenterService
from backoffice_kernel.services.ledger_service import LedgerService, ReversalResult
from backoffice_kernel.services.notification_outbox import NotificationOutbox
from backoffice_kernel.services.statement_aggregator import LeafBillStatementAggregator
from backoffice_kernel.services.tenant_lock import TenantLockService

__all__ = [
    "BillService",
    "CostCenterService",
    "LeafBillStatementAggregator",
    "LedgerService",
    "NotificationOutbox",
    "ReversalResult",
    "TenantLockService",
]
