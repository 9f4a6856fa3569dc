"""
Payroll Module (``backoffice_modules.payroll``).

Partner compensation ("pró-labore"): net pay computation, recurring
deductions and the monthly snapshot that turns a period into payroll bills.
"""

from backoffice_modules.payroll.compensation import PartnerCompensation
from backoffice_modules.payroll.config import PayrollConfig
from backoffice_modules.payroll.models import (
    CompensationBreakdown,
    DeductionLine,
    DeductionSource,
    PartnerFailure,
    PayrollHistory,
    PayrollRunResult,
    PayrollStatus,
    RecurringDeduction,
    SnapshotSummary,
)
from backoffice_modules.payroll.service import (
    PartnerPayrollService,
    PayrollSnapshotter,
    build_kernel_services,
)

__all__ = [
    "CompensationBreakdown",
    "DeductionLine",
    "DeductionSource",
    "PartnerCompensation",
    "PartnerFailure",
    "PartnerPayrollService",
    "PayrollConfig",
    "PayrollHistory",
    "PayrollRunResult",
    "PayrollSnapshotter",
    "PayrollStatus",
    "RecurringDeduction",
    "SnapshotSummary",
    "build_kernel_services",
]
