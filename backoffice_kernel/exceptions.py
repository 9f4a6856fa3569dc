"""
Typed Exception Hierarchy for the Backoffice Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, the payroll CLI, tests) must react to failures by
TYPE, never by parsing messages.  Every exception therefore:

  1. Has a class per failure (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (ids, codes, amounts)

    try:
        snapshotter.generate(month=3, year=2025)
    except PayrollAlreadyGeneratedError as e:
        return {"error": e.code, "month": e.month, "year": e.year}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BackofficeError (base)
    |
    +-- NotFoundError
    |   +-- CostCenterNotFoundError
    |   +-- LedgerEntryNotFoundError
    |   +-- BillNotFoundError
    |   +-- PartnerNotFoundError
    |   +-- RecurringDeductionNotFoundError
    |   +-- NoActivePartnersError
    |
    +-- ConflictError
    |   +-- DuplicateCodeError
    |   +-- PayrollAlreadyGeneratedError
    |   +-- BillAlreadyProcessedError
    |   +-- BillAlreadyPaidError
    |
    +-- InvalidOperationError
    |   +-- MacroBillPostingError
    |   +-- DirectBillPostingError
    |   +-- MacroBillPaymentError
    |   +-- CenterHasChildrenError
    |   +-- CenterReferencedError
    |   +-- BillNotPaidError
    |   +-- BillCancelledError
    |   +-- LedgerEntryLinkedError
    |   +-- InstallmentReductionError
    |   +-- EntryProcessedForPayrollError
    |   +-- NotAPartnerError
    |
    +-- ValidationError
    |   +-- InvalidKindError
    |   +-- NonPositiveAmountError
    |   +-- MissingFieldError
    |   +-- InvalidFrequencyError
    |   +-- InvalidPeriodError
    |   +-- NoOccurrencesError
    |
    +-- ConsistencyError
    |   +-- CostCenterCycleError
    |   +-- LedgerRebuildLimitError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
HANDLING POLICY
===============================================================================

NotFound / Conflict / Validation / InvalidOperation propagate synchronously
to the caller and are never retried.  ConsistencyError aborts the enclosing
SAVEPOINT; nothing of the failed operation is persisted.  The payroll batch
is the only place that collects errors per partner and carries on.
"""


class BackofficeError(Exception):
    """
    Base exception for all backoffice kernel errors.

    All subclasses have a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "BACKOFFICE_ERROR"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(BackofficeError):
    """Base for lookups that found nothing in the caller's tenant."""

    code: str = "NOT_FOUND"


class CostCenterNotFoundError(NotFoundError):
    code: str = "COST_CENTER_NOT_FOUND"

    def __init__(self, code_or_id: str):
        self.cost_center = str(code_or_id)
        super().__init__(f"Cost center not found: {code_or_id}")


class LedgerEntryNotFoundError(NotFoundError):
    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = str(entry_id)
        super().__init__(f"Ledger entry not found: {entry_id}")


class BillNotFoundError(NotFoundError):
    code: str = "BILL_NOT_FOUND"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Bill not found: {bill_id}")


class PartnerNotFoundError(NotFoundError):
    code: str = "PARTNER_NOT_FOUND"

    def __init__(self, partner_id: str):
        self.partner_id = str(partner_id)
        super().__init__(f"Partner not found: {partner_id}")


class RecurringDeductionNotFoundError(NotFoundError):
    code: str = "RECURRING_DEDUCTION_NOT_FOUND"

    def __init__(self, deduction_id: str):
        self.deduction_id = str(deduction_id)
        super().__init__(f"Recurring deduction not found: {deduction_id}")


class NoActivePartnersError(NotFoundError):
    """Payroll requested for a tenant that has no active partner center."""

    code: str = "NO_ACTIVE_PARTNERS"

    def __init__(self, tenant_id: str):
        self.tenant_id = str(tenant_id)
        super().__init__(f"No active partners for tenant {tenant_id}")


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictError(BackofficeError):
    code: str = "CONFLICT"


class DuplicateCodeError(ConflictError):
    code: str = "DUPLICATE_COST_CENTER_CODE"

    def __init__(self, center_code: str):
        self.center_code = center_code
        super().__init__(f"Cost center code already exists: {center_code}")


class PayrollAlreadyGeneratedError(ConflictError):
    """A payroll snapshot already exists for the period."""

    code: str = "PAYROLL_ALREADY_GENERATED"

    def __init__(self, month: int, year: int):
        self.month = month
        self.year = year
        super().__init__(f"Payroll already generated for {month:02d}/{year}")


class BillAlreadyProcessedError(ConflictError):
    """The bill was already consumed by a payroll run."""

    code: str = "BILL_ALREADY_PROCESSED"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Bill already processed for payroll: {bill_id}")


class BillAlreadyPaidError(ConflictError):
    code: str = "BILL_ALREADY_PAID"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Bill already paid: {bill_id}")


# ---------------------------------------------------------------------------
# Invalid operations
# ---------------------------------------------------------------------------


class InvalidOperationError(BackofficeError):
    code: str = "INVALID_OPERATION"


class MacroBillPostingError(InvalidOperationError):
    """Installment parents and recurring templates never reach the ledger."""

    code: str = "MACRO_BILL_POSTING"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Macro bill cannot be posted to the ledger: {bill_id}")


class DirectBillPostingError(InvalidOperationError):
    """Bill payments reach the ledger only through BillService.mark_paid."""

    code: str = "DIRECT_BILL_POSTING"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Pay bills through BillService.mark_paid: {bill_id}")


class MacroBillPaymentError(InvalidOperationError):
    code: str = "MACRO_BILL_PAYMENT"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(
            f"Macro bill cannot be paid directly, pay its installments: {bill_id}"
        )


class CenterHasChildrenError(InvalidOperationError):
    code: str = "COST_CENTER_HAS_CHILDREN"

    def __init__(self, center_code: str, child_count: int):
        self.center_code = center_code
        self.child_count = child_count
        super().__init__(
            f"Cost center {center_code} has {child_count} child center(s)"
        )


class CenterReferencedError(InvalidOperationError):
    code: str = "COST_CENTER_REFERENCED"

    def __init__(self, center_code: str, reference_count: int):
        self.center_code = center_code
        self.reference_count = reference_count
        super().__init__(
            f"Cost center {center_code} is referenced by "
            f"{reference_count} bill(s) or ledger entries"
        )


class BillNotPaidError(InvalidOperationError):
    code: str = "BILL_NOT_PAID"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Bill is not paid: {bill_id}")


class BillCancelledError(InvalidOperationError):
    code: str = "BILL_CANCELLED"

    def __init__(self, bill_id: str):
        self.bill_id = str(bill_id)
        super().__init__(f"Bill is cancelled: {bill_id}")


class LedgerEntryLinkedError(InvalidOperationError):
    """Amount or center of a bill-linked entry must be changed on the bill."""

    code: str = "LEDGER_ENTRY_LINKED"

    def __init__(self, entry_id: str, bill_id: str, field: str):
        self.entry_id = str(entry_id)
        self.bill_id = str(bill_id)
        self.field = field
        super().__init__(
            f"Ledger entry {entry_id} is linked to bill {bill_id}; "
            f"edit '{field}' on the bill instead"
        )


class InstallmentReductionError(InvalidOperationError):
    code: str = "INSTALLMENT_REDUCTION"

    def __init__(self, parent_id: str, requested: int, paid: int):
        self.parent_id = str(parent_id)
        self.requested = requested
        self.paid = paid
        super().__init__(
            f"Cannot reduce installment set {parent_id} to {requested} "
            f"installment(s): {paid} already paid"
        )


class EntryProcessedForPayrollError(InvalidOperationError):
    """The entry was consumed by a payroll run; its amount and center are frozen."""

    code: str = "ENTRY_PROCESSED_FOR_PAYROLL"

    def __init__(self, entry_id: str):
        self.entry_id = str(entry_id)
        super().__init__(
            f"Ledger entry {entry_id} was consumed by a payroll run"
        )


class NotAPartnerError(InvalidOperationError):
    code: str = "NOT_A_PARTNER"

    def __init__(self, center_code: str):
        self.center_code = center_code
        super().__init__(f"Cost center {center_code} is not a partner")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(BackofficeError):
    code: str = "VALIDATION_ERROR"


class InvalidKindError(ValidationError):
    code: str = "INVALID_KIND"

    def __init__(self, field: str, value: str, allowed: tuple[str, ...]):
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Invalid {field} '{value}', expected one of: {', '.join(allowed)}"
        )


class NonPositiveAmountError(ValidationError):
    code: str = "NON_POSITIVE_AMOUNT"

    def __init__(self, field: str, amount: str):
        self.field = field
        self.amount = str(amount)
        super().__init__(f"{field} must be greater than zero, got {amount}")


class MissingFieldError(ValidationError):
    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidFrequencyError(InvalidKindError):
    code: str = "INVALID_FREQUENCY"


class InvalidPeriodError(ValidationError):
    code: str = "INVALID_PERIOD"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Invalid period: {detail}")


class NoOccurrencesError(ValidationError):
    code: str = "NO_OCCURRENCES"

    def __init__(self, start: str, end: str, frequency: str):
        self.start = str(start)
        self.end = str(end)
        self.frequency = frequency
        super().__init__(
            f"No {frequency} occurrence between {start} and {end}"
        )


# ---------------------------------------------------------------------------
# Consistency
# ---------------------------------------------------------------------------


class ConsistencyError(BackofficeError):
    """Invariant breach detected at runtime; the operation rolls back."""

    code: str = "CONSISTENCY_ERROR"


class CostCenterCycleError(ConsistencyError):
    code: str = "COST_CENTER_CYCLE"

    def __init__(self, center_code: str):
        self.center_code = center_code
        super().__init__(f"Cycle detected in cost center ancestry at {center_code}")


class LedgerRebuildLimitError(ConsistencyError):
    code: str = "LEDGER_REBUILD_LIMIT"

    def __init__(self, tenant_id: str, entry_count: int, limit: int):
        self.tenant_id = str(tenant_id)
        self.entry_count = entry_count
        self.limit = limit
        super().__init__(
            f"Ledger rebuild of {entry_count} entries exceeds limit {limit}"
        )


# ---------------------------------------------------------------------------
# Immutability
# ---------------------------------------------------------------------------


class ImmutabilityError(BackofficeError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete a frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
