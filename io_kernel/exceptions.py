"""
Typed Exception Hierarchy for the Insertion Order Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval and budget decisions are surfaced to three different hosts: an
interactive save, a CSV import and the bulk status processor.  Each host
needs to tell a self-review attempt apart from a totals mismatch or an
exhausted budget without parsing message text.  Therefore:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Engines never raise these for expected business outcomes.  They return a
result value carrying the exception instance, and the host decides whether
the outcome is fatal (``result.unwrap()``) or only reported (bulk mode).

Example:
    decision = can_transition(order.approval_status, target, actor, order)
    if not decision.allowed:
        log.warning("denied", extra={"code": decision.error.code})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    IOKernelError (base)
    |
    +-- ValidationError
    |   +-- RejectReasonError
    |   +-- OverrideReasonError
    |   +-- InvalidOverrideAmountError
    |   +-- LineDateOrderError
    |   +-- LinePeriodOutsideCampaignError
    |   +-- MissingFieldError
    |   +-- MissingInvoicePeriodError
    |   +-- InvoicedExceedsTotalError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |   +-- RoleNotPermittedError
    |   +-- SelfReviewError
    |   +-- TotalsMismatchError
    |   +-- EditNotPermittedError
    |   +-- OverrideStateError
    |
    +-- BudgetError
    |   +-- BudgetExceededError
    |   +-- MultiMonthInvoiceError
    |   +-- NoMonthlyBudgetError
    |   +-- LineMonthMismatchError
    |
    +-- DuplicateKeyError
    |   +-- DuplicateOpportunityIdError
    |   +-- DuplicateLineIdError
    |
    +-- AggregationError
    |
    +-- AdmissionError
    |   +-- MissingOpportunityIdError
    |   +-- NoMatchingOrderError
    |   +-- OrderNotApprovedError
    |   +-- OrderClosedError
    |   +-- CustomerMismatchError
    |   +-- CurrencyMismatchError
    |   +-- EmptyInvoiceError
    |   +-- MissingLineIdError
    |   +-- UnmatchedInvoiceLineError
    |
    +-- OrderNotFoundError
    |
    +-- BulkJobError
        +-- BulkJobNotFoundError
        +-- BulkJobStateError
        +-- BulkAccessDeniedError
        +-- EmptyBulkJobError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                           | When Raised
-------------|--------------------------------|---------------------------------------
Validation   | REJECT_REASON_INVALID          | Reason missing or under minimum length
             | OVERRIDE_REASON_INVALID        | Override reason under minimum length
             | OVERRIDE_AMOUNT_INVALID        | Override amount negative
             | LINE_DATE_ORDER                | Line recognition start after end
             | LINE_OUTSIDE_CAMPAIGN          | Line period leaves campaign window
             | MISSING_FIELD                  | Required header field empty
             | MISSING_INVOICE_PERIOD         | Monthly mode invoice without dates
             | INVOICED_EXCEEDS_TOTAL         | Order total below net invoiced
-------------|--------------------------------|---------------------------------------
Transition   | ILLEGAL_TRANSITION             | Edge not in the workflow table
             | ROLE_NOT_PERMITTED             | Actor role may not fire the edge
             | SELF_REVIEW                    | Owner or editor reviewing own order
             | TOTALS_MISMATCH                | Order total != opportunity total
             | EDIT_NOT_PERMITTED             | Direct edit refused for role/status
             | OVERRIDE_STATE                 | Override activate/revoke not allowed
-------------|--------------------------------|---------------------------------------
Budget       | BUDGET_EXCEEDED                | remaining < requested
             | MULTI_MONTH_INVOICE            | Invoice spans two calendar months
             | NO_MONTHLY_BUDGET              | No line overlaps the invoice month
             | LINE_MONTH_MISMATCH            | Line period misses the invoice month
-------------|--------------------------------|---------------------------------------
Duplicate    | DUPLICATE_OPPORTUNITY_ID       | Opportunity id on another open order
             | DUPLICATE_LINE_ID              | Line id on another open order
-------------|--------------------------------|---------------------------------------
Aggregation  | AGGREGATION_UNAVAILABLE        | Required aggregate not supplied
-------------|--------------------------------|---------------------------------------
Admission    | MISSING_OPPORTUNITY_ID         | Invoice has no opportunity id
             | NO_MATCHING_ORDER              | No order for the opportunity id
             | ORDER_NOT_APPROVED             | Order status is not Approved
             | ORDER_CLOSED                   | Order is closed
             | CUSTOMER_MISMATCH              | Invoice customer differs
             | CURRENCY_MISMATCH              | Invoice currency differs
             | EMPTY_INVOICE                  | Invoice has no lines
             | MISSING_LINE_ID                | Invoice line without a line id
             | UNMATCHED_INVOICE_LINE         | Line id/item not on the order
-------------|--------------------------------|---------------------------------------
Bulk         | BULK_JOB_NOT_FOUND             | Job id does not exist
             | BULK_JOB_STATE                 | Job not in not_processed
             | BULK_ACCESS_DENIED             | Role may not request the action
             | EMPTY_BULK_JOB                 | Job targets no orders

===============================================================================
"""

from decimal import Decimal


class IOKernelError(Exception):
    """
    Base exception for all insertion order kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "IO_KERNEL_ERROR"


# Validation exceptions


class ValidationError(IOKernelError):
    """Base exception for record validation failures."""

    code: str = "VALIDATION_ERROR"


class RejectReasonError(ValidationError):
    """Reject reason is missing or shorter than the configured minimum."""

    code: str = "REJECT_REASON_INVALID"

    def __init__(self, reason: str | None, min_length: int):
        self.reason = reason
        self.min_length = min_length
        if not (reason or "").strip():
            message = "Reject reason is mandatory when rejecting an Insertion Order."
        else:
            message = (
                f"Reject reason must be at least {min_length} characters long."
            )
        super().__init__(message)


class OverrideReasonError(ValidationError):
    """Override reason is shorter than the configured minimum."""

    code: str = "OVERRIDE_REASON_INVALID"

    def __init__(self, min_length: int):
        self.min_length = min_length
        super().__init__(
            f"Budget override reason must be at least {min_length} characters long."
        )


class InvalidOverrideAmountError(ValidationError):
    """Override amount must be a non-negative number."""

    code: str = "OVERRIDE_AMOUNT_INVALID"

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__(f"Budget override amount must be non-negative, got {amount}")


class LineDateOrderError(ValidationError):
    """Line recognition start date is after its end date."""

    code: str = "LINE_DATE_ORDER"

    def __init__(self, line_number: int):
        self.line_number = line_number
        super().__init__(
            f"Line {line_number}: Rev Rec Start Date cannot be after Rev Rec End Date."
        )


class LinePeriodOutsideCampaignError(ValidationError):
    """Line recognition period is not inside the campaign window."""

    code: str = "LINE_OUTSIDE_CAMPAIGN"

    def __init__(self, line_number: int, boundary: str):
        self.line_number = line_number
        self.boundary = boundary
        if boundary == "start":
            detail = "Rev Rec Start Date cannot be before Campaign Start Date"
        else:
            detail = "Rev Rec End Date cannot be after Campaign End Date"
        super().__init__(f"Line {line_number}: {detail}.")


class MissingFieldError(ValidationError):
    """A required field is empty."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str, label: str | None = None):
        self.field_name = field_name
        super().__init__(f"{label or field_name} is required.")


class MissingInvoicePeriodError(ValidationError):
    """Monthly budget modes need both invoice start and end dates."""

    code: str = "MISSING_INVOICE_PERIOD"

    def __init__(self):
        super().__init__(
            "Invoice Start Date and End Date are required for monthly budget orders."
        )


class InvoicedExceedsTotalError(ValidationError):
    """Order total (plus active override) would fall below the net invoiced amount."""

    code: str = "INVOICED_EXCEEDS_TOTAL"

    def __init__(self, order_total: Decimal, invoiced: Decimal):
        self.order_total = order_total
        self.invoiced = invoiced
        super().__init__(
            f"IO Total cannot be less than the sum of linked Invoice Amounts "
            f"(total {order_total}, invoiced {invoiced})."
        )


# Transition exceptions


class TransitionError(IOKernelError):
    """Base exception for workflow transition failures."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """The requested status change is not an edge of the approval workflow."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot move Insertion Order from {from_status} to {to_status}.")


class RoleNotPermittedError(TransitionError):
    """The actor's role may not perform the action."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, role: str, action: str):
        self.role = role
        self.action = action
        super().__init__(f"Role '{role}' is not permitted to {action} Insertion Orders.")


class SelfReviewError(TransitionError):
    """The creator or an editor attempted to review their own order."""

    code: str = "SELF_REVIEW"

    def __init__(self, user_id: str, is_owner: bool):
        self.user_id = user_id
        self.is_owner = is_owner
        who = "created" if is_owner else "edited"
        super().__init__(f"Cannot review IO that you {who}.")


class TotalsMismatchError(TransitionError):
    """IO total differs from the external opportunity total."""

    code: str = "TOTALS_MISMATCH"

    def __init__(self, order_total: Decimal, opportunity_total: Decimal | None):
        self.order_total = order_total
        self.opportunity_total = opportunity_total
        super().__init__(
            "IO Total and SalesForce Total must be equal to proceed with review."
        )


class EditNotPermittedError(TransitionError):
    """Direct edit refused for this role, channel or status."""

    code: str = "EDIT_NOT_PERMITTED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class OverrideStateError(TransitionError):
    """Override activation or revocation is not allowed in the current state."""

    code: str = "OVERRIDE_STATE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# Budget exceptions


class BudgetError(IOKernelError):
    """Base exception for budget ledger failures."""

    code: str = "BUDGET_ERROR"


class BudgetExceededError(BudgetError):
    """The invoice asks for more than the remaining budget."""

    code: str = "BUDGET_EXCEEDED"

    def __init__(self, remaining: Decimal, requested: Decimal, scope: str):
        self.remaining = remaining
        self.requested = requested
        self.scope = scope
        super().__init__(
            f"Invoice amount {requested} exceeds remaining budget {remaining} for {scope}."
        )


class MultiMonthInvoiceError(BudgetError):
    """Monthly budget invoices must stay inside one calendar month."""

    code: str = "MULTI_MONTH_INVOICE"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(
            f"Invoice period {start} to {end} spans more than one calendar month."
        )


class NoMonthlyBudgetError(BudgetError):
    """No order line overlaps the invoice month."""

    code: str = "NO_MONTHLY_BUDGET"

    def __init__(self, month: str):
        self.month = month
        super().__init__(f"No IO lines found for invoice month {month}.")


class LineMonthMismatchError(BudgetError):
    """The matched order line's recognition period misses the invoice month."""

    code: str = "LINE_MONTH_MISMATCH"

    def __init__(self, line_id: str, month: str):
        self.line_id = line_id
        self.month = month
        super().__init__(
            f"Invoice month {month} does not overlap with IO line {line_id} "
            f"revenue recognition period."
        )


# Duplicate key exceptions


class DuplicateKeyError(IOKernelError):
    """Base exception for external key collisions."""

    code: str = "DUPLICATE_KEY"


class DuplicateOpportunityIdError(DuplicateKeyError):
    """External opportunity id already used by another non-closed order."""

    code: str = "DUPLICATE_OPPORTUNITY_ID"

    def __init__(self, opportunity_id: str, other_order_id: str):
        self.opportunity_id = opportunity_id
        self.other_order_id = other_order_id
        super().__init__(
            f"Salesforce Opportunity ID {opportunity_id} is already used by "
            f"Insertion Order {other_order_id}."
        )


class DuplicateLineIdError(DuplicateKeyError):
    """External line id already used on another non-closed order."""

    code: str = "DUPLICATE_LINE_ID"

    def __init__(self, line_id: str, other_order_id: str, line_number: int | None = None):
        self.line_id = line_id
        self.other_order_id = other_order_id
        self.line_number = line_number
        prefix = f"Line {line_number}: " if line_number is not None else ""
        super().__init__(
            f"{prefix}Salesforce Order Line ID {line_id} is already used by "
            f"Insertion Order {other_order_id}."
        )


# Aggregation


class AggregationError(IOKernelError):
    """A required invoiced/credited aggregate was not supplied by the host."""

    code: str = "AGGREGATION_UNAVAILABLE"

    def __init__(self, figure: str):
        self.figure = figure
        super().__init__(f"Aggregate '{figure}' was not supplied.")


# Admission exceptions


class AdmissionError(IOKernelError):
    """Base exception for invoice admission rejections."""

    code: str = "ADMISSION_ERROR"


class MissingOpportunityIdError(AdmissionError):
    """Invoice carries no external opportunity id."""

    code: str = "MISSING_OPPORTUNITY_ID"

    def __init__(self):
        super().__init__("Salesforce Opportunity ID missing.")


class NoMatchingOrderError(AdmissionError):
    """No insertion order exists for the invoice's opportunity id."""

    code: str = "NO_MATCHING_ORDER"

    def __init__(self, opportunity_id: str):
        self.opportunity_id = opportunity_id
        super().__init__(f"No Insertion Order found for Opportunity ID {opportunity_id}.")


class OrderNotApprovedError(AdmissionError):
    """The matched order is not Approved."""

    code: str = "ORDER_NOT_APPROVED"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Insertion Order is not Approved (current status: {status}).")


class OrderClosedError(AdmissionError):
    """The matched order is closed."""

    code: str = "ORDER_CLOSED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Insertion Order is closed.")


class CustomerMismatchError(AdmissionError):
    """Invoice customer differs from the order customer."""

    code: str = "CUSTOMER_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__("Invoice customer does not match Insertion Order customer.")


class CurrencyMismatchError(AdmissionError):
    """Invoice currency differs from the order currency."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Invoice currency {received} does not match Insertion Order currency {expected}."
        )


class EmptyInvoiceError(AdmissionError):
    """Invoice has no lines."""

    code: str = "EMPTY_INVOICE"

    def __init__(self):
        super().__init__("Invoice must have at least one line item.")


class MissingLineIdError(AdmissionError):
    """Invoice line has no external line id."""

    code: str = "MISSING_LINE_ID"

    def __init__(self, line_number: int):
        self.line_number = line_number
        super().__init__(f"Line {line_number}: Line ID missing.")


class UnmatchedInvoiceLineError(AdmissionError):
    """Invoice line does not match exactly one order line."""

    code: str = "UNMATCHED_INVOICE_LINE"

    def __init__(self, line_number: int, line_id: str, item: str):
        self.line_number = line_number
        self.line_id = line_id
        self.item = item
        super().__init__(
            f"Line {line_number}: Line does not match an approved IO line "
            f"(line id {line_id}, item {item})."
        )


class OrderNotFoundError(IOKernelError):
    """Insertion order id does not exist."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Insertion Order not found: {order_id}")


# Bulk job exceptions


class BulkJobError(IOKernelError):
    """Base exception for bulk status job failures."""

    code: str = "BULK_JOB_ERROR"


class BulkJobNotFoundError(BulkJobError):
    """Bulk job id does not exist."""

    code: str = "BULK_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Bulk job not found: {job_id}")


class BulkJobStateError(BulkJobError):
    """Bulk job cannot run from its current status."""

    code: str = "BULK_JOB_STATE"

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Bulk job {job_id} cannot run from status {status}.")


class BulkAccessDeniedError(BulkJobError):
    """The requesting role may not perform this bulk action."""

    code: str = "BULK_ACCESS_DENIED"

    def __init__(self, role: str, action: str):
        self.role = role
        self.action = action
        super().__init__(f"You do not have permission to bulk {action} Insertion Orders.")


class EmptyBulkJobError(BulkJobError):
    """Bulk job targets no orders."""

    code: str = "EMPTY_BULK_JOB"

    def __init__(self):
        super().__init__("Please select at least one Insertion Order to process.")
