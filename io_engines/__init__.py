"""
Module: io_engines
Responsibility:
    Package entrypoint re-exporting the pure insertion order engines.  This
    is the import surface for the services and the bulk processor.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import io_kernel.domain, io_kernel.exceptions and logging.
    MUST NOT import io_kernel.services, io_kernel.models or io_batch.

Invariants enforced:
    - Purity: engines never read the system clock; a Clock is passed in.
    - Decimal-only arithmetic for every amount.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from io_engines.transition import can_transition, apply_transition
    from io_engines.retrigger import needs_reapproval, process_edit
    from io_engines.budget import check_budget
    from io_engines.admission import admit
"""

from io_engines.admission import AdmissionResult, admit
from io_engines.budget import (
    BudgetCheckResult,
    LineBudgetResult,
    amount_invoiced,
    check_budget,
)
from io_engines.integrity import (
    check_unique_keys,
    recompute_order_total,
    validate_campaign_name,
    validate_line_periods,
    validate_order_for_save,
    validate_reject_reason,
    validate_total_covers_invoiced,
)
from io_engines.ledger_aggregation import aggregate_documents, months_spanned
from io_engines.override import activate_override, clear_override, revoke_override
from io_engines.retrigger import (
    EditOutcome,
    FieldChange,
    apply_retrigger,
    detect_changes,
    needs_reapproval,
    process_edit,
)
from io_engines.transition import (
    IO_APPROVAL_WORKFLOW,
    TransitionDecision,
    TransitionResult,
    apply_transition,
    can_transition,
    check_copy_permitted,
    check_create_permitted,
    check_edit_permitted,
    copy_order,
    has_elevated_privilege,
)

__all__ = [
    "AdmissionResult",
    "BudgetCheckResult",
    "EditOutcome",
    "FieldChange",
    "IO_APPROVAL_WORKFLOW",
    "LineBudgetResult",
    "TransitionDecision",
    "TransitionResult",
    "activate_override",
    "admit",
    "aggregate_documents",
    "amount_invoiced",
    "apply_retrigger",
    "apply_transition",
    "can_transition",
    "check_budget",
    "check_copy_permitted",
    "check_create_permitted",
    "check_edit_permitted",
    "check_unique_keys",
    "clear_override",
    "copy_order",
    "detect_changes",
    "has_elevated_privilege",
    "months_spanned",
    "needs_reapproval",
    "process_edit",
    "recompute_order_total",
    "revoke_override",
    "validate_campaign_name",
    "validate_line_periods",
    "validate_order_for_save",
    "validate_reject_reason",
    "validate_total_covers_invoiced",
]
