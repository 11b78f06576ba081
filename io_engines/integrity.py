"""
io_engines.integrity -- Record integrity checks run before an order is saved.

Responsibility:
    Total recomputation, line period validation, required-field checks,
    reject reason validation, duplicate external key detection and the
    invoiced-amount floor on the order total.

Architecture position:
    Engines -- pure, zero I/O.  Key claims of other orders are loaded by
    ``OrderSelector.key_claims()`` and passed in.

Invariants enforced:
    - recognition_start <= recognition_end for every line, both inside
      [campaign_start, campaign_end] when the campaign window is set.
    - External opportunity id unique among non-closed orders; external
      line ids unique among lines of non-closed orders, the order's own
      lines included.  Claims stored for the order being saved are skipped.
    - order_total + active override >= net invoiced.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from io_kernel.domain.billing import KeyClaim
from io_kernel.domain.fields import CAMPAIGN_PERIOD_FIELDS, LINE_PERIOD_FIELDS
from io_kernel.domain.orders import ApprovalStatus, InsertionOrder
from io_kernel.domain.policy import DEFAULT_TRANSITION_POLICY, TransitionPolicy
from io_kernel.exceptions import (
    DuplicateKeyError,
    DuplicateLineIdError,
    DuplicateOpportunityIdError,
    InvoicedExceedsTotalError,
    LineDateOrderError,
    LinePeriodOutsideCampaignError,
    MissingFieldError,
    RejectReasonError,
    ValidationError,
)

from io_engines.transition import check_reject_reason


def recompute_order_total(order: InsertionOrder) -> InsertionOrder:
    return order.with_recomputed_total()


def validate_line_periods(order: InsertionOrder) -> list[ValidationError]:
    """Check every line's recognition period; line numbers are 1-based."""
    errors: list[ValidationError] = []
    campaign_start, campaign_end = (f.read(order) for f in CAMPAIGN_PERIOD_FIELDS)
    start_field, end_field = LINE_PERIOD_FIELDS
    for number, line in enumerate(order.lines, start=1):
        start = start_field.read(line)
        end = end_field.read(line)
        if start is not None and end is not None and start > end:
            errors.append(LineDateOrderError(number))
            continue
        if start is not None and campaign_start is not None and start < campaign_start:
            errors.append(LinePeriodOutsideCampaignError(number, "start"))
        if end is not None and campaign_end is not None and end > campaign_end:
            errors.append(LinePeriodOutsideCampaignError(number, "end"))
    return errors


def validate_campaign_name(order: InsertionOrder) -> MissingFieldError | None:
    if order.is_campaign_mandatory and not (order.campaign_name or "").strip():
        return MissingFieldError("campaign_name", "Campaign Name")
    return None


def validate_reject_reason(
    order: InsertionOrder, policy: TransitionPolicy = DEFAULT_TRANSITION_POLICY,
) -> RejectReasonError | None:
    """A saved Rejected order must still carry a valid reason."""
    if order.approval_status is not ApprovalStatus.REJECTED:
        return None
    return check_reject_reason(order.reject_reason, policy)


def check_unique_keys(
    order: InsertionOrder, claims: Iterable[KeyClaim],
) -> list[DuplicateKeyError]:
    errors: list[DuplicateKeyError] = []
    line_owner: dict[str, str] = {}
    opportunity_owner: str | None = None
    for claim in claims:
        if claim.order_id == order.id or claim.closed:
            continue
        if (
            order.external_opportunity_id
            and claim.external_opportunity_id == order.external_opportunity_id
            and opportunity_owner is None
        ):
            opportunity_owner = str(claim.order_id)
        for line_id in claim.external_line_ids:
            line_owner.setdefault(line_id, str(claim.order_id))

    if opportunity_owner is not None:
        errors.append(
            DuplicateOpportunityIdError(order.external_opportunity_id, opportunity_owner)
        )
    own_lines: set[str] = set()
    for number, line in enumerate(order.lines, start=1):
        line_id = line.external_line_id
        if not line_id:
            continue
        if line_id in line_owner:
            errors.append(DuplicateLineIdError(line_id, line_owner[line_id], number))
        elif line_id in own_lines:
            errors.append(DuplicateLineIdError(line_id, str(order.id), number))
        own_lines.add(line_id)
    return errors


def validate_total_covers_invoiced(
    order: InsertionOrder, net_invoiced: Decimal,
) -> InvoicedExceedsTotalError | None:
    available = order.order_total + order.override.effective_amount
    if available < net_invoiced:
        return InvoicedExceedsTotalError(available, net_invoiced)
    return None


def validate_order_for_save(
    order: InsertionOrder,
    claims: Iterable[KeyClaim] = (),
    net_invoiced: Decimal | None = None,
    policy: TransitionPolicy = DEFAULT_TRANSITION_POLICY,
) -> list[ValidationError | DuplicateKeyError]:
    """Every pre-save check; ``order`` must already carry its recomputed total."""
    errors: list = []
    errors.extend(validate_line_periods(order))
    for err in (validate_campaign_name(order), validate_reject_reason(order, policy)):
        if err is not None:
            errors.append(err)
    errors.extend(check_unique_keys(order, claims))
    if net_invoiced is not None:
        err = validate_total_covers_invoiced(order, net_invoiced)
        if err is not None:
            errors.append(err)
    return errors
