"""
io_engines.retrigger -- Change detection and re-approval.

Responsibility:
    Compare an insertion order before and after an edit over the declared
    field tables and, when a reviewed or approved order changed materially,
    send it back to SubmittedForReview with its tracking fields, override
    and editor set updated.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Field tables come from
    ``io_kernel.domain.fields``; the clock is passed in.

Invariants enforced:
    - Only fields listed in HEADER_RETRIGGER_FIELDS / LINE_RETRIGGER_FIELDS
      are compared.  Memo, purchase-order reference, override, editors and
      status never trigger.
    - Lines are paired by id, unsaved lines (no id) by position.  A line
      present on one side only, or a change
      in line count, is always a change.
    - Date fields compare by instant.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any
from uuid import UUID

from io_kernel.domain.clock import Clock
from io_kernel.domain.fields import (
    HEADER_RETRIGGER_FIELDS,
    LINE_RETRIGGER_FIELDS,
)
from io_kernel.domain.orders import (
    Actor,
    ApprovalStatus,
    InsertionOrder,
    IOLineItem,
)
from io_kernel.logging_config import get_logger

from io_engines.override import clear_override

logger = get_logger("engines.retrigger")

RETRIGGER_SOURCE_STATUSES = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REVIEWED_PENDING_APPROVAL,
})


@dataclass(frozen=True)
class FieldChange:
    """One detected difference.

    ``scope`` is "header" or "line"; ``line_key`` identifies the line for
    line-scope changes.  ``field`` is "<added>", "<removed>" or
    "<line_count>" for structural line changes.
    """

    scope: str
    field: str
    old: Any = None
    new: Any = None
    line_key: str | None = None


@dataclass(frozen=True)
class EditOutcome:
    """Result of ``process_edit``."""

    order: InsertionOrder
    retriggered: bool
    changes: tuple[FieldChange, ...] = ()


def diff_header(old: InsertionOrder, new: InsertionOrder) -> list[FieldChange]:
    return [
        FieldChange("header", f.name, f.read(old), f.read(new))
        for f in HEADER_RETRIGGER_FIELDS
        if f.differs(old, new)
    ]


def _pair_lines(
    old_lines: Sequence[IOLineItem], new_lines: Sequence[IOLineItem],
) -> tuple[list[tuple[IOLineItem, IOLineItem]], list[IOLineItem], list[IOLineItem]]:
    new_by_id: dict[UUID, IOLineItem] = {
        line.id: line for line in new_lines if line.id is not None
    }
    unkeyed_new = [line for line in new_lines if line.id is None]
    paired: list[tuple[IOLineItem, IOLineItem]] = []
    removed: list[IOLineItem] = []
    unkeyed_old = 0
    for line in old_lines:
        if line.id is None:
            # Unsaved lines pair by position among the other unsaved lines
            if unkeyed_old < len(unkeyed_new):
                paired.append((line, unkeyed_new[unkeyed_old]))
            else:
                removed.append(line)
            unkeyed_old += 1
            continue
        match = new_by_id.pop(line.id, None)
        if match is None:
            removed.append(line)
        else:
            paired.append((line, match))
    added = [line for line in new_lines if line.id is not None and line.id in new_by_id]
    added.extend(unkeyed_new[unkeyed_old:])
    return paired, removed, added


def diff_lines(
    old_lines: Sequence[IOLineItem], new_lines: Sequence[IOLineItem],
) -> list[FieldChange]:
    changes: list[FieldChange] = []
    if len(old_lines) != len(new_lines):
        changes.append(
            FieldChange("line", "<line_count>", len(old_lines), len(new_lines))
        )

    paired, removed, added = _pair_lines(old_lines, new_lines)
    for line in removed:
        changes.append(FieldChange("line", "<removed>", line_key=str(line.id)))
    for line in added:
        changes.append(FieldChange("line", "<added>", line_key=str(line.id)))
    for old, new in paired:
        for f in LINE_RETRIGGER_FIELDS:
            if f.differs(old, new):
                changes.append(
                    FieldChange("line", f.name, f.read(old), f.read(new), str(old.id))
                )
    return changes


def detect_changes(
    old: InsertionOrder,
    new: InsertionOrder,
    old_lines: Sequence[IOLineItem] | None = None,
    new_lines: Sequence[IOLineItem] | None = None,
) -> list[FieldChange]:
    """All retrigger-relevant differences between two snapshots."""
    old_lines = old.lines if old_lines is None else old_lines
    new_lines = new.lines if new_lines is None else new_lines
    return diff_header(old, new) + diff_lines(old_lines, new_lines)


def needs_reapproval(
    old: InsertionOrder,
    new: InsertionOrder,
    old_lines: Sequence[IOLineItem] | None = None,
    new_lines: Sequence[IOLineItem] | None = None,
) -> bool:
    return bool(detect_changes(old, new, old_lines, new_lines))


def apply_retrigger(order: InsertionOrder, actor: Actor, clock: Clock) -> InsertionOrder:
    """Send ``order`` back to SubmittedForReview after a material change."""
    editors = order.editors
    if actor.user_id != order.owner_id:
        editors = editors.add(actor.user_id)
    override = order.override
    if override.active:
        override = clear_override(actor, clock)
    return replace(
        order,
        approval_status=ApprovalStatus.SUBMITTED_FOR_REVIEW,
        reviewed_by=None,
        approved_by=None,
        reject_reason=None,
        override=override,
        editors=editors,
    )


def process_edit(
    old: InsertionOrder,
    new: InsertionOrder,
    actor: Actor,
    clock: Clock,
    old_lines: Sequence[IOLineItem] | None = None,
    new_lines: Sequence[IOLineItem] | None = None,
) -> EditOutcome:
    """Run after every saved edit.

    A direct edit by someone other than the creator of a non-Draft order
    records the actor as an editor.  An order that was Approved or
    ReviewedPendingApproval and changed materially is retriggered.
    """
    order = new
    if (
        actor.channel.is_direct_edit
        and actor.user_id != old.owner_id
        and old.approval_status is not ApprovalStatus.DRAFT
    ):
        order = replace(order, editors=order.editors.add(actor.user_id))

    if old.approval_status not in RETRIGGER_SOURCE_STATUSES:
        return EditOutcome(order=order, retriggered=False)

    changes = tuple(detect_changes(old, new, old_lines, new_lines))
    if not changes:
        return EditOutcome(order=order, retriggered=False)

    order = apply_retrigger(order, actor, clock)
    logger.info(
        "retrigger_applied",
        extra={
            "order_id": str(order.id),
            "previous_status": old.approval_status.value,
            "changed_fields": sorted({c.field for c in changes}),
            "actor_id": str(actor.user_id),
        },
    )
    return EditOutcome(order=order, retriggered=True, changes=changes)
