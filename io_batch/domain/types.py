"""
io_batch.domain.types -- Pure frozen dataclasses for bulk status jobs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - A job moves not_processed -> processing -> success | failure.
    - A job is success only when no item failed.
    - Submit and review are requested by Analysts, approve by Managers;
      Administrators may request any action.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from io_kernel.domain.orders import ActorRole, ApprovalStatus, InsertionOrder


# =============================================================================
# Enums
# =============================================================================


class BulkAction(str, Enum):
    """Status action applied to every order of a job."""

    SUBMIT = "submit"
    REVIEW = "review"
    APPROVE = "approve"

    @property
    def source_status(self) -> ApprovalStatus:
        return _ACTION_EDGES[self][0]

    @property
    def target_status(self) -> ApprovalStatus:
        return _ACTION_EDGES[self][1]


_ACTION_EDGES: dict[BulkAction, tuple[ApprovalStatus, ApprovalStatus]] = {
    BulkAction.SUBMIT: (ApprovalStatus.DRAFT, ApprovalStatus.SUBMITTED_FOR_REVIEW),
    BulkAction.REVIEW: (
        ApprovalStatus.SUBMITTED_FOR_REVIEW, ApprovalStatus.REVIEWED_PENDING_APPROVAL,
    ),
    BulkAction.APPROVE: (ApprovalStatus.REVIEWED_PENDING_APPROVAL, ApprovalStatus.APPROVED),
}

_REQUEST_ROLES: dict[BulkAction, frozenset[ActorRole]] = {
    BulkAction.SUBMIT: frozenset({ActorRole.ANALYST, ActorRole.ADMINISTRATOR}),
    BulkAction.REVIEW: frozenset({ActorRole.ANALYST, ActorRole.ADMINISTRATOR}),
    BulkAction.APPROVE: frozenset({ActorRole.MANAGER, ActorRole.ADMINISTRATOR}),
}


class BulkJobStatus(str, Enum):
    """Job-level lifecycle status."""

    NOT_PROCESSED = "not_processed"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILURE = "failure"


def can_request(action: BulkAction, role: ActorRole) -> bool:
    return role in _REQUEST_ROLES[BulkAction(action)]


def normalize_target_ids(ids: Iterable[UUID | str | None]) -> tuple[UUID, ...]:
    """Drop blank ids and duplicates, keeping first-seen order."""
    seen: dict[UUID, None] = {}
    for raw in ids:
        if raw is None:
            continue
        if isinstance(raw, str):
            raw = raw.strip()
            if not raw:
                continue
            raw = UUID(raw)
        seen.setdefault(raw, None)
    return tuple(seen)


# =============================================================================
# DTOs
# =============================================================================


@dataclass(frozen=True)
class BulkJob:
    """Immutable snapshot of a bulk status job."""

    job_id: UUID
    requestor_id: UUID
    requestor_role: ActorRole
    action: BulkAction
    target_io_ids: tuple[UUID, ...]
    status: BulkJobStatus = BulkJobStatus.NOT_PROCESSED
    failure_reason: str | None = None
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BulkItemResult:
    """Outcome for one target order."""

    io_id: UUID
    success: bool
    message: str = ""
    from_status: ApprovalStatus | None = None
    to_status: ApprovalStatus | None = None
    error_code: str | None = None
    order: InsertionOrder | None = None

    @property
    def failure_line(self) -> str:
        return f"IO {self.io_id}: {self.message}"


@dataclass(frozen=True)
class BulkRunResult:
    """Reduced outcome of a whole job."""

    job: BulkJob
    item_results: tuple[BulkItemResult, ...] = ()

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.item_results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.item_results if not r.success)

    @property
    def failure_messages(self) -> tuple[str, ...]:
        return tuple(r.failure_line for r in self.item_results if not r.success)

    def summary_message(self) -> str:
        """Plain-text summary for the requestor notification."""
        text = (
            f"Bulk {self.job.action.value} operation completed:\n"
            f"- Successfully processed: {self.succeeded} records\n"
            f"- Errors: {self.failed} records"
        )
        if self.failure_messages:
            text += "\n\nErrors:\n" + "\n".join(f"- {m}" for m in self.failure_messages)
        return text
