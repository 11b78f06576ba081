"""
Insertion order domain types (``io_kernel.domain.orders``).

Responsibility
--------------
Pure value objects for insertion orders, their line items, the actors
that act on them, the editor set and the budget override.  Every entity
is a frozen dataclass; operations return new instances via
``dataclasses.replace``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``order_total`` equals the sum of line amounts once
  ``with_recomputed_total()`` has run (services call it before every save).
* An inactive ``BudgetOverride`` carries no amount, reason or start date.
* ``EditorSet`` is never mutated in place.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Enumerations
# =========================================================================


class ApprovalStatus(str, Enum):
    """Insertion order approval lifecycle states."""

    DRAFT = "draft"
    SUBMITTED_FOR_REVIEW = "submitted_for_review"
    REVIEWED_PENDING_APPROVAL = "reviewed_pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY_NAMES[self]


_STATUS_DISPLAY_NAMES: dict[ApprovalStatus, str] = {
    ApprovalStatus.DRAFT: "Draft",
    ApprovalStatus.SUBMITTED_FOR_REVIEW: "Submitted for Review",
    ApprovalStatus.REVIEWED_PENDING_APPROVAL: "Reviewed - Pending Approval",
    ApprovalStatus.APPROVED: "Approved",
    ApprovalStatus.REJECTED: "Rejected",
}


class BudgetType(str, Enum):
    """How the order's budget is consumed by invoices."""

    FLUID = "fluid"  # Whole-lifetime cap
    MONTHLY_FLUID = "monthly_fluid"  # Cap per calendar month from overlapping lines
    MONTHLY_FIXED = "monthly_fixed"  # Cap per line id per month


class ActorRole(str, Enum):
    """Roles that act on insertion orders."""

    ANALYST = "analyst"
    MANAGER = "manager"
    ADMINISTRATOR = "administrator"


class ExecutionChannel(str, Enum):
    """Where an operation originates.

    INTERACTIVE and IMPORT are direct edits by a person; PROGRAMMATIC
    covers the bulk processor and other scripted callers.
    """

    INTERACTIVE = "interactive"
    IMPORT = "import"
    PROGRAMMATIC = "programmatic"

    @property
    def is_direct_edit(self) -> bool:
        return self in (ExecutionChannel.INTERACTIVE, ExecutionChannel.IMPORT)


# =========================================================================
# Value objects
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """The user performing an operation."""

    user_id: UUID
    role: ActorRole
    channel: ExecutionChannel = ExecutionChannel.INTERACTIVE

    def via(self, channel: ExecutionChannel) -> Actor:
        """Same user and role, different channel."""
        return replace(self, channel=channel)


@dataclass(frozen=True)
class EditorSet:
    """Immutable set of users who edited an order after creation."""

    members: frozenset[UUID] = frozenset()

    @classmethod
    def of(cls, user_ids: Iterable[UUID]) -> EditorSet:
        return cls(frozenset(user_ids))

    def add(self, user_id: UUID) -> EditorSet:
        if user_id in self.members:
            return self
        return EditorSet(self.members | {user_id})

    def __contains__(self, user_id: object) -> bool:
        return user_id in self.members

    def __iter__(self) -> Iterator[UUID]:
        return iter(sorted(self.members, key=str))

    def __len__(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class BudgetOverride:
    """Temporary user-granted increase to an order's available budget."""

    active: bool = False
    amount: Decimal = Decimal("0")
    reason: str = ""
    start_date: date | None = None
    end_date: date | None = None
    user_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.active and (
            self.amount != 0 or self.reason or self.start_date is not None
        ):
            raise ValueError(
                "Inactive budget override must not carry amount, reason or start date"
            )

    @property
    def effective_amount(self) -> Decimal:
        return self.amount if self.active else Decimal("0")


# =========================================================================
# Entities
# =========================================================================


@dataclass(frozen=True)
class IOLineItem:
    """One line of an insertion order."""

    id: UUID
    parent_io_id: UUID
    external_line_id: str | None = None
    item: str | None = None
    description: str | None = None
    quantity: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    sub_bu: str | None = None
    fin_section: str | None = None
    department: str | None = None
    location: str | None = None
    cost_center: str | None = None
    product_code: str | None = None
    recognition_start: date | None = None
    recognition_end: date | None = None


@dataclass(frozen=True)
class InsertionOrder:
    """Snapshot of an insertion order with its lines."""

    id: UUID
    owner_id: UUID
    name: str = ""
    approval_status: ApprovalStatus = ApprovalStatus.DRAFT
    editors: EditorSet = field(default_factory=EditorSet)
    reviewed_by: UUID | None = None
    approved_by: UUID | None = None
    reject_reason: str | None = None
    closed: bool = False
    close_reason: str | None = None

    # Commercial header
    customer_id: str | None = None
    currency: str | None = None
    order_date: date | None = None
    payment_terms: str | None = None
    external_opportunity_id: str | None = None
    opportunity_name: str | None = None
    parent_opportunity_id: str | None = None
    advertiser: str | None = None
    advertiser_id: str | None = None
    campaign_id: str | None = None
    campaign_name: str | None = None
    campaign_start: date | None = None
    campaign_end: date | None = None
    agency_name: str | None = None
    salesperson: str | None = None
    account_manager: str | None = None
    order_type: str | None = None
    budget_type: BudgetType = BudgetType.FLUID
    is_campaign_mandatory: bool = False

    # Totals
    order_total: Decimal = Decimal("0")
    external_opportunity_total: Decimal | None = None

    # Administrative, never trigger re-approval
    purchase_order_ref: str | None = None
    memo: str | None = None

    override: BudgetOverride = field(default_factory=BudgetOverride)
    lines: tuple[IOLineItem, ...] = ()

    @property
    def is_open(self) -> bool:
        return not self.closed

    def computed_total(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    def with_recomputed_total(self) -> InsertionOrder:
        return replace(self, order_total=self.computed_total())

    def line_by_external_id(self, external_line_id: str) -> IOLineItem | None:
        for line in self.lines:
            if line.external_line_id == external_line_id:
                return line
        return None
