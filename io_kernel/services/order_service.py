"""
Insertion Order Service (``io_kernel.services.order_service``).

Responsibility
--------------
Transactional host for insertion order operations: create, edit, status
transitions, budget override, copy and close.  Loads snapshots through
``OrderSelector``, delegates every decision to the pure engines and writes
the resulting snapshot back.

Architecture position
---------------------
**Kernel services layer** -- the only place where engines, selectors and
ORM rows meet.  Each public method owns its transaction boundary.

Invariants enforced
-------------------
* ``commit`` on success; ``rollback`` and re-raise on any failure.
* ``order_total`` is recomputed from the lines before every save.
* Workflow fields (status, tracking users, editors, override, closed) are
  never taken from an edit payload; they change only through the
  dedicated operations.

Failure modes
-------------
* Engine denials surface as the typed ``IOKernelError`` they carry.
* ``OrderNotFoundError`` for unknown ids.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from io_kernel.domain.clock import Clock, SystemClock
from io_kernel.domain.orders import (
    Actor,
    ApprovalStatus,
    BudgetOverride,
    EditorSet,
    InsertionOrder,
)
from io_kernel.domain.policy import DEFAULT_TRANSITION_POLICY, TransitionPolicy
from io_kernel.exceptions import OrderNotFoundError
from io_kernel.logging_config import LogContext, get_logger
from io_kernel.models.insertion_order import InsertionOrderModel
from io_kernel.selectors.ledger_selector import LedgerSelector
from io_kernel.selectors.order_selector import OrderSelector

from io_engines.integrity import validate_order_for_save
from io_engines.ledger_aggregation import aggregate_documents
from io_engines.override import activate_override, revoke_override
from io_engines.retrigger import EditOutcome, process_edit
from io_engines.transition import (
    apply_transition,
    check_create_permitted,
    check_edit_permitted,
    copy_order,
)

logger = get_logger("services.order")

# Fields an edit payload may not change
_WORKFLOW_FIELDS = (
    "id",
    "owner_id",
    "approval_status",
    "reviewed_by",
    "approved_by",
    "reject_reason",
    "editors",
    "override",
    "closed",
    "close_reason",
)


class OrderService:
    """
    Orchestrates insertion order lifecycle operations.

    Contract
    --------
    * Every mutating method returns the saved ``InsertionOrder`` snapshot
      (``update`` returns the ``EditOutcome``).
    * Denials raise the engine's typed error after rolling back.

    Non-goals
    ---------
    * Does NOT render pages or send notifications.
    * Does NOT check invoice admission -- see ``InvoiceGateService``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: TransitionPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or DEFAULT_TRANSITION_POLICY
        self._orders = OrderSelector(session)
        self._ledger = LedgerSelector(session)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_model(self, order_id: UUID) -> InsertionOrderModel:
        model = self._session.get(InsertionOrderModel, order_id)
        if model is None:
            raise OrderNotFoundError(str(order_id))
        return model

    def _net_invoiced(self, order_id: UUID) -> Decimal:
        aggregates = aggregate_documents(
            order_id,
            self._ledger.invoices_for(order_id),
            self._ledger.credits_for(order_id),
        )
        return aggregates.net_invoiced

    def _validate(self, order: InsertionOrder, check_invoiced: bool) -> None:
        net_invoiced = self._net_invoiced(order.id) if check_invoiced else None
        errors = validate_order_for_save(
            order,
            claims=self._orders.key_claims(),
            net_invoiced=net_invoiced,
            policy=self._policy,
        )
        if errors:
            logger.info(
                "order_validation_failed",
                extra={
                    "order_id": str(order.id),
                    "error_codes": [e.code for e in errors],
                    "messages": [str(e) for e in errors],
                },
            )
            raise errors[0]

    def _save(self, model: InsertionOrderModel, order: InsertionOrder, actor: Actor) -> InsertionOrder:
        model.apply_dto(order, updated_by_id=actor.user_id)
        self._session.flush()
        self._session.commit()
        return self._orders.get_or_raise(order.id)

    # =========================================================================
    # Create / edit
    # =========================================================================

    def create(self, order: InsertionOrder, actor: Actor) -> InsertionOrder:
        """Persist a new Draft order owned by ``actor``."""
        with LogContext.bind(order_id=str(order.id), actor_id=str(actor.user_id)):
            try:
                check_create_permitted(actor).raise_for_error()
                draft = replace(
                    order,
                    owner_id=actor.user_id,
                    approval_status=ApprovalStatus.DRAFT,
                    reviewed_by=None,
                    approved_by=None,
                    reject_reason=None,
                    editors=EditorSet(),
                    override=BudgetOverride(),
                    lines=tuple(replace(line, parent_io_id=order.id) for line in order.lines),
                ).with_recomputed_total()
                self._validate(draft, check_invoiced=False)

                model = InsertionOrderModel.from_dto(draft, created_by_id=actor.user_id)
                self._session.add(model)
                self._session.flush()
                self._session.commit()
                logger.info(
                    "order_created",
                    extra={"order_total": draft.order_total, "line_count": len(draft.lines)},
                )
                return self._orders.get_or_raise(draft.id)
            except Exception:
                self._session.rollback()
                raise

    def update(self, edited: InsertionOrder, actor: Actor) -> EditOutcome:
        """Save an edit of an existing order.

        Runs the edit gate, the integrity checks (including the invoiced
        floor), then editor tracking and retrigger.
        """
        with LogContext.bind(order_id=str(edited.id), actor_id=str(actor.user_id)):
            try:
                model = self._load_model(edited.id)
                old = model.to_dto()
                check_edit_permitted(old, actor, self._policy).raise_for_error()

                new = replace(
                    edited,
                    **{name: getattr(old, name) for name in _WORKFLOW_FIELDS},
                    lines=tuple(replace(line, parent_io_id=old.id) for line in edited.lines),
                ).with_recomputed_total()
                self._validate(new, check_invoiced=True)

                outcome = process_edit(old, new, actor, self._clock)
                saved = self._save(model, outcome.order, actor)
                logger.info(
                    "order_updated",
                    extra={
                        "retriggered": outcome.retriggered,
                        "status": saved.approval_status.value,
                        "order_total": saved.order_total,
                    },
                )
                return replace(outcome, order=saved)
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Status
    # =========================================================================

    def transition(
        self,
        order_id: UUID,
        to_status: ApprovalStatus,
        actor: Actor,
        reject_reason: str | None = None,
    ) -> InsertionOrder:
        with LogContext.bind(order_id=str(order_id), actor_id=str(actor.user_id)):
            try:
                model = self._load_model(order_id)
                result = apply_transition(
                    model.to_dto(), to_status, actor, reject_reason, self._policy,
                )
                return self._save(model, result.unwrap(), actor)
            except Exception:
                self._session.rollback()
                raise

    def submit(self, order_id: UUID, actor: Actor) -> InsertionOrder:
        return self.transition(order_id, ApprovalStatus.SUBMITTED_FOR_REVIEW, actor)

    def review(self, order_id: UUID, actor: Actor) -> InsertionOrder:
        return self.transition(order_id, ApprovalStatus.REVIEWED_PENDING_APPROVAL, actor)

    def approve(self, order_id: UUID, actor: Actor) -> InsertionOrder:
        return self.transition(order_id, ApprovalStatus.APPROVED, actor)

    def reject(self, order_id: UUID, actor: Actor, reason: str) -> InsertionOrder:
        return self.transition(order_id, ApprovalStatus.REJECTED, actor, reason)

    # =========================================================================
    # Override / copy / close
    # =========================================================================

    def activate_override(
        self, order_id: UUID, actor: Actor, amount: Decimal, reason: str,
    ) -> InsertionOrder:
        with LogContext.bind(order_id=str(order_id), actor_id=str(actor.user_id)):
            try:
                model = self._load_model(order_id)
                order = activate_override(
                    model.to_dto(), actor, amount, reason, self._clock, self._policy,
                )
                saved = self._save(model, order, actor)
                logger.info("override_activated", extra={"amount": saved.override.amount})
                return saved
            except Exception:
                self._session.rollback()
                raise

    def revoke_override(self, order_id: UUID, actor: Actor) -> InsertionOrder:
        with LogContext.bind(order_id=str(order_id), actor_id=str(actor.user_id)):
            try:
                model = self._load_model(order_id)
                order = revoke_override(model.to_dto(), actor, self._clock)
                saved = self._save(model, order, actor)
                logger.info("override_revoked")
                return saved
            except Exception:
                self._session.rollback()
                raise

    def copy(self, order_id: UUID, actor: Actor) -> InsertionOrder:
        """Persist a Draft copy of ``order_id`` owned by ``actor``."""
        with LogContext.bind(order_id=str(order_id), actor_id=str(actor.user_id)):
            try:
                source = self._orders.get_or_raise(order_id)
                new_id = uuid4()
                order = copy_order(
                    source, actor, new_id, [uuid4() for _ in source.lines],
                )
                model = InsertionOrderModel.from_dto(order, created_by_id=actor.user_id)
                self._session.add(model)
                self._session.flush()
                self._session.commit()
                logger.info("order_copied", extra={"new_order_id": str(new_id)})
                return self._orders.get_or_raise(new_id)
            except Exception:
                self._session.rollback()
                raise

    def close(self, order_id: UUID, actor: Actor, reason: str | None = None) -> InsertionOrder:
        """Soft-close an order; its external keys become reusable."""
        with LogContext.bind(order_id=str(order_id), actor_id=str(actor.user_id)):
            try:
                model = self._load_model(order_id)
                order = replace(model.to_dto(), closed=True, close_reason=reason)
                saved = self._save(model, order, actor)
                logger.info("order_closed", extra={"close_reason": reason})
                return saved
            except Exception:
                self._session.rollback()
                raise
