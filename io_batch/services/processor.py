"""
BulkStatusProcessor -- Map/reduce execution of a bulk status job.

Contract:
    ``run(job)`` applies the job's action to every target order and returns
    a ``BulkRunResult`` with the final job snapshot.  Each order is handled
    independently; one failure never aborts the rest.

Architecture: io_batch/services.  Imports io_batch.domain, io_engines and
    io_kernel domain types.  Orders are read through the ``OrderLoader``
    protocol; nothing is written here.

Invariants enforced:
    - Per-id isolation: any exception raised while handling an id becomes
      that id's failure.
    - Workers share no mutable state.  Each returns its own
      ``BulkItemResult`` and the coordinating thread reduces them.
    - Job status is success only with zero failures; otherwise failure
      with every failure message joined by newlines.
    - Transitions run through the transition validator with a
      programmatic actor.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from io_kernel.domain.clock import Clock, SystemClock
from io_kernel.domain.orders import (
    Actor,
    ExecutionChannel,
    InsertionOrder,
)
from io_kernel.domain.policy import TransitionPolicy
from io_kernel.exceptions import SelfReviewError
from io_kernel.logging_config import LogContext, get_logger

from io_batch.domain.types import (
    BulkAction,
    BulkItemResult,
    BulkJob,
    BulkJobStatus,
    BulkRunResult,
)
from io_engines.transition import apply_transition

logger = get_logger("batch.processor")


class OrderLoader(Protocol):
    """Read access to order snapshots by id."""

    def load(self, io_id: UUID) -> InsertionOrder | None:
        ...


class MappingOrderLoader:
    """OrderLoader over snapshots loaded up front."""

    def __init__(self, orders: dict[UUID, InsertionOrder | None]):
        self._orders = dict(orders)

    def load(self, io_id: UUID) -> InsertionOrder | None:
        return self._orders.get(io_id)


def _fail(io_id: UUID, message: str, order: InsertionOrder | None = None,
          code: str | None = None) -> BulkItemResult:
    return BulkItemResult(
        io_id=io_id,
        success=False,
        message=message,
        from_status=order.approval_status if order else None,
        error_code=code,
    )


class BulkStatusProcessor:
    """Applies one bulk action to many orders.

    Contract:
        - ``process_one()`` handles a single id and never raises.
        - ``run()`` maps ``process_one`` over the job's ids on a thread pool
          and reduces the results into the final job.

    Non-goals:
        - Does NOT persist orders or the job -- ``BulkJobExecutor`` does.
        - No per-id timeout or cancellation.
    """

    def __init__(
        self,
        loader: OrderLoader,
        clock: Clock | None = None,
        max_workers: int = 4,
        policy: TransitionPolicy | None = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._loader = loader
        self._clock = clock or SystemClock()
        self._max_workers = max_workers
        self._policy = policy

    def process_one(self, job: BulkJob, io_id: UUID) -> BulkItemResult:
        try:
            return self._process(job, io_id)
        except Exception as exc:
            logger.warning(
                "bulk_item_exception",
                extra={"job_id": str(job.job_id), "io_id": str(io_id)},
                exc_info=True,
            )
            return _fail(io_id, str(exc) or type(exc).__name__,
                         code=getattr(exc, "code", "UNHANDLED_EXCEPTION"))

    def _process(self, job: BulkJob, io_id: UUID) -> BulkItemResult:
        action = BulkAction(job.action)
        order = self._loader.load(io_id)
        if order is None:
            return _fail(io_id, "Insertion Order not found", code="ORDER_NOT_FOUND")

        if order.approval_status is not action.source_status:
            return _fail(
                io_id,
                f"Cannot {action.value} IO with status: "
                f"{order.approval_status.display_name}",
                order,
                code="ILLEGAL_TRANSITION",
            )

        if action is BulkAction.REVIEW:
            # Bulk review refuses creators and editors for every role
            if job.requestor_id == order.owner_id or job.requestor_id in order.editors:
                err = SelfReviewError(
                    str(job.requestor_id), is_owner=job.requestor_id == order.owner_id,
                )
                return _fail(io_id, str(err).rstrip("."), order, err.code)

        actor = Actor(job.requestor_id, job.requestor_role, ExecutionChannel.PROGRAMMATIC)
        result = apply_transition(order, action.target_status, actor, policy=self._policy)
        if not result.success:
            return _fail(io_id, str(result.error), order, result.error.code)

        return BulkItemResult(
            io_id=io_id,
            success=True,
            message=(
                f"Status changed from {result.from_status.display_name} "
                f"to {result.to_status.display_name}"
            ),
            from_status=result.from_status,
            to_status=result.to_status,
            order=result.order,
        )

    def run(self, job: BulkJob) -> BulkRunResult:
        started_at = self._clock.now()
        running = replace(
            job,
            status=BulkJobStatus.PROCESSING,
            started_at=started_at,
            total_items=len(job.target_io_ids),
        )
        with LogContext.bind(job_id=str(job.job_id), actor_id=str(job.requestor_id)):
            logger.info(
                "bulk_job_started",
                extra={"action": job.action.value, "total_items": len(job.target_io_ids)},
            )

            workers = min(self._max_workers, max(len(job.target_io_ids), 1))
            # One context copy per call so worker records carry job_id and actor_id
            calls = [(copy_context(), io_id) for io_id in job.target_io_ids]
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = tuple(pool.map(
                    lambda call: call[0].run(self.process_one, running, call[1]), calls,
                ))

            succeeded = sum(1 for r in results if r.success)
            failed = len(results) - succeeded
            failures = [r.failure_line for r in results if not r.success]
            final = replace(
                running,
                status=BulkJobStatus.SUCCESS if failed == 0 else BulkJobStatus.FAILURE,
                failure_reason="\n".join(failures) if failures else None,
                succeeded_items=succeeded,
                failed_items=failed,
                completed_at=self._clock.now(),
            )
            logger.info(
                "bulk_job_completed",
                extra={
                    "action": job.action.value,
                    "status": final.status.value,
                    "succeeded": succeeded,
                    "failed": failed,
                },
            )
        return BulkRunResult(job=final, item_results=results)
