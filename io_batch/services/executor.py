"""
BulkJobExecutor -- Persisted lifecycle of bulk status jobs.

Contract:
    Orchestrates the bulk job lifecycle: submit (role and target checks),
    execute (preload orders, run the processor, write orders back, record
    per-order results), query.

Architecture: io_batch/services.  Imports from io_batch.domain,
    io_batch.models, io_kernel selectors and models.

Invariants enforced:
    - Only Analysts / Administrators request submit and review, only
      Managers / Administrators request approve.
    - A job targets at least one order; blank and duplicate ids dropped.
    - The job row is locked (FOR UPDATE) and must be not_processed to run.
    - Orders are loaded by this thread before the worker pool starts;
      workers never touch the Session.
    - Notifier failures are logged and never change the job outcome.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from io_kernel.domain.clock import Clock, SystemClock
from io_kernel.domain.orders import Actor
from io_kernel.domain.policy import TransitionPolicy
from io_kernel.exceptions import (
    BulkAccessDeniedError,
    BulkJobNotFoundError,
    BulkJobStateError,
    EmptyBulkJobError,
)
from io_kernel.logging_config import LogContext, get_logger
from io_kernel.models.insertion_order import InsertionOrderModel
from io_kernel.selectors.order_selector import OrderSelector

from io_batch.domain.types import (
    BulkAction,
    BulkItemResult,
    BulkJob,
    BulkJobStatus,
    BulkRunResult,
    can_request,
    normalize_target_ids,
)
from io_batch.models.bulk import BulkItemModel, BulkJobModel
from io_batch.services.processor import BulkStatusProcessor, MappingOrderLoader

if TYPE_CHECKING:
    from io_config.schema import WorkflowConfig

logger = get_logger("batch.executor")


class BulkNotifier(Protocol):
    """Delivers the completion summary to the job's requestor."""

    def notify(self, job: BulkJob, summary: str) -> None:
        ...


class BulkJobExecutor:
    """Bulk status job engine.

    Contract:
        - ``submit_job()`` creates a not_processed job.
        - ``execute_job()`` runs it and records the final status.
        - ``get_job()`` / ``get_job_items()`` for queries.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT schedule jobs; the host triggers ``execute_job``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: BulkNotifier | None = None,
        max_workers: int = 4,
        policy: TransitionPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._max_workers = max_workers
        self._policy = policy

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: WorkflowConfig,
        clock: Clock | None = None,
        notifier: BulkNotifier | None = None,
    ) -> BulkJobExecutor:
        """Executor with worker count, notification and policy taken from ``config``."""
        return cls(
            session,
            clock=clock,
            notifier=notifier if config.bulk.notify_requestor else None,
            max_workers=config.bulk.max_workers,
            policy=config.transition_policy(),
        )

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        requestor: Actor,
        action: BulkAction,
        target_ids: Iterable[UUID | str | None],
    ) -> BulkJob:
        """Create a new not_processed job.

        Raises:
            BulkAccessDeniedError: If the requestor's role may not request
                ``action``.
            EmptyBulkJobError: If no usable target id remains.
        """
        action = BulkAction(action)
        if not can_request(action, requestor.role):
            raise BulkAccessDeniedError(requestor.role.value, action.value)

        ids = normalize_target_ids(target_ids)
        if not ids:
            raise EmptyBulkJobError()

        now = self._clock.now()
        dto = BulkJob(
            job_id=uuid4(),
            requestor_id=requestor.user_id,
            requestor_role=requestor.role,
            action=action,
            target_io_ids=ids,
            total_items=len(ids),
            created_at=now,
        )
        model = BulkJobModel.from_dto(dto)
        model.created_at = now
        self._session.add(model)
        self._session.flush()

        logger.info(
            "bulk_job_submitted",
            extra={
                "job_id": str(dto.job_id),
                "action": action.value,
                "total_items": len(ids),
                "requestor_id": str(requestor.user_id),
            },
        )
        return dto

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute_job(self, job_id: UUID) -> BulkRunResult:
        """Run a submitted job.

        Raises:
            BulkJobNotFoundError: If job_id does not exist.
            BulkJobStateError: If the job is not in not_processed.
        """
        job_model = self._session.execute(
            select(BulkJobModel)
            .where(BulkJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()

        if job_model is None:
            raise BulkJobNotFoundError(str(job_id))
        if job_model.status != BulkJobStatus.NOT_PROCESSED.value:
            raise BulkJobStateError(str(job_id), job_model.status)

        job_model.status = BulkJobStatus.PROCESSING.value
        job_model.started_at = self._clock.now()
        self._session.flush()
        job = job_model.to_dto()

        with LogContext.bind(job_id=str(job_id), actor_id=str(job.requestor_id)):
            orders = OrderSelector(self._session).get_many(job.target_io_ids)
            processor = BulkStatusProcessor(
                MappingOrderLoader(orders),
                clock=self._clock,
                max_workers=self._max_workers,
                policy=self._policy,
            )
            run = processor.run(job)

            self._write_back(run.item_results, job.requestor_id)
            for position, item in enumerate(run.item_results):
                item_model = BulkItemModel.from_dto(
                    item, job_id=job_id, position=position,
                    created_by_id=job.requestor_id,
                )
                item_model.created_at = self._clock.now()
                self._session.add(item_model)

            job_model.apply_dto(run.job)
            job_model.updated_by_id = job.requestor_id
            self._session.flush()

            self._notify(run)
        return run

    def _write_back(self, results: tuple[BulkItemResult, ...], actor_id: UUID) -> None:
        for item in results:
            if not item.success or item.order is None:
                continue
            model = self._session.get(InsertionOrderModel, item.io_id)
            model.apply_dto(item.order, updated_by_id=actor_id)

    def _notify(self, run: BulkRunResult) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(run.job, run.summary_message())
        except Exception:
            logger.error(
                "bulk_notification_failed",
                extra={"job_id": str(run.job.job_id)},
                exc_info=True,
            )

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BulkJob:
        model = self._session.get(BulkJobModel, job_id)
        if model is None:
            raise BulkJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BulkItemResult, ...]:
        rows = self._session.execute(
            select(BulkItemModel)
            .where(BulkItemModel.job_id == job_id)
            .order_by(BulkItemModel.position)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)
