"""
Tests for BulkJobExecutor against an in-memory SQLite database.

Covers submit validation, the execute lifecycle (status, counts, order
write-back, per-item rows), re-run protection and notification.
"""

from uuid import uuid4

import pytest

from io_kernel.domain.orders import ApprovalStatus
from io_kernel.exceptions import (
    BulkAccessDeniedError,
    BulkJobNotFoundError,
    BulkJobStateError,
    EmptyBulkJobError,
)
from io_kernel.models.insertion_order import InsertionOrderModel
from io_kernel.selectors.order_selector import OrderSelector
from io_config.loader import parse_config
from io_batch.domain.types import BulkAction, BulkJobStatus
from io_batch.services.executor import BulkJobExecutor

S = ApprovalStatus


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify(self, job, summary):
        self.calls.append((job, summary))


class BrokenNotifier:
    def notify(self, job, summary):
        raise ConnectionError("mail relay down")


@pytest.fixture
def persist(db_session):
    def _persist(order):
        db_session.add(InsertionOrderModel.from_dto(order, created_by_id=order.owner_id))
        db_session.flush()
        return order
    return _persist


@pytest.fixture
def executor(db_session, clock):
    return BulkJobExecutor(db_session, clock=clock, max_workers=2)


class TestSubmitJob:

    def test_creates_not_processed_job(self, executor, analyst):
        ids = [uuid4(), uuid4()]
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [str(ids[0]), "", ids[1], ids[0]])
        stored = executor.get_job(job.job_id)
        assert stored.status is BulkJobStatus.NOT_PROCESSED
        assert stored.target_io_ids == tuple(ids)
        assert stored.total_items == 2
        assert stored.requestor_role is analyst.role

    def test_manager_cannot_bulk_submit(self, executor, manager):
        with pytest.raises(BulkAccessDeniedError):
            executor.submit_job(manager, BulkAction.SUBMIT, [uuid4()])

    def test_analyst_cannot_bulk_approve(self, executor, analyst):
        with pytest.raises(BulkAccessDeniedError) as exc_info:
            executor.submit_job(analyst, BulkAction.APPROVE, [uuid4()])
        assert str(exc_info.value) == "You do not have permission to bulk approve Insertion Orders."

    def test_empty_selection(self, executor, analyst):
        with pytest.raises(EmptyBulkJobError):
            executor.submit_job(analyst, BulkAction.SUBMIT, ["", None])


class TestExecuteJob:

    def test_mixed_bulk_submit(self, db_session, executor, persist, make_order, analyst):
        a = persist(make_order(owner=analyst))
        b = persist(make_order(owner=analyst, approval_status=S.SUBMITTED_FOR_REVIEW))
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [a.id, b.id])

        run = executor.execute_job(job.job_id)
        db_session.commit()

        stored = executor.get_job(job.job_id)
        assert stored.status is BulkJobStatus.FAILURE
        assert stored.succeeded_items == 1
        assert stored.failed_items == 1
        assert stored.failure_reason == (
            f"IO {b.id}: Cannot submit IO with status: Submitted for Review"
        )
        assert stored.started_at is not None
        assert stored.completed_at is not None
        assert run.job.status is BulkJobStatus.FAILURE

        orders = OrderSelector(db_session)
        assert orders.get(a.id).approval_status is S.SUBMITTED_FOR_REVIEW
        assert orders.get(b.id).approval_status is S.SUBMITTED_FOR_REVIEW

        items = executor.get_job_items(job.job_id)
        assert [i.io_id for i in items] == [a.id, b.id]
        assert items[0].success and items[0].to_status is S.SUBMITTED_FOR_REVIEW
        assert not items[1].success
        assert items[1].from_status is S.SUBMITTED_FOR_REVIEW

    def test_failed_order_not_written(self, db_session, executor, persist, make_order, analyst):
        order = persist(make_order(owner=analyst, approval_status=S.SUBMITTED_FOR_REVIEW))
        job = executor.submit_job(analyst, BulkAction.REVIEW, [order.id])
        executor.execute_job(job.job_id)
        assert OrderSelector(db_session).get(order.id).reviewed_by is None

    def test_review_stamps_reviewer(self, db_session, executor, persist, make_order, reviewer):
        order = persist(make_order(approval_status=S.SUBMITTED_FOR_REVIEW))
        job = executor.submit_job(reviewer, BulkAction.REVIEW, [order.id])
        run = executor.execute_job(job.job_id)
        assert run.job.status is BulkJobStatus.SUCCESS
        saved = OrderSelector(db_session).get(order.id)
        assert saved.approval_status is S.REVIEWED_PENDING_APPROVAL
        assert saved.reviewed_by == reviewer.user_id

    def test_missing_target(self, executor, analyst):
        missing = uuid4()
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [missing])
        executor.execute_job(job.job_id)
        items = executor.get_job_items(job.job_id)
        assert items[0].message == "Insertion Order not found"

    def test_job_runs_once(self, executor, analyst):
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [uuid4()])
        executor.execute_job(job.job_id)
        with pytest.raises(BulkJobStateError):
            executor.execute_job(job.job_id)

    def test_unknown_job(self, executor):
        with pytest.raises(BulkJobNotFoundError):
            executor.execute_job(uuid4())
        with pytest.raises(BulkJobNotFoundError):
            executor.get_job(uuid4())


class TestNotification:

    def test_requestor_notified(self, db_session, clock, persist, make_order, analyst):
        notifier = RecordingNotifier()
        executor = BulkJobExecutor(db_session, clock=clock, notifier=notifier)
        order = persist(make_order(owner=analyst))
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [order.id])
        executor.execute_job(job.job_id)

        assert len(notifier.calls) == 1
        notified_job, summary = notifier.calls[0]
        assert notified_job.status is BulkJobStatus.SUCCESS
        assert "Successfully processed: 1 records" in summary

    def test_notifier_failure_does_not_change_outcome(
        self, db_session, clock, persist, make_order, analyst, captured_logs,
    ):
        executor = BulkJobExecutor(db_session, clock=clock, notifier=BrokenNotifier())
        order = persist(make_order(owner=analyst))
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [order.id])
        run = executor.execute_job(job.job_id)

        assert run.job.status is BulkJobStatus.SUCCESS
        assert executor.get_job(job.job_id).status is BulkJobStatus.SUCCESS
        errors = [r for r in captured_logs() if r["message"] == "bulk_notification_failed"]
        assert errors[0]["exc_type"] == "ConnectionError"


class TestFromConfig:

    def test_notification_disabled_by_config(self, db_session, clock, persist, make_order, analyst):
        config = parse_config({
            "config_id": "test",
            "bulk": {"max_workers": 1, "notify_requestor": False},
        })
        notifier = RecordingNotifier()
        executor = BulkJobExecutor.from_config(db_session, config, clock=clock, notifier=notifier)
        order = persist(make_order(owner=analyst))
        job = executor.submit_job(analyst, BulkAction.SUBMIT, [order.id])
        executor.execute_job(job.job_id)
        assert notifier.calls == []

    def test_policy_and_workers_from_config(self, db_session, clock):
        config = parse_config({"config_id": "test", "approval": {"manager_edit_blocked": False}})
        executor = BulkJobExecutor.from_config(db_session, config, clock=clock)
        assert executor._policy.manager_edit_blocked is False
        assert executor._max_workers == 4
