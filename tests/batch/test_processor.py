"""
Tests for BulkStatusProcessor -- per-order isolation and job reduction.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from io_kernel.domain.orders import (
    Actor,
    ActorRole,
    ApprovalStatus,
    EditorSet,
    InsertionOrder,
)
from io_batch.domain.types import BulkAction, BulkJob, BulkJobStatus
from io_batch.services.processor import BulkStatusProcessor, MappingOrderLoader

S = ApprovalStatus


def _job(actor: Actor, action: BulkAction, ids) -> BulkJob:
    return BulkJob(
        job_id=uuid4(),
        requestor_id=actor.user_id,
        requestor_role=actor.role,
        action=action,
        target_io_ids=tuple(ids),
    )


def _processor(orders, clock, **kwargs) -> BulkStatusProcessor:
    return BulkStatusProcessor(
        MappingOrderLoader({o.id: o for o in orders}), clock=clock, **kwargs,
    )


class ExplodingLoader:
    """Loader that raises for one id."""

    def __init__(self, orders: dict[UUID, InsertionOrder], bad_id: UUID):
        self._orders = orders
        self._bad_id = bad_id

    def load(self, io_id):
        if io_id == self._bad_id:
            raise RuntimeError("connection reset")
        return self._orders.get(io_id)


class TestBulkSubmit:

    def test_mixed_outcome(self, make_order, analyst, clock):
        a = make_order(owner=analyst)
        b = make_order(owner=analyst, approval_status=S.SUBMITTED_FOR_REVIEW)
        run = _processor([a, b], clock).run(_job(analyst, BulkAction.SUBMIT, [a.id, b.id]))

        assert run.job.status is BulkJobStatus.FAILURE
        assert run.job.succeeded_items == 1
        assert run.job.failed_items == 1
        assert run.job.total_items == 2

        first, second = run.item_results
        assert first.io_id == a.id and first.success
        assert first.order.approval_status is S.SUBMITTED_FOR_REVIEW
        assert first.message == "Status changed from Draft to Submitted for Review"
        assert second.io_id == b.id and not second.success
        assert second.message == "Cannot submit IO with status: Submitted for Review"
        assert run.job.failure_reason == (
            f"IO {b.id}: Cannot submit IO with status: Submitted for Review"
        )

    def test_all_succeed(self, make_order, analyst, clock):
        orders = [make_order(owner=analyst) for _ in range(5)]
        run = _processor(orders, clock, max_workers=2).run(
            _job(analyst, BulkAction.SUBMIT, [o.id for o in orders]),
        )
        assert run.job.status is BulkJobStatus.SUCCESS
        assert run.job.failure_reason is None
        assert [r.io_id for r in run.item_results] == [o.id for o in orders]
        assert run.job.started_at == clock.now()
        assert run.job.completed_at == clock.now()

    def test_missing_order(self, analyst, clock):
        missing = uuid4()
        run = _processor([], clock).run(_job(analyst, BulkAction.SUBMIT, [missing]))
        assert run.item_results[0].message == "Insertion Order not found"
        assert run.job.status is BulkJobStatus.FAILURE

    def test_totals_mismatch_reported(self, make_order, analyst, clock):
        order = make_order(external_opportunity_total=Decimal("1"))
        run = _processor([order], clock).run(_job(analyst, BulkAction.SUBMIT, [order.id]))
        assert run.item_results[0].error_code == "TOTALS_MISMATCH"

    def test_exception_isolated_to_one_id(self, make_order, analyst, clock):
        good = make_order()
        bad_id = uuid4()
        processor = BulkStatusProcessor(
            ExplodingLoader({good.id: good}, bad_id), clock=clock,
        )
        run = processor.run(_job(analyst, BulkAction.SUBMIT, [bad_id, good.id]))
        assert not run.item_results[0].success
        assert run.item_results[0].message == "connection reset"
        assert run.item_results[0].error_code == "UNHANDLED_EXCEPTION"
        assert run.item_results[1].success

    def test_input_order_untouched(self, make_order, analyst, clock):
        order = make_order()
        _processor([order], clock).run(_job(analyst, BulkAction.SUBMIT, [order.id]))
        assert order.approval_status is S.DRAFT


class TestBulkReview:

    def test_creator_refused(self, make_order, analyst, clock):
        order = make_order(owner=analyst, approval_status=S.SUBMITTED_FOR_REVIEW)
        run = _processor([order], clock).run(_job(analyst, BulkAction.REVIEW, [order.id]))
        result = run.item_results[0]
        assert not result.success
        assert result.message == "Cannot review IO that you created"
        assert result.error_code == "SELF_REVIEW"

    def test_editor_refused_even_as_admin(self, make_order, admin, clock):
        order = make_order(
            approval_status=S.SUBMITTED_FOR_REVIEW, editors=EditorSet.of([admin.user_id]),
        )
        run = _processor([order], clock).run(_job(admin, BulkAction.REVIEW, [order.id]))
        assert run.item_results[0].message == "Cannot review IO that you edited"

    def test_other_analyst_reviews(self, make_order, reviewer, clock):
        order = make_order(approval_status=S.SUBMITTED_FOR_REVIEW)
        run = _processor([order], clock).run(_job(reviewer, BulkAction.REVIEW, [order.id]))
        assert run.job.status is BulkJobStatus.SUCCESS
        assert run.item_results[0].order.reviewed_by == reviewer.user_id


class TestBulkApprove:

    def test_manager_approves(self, make_order, manager, clock):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        run = _processor([order], clock).run(_job(manager, BulkAction.APPROVE, [order.id]))
        assert run.item_results[0].order.approved_by == manager.user_id

    def test_role_checked_by_validator(self, make_order, analyst, clock):
        order = make_order(approval_status=S.REVIEWED_PENDING_APPROVAL)
        run = _processor([order], clock).run(_job(analyst, BulkAction.APPROVE, [order.id]))
        assert run.item_results[0].error_code == "ROLE_NOT_PERMITTED"


class TestProcessorConfig:

    def test_zero_workers_rejected(self):
        with pytest.raises(ValueError):
            BulkStatusProcessor(MappingOrderLoader({}), max_workers=0)

    def test_completion_logged(self, make_order, analyst, clock, captured_logs):
        order = make_order()
        job = _job(analyst, BulkAction.SUBMIT, [order.id])
        _processor([order], clock).run(job)
        done = [r for r in captured_logs() if r["message"] == "bulk_job_completed"]
        assert done[0]["status"] == "success"
        assert done[0]["job_id"] == str(job.job_id)

    def test_worker_records_carry_job_context(self, make_order, analyst, clock, captured_logs):
        orders = [make_order(owner=analyst) for _ in range(4)]
        job = _job(analyst, BulkAction.SUBMIT, [o.id for o in orders])
        _processor(orders, clock, max_workers=2).run(job)
        applied = [r for r in captured_logs() if r["message"] == "transition_applied"]
        assert len(applied) == 4
        assert all(r["job_id"] == str(job.job_id) for r in applied)
        assert all(r["actor_id"] == str(analyst.user_id) for r in applied)
