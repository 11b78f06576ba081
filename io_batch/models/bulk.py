"""
ORM models for bulk status job persistence.

Contract:
    BulkJobModel and BulkItemModel persist bulk job state and per-order
    results.  Each has ``to_dto()`` / ``from_dto()`` methods.

Architecture: io_batch/models.  Imports from io_kernel.db.base only.

Invariants enforced:
    - Target ids are stored as a JSON list of strings in request order.
    - One BulkItemModel row per processed target id.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from io_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from io_batch.domain.types import BulkItemResult, BulkJob


class BulkJobModel(TrackedBase):
    """Persistent bulk status job."""

    __tablename__ = "bulk_jobs"

    __table_args__ = (
        Index("ix_bulk_jobs_status", "status"),
        Index("ix_bulk_jobs_requestor", "requestor_id"),
    )

    requestor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requestor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    target_io_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    items: Mapped[list["BulkItemModel"]] = relationship(
        "BulkItemModel",
        back_populates="job",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> BulkJob:
        from io_batch.domain.types import BulkAction, BulkJob, BulkJobStatus
        from io_kernel.domain.orders import ActorRole

        return BulkJob(
            job_id=self.id,
            requestor_id=self.requestor_id,
            requestor_role=ActorRole(self.requestor_role),
            action=BulkAction(self.action),
            target_io_ids=tuple(UUID(v) for v in self.target_io_ids or ()),
            status=BulkJobStatus(self.status),
            failure_reason=self.failure_reason,
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    @classmethod
    def from_dto(cls, dto: BulkJob) -> BulkJobModel:
        return cls(
            id=dto.job_id,
            requestor_id=dto.requestor_id,
            requestor_role=dto.requestor_role.value,
            action=dto.action.value,
            status=dto.status.value,
            target_io_ids=[str(v) for v in dto.target_io_ids],
            failure_reason=dto.failure_reason,
            total_items=dto.total_items,
            succeeded_items=dto.succeeded_items,
            failed_items=dto.failed_items,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            created_by_id=dto.requestor_id,
            updated_by_id=None,
        )

    def apply_dto(self, dto: BulkJob) -> None:
        """Copy the mutable job state from ``dto``."""
        self.status = dto.status.value
        self.failure_reason = dto.failure_reason
        self.total_items = dto.total_items
        self.succeeded_items = dto.succeeded_items
        self.failed_items = dto.failed_items
        self.started_at = dto.started_at
        self.completed_at = dto.completed_at


class BulkItemModel(TrackedBase):
    """Per-order result within a bulk job."""

    __tablename__ = "bulk_items"

    __table_args__ = (
        Index("ix_bulk_items_job", "job_id"),
        Index("ix_bulk_items_io", "io_id"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bulk_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    io_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    job: Mapped["BulkJobModel"] = relationship(
        "BulkJobModel", back_populates="items",
    )

    def to_dto(self) -> BulkItemResult:
        from io_batch.domain.types import BulkItemResult
        from io_kernel.domain.orders import ApprovalStatus

        return BulkItemResult(
            io_id=self.io_id,
            success=self.success,
            message=self.message or "",
            from_status=ApprovalStatus(self.from_status) if self.from_status else None,
            to_status=ApprovalStatus(self.to_status) if self.to_status else None,
            error_code=self.error_code,
        )

    @classmethod
    def from_dto(
        cls, dto: BulkItemResult, job_id: UUID, position: int, created_by_id: UUID,
    ) -> BulkItemModel:
        return cls(
            job_id=job_id,
            position=position,
            io_id=dto.io_id,
            success=dto.success,
            message=dto.message,
            from_status=dto.from_status.value if dto.from_status else None,
            to_status=dto.to_status.value if dto.to_status else None,
            error_code=dto.error_code,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
