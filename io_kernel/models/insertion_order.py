"""
ORM models for insertion orders and their lines.

Contract:
    InsertionOrderModel and InsertionOrderLineModel persist order snapshots.
    ``to_dto()`` / ``from_dto()`` convert to and from the frozen domain
    types; ``apply_dto()`` writes a mutated snapshot back onto a loaded row,
    synchronising lines by id.

Architecture: io_kernel/models.  Imports io_kernel.db.base and domain types.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from io_kernel.db.base import TrackedBase, UUIDString
from io_kernel.domain.orders import (
    ApprovalStatus,
    BudgetOverride,
    BudgetType,
    EditorSet,
    InsertionOrder,
    IOLineItem,
)

# Header columns copied one-to-one between row and snapshot
_HEADER_COLUMNS = (
    "name",
    "reviewed_by",
    "approved_by",
    "reject_reason",
    "closed",
    "close_reason",
    "customer_id",
    "currency",
    "order_date",
    "payment_terms",
    "external_opportunity_id",
    "opportunity_name",
    "parent_opportunity_id",
    "advertiser",
    "advertiser_id",
    "campaign_id",
    "campaign_name",
    "campaign_start",
    "campaign_end",
    "agency_name",
    "salesperson",
    "account_manager",
    "order_type",
    "is_campaign_mandatory",
    "order_total",
    "external_opportunity_total",
    "purchase_order_ref",
    "memo",
)

_LINE_COLUMNS = (
    "external_line_id",
    "item",
    "description",
    "quantity",
    "rate",
    "amount",
    "sub_bu",
    "fin_section",
    "department",
    "location",
    "cost_center",
    "product_code",
    "recognition_start",
    "recognition_end",
)


class InsertionOrderModel(TrackedBase):
    """Persistent insertion order header."""

    __tablename__ = "insertion_orders"

    __table_args__ = (
        Index("ix_insertion_orders_status", "approval_status"),
        Index("ix_insertion_orders_opportunity", "external_opportunity_id"),
        Index("ix_insertion_orders_owner", "owner_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    approval_status: Mapped[str] = mapped_column(String(50), nullable=False)
    editors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    order_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_opportunity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    opportunity_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    parent_opportunity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    advertiser: Mapped[str | None] = mapped_column(String(200), nullable=True)
    advertiser_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    campaign_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    campaign_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    campaign_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    campaign_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    agency_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    salesperson: Mapped[str | None] = mapped_column(String(200), nullable=True)
    account_manager: Mapped[str | None] = mapped_column(String(200), nullable=True)
    order_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    budget_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_campaign_mandatory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    order_total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    external_opportunity_total: Mapped[Decimal | None] = mapped_column(nullable=True)

    purchase_order_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    override_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    override_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    override_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    override_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    lines: Mapped[list[InsertionOrderLineModel]] = relationship(
        "InsertionOrderLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="InsertionOrderLineModel.position",
    )

    def to_dto(self) -> InsertionOrder:
        values = {col: getattr(self, col) for col in _HEADER_COLUMNS}
        values["name"] = values["name"] or ""
        return InsertionOrder(
            id=self.id,
            owner_id=self.owner_id,
            approval_status=ApprovalStatus(self.approval_status),
            editors=EditorSet.of(UUID(u) for u in (self.editors or [])),
            budget_type=BudgetType(self.budget_type),
            override=BudgetOverride(
                active=self.override_active,
                amount=self.override_amount if self.override_active else Decimal("0"),
                reason=(self.override_reason or "") if self.override_active else "",
                start_date=self.override_start_date if self.override_active else None,
                end_date=self.override_end_date,
                user_id=self.override_user_id,
            ),
            lines=tuple(line.to_dto() for line in self.lines),
            **values,
        )

    @classmethod
    def from_dto(cls, dto: InsertionOrder, created_by_id: UUID) -> InsertionOrderModel:
        model = cls(id=dto.id, owner_id=dto.owner_id, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: InsertionOrder, updated_by_id: UUID | None = None) -> None:
        """Copy ``dto`` onto this row; lines are matched by id."""
        for col in _HEADER_COLUMNS:
            setattr(self, col, getattr(dto, col))
        self.owner_id = dto.owner_id
        self.approval_status = dto.approval_status.value
        self.editors = [str(u) for u in dto.editors]
        self.budget_type = dto.budget_type.value
        self.override_active = dto.override.active
        self.override_amount = dto.override.amount
        self.override_reason = dto.override.reason or None
        self.override_start_date = dto.override.start_date
        self.override_end_date = dto.override.end_date
        self.override_user_id = dto.override.user_id
        if updated_by_id is not None:
            self.updated_by_id = updated_by_id

        existing = {line.id: line for line in self.lines}
        synced: list[InsertionOrderLineModel] = []
        for position, line in enumerate(dto.lines):
            row = existing.get(line.id)
            if row is None:
                row = InsertionOrderLineModel(
                    id=line.id,
                    created_by_id=updated_by_id or self.created_by_id,
                )
            row.apply_dto(line, position)
            synced.append(row)
        self.lines = synced


class InsertionOrderLineModel(TrackedBase):
    """Persistent insertion order line."""

    __tablename__ = "insertion_order_lines"

    __table_args__ = (
        Index("ix_io_lines_order", "order_id"),
        Index("ix_io_lines_external_line_id", "external_line_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("insertion_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    external_line_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    rate: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    sub_bu: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fin_section: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cost_center: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    recognition_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    recognition_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    order: Mapped[InsertionOrderModel] = relationship(
        "InsertionOrderModel", back_populates="lines",
    )

    def to_dto(self) -> IOLineItem:
        return IOLineItem(
            id=self.id,
            parent_io_id=self.order_id,
            **{col: getattr(self, col) for col in _LINE_COLUMNS},
        )

    def apply_dto(self, dto: IOLineItem, position: int) -> None:
        self.position = position
        for col in _LINE_COLUMNS:
            setattr(self, col, getattr(dto, col))
