"""
Module: io_kernel.selectors.order_selector
Responsibility: Read access to insertion order snapshots and to the
    external keys other orders hold.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from io_kernel.domain.billing import KeyClaim
from io_kernel.domain.orders import InsertionOrder
from io_kernel.exceptions import OrderNotFoundError
from io_kernel.models.insertion_order import InsertionOrderModel
from io_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector[InsertionOrderModel]):
    """Queries over insertion orders."""

    def _model(self, order_id: UUID) -> InsertionOrderModel | None:
        return self.session.execute(
            select(InsertionOrderModel)
            .where(InsertionOrderModel.id == order_id)
            .options(selectinload(InsertionOrderModel.lines))
        ).scalar_one_or_none()

    def get(self, order_id: UUID) -> InsertionOrder | None:
        model = self._model(order_id)
        return model.to_dto() if model is not None else None

    def get_or_raise(self, order_id: UUID) -> InsertionOrder:
        order = self.get(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def get_many(self, order_ids: Iterable[UUID]) -> dict[UUID, InsertionOrder | None]:
        """Snapshots keyed by id; missing ids map to None."""
        ids = list(order_ids)
        rows = self.session.execute(
            select(InsertionOrderModel)
            .where(InsertionOrderModel.id.in_(ids))
            .options(selectinload(InsertionOrderModel.lines))
        ).scalars().all()
        found = {row.id: row.to_dto() for row in rows}
        return {order_id: found.get(order_id) for order_id in ids}

    def resolve_by_opportunity(self, opportunity_id: str) -> InsertionOrder | None:
        """The order holding ``opportunity_id``, preferring a non-closed one."""
        if not opportunity_id:
            return None
        model = self.session.execute(
            select(InsertionOrderModel)
            .where(InsertionOrderModel.external_opportunity_id == opportunity_id)
            .options(selectinload(InsertionOrderModel.lines))
            .order_by(InsertionOrderModel.closed, InsertionOrderModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def key_claims(self) -> list[KeyClaim]:
        """External keys held by every non-closed order."""
        rows = self.session.execute(
            select(InsertionOrderModel)
            .where(InsertionOrderModel.closed.is_(False))
            .options(selectinload(InsertionOrderModel.lines))
        ).scalars().all()
        return [
            KeyClaim(
                order_id=row.id,
                closed=row.closed,
                external_opportunity_id=row.external_opportunity_id,
                external_line_ids=tuple(
                    line.external_line_id for line in row.lines if line.external_line_id
                ),
            )
            for row in rows
        ]
