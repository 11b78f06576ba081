"""
Pytest fixtures for the insertion order kernel test suite.

Provides:
- Structured logging configured once per session, with per-test capture
- Actors for every role and a deterministic clock
- Order / line / invoice factories
- In-memory SQLite sessions for service, model and executor tests
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import io_batch.models  # noqa: F401
import io_kernel.models  # noqa: F401
from io_kernel.db.base import Base
from io_kernel.domain.billing import InvoiceCandidate, InvoiceLine
from io_kernel.domain.clock import DeterministicClock
from io_kernel.domain.orders import (
    Actor,
    ActorRole,
    ApprovalStatus,
    BudgetType,
    InsertionOrder,
    IOLineItem,
)
from io_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture io_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            apply_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "transition_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("io_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Actors and clock
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def analyst():
    return Actor(uuid4(), ActorRole.ANALYST)


@pytest.fixture
def reviewer():
    """A second analyst who neither created nor edited the order."""
    return Actor(uuid4(), ActorRole.ANALYST)


@pytest.fixture
def manager():
    return Actor(uuid4(), ActorRole.MANAGER)


@pytest.fixture
def admin():
    return Actor(uuid4(), ActorRole.ADMINISTRATOR)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_line():
    """Factory for IOLineItem with a March 2026 recognition period."""

    def _make(order_id: UUID | None = None, **overrides) -> IOLineItem:
        values = dict(
            id=uuid4(),
            parent_io_id=order_id or uuid4(),
            external_line_id=f"L-{uuid4().hex[:8]}",
            item="DISPLAY",
            description="Display banner",
            quantity=Decimal("1"),
            rate=Decimal("500"),
            amount=Decimal("500"),
            sub_bu="MEDIA",
            recognition_start=date(2026, 3, 1),
            recognition_end=date(2026, 3, 31),
        )
        values.update(overrides)
        return IOLineItem(**values)

    return _make


@pytest.fixture
def make_order(make_line):
    """
    Factory for InsertionOrder snapshots.

    Defaults: two 500.00 lines, total 1000.00, opportunity total equal to
    the order total, FLUID budget, USD, customer CUST-1.  Pass ``lines=``
    as a list of amounts or of IOLineItem.
    """

    def _make(owner: Actor | None = None, lines=None, **overrides) -> InsertionOrder:
        order_id = overrides.pop("id", None) or uuid4()
        if lines is None:
            lines = [Decimal("500"), Decimal("500")]
        built = tuple(
            line if isinstance(line, IOLineItem)
            else make_line(order_id, amount=Decimal(line), rate=Decimal(line))
            for line in lines
        )
        total = sum((line.amount for line in built), Decimal("0"))
        values = dict(
            id=order_id,
            owner_id=owner.user_id if owner else uuid4(),
            name="Spring campaign",
            approval_status=ApprovalStatus.DRAFT,
            customer_id="CUST-1",
            currency="USD",
            order_date=date(2026, 2, 1),
            external_opportunity_id=f"OPP-{uuid4().hex[:8]}",
            campaign_name="Spring",
            campaign_start=date(2026, 3, 1),
            campaign_end=date(2026, 4, 30),
            budget_type=BudgetType.FLUID,
            order_total=total,
            external_opportunity_total=total,
            lines=built,
        )
        values.update(overrides)
        return InsertionOrder(**values)

    return _make


@pytest.fixture
def make_invoice():
    """Factory for an InvoiceCandidate billing lines of ``order``."""

    def _make(order: InsertionOrder, amounts=None, **overrides) -> InvoiceCandidate:
        if amounts is None:
            amounts = [Decimal("100")]
        lines = tuple(
            InvoiceLine(
                external_line_id=order.lines[i % len(order.lines)].external_line_id,
                item=order.lines[i % len(order.lines)].item,
                amount=Decimal(amount),
                sub_bu=order.lines[i % len(order.lines)].sub_bu,
            )
            for i, amount in enumerate(amounts)
        )
        values = dict(
            external_opportunity_id=order.external_opportunity_id,
            customer_id=order.customer_id,
            currency=order.currency,
            lines=lines,
            start_date=date(2026, 3, 1),
            end_date=date(2026, 3, 31),
        )
        values.update(overrides)
        return InvoiceCandidate(**values)

    return _make


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_session():
    """In-memory SQLite session with every table created."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    session = factory()
    yield session
    session.close()
    engine.dispose()
