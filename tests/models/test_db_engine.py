"""
Tests for the module-level engine and session scope helpers (SQLite).
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from io_kernel.db import engine as db_engine
from io_kernel.models.billing import BillingDocumentModel
from io_kernel.domain.billing import InvoiceRef


@pytest.fixture
def sqlite_engine():
    db_engine.init_engine_from_url("sqlite:///:memory:")
    db_engine.create_tables()
    yield db_engine.get_engine()
    db_engine.drop_tables()
    db_engine.reset_engine()


class TestEngineLifecycle:

    def test_uninitialized_access_raises(self):
        db_engine.reset_engine()
        with pytest.raises(RuntimeError):
            db_engine.get_engine()
        with pytest.raises(RuntimeError):
            db_engine.get_session()

    def test_sqlite_dialect(self, sqlite_engine):
        assert sqlite_engine.dialect.name == "sqlite"


class TestSessionScope:

    def test_commits_on_success(self, sqlite_engine):
        ref = InvoiceRef(uuid4(), uuid4(), Decimal("10"))
        with db_engine.session_scope() as session:
            session.add(BillingDocumentModel.from_ref(ref, uuid4()))
        with db_engine.session_scope() as session:
            assert session.query(BillingDocumentModel).count() == 1

    def test_rolls_back_on_error(self, sqlite_engine):
        with pytest.raises(ValueError):
            with db_engine.session_scope() as session:
                session.add(BillingDocumentModel.from_ref(InvoiceRef(uuid4(), uuid4(), Decimal("10")), uuid4()))
                session.flush()
                raise ValueError("abort")
        with db_engine.session_scope() as session:
            assert session.query(BillingDocumentModel).count() == 0
