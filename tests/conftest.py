"""
Pytest fixtures for testing
"""
import pytest
from decimal import Decimal
from sqlalchemy import create_engine, event, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB

from ledger.infrastructure.db.session import Base
from ledger.infrastructure.db import models  # noqa: F401  (registers tables)
from ledger.application.budgets import CreateBudgetUseCase
from ledger.application.envelopes import CreateEnvelopeUseCase
from ledger.application.payees import CreatePayeeUseCase
from ledger.application.income_sources import CreateIncomeSourceUseCase
from ledger.application.transactions import CreateTransactionUseCase


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads, FK checks on, JSONB→JSON."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite has no JSONB, store it as JSON
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def sample_user_id():
    """Sample user ID for tests"""
    return 1


@pytest.fixture
def budget(db_session, sample_user_id):
    """Budget with its system categories"""
    return CreateBudgetUseCase(db_session).execute(user_id=sample_user_id, name="Household")


@pytest.fixture
def other_budget(db_session, sample_user_id):
    return CreateBudgetUseCase(db_session).execute(user_id=sample_user_id, name="Side business")


@pytest.fixture
def income_source(db_session, budget):
    return CreateIncomeSourceUseCase(db_session).execute(budget_id=budget.id, name="Salary")


@pytest.fixture
def payee(db_session, budget):
    return CreatePayeeUseCase(db_session).execute(budget_id=budget.id, name="Corner Grocery")


@pytest.fixture
def groceries(db_session, budget):
    """Regular envelope in Uncategorized"""
    return CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Groceries")


@pytest.fixture
def dining(db_session, budget):
    return CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Dining out")


@pytest.fixture
def credit_card(db_session, budget):
    """Debt envelope owing 500.00"""
    return CreateEnvelopeUseCase(db_session).execute(
        budget_id=budget.id,
        name="Visa",
        envelope_type="debt",
        debt_balance=Decimal("500.00"),
    )


@pytest.fixture
def record(db_session, sample_user_id):
    """
    Create a transaction through the use case.

    Usage:
        record(budget, "income", "1000", income_source_id=source.id)
    """
    def _record(budget, transaction_type, amount, **kwargs):
        kwargs.setdefault("actor_user_id", sample_user_id)
        return CreateTransactionUseCase(db_session).execute(
            budget_id=budget.id,
            transaction_type=transaction_type,
            amount=Decimal(amount),
            **kwargs,
        )
    return _record


@pytest.fixture
def funded(budget, income_source, groceries, record):
    """Income 1000.00, of which 300.00 allocated to Groceries"""
    record(budget, "income", "1000", income_source_id=income_source.id)
    record(budget, "allocation", "300", to_envelope_id=groceries.id)
    return budget
