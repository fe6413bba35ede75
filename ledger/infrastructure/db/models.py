"""
SQLAlchemy ORM models (ledger tables + cached aggregates)
"""
from decimal import Decimal
from datetime import date as date_type, datetime
from sqlalchemy import (
    String, Integer, Text, TIMESTAMP, Date, func, false, true, Boolean, Numeric,
    ForeignKey, UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from ledger.infrastructure.db.session import Base


class Budget(Base):
    """
    Budget - owns envelopes, categories, payees, income sources and transactions

    available_amount is the unallocated pool (cached, see ConsistencyAuditor)
    """
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD", server_default="USD")
    available_amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0"), server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_budget_user_name"),
    )


class Category(Base):
    """
    Category of envelopes, one level of nesting (parent_id)

    total = active envelope balances in the category + child totals
    """
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0"), server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_categories_scope_order", "budget_id", "parent_id", "display_order"),
    )


class Envelope(Base):
    """
    Envelope - bucket of allocated funds

    For debt envelopes current_balance is allocated-but-unpaid money and
    target_amount is the amount still owed.
    """
    __tablename__ = "envelopes"

    id: Mapped[int] = mapped_column(primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    envelope_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default="regular", server_default="regular"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    target_amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)

    # Debt-only
    debt_balance: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    minimum_payment: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    due_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    # Read by the notification scheduler
    should_notify: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    notify_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    notify_amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_envelope_budget_name"),
        Index("ix_envelopes_scope_order", "category_id", "display_order"),
        CheckConstraint("envelope_type IN ('regular', 'savings', 'debt')", name="ck_envelope_type"),
    )


class Payee(Base):
    """
    Payee - who gets paid; total_paid and last_payment_* are cached
    """
    __tablename__ = "payees"

    id: Mapped[int] = mapped_column(primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    total_paid: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    last_payment_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    last_payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_payee_budget_name"),
    )


class IncomeSource(Base):
    """Income source - where income comes from"""
    __tablename__ = "income_sources"

    id: Mapped[int] = mapped_column(primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    expected_monthly_amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)

    # Read by the notification scheduler
    should_notify: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    next_expected_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_income_source_budget_name"),
    )


class Transaction(Base):
    """
    Ledger transaction (income / allocation / expense / transfer / payoff)

    References to envelopes, payees and income sources are RESTRICT:
    a referenced entity cannot be deleted while any transaction points at it.
    payoff_* columns hold the pre-payoff envelope snapshot for exact reversal.
    """
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)

    from_envelope_id: Mapped[int | None] = mapped_column(
        ForeignKey("envelopes.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    to_envelope_id: Mapped[int | None] = mapped_column(
        ForeignKey("envelopes.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    payee_id: Mapped[int | None] = mapped_column(
        ForeignKey("payees.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    income_source_id: Mapped[int | None] = mapped_column(
        ForeignKey("income_sources.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_cleared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    # Payoff pre-image
    payoff_prior_balance: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    payoff_prior_target: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    payoff_excess: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    deleted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    deleted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    modified_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_transactions_budget_active", "budget_id", "is_deleted"),
        Index("ix_transactions_deleted_at", "is_deleted", "deleted_at"),
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        CheckConstraint(
            "transaction_type IN ('income', 'allocation', 'expense', 'transfer', 'payoff')",
            name="ck_transaction_type",
        ),
    )


class TransactionEvent(Base):
    """
    Append-only audit record of a transaction mutation

    changes = {field: {"old": ..., "new": ...}}
    """
    __tablename__ = "transaction_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    budget_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    changes: Mapped[dict] = mapped_column(JSONB, nullable=False)
    funds_mode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    performed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    performed_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)


class CleanupLog(Base):
    """Record of a retention cleanup run"""
    __tablename__ = "cleanup_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    job_name: Mapped[str] = mapped_column(String(64), nullable=False)
    records_cleaned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False, index=True
    )
