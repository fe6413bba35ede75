"""create ledger tables

Revision ID: 3f9a1c7d2e10
Revises:
Create Date: 2026-10-19 10:12:44.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7d2e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # 1. budgets
    op.create_table(
        'budgets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('available_amount', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_budget_user_name'),
    )
    op.create_index('ix_budgets_user_id', 'budgets', ['user_id'])

    # 2. categories
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('budget_id', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=7), nullable=True),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_categories_budget_id', 'categories', ['budget_id'])
    op.create_index('ix_categories_scope_order', 'categories', ['budget_id', 'parent_id', 'display_order'])

    # 3. envelopes
    op.create_table(
        'envelopes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('budget_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=7), nullable=True),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('envelope_type', sa.String(length=16), nullable=False, server_default='regular'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_balance', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('target_amount', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('debt_balance', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('minimum_payment', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('should_notify', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('notify_date', sa.Date(), nullable=True),
        sa.Column('notify_amount', sa.Numeric(precision=20, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('budget_id', 'name', name='uq_envelope_budget_name'),
        sa.CheckConstraint("envelope_type IN ('regular', 'savings', 'debt')", name='ck_envelope_type'),
    )
    op.create_index('ix_envelopes_budget_id', 'envelopes', ['budget_id'])
    op.create_index('ix_envelopes_category_id', 'envelopes', ['category_id'])
    op.create_index('ix_envelopes_scope_order', 'envelopes', ['category_id', 'display_order'])

    # 4. payees
    op.create_table(
        'payees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('budget_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('total_paid', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('last_payment_date', sa.Date(), nullable=True),
        sa.Column('last_payment_amount', sa.Numeric(precision=20, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('budget_id', 'name', name='uq_payee_budget_name'),
    )
    op.create_index('ix_payees_budget_id', 'payees', ['budget_id'])

    # 5. income_sources
    op.create_table(
        'income_sources',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('budget_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('expected_monthly_amount', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('should_notify', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('next_expected_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('budget_id', 'name', name='uq_income_source_budget_name'),
    )
    op.create_index('ix_income_sources_budget_id', 'income_sources', ['budget_id'])

    # 6. transactions
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('budget_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('from_envelope_id', sa.Integer(), nullable=True),
        sa.Column('to_envelope_id', sa.Integer(), nullable=True),
        sa.Column('payee_id', sa.Integer(), nullable=True),
        sa.Column('income_source_id', sa.Integer(), nullable=True),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_cleared', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_reconciled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('payoff_prior_balance', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('payoff_prior_target', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('payoff_excess', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('modified_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_envelope_id'], ['envelopes.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['to_envelope_id'], ['envelopes.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['payee_id'], ['payees.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['income_source_id'], ['income_sources.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_transaction_amount_positive'),
        sa.CheckConstraint(
            "transaction_type IN ('income', 'allocation', 'expense', 'transfer', 'payoff')",
            name='ck_transaction_type',
        ),
    )
    op.create_index('ix_transactions_budget_id', 'transactions', ['budget_id'])
    op.create_index('ix_transactions_transaction_type', 'transactions', ['transaction_type'])
    op.create_index('ix_transactions_transaction_date', 'transactions', ['transaction_date'])
    op.create_index('ix_transactions_from_envelope_id', 'transactions', ['from_envelope_id'])
    op.create_index('ix_transactions_to_envelope_id', 'transactions', ['to_envelope_id'])
    op.create_index('ix_transactions_payee_id', 'transactions', ['payee_id'])
    op.create_index('ix_transactions_income_source_id', 'transactions', ['income_source_id'])
    op.create_index('ix_transactions_budget_active', 'transactions', ['budget_id', 'is_deleted'])
    op.create_index('ix_transactions_deleted_at', 'transactions', ['is_deleted', 'deleted_at'])

    # 7. transaction_events
    op.create_table(
        'transaction_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('budget_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('changes', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('funds_mode', sa.String(length=16), nullable=True),
        sa.Column('performed_by', sa.Integer(), nullable=True),
        sa.Column('performed_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transaction_events_transaction_id', 'transaction_events', ['transaction_id'])
    op.create_index('ix_transaction_events_budget_id', 'transaction_events', ['budget_id'])

    # 8. cleanup_logs
    op.create_table(
        'cleanup_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('job_name', sa.String(length=64), nullable=False),
        sa.Column('records_cleaned', sa.Integer(), nullable=False),
        sa.Column('execution_time_ms', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('executed_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cleanup_logs_executed_at', 'cleanup_logs', ['executed_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('cleanup_logs')
    op.drop_table('transaction_events')
    op.drop_table('transactions')
    op.drop_table('income_sources')
    op.drop_table('payees')
    op.drop_table('envelopes')
    op.drop_table('categories')
    op.drop_table('budgets')
