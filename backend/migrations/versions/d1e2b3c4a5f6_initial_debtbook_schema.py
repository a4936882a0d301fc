"""initial debtbook schema

Revision ID: d1e2b3c4a5f6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the customer debt/credit ledger:
- customers: running outstanding/credit totals (minor units)
- transactions: sales, credit issuances, payments and refunds
- audit_records: append-only trail reconciliation replays
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'd1e2b3c4a5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # customers
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('outstanding_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('outstanding_balance >= 0', name='ck_customers_outstanding_non_negative'),
        sa.CheckConstraint('credit_balance >= 0', name='ck_customers_credit_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    # ============================================================================
    # transactions
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('paid_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('applied_to_debt', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('linked_transaction_id', sa.Integer(), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN'),
        sa.Column('exchange_rate', sa.Numeric(18, 6), nullable=False, server_default='1'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['linked_transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_customer_id', 'transactions', ['customer_id'])
    op.create_index('ix_transactions_kind', 'transactions', ['kind'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_linked_transaction_id', 'transactions', ['linked_transaction_id'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_customer_deleted', 'transactions', ['customer_id', 'is_deleted'])
    op.create_index('ix_transactions_customer_created', 'transactions', ['customer_id', 'created_at'])

    # ============================================================================
    # audit_records: append-only, purged only by age
    # ============================================================================
    op.create_table(
        'audit_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('source_transaction_id', sa.Integer(), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('amount >= 0', name='ck_audit_records_amount_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['source_transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_records_customer_id', 'audit_records', ['customer_id'])
    op.create_index('ix_audit_records_source_transaction_id', 'audit_records', ['source_transaction_id'])
    op.create_index('ix_audit_records_kind', 'audit_records', ['kind'])
    op.create_index('ix_audit_records_created_at', 'audit_records', ['created_at'])
    op.create_index('ix_audit_records_customer_created', 'audit_records', ['customer_id', 'created_at'])


def downgrade():
    op.drop_table('audit_records')
    op.drop_table('transactions')
    op.drop_table('customers')
