"""Initial schema: catalog, customers, invoices, credit ledger, deposits, cash journal

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates:
1. Users and session tokens
2. Products and stock adjustments
3. Customers
4. Invoices, invoice items, payments
5. Credit entries (sale credit + lending) and debt payments
6. Customer deposits and withdrawals
7. Cash balance, cash journal, expenses
8. Document sequences, audit log, system settings
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name='created_at', index=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=index)


def upgrade():
    # ==========================================================================
    # 1. USERS / SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _created_at(),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('compatibility', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('sale_price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity_on_hand', sa.Integer(), nullable=False),
        sa.Column('reorder_level', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity_on_hand >= 0', name='ck_products_quantity_non_negative'),
        sa.UniqueConstraint('sku'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_category_active', 'products', ['category', 'is_active'])

    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty_change', sa.Integer(), nullable=False),
        sa.Column('quantity_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustments_product_id', 'stock_adjustments', ['product_id'])
    op.create_index('ix_stock_adjustments_created_at', 'stock_adjustments', ['created_at'])

    # ==========================================================================
    # 3. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('display_id', sa.String(length=7), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=False),
        sa.Column('payment_terms', sa.String(length=64), nullable=True),
        sa.Column('outstanding_balance_afn_cents', sa.Integer(), nullable=False),
        sa.Column('is_walk_in', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('display_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customers_name', 'customers', ['name'])

    # ==========================================================================
    # 4. INVOICES / ITEMS
    # ==========================================================================
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('paid_cents', sa.Integer(), nullable=False),
        sa.Column('outstanding_cents', sa.Integer(), nullable=False),
        sa.Column('change_due_cents', sa.Integer(), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(12, 4), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.UniqueConstraint('invoice_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_date', 'invoices', ['date'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_customer_date', 'invoices', ['customer_id', 'date'])

    op.create_table('invoice_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('returned_quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('returned_quantity <= quantity', name='ck_invoice_items_returned_le_quantity'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_product_id', 'invoice_items', ['product_id'])

    # ==========================================================================
    # 5. CREDIT LEDGER
    # ==========================================================================
    op.create_table('credit_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('reference_number', sa.String(length=32), nullable=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=True),
        sa.Column('exchange_rate', sa.Numeric(12, 4), nullable=False),
        sa.Column('original_afn_cents', sa.Integer(), nullable=False),
        sa.Column('paid_afn_cents', sa.Integer(), nullable=False),
        sa.Column('credited_afn_cents', sa.Integer(), nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('reference_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_credit_entries_kind', 'credit_entries', ['kind'])
    op.create_index('ix_credit_entries_invoice_id', 'credit_entries', ['invoice_id'])
    op.create_index('ix_credit_entries_customer_status', 'credit_entries', ['customer_id', 'status'])
    op.create_index('ix_credit_entries_due_date', 'credit_entries', ['due_date'])

    op.create_table('payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('credit_entry_id', sa.Integer(), sa.ForeignKey('credit_entries.id'), nullable=True),
        sa.Column('amount_afn_cents', sa.Integer(), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(12, 4), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'])
    op.create_index('ix_payments_credit_entry_id', 'payments', ['credit_entry_id'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])

    op.create_table('debt_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('credit_entry_id', sa.Integer(), sa.ForeignKey('credit_entries.id'), nullable=False),
        sa.Column('amount_afn_cents', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_debt_payments_credit_entry_id', 'debt_payments', ['credit_entry_id'])
    op.create_index('ix_debt_payments_paid_at', 'debt_payments', ['paid_at'])

    # ==========================================================================
    # 6. DEPOSITS
    # ==========================================================================
    op.create_table('customer_deposits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('deposit_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('original_afn_cents', sa.Integer(), nullable=False),
        sa.Column('withdrawn_afn_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('deposited_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint('withdrawn_afn_cents <= original_afn_cents', name='ck_deposits_withdrawn_le_original'),
        sa.UniqueConstraint('deposit_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customer_deposits_customer_id', 'customer_deposits', ['customer_id'])
    op.create_index('ix_customer_deposits_status', 'customer_deposits', ['status'])
    op.create_index('ix_customer_deposits_deposited_at', 'customer_deposits', ['deposited_at'])

    op.create_table('deposit_withdrawals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('deposit_id', sa.Integer(), sa.ForeignKey('customer_deposits.id'), nullable=False),
        sa.Column('amount_afn_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('withdrawn_at', sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_deposit_withdrawals_deposit_id', 'deposit_withdrawals', ['deposit_id'])

    # ==========================================================================
    # 7. CASH
    # ==========================================================================
    op.create_table('cash_balances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('balance_afn_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table('cash_ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('amount_afn_cents', sa.Integer(), nullable=False),
        sa.Column('balance_before_afn_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_afn_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_cash_ledger_entries_entry_type', 'cash_ledger_entries', ['entry_type'])
    op.create_index('ix_cash_ledger_entries_occurred_at', 'cash_ledger_entries', ['occurred_at'])
    op.create_index('ix_cash_ledger_reference', 'cash_ledger_entries', ['reference_type', 'reference_id'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('amount_afn_cents', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_expenses_date', 'expenses', ['date'])

    # ==========================================================================
    # 8. DOCUMENTS / AUDIT / SETTINGS
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.UniqueConstraint('document_type'),
        sqlite_autoincrement=True,
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity', 'entity_id'])

    op.create_table('system_settings',
        sa.Column('key', sa.String(length=64), primary_key=True),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade():
    op.drop_table('system_settings')
    op.drop_table('audit_logs')
    op.drop_table('document_sequences')
    op.drop_table('expenses')
    op.drop_table('cash_ledger_entries')
    op.drop_table('cash_balances')
    op.drop_table('deposit_withdrawals')
    op.drop_table('customer_deposits')
    op.drop_table('debt_payments')
    op.drop_table('payments')
    op.drop_table('credit_entries')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('customers')
    op.drop_table('stock_adjustments')
    op.drop_table('products')
    op.drop_table('session_tokens')
    op.drop_table('users')
