"""Initial schema: tenants, fiscal job queue, credit ledger, stored-value instruments

SCHEMA:
1. Tenancy: organizations, branches, reference_sequences
2. Counterparties and sales: customers, suppliers, sales, sale_returns
3. Credit ledger: customer_credits, supplier_credits, goods_receipts, expenses
4. Stored value: gift_cards, gift_card_transactions, loyalty_*
5. Fiscal: fiscal_printer_configs, fiscal_jobs, bridge_tokens, idempotency_keys

Revision ID: p001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = False):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def _credit_columns():
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('entry_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('remaining_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('credit_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('payment_history', sa.JSON(), nullable=False),
        sa.Column('reference_number', sa.String(length=32), nullable=True),
        *_timestamps(updated=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
    ]


def upgrade():
    # ==========================================================================
    # STEP 1: Tenancy
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='Asia/Baku'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    op.create_table('branches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_branches_org_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_branches_org_id', 'branches', ['org_id'])

    op.create_table('reference_sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('scope', sa.String(length=16), nullable=False, server_default=''),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'prefix', 'scope', name='uq_reference_sequences_org_prefix_scope'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_reference_sequences_org_id', 'reference_sequences', ['org_id'])

    # ==========================================================================
    # STEP 2: Counterparties and sales
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customers_org_id', 'customers', ['org_id'])
    op.create_index('ix_customers_is_active', 'customers', ['is_active'])

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('payment_terms_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_suppliers_org_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_suppliers_org_id', 'suppliers', ['org_id'])
    op.create_index('ix_suppliers_is_active', 'suppliers', ['is_active'])

    op.create_table('sales',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('reference_number', sa.String(length=64), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='paid'),
        sa.Column('fiscal_number', sa.String(length=64), nullable=True),
        sa.Column('fiscal_document_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'reference_number', name='uq_sales_org_reference'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_org_id', 'sales', ['org_id'])
    op.create_index('ix_sales_branch_id', 'sales', ['branch_id'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'])

    op.create_table('sale_returns',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('fiscal_number', sa.String(length=64), nullable=True),
        sa.Column('fiscal_document_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'reference_number', name='uq_sale_returns_org_reference'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_returns_org_id', 'sale_returns', ['org_id'])
    op.create_index('ix_sale_returns_sale_id', 'sale_returns', ['sale_id'])

    # ==========================================================================
    # STEP 3: Credit ledger
    # ==========================================================================
    op.create_table('customer_credits',
        *_credit_columns(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'reference_number', name='uq_customer_credits_org_reference'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customer_credits_org_id', 'customer_credits', ['org_id'])
    op.create_index('ix_customer_credits_branch_id', 'customer_credits', ['branch_id'])
    op.create_index('ix_customer_credits_status', 'customer_credits', ['status'])
    op.create_index('ix_customer_credits_customer_id', 'customer_credits', ['customer_id'])
    op.create_index('ix_customer_credits_sale_id', 'customer_credits', ['sale_id'])

    op.create_table('supplier_credits',
        *_credit_columns(),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'reference_number', name='uq_supplier_credits_org_reference'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_supplier_credits_org_id', 'supplier_credits', ['org_id'])
    op.create_index('ix_supplier_credits_branch_id', 'supplier_credits', ['branch_id'])
    op.create_index('ix_supplier_credits_status', 'supplier_credits', ['status'])
    op.create_index('ix_supplier_credits_supplier_id', 'supplier_credits', ['supplier_id'])

    op.create_table('goods_receipts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='unpaid'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('supplier_credit_id', sa.Integer(), sa.ForeignKey('supplier_credits.id'), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'receipt_number', name='uq_goods_receipts_org_number'),
        sa.UniqueConstraint('supplier_credit_id', name='uq_goods_receipts_supplier_credit'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_goods_receipts_org_id', 'goods_receipts', ['org_id'])
    op.create_index('ix_goods_receipts_branch_id', 'goods_receipts', ['branch_id'])
    op.create_index('ix_goods_receipts_supplier_id', 'goods_receipts', ['supplier_id'])
    op.create_index('ix_goods_receipts_payment_status', 'goods_receipts', ['payment_status'])
    op.create_index('ix_goods_receipts_supplier_credit_id', 'goods_receipts', ['supplier_credit_id'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('reference_number', sa.String(length=32), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=True),
        sa.Column('supplier_credit_id', sa.Integer(), sa.ForeignKey('supplier_credits.id'), nullable=True),
        sa.Column('credit_payment_amount_cents', sa.Integer(), nullable=True),
        sa.Column('goods_receipt_id', sa.Integer(), sa.ForeignKey('goods_receipts.id'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'reference_number', name='uq_expenses_org_reference'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_expenses_org_id', 'expenses', ['org_id'])
    op.create_index('ix_expenses_branch_id', 'expenses', ['branch_id'])
    op.create_index('ix_expenses_supplier_id', 'expenses', ['supplier_id'])
    op.create_index('ix_expenses_supplier_credit_id', 'expenses', ['supplier_credit_id'])
    op.create_index('ix_expenses_goods_receipt_id', 'expenses', ['goods_receipt_id'])

    # ==========================================================================
    # STEP 4: Stored-value instruments
    # ==========================================================================
    op.create_table('gift_cards',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('card_number', sa.String(length=32), nullable=False),
        sa.Column('denomination_cents', sa.Integer(), nullable=True),
        sa.Column('initial_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='free'),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('fiscal_number', sa.String(length=64), nullable=True),
        sa.Column('fiscal_document_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_gift_cards_card_number', 'gift_cards', ['card_number'], unique=True)
    op.create_index('ix_gift_cards_org_id', 'gift_cards', ['org_id'])
    op.create_index('ix_gift_cards_status', 'gift_cards', ['status'])
    op.create_index('ix_gift_cards_customer_id', 'gift_cards', ['customer_id'])

    op.create_table('gift_card_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('gift_card_id', sa.Integer(), sa.ForeignKey('gift_cards.id'), nullable=False),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=True),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_before_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_cents', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_gift_card_transactions_gift_card_id', 'gift_card_transactions', ['gift_card_id'])
    op.create_index('ix_gift_card_transactions_sale_id', 'gift_card_transactions', ['sale_id'])
    op.create_index('ix_gift_card_transactions_transaction_type', 'gift_card_transactions', ['transaction_type'])
    op.create_index('ix_gift_card_txns_card_created', 'gift_card_transactions', ['gift_card_id', 'created_at'])

    op.create_table('loyalty_programs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('points_per_unit', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('min_redemption_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_expiry_days', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', name='uq_loyalty_programs_org'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_loyalty_programs_org_id', 'loyalty_programs', ['org_id'])

    op.create_table('loyalty_accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('card_number', sa.String(length=32), nullable=True),
        sa.Column('points_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(updated=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', name='uq_loyalty_accounts_customer'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_loyalty_accounts_customer_id', 'loyalty_accounts', ['customer_id'])
    op.create_index('ix_loyalty_accounts_org_id', 'loyalty_accounts', ['org_id'])
    op.create_index('ix_loyalty_accounts_card_number', 'loyalty_accounts', ['card_number'])

    op.create_table('loyalty_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('loyalty_accounts.id'), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_loyalty_transactions_account_id', 'loyalty_transactions', ['account_id'])
    op.create_index('ix_loyalty_transactions_transaction_type', 'loyalty_transactions', ['transaction_type'])
    op.create_index('ix_loyalty_transactions_sale_id', 'loyalty_transactions', ['sale_id'])
    op.create_index('ix_loyalty_transactions_expires_at', 'loyalty_transactions', ['expires_at'])
    op.create_index('ix_loyalty_transactions_created_at', 'loyalty_transactions', ['created_at'])
    op.create_index('ix_loyalty_txns_account_created', 'loyalty_transactions', ['account_id', 'created_at'])

    # ==========================================================================
    # STEP 5: Fiscal printer integration
    # ==========================================================================
    op.create_table('fiscal_printer_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('endpoint_url', sa.String(length=255), nullable=True),
        sa.Column('username', sa.String(length=128), nullable=True),
        sa.Column('password', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('shift_open', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('shift_opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_z_report_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(updated=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', name='uq_fiscal_printer_configs_org'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_fiscal_printer_configs_org_id', 'fiscal_printer_configs', ['org_id'])

    op.create_table('fiscal_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=True),
        sa.Column('return_id', sa.Integer(), sa.ForeignKey('sale_returns.id'), nullable=True),
        sa.Column('operation_type', sa.String(length=32), nullable=False, server_default='sale'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('provider', sa.String(length=32), nullable=True),
        sa.Column('request_data', sa.JSON(), nullable=True),
        sa.Column('response_data', sa.JSON(), nullable=True),
        sa.Column('fiscal_number', sa.String(length=64), nullable=True),
        sa.Column('fiscal_document_id', sa.String(length=128), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_retriable', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=True),
        sa.PrimaryKeyConstraint('id'),
        # fiscal_document_id is unique per tenant; NULLs do not collide
        sa.UniqueConstraint('org_id', 'fiscal_document_id', name='uq_fiscal_jobs_org_document'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_fiscal_jobs_org_id', 'fiscal_jobs', ['org_id'])
    op.create_index('ix_fiscal_jobs_sale_id', 'fiscal_jobs', ['sale_id'])
    op.create_index('ix_fiscal_jobs_return_id', 'fiscal_jobs', ['return_id'])
    op.create_index('ix_fiscal_jobs_operation_type', 'fiscal_jobs', ['operation_type'])
    op.create_index('ix_fiscal_jobs_status', 'fiscal_jobs', ['status'])
    op.create_index('ix_fiscal_jobs_next_retry_at', 'fiscal_jobs', ['next_retry_at'])
    op.create_index('ix_fiscal_jobs_org_status_created', 'fiscal_jobs', ['org_id', 'status', 'created_at'])

    op.create_table('bridge_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('bridge_version', sa.String(length=32), nullable=True),
        sa.Column('info', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_bridge_tokens_org_id', 'bridge_tokens', ['org_id'])
    op.create_index('ix_bridge_tokens_token_hash', 'bridge_tokens', ['token_hash'], unique=True)
    op.create_index('ix_bridge_tokens_status', 'bridge_tokens', ['status'])

    op.create_table('idempotency_keys',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('fiscal_job_id', sa.Integer(), sa.ForeignKey('fiscal_jobs.id'), nullable=True),
        *_timestamps(),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'key', name='uq_idempotency_keys_org_key'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_idempotency_keys_org_id', 'idempotency_keys', ['org_id'])
    op.create_index('ix_idempotency_keys_expires_at', 'idempotency_keys', ['expires_at'])


def downgrade():
    for table in (
        'idempotency_keys',
        'bridge_tokens',
        'fiscal_jobs',
        'fiscal_printer_configs',
        'loyalty_transactions',
        'loyalty_accounts',
        'loyalty_programs',
        'gift_card_transactions',
        'gift_cards',
        'expenses',
        'goods_receipts',
        'supplier_credits',
        'customer_credits',
        'sale_returns',
        'sales',
        'suppliers',
        'customers',
        'reference_sequences',
        'branches',
        'organizations',
    ):
        op.drop_table(table)
