"""Initial schema: sectors, operators, pricing, sessions, sales, debts, shifts

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Sectors, streets, operators and operator assignments
2. Pricing profiles, pricing rules and discount rules
3. Parking sessions (one ACTIVE session per plate and sector)
4. Shifts, shift operations and cash adjustments (one OPEN shift per operator and device)
5. Sales, debts and payments
6. Audit log and idempotency keys
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. SECTORS, STREETS, OPERATORS
    # ==========================================================================
    op.create_table('sectors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table('streets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sector_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['sector_id'], ['sectors.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sector_id', 'name', name='uq_streets_sector_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('streets', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_streets_sector_id'), ['sector_id'], unique=False)

    op.create_table('operators',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('rut', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rut'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('operators', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_operators_status'), ['status'], unique=False)

    op.create_table('operator_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('operator_id', sa.Integer(), nullable=False),
        sa.Column('sector_id', sa.Integer(), nullable=False),
        sa.Column('street_id', sa.Integer(), nullable=True),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_to', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['operator_id'], ['operators.id'], ),
        sa.ForeignKeyConstraint(['sector_id'], ['sectors.id'], ),
        sa.ForeignKeyConstraint(['street_id'], ['streets.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('operator_assignments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_operator_assignments_operator_id'), ['operator_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_operator_assignments_sector_id'), ['sector_id'], unique=False)
        batch_op.create_index('ix_operator_assignments_operator_sector', ['operator_id', 'sector_id'], unique=False)

    # ==========================================================================
    # 2. PRICING
    # ==========================================================================
    op.create_table('pricing_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sector_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('active_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('active_to', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['sector_id'], ['sectors.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('pricing_profiles', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_pricing_profiles_sector_id'), ['sector_id'], unique=False)
        batch_op.create_index('ix_pricing_profiles_sector_active_from', ['sector_id', 'active_from'], unique=False)

    op.create_table('pricing_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('min_duration_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('price_per_min', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('fixed_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('min_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('min_amount_is_base', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('base_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('daily_max_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['profile_id'], ['pricing_profiles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('pricing_rules', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_pricing_rules_profile_id'), ['profile_id'], unique=False)

    op.create_table('discount_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.Column('value', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('max_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['profile_id'], ['pricing_profiles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('discount_rules', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_discount_rules_profile_id'), ['profile_id'], unique=False)

    # ==========================================================================
    # 3. PARKING SESSIONS
    # ==========================================================================
    op.create_table('parking_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plate', sa.String(length=16), nullable=False),
        sa.Column('sector_id', sa.Integer(), nullable=False),
        sa.Column('street_id', sa.Integer(), nullable=True),
        sa.Column('operator_in_id', sa.Integer(), nullable=False),
        sa.Column('operator_out_id', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('seconds_total', sa.Integer(), nullable=True),
        sa.Column('is_full_day', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('gross_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('net_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sector_id'], ['sectors.id'], ),
        sa.ForeignKeyConstraint(['street_id'], ['streets.id'], ),
        sa.ForeignKeyConstraint(['operator_in_id'], ['operators.id'], ),
        sa.ForeignKeyConstraint(['operator_out_id'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('parking_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_parking_sessions_plate'), ['plate'], unique=False)
        batch_op.create_index(batch_op.f('ix_parking_sessions_sector_id'), ['sector_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_parking_sessions_operator_in_id'), ['operator_in_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_parking_sessions_started_at'), ['started_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_parking_sessions_status'), ['status'], unique=False)
        batch_op.create_index('ix_parking_sessions_plate_status', ['plate', 'status'], unique=False)
        batch_op.create_index(
            'uq_parking_sessions_active_plate_sector',
            ['plate', 'sector_id'],
            unique=True,
            sqlite_where=sa.text("status = 'ACTIVE'"),
            postgresql_where=sa.text("status = 'ACTIVE'"),
        )

    # ==========================================================================
    # 4. SHIFTS
    # ==========================================================================
    op.create_table('shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('operator_id', sa.Integer(), nullable=False),
        sa.Column('sector_id', sa.Integer(), nullable=True),
        sa.Column('device_id', sa.String(length=128), nullable=True),
        sa.Column('device_key', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('opening_float', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('closing_declared_cash', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('cash_expected', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('cash_over_short', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('closed_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['operator_id'], ['operators.id'], ),
        sa.ForeignKeyConstraint(['sector_id'], ['sectors.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['operators.id'], ),
        sa.ForeignKeyConstraint(['closed_by'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shifts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shifts_operator_id'), ['operator_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_shifts_sector_id'), ['sector_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_shifts_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_shifts_opened_at'), ['opened_at'], unique=False)
        batch_op.create_index(
            'uq_shifts_open_operator_device',
            ['operator_id', 'device_key'],
            unique=True,
            sqlite_where=sa.text("status = 'OPEN'"),
            postgresql_where=sa.text("status = 'OPEN'"),
        )

    op.create_table('shift_operations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.ForeignKeyConstraint(['actor_id'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shift_operations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shift_operations_shift_id'), ['shift_id'], unique=False)
        batch_op.create_index('ix_shift_operations_shift_occurred', ['shift_id', 'occurred_at'], unique=False)

    op.create_table('cash_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('receipt_number', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.ForeignKeyConstraint(['actor_id'], ['operators.id'], ),
        sa.ForeignKeyConstraint(['approved_by'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_adjustments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_adjustments_shift_id'), ['shift_id'], unique=False)
        batch_op.create_index('ix_cash_adjustments_shift_kind', ['shift_id', 'kind'], unique=False)

    # ==========================================================================
    # 5. SALES, DEBTS, PAYMENTS
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('cashier_operator_id', sa.Integer(), nullable=True),
        sa.Column('doc_type', sa.String(length=16), nullable=False, server_default='BOLETA'),
        sa.Column('net', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['session_id'], ['parking_sessions.id'], ),
        sa.ForeignKeyConstraint(['cashier_operator_id'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sales_cashier_operator_id'), ['cashier_operator_id'], unique=False)

    op.create_table('debts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plate', sa.String(length=16), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('origin', sa.String(length=16), nullable=False),
        sa.Column('principal_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('outstanding_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['session_id'], ['parking_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('debts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_debts_plate'), ['plate'], unique=False)
        batch_op.create_index(batch_op.f('ix_debts_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_debts_status'), ['status'], unique=False)
        batch_op.create_index('ix_debts_plate_status', ['plate', 'status'], unique=False)

    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('debt_id', sa.Integer(), nullable=True),
        sa.Column('cashier_operator_id', sa.Integer(), nullable=True),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('authorization_code', sa.String(length=64), nullable=True),
        sa.Column('external_transaction_id', sa.String(length=128), nullable=True),
        sa.Column('provider_ref', sa.String(length=128), nullable=True),
        sa.Column('payload_hash', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['parking_sessions.id'], ),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.ForeignKeyConstraint(['debt_id'], ['debts.id'], ),
        sa.ForeignKeyConstraint(['cashier_operator_id'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_debt_id'), ['debt_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_external_transaction_id'), ['external_transaction_id'], unique=False)
        batch_op.create_index('ix_payments_shift_status_method', ['shift_id', 'status', 'method'], unique=False)
        batch_op.create_index('ix_payments_sale_status', ['sale_id', 'status'], unique=False)

    # ==========================================================================
    # 6. AUDIT LOG, IDEMPOTENCY KEYS
    # ==========================================================================
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('before_json', sa.JSON(), nullable=True),
        sa.Column('after_json', sa.JSON(), nullable=True),
        sa.Column('at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_actor_id'), ['actor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_action'), ['action'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_at'), ['at'], unique=False)
        batch_op.create_index('ix_audit_logs_entity', ['entity', 'entity_id'], unique=False)

    op.create_table('idempotency_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('endpoint', sa.String(length=128), nullable=False),
        sa.Column('payload_hash', sa.String(length=64), nullable=False),
        sa.Column('response', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('idempotency_keys')
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_logs_entity')
        batch_op.drop_index(batch_op.f('ix_audit_logs_at'))
        batch_op.drop_index(batch_op.f('ix_audit_logs_action'))
        batch_op.drop_index(batch_op.f('ix_audit_logs_actor_id'))
    op.drop_table('audit_logs')

    op.drop_table('payments')
    op.drop_table('debts')
    op.drop_table('sales')
    op.drop_table('cash_adjustments')
    op.drop_table('shift_operations')
    with op.batch_alter_table('shifts', schema=None) as batch_op:
        batch_op.drop_index('uq_shifts_open_operator_device')
    op.drop_table('shifts')

    with op.batch_alter_table('parking_sessions', schema=None) as batch_op:
        batch_op.drop_index('uq_parking_sessions_active_plate_sector')
    op.drop_table('parking_sessions')

    op.drop_table('discount_rules')
    op.drop_table('pricing_rules')
    op.drop_table('pricing_profiles')
    op.drop_table('operator_assignments')
    op.drop_table('operators')
    op.drop_table('streets')
    op.drop_table('sectors')
