"""Scheduling schema: tenants, plans, workers, services, appointments, participants

Revision ID: 001_scheduling_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '001_scheduling_schema'
down_revision = None

subscription_status = sa.Enum('TRIAL', 'ACTIVE', 'EXPIRED', 'CANCELLED', name='subscriptionstatus')
appointment_status = sa.Enum('PENDING', 'CONFIRMED', 'CANCELLED', name='appointmentstatus')
participant_status = sa.Enum('CONFIRMED', 'WAITLIST', 'CANCELLED', name='participantstatus')

TENANT_TABLES = ['customers', 'services', 'workers', 'appointments']


def upgrade():
    op.create_table(
        'plans',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True, index=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
    )

    op.create_table(
        'plan_features',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('plan_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('plans.id'), nullable=False, index=True),
        sa.Column('feature_name', sa.String(100), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('description', sa.String(500), nullable=True),
        sa.UniqueConstraint('plan_id', 'feature_name', name='uq_plan_feature'),
    )

    op.create_table(
        'tenants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, index=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('working_hours', sa.JSON(), nullable=True),
        sa.Column('plan_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('plans.id'), nullable=True),
        sa.Column('subscription_status', subscription_status, nullable=False, server_default='ACTIVE'),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('subscription_ends_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('blocked', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        'services',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('is_group_service', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('max_capacity', sa.Integer(), nullable=True),
        sa.Column('min_capacity', sa.Integer(), nullable=True),
        sa.Column('allow_waitlist', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.CheckConstraint('duration > 0', name='ck_service_duration_positive'),
        sa.CheckConstraint(
            'NOT is_group_service OR max_capacity >= 2',
            name='ck_service_group_capacity'
        ),
        sa.CheckConstraint(
            'min_capacity IS NULL OR max_capacity IS NULL OR min_capacity < max_capacity',
            name='ck_service_min_below_max'
        ),
    )

    op.create_table(
        'workers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('schedule_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        'worker_services',
        sa.Column('worker_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('workers.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False, index=True),
        sa.Column('worker_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('workers.id'), nullable=False, index=True),
        sa.Column('starts_at', sa.DateTime(), nullable=False),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('status', appointment_status, nullable=False, server_default='PENDING', index=True),
        sa.Column('is_group_appointment', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('current_participants', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.String(2000), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('starts_at < ends_at', name='ck_appointment_time_range'),
        sa.CheckConstraint('current_participants >= 0', name='ck_appointment_participants_non_negative'),
    )
    op.create_index(
        'idx_appointment_worker_window',
        'appointments',
        ['tenant_id', 'worker_id', 'starts_at', 'ends_at']
    )

    op.create_table(
        'appointment_participants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('status', participant_status, nullable=False, server_default='CONFIRMED', index=True),
        sa.Column('joined_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.UniqueConstraint('appointment_id', 'customer_id', name='uq_participant_appointment_customer'),
    )

    # Row Level Security on tenant-scoped tables
    for table in TENANT_TABLES:
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
        op.execute(f"""
            CREATE POLICY tenant_isolation_{table} ON {table}
            USING (tenant_id::text = current_setting('app.current_tenant', true))
        """)


def downgrade():
    for table in TENANT_TABLES:
        op.execute(f'DROP POLICY IF EXISTS tenant_isolation_{table} ON {table}')

    op.drop_table('appointment_participants')
    op.drop_index('idx_appointment_worker_window', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('worker_services')
    op.drop_table('workers')
    op.drop_table('services')
    op.drop_table('customers')
    op.drop_table('tenants')
    op.drop_table('plan_features')
    op.drop_table('plans')

    participant_status.drop(op.get_bind(), checkfirst=True)
    appointment_status.drop(op.get_bind(), checkfirst=True)
    subscription_status.drop(op.get_bind(), checkfirst=True)
