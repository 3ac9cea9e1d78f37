"""Initial scheduling schema: tenants, providers, appointments, ledger, run locks

Revision ID: 1b4e7a2c9d10
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1b4e7a2c9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APPOINTMENT_STATUSES = ('BOOKED', 'CONFIRMED', 'CANCELLED', 'COMPLETED', 'NO_SHOW')
NOTIFICATION_TYPES = (
    'BOOKING_CONFIRMATION_REQUEST',
    'CONFIRM_REPLY',
    'CANCEL_REPLY',
    'CANCELLED_BY_OPERATOR',
    'REMINDER_24H',
    'THANK_YOU',
    'REBOOK',
)


def _in_list(column: str, values: Sequence[str]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        'tenants',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('timezone', sa.String(), nullable=False, server_default='Europe/Lisbon'),
        sa.Column('twilio_number', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('twilio_number'),
    )

    op.create_table(
        'operators',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
    )
    op.create_index('ix_operators_tenant_id', 'operators', ['tenant_id'])

    op.create_table(
        'providers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_providers_tenant_id', 'providers', ['tenant_id'])

    op.create_table(
        'working_hours_rules',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('provider_id', sa.UUID(), nullable=False),
        sa.Column('day_of_week', sa.SmallInteger(), nullable=False),
        sa.Column('open_time', sa.Time(), nullable=False),
        sa.Column('close_time', sa.Time(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_id', 'day_of_week', name='uq_working_hours_provider_day'),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_working_hours_day_of_week'),
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('phone', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'phone', name='uq_customers_tenant_phone'),
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('provider_id', sa.UUID(), nullable=False),
        sa.Column('customer_id', sa.UUID(), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='BOOKED'),
        sa.Column('service', sa.String(), nullable=True),
        sa.Column('customer_name_snapshot', sa.String(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('start_at < end_at', name='ck_appointments_interval'),
        sa.CheckConstraint(_in_list('status', APPOINTMENT_STATUSES), name='appointment_status'),
    )
    op.create_index('ix_appointments_customer_id', 'appointments', ['customer_id'])
    op.create_index('idx_appointments_provider_start', 'appointments', ['provider_id', 'start_at'])
    op.create_index('idx_appointments_status_end', 'appointments', ['status', 'end_at'])
    op.execute(
        "ALTER TABLE appointments ADD CONSTRAINT ex_appointments_provider_no_overlap "
        "EXCLUDE USING gist (provider_id WITH =, tstzrange(start_at, end_at, '[)') WITH &&) "
        "WHERE (status <> 'CANCELLED')"
    )

    op.create_table(
        'delivery_records',
        sa.Column('appointment_id', sa.UUID(), nullable=False),
        sa.Column('notification_type', sa.String(length=40), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.PrimaryKeyConstraint('appointment_id', 'notification_type'),
        sa.CheckConstraint(_in_list('notification_type', NOTIFICATION_TYPES), name='notification_type'),
    )

    op.create_table(
        'run_locks',
        sa.Column('key', sa.String(), nullable=False),
        sa.Column('holder', sa.String(length=36), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('key'),
    )

    op.create_table(
        'message_log',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tenant_id', sa.UUID(), nullable=True),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('phone', sa.String(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id'),
    )


def downgrade() -> None:
    op.drop_table('message_log')
    op.drop_table('run_locks')
    op.drop_table('delivery_records')
    op.drop_index('idx_appointments_status_end', table_name='appointments')
    op.drop_index('idx_appointments_provider_start', table_name='appointments')
    op.drop_index('ix_appointments_customer_id', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('ix_customers_phone', table_name='customers')
    op.drop_table('customers')
    op.drop_table('working_hours_rules')
    op.drop_index('ix_providers_tenant_id', table_name='providers')
    op.drop_table('providers')
    op.drop_index('ix_operators_tenant_id', table_name='operators')
    op.drop_table('operators')
    op.drop_table('tenants')
