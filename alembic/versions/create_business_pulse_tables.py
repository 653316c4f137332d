"""Create integration, mirror, webhook, metric and sync history tables

Revision ID: create_business_pulse_tables
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'create_business_pulse_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
    ]


def _owner_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
    ]


def upgrade() -> None:
    """Create every table."""
    op.create_table('integrations',
        *_owner_columns(),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('encrypted_api_key', sa.Text(), nullable=True),
        sa.Column('oauth_access_token', sa.Text(), nullable=True),
        sa.Column('oauth_refresh_token', sa.Text(), nullable=True),
        sa.Column('account_id', sa.String(length=255), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'provider', name='uq_integrations_user_provider')
    )
    op.create_index(op.f('ix_integrations_user_id'), 'integrations', ['user_id'], unique=False)
    op.create_index(op.f('ix_integrations_account_id'), 'integrations', ['account_id'], unique=False)

    # Stripe mirror
    op.create_table('stripe_customers',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('stripe_created_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_stripe_customers_user_external')
    )
    op.create_index(op.f('ix_stripe_customers_user_id'), 'stripe_customers', ['user_id'], unique=False)

    op.create_table('stripe_charges',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('refunded', sa.Boolean(), nullable=False),
        sa.Column('refund_amount', sa.BigInteger(), nullable=False),
        sa.Column('stripe_created_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['stripe_customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_stripe_charges_user_external')
    )
    op.create_index(op.f('ix_stripe_charges_user_id'), 'stripe_charges', ['user_id'], unique=False)
    op.create_index('ix_stripe_charges_user_created', 'stripe_charges', ['user_id', 'stripe_created_at'], unique=False)

    op.create_table('stripe_invoices',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount_due', sa.BigInteger(), nullable=False),
        sa.Column('amount_paid', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('stripe_created_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['stripe_customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_stripe_invoices_user_external')
    )
    op.create_index(op.f('ix_stripe_invoices_user_id'), 'stripe_invoices', ['user_id'], unique=False)

    op.create_table('stripe_subscriptions',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('stripe_created_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['stripe_customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_stripe_subscriptions_user_external')
    )
    op.create_index(op.f('ix_stripe_subscriptions_user_id'), 'stripe_subscriptions', ['user_id'], unique=False)

    # GoHighLevel mirror
    op.create_table('ghl_contacts',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('source', sa.String(length=255), nullable=True),
        sa.Column('ghl_created_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_ghl_contacts_user_external')
    )
    op.create_index(op.f('ix_ghl_contacts_user_id'), 'ghl_contacts', ['user_id'], unique=False)
    op.create_index('ix_ghl_contacts_user_created', 'ghl_contacts', ['user_id', 'ghl_created_at'], unique=False)

    op.create_table('ghl_opportunities',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('contact_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('pipeline_id', sa.String(length=255), nullable=True),
        sa.Column('pipeline_stage_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('monetary_value', sa.BigInteger(), nullable=True),
        sa.Column('ghl_created_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['contact_id'], ['ghl_contacts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_ghl_opportunities_user_external')
    )
    op.create_index(op.f('ix_ghl_opportunities_user_id'), 'ghl_opportunities', ['user_id'], unique=False)

    op.create_table('ghl_appointments',
        *_owner_columns(),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('contact_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('ghl_created_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['contact_id'], ['ghl_contacts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_id', name='uq_ghl_appointments_user_external')
    )
    op.create_index(op.f('ix_ghl_appointments_user_id'), 'ghl_appointments', ['user_id'], unique=False)

    # Webhook replay guard and quarantine
    op.create_table('webhook_events',
        *_owner_columns(),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=128), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'external_id', name='uq_webhook_events_provider_external')
    )
    op.create_index(op.f('ix_webhook_events_user_id'), 'webhook_events', ['user_id'], unique=False)
    op.create_index('ix_webhook_events_processed', 'webhook_events', ['provider', 'processed'], unique=False)

    # Aggregate buckets
    op.create_table('revenue_metrics',
        *_owner_columns(),
        sa.Column('period_type', sa.String(length=10), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('total_revenue', sa.BigInteger(), nullable=False),
        sa.Column('refunded_revenue', sa.BigInteger(), nullable=False),
        sa.Column('net_revenue', sa.BigInteger(), nullable=False),
        sa.Column('charge_count', sa.Integer(), nullable=False),
        sa.Column('refund_count', sa.Integer(), nullable=False),
        sa.Column('customer_count', sa.Integer(), nullable=False),
        sa.Column('new_customer_count', sa.Integer(), nullable=False),
        sa.Column('active_subscriptions', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'period_type', 'period_start', name='uq_revenue_metrics_user_period')
    )
    op.create_index(op.f('ix_revenue_metrics_user_id'), 'revenue_metrics', ['user_id'], unique=False)

    op.create_table('crm_metrics',
        *_owner_columns(),
        sa.Column('period_type', sa.String(length=10), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('new_leads', sa.Integer(), nullable=False),
        sa.Column('total_leads', sa.Integer(), nullable=False),
        sa.Column('appointments_booked', sa.Integer(), nullable=False),
        sa.Column('appointments_showed', sa.Integer(), nullable=False),
        sa.Column('appointments_no_show', sa.Integer(), nullable=False),
        sa.Column('show_rate', sa.Float(), nullable=False),
        sa.Column('opportunities_won', sa.Integer(), nullable=False),
        sa.Column('opportunities_lost', sa.Integer(), nullable=False),
        sa.Column('pipeline_value', sa.BigInteger(), nullable=False),
        sa.Column('won_value', sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'period_type', 'period_start', name='uq_crm_metrics_user_period')
    )
    op.create_index(op.f('ix_crm_metrics_user_id'), 'crm_metrics', ['user_id'], unique=False)

    # Sync run history
    op.create_table('sync_events',
        *_owner_columns(),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('trigger', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('backfill_days', sa.Integer(), nullable=True),
        sa.Column('items_processed', sa.Integer(), nullable=True),
        sa.Column('entity_counts', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('error_kind', sa.String(length=32), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_events_user_id'), 'sync_events', ['user_id'], unique=False)
    op.create_index('ix_sync_events_user_provider', 'sync_events', ['user_id', 'provider'], unique=False)


def downgrade() -> None:
    """Drop every table."""
    op.drop_table('sync_events')
    op.drop_table('crm_metrics')
    op.drop_table('revenue_metrics')
    op.drop_table('webhook_events')
    op.drop_table('ghl_appointments')
    op.drop_table('ghl_opportunities')
    op.drop_table('ghl_contacts')
    op.drop_table('stripe_subscriptions')
    op.drop_table('stripe_invoices')
    op.drop_table('stripe_charges')
    op.drop_table('stripe_customers')
    op.drop_table('integrations')
