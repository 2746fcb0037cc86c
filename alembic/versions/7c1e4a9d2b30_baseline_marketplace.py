"""baseline_marketplace

Revision ID: 7c1e4a9d2b30
Revises:
Create Date: 2026-10-18 09:12:44.102311

Production-safe migration: only creates tables that do not exist yet.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '7c1e4a9d2b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('full_name', sa.String(), nullable=True),
            sa.Column('phone', sa.String(), nullable=True),
            sa.Column('role', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)

    if not table_exists('leads'):
        op.create_table('leads',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('owner_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('category', sa.String(), nullable=False),
            sa.Column('canton', sa.String(length=2), nullable=False),
            sa.Column('postal_code', sa.String(length=4), nullable=False),
            sa.Column('city', sa.String(), nullable=True),
            sa.Column('budget_min', sa.Integer(), nullable=True),
            sa.Column('budget_max', sa.Integer(), nullable=True),
            sa.Column('urgency', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('proposal_deadline', sa.DateTime(), nullable=True),
            sa.Column('accepted_proposal_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint("status != 'active' OR proposal_deadline IS NOT NULL", name='ck_leads_active_deadline'),
            sa.CheckConstraint("accepted_proposal_id IS NULL OR status = 'completed'", name='ck_leads_accepted_completed'),
            sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_leads_status_deadline', 'leads', ['status', 'proposal_deadline'], unique=False)
        op.create_index(op.f('ix_leads_category'), 'leads', ['category'], unique=False)
        op.create_index(op.f('ix_leads_id'), 'leads', ['id'], unique=False)
        op.create_index(op.f('ix_leads_owner_id'), 'leads', ['owner_id'], unique=False)
        op.create_index(op.f('ix_leads_proposal_deadline'), 'leads', ['proposal_deadline'], unique=False)
        op.create_index(op.f('ix_leads_status'), 'leads', ['status'], unique=False)

    if not table_exists('provider_profiles'):
        op.create_table('provider_profiles',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('company_name', sa.String(), nullable=True),
            sa.Column('categories', sa.JSON(), nullable=False),
            sa.Column('service_areas', sa.JSON(), nullable=False),
            sa.Column('verification_status', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id')
        )
        op.create_index(op.f('ix_provider_profiles_id'), 'provider_profiles', ['id'], unique=False)
        op.create_index(op.f('ix_provider_profiles_verification_status'), 'provider_profiles', ['verification_status'], unique=False)

    if not table_exists('proposals'):
        op.create_table('proposals',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lead_id', sa.Integer(), nullable=False),
            sa.Column('provider_id', sa.Integer(), nullable=False),
            sa.Column('price_min', sa.Integer(), nullable=False),
            sa.Column('price_max', sa.Integer(), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('estimated_duration_days', sa.Integer(), nullable=True),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('decided_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
            sa.ForeignKeyConstraint(['provider_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('lead_id', 'provider_id', name='uq_proposals_lead_provider')
        )
        op.create_index(op.f('ix_proposals_id'), 'proposals', ['id'], unique=False)
        op.create_index(op.f('ix_proposals_lead_id'), 'proposals', ['lead_id'], unique=False)
        op.create_index(op.f('ix_proposals_provider_id'), 'proposals', ['provider_id'], unique=False)
        op.create_index(op.f('ix_proposals_status'), 'proposals', ['status'], unique=False)

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('plan_type', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('proposals_limit', sa.Integer(), nullable=False),
            sa.Column('proposals_used_this_period', sa.Integer(), nullable=False),
            sa.Column('current_period_start', sa.DateTime(), nullable=True),
            sa.Column('current_period_end', sa.DateTime(), nullable=True),
            sa.Column('pending_plan', sa.String(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id')
        )
        op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)

    if not table_exists('payment_records'):
        op.create_table('payment_records',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('transaction_id', sa.String(), nullable=False),
            sa.Column('plan_type', sa.String(), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('provider', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('transaction_id')
        )
        op.create_index(op.f('ix_payment_records_id'), 'payment_records', ['id'], unique=False)
        op.create_index(op.f('ix_payment_records_user_id'), 'payment_records', ['user_id'], unique=False)

    if not table_exists('access_tokens'):
        op.create_table('access_tokens',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('token', sa.String(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('resource_type', sa.String(), nullable=False),
            sa.Column('resource_id', sa.Integer(), nullable=True),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('used_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_access_tokens_id'), 'access_tokens', ['id'], unique=False)
        op.create_index(op.f('ix_access_tokens_token'), 'access_tokens', ['token'], unique=True)
        op.create_index(op.f('ix_access_tokens_user_id'), 'access_tokens', ['user_id'], unique=False)

    if not table_exists('notifications'):
        op.create_table('notifications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('type', sa.String(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('related_id', sa.Integer(), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('read_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
        op.create_index(op.f('ix_notifications_type'), 'notifications', ['type'], unique=False)
        op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)

    if not table_exists('conversations'):
        op.create_table('conversations',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lead_id', sa.Integer(), nullable=False),
            sa.Column('owner_id', sa.Integer(), nullable=False),
            sa.Column('provider_id', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
            sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['provider_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('lead_id')
        )
        op.create_index(op.f('ix_conversations_id'), 'conversations', ['id'], unique=False)

    if not table_exists('lead_views'):
        op.create_table('lead_views',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lead_id', sa.Integer(), nullable=False),
            sa.Column('viewer_id', sa.Integer(), nullable=False),
            sa.Column('viewed_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
            sa.ForeignKeyConstraint(['viewer_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('lead_id', 'viewer_id', name='uq_lead_views_lead_viewer')
        )
        op.create_index(op.f('ix_lead_views_id'), 'lead_views', ['id'], unique=False)
        op.create_index(op.f('ix_lead_views_lead_id'), 'lead_views', ['lead_id'], unique=False)

    if not table_exists('outbox_events'):
        op.create_table('outbox_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('kind', sa.String(), nullable=False),
            sa.Column('recipient', sa.String(), nullable=False),
            sa.Column('subject', sa.String(), nullable=False),
            sa.Column('html_body', sa.Text(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('attempts', sa.Integer(), nullable=False),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('sent_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_outbox_status_created', 'outbox_events', ['status', 'created_at'], unique=False)
        op.create_index(op.f('ix_outbox_events_id'), 'outbox_events', ['id'], unique=False)

    if not table_exists('notification_receipts'):
        op.create_table('notification_receipts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('subject_key', sa.String(), nullable=False),
            sa.Column('recipient_id', sa.Integer(), nullable=False),
            sa.Column('kind', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('subject_key', 'recipient_id', 'kind', name='uq_receipts_subject_recipient_kind')
        )
        op.create_index(op.f('ix_notification_receipts_id'), 'notification_receipts', ['id'], unique=False)

    if not table_exists('admin_alerts'):
        op.create_table('admin_alerts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('type', sa.String(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('resolved_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_admin_alerts_id'), 'admin_alerts', ['id'], unique=False)
        op.create_index(op.f('ix_admin_alerts_type'), 'admin_alerts', ['type'], unique=False)


def downgrade() -> None:
    for table in (
        'admin_alerts', 'notification_receipts', 'outbox_events', 'lead_views',
        'conversations', 'notifications', 'access_tokens', 'payment_records',
        'subscriptions', 'proposals', 'provider_profiles', 'leads', 'users',
    ):
        if table_exists(table):
            op.drop_table(table)
