"""add_outbox_claim_and_pending_plan_at

Revision ID: b41f0c6e8a12
Revises: 7c1e4a9d2b30
Create Date: 2026-10-25 14:03:17.520114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b41f0c6e8a12'
down_revision: Union[str, None] = '7c1e4a9d2b30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add outbox claim timestamp and subscription pending-plan timestamp."""
    from sqlalchemy import inspect

    # Check if columns already exist (idempotent migration)
    bind = op.get_bind()
    inspector = inspect(bind)

    outbox_columns = [col['name'] for col in inspector.get_columns('outbox_events')]
    if 'claimed_at' not in outbox_columns:
        op.add_column('outbox_events', sa.Column('claimed_at', sa.DateTime(), nullable=True))

    subscription_columns = [col['name'] for col in inspector.get_columns('subscriptions')]
    if 'pending_plan_at' not in subscription_columns:
        op.add_column('subscriptions', sa.Column('pending_plan_at', sa.DateTime(), nullable=True))


def downgrade() -> None:
    """Remove outbox claim timestamp and subscription pending-plan timestamp."""
    op.drop_column('subscriptions', 'pending_plan_at')
    op.drop_column('outbox_events', 'claimed_at')
