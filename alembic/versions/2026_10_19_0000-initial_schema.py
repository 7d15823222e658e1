"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users and payments tables."""

    # ========================================================================
    # Create users table
    # ========================================================================
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(254), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('credits', sa.BigInteger(), nullable=False, server_default='20'),
        sa.Column('plan', sa.String(20), nullable=False, server_default='free'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits >= 0', name='ck_user_credits_non_negative'),
        sa.CheckConstraint("plan IN ('free', 'pro', 'enterprise')", name='ck_user_plan'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )

    op.create_index('idx_users_created_at', 'users', ['created_at'])

    # ========================================================================
    # Create payments table
    # ========================================================================
    op.create_table(
        'payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('gateway_intent_id', sa.String(255), nullable=False),
        sa.Column('amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('credits_to_grant', sa.BigInteger(), nullable=False),
        sa.Column('plan_id', sa.String(50), nullable=False),
        sa.Column('plan_name', sa.String(100), nullable=False),
        sa.Column('webhook_confirmed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_amount_minor', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount_minor >= 0', name='ck_payment_amount_non_negative'),
        sa.CheckConstraint('credits_to_grant >= -1', name='ck_payment_credits_valid'),
        sa.CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed', 'canceled', 'refunded')",
            name='ck_payment_status',
        ),
        sa.CheckConstraint(
            'refund_amount_minor IS NULL OR refund_amount_minor >= 0',
            name='ck_payment_refund_non_negative',
        ),
        # One record per intent; the second insert for an intent fails here
        sa.UniqueConstraint('gateway_intent_id', name='uq_payments_gateway_intent_id'),
    )

    # Indexes for payments
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('idx_payments_user_created', 'payments', ['user_id', 'created_at'])
    op.create_index('idx_payments_status', 'payments', ['status'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('payments')
    op.drop_table('users')
