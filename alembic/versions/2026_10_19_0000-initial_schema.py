"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create customers, credits_history and name_generation_logs."""

    # ========================================================================
    # Create customers table
    # ========================================================================
    op.create_table(
        'customers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # The conditional decrement relies on this floor
        sa.CheckConstraint('credits >= 0', name='ck_customers_credits_non_negative'),
        sa.UniqueConstraint('user_id', name='uq_customers_user_id'),
    )
    op.create_index('idx_customers_updated_at', 'customers', ['updated_at'])

    # ========================================================================
    # Create credits_history table (append-only)
    # ========================================================================
    op.create_table(
        'credits_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('customer_id', UUID(as_uuid=True), sa.ForeignKey('customers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('metadata', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('amount > 0', name='ck_credits_history_amount_positive'),
        sa.CheckConstraint("type IN ('add', 'subtract')", name='ck_credits_history_type'),
    )
    op.create_index('ix_credits_history_customer_id', 'credits_history', ['customer_id'])
    op.create_index('idx_credits_history_created_at', 'credits_history', ['created_at'])

    # ========================================================================
    # Create name_generation_logs table (written by the generation pipeline)
    # ========================================================================
    op.create_table(
        'name_generation_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('plan_type', sa.String(50), nullable=True),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('names_generated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index(
        'idx_name_generation_logs_user_created', 'name_generation_logs', ['user_id', 'created_at']
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_name_generation_logs_user_created', table_name='name_generation_logs')
    op.drop_table('name_generation_logs')

    op.drop_index('idx_credits_history_created_at', table_name='credits_history')
    op.drop_index('ix_credits_history_customer_id', table_name='credits_history')
    op.drop_table('credits_history')

    op.drop_index('idx_customers_updated_at', table_name='customers')
    op.drop_table('customers')
