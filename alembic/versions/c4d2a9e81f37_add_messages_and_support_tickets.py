"""add_messages_and_support_tickets

Revision ID: c4d2a9e81f37
Revises: b7e1c0a2f9d4
Create Date: 2026-10-19 15:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4d2a9e81f37'
down_revision: Union[str, Sequence[str], None] = 'b7e1c0a2f9d4'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ticket_status = sa.Enum('open', 'closed', name='marketplace_ticket_status_enum')


def upgrade() -> None:
    """Upgrade schema - Add order messages and support tickets."""
    if op.get_bind().dialect.name == 'postgresql':
        op.execute(
            "ALTER TYPE marketplace_notification_type_enum ADD VALUE IF NOT EXISTS 'message'"
        )
        op.execute(
            "ALTER TYPE marketplace_notification_type_enum ADD VALUE IF NOT EXISTS 'support'"
        )

    op.create_table(
        'marketplace_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('receiver_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['marketplace_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        op.f('ix_marketplace_messages_order_id'), 'marketplace_messages', ['order_id']
    )
    op.create_index(
        'ix_marketplace_messages_receiver_read',
        'marketplace_messages',
        ['receiver_id', 'is_read'],
    )
    op.create_index(
        'ix_marketplace_messages_pair',
        'marketplace_messages',
        ['sender_id', 'receiver_id'],
    )

    op.create_table(
        'marketplace_support_tickets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', ticket_status, nullable=False),
        sa.Column('response', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        op.f('ix_marketplace_support_tickets_user_id'),
        'marketplace_support_tickets',
        ['user_id'],
    )

    op.create_table(
        'marketplace_support_ticket_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ticket_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['ticket_id'], ['marketplace_support_tickets.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        op.f('ix_marketplace_support_ticket_messages_ticket_id'),
        'marketplace_support_ticket_messages',
        ['ticket_id'],
    )


def downgrade() -> None:
    """Downgrade schema - Drop order messages and support tickets."""
    op.drop_index(
        op.f('ix_marketplace_support_ticket_messages_ticket_id'),
        table_name='marketplace_support_ticket_messages',
    )
    op.drop_table('marketplace_support_ticket_messages')
    op.drop_index(
        op.f('ix_marketplace_support_tickets_user_id'),
        table_name='marketplace_support_tickets',
    )
    op.drop_table('marketplace_support_tickets')
    ticket_status.drop(op.get_bind(), checkfirst=True)
    op.drop_index('ix_marketplace_messages_pair', table_name='marketplace_messages')
    op.drop_index(
        'ix_marketplace_messages_receiver_read', table_name='marketplace_messages'
    )
    op.drop_index(
        op.f('ix_marketplace_messages_order_id'), table_name='marketplace_messages'
    )
    op.drop_table('marketplace_messages')
    # Postgres cannot drop enum values; 'message' and 'support' stay on the type
