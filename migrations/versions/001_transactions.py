"""Transactions table.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TX_STATES = (
    'CREATED', 'PENDING', 'CONFIRMED_SUCCESS', 'CONFIRMED_FAILURE', 'ERRORED', 'ABANDONED',
)


def upgrade() -> None:
    op.create_table(
        'transactions',
        sa.Column('id', sa.String(66), primary_key=True),
        sa.Column('chain', sa.String(100), nullable=False, index=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('state', sa.Enum(*TX_STATES, name='txstate'), nullable=False, server_default='CREATED', index=True),
        sa.Column('monitoring', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('pending', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('checks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reviewed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('error', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_transactions_monitoring_reviewed', 'transactions', ['monitoring', 'reviewed'])


def downgrade() -> None:
    op.drop_index('ix_transactions_monitoring_reviewed', table_name='transactions')
    op.drop_table('transactions')
    sa.Enum(name='txstate').drop(op.get_bind(), checkfirst=True)
