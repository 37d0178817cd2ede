"""Create cache table

Revision ID: 4b1e7c2d9a30
Revises:
Create Date: 2026-10-19 10:12:41.305118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4b1e7c2d9a30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # One row per (key, agentId); the composite primary key backs the upsert
    op.create_table(
        'cache',
        sa.Column('key', sa.Text(), nullable=False),
        sa.Column('agentId', sa.String(length=36), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('createdAt', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('key', 'agentId'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('cache')
