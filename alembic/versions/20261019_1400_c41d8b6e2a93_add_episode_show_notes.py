"""Add show_notes to episodes

Revision ID: c41d8b6e2a93
Revises: a7c3e9d2f104
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c41d8b6e2a93'
down_revision: Union[str, None] = 'a7c3e9d2f104'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # HTML show notes carried by <content:encoded>
    op.add_column('episodes', sa.Column('show_notes', sa.Text, nullable=True))


def downgrade() -> None:
    with op.batch_alter_table('episodes') as batch_op:
        batch_op.drop_column('show_notes')
