"""add prescription_group_id to mar_medications

Rows written together for one prescription share a token, so independently
prescribed medications with identical fields no longer group together.
Existing rows keep NULL and group on their shared fields alone.

Revision ID: 0002
Revises: 0001
Create Date: 2025-11-20 16:40:03.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, Sequence[str], None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('mar_medications', sa.Column('prescription_group_id', sa.String(36), nullable=True))
    op.create_index('idx_mar_medications_group', 'mar_medications', ['prescription_group_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_mar_medications_group', table_name='mar_medications')
    op.drop_column('mar_medications', 'prescription_group_id')
