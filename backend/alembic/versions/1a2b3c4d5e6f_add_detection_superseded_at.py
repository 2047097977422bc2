"""Add superseded_at to strategic_detection_results

Revision ID: 1a2b3c4d5e6f
Revises: 0f1e2d3c4b5a
Create Date: 2026-10-18 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '1a2b3c4d5e6f'
down_revision: Union[str, None] = '0f1e2d3c4b5a'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'strategic_detection_results',
        sa.Column('superseded_at', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'ix_strategic_detection_results_superseded_at',
        'strategic_detection_results',
        ['superseded_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_strategic_detection_results_superseded_at', table_name='strategic_detection_results')
    op.drop_column('strategic_detection_results', 'superseded_at')
