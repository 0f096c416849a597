"""create_scout_tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Local destination catalog
    op.create_table(
        'destinations',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False, server_default=''),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('location', sa.Text(), nullable=False, server_default=''),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('rating >= 0 AND rating <= 5'),
    )
    op.create_index('ix_destinations_name', 'destinations', ['name'])

    op.create_table(
        'destination_categories',
        sa.Column('destination_id', sa.String(length=64),
                  sa.ForeignKey('destinations.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('category', sa.String(length=64), primary_key=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_destination_categories_category', 'destination_categories', ['category'])

    # Per-user interest vectors
    op.create_table(
        'interest_scores',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'category', name='uq_interest_scores_user_category'),
    )
    op.create_index('ix_interest_scores_user_id', 'interest_scores', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_interest_scores_user_id', table_name='interest_scores')
    op.drop_table('interest_scores')
    op.drop_index('ix_destination_categories_category', table_name='destination_categories')
    op.drop_table('destination_categories')
    op.drop_index('ix_destinations_name', table_name='destinations')
    op.drop_table('destinations')
