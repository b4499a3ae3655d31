"""Prospect pipeline schema: prospects, research_attempts, stage_transitions

Revision ID: 3f9a61c2d8e4
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a61c2d8e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('prospects',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('business_name', sa.Text(), nullable=False),
        sa.Column('industry', sa.Text(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('state', sa.Text(), nullable=True),
        sa.Column('employee_count', sa.Integer(), nullable=True),
        sa.Column('estimated_revenue', sa.Float(), nullable=True),
        sa.Column('contact_name', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('has_website', sa.Boolean(), nullable=True),
        sa.Column('has_google_business', sa.Boolean(), nullable=True),
        sa.Column('has_social_media', sa.Boolean(), nullable=True),
        sa.Column('has_online_reviews', sa.Boolean(), nullable=True),
        sa.Column('pipeline_stage', sa.Text(), nullable=False, server_default='cold'),
        sa.Column('qualification_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_breakdown', sa.JSON(), nullable=True),
        sa.Column('qualification_level', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_prospects_pipeline_stage', 'prospects', ['pipeline_stage'])

    op.create_table('research_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('prospect_id', sa.Text(), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='completed'),
        sa.Column('pass_results', sa.JSON(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['prospect_id'], ['prospects.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prospect_id', 'attempt_number', name='uq_attempt_prospect_number'),
    )
    op.create_index('ix_research_attempts_prospect_id', 'research_attempts', ['prospect_id'])

    op.create_table('stage_transitions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('prospect_id', sa.Text(), nullable=False),
        sa.Column('from_stage', sa.Text(), nullable=False),
        sa.Column('to_stage', sa.Text(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['prospect_id'], ['prospects.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stage_transitions_prospect_id', 'stage_transitions', ['prospect_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_stage_transitions_prospect_id', table_name='stage_transitions')
    op.drop_table('stage_transitions')
    op.drop_index('ix_research_attempts_prospect_id', table_name='research_attempts')
    op.drop_table('research_attempts')
    op.drop_index('ix_prospects_pipeline_stage', table_name='prospects')
    op.drop_table('prospects')
