"""workflow coach schema

Revision ID: 001
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Workflows
    op.create_table(
        'workflow_tracking',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('session_id', sa.Text(), nullable=False),
        sa.Column('workflow_type', sa.Text(), nullable=False, server_default='general'),
        sa.Column('workflow_name', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='active'),
        sa.Column('total_steps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('activity_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('command_sequence', sa.JSON(), nullable=False),
        sa.Column('model_switch_patterns', sa.JSON(), nullable=False),
        sa.Column('efficiency_score', sa.Integer(), nullable=True),
        sa.Column('complexity_level', sa.Text(), nullable=True),
        sa.Column('coach_analysis', sa.JSON(), nullable=True),
        sa.Column('last_analyzed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_duration_s', sa.Integer(), nullable=True),
        sa.Column('active_time_s', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_workflow_tracking_user_session', 'workflow_tracking', ['user_id', 'session_id'])
    op.create_index('ix_workflow_tracking_user_created', 'workflow_tracking', ['user_id', 'created_at'])
    op.create_index('ix_workflow_tracking_status', 'workflow_tracking', ['status'])
    # At most one active workflow per (user, session)
    op.create_index(
        'uq_workflow_tracking_active_session',
        'workflow_tracking',
        ['user_id', 'session_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    # Insights
    op.create_table(
        'ai_coach_insight',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('workflow_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('insight_type', sa.Text(), nullable=False),
        sa.Column('insight_category', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('recommendations', sa.JSON(), nullable=False),
        sa.Column('trigger_context', sa.JSON(), nullable=True),
        sa.Column('priority', sa.Text(), nullable=False),
        sa.Column('priority_rank', sa.Integer(), nullable=False),
        sa.Column('expected_impact', sa.Text(), nullable=False),
        sa.Column('source', sa.Text(), nullable=False, server_default='rules'),
        sa.Column('was_shown', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('was_acted_upon', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('user_feedback', sa.Text(), nullable=True),
        sa.Column('feedback_details', sa.Text(), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('shown_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflow_tracking.id'], ),
    )
    op.create_index('ix_ai_coach_insight_user_pending', 'ai_coach_insight', ['user_id', 'was_shown', 'expires_at'])
    op.create_index('ix_ai_coach_insight_workflow_id', 'ai_coach_insight', ['workflow_id'])

    # Historical patterns
    op.create_table(
        'workflow_pattern',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('pattern_name', sa.Text(), nullable=False),
        sa.Column('pattern_type', sa.Text(), nullable=False, server_default='sequence'),
        sa.Column('pattern_data', sa.JSON(), nullable=False),
        sa.Column('frequency', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('first_observed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('last_observed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_workflow_pattern_user_frequency', 'workflow_pattern', ['user_id', 'frequency'])


def downgrade() -> None:
    op.drop_index('ix_workflow_pattern_user_frequency', table_name='workflow_pattern')
    op.drop_table('workflow_pattern')
    op.drop_index('ix_ai_coach_insight_workflow_id', table_name='ai_coach_insight')
    op.drop_index('ix_ai_coach_insight_user_pending', table_name='ai_coach_insight')
    op.drop_table('ai_coach_insight')
    op.drop_index('uq_workflow_tracking_active_session', table_name='workflow_tracking')
    op.drop_index('ix_workflow_tracking_status', table_name='workflow_tracking')
    op.drop_index('ix_workflow_tracking_user_created', table_name='workflow_tracking')
    op.drop_index('ix_workflow_tracking_user_session', table_name='workflow_tracking')
    op.drop_table('workflow_tracking')
