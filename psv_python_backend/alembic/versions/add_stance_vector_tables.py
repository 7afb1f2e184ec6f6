"""Add deliberation dimensions and comment stance vector tables

Revision ID: add_stance_vector_tables
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'add_stance_vector_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'deliberation_dimensions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('post_id', postgresql.UUID(as_uuid=True)),
        sa.Column('group_id', postgresql.UUID(as_uuid=True)),

        sa.Column('dimension_name', sa.String(255), nullable=False),
        sa.Column('dimension_description', sa.Text, nullable=False),
        sa.Column('scale_negative_label', sa.String(255), nullable=False),
        sa.Column('scale_positive_label', sa.String(255), nullable=False),

        sa.Column('position', sa.Integer, nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),

        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index('idx_dimensions_post', 'deliberation_dimensions', ['post_id'])
    op.create_index('idx_dimensions_group', 'deliberation_dimensions', ['group_id'])
    op.create_index('idx_dimensions_active', 'deliberation_dimensions', ['active'])

    op.create_table(
        'comment_stance_vectors',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('comment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('comments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('dimension_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('deliberation_dimensions.id', ondelete='CASCADE'), nullable=False),

        sa.Column('stance_value', sa.Float, nullable=False),
        sa.Column('confidence', sa.Float, nullable=False),
        sa.Column('explanation', sa.Text),

        sa.Column('raw_oracle_response', postgresql.JSONB),
        sa.Column('processing_time_ms', sa.Integer),

        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),

        sa.UniqueConstraint('comment_id', 'dimension_id', name='unique_comment_dimension'),
        sa.CheckConstraint('stance_value >= -1.0 AND stance_value <= 1.0', name='check_stance_value_range'),
        sa.CheckConstraint('confidence >= 0.0 AND confidence <= 1.0', name='check_stance_confidence_range'),
    )

    op.create_index('idx_stance_vectors_comment', 'comment_stance_vectors', ['comment_id'])
    op.create_index('idx_stance_vectors_dimension', 'comment_stance_vectors', ['dimension_id'])

    op.create_table(
        'app_settings',
        sa.Column('key', sa.String(128), primary_key=True),
        sa.Column('value', postgresql.JSONB, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('app_settings')

    op.drop_index('idx_stance_vectors_dimension', table_name='comment_stance_vectors')
    op.drop_index('idx_stance_vectors_comment', table_name='comment_stance_vectors')
    op.drop_table('comment_stance_vectors')

    op.drop_index('idx_dimensions_active', table_name='deliberation_dimensions')
    op.drop_index('idx_dimensions_group', table_name='deliberation_dimensions')
    op.drop_index('idx_dimensions_post', table_name='deliberation_dimensions')
    op.drop_table('deliberation_dimensions')
