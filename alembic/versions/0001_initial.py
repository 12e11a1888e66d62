"""Initial schema: users, owners and feedback_media

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def _owner_analytics():
    return [
        sa.Column('processing_status', sa.String(length=20), server_default='ready', nullable=False),
        sa.Column('modality_primary', sa.String(length=20), server_default='text', nullable=False),
        sa.Column('transcript_text', sa.Text(), nullable=True),
        sa.Column('transcript_confidence', sa.Float(), nullable=True),
        sa.Column('original_language', sa.String(length=16), nullable=True),
        sa.Column('language_confidence', sa.Float(), nullable=True),
        sa.Column('normalized_text', sa.Text(), nullable=True),
        sa.Column('normalized_language', sa.String(length=16), nullable=True),
        sa.Column('sentiment', sa.String(length=16), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False, server_default='consumer'),
        *_timestamps(),
    )

    op.create_table(
        'survey_responses',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('survey_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('answers', sa.JSON(), nullable=True),
        sa.Column('nps_score', sa.Integer(), nullable=True),
        *_owner_analytics(),
        *_timestamps(),
    )

    op.create_table(
        'feedback',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('feedback_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='new'),
        *_owner_analytics(),
        *_timestamps(),
    )

    op.create_table(
        'feedback_media',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('owner_type', sa.String(length=32), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('media_type', sa.String(length=10), nullable=False),
        sa.Column('storage_provider', sa.String(length=32), nullable=False),
        sa.Column('storage_key', sa.Text(), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=True),
        sa.Column('size_bytes', sa.Integer(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='uploaded'),
        sa.Column('claim_token', sa.String(length=36), nullable=True),
        sa.Column('transcript_text', sa.Text(), nullable=True),
        sa.Column('transcript_confidence', sa.Float(), nullable=True),
        sa.Column('original_language', sa.String(length=16), nullable=True),
        sa.Column('language_confidence', sa.Float(), nullable=True),
        sa.Column('normalized_text', sa.Text(), nullable=True),
        sa.Column('normalized_language', sa.String(length=16), nullable=True),
        sa.Column('sentiment', sa.String(length=16), nullable=True),
        sa.Column('error_code', sa.String(length=64), nullable=True),
        sa.Column('error_detail', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('last_error_at', sa.DateTime(), nullable=True),
        sa.Column('moderation_status', sa.String(length=20), nullable=True),
        sa.Column('moderation_note', sa.Text(), nullable=True),
        sa.Column('moderated_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('retention_reason', sa.String(length=64), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_feedback_media_owner', 'feedback_media', ['owner_type', 'owner_id'])
    op.create_index('idx_feedback_media_queue', 'feedback_media', ['media_type', 'status', 'created_at'])
    # at most one live record per owner and media type
    op.create_index(
        'uq_feedback_media_live_owner_media', 'feedback_media', ['owner_id', 'media_type'],
        unique=True,
        postgresql_where=sa.text("status != 'deleted'"),
        sqlite_where=sa.text("status != 'deleted'"),
    )


def downgrade() -> None:
    op.drop_index('uq_feedback_media_live_owner_media', table_name='feedback_media')
    op.drop_index('idx_feedback_media_queue', table_name='feedback_media')
    op.drop_index('idx_feedback_media_owner', table_name='feedback_media')
    op.drop_table('feedback_media')
    op.drop_table('feedback')
    op.drop_table('survey_responses')
    op.drop_table('users')
