"""Initial schema for podcasts, episodes and import records

Revision ID: a7c3e9d2f104
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a7c3e9d2f104'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create podcasts table
    op.create_table(
        'podcasts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('cover_image_url', sa.String(2048), nullable=True),
        sa.Column('website_url', sa.String(2048), nullable=True),
        sa.Column('language', sa.String(32), nullable=True),
        sa.Column('author_name', sa.String(512), nullable=True),
        sa.Column('author_email', sa.String(320), nullable=True),
        sa.Column('category', sa.String(256), nullable=True),
        sa.Column('is_explicit', sa.Boolean, nullable=True),
        sa.Column('status', sa.String(16), nullable=True),
        sa.Column('source_feed_url', sa.String(2048), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('slug', name='uq_podcasts_slug'),
        sa.UniqueConstraint('source_feed_url', name='uq_podcasts_source_feed_url'),
    )
    op.create_index('ix_podcasts_owner_id', 'podcasts', ['owner_id'])

    # Create episodes table
    op.create_table(
        'episodes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('podcast_id', sa.String(36), sa.ForeignKey('podcasts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('external_guid', sa.String(2048), nullable=True),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('link', sa.String(2048), nullable=True),
        sa.Column('publish_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Integer, nullable=True),
        sa.Column('episode_number', sa.Integer, nullable=True),
        sa.Column('season_number', sa.Integer, nullable=True),
        sa.Column('episode_type', sa.String(16), nullable=True),
        sa.Column('audio_url', sa.String(2048), nullable=True),
        sa.Column('enclosure_type', sa.String(64), nullable=True),
        sa.Column('file_size_bytes', sa.BigInteger, nullable=True),
        sa.Column('is_explicit', sa.Boolean, nullable=True),
        sa.Column('status', sa.String(16), nullable=True),
        sa.Column('source', sa.String(16), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('podcast_id', 'external_guid', name='uq_episode_podcast_guid'),
    )
    op.create_index('ix_episodes_podcast_id', 'episodes', ['podcast_id'])
    op.create_index('ix_episodes_publish_date', 'episodes', ['publish_date'])

    # Create import_records table
    op.create_table(
        'import_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('podcast_id', sa.String(36), sa.ForeignKey('podcasts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('feed_url', sa.String(2048), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_status', sa.String(16), nullable=True),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('episodes_imported', sa.Integer, nullable=True),
        sa.Column('auto_sync', sa.Boolean, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('podcast_id', name='uq_import_records_podcast_id'),
    )


def downgrade() -> None:
    op.drop_table('import_records')
    op.drop_table('episodes')
    op.drop_table('podcasts')
