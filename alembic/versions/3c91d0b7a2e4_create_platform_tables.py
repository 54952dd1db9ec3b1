#
# Alembic migration script
#
"""
Revision ID: 3c91d0b7a2e4
Revises:
Create Date: 2024-05-02 10:14:37.518204

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c91d0b7a2e4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ### Create tables ###
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(), nullable=False, unique=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('password', sa.String(), nullable=False),
        sa.Column('display_name', sa.String()),
        sa.Column('profile_image', sa.String()),
        sa.Column('bio', sa.Text()),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_banned', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('subscriber_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'channels',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('banner_image', sa.String()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_channels_user_id', 'channels', ['user_id'], unique=False)

    op.create_table(
        'videos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('thumbnail_path', sa.String()),
        sa.Column('duration', sa.Integer()),
        sa.Column('views', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('likes', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('dislikes', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('categories', sa.JSON(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('is_quickie', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_published', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('has_ads', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('ad_url', sa.String()),
        sa.Column('ad_start_time', sa.Integer()),
        sa.Column('ad_skippable', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_videos_user_id', 'videos', ['user_id'], unique=False)
    op.create_index('ix_videos_created_at', 'videos', ['created_at'], unique=False)

    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('videos.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('likes', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_comments_video_id', 'comments', ['video_id'], unique=False)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subscriber_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('channel_id', sa.Integer(), sa.ForeignKey('channels.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_subscriptions_subscriber_id', 'subscriptions', ['subscriber_id'], unique=False)
    op.create_index('ix_subscriptions_channel_id', 'subscriptions', ['channel_id'], unique=False)

    op.create_table(
        'liked_videos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('videos.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_liked_videos_user_id', 'liked_videos', ['user_id'], unique=False)
    op.create_index('ix_liked_videos_video_id', 'liked_videos', ['video_id'], unique=False)

    op.create_table(
        'video_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('videos.id'), nullable=False),
        sa.Column('watch_duration', sa.Integer(), nullable=True),
        sa.Column('watched_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_video_history_user_id', 'video_history', ['user_id'], unique=False)
    op.create_index('ix_video_history_video_id', 'video_history', ['video_id'], unique=False)

    op.create_table(
        'site_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('site_name', sa.String(), server_default='XPlayHD', nullable=False),
        sa.Column('site_description', sa.Text()),
        sa.Column('logo', sa.String()),
        sa.Column('theme', sa.String(), server_default='dark', nullable=False),
        sa.Column('ads_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('global_ad_url', sa.String()),
        sa.Column('site_ad_urls', sa.JSON(), nullable=False),
        sa.Column('site_ad_positions', sa.JSON(), nullable=False),
        sa.Column('intro_video_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('intro_video_url', sa.String()),
        sa.Column('intro_video_duration', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    # ### Drop tables in reverse order due to FKs ###
    op.drop_table('site_settings')
    op.drop_index('ix_video_history_video_id', table_name='video_history')
    op.drop_index('ix_video_history_user_id', table_name='video_history')
    op.drop_table('video_history')
    op.drop_index('ix_liked_videos_video_id', table_name='liked_videos')
    op.drop_index('ix_liked_videos_user_id', table_name='liked_videos')
    op.drop_table('liked_videos')
    op.drop_index('ix_subscriptions_channel_id', table_name='subscriptions')
    op.drop_index('ix_subscriptions_subscriber_id', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_index('ix_comments_video_id', table_name='comments')
    op.drop_table('comments')
    op.drop_index('ix_videos_created_at', table_name='videos')
    op.drop_index('ix_videos_user_id', table_name='videos')
    op.drop_table('videos')
    op.drop_index('ix_channels_user_id', table_name='channels')
    op.drop_table('channels')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
