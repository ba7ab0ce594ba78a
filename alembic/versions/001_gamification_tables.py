"""add_gamification_tables

Revision ID: 001_gamification
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_gamification'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), default=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Category and rarity are plain strings, validated at the app layer
    op.create_table(
        'achievements',
        sa.Column('id', sa.String(length=100), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('icon_name', sa.String(length=50), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('rarity', sa.String(length=50), nullable=False),
        sa.Column('xp_reward', sa.Integer(), default=0, nullable=False),
        sa.Column('sparks_reward', sa.Integer(), default=0, nullable=False),
        sa.Column('metric_type', sa.String(length=100), nullable=False),
        sa.Column('threshold', sa.Float(), nullable=False),
        sa.Column('tier', sa.Integer(), default=1, nullable=False),
        sa.Column('is_hidden', sa.Boolean(), default=False, nullable=False),
        sa.Column('parent_id', sa.String(length=100), nullable=True),
    )
    op.create_index('ix_achievement_category', 'achievements', ['category'])
    op.create_index('ix_achievement_metric', 'achievements', ['metric_type'])

    op.create_table(
        'user_gamification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('xp_total', sa.Integer(), default=0, nullable=False),
        sa.Column('current_level', sa.Integer(), default=1, nullable=False),
        sa.Column('sparks', sa.Integer(), default=0, nullable=False),
        sa.Column('current_streak', sa.Integer(), default=0, nullable=False),
        sa.Column('longest_streak', sa.Integer(), default=0, nullable=False),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('freezes_available', sa.Integer(), default=1, nullable=False),
        sa.Column('freezes_used_total', sa.Integer(), default=0, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('sparks >= 0', name='ck_user_gamification_sparks_non_negative'),
    )
    op.create_index('ix_user_gamification_user_id', 'user_gamification', ['user_id'], unique=True)

    op.create_table(
        'xp_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), default=0, nullable=False),
        sa.Column('bonus_amount', sa.Integer(), default=0, nullable=False),
        sa.Column('sparks_amount', sa.Integer(), default=0, nullable=False),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('content_id', sa.String(length=100), nullable=False),
        sa.Column('course_id', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_xp_transactions_user_id', 'xp_transactions', ['user_id'])
    op.create_index('ix_xp_transactions_created_at', 'xp_transactions', ['created_at'])
    op.create_index(
        'ix_xp_transaction_unique', 'xp_transactions', ['user_id', 'content_id', 'reason'], unique=True
    )
    op.create_index('ix_xp_transaction_course', 'xp_transactions', ['user_id', 'course_id'])

    op.create_table(
        'user_achievements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('achievement_id', sa.String(length=100), sa.ForeignKey('achievements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('is_seen', sa.Boolean(), default=False, nullable=False),
    )
    op.create_index('ix_user_achievements_user_id', 'user_achievements', ['user_id'])
    op.create_index('ix_user_achievements_achievement_id', 'user_achievements', ['achievement_id'])
    op.create_index(
        'ix_user_achievement_unique', 'user_achievements', ['user_id', 'achievement_id'], unique=True
    )

    op.create_table(
        'completed_content',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content_id', sa.String(length=100), nullable=False),
        sa.Column('content_type', sa.String(length=50), nullable=False),
        sa.Column('course_id', sa.String(length=100), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_completed_content_user_id', 'completed_content', ['user_id'])
    op.create_index(
        'ix_completed_content_unique', 'completed_content', ['user_id', 'content_id'], unique=True
    )
    op.create_index('ix_completed_content_course', 'completed_content', ['user_id', 'course_id'])


def downgrade() -> None:
    # Drop tables in reverse order of creation
    op.drop_index('ix_completed_content_course', 'completed_content')
    op.drop_index('ix_completed_content_unique', 'completed_content')
    op.drop_index('ix_completed_content_user_id', 'completed_content')
    op.drop_table('completed_content')

    op.drop_index('ix_user_achievement_unique', 'user_achievements')
    op.drop_index('ix_user_achievements_achievement_id', 'user_achievements')
    op.drop_index('ix_user_achievements_user_id', 'user_achievements')
    op.drop_table('user_achievements')

    op.drop_index('ix_xp_transaction_course', 'xp_transactions')
    op.drop_index('ix_xp_transaction_unique', 'xp_transactions')
    op.drop_index('ix_xp_transactions_created_at', 'xp_transactions')
    op.drop_index('ix_xp_transactions_user_id', 'xp_transactions')
    op.drop_table('xp_transactions')

    op.drop_index('ix_user_gamification_user_id', 'user_gamification')
    op.drop_table('user_gamification')

    op.drop_index('ix_achievement_metric', 'achievements')
    op.drop_index('ix_achievement_category', 'achievements')
    op.drop_table('achievements')

    op.drop_index('ix_users_email', 'users')
    op.drop_table('users')
