"""Initial schema - users, content, SRS progress, weekly XP, event log

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table (provisioned by the identity provider)
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('username', sa.String(50), unique=True, nullable=True),
        sa.Column('username_hidden', sa.Boolean(), nullable=False, default=False),
        sa.Column('role', sa.String(50), nullable=False, default='learner'),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('subscription_status', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Lessons table (one row per level)
    op.create_table(
        'lessons',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('level', sa.Integer(), unique=True, nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'characters',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('lesson_id', sa.Uuid(), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('character', sa.String(8), unique=True, nullable=False),
        sa.Column('meanings', sa.JSON(), nullable=False),
        sa.Column('primary_meaning', sa.String(255), nullable=False),
        sa.Column('kun_readings', sa.JSON(), nullable=False),
        sa.Column('on_readings', sa.JSON(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, default=0),
    )

    op.create_table(
        'words',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('lesson_id', sa.Uuid(), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('word', sa.String(64), nullable=False),
        sa.Column('reading', sa.String(128), nullable=False),
        sa.Column('meanings', sa.JSON(), nullable=False),
        sa.Column('primary_meaning', sa.String(255), nullable=False),
        sa.Column('part_of_speech', sa.String(64), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, default=0),
    )

    # Per-item SRS state; no row means not started
    op.create_table(
        'item_progress',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('item_id', sa.Uuid(), nullable=False),
        sa.Column('item_kind', sa.String(20), nullable=False),
        sa.Column('stage', sa.Integer(), nullable=False),
        sa.Column('meaning_correct', sa.Integer(), nullable=False, default=0),
        sa.Column('meaning_incorrect', sa.Integer(), nullable=False, default=0),
        sa.Column('reading_correct', sa.Integer(), nullable=False, default=0),
        sa.Column('reading_incorrect', sa.Integer(), nullable=False, default=0),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_review_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('burned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('mastery_bonus_awarded', sa.Boolean(), nullable=False, default=False),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'item_id', 'item_kind', name='uq_item_progress_user_item'),
        sa.CheckConstraint('stage >= 1 AND stage <= 9', name='ck_item_progress_stage_range'),
        sa.CheckConstraint(
            '(stage = 9) = (next_review_at IS NULL)',
            name='ck_item_progress_next_review_iff_not_burned',
        ),
        sa.CheckConstraint(
            '(stage = 9) = (burned_at IS NOT NULL)',
            name='ck_item_progress_burned_at_iff_burned',
        ),
    )
    op.create_index('ix_item_progress_due', 'item_progress', ['user_id', 'stage', 'next_review_at'])

    # Weekly XP ledger, keyed by the Monday of the week
    op.create_table(
        'weekly_xp',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('week_start', sa.Date(), nullable=False, index=True),
        sa.Column('week_end', sa.Date(), nullable=False),
        sa.Column('xp', sa.Integer(), nullable=False, default=0),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_weekly_xp_user_week'),
        sa.CheckConstraint('xp >= 0', name='ck_weekly_xp_non_negative'),
    )

    # Event log table (append-only)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_user_time', 'event_logs', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_event_logs_user_time', table_name='event_logs')
    op.drop_index('ix_event_logs_entity', table_name='event_logs')
    op.drop_table('event_logs')
    op.drop_table('weekly_xp')
    op.drop_index('ix_item_progress_due', table_name='item_progress')
    op.drop_table('item_progress')
    op.drop_table('words')
    op.drop_table('characters')
    op.drop_table('lessons')
    op.drop_table('users')
