"""initial scheduling schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'consultants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('schedule_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_consultants_id', 'consultants', ['id'])
    op.create_index('ix_consultants_email', 'consultants', ['email'], unique=True)

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('consultant_id', sa.Integer(), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('mood', sa.Integer(), nullable=True),
        sa.Column('reminder_sent_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('duration_minutes > 0', name='ck_appointment_duration_positive'),
        sa.CheckConstraint('mood IS NULL OR (mood >= 1 AND mood <= 10)', name='ck_appointment_mood_range'),
        sa.CheckConstraint(
            "user_id IS NOT NULL OR status IN ('blocked', 'cancelled')",
            name='ck_appointment_user_required',
        ),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index(
        'ix_appointment_consultant_status_start',
        'appointments',
        ['consultant_id', 'status', 'start_time'],
    )
    op.create_index('ix_appointment_user_start', 'appointments', ['user_id', 'start_time'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('consultant_id', sa.Integer(), sa.ForeignKey('consultants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('review_text', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='check_rating_range'),
        sa.UniqueConstraint('consultant_id', 'user_id', name='uq_review_consultant_user'),
        sa.UniqueConstraint('appointment_id', 'user_id', name='uq_review_appointment_user'),
    )
    op.create_index('ix_reviews_id', 'reviews', ['id'])

    op.create_table(
        'consultant_ratings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'consultant_id',
            sa.Integer(),
            sa.ForeignKey('consultants.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('average_rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_reviews', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_consultant_ratings_id', 'consultant_ratings', ['id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column(
            'appointment_id',
            sa.Integer(),
            sa.ForeignKey('appointments.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('body', sa.String(500), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_recipient_type', 'notifications', ['recipient_type'])
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])
    op.create_index('ix_notifications_appointment_id', 'notifications', ['appointment_id'])
    op.create_index('ix_notifications_event_type', 'notifications', ['event_type'])

    # Postgres refuses two active windows of one consultant that overlap, even
    # if two transactions slip past the application check at the same time.
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute("""
            ALTER TABLE appointments
            ADD CONSTRAINT ex_appointment_no_overlap
            EXCLUDE USING gist (
                consultant_id WITH =,
                tsrange(start_time, end_time, '[)') WITH &&
            )
            WHERE (status IN ('pending', 'confirmed', 'in_session', 'blocked'))
        """)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS ex_appointment_no_overlap")

    op.drop_table('notifications')
    op.drop_table('consultant_ratings')
    op.drop_table('reviews')
    op.drop_table('appointments')
    op.drop_table('consultants')
    op.drop_table('users')
