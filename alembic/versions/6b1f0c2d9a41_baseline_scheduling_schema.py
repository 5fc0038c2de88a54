"""Baseline scheduling schema

Creates appointments, notification_tasks and feedback, including the
double-booking guards on appointments:
- partial unique index on (practitioner_id, start_time) for non-cancelled rows
- PostgreSQL exclusion constraint rejecting overlapping non-cancelled rows

Revision ID: 6b1f0c2d9a41
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '6b1f0c2d9a41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    is_postgresql = bind.dialect.name == "postgresql"

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.String(255), nullable=False),
        sa.Column('practitioner_id', sa.String(255), nullable=False),
        sa.Column('therapy', sa.String(100), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.Column('patient_notes', sa.Text(), nullable=True),
        sa.Column('practitioner_notes', sa.Text(), nullable=True),
        sa.Column('follow_up_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('follow_up_date', sa.Date(), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('duration_minutes > 0', name='check_appointment_duration_positive'),
        sa.CheckConstraint('end_time > start_time', name='check_appointment_time_range'),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show')",
            name='check_appointment_status',
        ),
    )
    op.create_index('idx_appointments_patient_start', 'appointments', ['patient_id', 'start_time'])
    op.create_index('idx_appointments_practitioner_start', 'appointments', ['practitioner_id', 'start_time'])
    op.execute("""
        CREATE UNIQUE INDEX uq_appointments_practitioner_start_active
        ON appointments (practitioner_id, start_time)
        WHERE status <> 'cancelled'
    """)

    if is_postgresql:
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute("""
            ALTER TABLE appointments ADD CONSTRAINT excl_appointments_practitioner_overlap
            EXCLUDE USING gist (
                practitioner_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
            )
            WHERE (status <> 'cancelled')
        """)

    op.create_table(
        'notification_tasks',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=True),
        sa.Column('therapy', sa.String(100), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('send_email', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('send_sms', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('send_in_app', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sent_email', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sent_sms', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sent_in_app', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('pending', 'skipped')", name='check_notification_status'),
    )
    op.create_index('idx_notification_tasks_user_created', 'notification_tasks', ['user_id', 'created_at'])
    op.create_index('idx_notification_tasks_appointment', 'notification_tasks', ['appointment_id'])
    op.create_index('idx_notification_tasks_status_scheduled', 'notification_tasks', ['status', 'scheduled_for'])

    op.create_table(
        'feedback',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=False, unique=True),
        sa.Column('patient_id', sa.String(255), nullable=False),
        sa.Column('practitioner_id', sa.String(255), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('symptoms', sa.JSON(), nullable=False),
        sa.Column('improvements', sa.JSON(), nullable=False),
        sa.Column('side_effects', sa.JSON(), nullable=False),
        sa.Column('overall_feeling', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('follow_up_needed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='check_feedback_rating_range'),
    )
    op.create_index('idx_feedback_patient', 'feedback', ['patient_id'])
    op.create_index('idx_feedback_practitioner', 'feedback', ['practitioner_id'])


def downgrade() -> None:
    op.drop_index('idx_feedback_practitioner', table_name='feedback')
    op.drop_index('idx_feedback_patient', table_name='feedback')
    op.drop_table('feedback')

    op.drop_index('idx_notification_tasks_status_scheduled', table_name='notification_tasks')
    op.drop_index('idx_notification_tasks_appointment', table_name='notification_tasks')
    op.drop_index('idx_notification_tasks_user_created', table_name='notification_tasks')
    op.drop_table('notification_tasks')

    # Dropping the table also drops the exclusion constraint and indexes
    op.execute("DROP INDEX IF EXISTS uq_appointments_practitioner_start_active")
    op.drop_index('idx_appointments_practitioner_start', table_name='appointments')
    op.drop_index('idx_appointments_patient_start', table_name='appointments')
    op.drop_table('appointments')
