"""
Create class catalog, booking, waitlist and recurring booking tables

Revision ID: a7c3e9b1d2f4
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'a7c3e9b1d2f4'
down_revision = None
branch_labels = None
depends_on = None

# Los enums de SQLAlchemy guardan el nombre del miembro
booking_status = postgresql.ENUM('CONFIRMED', 'CANCELLED', 'COMPLETED', name='bookingstatus', create_type=False)
booking_type = postgresql.ENUM('SINGLE', 'RECURRING', name='bookingtype', create_type=False)
waitlist_status = postgresql.ENUM('WAITING', 'OFFERED', 'EXPIRED', 'CONVERTED', name='waitliststatus', create_type=False)
recurrence_type = postgresql.ENUM('WEEKLY', 'MONTHLY', name='recurrencetype', create_type=False)
recurring_status = postgresql.ENUM('ACTIVE', 'CANCELLED', 'COMPLETED', name='recurringbookingstatus', create_type=False)

ENUMS = (booking_status, booking_type, waitlist_status, recurrence_type, recurring_status)


def _audit_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'class',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint('capacity > 0', name='ck_class_check_positive_capacity'),
        sa.PrimaryKeyConstraint('id', name='pk_class'),
    )
    op.create_index('ix_class_id', 'class', ['id'])

    op.create_table(
        'class_schedule',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='ck_class_schedule_check_valid_day_of_week'),
        sa.CheckConstraint('end_time > start_time', name='ck_class_schedule_check_end_after_start'),
        sa.ForeignKeyConstraint(['class_id'], ['class.id'], name='fk_class_schedule_class_id_class', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_class_schedule'),
    )
    op.create_index('ix_class_schedule_id', 'class_schedule', ['id'])
    op.create_index('ix_class_schedule_class_id', 'class_schedule', ['class_id'])

    op.create_table(
        'booking_slot',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['class_id'], ['class.id'], name='fk_booking_slot_class_id_class'),
        sa.PrimaryKeyConstraint('id', name='pk_booking_slot'),
        sa.UniqueConstraint('class_id', 'booking_date', 'start_time', name='uq_booking_slot_session'),
    )
    op.create_index('ix_booking_slot_id', 'booking_slot', ['id'])

    op.create_table(
        'recurring_booking',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('class_name', sa.String(), nullable=False),
        sa.Column('recurrence_type', recurrence_type, nullable=False),
        sa.Column('recurrence_day', sa.String(length=9), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('status', recurring_status, nullable=False),
        sa.Column('total_sessions', sa.Integer(), nullable=False),
        sa.Column('completed_sessions', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint('end_date >= start_date', name='ck_recurring_booking_check_recurring_range'),
        sa.ForeignKeyConstraint(['class_id'], ['class.id'], name='fk_recurring_booking_class_id_class'),
        sa.PrimaryKeyConstraint('id', name='pk_recurring_booking'),
    )
    op.create_index('ix_recurring_booking_id', 'recurring_booking', ['id'])
    op.create_index('ix_recurring_booking_member_id', 'recurring_booking', ['member_id'])

    op.create_table(
        'waitlist_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('class_name', sa.String(), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('status', waitlist_status, nullable=False),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recurring_booking_id', sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint('position IS NULL OR position >= 1', name='ck_waitlist_entry_check_position_positive'),
        sa.ForeignKeyConstraint(['class_id'], ['class.id'], name='fk_waitlist_entry_class_id_class'),
        sa.ForeignKeyConstraint(
            ['recurring_booking_id'], ['recurring_booking.id'],
            name='fk_waitlist_entry_recurring_booking_id_recurring_booking'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_waitlist_entry'),
        sa.UniqueConstraint('member_id', 'class_id', 'booking_date', 'start_time', name='uq_waitlist_member_session'),
    )
    op.create_index('ix_waitlist_entry_id', 'waitlist_entry', ['id'])
    op.create_index('ix_waitlist_entry_member_id', 'waitlist_entry', ['member_id'])
    op.create_index('ix_waitlist_session_status', 'waitlist_entry', ['class_id', 'booking_date', 'start_time', 'status'])
    op.create_index('ix_waitlist_status_expires', 'waitlist_entry', ['status', 'expires_at'])

    op.create_table(
        'booking',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('class_name', sa.String(), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('booking_type', booking_type, nullable=False),
        sa.Column('recurring_booking_id', sa.Integer(), nullable=True),
        sa.Column('waitlist_entry_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancellation_reason', sa.String(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['class_id'], ['class.id'], name='fk_booking_class_id_class'),
        sa.ForeignKeyConstraint(
            ['recurring_booking_id'], ['recurring_booking.id'],
            name='fk_booking_recurring_booking_id_recurring_booking'
        ),
        sa.ForeignKeyConstraint(
            ['waitlist_entry_id'], ['waitlist_entry.id'],
            name='fk_booking_waitlist_entry_id_waitlist_entry'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_booking'),
    )
    op.create_index('ix_booking_id', 'booking', ['id'])
    op.create_index('ix_booking_member_id', 'booking', ['member_id'])
    op.create_index('ix_booking_recurring_booking_id', 'booking', ['recurring_booking_id'])
    op.create_index('ix_booking_session_status', 'booking', ['class_id', 'booking_date', 'start_time', 'status'])


def downgrade():
    op.drop_table('booking')
    op.drop_table('waitlist_entry')
    op.drop_table('recurring_booking')
    op.drop_table('booking_slot')
    op.drop_table('class_schedule')
    op.drop_table('class')

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
