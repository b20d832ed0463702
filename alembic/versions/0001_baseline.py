"""Baseline migration - users, appointments, notifications

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates the account, booking ledger, and reminder notification tables.
The partial unique index on appointments allows one active booking per
(provider, date, slot).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_SLOT_PREDICATE = "status IN ('pending', 'confirmed')"


def upgrade() -> None:
    """Create users, appointments, and notifications."""

    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='client'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('specialization', sa.String(100), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column(
            'created_at', sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "role IN ('client', 'provider', 'admin')", name='ck_users_valid_role'
        ),
    )
    op.create_index('idx_users_role', 'users', ['role'])

    # ==========================================================================
    # Appointments
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'client_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('slot_time', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('contact_name', sa.String(255), nullable=False),
        sa.Column('contact_phone', sa.String(50), nullable=False),
        sa.Column('patient_name', sa.String(255), nullable=False),
        sa.Column('patient_type', sa.String(100), nullable=False),
        sa.Column('patient_age', sa.String(50), nullable=True),
        sa.Column('service', sa.String(255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column(
            'created_at', sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            'updated_at', sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name='ck_appointments_valid_status',
        ),
    )
    op.create_index(
        'uq_appointments_active_slot',
        'appointments',
        ['provider_id', 'appointment_date', 'slot_time'],
        unique=True,
        postgresql_where=sa.text(ACTIVE_SLOT_PREDICATE),
        sqlite_where=sa.text(ACTIVE_SLOT_PREDICATE),
    )
    op.create_index('idx_appointments_client', 'appointments', ['client_id', 'created_at'])
    op.create_index(
        'idx_appointments_provider_date', 'appointments', ['provider_id', 'appointment_date']
    )
    op.create_index(
        'idx_appointments_status_date', 'appointments', ['status', 'appointment_date']
    )

    # ==========================================================================
    # Notifications
    # ==========================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'booking_id', sa.Uuid(),
            sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'type', sa.String(50), nullable=False,
            server_default='appointment_reminder',
        ),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('fired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('dedupe_key', sa.String(255), nullable=False, unique=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'created_at', sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        'idx_notif_user_unread', 'notifications', ['user_id', 'read_at', 'created_at']
    )
    op.create_index('idx_notif_booking', 'notifications', ['booking_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('notifications')
    op.drop_index('uq_appointments_active_slot', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('users')
