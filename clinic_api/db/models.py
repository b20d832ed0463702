"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_api.db.base import Base
from clinic_api.db.enums import AppointmentStatus, NotificationType, Role

ACTIVE_SLOT_PREDICATE = "status IN ('pending', 'confirmed')"


class User(Base):
    """
    An account: client, provider, or administrator.

    Providers are the clinicians appointments are booked with.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('client', 'provider', 'admin')", name="ck_users_valid_role"
        ),
        Index("idx_users_role", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=Role.CLIENT.value, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Session revocation
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Provider profile
    specialization: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class Appointment(Base):
    """
    A booked slot with a provider.

    At most one pending/confirmed appointment may hold a given
    (provider_id, appointment_date, slot_time). The partial unique index
    enforces this in storage so a lost race surfaces as an IntegrityError.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "provider_id",
            "appointment_date",
            "slot_time",
            unique=True,
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
            sqlite_where=text(ACTIVE_SLOT_PREDICATE),
        ),
        Index("idx_appointments_client", "client_id", "created_at"),
        Index("idx_appointments_provider_date", "provider_id", "appointment_date"),
        Index("idx_appointments_status_date", "status", "appointment_date"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="ck_appointments_valid_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # No FK cascade: a deleted provider leaves the booking behind and the
    # reminder for it is dropped when it fires.
    provider_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Slot (clinic-local date + label from the daily grid)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_time: Mapped[str] = mapped_column(String(10), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.PENDING.value, nullable=False
    )

    # Booking details
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    patient_type: Mapped[str] = mapped_column(String(100), nullable=False)
    patient_age: Mapped[str | None] = mapped_column(String(50), nullable=True)
    service: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    client: Mapped[User] = relationship(foreign_keys=[client_id])
    provider: Mapped[User | None] = relationship(
        primaryjoin="Appointment.provider_id == User.id",
        foreign_keys=[provider_id],
        viewonly=True,
    )

    @property
    def status_enum(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)


class Notification(Base):
    """
    In-app notification for a user, created when a reminder fires.

    dedupe_key is unique so the same reminder can never be recorded twice.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_user_unread", "user_id", "read_at", "created_at"),
        Index("idx_notif_booking", "booking_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )

    type: Mapped[str] = mapped_column(
        String(50), default=NotificationType.APPOINTMENT_REMINDER.value, nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    fired_at: Mapped[datetime] = mapped_column(nullable=False)

    # {type}:{booking_id}:{lead_minutes}
    dedupe_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    # Relationships
    user: Mapped[User] = relationship()
    booking: Mapped[Appointment] = relationship()
