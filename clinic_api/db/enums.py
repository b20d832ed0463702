"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - CLIENT: books and cancels own appointments
    - PROVIDER: manages the lifecycle of appointments booked with them
    - ADMIN: may act on any appointment
    """

    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → confirmed → completed
              ↘ cancelled
    """

    PENDING = "pending"  # Booked, awaiting provider confirmation
    CONFIRMED = "confirmed"  # Confirmed by provider
    COMPLETED = "completed"  # Visit took place
    CANCELLED = "cancelled"  # Cancelled by client, provider, or admin

    @property
    def is_active(self) -> bool:
        """Active appointments hold their slot and keep a reminder armed."""
        return self in ACTIVE_APPOINTMENT_STATUSES

    def can_transition_to(self, new_status: "AppointmentStatus") -> bool:
        return new_status in APPOINTMENT_TRANSITIONS[self]


ACTIVE_APPOINTMENT_STATUSES = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
})

# Completed and cancelled are terminal
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


class NotificationType(str, Enum):
    """Types of in-app notifications."""

    APPOINTMENT_REMINDER = "appointment_reminder"  # Reminder before appointment
