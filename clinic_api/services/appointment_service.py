"""Appointment service - the booking ledger.

Handles:
- Conflict-checked booking creation
- Status transitions (explicit transition table)
- Cancellation
- Client/provider listings

Every change that takes an appointment out of the active set disarms its
reminder; every new booking arms one.
"""

import logging
from datetime import date, datetime, timezone
from typing import NamedTuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.core.errors import (
    AuthorizationError,
    ConflictError,
    DependencyFailure,
    NotFoundError,
    ValidationError,
)
from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.enums import ACTIVE_APPOINTMENT_STATUSES, AppointmentStatus, Role
from clinic_api.db.models import Appointment
from clinic_api.schemas.auth import UserSession
from clinic_api.services import slot_service
from clinic_api.services.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_APPOINTMENT_STATUSES]


class BookingDetails(NamedTuple):
    """Client-supplied details stored with a booking."""
    contact_name: str
    contact_phone: str
    patient_name: str
    patient_type: str
    service: str
    patient_age: str | None = None
    notes: str | None = None


# =============================================================================
# Booking
# =============================================================================

def _find_active_booking(
    db: Session,
    provider_id: UUID,
    appointment_date: date,
    slot_time: str,
) -> Appointment | None:
    """Active appointment holding a slot, if any."""
    return db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.appointment_date == appointment_date,
        Appointment.slot_time == slot_time,
        Appointment.status.in_(ACTIVE_STATUS_VALUES),
    ).first()


def create_booking(
    db: Session,
    reminders: ReminderScheduler,
    *,
    client_id: UUID,
    provider_id: UUID,
    appointment_date: date,
    slot_time: str,
    details: BookingDetails,
    now: datetime | None = None,
) -> Appointment:
    """
    Create a new appointment booking (pending).

    Includes:
    - Slot grid and past-slot validation
    - Provider lookup
    - Conflict check, backed by the active-slot unique index
    - Reminder arming
    """
    now = now or datetime.now(timezone.utc)
    starts_at = slot_service.slot_datetime(appointment_date, slot_time)
    if starts_at <= now:
        raise ValidationError("Cannot book a time slot in the past")

    if not slot_service.get_provider(db, provider_id):
        raise NotFoundError("Provider not found")

    if _find_active_booking(db, provider_id, appointment_date, slot_time):
        raise ConflictError("Slot already booked")

    appointment = Appointment(
        client_id=client_id,
        provider_id=provider_id,
        appointment_date=appointment_date,
        slot_time=slot_time,
        status=AppointmentStatus.PENDING.value,
        contact_name=details.contact_name,
        contact_phone=details.contact_phone,
        patient_name=details.patient_name,
        patient_type=details.patient_type,
        patient_age=details.patient_age,
        service=details.service,
        notes=details.notes,
    )
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race between the check above and the insert
        db.rollback()
        logger.info(
            "Booking race lost for provider %s on %s at %s",
            provider_id,
            appointment_date,
            slot_time,
            extra=build_log_context(user_id=client_id, provider_id=provider_id),
        )
        raise ConflictError("Slot already booked")
    except SQLAlchemyError as e:
        db.rollback()
        raise DependencyFailure("Failed to save booking") from e
    db.refresh(appointment)

    logger.info(
        "Booking %s created",
        appointment.id,
        extra=build_log_context(
            appointment_id=appointment.id, user_id=client_id, provider_id=provider_id
        ),
    )
    reminders.arm(appointment)
    return appointment


# =============================================================================
# Status transitions
# =============================================================================

def _get_for_update(db: Session, appointment_id: UUID) -> Appointment:
    appointment = db.query(Appointment).filter(
        Appointment.id == appointment_id,
    ).with_for_update().first()
    if not appointment:
        raise NotFoundError("Appointment not found")
    return appointment


def _apply_status(
    db: Session,
    reminders: ReminderScheduler,
    appointment: Appointment,
    new_status: AppointmentStatus,
    actor: UserSession,
) -> Appointment:
    current = appointment.status_enum
    if not current.can_transition_to(new_status):
        db.rollback()
        raise ValidationError(
            f"Cannot change appointment status from {current.value} to {new_status.value}"
        )

    appointment.status = new_status.value
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DependencyFailure("Failed to update appointment") from e
    db.refresh(appointment)

    logger.info(
        "Appointment %s status %s -> %s",
        appointment.id,
        current.value,
        new_status.value,
        extra=build_log_context(appointment_id=appointment.id, user_id=actor.user_id),
    )

    if not new_status.is_active:
        reminders.disarm(appointment.id)
    return appointment


def transition_status(
    db: Session,
    reminders: ReminderScheduler,
    *,
    appointment_id: UUID,
    actor: UserSession,
    new_status: AppointmentStatus,
) -> Appointment:
    """
    Move an appointment to a new status.

    Only the owning provider or an admin may do this. Leaving the active
    set disarms the reminder.
    """
    appointment = _get_for_update(db, appointment_id)
    if actor.role != Role.ADMIN and not (
        actor.role == Role.PROVIDER and appointment.provider_id == actor.user_id
    ):
        db.rollback()
        raise AuthorizationError("Not authorized to update this appointment")

    return _apply_status(db, reminders, appointment, new_status, actor)


def cancel_booking(
    db: Session,
    reminders: ReminderScheduler,
    *,
    appointment_id: UUID,
    actor: UserSession,
) -> Appointment:
    """Cancel an appointment. Restricted to the booking client or an admin."""
    appointment = _get_for_update(db, appointment_id)
    if actor.role != Role.ADMIN and appointment.client_id != actor.user_id:
        db.rollback()
        raise AuthorizationError("Not authorized to cancel this appointment")

    return _apply_status(db, reminders, appointment, AppointmentStatus.CANCELLED, actor)


# =============================================================================
# Queries
# =============================================================================

def get_appointment(db: Session, appointment_id: UUID) -> Appointment | None:
    """Get appointment by ID."""
    return db.query(Appointment).filter(Appointment.id == appointment_id).first()


def list_client_appointments(db: Session, client_id: UUID) -> list[Appointment]:
    """Appointment history for a client, newest booking first."""
    return db.query(Appointment).filter(
        Appointment.client_id == client_id,
    ).order_by(Appointment.created_at.desc()).all()


def list_provider_appointments(
    db: Session,
    provider_id: UUID,
    status: AppointmentStatus | None = None,
) -> list[Appointment]:
    """Appointments booked with a provider, in calendar order."""
    query = db.query(Appointment).filter(Appointment.provider_id == provider_id)
    if status:
        query = query.filter(Appointment.status == status.value)
    appointments = query.order_by(Appointment.appointment_date).all()
    # Slot labels are 12-hour strings; sort within a day by grid position
    grid = {label: i for i, label in enumerate(slot_service.DAILY_SLOTS)}
    return sorted(
        appointments,
        key=lambda a: (a.appointment_date, grid.get(a.slot_time, len(grid))),
    )


def count_by_status(db: Session, provider_id: UUID) -> dict[str, int]:
    """Appointment counts per status for a provider (zero-filled)."""
    counts = {s.value: 0 for s in AppointmentStatus}
    rows = db.query(Appointment.status, func.count(Appointment.id)).filter(
        Appointment.provider_id == provider_id,
    ).group_by(Appointment.status).all()
    for status, count in rows:
        counts[status] = count
    return counts


def list_active_appointments(db: Session, from_date: date) -> list[Appointment]:
    """Pending/confirmed appointments on or after a date."""
    return db.query(Appointment).filter(
        Appointment.status.in_(ACTIVE_STATUS_VALUES),
        Appointment.appointment_date >= from_date,
    ).order_by(Appointment.appointment_date).all()
