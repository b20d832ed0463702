"""Appointments router - booking, lifecycle, and reminder notifications.

Public:
- Available slots for a provider and date

Authenticated:
- Clients book, cancel, and list their appointments and notifications
- Providers list their appointments and move them through their lifecycle
"""

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from clinic_api.core.deps import (
    get_current_session,
    get_db,
    get_reminder_scheduler,
    require_csrf_header,
    require_roles,
)
from clinic_api.core.errors import BookingError
from clinic_api.core.rate_limit import booking_limit, limiter
from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.enums import AppointmentStatus, Role
from clinic_api.schemas.appointment import (
    AppointmentCreate,
    AppointmentCreated,
    AppointmentRead,
    AppointmentStatusUpdate,
    AvailableSlotsResponse,
    NotificationListResponse,
    NotificationRead,
    ProviderAppointmentsResponse,
    ProviderSummary,
)
from clinic_api.schemas.auth import UserSession
from clinic_api.services import appointment_service, notification_service, slot_service
from clinic_api.services.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def _http_error(e: BookingError, request: Request, user_id: UUID | None = None) -> HTTPException:
    """Map a service failure to its HTTP status, logging the rejected request."""
    level = logging.ERROR if e.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "Request rejected: %s",
        e,
        extra=build_log_context(
            user_id=user_id,
            route=request.url.path,
            method=request.method,
        ),
    )
    return HTTPException(status_code=e.status_code, detail=str(e))


def _appointment_to_read(appt) -> AppointmentRead:
    """Convert Appointment model to read schema."""
    provider = None
    if appt.provider:
        provider = ProviderSummary(
            id=appt.provider.id,
            display_name=appt.provider.display_name,
            specialization=appt.provider.specialization,
            bio=appt.provider.bio,
        )
    return AppointmentRead(
        id=appt.id,
        client_id=appt.client_id,
        provider_id=appt.provider_id,
        provider=provider,
        date=appt.appointment_date,
        time=appt.slot_time,
        status=AppointmentStatus(appt.status),
        contact_name=appt.contact_name,
        contact_phone=appt.contact_phone,
        patient_name=appt.patient_name,
        patient_type=appt.patient_type,
        patient_age=appt.patient_age,
        service=appt.service,
        notes=appt.notes,
        created_at=appt.created_at,
    )


def _notification_to_read(notification) -> NotificationRead:
    return NotificationRead(
        id=notification.id,
        booking_id=notification.booking_id,
        type=notification.type,
        message=notification.message,
        fired_at=notification.fired_at,
        read_at=notification.read_at,
    )


# =============================================================================
# Slots
# =============================================================================

@router.get("/available-slots", response_model=AvailableSlotsResponse)
def get_available_slots(
    request: Request,
    provider_id: UUID = Query(..., alias="providerId"),
    slot_date: date = Query(..., alias="date", description="Date (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
):
    """List the slots still bookable with a provider on a date."""
    try:
        slots = slot_service.get_available_slots(db, provider_id, slot_date)
    except BookingError as e:
        raise _http_error(e, request)
    return AvailableSlotsResponse(provider_id=provider_id, date=slot_date, slots=slots)


# =============================================================================
# Client endpoints
# =============================================================================

@router.post(
    "/",
    response_model=AppointmentCreated,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(booking_limit)
def create_booking(
    data: AppointmentCreate,
    request: Request,
    session: UserSession = Depends(require_roles([Role.CLIENT])),
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """
    Book a slot with a provider.

    Creates a pending appointment and arms its reminder.
    """
    details = appointment_service.BookingDetails(
        contact_name=data.contact_name,
        contact_phone=data.contact_phone,
        patient_name=data.patient_name,
        patient_type=data.patient_type,
        patient_age=data.patient_age,
        service=data.service,
        notes=data.notes,
    )
    try:
        appointment = appointment_service.create_booking(
            db,
            reminders,
            client_id=session.user_id,
            provider_id=data.provider_id,
            appointment_date=data.date,
            slot_time=data.time,
            details=details,
        )
    except BookingError as e:
        raise _http_error(e, request, session.user_id)

    return AppointmentCreated(
        message="Booking created successfully",
        booking_id=appointment.id,
        reminder_at=reminders.fire_time(appointment.id),
    )


@router.get("/history", response_model=list[AppointmentRead])
def get_history(
    session: UserSession = Depends(require_roles([Role.CLIENT])),
    db: Session = Depends(get_db),
):
    """Appointment history for the current client, newest first."""
    appointments = appointment_service.list_client_appointments(db, session.user_id)
    return [_appointment_to_read(a) for a in appointments]


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(require_roles([Role.CLIENT])),
    db: Session = Depends(get_db),
):
    """Reminder notifications for the current client."""
    notifications = notification_service.list_notifications(
        db,
        user_id=session.user_id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        items=[_notification_to_read(n) for n in notifications],
        unread_count=notification_service.get_unread_count(db, session.user_id),
    )


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationRead,
    dependencies=[Depends(require_csrf_header)],
)
def mark_notification_read(
    notification_id: UUID,
    request: Request,
    session: UserSession = Depends(require_roles([Role.CLIENT])),
    db: Session = Depends(get_db),
):
    """Mark one of the current client's notifications as read."""
    try:
        notification = notification_service.mark_read(db, notification_id, session.user_id)
    except BookingError as e:
        raise _http_error(e, request, session.user_id)
    return _notification_to_read(notification)


@router.delete(
    "/{appointment_id}",
    dependencies=[Depends(require_csrf_header)],
)
def cancel_appointment(
    appointment_id: UUID,
    request: Request,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Cancel an appointment (booking client or admin)."""
    try:
        appointment_service.cancel_booking(
            db, reminders, appointment_id=appointment_id, actor=session
        )
    except BookingError as e:
        raise _http_error(e, request, session.user_id)
    return {"message": "Appointment canceled successfully"}


# =============================================================================
# Provider endpoints
# =============================================================================

@router.get("/provider", response_model=ProviderAppointmentsResponse)
def get_provider_appointments(
    status: AppointmentStatus | None = Query(None),
    session: UserSession = Depends(require_roles([Role.PROVIDER])),
    db: Session = Depends(get_db),
):
    """Appointments booked with the current provider, plus counts by status."""
    appointments = appointment_service.list_provider_appointments(
        db, session.user_id, status=status
    )
    return ProviderAppointmentsResponse(
        items=[_appointment_to_read(a) for a in appointments],
        total=len(appointments),
        counts=appointment_service.count_by_status(db, session.user_id),
    )


@router.put(
    "/{appointment_id}/status",
    response_model=AppointmentRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    request: Request,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Change an appointment's status (owning provider or admin)."""
    try:
        appointment = appointment_service.transition_status(
            db,
            reminders,
            appointment_id=appointment_id,
            actor=session,
            new_status=data.status,
        )
    except BookingError as e:
        raise _http_error(e, request, session.user_id)
    return _appointment_to_read(appointment)


# =============================================================================
# Detail
# =============================================================================

@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment(
    appointment_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Get one appointment (its client, its provider, or an admin)."""
    appointment = appointment_service.get_appointment(db, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")

    if session.role != Role.ADMIN and session.user_id not in (
        appointment.client_id,
        appointment.provider_id,
    ):
        raise HTTPException(status_code=403, detail="Not authorized")

    return _appointment_to_read(appointment)
