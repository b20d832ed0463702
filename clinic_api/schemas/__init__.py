"""Pydantic schemas for API request/response models."""

from clinic_api.schemas.auth import TokenPayload, UserSession
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

__all__ = [
    # Auth
    "TokenPayload",
    "UserSession",
    # Appointments
    "AvailableSlotsResponse",
    "AppointmentCreate",
    "AppointmentCreated",
    "AppointmentRead",
    "AppointmentStatusUpdate",
    "ProviderSummary",
    "ProviderAppointmentsResponse",
    # Notifications
    "NotificationRead",
    "NotificationListResponse",
]
