"""Appointment schemas - Pydantic models for appointments API."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from clinic_api.db.enums import AppointmentStatus


class AvailableSlotsResponse(BaseModel):
    """Bookable slot labels for a provider on a date."""
    provider_id: UUID
    date: date
    slots: list[str]


class AppointmentCreate(BaseModel):
    """Schema for a client booking request."""
    provider_id: UUID
    date: date
    time: str = Field(..., min_length=1, max_length=10, description="Slot label, e.g. '09:30 AM'")
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_phone: str = Field(..., min_length=1, max_length=50)
    patient_name: str = Field(..., min_length=1, max_length=255)
    patient_type: str = Field(..., min_length=1, max_length=100)
    patient_age: str | None = Field(None, max_length=50)
    service: str = Field(..., min_length=1, max_length=255)
    notes: str | None = None


class AppointmentCreated(BaseModel):
    """Response for a successful booking."""
    message: str
    booking_id: UUID
    reminder_at: datetime | None


class AppointmentStatusUpdate(BaseModel):
    """Schema for a provider status change."""
    status: AppointmentStatus


class ProviderSummary(BaseModel):
    id: UUID
    display_name: str
    specialization: str | None = None
    bio: str | None = None


class AppointmentRead(BaseModel):
    """Schema for reading an appointment."""
    id: UUID
    client_id: UUID
    provider_id: UUID
    provider: ProviderSummary | None = None
    date: date
    time: str
    status: AppointmentStatus
    contact_name: str
    contact_phone: str
    patient_name: str
    patient_type: str
    patient_age: str | None
    service: str
    notes: str | None
    created_at: datetime


class ProviderAppointmentsResponse(BaseModel):
    """Provider dashboard: appointments plus per-status counts."""
    items: list[AppointmentRead]
    total: int
    counts: dict[str, int]


class NotificationRead(BaseModel):
    """Notification response."""
    id: UUID
    booking_id: UUID
    type: str
    message: str
    fired_at: datetime
    read_at: datetime | None


class NotificationListResponse(BaseModel):
    """Notification list with unread count."""
    items: list[NotificationRead]
    unread_count: int
