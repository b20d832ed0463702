"""Slot calendar - the fixed daily slot grid and per-provider availability.

Slots are labels from a provider-independent daily grid, interpreted in the
clinic's timezone. A slot is unavailable when an active (pending or
confirmed) appointment holds it, or when it has already started.
"""

from datetime import date, datetime, time, timezone
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.core.errors import NotFoundError, ValidationError
from clinic_api.db.enums import ACTIVE_APPOINTMENT_STATUSES, Role
from clinic_api.db.models import Appointment, User

SLOT_LABEL_FORMAT = "%I:%M %p"

# Morning 09:00-12:00 and afternoon 14:00-16:00, every 30 minutes
DAILY_SLOTS: tuple[str, ...] = (
    "09:00 AM",
    "09:30 AM",
    "10:00 AM",
    "10:30 AM",
    "11:00 AM",
    "11:30 AM",
    "12:00 PM",
    "02:00 PM",
    "02:30 PM",
    "03:00 PM",
    "03:30 PM",
    "04:00 PM",
)


def _get_timezone(name: str | None) -> ZoneInfo:
    """Get a ZoneInfo timezone with safe fallback."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except Exception:
        return ZoneInfo("UTC")


def clinic_timezone() -> ZoneInfo:
    return _get_timezone(settings.CLINIC_TIMEZONE)


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def clinic_today(now: datetime | None = None) -> date:
    """Current calendar date in the clinic's timezone."""
    return _now(now).astimezone(clinic_timezone()).date()


def parse_slot_label(label: str) -> time:
    """Return the start time of a grid slot; reject labels not in the grid."""
    if label not in DAILY_SLOTS:
        raise ValidationError(f"Invalid time slot: {label!r}")
    return datetime.strptime(label, SLOT_LABEL_FORMAT).time()


def slot_datetime(slot_date: date, label: str) -> datetime:
    """Timezone-aware start of a slot on a given date."""
    return datetime.combine(slot_date, parse_slot_label(label), tzinfo=clinic_timezone())


def get_provider(db: Session, provider_id: UUID) -> User | None:
    """Get an active provider account by ID."""
    return db.query(User).filter(
        User.id == provider_id,
        User.role == Role.PROVIDER.value,
        User.is_active == True,
    ).first()


def get_occupied_slots(db: Session, provider_id: UUID, slot_date: date) -> set[str]:
    """Labels held by active appointments for a provider on a date."""
    rows = db.query(Appointment.slot_time).filter(
        Appointment.provider_id == provider_id,
        Appointment.appointment_date == slot_date,
        Appointment.status.in_([s.value for s in ACTIVE_APPOINTMENT_STATUSES]),
    ).all()
    return {row.slot_time for row in rows}


def get_available_slots(
    db: Session,
    provider_id: UUID,
    slot_date: date,
    now: datetime | None = None,
) -> list[str]:
    """
    List the slots still bookable with a provider on a date.

    Checks:
    - Provider exists
    - Active appointments occupying a slot
    - Slots that already started (today only)
    """
    if not get_provider(db, provider_id):
        raise NotFoundError("Provider not found")

    current = _now(now)
    today = clinic_today(current)
    if slot_date < today:
        return []

    occupied = get_occupied_slots(db, provider_id, slot_date)
    slots = []
    for label in DAILY_SLOTS:
        if label in occupied:
            continue
        if slot_date == today and slot_datetime(slot_date, label) <= current:
            continue
        slots.append(label)
    return slots
