"""Recovery loader - re-arms reminders from persisted bookings on startup."""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.models import Appointment, User
from clinic_api.services import appointment_service, slot_service
from clinic_api.services.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


def pending_reminders(
    db: Session,
    reminders: ReminderScheduler,
    now: datetime | None = None,
) -> list[tuple[Appointment, datetime]]:
    """Active appointments from today on whose reminder is still ahead."""
    now = now or datetime.now(timezone.utc)
    appointments = appointment_service.list_active_appointments(
        db, slot_service.clinic_today(now)
    )
    due = []
    for appointment in appointments:
        try:
            fire_at = reminders.fire_at_for(appointment)
        except Exception:
            logger.exception("Skipping appointment %s with invalid slot", appointment.id)
            continue
        if fire_at > now:
            due.append((appointment, fire_at))
    return due


def recover_all(
    db: Session,
    reminders: ReminderScheduler,
    now: datetime | None = None,
) -> int:
    """
    Re-arm every reminder that should still be pending.

    Failures are per appointment: a broken row is logged and skipped.
    Returns the number of reminders armed.
    """
    try:
        due = pending_reminders(db, reminders, now)
    except SQLAlchemyError:
        logger.exception("Reminder recovery failed: could not load appointments")
        return 0

    armed = 0
    for appointment, _ in due:
        try:
            if db.get(User, appointment.provider_id) is None:
                logger.warning(
                    "Skipping reminder recovery for appointment %s: provider %s not found",
                    appointment.id,
                    appointment.provider_id,
                    extra=build_log_context(
                        appointment_id=appointment.id, provider_id=appointment.provider_id
                    ),
                )
                continue
            if reminders.arm(appointment):
                armed += 1
        except Exception:
            logger.exception(
                "Reminder recovery failed for appointment %s",
                appointment.id,
                extra=build_log_context(appointment_id=appointment.id),
            )

    logger.info("Reminder recovery complete: %d of %d armed", armed, len(due))
    return armed
