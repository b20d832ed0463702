"""Reminder Scheduler for appointments.

APScheduler-based in-process scheduler that keeps exactly one one-shot
timer per active appointment. A timer fires ``REMINDER_LEAD_MINUTES``
before the slot starts and records an in-app notification for the client.

Timers live only in memory; recovery_service rebuilds them on startup.
"""

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable, NamedTuple
from uuid import UUID, uuid4

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.models import Appointment, Notification, User
from clinic_api.services import notification_service
from clinic_api.services.slot_service import slot_datetime

logger = logging.getLogger(__name__)


class ReminderTimer(NamedTuple):
    """A live timer: the scheduler job id and when it fires."""
    job_id: str
    fire_at: datetime


def render_reminder_message(provider_name: str, appointment_date: date, slot_time: str) -> str:
    return (
        f"Reminder: your appointment with {provider_name} "
        f"is on {appointment_date.isoformat()} at {slot_time}."
    )


class ReminderScheduler:
    """Owns the appointment id -> timer table.

    arm() and disarm() are the only operations that change it. Fires run on
    a single worker thread, so at most one reminder is delivered at a time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        lead_time: timedelta | None = None,
        misfire_grace_seconds: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize scheduler.

        Args:
            session_factory: Creates a fresh DB session for each fire.
            lead_time: How long before the slot the reminder fires.
            misfire_grace_seconds: How late a fire may still run.
            clock: Returns the current aware datetime.
        """
        if lead_time is None:
            lead_time = timedelta(minutes=settings.REMINDER_LEAD_MINUTES)
        if misfire_grace_seconds is None:
            misfire_grace_seconds = settings.REMINDER_MISFIRE_GRACE_SECONDS

        self.lead_time = lead_time
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._timers: dict[UUID, ReminderTimer] = {}
        self._lock = threading.Lock()
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": misfire_grace_seconds,
            },
            timezone=timezone.utc,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self, paused: bool = False) -> None:
        """Start the scheduler."""
        if self._scheduler.running:
            logger.warning("ReminderScheduler already running")
            return
        self._scheduler.start(paused=paused)
        logger.info(
            "ReminderScheduler started (lead=%s, paused=%s)", self.lead_time, paused
        )

    def shutdown(self) -> None:
        """Stop the scheduler and drop all timers."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("ReminderScheduler stopped")
        with self._lock:
            self._timers.clear()

    def fire_time(self, appointment_id: UUID) -> datetime | None:
        """When the live timer for an appointment fires, if there is one."""
        with self._lock:
            timer = self._timers.get(appointment_id)
        return timer.fire_at if timer else None

    def fire_at_for(self, appointment: Appointment) -> datetime:
        return slot_datetime(appointment.appointment_date, appointment.slot_time) - self.lead_time

    # =========================================================================
    # Arm / disarm
    # =========================================================================

    def arm(self, appointment: Appointment) -> datetime | None:
        """
        Arm (or re-arm) the reminder for an appointment.

        Returns the fire time, or None when the appointment is no longer
        active, the fire time has already passed, or the scheduler is not
        running. Re-arming replaces the previous timer.
        """
        if not appointment.status_enum.is_active:
            self.disarm(appointment.id)
            return None

        if not self._scheduler.running:
            logger.debug(
                "Reminder for appointment %s not armed; scheduler is not running",
                appointment.id,
            )
            return None

        fire_at = self.fire_at_for(appointment)
        if fire_at <= self._clock():
            logger.debug(
                "Reminder for appointment %s not armed; fire time %s has passed",
                appointment.id,
                fire_at,
            )
            return None

        job_id = f"reminder:{appointment.id}:{uuid4().hex}"
        with self._lock:
            previous = self._timers.pop(appointment.id, None)
            if previous:
                self._remove_job(previous.job_id)
            self._scheduler.add_job(
                self._fire,
                trigger="date",
                run_date=fire_at,
                args=[appointment.id, job_id],
                id=job_id,
                name=f"Appointment reminder {appointment.id}",
            )
            self._timers[appointment.id] = ReminderTimer(job_id=job_id, fire_at=fire_at)

        logger.info(
            "Armed reminder for appointment %s at %s",
            appointment.id,
            fire_at.isoformat(),
            extra=build_log_context(
                appointment_id=appointment.id, provider_id=appointment.provider_id
            ),
        )
        return fire_at

    def disarm(self, appointment_id: UUID) -> bool:
        """Cancel the pending reminder for an appointment. Idempotent."""
        with self._lock:
            timer = self._timers.pop(appointment_id, None)
            if timer is None:
                return False
            self._remove_job(timer.job_id)

        logger.info(
            "Disarmed reminder for appointment %s",
            appointment_id,
            extra=build_log_context(appointment_id=appointment_id),
        )
        return True

    def _remove_job(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            # Already started firing; the fire will find its entry gone.
            logger.debug("Reminder job %s already gone", job_id)

    # =========================================================================
    # Firing
    # =========================================================================

    def _fire(self, appointment_id: UUID, job_id: str) -> Notification | None:
        """Job callback. Never raises."""
        with self._lock:
            timer = self._timers.get(appointment_id)
            if timer is None or timer.job_id != job_id:
                logger.info(
                    "Reminder job %s for appointment %s was superseded or disarmed",
                    job_id,
                    appointment_id,
                )
                return None
            del self._timers[appointment_id]

        try:
            return self._deliver(appointment_id)
        except Exception:
            logger.exception(
                "Failed to deliver reminder for appointment %s",
                appointment_id,
                extra=build_log_context(appointment_id=appointment_id),
            )
            return None

    def _deliver(self, appointment_id: UUID) -> Notification | None:
        db = self._session_factory()
        try:
            appointment = db.get(Appointment, appointment_id)
            if appointment is None:
                logger.warning("Reminder dropped: appointment %s no longer exists", appointment_id)
                return None

            if not appointment.status_enum.is_active:
                logger.info(
                    "Reminder dropped: appointment %s is %s",
                    appointment_id,
                    appointment.status,
                )
                return None

            provider = db.get(User, appointment.provider_id)
            if provider is None:
                logger.warning(
                    "Reminder dropped: provider %s for appointment %s not found",
                    appointment.provider_id,
                    appointment_id,
                    extra=build_log_context(
                        appointment_id=appointment_id, provider_id=appointment.provider_id
                    ),
                )
                return None

            message = render_reminder_message(
                provider.display_name, appointment.appointment_date, appointment.slot_time
            )
            notification = notification_service.record(
                db,
                user_id=appointment.client_id,
                booking_id=appointment.id,
                message=message,
                fired_at=self._clock(),
                lead_minutes=int(self.lead_time.total_seconds() // 60),
            )
            logger.info(
                "Reminder recorded for appointment %s",
                appointment_id,
                extra=build_log_context(
                    appointment_id=appointment_id, user_id=appointment.client_id
                ),
            )
            return notification
        finally:
            db.close()
