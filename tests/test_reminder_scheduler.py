"""Tests for the in-process reminder scheduler."""
import logging
import time as time_module
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from clinic_api.core.errors import DependencyFailure
from clinic_api.db.enums import AppointmentStatus
from clinic_api.db.models import Notification
from clinic_api.services import notification_service, slot_service
from clinic_api.services.reminder_scheduler import ReminderScheduler, render_reminder_message


@pytest.fixture
def appointment(client_user, provider_user, make_appointment, tomorrow):
    return make_appointment(client_user, provider_user.id, tomorrow, "10:00 AM")


def _notifications(db):
    db.expire_all()
    return db.query(Notification).all()


def _fire_current(reminders: ReminderScheduler, appointment_id):
    return reminders._fire(appointment_id, reminders._timers[appointment_id].job_id)


class TestArm:
    def test_fire_time_is_lead_before_slot(self, reminders, appointment, tomorrow):
        fire_at = reminders.arm(appointment)

        assert fire_at == slot_service.slot_datetime(tomorrow, "10:00 AM") - timedelta(minutes=30)
        assert reminders.fire_time(appointment.id) == fire_at
        assert len(reminders) == 1

    def test_job_registered_with_scheduler(self, reminders, appointment):
        reminders.arm(appointment)

        job = reminders._scheduler.get_job(reminders._timers[appointment.id].job_id)
        assert job is not None
        assert job.args[0] == appointment.id

    def test_rearm_replaces_previous_timer(self, reminders, appointment):
        reminders.arm(appointment)
        first_job = reminders._timers[appointment.id].job_id

        reminders.arm(appointment)
        second_job = reminders._timers[appointment.id].job_id

        assert first_job != second_job
        assert reminders._scheduler.get_job(first_job) is None
        assert reminders._scheduler.get_job(second_job) is not None
        assert len(reminders) == 1

    def test_inactive_appointment_not_armed(
        self, reminders, client_user, provider_user, make_appointment, tomorrow
    ):
        appointment = make_appointment(
            client_user, provider_user.id, tomorrow, status=AppointmentStatus.CANCELLED
        )

        assert reminders.arm(appointment) is None
        assert len(reminders) == 0

    def test_passed_fire_time_not_armed(self, session_factory, appointment, tomorrow):
        # 10:00 AM slot, clock at 09:45: the 09:30 reminder is already due
        clock_now = slot_service.slot_datetime(tomorrow, "09:30 AM") + timedelta(minutes=15)
        reminders = ReminderScheduler(session_factory, clock=lambda: clock_now)
        reminders.start(paused=True)

        assert reminders.arm(appointment) is None
        assert len(reminders) == 0
        reminders.shutdown()

    def test_custom_lead_time(self, session_factory, appointment, tomorrow):
        reminders = ReminderScheduler(session_factory, lead_time=timedelta(hours=2))
        reminders.start(paused=True)

        fire_at = reminders.arm(appointment)

        assert fire_at == slot_service.slot_datetime(tomorrow, "10:00 AM") - timedelta(hours=2)
        reminders.shutdown()

    def test_stopped_scheduler_arms_nothing(self, session_factory, appointment):
        reminders = ReminderScheduler(session_factory)

        assert reminders.arm(appointment) is None
        assert reminders.fire_time(appointment.id) is None
        assert len(reminders) == 0
        assert not reminders.running


class TestDisarm:
    def test_disarm_removes_timer_and_job(self, reminders, appointment):
        reminders.arm(appointment)
        job_id = reminders._timers[appointment.id].job_id

        assert reminders.disarm(appointment.id) is True
        assert reminders.fire_time(appointment.id) is None
        assert reminders._scheduler.get_job(job_id) is None

    def test_disarm_is_idempotent(self, reminders, appointment):
        reminders.arm(appointment)

        assert reminders.disarm(appointment.id) is True
        assert reminders.disarm(appointment.id) is False
        assert reminders.disarm(uuid.uuid4()) is False

    def test_shutdown_clears_timers(self, session_factory, appointment):
        reminders = ReminderScheduler(session_factory)
        reminders.start(paused=True)
        reminders.arm(appointment)

        reminders.shutdown()

        assert len(reminders) == 0
        assert not reminders.running


class TestFire:
    def test_fire_records_notification(self, db, reminders, appointment, client_user, tomorrow):
        reminders.arm(appointment)

        _fire_current(reminders, appointment.id)

        notifications = _notifications(db)
        assert len(notifications) == 1
        notification = notifications[0]
        assert notification.user_id == client_user.id
        assert notification.booking_id == appointment.id
        assert notification.message == render_reminder_message("Dr. Rivera", tomorrow, "10:00 AM")
        assert notification.dedupe_key == f"appointment_reminder:{appointment.id}:30"
        assert notification.read_at is None
        assert len(reminders) == 0

    def test_message_mentions_provider_date_and_slot(self, tomorrow):
        message = render_reminder_message("Dr. Rivera", tomorrow, "10:00 AM")
        assert "Dr. Rivera" in message
        assert tomorrow.isoformat() in message
        assert "10:00 AM" in message

    def test_fire_after_disarm_records_nothing(self, db, reminders, appointment):
        reminders.arm(appointment)
        job_id = reminders._timers[appointment.id].job_id
        reminders.disarm(appointment.id)

        # The job was already running when disarm happened
        assert reminders._fire(appointment.id, job_id) is None
        assert _notifications(db) == []

    def test_superseded_job_records_nothing(self, db, reminders, appointment):
        reminders.arm(appointment)
        stale_job = reminders._timers[appointment.id].job_id
        reminders.arm(appointment)

        assert reminders._fire(appointment.id, stale_job) is None
        assert _notifications(db) == []
        assert len(reminders) == 1

    def test_fires_at_most_once(self, db, reminders, appointment):
        reminders.arm(appointment)
        job_id = reminders._timers[appointment.id].job_id

        reminders._fire(appointment.id, job_id)
        reminders._fire(appointment.id, job_id)

        assert len(_notifications(db)) == 1

    @pytest.mark.parametrize(
        "status", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED]
    )
    def test_status_rechecked_at_fire_time(self, db, reminders, appointment, status):
        reminders.arm(appointment)
        # Status changed behind the scheduler's back
        appointment.status = status.value
        db.commit()

        _fire_current(reminders, appointment.id)

        assert _notifications(db) == []

    def test_deleted_appointment_dropped(self, db, reminders, appointment):
        appointment_id = appointment.id
        reminders.arm(appointment)
        db.delete(appointment)
        db.commit()

        assert _fire_current(reminders, appointment_id) is None
        assert _notifications(db) == []

    def test_missing_provider_dropped_with_warning(
        self, db, reminders, client_user, make_appointment, tomorrow, caplog
    ):
        appointment = make_appointment(client_user, uuid.uuid4(), tomorrow)
        reminders.arm(appointment)

        with caplog.at_level(logging.WARNING, logger="clinic_api.services.reminder_scheduler"):
            assert _fire_current(reminders, appointment.id) is None

        assert _notifications(db) == []
        assert any("provider" in r.getMessage() for r in caplog.records)

    def test_delivery_failure_logged_not_raised(
        self, db, reminders, appointment, monkeypatch, caplog
    ):
        def failing_record(*args, **kwargs):
            raise DependencyFailure("store down")

        monkeypatch.setattr(notification_service, "record", failing_record)
        reminders.arm(appointment)

        with caplog.at_level(logging.ERROR, logger="clinic_api.services.reminder_scheduler"):
            assert _fire_current(reminders, appointment.id) is None

        assert any("Failed to deliver reminder" in r.getMessage() for r in caplog.records)
        assert _notifications(db) == []

    def test_fire_uses_scheduler_clock(self, db, session_factory, appointment, tomorrow):
        fired_at = (
            slot_service.slot_datetime(tomorrow, "09:30 AM") - timedelta(hours=1)
        ).astimezone(timezone.utc)
        reminders = ReminderScheduler(session_factory, clock=lambda: fired_at)
        reminders.start(paused=True)
        reminders.arm(appointment)

        _fire_current(reminders, appointment.id)

        notification = _notifications(db)[0]
        stored = notification.fired_at
        if stored.tzinfo is None:
            stored = stored.replace(tzinfo=timezone.utc)
        assert stored == fired_at
        reminders.shutdown()


class TestRealTimer:
    def test_timer_fires_on_scheduler_thread(self, db, session_factory, appointment, tomorrow):
        """Unpaused scheduler with a lead time that puts the fire a moment ahead."""
        starts_at = slot_service.slot_datetime(tomorrow, "10:00 AM")
        lead = starts_at - (datetime.now(timezone.utc) + timedelta(milliseconds=500))
        reminders = ReminderScheduler(session_factory, lead_time=lead)
        reminders.start()
        try:
            assert reminders.arm(appointment) is not None

            deadline = time_module.monotonic() + 10
            while time_module.monotonic() < deadline and not _notifications(db):
                time_module.sleep(0.1)

            assert len(_notifications(db)) == 1
            assert len(reminders) == 0
        finally:
            reminders.shutdown()
