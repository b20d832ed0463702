"""
Notification Service - persists fired reminders as in-app notifications.

record() is the only write path used by the reminder scheduler. It dedupes
on dedupe_key so a second call for the same reminder returns the stored row.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.core.errors import DependencyFailure, NotFoundError
from clinic_api.db.enums import NotificationType
from clinic_api.db.models import Notification

logger = logging.getLogger(__name__)


def reminder_dedupe_key(booking_id: UUID, lead_minutes: int | None = None) -> str:
    if lead_minutes is None:
        lead_minutes = settings.REMINDER_LEAD_MINUTES
    return f"{NotificationType.APPOINTMENT_REMINDER.value}:{booking_id}:{lead_minutes}"


def _get_by_dedupe_key(db: Session, dedupe_key: str) -> Notification | None:
    return db.query(Notification).filter(
        Notification.dedupe_key == dedupe_key,
    ).first()


def record(
    db: Session,
    *,
    user_id: UUID,
    booking_id: UUID,
    message: str,
    fired_at: datetime,
    lead_minutes: int | None = None,
) -> Notification:
    """
    Record a reminder notification for a user.

    Returns the existing row if this reminder was already recorded.

    Raises:
        DependencyFailure: storage unavailable
    """
    dedupe_key = reminder_dedupe_key(booking_id, lead_minutes)
    try:
        existing = _get_by_dedupe_key(db, dedupe_key)
        if existing:
            logger.info("Reminder already recorded for booking %s", booking_id)
            return existing

        notification = Notification(
            user_id=user_id,
            booking_id=booking_id,
            type=NotificationType.APPOINTMENT_REMINDER.value,
            message=message,
            fired_at=fired_at,
            dedupe_key=dedupe_key,
        )
        db.add(notification)
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _get_by_dedupe_key(db, dedupe_key)
        if existing:
            return existing
        raise DependencyFailure("Failed to record notification")
    except SQLAlchemyError as e:
        db.rollback()
        raise DependencyFailure(f"Failed to record notification: {e}") from e

    db.refresh(notification)
    return notification


def list_notifications(
    db: Session,
    user_id: UUID,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[Notification]:
    """Get notifications for user, newest first."""
    query = db.query(Notification).filter(Notification.user_id == user_id)

    if unread_only:
        query = query.filter(Notification.read_at.is_(None))

    return query.order_by(
        Notification.fired_at.desc()
    ).offset(offset).limit(limit).all()


def get_unread_count(db: Session, user_id: UUID) -> int:
    """Get count of unread notifications."""
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
    ).count()


def mark_read(db: Session, notification_id: UUID, user_id: UUID) -> Notification:
    """Mark a notification as read (scoped to its owner)."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")

    if not notification.read_at:
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)

    return notification
