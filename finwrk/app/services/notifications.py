"""Notification delivery.

Durable notifications live in the ``notifications`` table and are only ever
mutated to flip the read flag. Each new notification can also stage a
short-lived toast entry for polling clients; a toast is handed out at most
once and deleted as it is delivered. Toasts are disposable: losing them never
loses the durable history.
"""

import logging
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from finwrk.app.core.errors import InvariantViolationError
from finwrk.app.core.settings import get_settings
from finwrk.app.core.time import ensure_utc, utc_now
from finwrk.app.models.notification import (
    Notification,
    NotificationPriority,
    NotificationToast,
    NotificationType,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255


def create_notification(
    db: Session,
    *,
    user_id: int,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    event_type: str | None = None,
    link: str | None = None,
    stage_toast: bool = True,
    now: datetime | None = None,
    commit: bool = True,
) -> Notification:
    """Persist a notification, returning the existing one for an exact recent duplicate."""
    settings = get_settings()
    now = now or utc_now()
    title = (title or "").strip()
    message = (message or "").strip()
    if not title:
        raise InvariantViolationError("Notification title is required")
    if not message:
        raise InvariantViolationError("Notification message is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvariantViolationError(f"Notification title exceeds {MAX_TITLE_LENGTH} characters")

    window_start = now - timedelta(seconds=settings.notification_dedup_seconds)
    duplicate = (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.type == type,
            Notification.title == title,
            Notification.message == message,
            Notification.created_at >= window_start,
        )
        .first()
    )
    if duplicate is not None:
        logger.info("Duplicate notification discarded for user %s: %s", user_id, title[:50])
        return duplicate

    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        priority=priority,
        event_type=event_type,
        link=link,
        is_read=False,
        created_at=now,
    )
    db.add(notification)
    db.flush()
    if stage_toast:
        db.add(
            NotificationToast(
                user_id=user_id,
                notification_id=notification.id,
                created_at=now,
                expires_at=now + timedelta(seconds=settings.toast_ttl_seconds),
            )
        )
    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()
    logger.info("Created notification %s for user %s (%s, %s)", notification.id, user_id, type.value, event_type)
    return notification


def pull_pending_toasts(db: Session, user_id: int, now: datetime | None = None) -> List[Notification]:
    """Hand out and clear the user's staged toasts.

    Each toast row is deleted individually and only returned when this call's
    delete removed it, so concurrent polls never both receive the same entry.
    Expired toasts are purged without being returned.
    """
    now = now or utc_now()
    toasts = (
        db.query(NotificationToast)
        .options(joinedload(NotificationToast.notification))
        .filter(NotificationToast.user_id == user_id)
        .order_by(NotificationToast.id.asc())
        .all()
    )
    delivered = []
    for toast in toasts:
        deleted = (
            db.query(NotificationToast)
            .filter(NotificationToast.id == toast.id)
            .delete(synchronize_session=False)
        )
        if deleted != 1:
            continue
        if ensure_utc(toast.expires_at) <= now:
            continue
        delivered.append(toast.notification)
    db.commit()
    if delivered:
        logger.info("Delivered %s pending toast(s) to user %s", len(delivered), user_id)
    return delivered


def list_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .scalar()
        or 0
    )


def mark_read(db: Session, user_id: int, notification_id: int, now: datetime | None = None) -> Notification | None:
    """Idempotent: marking an already read notification leaves it untouched."""
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = now or utc_now()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int, now: datetime | None = None) -> int:
    count = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: now or utc_now()}, synchronize_session=False)
    )
    db.commit()
    return count
