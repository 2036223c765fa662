"""Reminder scheduling: derives payment reminder jobs from invoice due dates."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from finwrk.app.core.errors import InvalidTransitionError, InvariantViolationError
from finwrk.app.core.settings import get_settings
from finwrk.app.core.time import ensure_utc, utc_now
from finwrk.app.models.invoice import OPEN_INVOICE_STATUSES, Invoice
from finwrk.app.models.reminder import (
    ACTIVE_REMINDER_STATUSES,
    REMINDER_TRANSITIONS,
    Reminder,
    ReminderCategory,
    ReminderPriority,
    ReminderStatus,
)

logger = logging.getLogger(__name__)


def check_reminder_transition(current: ReminderStatus, target: ReminderStatus) -> None:
    if target not in REMINDER_TRANSITIONS[current]:
        raise InvalidTransitionError("reminder", current.value, target.value)


def compute_fire_at(due_date: datetime, lead_days: int) -> datetime:
    return ensure_utc(due_date) - timedelta(days=lead_days)


def get_active_invoice_reminder(db: Session, invoice_id: int) -> Reminder | None:
    return (
        db.query(Reminder)
        .filter(Reminder.invoice_id == invoice_id, Reminder.status.in_(ACTIVE_REMINDER_STATUSES))
        .first()
    )


def schedule_invoice_reminder(
    db: Session,
    invoice: Invoice,
    lead_days: int | None = None,
    now: datetime | None = None,
) -> Reminder | None:
    """Upsert the single pending payment reminder for an invoice.

    The fire time is the due date minus the lead time. A fire time already in
    the past is kept as is so the next worker poll picks it up. A new job is
    only created when the due date moves; status changes alone never revive a
    finished or dismissed job. Invoices that are not open (draft, paid,
    cancelled, archived) get any pending reminder dismissed instead. Does not
    commit.
    """
    now = now or utc_now()
    if invoice.status not in OPEN_INVOICE_STATUSES:
        dismiss_invoice_reminders(db, invoice.id, now=now)
        return None

    if lead_days is None:
        lead_days = get_settings().reminder_lead_days
    fire_at = compute_fire_at(invoice.due_date, lead_days)

    latest = (
        db.query(Reminder)
        .filter(Reminder.invoice_id == invoice.id)
        .order_by(Reminder.id.desc())
        .first()
    )
    if latest is not None and ensure_utc(latest.fire_at) == fire_at:
        # Same due date: a sent, dismissed or failed job stays final
        return latest
    if latest is not None and latest.status == ReminderStatus.PENDING:
        latest.fire_at = fire_at
        latest.available_at = fire_at
        latest.title = _invoice_reminder_title(invoice)
        db.flush()
        logger.info("Rescheduled reminder %s for invoice %s to %s", latest.id, invoice.invoice_number, fire_at.isoformat())
        return latest
    if latest is not None and latest.status == ReminderStatus.PROCESSING:
        # A worker holds the claim; it re-reads the invoice under lock before notifying
        logger.info("Reminder %s for invoice %s is being processed; not rescheduling", latest.id, invoice.invoice_number)
        return latest

    reminder = Reminder(
        owner_id=invoice.owner_id,
        invoice_id=invoice.id,
        title=_invoice_reminder_title(invoice),
        category=ReminderCategory.PAYMENT,
        priority=ReminderPriority.MEDIUM,
        status=ReminderStatus.PENDING,
        fire_at=fire_at,
        available_at=fire_at,
        attempts=0,
    )
    db.add(reminder)
    db.flush()
    if fire_at <= now:
        logger.info("Reminder %s for invoice %s is already due; it fires on the next poll", reminder.id, invoice.invoice_number)
    else:
        logger.info("Scheduled reminder %s for invoice %s at %s", reminder.id, invoice.invoice_number, fire_at.isoformat())
    return reminder


def _invoice_reminder_title(invoice: Invoice) -> str:
    return f"Payment due for invoice {invoice.invoice_number}"


def dismiss_invoice_reminders(db: Session, invoice_id: int, now: datetime | None = None) -> int:
    """Dismiss pending reminders for an invoice. Does not commit."""
    now = now or utc_now()
    count = (
        db.query(Reminder)
        .filter(Reminder.invoice_id == invoice_id, Reminder.status == ReminderStatus.PENDING)
        .update(
            {
                Reminder.status: ReminderStatus.DISMISSED,
                Reminder.dismissed_at: now,
                Reminder.updated_at: now,
            },
            synchronize_session="fetch",
        )
    )
    if count:
        logger.info("Dismissed %s pending reminder(s) for invoice %s", count, invoice_id)
    return count


def dismiss_reminder(db: Session, reminder: Reminder, now: datetime | None = None) -> Reminder:
    """User dismissal. Dismissing an already dismissed reminder is a no-op."""
    now = now or utc_now()
    if reminder.status == ReminderStatus.DISMISSED:
        return reminder
    updated = (
        db.query(Reminder)
        .filter(Reminder.id == reminder.id, Reminder.status == ReminderStatus.PENDING)
        .update(
            {
                Reminder.status: ReminderStatus.DISMISSED,
                Reminder.dismissed_at: now,
                Reminder.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(reminder)
    if not updated and reminder.status != ReminderStatus.DISMISSED:
        raise InvalidTransitionError("reminder", reminder.status.value, ReminderStatus.DISMISSED.value)
    return reminder


def create_custom_reminder(
    db: Session,
    *,
    owner_id: int,
    title: str,
    fire_at: datetime,
    category: ReminderCategory = ReminderCategory.PERSONAL,
    priority: ReminderPriority = ReminderPriority.MEDIUM,
    description: str | None = None,
    invoice_id: int | None = None,
) -> Reminder:
    title = (title or "").strip()
    if not title:
        raise InvariantViolationError("Reminder title is required")
    if invoice_id is not None and get_active_invoice_reminder(db, invoice_id) is not None:
        raise InvariantViolationError("Invoice already has an active reminder")
    reminder = Reminder(
        owner_id=owner_id,
        invoice_id=invoice_id,
        title=title,
        description=description,
        category=category,
        priority=priority,
        status=ReminderStatus.PENDING,
        fire_at=ensure_utc(fire_at),
        available_at=ensure_utc(fire_at),
        attempts=0,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder
