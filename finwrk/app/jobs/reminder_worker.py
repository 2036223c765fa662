"""Reminder worker: claims due reminder jobs and turns them into notifications.

Claiming is a conditional UPDATE from ``pending`` to ``processing`` carrying a
fresh claim token, so concurrent workers never process the same job. The
final write is conditional on that token too: a run whose claim was released
as stale discards its work instead of overwriting the retry. A job
that fails is returned to ``pending`` with exponential backoff until it runs
out of attempts, at which point it is marked ``failed`` and kept for manual
inspection.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from finwrk.app.core.settings import get_settings
from finwrk.app.core.time import ensure_utc, utc_now
from finwrk.app.db.session import SessionLocal
from finwrk.app.models.invoice import CLOSED_INVOICE_STATUSES, OPEN_INVOICE_STATUSES, Invoice, InvoiceStatus
from finwrk.app.models.notification import NotificationPriority, NotificationType
from finwrk.app.models.reminder import Reminder, ReminderPriority, ReminderStatus
from finwrk.app.services.billing import ZERO, apply_invoice_status, lock_invoice, to_money
from finwrk.app.services.notifications import create_notification
from finwrk.app.services.reminders import check_reminder_transition

logger = logging.getLogger(__name__)

PRIORITY_MAP = {
    ReminderPriority.LOW: NotificationPriority.LOW,
    ReminderPriority.MEDIUM: NotificationPriority.NORMAL,
    ReminderPriority.HIGH: NotificationPriority.HIGH,
}


@dataclass
class WorkerReport:
    sent: int = 0
    dismissed: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0
    released: int = 0
    reminder_ids: list = field(default_factory=list)


def backoff_delay(attempts: int, base_seconds: int) -> timedelta:
    return timedelta(seconds=base_seconds * 2 ** max(attempts - 1, 0))


def claim_reminder(db, reminder_id: int, now: datetime) -> str | None:
    """Atomically move a pending reminder to processing. Returns the claim token or None."""
    token = uuid.uuid4().hex
    claimed = (
        db.query(Reminder)
        .filter(Reminder.id == reminder_id, Reminder.status == ReminderStatus.PENDING)
        .update(
            {
                Reminder.status: ReminderStatus.PROCESSING,
                Reminder.claim_token: token,
                Reminder.claimed_at: now,
                Reminder.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return token if claimed == 1 else None


def release_stale_claims(session_factory=SessionLocal, now: datetime | None = None) -> int:
    """Return jobs whose worker vanished mid-processing to the retry path."""
    settings = get_settings()
    now = now or utc_now()
    cutoff = now - timedelta(seconds=settings.reminder_claim_timeout_seconds)
    db = session_factory()
    try:
        stale = (
            db.query(Reminder.id, Reminder.claim_token)
            .filter(Reminder.status == ReminderStatus.PROCESSING, Reminder.claimed_at < cutoff)
            .all()
        )
    finally:
        db.close()
    released = 0
    for reminder_id, token in stale:
        if _record_failure(session_factory, reminder_id, token, "claim timed out", now):
            released += 1
    if released:
        logger.warning("Released %s stale reminder claim(s)", released)
    return released


def process_due_reminders(session_factory=SessionLocal, now: datetime | None = None) -> WorkerReport:
    settings = get_settings()
    now = now or utc_now()
    report = WorkerReport()
    report.released = release_stale_claims(session_factory, now=now)

    db = session_factory()
    try:
        due_ids = [
            reminder_id
            for (reminder_id,) in db.query(Reminder.id)
            .filter(Reminder.status == ReminderStatus.PENDING, Reminder.available_at <= now)
            .order_by(Reminder.available_at.asc(), Reminder.id.asc())
            .limit(settings.reminder_batch_size)
            .all()
        ]
    finally:
        db.close()

    if due_ids:
        logger.info("Found %s due reminder(s)", len(due_ids))
    for reminder_id in due_ids:
        db = session_factory()
        try:
            token = claim_reminder(db, reminder_id, now)
        finally:
            db.close()
        if token is None:
            report.skipped += 1
            continue
        outcome = _process_claimed(session_factory, reminder_id, token, now)
        if outcome == "sent":
            report.sent += 1
            report.reminder_ids.append(reminder_id)
        elif outcome == "dismissed":
            report.dismissed += 1
        elif outcome == "retry":
            report.retried += 1
        elif outcome == "failed":
            report.failed += 1
        else:
            report.skipped += 1
    return report


def _process_claimed(session_factory, reminder_id: int, token: str, now: datetime) -> str:
    db = session_factory()
    try:
        reminder = (
            db.query(Reminder)
            .filter(Reminder.id == reminder_id, Reminder.claim_token == token)
            .first()
        )
        if reminder is None or reminder.status != ReminderStatus.PROCESSING:
            return "lost"

        invoice = None
        if reminder.invoice_id is not None:
            invoice = lock_invoice(db, reminder.invoice_id)
            if invoice is None or invoice.status in CLOSED_INVOICE_STATUSES:
                if not _finish(db, reminder, token, ReminderStatus.DISMISSED, now):
                    db.rollback()
                    return "lost"
                db.commit()
                logger.info("Reminder %s dismissed; invoice %s is closed", reminder_id, reminder.invoice_id)
                return "dismissed"

        overdue = False
        if invoice is not None:
            overdue = _mark_overdue_if_past_due(db, invoice, now)
        _notify(db, reminder, invoice, overdue, now)
        if not _finish(db, reminder, token, ReminderStatus.SENT, now):
            # Claim expired and was released mid-run; the retry owns the job now
            db.rollback()
            logger.warning("Reminder %s lost its claim before finishing; discarding this run", reminder_id)
            return "lost"
        db.commit()
        logger.info("Reminder %s sent", reminder_id)
        return "sent"
    except Exception as exc:
        db.rollback()
        logger.exception("Error processing reminder %s", reminder_id)
        failed = _record_failure(session_factory, reminder_id, token, f"{type(exc).__name__}: {exc}", now)
        return "failed" if failed == ReminderStatus.FAILED else "retry"
    finally:
        db.close()


def _finish(db, reminder: Reminder, token: str, status: ReminderStatus, now: datetime) -> bool:
    """Close a claimed job, but only while this run still holds its claim token."""
    check_reminder_transition(reminder.status, status)
    values = {
        Reminder.status: status,
        Reminder.claim_token: None,
        Reminder.last_error: None,
        Reminder.updated_at: now,
    }
    if status == ReminderStatus.SENT:
        values[Reminder.sent_at] = now
    elif status == ReminderStatus.DISMISSED:
        values[Reminder.dismissed_at] = now
    finished = (
        db.query(Reminder)
        .filter(
            Reminder.id == reminder.id,
            Reminder.claim_token == token,
            Reminder.status == ReminderStatus.PROCESSING,
        )
        .update(values, synchronize_session=False)
    )
    return finished == 1


def _mark_overdue_if_past_due(db, invoice: Invoice, now: datetime) -> bool:
    if invoice.status == InvoiceStatus.OVERDUE:
        return True
    if invoice.status not in OPEN_INVOICE_STATUSES:
        return False
    if to_money(invoice.balance_due) > ZERO and ensure_utc(invoice.due_date) < now:
        apply_invoice_status(db, invoice, InvoiceStatus.OVERDUE, now)
        return True
    return False


def _notify(db, reminder: Reminder, invoice: Invoice | None, overdue: bool, now: datetime) -> None:
    settings = get_settings()
    priority = PRIORITY_MAP[reminder.priority]
    if invoice is None:
        create_notification(
            db,
            user_id=reminder.owner_id,
            type=NotificationType.INFO,
            title=reminder.title,
            message=reminder.description or f"Reminder: {reminder.title}",
            priority=priority,
            event_type="reminder",
            link=f"{settings.public_base_url}/reminders",
            now=now,
            commit=False,
        )
        return

    due = ensure_utc(invoice.due_date)
    amount = f"{to_money(invoice.balance_due)} {invoice.currency}"
    if overdue:
        create_notification(
            db,
            user_id=reminder.owner_id,
            type=NotificationType.WARNING,
            title=f"Invoice {invoice.invoice_number} is overdue",
            message=f"Invoice {invoice.invoice_number} was due on {due:%Y-%m-%d}; {amount} is still outstanding.",
            priority=NotificationPriority.HIGH,
            event_type="invoice_overdue",
            link=f"{settings.public_base_url}/invoices/{invoice.id}",
            now=now,
            commit=False,
        )
    else:
        create_notification(
            db,
            user_id=reminder.owner_id,
            type=NotificationType.INFO,
            title=reminder.title,
            message=f"Invoice {invoice.invoice_number} is due on {due:%Y-%m-%d}; {amount} is outstanding.",
            priority=priority,
            event_type="invoice_reminder",
            link=f"{settings.public_base_url}/invoices/{invoice.id}",
            now=now,
            commit=False,
        )


def _record_failure(session_factory, reminder_id: int, token: str, error: str, now: datetime) -> ReminderStatus | None:
    """Count a failed attempt against a claimed job; returns its new status."""
    settings = get_settings()
    db = session_factory()
    try:
        reminder = (
            db.query(Reminder)
            .filter(Reminder.id == reminder_id, Reminder.claim_token == token)
            .with_for_update()
            .first()
        )
        if reminder is None or reminder.status != ReminderStatus.PROCESSING:
            return None
        reminder.attempts = (reminder.attempts or 0) + 1
        reminder.last_error = error[:1000]
        reminder.claim_token = None
        reminder.claimed_at = None
        if reminder.attempts >= settings.reminder_max_attempts:
            reminder.status = ReminderStatus.FAILED
            reminder.failed_at = now
            logger.error(
                "Reminder %s failed after %s attempt(s); needs manual inspection: %s",
                reminder_id,
                reminder.attempts,
                error,
            )
        else:
            reminder.status = ReminderStatus.PENDING
            reminder.available_at = now + backoff_delay(reminder.attempts, settings.reminder_backoff_seconds)
            logger.warning(
                "Reminder %s attempt %s failed; retrying at %s",
                reminder_id,
                reminder.attempts,
                ensure_utc(reminder.available_at).isoformat(),
            )
        db.commit()
        return reminder.status
    finally:
        db.close()
