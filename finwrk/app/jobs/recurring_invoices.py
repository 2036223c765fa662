"""Recurring invoice generator tick."""

import logging
from datetime import datetime

from finwrk.app.core.time import ensure_utc, utc_now
from finwrk.app.db.session import SessionLocal
from finwrk.app.models.recurring_template import RecurringTemplate
from finwrk.app.services.recurrence import generate_invoice_from_template

logger = logging.getLogger(__name__)


def process_recurring_invoices(session_factory=SessionLocal, now: datetime | None = None) -> int:
    """Generate every due invoice for every active template.

    A template that is several cycles behind gets one invoice per missed cycle.
    Each period commits on its own; a failing template is logged and left at
    its current run date so the next tick retries the same period.
    """
    now = now or utc_now()
    logger.info("Recurring invoices tick starting at %s", now.isoformat())
    db = session_factory()
    try:
        template_ids = [
            template_id
            for (template_id,) in db.query(RecurringTemplate.id)
            .filter(RecurringTemplate.active.is_(True), RecurringTemplate.next_run_date <= now)
            .order_by(RecurringTemplate.next_run_date.asc(), RecurringTemplate.id.asc())
            .all()
        ]
    finally:
        db.close()

    logger.info("Found %s recurring template(s) due", len(template_ids))
    generated = 0
    for template_id in template_ids:
        try:
            generated += _process_template(session_factory, template_id, now)
        except Exception as exc:
            logger.exception("Error generating invoices for recurring template %s", template_id)
            _record_template_error(session_factory, template_id, exc)
    logger.info("Recurring invoices tick completed: %s invoice(s) generated", generated)
    return generated


def _process_template(session_factory, template_id: int, now: datetime) -> int:
    created = 0
    while True:
        db = session_factory()
        try:
            template = (
                db.query(RecurringTemplate)
                .filter(RecurringTemplate.id == template_id)
                .with_for_update()
                .first()
            )
            if template is None or not template.active:
                return created
            run_date = ensure_utc(template.next_run_date)
            if run_date > now:
                return created
            if template.end_date is not None and run_date > ensure_utc(template.end_date):
                template.active = False
                db.commit()
                logger.info("Recurring template %s passed its end date; deactivated", template_id)
                return created
            invoice = generate_invoice_from_template(db, template, now=now)
            db.commit()
            created += 1
            logger.info(
                "Generated invoice %s from recurring template %s; next run %s",
                invoice.invoice_number,
                template_id,
                ensure_utc(template.next_run_date).isoformat(),
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def _record_template_error(session_factory, template_id: int, exc: Exception) -> None:
    db = session_factory()
    try:
        template = db.query(RecurringTemplate).filter(RecurringTemplate.id == template_id).first()
        if template is not None:
            template.last_error = f"{type(exc).__name__}: {exc}"[:1000]
            db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not record failure on recurring template %s", template_id)
    finally:
        db.close()
