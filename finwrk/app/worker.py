"""Standalone background worker process.

    python -m finwrk.app.worker          # run the periodic jobs until interrupted
    python -m finwrk.app.worker --once   # run every job once and exit
"""

import argparse
import asyncio
import logging

from finwrk.app.core.logging import configure_logging
from finwrk.app.core.settings import get_settings
from finwrk.app.db.session import SessionLocal
from finwrk.app.jobs.recurring_invoices import process_recurring_invoices
from finwrk.app.jobs.reminder_worker import process_due_reminders
from finwrk.app.jobs.runner import get_job_runner
from finwrk.app.services.billing import mark_overdue_invoices

logger = logging.getLogger("finwrk.worker")


def run_once() -> None:
    generated = process_recurring_invoices()
    db = SessionLocal()
    try:
        overdue = mark_overdue_invoices(db)
    finally:
        db.close()
    report = process_due_reminders()
    logger.info(
        "Single run finished: %s invoice(s) generated, %s marked overdue, %s reminder(s) sent, %s failed",
        generated,
        overdue,
        report.sent,
        report.failed,
    )


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Finwrk background jobs")
    parser.add_argument("--once", action="store_true", help="run each job once and exit")
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)
    if args.once:
        run_once()
        return
    try:
        asyncio.run(get_job_runner().run_forever())
    except KeyboardInterrupt:
        logger.info("Worker interrupted; shutting down")


if __name__ == "__main__":
    main()
