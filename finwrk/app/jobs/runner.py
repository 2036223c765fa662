"""Lifecycle for the background jobs.

Each periodic job is an asyncio task that fires its blocking tick in the
threadpool on a fixed cadence. Ticks are independent: a slow tick does not
delay the next one. All job state lives in the relational store, so stopping
or restarting the process never loses or duplicates pending work.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from finwrk.app.core.settings import get_settings
from finwrk.app.db.session import SessionLocal, engine as default_engine
from finwrk.app.jobs.recurring_invoices import process_recurring_invoices
from finwrk.app.jobs.reminder_worker import process_due_reminders
from finwrk.app.services.billing import mark_overdue_invoices

logger = logging.getLogger(__name__)

OVERDUE_SWEEP_SECONDS = 3600


class PeriodicJob:
    def __init__(self, name: str, interval_seconds: float, func: Callable[[], object]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.last_result = None
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._inflight: set = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self):
        started = time.monotonic()
        try:
            result = await run_in_threadpool(self.func)
        except Exception as exc:
            self.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Job %s tick failed", self.name)
            return None
        self.last_result = result
        self.last_error = None
        logger.debug("Job %s tick finished in %.2fs: %s", self.name, time.monotonic() - started, result)
        return result

    async def _loop(self):
        while not self._stopping.is_set():
            tick = asyncio.create_task(self.run_once())
            self._inflight.add(tick)
            tick.add_done_callback(self._inflight.discard)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
        logger.info("Job %s started; every %ss", self.name, self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        self._task = None
        logger.info("Job %s stopped", self.name)


class JobRunner:
    """Owns the recurring invoice generator, the overdue sweep and the reminder worker.

    State is one of ``idle`` (never started), ``running``, ``disabled`` (store
    probe failed at startup) or ``stopped``.
    """

    def __init__(self, settings=None, session_factory=SessionLocal, engine=None):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.engine = engine if engine is not None else default_engine
        self.state = "idle"
        self.jobs: list[PeriodicJob] = []

    @property
    def reminders_available(self) -> bool:
        return self.state != "disabled"

    def probe_store(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Job store unreachable at %s", self.engine.url.render_as_string(hide_password=True))
            return False
        return True

    def build_jobs(self) -> list[PeriodicJob]:
        session_factory = self.session_factory

        def recurring_tick():
            return process_recurring_invoices(session_factory)

        def reminder_tick():
            return process_due_reminders(session_factory)

        def overdue_tick():
            db = session_factory()
            try:
                return mark_overdue_invoices(db)
            finally:
                db.close()

        return [
            PeriodicJob("recurring-invoices", self.settings.recurring_interval_seconds, recurring_tick),
            PeriodicJob("overdue-invoices", OVERDUE_SWEEP_SECONDS, overdue_tick),
            PeriodicJob("reminder-worker", self.settings.reminder_poll_seconds, reminder_tick),
        ]

    async def start(self) -> None:
        if self.state == "running":
            return
        if not await run_in_threadpool(self.probe_store):
            self.state = "disabled"
            logger.error("Background jobs disabled: reminders and notifications will not be delivered")
            return
        self.jobs = self.build_jobs()
        for job in self.jobs:
            job.start()
        self.state = "running"

    async def stop(self) -> None:
        for job in self.jobs:
            await job.stop()
        if self.state == "running":
            self.state = "stopped"

    async def run_forever(self) -> None:
        await self.start()
        if self.state != "running":
            return
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await self.stop()

    def status(self) -> dict:
        return {
            "state": self.state,
            "jobs": [
                {"name": job.name, "running": job.running, "last_error": job.last_error}
                for job in self.jobs
            ],
        }


_runner: Optional[JobRunner] = None


def get_job_runner() -> JobRunner:
    global _runner
    if _runner is None:
        _runner = JobRunner()
    return _runner
