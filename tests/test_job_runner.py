import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from finwrk.app.db.base import Base
from finwrk.app.db.session import engine
from finwrk.app.jobs.runner import JobRunner, PeriodicJob
from finwrk.app.main import app


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


class FastSettings:
    recurring_interval_seconds = 0.05
    reminder_poll_seconds = 0.05


def register_and_login(client: TestClient, email: str, password: str) -> str:
    client.post("/auth/register", json={"email": email, "password": password})
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return resp.json()["access_token"]


def unreachable_runner() -> JobRunner:
    bad_engine = create_engine("sqlite:////nonexistent-finwrk-dir/jobs.db")
    return JobRunner(settings=FastSettings(), engine=bad_engine)


def test_periodic_job_records_failures():
    def broken():
        raise RuntimeError("tick exploded")

    job = PeriodicJob("broken", 60, broken)
    assert asyncio.run(job.run_once()) is None
    assert "tick exploded" in job.last_error

    ok = PeriodicJob("ok", 60, lambda: 3)
    assert asyncio.run(ok.run_once()) == 3
    assert ok.last_result == 3
    assert ok.last_error is None


def test_runner_starts_ticks_and_stops():
    calls = []
    runner = JobRunner(settings=FastSettings())

    async def scenario():
        runner.build_jobs = lambda: [PeriodicJob("counter", 0.01, lambda: calls.append(1))]
        await runner.start()
        assert runner.state == "running"
        assert runner.jobs[0].running
        await asyncio.sleep(0.1)
        await runner.stop()

    asyncio.run(scenario())
    assert runner.state == "stopped"
    assert len(calls) >= 2
    assert runner.status()["jobs"][0]["running"] is False


def test_runner_builds_all_jobs():
    runner = JobRunner(settings=FastSettings())
    names = [job.name for job in runner.build_jobs()]
    assert names == ["recurring-invoices", "overdue-invoices", "reminder-worker"]


def test_unreachable_store_disables_reminders(monkeypatch):
    runner = unreachable_runner()
    asyncio.run(runner.start())
    assert runner.state == "disabled"
    assert runner.reminders_available is False
    assert runner.jobs == []

    monkeypatch.setattr("finwrk.app.jobs.runner._runner", runner)
    client = TestClient(app)
    token = register_and_login(client, "degraded@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}

    resp = client.get("/reminders/", headers=headers)
    assert resp.status_code == 503
    assert client.get("/health").json()["jobs"]["state"] == "disabled"
    # Invoicing keeps working while reminders are unavailable
    assert client.get("/invoices/", headers=headers).status_code == 200
    assert client.get("/notifications/", headers=headers).status_code == 200
