import pytest
from datetime import timedelta

from finwrk.app import worker
from finwrk.app.core.time import utc_now
from finwrk.app.db.base import Base
from finwrk.app.db.session import SessionLocal, engine
from finwrk.app.models.client import Client
from finwrk.app.models.invoice import Invoice
from finwrk.app.models.recurring_template import BillingCycle
from finwrk.app.models.user import User
from finwrk.app.services.recurrence import create_template


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def test_single_run_processes_due_templates():
    db = SessionLocal()
    try:
        user = User(email="cli@example.com", hashed_password="x", is_active=True)
        db.add(user)
        db.commit()
        client = Client(owner_id=user.id, name="Acme")
        db.add(client)
        db.commit()
        create_template(
            db,
            owner_id=user.id,
            client_id=client.id,
            amount="75.00",
            billing_cycle=BillingCycle.MONTHLY,
            start_date=utc_now() - timedelta(days=1),
        )
    finally:
        db.close()

    worker.main(["--once"])

    db = SessionLocal()
    try:
        assert db.query(Invoice).count() == 1
    finally:
        db.close()
