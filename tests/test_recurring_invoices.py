import pytest
from decimal import Decimal
from datetime import datetime, timezone

from finwrk.app.core.errors import InvariantViolationError
from finwrk.app.core.time import ensure_utc
from finwrk.app.db.base import Base
from finwrk.app.db.session import SessionLocal, engine
from finwrk.app.jobs.recurring_invoices import process_recurring_invoices
from finwrk.app.models.client import Client
from finwrk.app.models.invoice import Invoice, InvoiceStatus
from finwrk.app.models.recurring_template import BillingCycle, RecurringTemplate
from finwrk.app.models.reminder import Reminder
from finwrk.app.models.user import User
from finwrk.app.services.recurrence import create_template, run_date_for_cycle, update_template


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _create_owner_client(db):
    user = User(email="owner@example.com", hashed_password="x", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    client = Client(owner_id=user.id, name="Retainer Co")
    db.add(client)
    db.commit()
    db.refresh(client)
    return user, client


def _template(db, user, client, cycle=BillingCycle.MONTHLY, start=None, **extra):
    return create_template(
        db,
        owner_id=user.id,
        client_id=client.id,
        amount="500.00",
        billing_cycle=cycle,
        start_date=start or utc(2030, 1, 15),
        **extra,
    )


def _reload(template_id):
    session = SessionLocal()
    try:
        return session.query(RecurringTemplate).filter(RecurringTemplate.id == template_id).one()
    finally:
        session.close()


def _invoices(db, template_id):
    return (
        db.query(Invoice)
        .filter(Invoice.recurring_template_id == template_id)
        .order_by(Invoice.issue_date.asc())
        .all()
    )


def test_run_dates_clamp_month_end_without_drift():
    anchor = utc(2030, 1, 31)
    assert run_date_for_cycle(anchor, BillingCycle.MONTHLY, None, 1) == utc(2030, 2, 28)
    assert run_date_for_cycle(anchor, BillingCycle.MONTHLY, None, 2) == utc(2030, 3, 31)
    assert run_date_for_cycle(anchor, BillingCycle.QUARTERLY, None, 1) == utc(2030, 4, 30)
    assert run_date_for_cycle(anchor, BillingCycle.YEARLY, None, 1) == utc(2031, 1, 31)
    assert run_date_for_cycle(anchor, BillingCycle.CUSTOM, 10, 3) == utc(2030, 3, 2)


def test_custom_cycle_requires_positive_days(db):
    user, client = _create_owner_client(db)
    with pytest.raises(InvariantViolationError):
        _template(db, user, client, cycle=BillingCycle.CUSTOM)
    with pytest.raises(InvariantViolationError):
        _template(db, user, client, cycle=BillingCycle.MONTHLY, custom_cycle_days=5)


def test_monthly_template_generates_one_invoice_and_advances(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client)

    assert process_recurring_invoices(now=utc(2030, 1, 15, 12)) == 1
    invoices = _invoices(db, template.id)
    assert len(invoices) == 1
    invoice = invoices[0]
    assert invoice.status == InvoiceStatus.DRAFT
    assert Decimal(invoice.total_amount) == Decimal("500.00")
    assert ensure_utc(invoice.issue_date) == utc(2030, 1, 15)
    assert ensure_utc(invoice.due_date) == utc(2030, 2, 14)
    assert invoice.invoice_number == f"INV-20300115-{template.id}-0001"

    refreshed = _reload(template.id)
    assert ensure_utc(refreshed.next_run_date) == utc(2030, 2, 15)
    assert refreshed.cycles_generated == 1
    assert refreshed.last_error is None


def test_not_yet_due_template_is_skipped(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client)
    assert process_recurring_invoices(now=utc(2030, 1, 14)) == 0
    assert _invoices(db, template.id) == []


def test_catch_up_generates_one_invoice_per_missed_cycle(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client, start=utc(2030, 1, 31))

    assert process_recurring_invoices(now=utc(2030, 4, 30, 8)) == 4
    invoices = _invoices(db, template.id)
    assert [ensure_utc(i.issue_date) for i in invoices] == [
        utc(2030, 1, 31),
        utc(2030, 2, 28),
        utc(2030, 3, 31),
        utc(2030, 4, 30),
    ]
    assert len({i.invoice_number for i in invoices}) == 4
    assert ensure_utc(_reload(template.id).next_run_date) == utc(2030, 5, 31)


def test_second_tick_for_same_period_is_a_noop(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client)
    now = utc(2030, 1, 20)
    assert process_recurring_invoices(now=now) == 1
    assert process_recurring_invoices(now=now) == 0
    assert len(_invoices(db, template.id)) == 1


def test_custom_cycle_in_days(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client, cycle=BillingCycle.CUSTOM, custom_cycle_days=10, start=utc(2030, 1, 1))
    assert process_recurring_invoices(now=utc(2030, 1, 25)) == 3
    assert ensure_utc(_reload(template.id).next_run_date) == utc(2030, 1, 31)


def test_end_date_deactivates_template(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client, start=utc(2030, 1, 1), end_date=utc(2030, 2, 15))
    assert process_recurring_invoices(now=utc(2030, 6, 1)) == 2
    refreshed = _reload(template.id)
    assert refreshed.active is False
    assert len(_invoices(db, template.id)) == 2


def test_inactive_template_generates_nothing(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client)
    template.active = False
    db.commit()
    assert process_recurring_invoices(now=utc(2030, 3, 1)) == 0


def test_sent_status_template_schedules_reminders(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client, generated_status=InvoiceStatus.SENT, due_days=14)
    assert process_recurring_invoices(now=utc(2030, 1, 15)) == 1
    invoice = _invoices(db, template.id)[0]
    reminder = db.query(Reminder).filter(Reminder.invoice_id == invoice.id).one()
    assert ensure_utc(reminder.fire_at) == utc(2030, 1, 26)


def test_failure_does_not_advance_schedule(db, monkeypatch):
    user, client = _create_owner_client(db)
    template = _template(db, user, client)

    def boom(*args, **kwargs):
        raise RuntimeError("store write failed")

    monkeypatch.setattr("finwrk.app.jobs.recurring_invoices.generate_invoice_from_template", boom)
    assert process_recurring_invoices(now=utc(2030, 1, 15)) == 0
    failed = _reload(template.id)
    assert ensure_utc(failed.next_run_date) == utc(2030, 1, 15)
    assert failed.cycles_generated == 0
    assert "store write failed" in failed.last_error

    monkeypatch.undo()
    assert process_recurring_invoices(now=utc(2030, 1, 15)) == 1
    recovered = _reload(template.id)
    assert ensure_utc(recovered.next_run_date) == utc(2030, 2, 15)
    assert recovered.last_error is None


def test_changing_cycle_reanchors_on_pending_run(db):
    user, client = _create_owner_client(db)
    template = _template(db, user, client)
    process_recurring_invoices(now=utc(2030, 1, 15))
    template = db.query(RecurringTemplate).filter(RecurringTemplate.id == template.id).one()
    db.refresh(template)

    update_template(db, template, {"billing_cycle": BillingCycle.QUARTERLY})
    assert ensure_utc(template.anchor_date) == utc(2030, 2, 15)
    assert template.cycles_generated == 0

    assert process_recurring_invoices(now=utc(2030, 2, 15)) == 1
    assert ensure_utc(_reload(template.id).next_run_date) == utc(2030, 5, 15)
