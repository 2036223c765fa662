import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from finwrk.app.db.base import Base
from finwrk.app.db.session import SessionLocal, engine
from finwrk.app.main import app
from finwrk.app.models.reminder import Reminder, ReminderStatus


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def register_and_login(client: TestClient, email: str, password: str) -> str:
    client.post("/auth/register", json={"email": email, "password": password})
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return resp.json()["access_token"]


def create_client(client: TestClient, token: str, name: str = "Acme") -> int:
    resp = client.post("/clients/", json={"name": name}, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 201
    return resp.json()["id"]


def create_invoice(client: TestClient, token: str, client_id: int, number: str, total: str = "100.00", **extra):
    body = {
        "client_id": client_id,
        "invoice_number": number,
        "total_amount": total,
        "due_date": "2030-02-01T00:00:00Z",
    }
    body.update(extra)
    resp = client.post("/invoices/", json=body, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_invoice_defaults_to_draft_with_full_balance():
    client = TestClient(app)
    token = register_and_login(client, "inv@example.com", "secret")
    client_id = create_client(client, token)

    invoice = create_invoice(client, token, client_id, "INV-1", total="250.50")
    assert invoice["status"] == "draft"
    assert Decimal(invoice["total_amount"]) == Decimal("250.50")
    assert Decimal(invoice["amount_paid"]) == Decimal("0.00")
    assert Decimal(invoice["balance_due"]) == Decimal("250.50")


def test_sent_invoice_gets_payment_reminder():
    client = TestClient(app)
    token = register_and_login(client, "sent@example.com", "secret")
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-2", status="sent")

    db = SessionLocal()
    try:
        reminders = db.query(Reminder).filter(Reminder.invoice_id == invoice["id"]).all()
        assert len(reminders) == 1
        assert reminders[0].status == ReminderStatus.PENDING
        assert reminders[0].fire_at.strftime("%Y-%m-%d") == "2030-01-29"
    finally:
        db.close()


def test_create_invoice_rejects_non_initial_status_and_duplicate_number():
    client = TestClient(app)
    token = register_and_login(client, "bad@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    body = {
        "client_id": client_id,
        "invoice_number": "INV-3",
        "total_amount": "10.00",
        "due_date": "2030-02-01T00:00:00Z",
        "status": "paid",
    }
    assert client.post("/invoices/", json=body, headers=headers).status_code == 400

    create_invoice(client, token, client_id, "INV-3")
    body["status"] = "draft"
    assert client.post("/invoices/", json=body, headers=headers).status_code == 400


def test_create_invoice_for_foreign_client_returns_404():
    client = TestClient(app)
    token_a = register_and_login(client, "a@example.com", "secret")
    token_b = register_and_login(client, "b@example.com", "secret")
    client_id = create_client(client, token_a)
    body = {
        "client_id": client_id,
        "invoice_number": "INV-4",
        "total_amount": "10.00",
        "due_date": "2030-02-01T00:00:00Z",
    }
    resp = client.post("/invoices/", json=body, headers={"Authorization": f"Bearer {token_b}"})
    assert resp.status_code == 404


def test_list_invoices_filters_and_sorts():
    client = TestClient(app)
    token = register_and_login(client, "list@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    create_invoice(client, token, client_id, "INV-A", total="50.00")
    create_invoice(client, token, client_id, "INV-B", total="150.00", status="sent")
    create_invoice(client, token, client_id, "INV-C", total="100.00", status="sent")

    resp = client.get("/invoices/", params={"status": "sent", "sort_by": "total_amount", "sort_order": "asc"}, headers=headers)
    assert resp.status_code == 200
    assert [i["invoice_number"] for i in resp.json()] == ["INV-C", "INV-B"]

    resp = client.get("/invoices/", params={"limit": 1, "skip": 1, "sort_by": "total_amount"}, headers=headers)
    assert [i["invoice_number"] for i in resp.json()] == ["INV-C"]

    assert client.get("/invoices/", params={"sort_by": "nope"}, headers=headers).status_code == 400
    assert client.get("/invoices/", params={"sort_order": "sideways"}, headers=headers).status_code == 400


def test_invalid_status_transition_returns_409():
    client = TestClient(app)
    token = register_and_login(client, "trans@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-5")

    resp = client.patch(f"/invoices/{invoice['id']}", json={"status": "overdue"}, headers=headers)
    assert resp.status_code == 409

    resp = client.patch(f"/invoices/{invoice['id']}", json={"status": "sent"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "sent"


def test_mark_paid_with_outstanding_balance_rejected():
    client = TestClient(app)
    token = register_and_login(client, "paid@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-6", status="sent")

    resp = client.patch(f"/invoices/{invoice['id']}", json={"status": "paid"}, headers=headers)
    assert resp.status_code == 400


def test_zero_total_invoice_can_be_marked_paid():
    client = TestClient(app)
    token = register_and_login(client, "zero@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-7", total="0.00", status="sent")

    resp = client.patch(f"/invoices/{invoice['id']}", json={"status": "paid"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "paid"


def test_cancelled_invoice_is_terminal_except_archive():
    client = TestClient(app)
    token = register_and_login(client, "cancel@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-8", status="sent")

    resp = client.patch(f"/invoices/{invoice['id']}", json={"status": "cancelled"}, headers=headers)
    assert resp.status_code == 200
    assert client.patch(f"/invoices/{invoice['id']}", json={"status": "sent"}, headers=headers).status_code == 409
    assert client.patch(
        f"/invoices/{invoice['id']}", json={"due_date": "2030-03-01T00:00:00Z"}, headers=headers
    ).status_code == 409

    resp = client.post(f"/invoices/{invoice['id']}/archive", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "archived"
    assert client.get("/invoices/", headers=headers).json() == []
    archived = client.get("/invoices/", params={"include_archived": True}, headers=headers).json()
    assert [i["id"] for i in archived] == [invoice["id"]]


def test_due_date_change_moves_reminder():
    client = TestClient(app)
    token = register_and_login(client, "due@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-9", status="sent")

    resp = client.patch(
        f"/invoices/{invoice['id']}", json={"due_date": "2030-03-10T00:00:00Z", "notes": "extended"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["notes"] == "extended"

    db = SessionLocal()
    try:
        reminders = db.query(Reminder).filter(Reminder.invoice_id == invoice["id"]).all()
        assert len(reminders) == 1
        assert reminders[0].fire_at.strftime("%Y-%m-%d") == "2030-03-07"
    finally:
        db.close()


def test_rejected_status_change_leaves_due_date_and_reminder_untouched():
    client = TestClient(app)
    token = register_and_login(client, "atomic@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-12", status="sent")

    resp = client.patch(
        f"/invoices/{invoice['id']}",
        json={"due_date": "2030-06-01T00:00:00Z", "status": "draft", "notes": "should not stick"},
        headers=headers,
    )
    assert resp.status_code == 409

    current = client.get(f"/invoices/{invoice['id']}", headers=headers).json()
    assert current["due_date"].startswith("2030-02-01")
    assert current["status"] == "sent"
    assert current["notes"] is None

    db = SessionLocal()
    try:
        reminders = db.query(Reminder).filter(Reminder.invoice_id == invoice["id"]).all()
        assert len(reminders) == 1
        assert reminders[0].status == ReminderStatus.PENDING
        assert reminders[0].fire_at.strftime("%Y-%m-%d") == "2030-01-29"
    finally:
        db.close()


def test_invoice_datetimes_are_returned_with_utc_offset():
    client = TestClient(app)
    token = register_and_login(client, "tz@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-13")

    body = client.get(f"/invoices/{invoice['id']}", headers=headers).json()
    for field in ("issue_date", "due_date", "created_at", "updated_at"):
        assert body[field].endswith(("Z", "+00:00")), field


def test_payment_link_is_stable():
    client = TestClient(app)
    token = register_and_login(client, "link@example.com", "secret")
    headers = {"Authorization": f"Bearer {token}"}
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, "INV-10", status="sent")

    first = client.post(f"/invoices/{invoice['id']}/payment-link", headers=headers).json()
    second = client.post(f"/invoices/{invoice['id']}/payment-link", headers=headers).json()
    assert first["payment_token"] == second["payment_token"]
    assert first["url"].endswith(f"/pay/{first['payment_token']}")


def test_invoice_scoped_to_owner():
    client = TestClient(app)
    token_a = register_and_login(client, "owner-a@example.com", "secret")
    token_b = register_and_login(client, "owner-b@example.com", "secret")
    client_id = create_client(client, token_a)
    invoice = create_invoice(client, token_a, client_id, "INV-11")

    resp = client.get(f"/invoices/{invoice['id']}", headers={"Authorization": f"Bearer {token_b}"})
    assert resp.status_code == 404
