from fastapi.testclient import TestClient
from finwrk.app.main import app

client = TestClient(app)


def test_read_root():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"app": "Finwrk backend", "status": "ok"}


def test_health_check_reports_job_runner():
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["jobs"]["state"] in {"idle", "running", "stopped", "disabled"}
