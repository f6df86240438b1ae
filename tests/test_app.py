import multiprocessing
import socket
import time
from pathlib import Path
from typing import Tuple

import pytest
import requests
import uvicorn

PROJECT_ROOT = Path(__file__).resolve().parents[1]

PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _run_server(port: int, project_root: Path, data_dir: Path) -> None:
    import os
    import sys

    sys.path.insert(0, str(project_root))
    os.environ["BAILBONDS_DATA_DIR"] = str(data_dir)
    for variable in ("GIBSON_API_KEY", "X_GIBSON_API_KEY", "OPENAI_API_KEY", "ASSISTANT_BASE_URL"):
        os.environ.pop(variable, None)

    from bailbonds.main import app  # local import so the data dir applies

    uvicorn.run(
        app,
        host="127.0.0.1",
        port=port,
        log_level="error",
    )


@pytest.fixture
def http_session(tmp_path_factory: pytest.TempPathFactory) -> Tuple[requests.Session, str]:
    data_dir = tmp_path_factory.mktemp("data")
    port = _find_free_port()
    process = multiprocessing.Process(
        target=_run_server,
        args=(port, PROJECT_ROOT, data_dir),
        daemon=False,
    )
    process.start()

    session = requests.Session()
    base_url = f"http://127.0.0.1:{port}"
    deadline = time.time() + 15
    while time.time() < deadline:
        try:
            response = session.get(base_url, timeout=1)
        except requests.RequestException:
            time.sleep(0.1)
            continue
        if response.status_code == 200:
            break
    else:
        process.terminate()
        process.join(timeout=2)
        pytest.fail("Server did not start within timeout.")

    yield session, base_url

    session.close()
    process.terminate()
    process.join(timeout=2)


def _new_client(**overrides) -> dict:
    payload = {
        "firstName": "Test",
        "lastName": "Person",
        "dateOfBirth": "1992-01-01",
        "phone": "(555) 000-1111",
        "email": "test.person@example.com",
        "address": "1 Elm St",
        "city": "Springfield",
        "state": "IL",
        "zipCode": "62701",
    }
    payload.update(overrides)
    return payload


def _portal_login(session: requests.Session, base: str) -> str:
    resp = session.post(
        f"{base}/api/client/login",
        json={"username": "mgarcia", "password": "checkin2024"},
        timeout=5,
    )
    assert resp.status_code == 200
    return resp.json()["token"]


def test_dashboard_served(http_session: Tuple[requests.Session, str]) -> None:
    session, base_url = http_session
    response = session.get(base_url, timeout=2)
    assert response.status_code == 200
    assert "<!DOCTYPE html>" in response.text
    assert "BailBond Pro" in response.text
    assert "CR-2024-001" in response.text


def test_dashboard_stats_from_sample_data(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    stats = session.get(f"{base}/api/dashboard/stats", timeout=3).json()
    assert stats["activeBonds"] == 2
    assert stats["totalRevenue"] == 1250.0
    assert stats["upcomingCourtDates"] == 2

    activity = session.get(f"{base}/api/dashboard/recent-activity", params={"limit": 1}, timeout=3).json()
    assert len(activity) == 1
    court = session.get(f"{base}/api/dashboard/upcoming-court-dates", timeout=3).json()
    assert [row["caseNumber"] for row in court] == ["CR-2024-001", "CR-2024-002"]


def test_client_lifecycle(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session

    resp = session.post(f"{base}/api/clients", json=_new_client(), timeout=3)
    assert resp.status_code == 201
    client = resp.json()
    assert client["firstName"] == "Test"
    assert "portalPassword" not in client
    client_id = client["id"]

    found = session.get(f"{base}/api/clients", params={"search": "test.person"}, timeout=3).json()
    assert [row["id"] for row in found] == [client_id]

    duplicate = session.post(f"{base}/api/clients", json=_new_client(firstName="Other"), timeout=3)
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Email address already exists. Please use a different email."

    resp = session.patch(f"{base}/api/clients/{client_id}", json={"status": "high_risk"}, timeout=3)
    assert resp.status_code == 200
    assert resp.json()["status"] == "high_risk"

    bad = session.patch(f"{base}/api/clients/{client_id}", json={"status": "missing"}, timeout=3)
    assert bad.status_code == 400
    assert bad.json()["error"] == "Validation error"

    history = session.get(
        f"{base}/api/activities", params={"resourceId": client_id, "resourceType": "client"}, timeout=3
    ).json()
    assert {row["action"] for row in history} == {"created", "updated"}

    assert session.delete(f"{base}/api/clients/{client_id}", timeout=3).status_code == 204
    missing = session.get(f"{base}/api/clients/{client_id}", timeout=3)
    assert missing.status_code == 404
    assert missing.json() == {"error": "Client not found"}


def test_validation_errors_list_fields(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    resp = session.post(f"{base}/api/cases", json={"caseNumber": "CR-X"}, timeout=3)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Validation error"
    fields = {detail["field"] for detail in body["details"]}
    assert "clientId" in fields


def test_bond_premium_uses_agency_default(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    resp = session.post(
        f"{base}/api/bonds",
        json={
            "bondNumber": "BB-TEST-001",
            "clientId": "client-1",
            "caseId": "case-1",
            "bondAmount": "7500",
            "issueDate": "2024-06-01",
        },
        timeout=3,
    )
    assert resp.status_code == 201
    bond = resp.json()
    assert bond["premiumAmount"] == "750.00"
    assert bond["premiumRate"] == "0.1000"

    duplicate = session.post(
        f"{base}/api/bonds",
        json={
            "bondNumber": "BB-TEST-001",
            "clientId": "client-1",
            "caseId": "case-1",
            "bondAmount": "100",
            "issueDate": "2024-06-01",
        },
        timeout=3,
    )
    assert duplicate.status_code == 400
    assert "Bond number already exists" in duplicate.json()["error"]

    details = session.get(f"{base}/api/bonds/with-details", timeout=3).json()
    row = next(item for item in details if item["bondNumber"] == "BB-TEST-001")
    assert row["clientFirstName"] == "John"


def test_bond_premium_accepts_snake_case_keys(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    mixed = session.post(
        f"{base}/api/bonds",
        json={
            "bondNumber": "BB-TEST-002",
            "clientId": "client-1",
            "caseId": "case-1",
            "bond_amount": "2000",
            "premium_rate": "0.15",
            "issueDate": "2024-06-01",
        },
        timeout=3,
    )
    assert mixed.status_code == 201
    assert mixed.json()["premiumRate"] == "0.1500"
    assert mixed.json()["premiumAmount"] == "300.00"

    snake = session.post(
        f"{base}/api/bonds",
        json={
            "bond_number": "BB-TEST-003",
            "client_id": "client-2",
            "case_id": "case-2",
            "bond_amount": "5000",
            "issue_date": "2024-06-02",
        },
        timeout=3,
    )
    assert snake.status_code == 201
    assert snake.json()["premiumRate"] == "0.1000"
    assert snake.json()["premiumAmount"] == "500.00"


def test_payments_and_financial_summary(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    payments = session.get(f"{base}/api/payments", params={"bondId": "bond-2"}, timeout=3).json()
    assert {row["transactionId"] for row in payments} == {"TXN-1002", "TXN-1003"}

    resp = session.post(
        f"{base}/api/payments",
        json={
            "transactionId": "TXN-TEST",
            "bondId": "bond-2",
            "clientId": "client-2",
            "amount": 100,
            "paymentType": "fee",
            "paymentMethod": "cash",
            "paymentDate": "2024-06-01",
        },
        timeout=3,
    )
    assert resp.status_code == 201
    assert resp.json()["amount"] == "100.00"

    summary = session.get(f"{base}/api/financial/summary", timeout=3).json()
    assert set(summary) == {"monthlyRevenue", "outstanding", "collectionRate"}
    assert summary["outstanding"] == 250.0


def test_portal_flow(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    token = _portal_login(session, base)
    headers = {"Authorization": f"Bearer {token}"}

    dashboard = session.get(f"{base}/api/client/client-2/dashboard", headers=headers, timeout=3)
    assert dashboard.status_code == 200
    data = dashboard.json()
    assert data["client"]["firstName"] == "Maria"
    assert [bond["bondNumber"] for bond in data["bonds"]] == ["BB-2024-002"]
    assert [case["caseNumber"] for case in data["upcomingCourtDates"]] == ["CR-2024-002"]

    assert session.get(f"{base}/api/client/client-2/bonds", timeout=3).status_code == 401
    bad_token = {"Authorization": "Bearer nope"}
    assert session.get(f"{base}/api/client/client-2/bonds", headers=bad_token, timeout=3).status_code == 401
    other = session.get(f"{base}/api/client/client-1/bonds", headers=headers, timeout=3)
    assert other.status_code == 403
    assert other.json()["error"] == "Access denied"

    no_bond = session.post(f"{base}/api/client/client-2/checkin", headers=headers, data={}, timeout=3)
    assert no_bond.status_code == 400
    assert no_bond.json()["error"] == "Bond ID is required"

    foreign = session.post(
        f"{base}/api/client/client-2/checkin", headers=headers, data={"bondId": "bond-1"}, timeout=3
    )
    assert foreign.status_code == 403

    resp = session.post(
        f"{base}/api/client/client-2/checkin",
        headers=headers,
        data={"bondId": "bond-2", "latitude": "39.78", "longitude": "-89.65", "locationName": "Home"},
        files={"photo": ("selfie.png", PNG_BYTES, "image/png")},
        timeout=5,
    )
    assert resp.status_code == 200
    checkin = resp.json()["checkin"]
    assert checkin["photoUrl"].startswith("/uploads/")
    assert checkin["locationName"] == "Home"

    checkins = session.get(
        f"{base}/api/client/client-2/checkins", headers=headers, params={"bondId": "bond-2"}, timeout=3
    ).json()
    assert checkin["id"] in {row["id"] for row in checkins}
    client = session.get(f"{base}/api/clients/client-2", timeout=3).json()
    assert client["lastCheckin"] == checkin["createdAt"]


def test_portal_login_failures(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    missing = session.post(f"{base}/api/client/login", json={"username": "mgarcia"}, timeout=3)
    assert missing.status_code == 400
    wrong = session.post(
        f"{base}/api/client/login", json={"username": "mgarcia", "password": "wrong"}, timeout=5
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"] == "Invalid credentials"


def test_enable_portal_then_login(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    resp = session.post(
        f"{base}/api/client/client-1/enable-portal",
        json={"username": "jsmith", "password": "s3cret-pass"},
        timeout=5,
    )
    assert resp.status_code == 200
    assert resp.json()["client"]["portalEnabled"] is True
    login = session.post(
        f"{base}/api/client/login", json={"username": "jsmith", "password": "s3cret-pass"}, timeout=5
    )
    assert login.status_code == 200
    assert login.json()["client"]["id"] == "client-1"


def test_client_patch_cannot_change_portal_access(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    created = session.post(f"{base}/api/clients", json=_new_client(email="patch.portal@example.com"), timeout=3)
    assert created.status_code == 201
    client_id = created.json()["id"]

    resp = session.patch(
        f"{base}/api/clients/{client_id}",
        json={
            "city": "Peoria",
            "portalUsername": "patched",
            "portalPassword": "letmein",
            "portalEnabled": True,
            "lastCheckin": "2024-01-01T00:00:00.000000Z",
        },
        timeout=3,
    )
    assert resp.status_code == 200
    client = resp.json()
    assert client["city"] == "Peoria"
    assert client["portalEnabled"] is False
    assert client.get("portalUsername") is None
    assert client.get("lastCheckin") is None

    login = session.post(
        f"{base}/api/client/login", json={"username": "patched", "password": "letmein"}, timeout=5
    )
    assert login.status_code == 401


def test_document_upload(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    resp = session.post(
        f"{base}/api/documents/upload",
        data={"category": "court_papers", "relatedType": "case", "relatedId": "case-1"},
        files=[("files", ("summons.txt", b"Appear on Monday", "text/plain"))],
        timeout=5,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Successfully uploaded 1 document(s)"
    assert body["documents"][0]["originalName"] == "summons.txt"

    no_category = session.post(
        f"{base}/api/documents/upload",
        files=[("files", ("a.txt", b"x", "text/plain"))],
        timeout=3,
    )
    assert no_category.status_code == 400
    assert no_category.json()["error"] == "Category is required"

    wrong_type = session.post(
        f"{base}/api/documents/upload",
        data={"category": "contract"},
        files=[("files", ("run.sh", b"echo", "application/x-sh"))],
        timeout=3,
    )
    assert wrong_type.status_code == 400

    listed = session.get(f"{base}/api/documents", params={"category": "court_papers"}, timeout=3).json()
    assert [row["originalName"] for row in listed] == ["summons.txt"]


def test_contract_generation(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    templates = session.get(f"{base}/api/contract-templates", timeout=3).json()
    assert templates[0]["id"] == "template-1"

    resp = session.post(
        f"{base}/api/contracts",
        json={"templateId": "template-1", "clientId": "client-1", "caseId": "case-1", "bondId": "bond-1"},
        timeout=3,
    )
    assert resp.status_code == 201
    contract = resp.json()
    assert "John Smith" in contract["content"]
    assert "$10,000.00" in contract["content"]
    assert contract["missingVariables"] == []

    signed = session.patch(f"{base}/api/contracts/{contract['id']}", json={"status": "signed"}, timeout=3)
    assert signed.status_code == 200
    assert signed.json()["signedAt"]

    partial = session.post(
        f"{base}/api/contracts",
        json={"templateId": "template-1", "clientId": "client-2", "language": "es"},
        timeout=3,
    ).json()
    assert partial["content"].startswith("ACUERDO DE FIANZA")
    assert "caseNumber" in partial["missingVariables"]


def test_assistant_routes_fall_back_offline(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    assert session.post(f"{base}/api/ai/search", json={}, timeout=3).status_code == 400
    results = session.post(f"{base}/api/ai/search", json={"query": "garcia"}, timeout=3).json()["results"]
    assert results

    translated = session.post(
        f"{base}/api/ai/translate", json={"text": "Hola", "fromLanguage": "es", "toLanguage": "en"}, timeout=3
    )
    assert translated.json() == {"translation": "Hola"}

    assert session.post(f"{base}/api/ai/help", json={"question": "How?"}, timeout=3).json()["response"]
    assert session.post(f"{base}/api/ai/analyze-compliance", json={}, timeout=3).status_code == 400
    missing = session.post(f"{base}/api/ai/analyze-compliance", json={"caseId": "nope"}, timeout=3)
    assert missing.status_code == 404
    analysis = session.post(f"{base}/api/ai/analyze-compliance", json={"caseId": "case-3"}, timeout=3)
    assert analysis.status_code == 200


def test_notifications_scan_is_idempotent(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    session.post(f"{base}/api/notifications/scan", timeout=5)
    again = session.post(f"{base}/api/notifications/scan", timeout=5).json()
    assert again["added"] == 0

    items = session.get(f"{base}/api/notifications", params={"type": "payment-due"}, timeout=3).json()
    overdue = next(item for item in items if item["bondId"] == "bond-3")
    assert overdue["priority"] == "critical"

    read = session.post(f"{base}/api/notifications/{overdue['id']}/read", timeout=3)
    assert read.json()["status"] == "read"
    assert session.post(f"{base}/api/notifications/unknown/dismiss", timeout=3).status_code == 404


def test_workflow_rules(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    rules = session.get(f"{base}/api/workflow-rules", timeout=3).json()
    assert {rule["id"] for rule in rules} >= {"rule-1", "rule-2", "rule-3", "rule-4"}

    resp = session.post(
        f"{base}/api/workflow-rules",
        json={"id": "rule-3", "name": "Check-in Reminder", "trigger": "check-in-overdue", "isActive": False},
        timeout=3,
    )
    assert resp.status_code == 200
    assert resp.json()["isActive"] is False

    bad = session.post(f"{base}/api/workflow-rules", json={"name": "X", "trigger": "moon-phase"}, timeout=3)
    assert bad.status_code == 400


def test_reports(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    summary = session.get(f"{base}/api/reports/summary", timeout=3).json()
    assert {"performance", "clients", "bondStatus", "risk", "monthlyRevenue", "paymentMethods"} <= set(summary)

    export = session.get(f"{base}/api/reports/export.csv", params={"kind": "payments"}, timeout=3)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "TXN-1001" in export.text
    assert session.get(f"{base}/api/reports/export.csv", params={"kind": "users"}, timeout=3).status_code == 400


def test_admin_and_health(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    status = session.get(f"{base}/status", timeout=3).json()
    assert status["storage"] == "memory"
    assert status["assistant"] is False

    health = session.get(f"{base}/health/gibson", timeout=3).json()
    assert health["status"] == "warn"

    assert session.post(f"{base}/api/admin/init-database", timeout=3).status_code == 400


def test_html_pages(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    for path in (
        "/clients",
        "/clients/client-1",
        "/cases",
        "/bonds?status=at_risk",
        "/financial",
        "/documents",
        "/reports",
        "/notifications",
        "/contracts",
        "/settings",
        "/help",
        "/portal/login",
    ):
        resp = session.get(f"{base}{path}", timeout=3)
        assert resp.status_code == 200, path
        assert "<!DOCTYPE html>" in resp.text

    bonds = session.get(f"{base}/bonds", params={"status": "at_risk"}, timeout=3).text
    assert "BB-2024-003" in bonds
    assert "BB-2024-001" not in bonds


def test_language_switch(http_session: Tuple[requests.Session, str]) -> None:
    _, base = http_session
    browser = requests.Session()
    resp = browser.get(f"{base}/language/es", headers={"Referer": f"{base}/clients"}, timeout=3)
    assert resp.status_code == 200
    assert resp.url.endswith("/clients")
    assert browser.cookies.get("language") == "es"
    assert "Clientes" in resp.text
    browser.close()


def test_accept_language_header_picks_language(http_session: Tuple[requests.Session, str]) -> None:
    _, base = http_session
    resp = requests.get(f"{base}/help", headers={"Accept-Language": "es-MX,es;q=0.9"}, timeout=3)
    assert resp.status_code == 200
    assert '<html lang="es">' in resp.text
    english = requests.get(f"{base}/help", timeout=3)
    assert '<html lang="en">' in english.text


def test_settings_form_round_trip(http_session: Tuple[requests.Session, str]) -> None:
    session, base = http_session
    resp = session.post(
        f"{base}/settings",
        data={"agency_name": "Liberty Bail", "default_premium_rate": "12", "scan_interval_seconds": "abc"},
        timeout=5,
    )
    assert resp.status_code == 200
    assert "Settings saved." in resp.text
    assert "Liberty Bail" in resp.text
    session.post(f"{base}/settings", data={"agency_name": "BailBond Pro", "default_premium_rate": "10"}, timeout=5)


def test_portal_pages(http_session: Tuple[requests.Session, str]) -> None:
    _, base = http_session
    browser = requests.Session()
    assert browser.get(f"{base}/portal", timeout=3).url.endswith("/portal/login")

    resp = browser.post(
        f"{base}/portal/login", data={"username": "mgarcia", "password": "checkin2024"}, timeout=5
    )
    assert resp.status_code == 200
    assert resp.url.endswith("/portal")
    assert "Maria Garcia" in resp.text

    browser.post(f"{base}/portal/logout", timeout=3)
    assert browser.get(f"{base}/portal", timeout=3).url.endswith("/portal/login")
    browser.close()
