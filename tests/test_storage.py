import threading
import time
from datetime import date

import pytest

from bailbonds.portal import verify_password
from bailbonds.storage import DuplicateError, GibsonStorage, MemoryStorage, build_storage

TODAY = date(2024, 6, 15)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage(today=TODAY)


def test_seed_data_is_dated_relative_to_today(storage: MemoryStorage) -> None:
    case = storage.get_case("case-1")
    assert case["court_date"] == "2024-06-20"
    assert [row["case_number"] for row in storage.upcoming_court_dates(today=TODAY)] == [
        "CR-2024-001",
        "CR-2024-002",
    ]


def test_list_clients_filters_and_searches(storage: MemoryStorage) -> None:
    assert [row["id"] for row in storage.list_clients(status="high_risk")] == ["client-3"]
    assert [row["id"] for row in storage.list_clients(search="GARCIA")] == ["client-2"]
    assert len(storage.list_clients(status="all")) == 3


def test_create_assigns_id_and_timestamps(storage: MemoryStorage) -> None:
    client = storage.create_client(
        {"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com", "bogus": "x"}
    )
    assert client["id"]
    assert client["created_at"] == client["updated_at"]
    assert "bogus" not in client
    assert client["portal_enabled"] is False
    assert storage.get_client(client["id"])["first_name"] == "Ann"


def test_unique_columns_are_enforced(storage: MemoryStorage) -> None:
    with pytest.raises(DuplicateError) as excinfo:
        storage.create_client({"first_name": "X", "last_name": "Y", "email": "john.smith@example.com"})
    assert "Email address already exists" in str(excinfo.value)
    with pytest.raises(DuplicateError):
        storage.update_case("case-2", {"case_number": "CR-2024-001"})
    # Saving a record with its own value is not a conflict.
    assert storage.update_case("case-1", {"case_number": "CR-2024-001"})["id"] == "case-1"


def test_update_and_delete(storage: MemoryStorage) -> None:
    updated = storage.update_bond("bond-2", {"payment_status": "paid_full", "id": "hijack"})
    assert updated["id"] == "bond-2"
    assert updated["payment_status"] == "paid_full"
    assert storage.update_bond("missing", {"status": "active"}) is None
    assert storage.delete_bond("bond-2") is True
    assert storage.delete_bond("bond-2") is False


def test_joined_views(storage: MemoryStorage) -> None:
    details = {row["id"]: row for row in storage.bonds_with_details()}
    assert details["bond-3"]["client_first_name"] == "Robert"
    assert details["bond-3"]["court_date"] == "2024-06-13"
    assert details["bond-1"]["agent_last_name"] == "Johnson"
    totals = {row["id"]: row["total_bonds"] for row in storage.clients_with_bonds()}
    assert totals == {"client-1": 1, "client-2": 1, "client-3": 1}


def test_dashboard_and_financial_figures(storage: MemoryStorage) -> None:
    assert storage.dashboard_stats(TODAY) == {
        "activeBonds": 2,
        "totalRevenue": 1250.0,
        "pendingPayments": 500.0,
        "upcomingCourtDates": 2,
    }
    summary = storage.financial_summary(TODAY)
    assert summary["monthlyRevenue"] == 500.0
    assert summary["outstanding"] == 250.0
    assert summary["collectionRate"] == pytest.approx(66.7)


def test_portal_credentials(storage: MemoryStorage) -> None:
    client = storage.enable_portal("client-1", "jsmith", "hunter22")
    assert client["portal_enabled"] is True
    assert client["portal_password"].startswith("pbkdf2_sha256$")
    assert verify_password("hunter22", storage.get_client_by_portal_username("jsmith")["portal_password"])
    with pytest.raises(DuplicateError):
        storage.enable_portal("client-3", "mgarcia", "other")


def test_portal_views(storage: MemoryStorage) -> None:
    assert [row["id"] for row in storage.client_bonds("client-2")] == ["bond-2"]
    assert [row["id"] for row in storage.client_court_dates("client-3", TODAY)] == []
    assert [row["id"] for row in storage.client_court_dates("client-2", TODAY)] == ["case-2"]


def test_touch_checkin(storage: MemoryStorage) -> None:
    storage.touch_checkin("client-1", "2024-06-15T10:00:00.000000Z")
    assert storage.get_client("client-1")["last_checkin"] == "2024-06-15T10:00:00.000000Z"


def test_record_activity_never_raises(storage: MemoryStorage, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(data):
        raise ValueError("bad details")

    monkeypatch.setattr(storage, "create_activity", broken)
    assert storage.record_activity("system-user", "created", "client", "client-1") is None


def test_activities_filtered_and_limited(storage: MemoryStorage) -> None:
    storage.record_activity("system-user", "updated", "bond", "bond-3", {"fields": ["status"]})
    rows = storage.list_activities(resource_id="bond-3", resource_type="bond")
    assert [row["action"] for row in rows] == ["updated", "created"]
    assert len(storage.list_activities(limit=1)) == 1


def test_snapshot_returns_copies(storage: MemoryStorage) -> None:
    snapshot = storage.snapshot()
    snapshot["clients"][0]["first_name"] = "Changed"
    assert "Changed" not in {row["first_name"] for row in storage.list_clients()}


def test_build_storage_picks_backend() -> None:
    assert isinstance(build_storage({"gibson": {"api_key": ""}}), MemoryStorage)
    gibson = build_storage({"gibson": {"api_key": "k", "base_url": "https://gibson.test"}})
    assert isinstance(gibson, GibsonStorage)
    assert gibson.client.base_url == "https://gibson.test"


def test_concurrent_creates_keep_unique_columns(storage: MemoryStorage, monkeypatch: pytest.MonkeyPatch) -> None:
    insert = storage._insert

    def slow_insert(table, record):
        time.sleep(0.05)
        return insert(table, record)

    monkeypatch.setattr(storage, "_insert", slow_insert)
    errors = []

    def create() -> None:
        try:
            storage.create_client({"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com"})
        except DuplicateError as exc:
            errors.append(exc)

    workers = [threading.Thread(target=create) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()
    matches = [row for row in storage.list_clients() if row.get("email") == "ann@example.com"]
    assert len(matches) == 1
    assert len(errors) == 1


def test_create_user_validates_and_hashes(storage: MemoryStorage) -> None:
    user = storage.create_user(
        {
            "username": "kim",
            "email": "kim@example.com",
            "password": "s3cret",
            "firstName": "Kim",
            "lastName": "Park",
        }
    )
    assert user["role"] == "agent"
    assert user["password"].startswith("pbkdf2_sha256$")
    assert verify_password("s3cret", user["password"])
    with pytest.raises(ValueError):
        storage.create_user({"username": "kim2", "email": "kim2@example.com", "role": "owner"})


def test_record_activity_rejects_incomplete_entries(storage: MemoryStorage) -> None:
    before = len(storage.list_activities())
    assert storage.record_activity("system-user", "", "client", "client-1") is None
    assert len(storage.list_activities()) == before
    entry = storage.record_activity("system-user", "viewed", "client", "client-1", {"page": 1})
    assert entry["details"] == {"page": 1}
