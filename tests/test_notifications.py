import asyncio
import json
from datetime import date, datetime

import pytest

from bailbonds.notifications import (
    Notification,
    NotificationStore,
    ReminderMonitor,
    WorkflowRule,
    evaluate_rules,
    load_rules,
)
from bailbonds.settings import DEFAULT_SETTINGS
from bailbonds.storage import MemoryStorage

NOW = datetime(2024, 6, 15, 12, 0)
SETTINGS = DEFAULT_SETTINGS["notifications"]


def _rule(trigger: str, **extra) -> WorkflowRule:
    return WorkflowRule(id=f"rule-{trigger}", name=trigger, trigger=trigger, **extra)


def test_store_appends_and_folds_status(tmp_path) -> None:
    store = NotificationStore(tmp_path)
    first = store.add(Notification(type="court-date", title="A", message="a", dedupe_key="k1"))
    assert first is not None
    assert store.add(Notification(type="court-date", title="dup", message="dup", dedupe_key="k1")) is None
    store.mark_read(first.id)

    reopened = NotificationStore(tmp_path)
    loaded = reopened.get(first.id)
    assert loaded.status == "read"
    assert loaded.read_at is not None
    assert reopened.unread_count() == 0
    assert reopened.mark_read("missing") is None


def test_store_list_filters(tmp_path) -> None:
    store = NotificationStore(tmp_path)
    court = store.add(Notification(type="court-date", title="A", message="a"))
    store.add(Notification(type="payment-due", title="B", message="b"))
    store.dismiss(court.id)
    assert [item.type for item in store.list(status="dismissed")] == ["court-date"]
    assert [item.type for item in store.list(type="payment-due")] == ["payment-due"]
    assert len(store.list(status="all", type="all")) == 2
    assert store.unread_count() == 1


def test_store_compacts_when_large(tmp_path) -> None:
    store = NotificationStore(tmp_path, max_lines=3)
    items = store.add_many(
        Notification(type="payment-due", title=str(index), message="m", dedupe_key=f"k{index}")
        for index in range(3)
    )
    store.mark_sent(items[0].id)
    lines = store.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert all(json.loads(line)["kind"] == "notification" for line in lines)
    assert store.get(items[0].id).status == "sent"


def test_store_skips_unreadable_lines(tmp_path) -> None:
    store = NotificationStore(tmp_path)
    store.add(Notification(type="court-date", title="A", message="a"))
    with store.path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")
    assert len(store.list()) == 1


def test_workflow_rule_validation() -> None:
    with pytest.raises(ValueError):
        WorkflowRule.from_dict({"id": "x", "name": "x", "trigger": "never"})
    rules = load_rules(DEFAULT_SETTINGS["workflow_rules"] + [{"id": "bad", "trigger": "nope"}])
    assert [rule.id for rule in rules] == ["rule-1", "rule-2", "rule-3", "rule-4"]
    assert rules[0].to_dict()["recipients"] == ["client", "indemnitor", "agency"]


def test_court_reminders_inside_lead_time() -> None:
    snapshot = {
        "clients": [{"id": "c1", "first_name": "John", "last_name": "Smith"}],
        "cases": [
            {"id": "k1", "case_number": "CR-1", "client_id": "c1", "court_date": "2024-06-15", "status": "open"},
            {"id": "k2", "case_number": "CR-2", "client_id": "c1", "court_date": "2024-06-16", "status": "open"},
            {"id": "k3", "case_number": "CR-3", "client_id": "c1", "court_date": "2024-06-17", "status": "open"},
            {"id": "k4", "case_number": "CR-4", "client_id": "c1", "court_date": "2024-06-16", "status": "closed"},
        ],
    }
    found = evaluate_rules([_rule("court-date")], snapshot, SETTINGS, NOW)
    assert [item.case_id for item in found] == ["k1", "k2"]
    assert [item.priority for item in found] == ["critical", "high"]
    assert "John Smith" in found[0].message
    assert found[1].dedupe_key == "rule-court-date:case:k2:2024-06-16"


def test_payment_alerts() -> None:
    snapshot = {
        "clients": [],
        "bonds": [
            {"id": "b1", "bond_number": "BB-1", "payment_status": "overdue"},
            {"id": "b2", "bond_number": "BB-2", "payment_status": "pending", "issue_date": "2024-06-10"},
            {"id": "b3", "bond_number": "BB-3", "payment_status": "pending", "issue_date": "2024-06-14"},
            {"id": "b4", "bond_number": "BB-4", "payment_status": "paid_full", "issue_date": "2024-01-01"},
        ],
    }
    found = evaluate_rules([_rule("payment-due")], snapshot, SETTINGS, NOW)
    assert [item.bond_id for item in found] == ["b1", "b2"]
    assert "Unknown client" in found[0].message


def test_checkin_reminders_only_for_portal_clients() -> None:
    snapshot = {
        "clients": [
            {"id": "c1", "first_name": "A", "portal_enabled": True, "last_checkin": "2024-06-01T00:00:00Z"},
            {"id": "c2", "first_name": "B", "portal_enabled": True, "last_checkin": "2024-06-10T00:00:00Z"},
            {"id": "c3", "first_name": "C", "portal_enabled": True},
            {"id": "c4", "first_name": "D", "portal_enabled": False},
        ]
    }
    found = evaluate_rules([_rule("check-in-overdue")], snapshot, SETTINGS, NOW)
    assert [item.client_id for item in found] == ["c1", "c3"]
    assert "Never" in found[1].message


def test_new_bonds_and_inactive_rules() -> None:
    snapshot = {
        "clients": [],
        "bonds": [
            {"id": "b1", "bond_number": "BB-1", "created_at": "2024-06-14T09:00:00Z"},
            {"id": "b2", "bond_number": "BB-2", "created_at": "2024-06-01T09:00:00Z"},
        ],
    }
    assert [item.bond_id for item in evaluate_rules([_rule("bond-created")], snapshot, SETTINGS, NOW)] == ["b1"]
    assert evaluate_rules([_rule("bond-created", is_active=False)], snapshot, SETTINGS, NOW) == []
    assert evaluate_rules([_rule("document-expires")], snapshot, SETTINGS, NOW) == []


def test_monitor_scan_is_idempotent(tmp_path) -> None:
    storage = MemoryStorage(today=date(2024, 6, 15))
    monitor = ReminderMonitor(NotificationStore(tmp_path), lambda: storage, lambda: DEFAULT_SETTINGS)
    added = monitor.scan(NOW)
    assert [item.bond_id for item in added] == ["bond-3"]
    assert added[0].priority == "critical"
    assert monitor.scan(NOW) == []
    assert monitor.last_scan is not None
    assert monitor.interval() == 300.0


def test_monitor_loop_records_errors(tmp_path) -> None:
    def broken_storage():
        raise RuntimeError("storage offline")

    monitor = ReminderMonitor(NotificationStore(tmp_path), broken_storage, lambda: DEFAULT_SETTINGS)

    async def run_once() -> None:
        task = asyncio.ensure_future(monitor.loop(interval=60))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run_once())
    assert monitor.last_error == "storage offline"
