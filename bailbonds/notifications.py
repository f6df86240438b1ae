from __future__ import annotations

import asyncio
import json
import logging
import math
import os
import threading
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from uuid import uuid4

from .filters import format_date, parse_date

logger = logging.getLogger("bailbonds.notifications")

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

TRIGGERS = ("court-date", "payment-due", "check-in-overdue", "bond-created", "document-expires")
PRIORITIES = ("low", "medium", "high", "critical")
STATUSES = ("pending", "sent", "read", "dismissed")


def utcnow() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


def _append_jsonl(path: Path, payload: Dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False))
        handle.write("\n")


def _iter_jsonl(path: Path) -> Iterable[Dict]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except ValueError:
                logger.warning("Skipping unreadable line in %s", path)


@dataclass
class WorkflowRule:
    id: str
    name: str
    trigger: str
    name_es: str = ""
    description: str = ""
    description_es: str = ""
    condition: str = ""
    action: str = "send-notification"
    timing: str = ""
    is_active: bool = True
    recipients: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "WorkflowRule":
        known = {item.name for item in fields(cls)}
        data = {key: value for key, value in payload.items() if key in known}
        if data.get("trigger") not in TRIGGERS:
            raise ValueError(f"Unknown workflow trigger: {data.get('trigger')!r}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Notification:
    type: str
    title: str
    message: str
    title_es: str = ""
    message_es: str = ""
    priority: str = "medium"
    status: str = "pending"
    client_id: Optional[str] = None
    case_id: Optional[str] = None
    bond_id: Optional[str] = None
    scheduled_for: Optional[str] = None
    action_url: Optional[str] = None
    dedupe_key: Optional[str] = None
    rule_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=utcnow)
    sent_at: Optional[str] = None
    read_at: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Notification":
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationStore:
    """
    Append-only notification log backed by a JSONL file.

    Status changes are appended as separate records and folded into the
    notification they target when the file is read. When the file grows past
    ``max_lines`` it is compacted and atomically rewritten.
    """

    def __init__(self, root: Path, max_lines: int = 4096) -> None:
        self.path = root / "notifications.jsonl"
        self.max_lines = max_lines
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._line_count = self._count_lines()

    def _count_lines(self) -> int:
        if not self.path.exists():
            return 0
        with self.path.open("r", encoding="utf-8") as handle:
            return sum(1 for _ in handle)

    def _append(self, payload: Dict) -> None:
        _append_jsonl(self.path, payload)
        self._line_count += 1
        if self._line_count > self.max_lines:
            self.compact()

    def _load(self) -> Dict[str, Notification]:
        notifications: Dict[str, Notification] = {}
        for record in _iter_jsonl(self.path):
            if record.get("kind") == "status":
                target = notifications.get(record.get("target") or "")
                if target is None:
                    continue
                status = record.get("status")
                target.status = status
                if status == "read":
                    target.read_at = record.get("timestamp")
                elif status == "sent":
                    target.sent_at = record.get("timestamp")
                continue
            record.pop("kind", None)
            notification = Notification.from_dict(record)
            notifications[notification.id] = notification
        return notifications

    def dedupe_keys(self) -> Set[str]:
        with self._lock:
            return {item.dedupe_key for item in self._load().values() if item.dedupe_key}

    def add(self, notification: Notification) -> Optional[Notification]:
        with self._lock:
            if notification.dedupe_key and notification.dedupe_key in self.dedupe_keys():
                return None
            payload = notification.to_dict()
            payload["kind"] = "notification"
            self._append(payload)
        return notification

    def add_many(self, notifications: Iterable[Notification]) -> List[Notification]:
        added: List[Notification] = []
        with self._lock:
            known = self.dedupe_keys()
            for notification in notifications:
                if notification.dedupe_key and notification.dedupe_key in known:
                    continue
                payload = notification.to_dict()
                payload["kind"] = "notification"
                self._append(payload)
                if notification.dedupe_key:
                    known.add(notification.dedupe_key)
                added.append(notification)
        return added

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            return self._load().get(notification_id)

    def list(self, status: Optional[str] = None, type: Optional[str] = None) -> List[Notification]:
        with self._lock:
            items = list(self._load().values())
        if status and status != "all":
            items = [item for item in items if item.status == status]
        if type and type != "all":
            items = [item for item in items if item.type == type]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items

    def _set_status(self, notification_id: str, status: str) -> Optional[Notification]:
        with self._lock:
            current = self._load().get(notification_id)
            if current is None:
                return None
            timestamp = utcnow()
            self._append(
                {
                    "kind": "status",
                    "target": notification_id,
                    "status": status,
                    "timestamp": timestamp,
                }
            )
        current.status = status
        if status == "read":
            current.read_at = timestamp
        elif status == "sent":
            current.sent_at = timestamp
        return current

    def mark_read(self, notification_id: str) -> Optional[Notification]:
        return self._set_status(notification_id, "read")

    def dismiss(self, notification_id: str) -> Optional[Notification]:
        return self._set_status(notification_id, "dismissed")

    def mark_sent(self, notification_id: str) -> Optional[Notification]:
        return self._set_status(notification_id, "sent")

    def unread_count(self) -> int:
        return sum(1 for item in self.list() if item.status in ("pending", "sent"))

    def compact(self) -> None:
        with self._lock:
            latest = self._load()
            tmp_path = self.path.with_suffix(".tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                for notification in latest.values():
                    payload = notification.to_dict()
                    payload["kind"] = "notification"
                    handle.write(json.dumps(payload, ensure_ascii=False))
                    handle.write("\n")
            os.replace(tmp_path, self.path)
            self._line_count = len(latest)


def load_rules(raw_rules: Iterable[Dict[str, Any]]) -> List[WorkflowRule]:
    rules = []
    for raw in raw_rules or []:
        try:
            rules.append(WorkflowRule.from_dict(raw))
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid workflow rule %r: %s", raw, exc)
    return rules


def _client_name(client: Optional[Dict[str, Any]]) -> str:
    if not client:
        return "Unknown client"
    return f"{client.get('first_name') or ''} {client.get('last_name') or ''}".strip()


def _court_reminders(rule: WorkflowRule, snapshot: Dict[str, Any], settings: Dict[str, Any], today: date) -> List[Notification]:
    lead_days = max(1, math.ceil(float(settings.get("court_reminder_hours", 24)) / 24))
    clients = {row.get("id"): row for row in snapshot.get("clients") or []}
    found = []
    for case in snapshot.get("cases") or []:
        if case.get("status") not in (None, "open"):
            continue
        court_day = parse_date(case.get("court_date"))
        if court_day is None:
            continue
        days_until = (court_day - today).days
        if days_until < 0 or days_until > lead_days:
            continue
        name = _client_name(clients.get(case.get("client_id")))
        when = format_date(court_day)
        found.append(
            Notification(
                type="court-date",
                title="Court Date Reminder",
                title_es="Recordatorio de Fecha de Corte",
                message=f"{name} has a court appearance for case {case.get('case_number')} on {when}.",
                message_es=f"{name} tiene una comparecencia para el caso {case.get('case_number')} el {when}.",
                priority="critical" if days_until == 0 else "high",
                client_id=case.get("client_id"),
                case_id=case.get("id"),
                scheduled_for=court_day.isoformat(),
                action_url="/cases",
                dedupe_key=f"{rule.id}:case:{case.get('id')}:{court_day.isoformat()}",
                rule_id=rule.id,
            )
        )
    return found


def _payment_alerts(rule: WorkflowRule, snapshot: Dict[str, Any], settings: Dict[str, Any], today: date) -> List[Notification]:
    overdue_days = int(settings.get("payment_overdue_days", 1))
    clients = {row.get("id"): row for row in snapshot.get("clients") or []}
    found = []
    for bond in snapshot.get("bonds") or []:
        payment_status = bond.get("payment_status")
        issued = parse_date(bond.get("issue_date"))
        late = payment_status == "overdue" or (
            payment_status == "pending"
            and issued is not None
            and (today - issued).days > overdue_days
        )
        if not late:
            continue
        name = _client_name(clients.get(bond.get("client_id")))
        found.append(
            Notification(
                type="payment-due",
                title="Payment Overdue",
                title_es="Pago Vencido",
                message=f"Premium payment for bond {bond.get('bond_number')} ({name}) is overdue.",
                message_es=f"El pago de la prima de la fianza {bond.get('bond_number')} ({name}) está vencido.",
                priority="critical",
                client_id=bond.get("client_id"),
                case_id=bond.get("case_id"),
                bond_id=bond.get("id"),
                scheduled_for=today.isoformat(),
                action_url="/financial",
                dedupe_key=f"{rule.id}:bond:{bond.get('id')}:{today.isoformat()}",
                rule_id=rule.id,
            )
        )
    return found


def _checkin_reminders(rule: WorkflowRule, snapshot: Dict[str, Any], settings: Dict[str, Any], today: date) -> List[Notification]:
    interval = int(settings.get("checkin_interval_days", 7))
    found = []
    for client in snapshot.get("clients") or []:
        if not client.get("portal_enabled"):
            continue
        last = parse_date(client.get("last_checkin"))
        if last is not None and (today - last).days <= interval:
            continue
        name = _client_name(client)
        found.append(
            Notification(
                type="check-in-overdue",
                title="Check-in Overdue",
                title_es="Registro Vencido",
                message=f"{name} has not checked in since {format_date(last)}.",
                message_es=f"{name} no se ha registrado desde {format_date(last)}.",
                priority="medium",
                client_id=client.get("id"),
                scheduled_for=today.isoformat(),
                action_url=f"/clients/{client.get('id')}",
                dedupe_key=f"{rule.id}:client:{client.get('id')}:{today.isoformat()}",
                rule_id=rule.id,
            )
        )
    return found


def _new_bonds(rule: WorkflowRule, snapshot: Dict[str, Any], settings: Dict[str, Any], today: date) -> List[Notification]:
    clients = {row.get("id"): row for row in snapshot.get("clients") or []}
    found = []
    for bond in snapshot.get("bonds") or []:
        created = parse_date(bond.get("created_at"))
        if created is None or (today - created).days > 1 or created > today:
            continue
        name = _client_name(clients.get(bond.get("client_id")))
        found.append(
            Notification(
                type="bond-created",
                title="New Bond Written",
                title_es="Nueva Fianza Emitida",
                message=f"Bond {bond.get('bond_number')} was written for {name}.",
                message_es=f"Se emitió la fianza {bond.get('bond_number')} para {name}.",
                priority="low",
                client_id=bond.get("client_id"),
                case_id=bond.get("case_id"),
                bond_id=bond.get("id"),
                scheduled_for=created.isoformat(),
                action_url="/bonds",
                dedupe_key=f"{rule.id}:bond:{bond.get('id')}:{created.isoformat()}",
                rule_id=rule.id,
            )
        )
    return found


EVALUATORS: Dict[str, Callable[..., List[Notification]]] = {
    "court-date": _court_reminders,
    "payment-due": _payment_alerts,
    "check-in-overdue": _checkin_reminders,
    "bond-created": _new_bonds,
}


def evaluate_rules(
    rules: Iterable[WorkflowRule],
    snapshot: Dict[str, Any],
    settings: Dict[str, Any],
    now: datetime,
) -> List[Notification]:
    """
    Produce the notifications the active rules call for at ``now``.

    Pure: nothing is persisted, and repeated calls on the same day return the
    same dedupe keys.
    """
    today = now.date()
    found: List[Notification] = []
    for rule in rules:
        if not rule.is_active:
            continue
        evaluator = EVALUATORS.get(rule.trigger)
        if evaluator is None:
            # document-expires has no expiry data to evaluate yet.
            continue
        found.extend(evaluator(rule, snapshot, settings, today))
    return found


class ReminderMonitor:
    """
    Periodically scans storage and appends the notifications the rules produce.
    """

    def __init__(
        self,
        store: NotificationStore,
        storage_provider: Callable[[], Any],
        settings_provider: Callable[[], Dict[str, Any]],
    ) -> None:
        self.store = store
        self.storage_provider = storage_provider
        self.settings_provider = settings_provider
        self.last_scan: Optional[str] = None
        self.last_error: Optional[str] = None

    def scan(self, now: Optional[datetime] = None) -> List[Notification]:
        settings = self.settings_provider()
        rules = load_rules(settings.get("workflow_rules") or [])
        snapshot = self.storage_provider().snapshot()
        found = evaluate_rules(
            rules,
            snapshot,
            settings.get("notifications") or {},
            now or datetime.now(),
        )
        added = self.store.add_many(found)
        self.last_scan = utcnow()
        self.last_error = None
        if added:
            logger.info("Reminder scan added %s notification(s).", len(added))
        return added

    def interval(self) -> float:
        settings = self.settings_provider().get("notifications") or {}
        return max(float(settings.get("scan_interval_seconds", 300)), 1.0)

    async def loop(self, interval: Optional[float] = None) -> None:
        while True:
            try:
                await asyncio.to_thread(self.scan)
            except Exception as err:
                self.last_error = str(err)
                logger.exception("Reminder scan failed.")
            await asyncio.sleep(interval or self.interval())
