from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from . import reports, sql
from .gibson import GibsonClient, GibsonError
from .portal import hash_password
from .schema import JSON_COLUMNS, TABLES, ActivityIn, UserIn, unique_columns, writable_columns

logger = logging.getLogger("bailbonds.storage")

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

CLIENT_SEARCH_COLUMNS = ("first_name", "last_name", "phone", "email")

DUPLICATE_MESSAGES = {
    "email": "Email address already exists. Please use a different email.",
    "case_number": "Case number already exists. Please use a different case number.",
    "bond_number": "Bond number already exists. Please use a different bond number.",
}
GENERIC_DUPLICATE_MESSAGE = "Duplicate value detected. Please check your input."

# Demo credentials only; real portal passwords use the full work factor.
SEED_ITERATIONS = 20_000

Search = Optional[Tuple[str, Sequence[str]]]


def utcnow() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


class StorageError(RuntimeError):
    """Raised when a write cannot be completed."""


class UpstreamError(StorageError):
    """Raised when the hosted database rejects or fails a write."""


class DuplicateError(StorageError):
    def __init__(self, table: str, column: Optional[str]) -> None:
        self.table = table
        self.column = column
        super().__init__(DUPLICATE_MESSAGES.get(column or "", GENERIC_DUPLICATE_MESSAGE))


def _active_filter(value: Any) -> bool:
    return value is not None and value != "" and value != "all"


def _day(value: Any) -> str:
    return str(value or "")[:10]


class Storage:
    """
    Entity operations shared by every backend.

    Subclasses provide five primitives: ``_select``, ``_get``, ``_insert``,
    ``_update`` and ``_delete``. Everything else is built on top of them.
    """

    name = "base"

    def _select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        search: Search = None,
        order_by: Optional[str] = "created_at DESC",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def _get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def _insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def _update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def _delete(self, table: str, record_id: str) -> bool:
        raise NotImplementedError

    # Shared write path

    def _create(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        allowed = set(writable_columns(table))
        record = {key: value for key, value in data.items() if key in allowed}
        record["id"] = str(uuid4())
        now = utcnow()
        record["created_at"] = now
        if "updated_at" in {column.name for column in TABLES[table]}:
            record["updated_at"] = now
        self._check_unique(table, record)
        return self._insert(table, record)

    def _modify(self, table: str, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        allowed = set(writable_columns(table))
        changes = {key: value for key, value in data.items() if key in allowed}
        if not changes:
            return self._get(table, record_id)
        self._check_unique(table, changes, exclude_id=record_id)
        if "updated_at" in {column.name for column in TABLES[table]}:
            changes["updated_at"] = utcnow()
        return self._update(table, record_id, changes)

    def _check_unique(
        self,
        table: str,
        record: Dict[str, Any],
        exclude_id: Optional[str] = None,
    ) -> None:
        for column in unique_columns(table):
            value = record.get(column)
            if value is None or value == "":
                continue
            for row in self._select(table, {column: value}, order_by=None):
                if row.get("id") != exclude_id:
                    raise DuplicateError(table, column)

    # Users

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._get("users", user_id)

    def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        rows = self._select("users", {"username": username}, order_by=None, limit=1)
        return rows[0] if rows else None

    def list_users(self) -> List[Dict[str, Any]]:
        return self._select("users")

    def create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = UserIn.model_validate(data).to_record()
        if record.get("password") and not str(record["password"]).startswith("pbkdf2_sha256$"):
            record["password"] = hash_password(record["password"])
        return self._create("users", record)

    def update_user(self, user_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("users", user_id, data)

    def delete_user(self, user_id: str) -> bool:
        return self._delete("users", user_id)

    # Clients

    def get_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        return self._get("clients", client_id)

    def list_clients(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        term = (search or "").strip()
        return self._select(
            "clients",
            {"status": status},
            search=(term, CLIENT_SEARCH_COLUMNS) if term else None,
        )

    def clients_with_bonds(self) -> List[Dict[str, Any]]:
        bonds = self._select("bonds", order_by=None)
        rows = []
        for client in self._select("clients"):
            owned = [bond for bond in bonds if bond.get("client_id") == client["id"]]
            row = dict(client)
            row["total_bonds"] = len(owned)
            row["last_bond_date"] = max(
                (bond.get("created_at") for bond in owned if bond.get("created_at")),
                default=None,
            )
            rows.append(row)
        return rows

    def create_client(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("clients", data)

    def update_client(self, client_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("clients", client_id, data)

    def delete_client(self, client_id: str) -> bool:
        return self._delete("clients", client_id)

    def get_client_by_portal_username(self, username: str) -> Optional[Dict[str, Any]]:
        rows = self._select("clients", {"portal_username": username}, order_by=None, limit=1)
        return rows[0] if rows else None

    def enable_portal(self, client_id: str, username: str, password: str) -> Optional[Dict[str, Any]]:
        return self._modify(
            "clients",
            client_id,
            {
                "portal_username": username,
                "portal_password": hash_password(password),
                "portal_enabled": True,
            },
        )

    def touch_checkin(self, client_id: str, when: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return self._modify("clients", client_id, {"last_checkin": when or utcnow()})

    # Cases

    def get_case(self, case_id: str) -> Optional[Dict[str, Any]]:
        return self._get("cases", case_id)

    def list_cases(self, client_id: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._select("cases", {"client_id": client_id, "status": status})

    def create_case(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("cases", data)

    def update_case(self, case_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("cases", case_id, data)

    def delete_case(self, case_id: str) -> bool:
        return self._delete("cases", case_id)

    # Bonds

    def get_bond(self, bond_id: str) -> Optional[Dict[str, Any]]:
        return self._get("bonds", bond_id)

    def list_bonds(self, client_id: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._select("bonds", {"client_id": client_id, "status": status})

    def bonds_with_details(self) -> List[Dict[str, Any]]:
        clients = {row["id"]: row for row in self._select("clients", order_by=None)}
        cases = {row["id"]: row for row in self._select("cases", order_by=None)}
        users = {row["id"]: row for row in self._select("users", order_by=None)}
        rows = []
        for bond in self._select("bonds"):
            client = clients.get(bond.get("client_id")) or {}
            case = cases.get(bond.get("case_id")) or {}
            agent = users.get(bond.get("agent_id")) or {}
            row = dict(bond)
            row["client_first_name"] = client.get("first_name")
            row["client_last_name"] = client.get("last_name")
            row["client_phone"] = client.get("phone")
            row["court_date"] = case.get("court_date")
            row["agent_first_name"] = agent.get("first_name")
            row["agent_last_name"] = agent.get("last_name")
            rows.append(row)
        return rows

    def create_bond(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("bonds", data)

    def update_bond(self, bond_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("bonds", bond_id, data)

    def delete_bond(self, bond_id: str) -> bool:
        return self._delete("bonds", bond_id)

    # Payments

    def get_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        return self._get("payments", payment_id)

    def list_payments(self, bond_id: Optional[str] = None, client_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._select("payments", {"bond_id": bond_id, "client_id": client_id})

    def create_payment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("payments", data)

    def update_payment(self, payment_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("payments", payment_id, data)

    def delete_payment(self, payment_id: str) -> bool:
        return self._delete("payments", payment_id)

    # Documents

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        return self._get("documents", document_id)

    def list_documents(
        self,
        category: Optional[str] = None,
        related_id: Optional[str] = None,
        related_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._select(
            "documents",
            {"category": category, "related_id": related_id, "related_type": related_type},
        )

    def create_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("documents", data)

    def update_document(self, document_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("documents", document_id, data)

    def delete_document(self, document_id: str) -> bool:
        return self._delete("documents", document_id)

    # Activities

    def list_activities(
        self,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        return self._select(
            "activities",
            {"resource_id": resource_id, "resource_type": resource_type},
            limit=limit,
        )

    def create_activity(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("activities", data)

    def record_activity(
        self,
        user_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Log an audit entry. Failures are logged and never reach the caller.
        """
        try:
            entry = ActivityIn(
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details,
            )
            return self.create_activity(entry.to_record())
        except (StorageError, GibsonError, ValueError) as exc:
            logger.warning(
                "Could not record activity %s on %s %s: %s",
                action,
                resource_type,
                resource_id,
                exc,
            )
            return None

    # Client check-ins

    def list_checkins(self, client_id: Optional[str] = None, bond_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._select("client_checkins", {"client_id": client_id, "bond_id": bond_id})

    def create_checkin(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("client_checkins", data)

    # Contracts

    def get_contract_template(self, template_id: str) -> Optional[Dict[str, Any]]:
        return self._get("contract_templates", template_id)

    def list_contract_templates(
        self,
        template_type: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        return self._select("contract_templates", {"type": template_type, "is_active": active})

    def create_contract_template(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("contract_templates", data)

    def update_contract_template(self, template_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("contract_templates", template_id, data)

    def get_contract(self, contract_id: str) -> Optional[Dict[str, Any]]:
        return self._get("generated_contracts", contract_id)

    def list_contracts(self, client_id: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._select("generated_contracts", {"client_id": client_id, "status": status})

    def create_contract(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("generated_contracts", data)

    def update_contract(self, contract_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._modify("generated_contracts", contract_id, data)

    # Portal views

    def client_bonds(self, client_id: str) -> List[Dict[str, Any]]:
        return self.list_bonds(client_id=client_id)

    def client_cases(self, client_id: str) -> List[Dict[str, Any]]:
        return self.list_cases(client_id=client_id)

    def client_court_dates(self, client_id: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
        today_text = (today or date.today()).isoformat()
        upcoming = [
            case
            for case in self.list_cases(client_id=client_id)
            if case.get("court_date") and _day(case["court_date"]) >= today_text
        ]
        upcoming.sort(key=lambda case: str(case["court_date"]))
        return upcoming

    # Aggregates

    def dashboard_stats(self, today: Optional[date] = None) -> Dict[str, float]:
        return reports.memory_dashboard_stats(
            self._select("bonds", order_by=None),
            self._select("payments", order_by=None),
            self._select("cases", order_by=None),
            today or date.today(),
        )

    def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        users = {row["id"]: row for row in self._select("users", order_by=None)}
        rows = []
        for activity in self._select("activities", limit=limit):
            user = users.get(activity.get("user_id")) or {}
            row = dict(activity)
            row["first_name"] = user.get("first_name")
            row["last_name"] = user.get("last_name")
            rows.append(row)
        return rows

    def upcoming_court_dates(self, limit: int = 10, today: Optional[date] = None) -> List[Dict[str, Any]]:
        today_text = (today or date.today()).isoformat()
        clients = {row["id"]: row for row in self._select("clients", order_by=None)}
        upcoming = [
            case
            for case in self._select("cases", order_by=None)
            if case.get("court_date") and _day(case["court_date"]) >= today_text
        ]
        upcoming.sort(key=lambda case: str(case["court_date"]))
        rows = []
        for case in upcoming[:limit]:
            client = clients.get(case.get("client_id")) or {}
            row = dict(case)
            row["first_name"] = client.get("first_name")
            row["last_name"] = client.get("last_name")
            rows.append(row)
        return rows

    def financial_summary(self, today: Optional[date] = None) -> Dict[str, float]:
        return reports.memory_financial_summary(
            self._select("payments", order_by=None),
            today or date.today(),
        )

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Plain copies of the tables the reminder rules look at.
        """
        return {
            "clients": self._select("clients", order_by=None),
            "cases": self._select("cases", order_by=None),
            "bonds": self._select("bonds", order_by=None),
            "payments": self._select("payments", order_by=None),
        }

    def health(self) -> Dict[str, Any]:
        return {"ok": True, "backend": self.name}


class MemoryStorage(Storage):
    """
    Process-local storage used when no hosted database is configured.
    """

    name = "memory"

    def __init__(self, seed: bool = True, today: Optional[date] = None) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {table: {} for table in TABLES}
        self._lock = threading.RLock()
        if seed:
            for table, rows in sample_data(today or date.today()).items():
                for row in rows:
                    self._tables[table][row["id"]] = _with_defaults(table, row)

    def _rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._tables:
            raise StorageError(f"Unknown table: {table}")
        return self._tables[table]

    def _select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        search: Search = None,
        order_by: Optional[str] = "created_at DESC",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        active = {key: value for key, value in (filters or {}).items() if _active_filter(value)}
        with self._lock:
            rows = [dict(row) for row in self._rows(table).values()]
        matched = []
        for row in rows:
            if any(_normalise(row.get(key)) != _normalise(value) for key, value in active.items()):
                continue
            if search and not _matches_search(row, search):
                continue
            matched.append(row)
        if order_by:
            column, _, direction = order_by.partition(" ")
            matched.sort(
                key=lambda row: str(row.get(column) or ""),
                reverse=direction.strip().upper() == "DESC",
            )
        if limit is not None:
            matched = matched[: max(int(limit), 0)]
        return matched

    def _get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows(table).get(record_id)
            return dict(row) if row else None

    def _insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        row = _with_defaults(table, record)
        with self._lock:
            self._rows(table)[row["id"]] = row
        return dict(row)

    def _update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows(table).get(record_id)
            if row is None:
                return None
            row.update(changes)
            return dict(row)

    def _delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._rows(table).pop(record_id, None) is not None

    # The unique check and the write happen under one lock hold.

    def _create(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            return super()._create(table, data)

    def _modify(self, table: str, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            return super()._modify(table, record_id, data)


def _normalise(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    return value


def _matches_search(row: Dict[str, Any], search: Tuple[str, Sequence[str]]) -> bool:
    term, columns = search
    needle = term.lower()
    return any(needle in str(row.get(column) or "").lower() for column in columns)


def _python_default(raw: Optional[str]) -> Any:
    if raw is None or raw == "CURRENT_TIMESTAMP":
        return None
    if raw == "TRUE":
        return True
    if raw == "FALSE":
        return False
    if raw.startswith("'") and raw.endswith("'"):
        text = raw[1:-1]
        if text in ("[]", "{}"):
            return json.loads(text)
        return text
    return raw


def _with_defaults(table: str, record: Dict[str, Any]) -> Dict[str, Any]:
    row = {column.name: _python_default(column.default) for column in TABLES[table]}
    row.update(record)
    return row


class GibsonStorage(Storage):
    """
    Storage backed by the hosted Gibson database.

    Joined views and aggregates are single SQL statements instead of the
    Python joins in the base class.
    """

    name = "gibson"

    def __init__(self, client: GibsonClient) -> None:
        self.client = client

    def _select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        search: Search = None,
        order_by: Optional[str] = "created_at DESC",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        conditions: List[str] = []
        params: List[Any] = []
        for column, value in (filters or {}).items():
            if not _active_filter(value):
                continue
            conditions.append(sql.equals(column))
            params.append(value)
        if search:
            term, columns = search
            conditions.append(sql.like_any(columns))
            params.extend(sql.like_pattern(term) for _ in columns)
        rows = self.client.read(table, sql.where_and(conditions) or None, params, order_by, limit)
        return [_decode(table, row) for row in rows]

    def _get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        rows = self.client.read(table, sql.equals("id"), [record_id], limit=1)
        return _decode(table, rows[0]) if rows else None

    def _insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            row = self.client.create(table, _encode(table, record))
        except GibsonError as exc:
            raise _translate_write_error(table, exc) from exc
        return _decode(table, row)

    def _update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            row = self.client.update(table, record_id, _encode(table, changes))
        except GibsonError as exc:
            raise _translate_write_error(table, exc) from exc
        return _decode(table, row) if row else None

    def _delete(self, table: str, record_id: str) -> bool:
        try:
            return self.client.delete(table, record_id)
        except GibsonError as exc:
            raise _translate_write_error(table, exc) from exc

    def clients_with_bonds(self) -> List[Dict[str, Any]]:
        return self.client.clients_with_bonds()

    def bonds_with_details(self) -> List[Dict[str, Any]]:
        return self.client.bonds_with_details()

    def dashboard_stats(self, today: Optional[date] = None) -> Dict[str, float]:
        return self.client.dashboard_stats(today)

    def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        return [_decode("activities", row) for row in self.client.recent_activity(limit)]

    def upcoming_court_dates(self, limit: int = 10, today: Optional[date] = None) -> List[Dict[str, Any]]:
        return self.client.upcoming_court_dates(limit, today)

    def financial_summary(self, today: Optional[date] = None) -> Dict[str, float]:
        return self.client.financial_summary(today)

    def initialize_database(self) -> List[str]:
        return self.client.initialize_database()

    def health(self) -> Dict[str, Any]:
        status = self.client.health()
        status["backend"] = self.name
        return status


def _encode(table: str, record: Dict[str, Any]) -> Dict[str, Any]:
    encoded = dict(record)
    for column in JSON_COLUMNS.get(table, ()):
        if column in encoded and encoded[column] is not None and not isinstance(encoded[column], str):
            encoded[column] = json.dumps(encoded[column], ensure_ascii=False)
    return encoded


def _decode(table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    decoded = dict(row)
    for column in JSON_COLUMNS.get(table, ()):
        value = decoded.get(column)
        if isinstance(value, str) and value:
            try:
                decoded[column] = json.loads(value)
            except ValueError:
                logger.debug("Column %s.%s holds non-JSON text.", table, column)
    return decoded


def _translate_write_error(table: str, exc: GibsonError) -> StorageError:
    message = str(exc).lower()
    if "duplicate" in message or "unique" in message:
        for column in unique_columns(table):
            if column in message:
                return DuplicateError(table, column)
        return DuplicateError(table, None)
    return UpstreamError(str(exc))


def build_storage(settings: Dict[str, Any]) -> Storage:
    gibson = settings.get("gibson") or {}
    api_key = gibson.get("api_key") or ""
    if api_key:
        logger.info("Using Gibson storage at %s.", gibson.get("base_url"))
        return GibsonStorage(
            GibsonClient(
                gibson.get("base_url") or "https://api.gibsonai.com",
                api_key,
                float(gibson.get("timeout") or 30),
            )
        )
    logger.info("No Gibson API key configured; using in-memory sample data.")
    return MemoryStorage()


def sample_data(today: date) -> Dict[str, List[Dict[str, Any]]]:
    """
    Demo records for the in-memory backend, dated relative to ``today``.
    """

    def stamp(days_ago: int) -> str:
        moment = datetime.combine(today - timedelta(days=days_ago), datetime.min.time())
        return moment.replace(hour=9, tzinfo=timezone.utc).strftime(ISO_FORMAT)

    def day(offset: int) -> str:
        return (today + timedelta(days=offset)).isoformat()

    agent = "system-user"
    return {
        "users": [
            {
                "id": agent,
                "username": "sjohnson",
                "email": "sarah.johnson@bailbondpro.example",
                "password": hash_password("change-me", iterations=SEED_ITERATIONS),
                "first_name": "Sarah",
                "last_name": "Johnson",
                "role": "agent",
                "is_active": True,
                "created_at": stamp(400),
                "updated_at": stamp(400),
            }
        ],
        "clients": [
            {
                "id": "client-1",
                "first_name": "John",
                "last_name": "Smith",
                "date_of_birth": "1985-03-15",
                "phone": "(555) 123-4567",
                "email": "john.smith@example.com",
                "address": "123 Main St",
                "city": "Springfield",
                "state": "IL",
                "zip_code": "62701",
                "emergency_contact": "Jane Smith",
                "emergency_phone": "(555) 123-4568",
                "status": "active",
                "created_at": stamp(60),
                "updated_at": stamp(60),
            },
            {
                "id": "client-2",
                "first_name": "Maria",
                "last_name": "Garcia",
                "date_of_birth": "1990-07-22",
                "phone": "(555) 987-6543",
                "email": "maria.garcia@example.com",
                "address": "456 Oak Ave",
                "city": "Springfield",
                "state": "IL",
                "zip_code": "62702",
                "status": "active",
                "portal_username": "mgarcia",
                "portal_password": hash_password("checkin2024", iterations=SEED_ITERATIONS),
                "portal_enabled": True,
                "last_checkin": stamp(3),
                "created_at": stamp(20),
                "updated_at": stamp(3),
            },
            {
                "id": "client-3",
                "first_name": "Robert",
                "last_name": "Wilson",
                "date_of_birth": "1978-11-02",
                "phone": "(555) 456-7890",
                "email": "rwilson@example.com",
                "address": "789 Pine Rd",
                "city": "Decatur",
                "state": "IL",
                "zip_code": "62521",
                "status": "high_risk",
                "notes": "Missed a prior appearance.",
                "created_at": stamp(10),
                "updated_at": stamp(10),
            },
        ],
        "cases": [
            {
                "id": "case-1",
                "case_number": "CR-2024-001",
                "client_id": "client-1",
                "charges": "DUI - First Offense",
                "arrest_date": day(-45),
                "court_date": day(5),
                "court_location": "Sangamon County Courthouse, Room 3B",
                "judge_name": "Hon. Patricia Lee",
                "status": "open",
                "created_at": stamp(45),
                "updated_at": stamp(45),
            },
            {
                "id": "case-2",
                "case_number": "CR-2024-002",
                "client_id": "client-2",
                "charges": "Shoplifting",
                "arrest_date": day(-20),
                "court_date": day(20),
                "court_location": "Sangamon County Courthouse, Room 1A",
                "status": "open",
                "created_at": stamp(20),
                "updated_at": stamp(20),
            },
            {
                "id": "case-3",
                "case_number": "CR-2024-003",
                "client_id": "client-3",
                "charges": "Possession of a Controlled Substance",
                "arrest_date": day(-10),
                "court_date": day(-2),
                "court_location": "Macon County Courthouse",
                "status": "open",
                "created_at": stamp(10),
                "updated_at": stamp(10),
            },
        ],
        "bonds": [
            {
                "id": "bond-1",
                "bond_number": "BB-2024-001",
                "client_id": "client-1",
                "case_id": "case-1",
                "bond_amount": "10000.00",
                "premium_amount": "1000.00",
                "premium_rate": "0.1000",
                "status": "active",
                "issue_date": day(-44),
                "payment_status": "paid_full",
                "agent_id": agent,
                "created_at": stamp(44),
                "updated_at": stamp(44),
            },
            {
                "id": "bond-2",
                "bond_number": "BB-2024-002",
                "client_id": "client-2",
                "case_id": "case-2",
                "bond_amount": "5000.00",
                "premium_amount": "500.00",
                "premium_rate": "0.1000",
                "collateral_amount": "2000.00",
                "collateral_description": "2015 Honda Civic title",
                "status": "active",
                "issue_date": day(-19),
                "payment_status": "partial",
                "agent_id": agent,
                "created_at": stamp(19),
                "updated_at": stamp(19),
            },
            {
                "id": "bond-3",
                "bond_number": "BB-2024-003",
                "client_id": "client-3",
                "case_id": "case-3",
                "bond_amount": "25000.00",
                "premium_amount": "2500.00",
                "premium_rate": "0.1000",
                "status": "at_risk",
                "issue_date": day(-9),
                "payment_status": "overdue",
                "agent_id": agent,
                "created_at": stamp(9),
                "updated_at": stamp(9),
            },
        ],
        "payments": [
            {
                "id": "payment-1",
                "transaction_id": "TXN-1001",
                "bond_id": "bond-1",
                "client_id": "client-1",
                "amount": "1000.00",
                "payment_type": "premium",
                "payment_method": "credit_card",
                "status": "completed",
                "payment_date": day(-44),
                "created_at": stamp(44),
                "updated_at": stamp(44),
            },
            {
                "id": "payment-2",
                "transaction_id": "TXN-1002",
                "bond_id": "bond-2",
                "client_id": "client-2",
                "amount": "250.00",
                "payment_type": "premium",
                "payment_method": "cash",
                "status": "completed",
                "payment_date": day(0),
                "created_at": stamp(0),
                "updated_at": stamp(0),
            },
            {
                "id": "payment-3",
                "transaction_id": "TXN-1003",
                "bond_id": "bond-2",
                "client_id": "client-2",
                "amount": "250.00",
                "payment_type": "premium",
                "payment_method": "check",
                "status": "pending",
                "payment_date": day(10),
                "created_at": stamp(0),
                "updated_at": stamp(0),
            },
        ],
        "documents": [
            {
                "id": "document-1",
                "filename": "sample_bail_agreement.pdf",
                "original_name": "Bail Agreement - John Smith.pdf",
                "file_size": 245760,
                "mime_type": "application/pdf",
                "category": "contract",
                "related_id": "client-1",
                "related_type": "client",
                "uploaded_by": agent,
                "created_at": stamp(44),
                "updated_at": stamp(44),
            },
            {
                "id": "document-2",
                "filename": "sample_drivers_license.jpg",
                "original_name": "Drivers License - Maria Garcia.jpg",
                "file_size": 102400,
                "mime_type": "image/jpeg",
                "category": "identification",
                "related_id": "client-2",
                "related_type": "client",
                "uploaded_by": agent,
                "created_at": stamp(19),
                "updated_at": stamp(19),
            },
        ],
        "activities": [
            {
                "id": "activity-1",
                "user_id": agent,
                "action": "created",
                "resource_type": "bond",
                "resource_id": "bond-3",
                "details": {"bondNumber": "BB-2024-003"},
                "created_at": stamp(9),
            },
            {
                "id": "activity-2",
                "user_id": agent,
                "action": "created",
                "resource_type": "payment",
                "resource_id": "payment-2",
                "details": {"amount": "250.00"},
                "created_at": stamp(0),
            },
        ],
        "contract_templates": [
            {
                "id": "template-1",
                "name": "Standard Bail Bond Agreement",
                "name_es": "Acuerdo Estándar de Fianza",
                "type": "bail-agreement",
                "description": "Agreement between the agency and the defendant.",
                "description_es": "Acuerdo entre la agencia y el acusado.",
                "content": (
                    "BAIL BOND AGREEMENT\n\n"
                    "This agreement is made on {{today}} between {{agencyName}} and "
                    "{{clientName}} for case {{caseNumber}}.\n\n"
                    "Bond amount: {{bondAmount}}\nPremium: {{premiumAmount}}\n"
                    "The defendant agrees to appear in court on {{courtDate}}."
                ),
                "content_es": (
                    "ACUERDO DE FIANZA\n\n"
                    "Este acuerdo se celebra el {{today}} entre {{agencyName}} y "
                    "{{clientName}} para el caso {{caseNumber}}.\n\n"
                    "Monto de la fianza: {{bondAmount}}\nPrima: {{premiumAmount}}\n"
                    "El acusado se compromete a comparecer ante el tribunal el {{courtDate}}."
                ),
                "variables": [
                    "today",
                    "agencyName",
                    "clientName",
                    "caseNumber",
                    "bondAmount",
                    "premiumAmount",
                    "courtDate",
                ],
                "is_active": True,
                "created_by": agent,
                "created_at": stamp(400),
                "updated_at": stamp(400),
            }
        ],
    }
