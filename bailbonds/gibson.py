from __future__ import annotations

import json
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

import requests

from . import sql
from .schema import TABLES, create_table_sql

logger = logging.getLogger("bailbonds.gibson")

QUERY_PATH = "/v1/-/query"


class GibsonError(RuntimeError):
    """Raised when the Gibson query endpoint fails or returns something unusable."""


def normalise_rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return [row for row in data if isinstance(row, dict)]
        return []
    return []


def _number(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class GibsonClient:
    """
    Thin client for the hosted Gibson database.

    Every statement is sent as a complete SQL string, so all values pass
    through ``sql.bind`` before leaving this module.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def query(self, statement: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        if not self.api_key:
            raise GibsonError("Gibson API key not configured")
        rendered = sql.bind(statement, params)
        logger.debug("Gibson query: %s", rendered)
        try:
            response = requests.post(
                f"{self.base_url}{QUERY_PATH}",
                headers={
                    "Content-Type": "application/json",
                    "X-Gibson-API-Key": self.api_key,
                },
                data=json.dumps({"query": rendered}),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GibsonError(f"Network error: {exc}") from exc
        if response.status_code >= 400:
            raise GibsonError(
                f"Gibson API Error ({response.status_code}): {response.text}"
            )
        if not response.content:
            return []
        try:
            return normalise_rows(response.json())
        except ValueError as exc:
            raise GibsonError("Failed to decode Gibson response as JSON.") from exc

    def create(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        columns = list(data.keys())
        self.query(sql.insert(table, columns), [data[column] for column in columns])
        record_id = data.get("id")
        if not record_id:
            return dict(data)
        try:
            rows = self.read(table, sql.equals("id"), [record_id], limit=1)
        except GibsonError as exc:
            logger.warning("Re-select after insert into %s failed: %s", table, exc)
            return dict(data)
        return rows[0] if rows else dict(data)

    def read(
        self,
        table: str,
        where: Optional[str] = None,
        params: Sequence[Any] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self.query(sql.select(table, where, order_by, limit), params)

    def update(self, table: str, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = list(data.keys())
        rows = self.query(
            sql.update(table, columns),
            [data[column] for column in columns] + [record_id],
        )
        return rows[0] if rows else None

    def delete(self, table: str, record_id: str) -> bool:
        self.query(sql.delete(table), [record_id])
        return True

    def dashboard_stats(self, today: Optional[date] = None) -> Dict[str, float]:
        today = today or date.today()
        horizon = today + timedelta(days=30)
        active = self.query("SELECT COUNT(*) AS count FROM bonds WHERE status = ?", ["active"])
        revenue = self.query(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM payments WHERE status = ?",
            ["completed"],
        )
        pending = self.query(
            "SELECT COALESCE(SUM(premium_amount), 0) AS total FROM bonds"
            " WHERE payment_status IN (?, ?)",
            ["pending", "partial"],
        )
        court = self.query(
            "SELECT COUNT(*) AS count FROM cases"
            " WHERE court_date IS NOT NULL AND court_date >= ? AND court_date <= ?",
            [today.isoformat(), horizon.isoformat()],
        )
        return {
            "activeBonds": int(_number(active[0].get("count")) if active else 0),
            "totalRevenue": _number(revenue[0].get("total")) if revenue else 0.0,
            "pendingPayments": _number(pending[0].get("total")) if pending else 0.0,
            "upcomingCourtDates": int(_number(court[0].get("count")) if court else 0),
        }

    def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.query(
            "SELECT a.*, u.first_name, u.last_name FROM activities a"
            " LEFT JOIN users u ON a.user_id = u.id"
            " ORDER BY a.created_at DESC LIMIT ?",
            [int(limit)],
        )

    def upcoming_court_dates(self, limit: int = 10, today: Optional[date] = None) -> List[Dict[str, Any]]:
        today = today or date.today()
        return self.query(
            "SELECT c.*, cl.first_name, cl.last_name FROM cases c"
            " LEFT JOIN clients cl ON c.client_id = cl.id"
            " WHERE c.court_date IS NOT NULL AND c.court_date >= ?"
            " ORDER BY c.court_date ASC LIMIT ?",
            [today.isoformat(), int(limit)],
        )

    def clients_with_bonds(self) -> List[Dict[str, Any]]:
        return self.query(
            "SELECT c.*, COUNT(b.id) AS total_bonds, MAX(b.created_at) AS last_bond_date"
            " FROM clients c LEFT JOIN bonds b ON c.id = b.client_id"
            " GROUP BY c.id ORDER BY c.created_at DESC"
        )

    def bonds_with_details(self) -> List[Dict[str, Any]]:
        return self.query(
            "SELECT b.*, cl.first_name AS client_first_name, cl.last_name AS client_last_name,"
            " cl.phone AS client_phone, c.court_date,"
            " u.first_name AS agent_first_name, u.last_name AS agent_last_name"
            " FROM bonds b"
            " LEFT JOIN clients cl ON b.client_id = cl.id"
            " LEFT JOIN cases c ON b.case_id = c.id"
            " LEFT JOIN users u ON b.agent_id = u.id"
            " ORDER BY b.created_at DESC"
        )

    def financial_summary(self, today: Optional[date] = None) -> Dict[str, float]:
        today = today or date.today()
        month_start = today.replace(day=1)
        monthly = self.query(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM payments WHERE created_at >= ?",
            [month_start.isoformat()],
        )
        outstanding = self.query(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM payments WHERE status = ?",
            ["pending"],
        )
        rates = self.query(
            "SELECT COUNT(*) AS total,"
            " SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS completed"
            " FROM payments",
            ["completed"],
        )
        total = _number(rates[0].get("total")) if rates else 0.0
        completed = _number(rates[0].get("completed")) if rates else 0.0
        return {
            "monthlyRevenue": _number(monthly[0].get("total")) if monthly else 0.0,
            "outstanding": _number(outstanding[0].get("total")) if outstanding else 0.0,
            "collectionRate": round(completed / total * 100, 1) if total else 0.0,
        }

    def initialize_database(self) -> List[str]:
        created: List[str] = []
        for table in TABLES:
            try:
                self.query(create_table_sql(table))
            except GibsonError:
                logger.exception("Creating table %s failed.", table)
                raise
            logger.info("Table %s ready.", table)
            created.append(table)
        return created

    def health(self) -> Dict[str, Any]:
        if not self.api_key:
            return {"ok": False, "error": "Gibson API key not configured"}
        try:
            self.query("SELECT 1 AS ok")
        except GibsonError as exc:
            return {"ok": False, "error": str(exc)}
        return {"ok": True}
