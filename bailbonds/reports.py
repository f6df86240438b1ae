"""
Aggregations behind the dashboard, the financial page and the reports page.

The in-memory backend uses ``memory_dashboard_stats`` and
``memory_financial_summary``; the Gibson backend computes the same figures in
SQL and returns the same keys.
"""
from __future__ import annotations

import csv
import io
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .filters import parse_date, to_number

BOND_STATUS_LABELS = OrderedDict(
    [
        ("active", "Active"),
        ("completed", "Completed"),
        ("at_risk", "At Risk"),
        ("forfeited", "Forfeited"),
    ]
)

EXPORT_COLUMNS: Dict[str, Sequence[str]] = {
    "bonds": (
        "bond_number",
        "client_first_name",
        "client_last_name",
        "bond_amount",
        "premium_amount",
        "status",
        "payment_status",
        "issue_date",
        "court_date",
    ),
    "clients": (
        "first_name",
        "last_name",
        "phone",
        "email",
        "city",
        "state",
        "status",
        "total_bonds",
        "created_at",
    ),
    "payments": (
        "transaction_id",
        "bond_id",
        "client_id",
        "amount",
        "payment_type",
        "payment_method",
        "status",
        "payment_date",
    ),
}


def _percent(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def _sum(values: Iterable[Any]) -> Decimal:
    total = Decimal("0")
    for value in values:
        total += to_number(value)
    return total


def _payment_day(payment: Dict[str, Any]) -> Optional[date]:
    return parse_date(payment.get("payment_date")) or parse_date(payment.get("created_at"))


def memory_dashboard_stats(
    bonds: List[Dict[str, Any]],
    payments: List[Dict[str, Any]],
    cases: List[Dict[str, Any]],
    today: date,
) -> Dict[str, float]:
    horizon = today + timedelta(days=30)
    upcoming = 0
    for case in cases:
        court_day = parse_date(case.get("court_date"))
        if court_day is not None and today <= court_day <= horizon:
            upcoming += 1
    return {
        "activeBonds": sum(1 for bond in bonds if bond.get("status") == "active"),
        "totalRevenue": float(
            _sum(payment.get("amount") for payment in payments if payment.get("status") == "completed")
        ),
        "pendingPayments": float(
            _sum(
                bond.get("premium_amount")
                for bond in bonds
                if bond.get("payment_status") in ("pending", "partial")
            )
        ),
        "upcomingCourtDates": upcoming,
    }


def memory_financial_summary(payments: List[Dict[str, Any]], today: date) -> Dict[str, float]:
    month_start = today.replace(day=1)
    monthly = _sum(
        payment.get("amount")
        for payment in payments
        if (parse_date(payment.get("created_at")) or date.min) >= month_start
    )
    outstanding = _sum(
        payment.get("amount") for payment in payments if payment.get("status") == "pending"
    )
    completed = sum(1 for payment in payments if payment.get("status") == "completed")
    return {
        "monthlyRevenue": float(monthly),
        "outstanding": float(outstanding),
        "collectionRate": _percent(completed, len(payments)),
    }


def performance_metrics(bonds: List[Dict[str, Any]], financial: Dict[str, Any]) -> Dict[str, float]:
    completed = sum(1 for bond in bonds if bond.get("status") == "completed")
    return {
        "bondsCreated": len(bonds),
        "revenue": float(financial.get("monthlyRevenue") or 0),
        "successRate": _percent(completed, len(bonds)),
    }


def client_analytics(
    clients: List[Dict[str, Any]],
    bonds: List[Dict[str, Any]],
    financial: Dict[str, Any],
    today: date,
) -> Dict[str, float]:
    cutoff = today - timedelta(days=30)
    new_clients = 0
    for client in clients:
        created = parse_date(client.get("created_at"))
        if created is not None and created >= cutoff:
            new_clients += 1
    per_client: Dict[str, int] = {}
    for bond in bonds:
        client_id = bond.get("client_id")
        if client_id:
            per_client[client_id] = per_client.get(client_id, 0) + 1
    return {
        "newClients": new_clients,
        "repeatClients": sum(1 for count in per_client.values() if count > 1),
        "retention": float(financial.get("collectionRate") or 0),
    }


def bond_status_distribution(bonds: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    counts = {status: 0 for status in BOND_STATUS_LABELS}
    for bond in bonds:
        status = bond.get("status")
        if status in counts:
            counts[status] += 1
    return [
        {"status": status, "label": BOND_STATUS_LABELS[status], "count": count}
        for status, count in counts.items()
        if count
    ]


def risk_distribution(clients: List[Dict[str, Any]], bonds: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    by_client: Dict[str, List[Dict[str, Any]]] = {}
    for bond in bonds:
        by_client.setdefault(bond.get("client_id"), []).append(bond)
    counts = {"high": 0, "medium": 0, "low": 0}
    for client in clients:
        owned = by_client.get(client.get("id"), [])
        if client.get("status") == "high_risk" or any(
            bond.get("status") in ("at_risk", "forfeited") for bond in owned
        ):
            counts["high"] += 1
        elif any(bond.get("payment_status") == "overdue" for bond in owned):
            counts["medium"] += 1
        else:
            counts["low"] += 1
    total = len(clients)
    return {
        level: {"count": count, "percent": _percent(count, total)}
        for level, count in counts.items()
    }


def monthly_revenue(
    payments: List[Dict[str, Any]],
    months: int = 6,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    today = today or date.today()
    buckets: "OrderedDict[tuple, Decimal]" = OrderedDict()
    year, month = today.year, today.month
    keys = []
    for _ in range(months):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    for key in reversed(keys):
        buckets[key] = Decimal("0")
    for payment in payments:
        if payment.get("status") != "completed":
            continue
        day = _payment_day(payment)
        if day is None:
            continue
        key = (day.year, day.month)
        if key in buckets:
            buckets[key] += to_number(payment.get("amount"))
    return [
        {
            "month": f"{year:04d}-{month:02d}",
            "label": date(year, month, 1).strftime("%b %Y"),
            "total": float(total),
        }
        for (year, month), total in buckets.items()
    ]


def payment_method_breakdown(payments: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """
    Completed payment counts and totals per payment method.
    """
    breakdown: Dict[str, Dict[str, Any]] = {}
    for payment in payments:
        if payment.get("status") != "completed":
            continue
        method = payment.get("payment_method") or "unknown"
        entry = breakdown.setdefault(method, {"count": 0, "total": Decimal("0")})
        entry["count"] += 1
        entry["total"] += to_number(payment.get("amount"))
    return {
        method: {"count": entry["count"], "total": float(entry["total"])}
        for method, entry in sorted(breakdown.items())
    }


def build_summary(
    clients: List[Dict[str, Any]],
    bonds: List[Dict[str, Any]],
    payments: List[Dict[str, Any]],
    financial: Dict[str, Any],
    today: date,
) -> Dict[str, Any]:
    return {
        "performance": performance_metrics(bonds, financial),
        "clients": client_analytics(clients, bonds, financial, today),
        "bondStatus": bond_status_distribution(bonds),
        "risk": risk_distribution(clients, bonds),
        "monthlyRevenue": monthly_revenue(payments, 6, today),
        "paymentMethods": payment_method_breakdown(payments),
        "financial": financial,
    }


def export_csv(rows: Iterable[Dict[str, Any]], columns: Sequence[str]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if row.get(column) is None else row.get(column) for column in columns])
    return buffer.getvalue()
