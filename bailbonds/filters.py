from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence

BOND_COUNT_STATUSES = ("active", "completed", "at_risk", "forfeited")
DOCUMENT_COUNT_CATEGORIES = ("contract", "court_papers", "identification", "financial")

CENTS = Decimal("0.01")


def _enabled(value: Optional[str]) -> bool:
    return bool(value) and value.lower() != "all"


def _contains(needle: str, *haystacks: Any) -> bool:
    return any(needle in str(value or "").lower() for value in haystacks)


def _same_day(value: Any, wanted: str) -> bool:
    parsed = parse_date(value)
    target = parse_date(wanted)
    return parsed is not None and target is not None and parsed == target


def filter_clients(
    rows: Iterable[Dict[str, Any]],
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    term = (search or "").strip().lower()
    result = []
    for row in rows:
        if _enabled(status) and str(row.get("status") or "").lower() != status.lower():
            continue
        full_name = f"{row.get('first_name') or ''} {row.get('last_name') or ''}"
        if term and not _contains(term, full_name, row.get("phone"), row.get("email")):
            continue
        result.append(row)
    return result


def filter_bonds(
    rows: Iterable[Dict[str, Any]],
    search: Optional[str] = None,
    status: Optional[str] = None,
    court_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Filter rows from the bonds-with-details view.
    """
    term = (search or "").strip().lower()
    result = []
    for row in rows:
        if _enabled(status) and str(row.get("status") or "").lower() != status.lower():
            continue
        if court_date and not _same_day(row.get("court_date"), court_date):
            continue
        client_name = f"{row.get('client_first_name') or ''} {row.get('client_last_name') or ''}"
        if term and not _contains(term, row.get("bond_number"), client_name, row.get("client_phone")):
            continue
        result.append(row)
    return result


def filter_cases(
    rows: Iterable[Dict[str, Any]],
    clients: Iterable[Dict[str, Any]],
    search: Optional[str] = None,
    status: Optional[str] = None,
    court_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    names = {
        client.get("id"): f"{client.get('first_name') or ''} {client.get('last_name') or ''}"
        for client in clients
    }
    term = (search or "").strip().lower()
    result = []
    for row in rows:
        if _enabled(status) and str(row.get("status") or "").lower() != status.lower():
            continue
        if court_date and not _same_day(row.get("court_date"), court_date):
            continue
        client_name = names.get(row.get("client_id"), "")
        if term and not _contains(term, row.get("case_number"), row.get("charges"), client_name):
            continue
        result.append(row)
    return result


def filter_documents(rows: Iterable[Dict[str, Any]], category: Optional[str] = None) -> List[Dict[str, Any]]:
    if not _enabled(category):
        return list(rows)
    return [row for row in rows if str(row.get("category") or "").lower() == category.lower()]


def status_counts(
    rows: Iterable[Dict[str, Any]],
    key: str,
    values: Sequence[str],
) -> Dict[str, int]:
    counts = {value: 0 for value in values}
    total = 0
    for row in rows:
        total += 1
        value = row.get(key)
        if value in counts:
            counts[value] += 1
    counts["all"] = total
    return counts


def bond_counts(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    return status_counts(rows, "status", BOND_COUNT_STATUSES)


def document_counts(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    return status_counts(rows, "category", DOCUMENT_COUNT_CATEGORIES)


def to_number(value: Any) -> Decimal:
    """
    Parse a stored amount. Blank or unparseable values count as zero.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    try:
        number = Decimal(str(value).replace(",", "").replace("$", "").strip() or "0")
    except InvalidOperation:
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def format_currency(amount: Any) -> str:
    number = to_number(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if number < 0 else ""
    return f"{sign}${abs(number):,.2f}"


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def format_date(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return "Never"
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def initials(first: Optional[str], last: Optional[str]) -> str:
    return f"{(first or '')[:1]}{(last or '')[:1]}".upper()


def premium_amount(bond_amount: Any, rate_percent: Any) -> Decimal:
    return (to_number(bond_amount) * to_number(rate_percent) / 100).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )


def rate_to_fraction(percent: Any) -> Decimal:
    return (to_number(percent) / 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def mask_email(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return ""
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"
