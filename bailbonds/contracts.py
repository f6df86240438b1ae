from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .filters import format_currency, format_date

VARIABLE_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def extract_variables(content: str) -> List[str]:
    seen: List[str] = []
    for match in VARIABLE_RE.finditer(content or ""):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def render_contract(content: str, values: Dict[str, Any]) -> Tuple[str, List[str]]:
    """
    Substitute ``{{name}}`` placeholders.

    Placeholders without a value are left in the text so the gap is visible
    on review, and reported in the returned list.
    """
    missing: List[str] = []

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        value = values.get(name)
        if value is None or value == "":
            if name not in missing:
                missing.append(name)
            return "{{" + name + "}}"
        return str(value)

    return VARIABLE_RE.sub(_replace, content or ""), missing


def standard_values(
    client: Optional[Dict[str, Any]],
    case: Optional[Dict[str, Any]],
    bond: Optional[Dict[str, Any]],
    agency: Optional[Dict[str, Any]],
    today: Optional[date] = None,
) -> Dict[str, str]:
    values: Dict[str, str] = {"today": format_date(today or date.today())}
    if client:
        values["clientName"] = f"{client.get('first_name') or ''} {client.get('last_name') or ''}".strip()
    if case:
        values["caseNumber"] = case.get("case_number") or ""
        if case.get("court_date"):
            values["courtDate"] = format_date(case.get("court_date"))
    if bond:
        values["bondAmount"] = format_currency(bond.get("bond_amount"))
        values["premiumAmount"] = format_currency(bond.get("premium_amount"))
    if agency and agency.get("name"):
        values["agencyName"] = agency["name"]
    return values


def localized(template: Dict[str, Any], field: str, language: str) -> str:
    if language == "es":
        value = template.get(f"{field}_es")
        if value:
            return value
    return template.get(field) or ""
