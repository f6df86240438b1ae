from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .sql import validate_identifier


CLIENT_STATUSES = ("active", "inactive", "high_risk")
CASE_STATUSES = ("open", "closed", "dismissed")
BOND_STATUSES = ("active", "completed", "forfeited", "at_risk")
BOND_PAYMENT_STATUSES = ("pending", "partial", "paid_full", "overdue")
PAYMENT_TYPES = ("premium", "collateral_return", "fee")
PAYMENT_METHODS = ("cash", "check", "credit_card", "bank_transfer")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
DOCUMENT_CATEGORIES = ("contract", "court_papers", "identification", "financial")
CHECKIN_STATUSES = ("completed", "failed", "pending_review")
CONTRACT_STATUSES = ("draft", "sent", "signed", "executed")
CONTRACT_TYPES = (
    "bail-agreement",
    "indemnity",
    "collateral",
    "payment-plan",
    "power-of-attorney",
)
USER_ROLES = ("admin", "agent", "staff")

# Never leave the server.
SECRET_COLUMNS = frozenset({"password", "portal_password"})
# Only changed through enable_portal and touch_checkin.
PORTAL_COLUMNS = frozenset({"portal_username", "portal_password", "portal_enabled", "last_checkin"})


@dataclass(frozen=True)
class Column:
    name: str
    sql_type: str
    nullable: bool = True
    default: Optional[str] = None
    unique: bool = False

    def ddl(self) -> str:
        parts = [self.name, self.sql_type]
        if self.name == "id":
            parts.append("PRIMARY KEY")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.unique:
            parts.append("UNIQUE")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


def _id() -> Column:
    return Column("id", "VARCHAR(255)", nullable=False)


def _timestamps(updated: bool = True) -> List[Column]:
    columns = [Column("created_at", "TIMESTAMP", False, "CURRENT_TIMESTAMP")]
    if updated:
        columns.append(Column("updated_at", "TIMESTAMP", False, "CURRENT_TIMESTAMP"))
    return columns


TABLES: Dict[str, List[Column]] = {
    "users": [
        _id(),
        Column("username", "TEXT", False, unique=True),
        Column("email", "TEXT", False, unique=True),
        Column("password", "TEXT", False),
        Column("first_name", "TEXT", False),
        Column("last_name", "TEXT", False),
        Column("role", "TEXT", False, "'agent'"),
        Column("is_active", "BOOLEAN", False, "TRUE"),
        *_timestamps(),
    ],
    "clients": [
        _id(),
        Column("first_name", "TEXT", False),
        Column("last_name", "TEXT", False),
        Column("date_of_birth", "TEXT", False),
        Column("phone", "TEXT", False),
        Column("email", "TEXT", unique=True),
        Column("address", "TEXT", False),
        Column("city", "TEXT", False),
        Column("state", "TEXT", False),
        Column("zip_code", "TEXT", False),
        Column("emergency_contact", "TEXT"),
        Column("emergency_phone", "TEXT"),
        Column("status", "TEXT", False, "'active'"),
        Column("notes", "TEXT"),
        Column("portal_username", "TEXT", unique=True),
        Column("portal_password", "TEXT"),
        Column("portal_enabled", "BOOLEAN", False, "FALSE"),
        Column("last_checkin", "TIMESTAMP"),
        *_timestamps(),
    ],
    "cases": [
        _id(),
        Column("case_number", "TEXT", False, unique=True),
        Column("client_id", "VARCHAR(255)", False),
        Column("charges", "TEXT", False),
        Column("arrest_date", "TEXT", False),
        Column("court_date", "TEXT"),
        Column("court_location", "TEXT"),
        Column("judge_name", "TEXT"),
        Column("prosecutor_name", "TEXT"),
        Column("defense_attorney", "TEXT"),
        Column("status", "TEXT", False, "'open'"),
        Column("notes", "TEXT"),
        *_timestamps(),
    ],
    "bonds": [
        _id(),
        Column("bond_number", "TEXT", False, unique=True),
        Column("client_id", "VARCHAR(255)", False),
        Column("case_id", "VARCHAR(255)", False),
        Column("bond_amount", "DECIMAL(10, 2)", False),
        Column("premium_amount", "DECIMAL(10, 2)", False),
        Column("premium_rate", "DECIMAL(5, 4)", False),
        Column("collateral_amount", "DECIMAL(10, 2)"),
        Column("collateral_description", "TEXT"),
        Column("status", "TEXT", False, "'active'"),
        Column("issue_date", "TEXT", False),
        Column("exoneration_date", "TEXT"),
        Column("payment_status", "TEXT", False, "'pending'"),
        Column("agent_id", "VARCHAR(255)"),
        Column("notes", "TEXT"),
        *_timestamps(),
    ],
    "payments": [
        _id(),
        Column("transaction_id", "TEXT", False, unique=True),
        Column("bond_id", "VARCHAR(255)", False),
        Column("client_id", "VARCHAR(255)", False),
        Column("amount", "DECIMAL(10, 2)", False),
        Column("payment_type", "TEXT", False),
        Column("payment_method", "TEXT", False),
        Column("status", "TEXT", False, "'completed'"),
        Column("payment_date", "TEXT", False),
        Column("notes", "TEXT"),
        *_timestamps(),
    ],
    "documents": [
        _id(),
        Column("filename", "TEXT", False),
        Column("original_name", "TEXT", False),
        Column("file_size", "INTEGER", False),
        Column("mime_type", "TEXT", False),
        Column("category", "TEXT", False),
        Column("related_id", "VARCHAR(255)"),
        Column("related_type", "TEXT"),
        Column("uploaded_by", "VARCHAR(255)", False),
        Column("notes", "TEXT"),
        *_timestamps(),
    ],
    "activities": [
        _id(),
        Column("user_id", "VARCHAR(255)", False),
        Column("action", "TEXT", False),
        Column("resource_type", "TEXT", False),
        Column("resource_id", "VARCHAR(255)", False),
        Column("details", "TEXT"),
        *_timestamps(updated=False),
    ],
    "client_checkins": [
        _id(),
        Column("client_id", "VARCHAR(255)", False),
        Column("bond_id", "VARCHAR(255)", False),
        Column("photo_url", "TEXT"),
        Column("latitude", "DECIMAL(10, 8)"),
        Column("longitude", "DECIMAL(11, 8)"),
        Column("location_name", "TEXT"),
        Column("notes", "TEXT"),
        Column("status", "TEXT", False, "'completed'"),
        *_timestamps(updated=False),
    ],
    "contract_templates": [
        _id(),
        Column("name", "TEXT", False),
        Column("name_es", "TEXT", False),
        Column("type", "TEXT", False),
        Column("description", "TEXT", False),
        Column("description_es", "TEXT", False),
        Column("content", "TEXT", False),
        Column("content_es", "TEXT", False),
        Column("variables", "TEXT", False, "'[]'"),
        Column("is_active", "BOOLEAN", False, "TRUE"),
        Column("created_by", "VARCHAR(255)", False),
        *_timestamps(),
    ],
    "generated_contracts": [
        _id(),
        Column("template_id", "VARCHAR(255)", False),
        Column("client_id", "VARCHAR(255)", False),
        Column("case_id", "VARCHAR(255)"),
        Column("bond_id", "VARCHAR(255)"),
        Column("content", "TEXT", False),
        Column("variables", "TEXT", False, "'{}'"),
        Column("status", "TEXT", False, "'draft'"),
        Column("generated_by", "VARCHAR(255)", False),
        Column("signed_at", "TIMESTAMP"),
        *_timestamps(),
    ],
}

# Columns holding JSON documents in a TEXT column.
JSON_COLUMNS = {
    "activities": ("details",),
    "contract_templates": ("variables",),
    "generated_contracts": ("variables",),
}


def create_table_sql(table: str) -> str:
    columns = TABLES[validate_identifier(table)]
    body = ",\n  ".join(column.ddl() for column in columns)
    return f"CREATE TABLE IF NOT EXISTS {table} (\n  {body}\n)"


def column_names(table: str) -> List[str]:
    return [column.name for column in TABLES[table]]


def writable_columns(table: str) -> List[str]:
    return [
        name
        for name in column_names(table)
        if name not in {"id", "created_at", "updated_at"}
    ]


def unique_columns(table: str) -> List[str]:
    return [column.name for column in TABLES[table] if column.unique]


def clean_update(table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only columns the caller may set, accepting camelCase keys.
    """
    allowed = set(writable_columns(table)) - SECRET_COLUMNS - PORTAL_COLUMNS
    cleaned: Dict[str, Any] = {}
    for key, value in payload.items():
        column = to_snake(key)
        if column in allowed:
            cleaned[column] = value
    return cleaned


def validate_changes(
    model: type,
    table: str,
    existing: Dict[str, Any],
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Validate a partial update by checking the merged record against ``model``.

    Only the columns named in ``payload`` are returned, normalised the same
    way a create would normalise them.
    """
    changed = clean_update(table, payload)
    if not changed:
        return {}
    merged = {key: value for key, value in existing.items() if key not in SECRET_COLUMNS}
    merged.update(changed)
    validated = model.model_validate(merged).model_dump()
    return {key: validated.get(key, value) for key, value in changed.items()}


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def to_api(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {
        to_camel(key): value
        for key, value in row.items()
        if key not in SECRET_COLUMNS
    }


def to_api_list(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [to_api(row) for row in rows]


def money(value: Any) -> str:
    """
    Normalise a monetary amount to a two-decimal string.
    """
    try:
        amount = Decimal(str(value).replace(",", "").replace("$", "").strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class RecordIn(BaseModel):
    """
    Base for request bodies: camelCase on the wire, snake_case in storage.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


Amount = Union[str, int, float]


class UserIn(RecordIn):
    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    role: Literal["admin", "agent", "staff"] = "agent"
    is_active: bool = True


class ClientIn(RecordIn):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    date_of_birth: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[str] = None
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    status: Literal["active", "inactive", "high_risk"] = "active"
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _blank_email(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class CaseIn(RecordIn):
    case_number: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    charges: str = Field(min_length=1)
    arrest_date: str = Field(min_length=1)
    court_date: Optional[str] = None
    court_location: Optional[str] = None
    judge_name: Optional[str] = None
    prosecutor_name: Optional[str] = None
    defense_attorney: Optional[str] = None
    status: Literal["open", "closed", "dismissed"] = "open"
    notes: Optional[str] = None


class BondIn(RecordIn):
    bond_number: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    case_id: str = Field(min_length=1)
    bond_amount: Amount
    premium_amount: Amount
    premium_rate: Amount
    collateral_amount: Optional[Amount] = None
    collateral_description: Optional[str] = None
    status: Literal["active", "completed", "forfeited", "at_risk"] = "active"
    issue_date: str = Field(min_length=1)
    exoneration_date: Optional[str] = None
    payment_status: Literal["pending", "partial", "paid_full", "overdue"] = "pending"
    agent_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("bond_amount", "premium_amount", "collateral_amount")
    @classmethod
    def _money(cls, value: Optional[Amount]) -> Optional[str]:
        if value is None:
            return None
        return money(value)

    @field_validator("premium_rate")
    @classmethod
    def _rate(cls, value: Amount) -> str:
        try:
            rate = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid premium rate: {value!r}") from exc
        if not rate.is_finite() or rate < 0:
            raise ValueError(f"Invalid premium rate: {value!r}")
        return str(rate.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))


class PaymentIn(RecordIn):
    transaction_id: str = Field(min_length=1)
    bond_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    amount: Amount
    payment_type: Literal["premium", "collateral_return", "fee"]
    payment_method: Literal["cash", "check", "credit_card", "bank_transfer"]
    status: Literal["pending", "completed", "failed", "refunded"] = "completed"
    payment_date: str = Field(min_length=1)
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _money(cls, value: Amount) -> str:
        return money(value)


class DocumentIn(RecordIn):
    filename: str = Field(min_length=1)
    original_name: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    mime_type: str = Field(min_length=1)
    category: Literal["contract", "court_papers", "identification", "financial"]
    related_id: Optional[str] = None
    related_type: Optional[Literal["client", "bond", "case"]] = None
    uploaded_by: str = Field(min_length=1)
    notes: Optional[str] = None


class ActivityIn(RecordIn):
    user_id: str = Field(min_length=1)
    action: str = Field(min_length=1)
    resource_type: str = Field(min_length=1)
    resource_id: str = Field(min_length=1)
    details: Optional[Dict[str, Any]] = None


class CheckinIn(RecordIn):
    client_id: str = Field(min_length=1)
    bond_id: str = Field(min_length=1)
    photo_url: Optional[str] = None
    latitude: Optional[Amount] = None
    longitude: Optional[Amount] = None
    location_name: Optional[str] = None
    notes: Optional[str] = None
    status: Literal["completed", "failed", "pending_review"] = "completed"

    @field_validator("latitude", "longitude")
    @classmethod
    def _coordinate(cls, value: Optional[Amount]) -> Optional[str]:
        if value is None or value == "":
            return None
        try:
            number = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid coordinate: {value!r}") from exc
        if not number.is_finite() or abs(number) > 180:
            raise ValueError(f"Invalid coordinate: {value!r}")
        return str(number)


class ContractTemplateIn(RecordIn):
    name: str = Field(min_length=1)
    name_es: str = Field(min_length=1)
    type: Literal[
        "bail-agreement", "indemnity", "collateral", "payment-plan", "power-of-attorney"
    ] = "bail-agreement"
    description: str = ""
    description_es: str = ""
    content: str = Field(min_length=1)
    content_es: str = Field(min_length=1)
    variables: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_by: str = "system-user"


class GeneratedContractIn(RecordIn):
    template_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    case_id: Optional[str] = None
    bond_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    language: Literal["en", "es"] = "en"
    generated_by: str = "system-user"

    def to_record(self) -> Dict[str, Any]:
        record = super().to_record()
        record.pop("language", None)
        return record
