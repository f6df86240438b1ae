from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from datetime import date
from decimal import Decimal, InvalidOperation
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urlparse
from uuid import uuid4

from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .ai import AIService, build_chat_client
from .contracts import extract_variables, localized, render_contract, standard_values
from .filters import (
    bond_counts,
    document_counts,
    filter_bonds,
    filter_cases,
    filter_clients,
    filter_documents,
    premium_amount,
    rate_to_fraction,
)
from .gibson import GibsonClient, GibsonError
from .i18n import SUPPORTED_LANGUAGES, detect_language
from .notifications import NotificationStore, ReminderMonitor, WorkflowRule, load_rules
from .portal import RATE_LIMIT_MESSAGE, SESSION_TTL_SECONDS, LoginRateLimiter, PortalSessions, authenticate
from .reports import EXPORT_COLUMNS, build_summary, export_csv, monthly_revenue
from .schema import (
    CONTRACT_STATUSES,
    BondIn,
    CaseIn,
    CheckinIn,
    ClientIn,
    ContractTemplateIn,
    DocumentIn,
    GeneratedContractIn,
    PaymentIn,
    to_api,
    to_api_list,
    to_snake,
    validate_changes,
)
from .settings import SettingsManager, data_dir
from .storage import DuplicateError, GibsonStorage, Storage, StorageError, UpstreamError, build_storage, utcnow
from .templates import (
    Chrome,
    render_bonds_page,
    render_cases_page,
    render_client_detail,
    render_clients_page,
    render_contracts_page,
    render_dashboard,
    render_documents_page,
    render_financial_page,
    render_help_page,
    render_notifications_page,
    render_portal_login,
    render_portal_page,
    render_reports_page,
    render_settings_page,
)
from .uploads import DOCUMENT_POLICY, PHOTO_POLICY, UploadError, remove_files, save_upload

DATA_DIR = data_dir()
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = DATA_DIR / "server.log"
SETTINGS_PATH = DATA_DIR / "settings.json"
UPLOAD_DIR = DATA_DIR / "uploads"

SYSTEM_USER = "system-user"
PORTAL_COOKIE = "portal_token"
LANGUAGE_COOKIE = "language"
QUIET_PATHS = ("/status", "/health/")


class _QuietPollFilter(logging.Filter):
    """Drop uvicorn access lines for status polling."""

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2])
            return not any(path.startswith(prefix) for prefix in QUIET_PATHS)
        return True


def _configure_logging() -> logging.Logger:
    logger = logging.getLogger("bailbonds")
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler = RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False
    logging.getLogger("uvicorn.access").addFilter(_QuietPollFilter())
    logger.debug("Logging initialised, writing to %s", LOG_FILE)
    return logger


logger = _configure_logging()

app = FastAPI(title="BailBond Pro")

settings_manager = SettingsManager(SETTINGS_PATH)
notification_store = NotificationStore(DATA_DIR)
portal_sessions = PortalSessions()
login_limiter = LoginRateLimiter()

_services: Dict[str, Any] = {"storage": None, "ai": None}
_services_lock = threading.Lock()
monitor_task: Optional[asyncio.Task] = None


def get_storage() -> Storage:
    with _services_lock:
        if _services["storage"] is None:
            _services["storage"] = build_storage(settings_manager.effective())
        return _services["storage"]


def get_ai() -> AIService:
    with _services_lock:
        if _services["ai"] is None:
            _services["ai"] = AIService(build_chat_client(settings_manager.effective()))
        return _services["ai"]


reminder_monitor = ReminderMonitor(notification_store, get_storage, settings_manager.effective)


# Error translation


def _validation_details(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    details = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(location), "message": error.get("msg", "")})
    return details


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "Validation error", "details": _validation_details(exc.errors())},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "Validation error", "details": _validation_details(exc.errors())},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(DuplicateError)
async def duplicate_handler(request: Request, exc: DuplicateError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(GibsonError)
@app.exception_handler(UpstreamError)
async def upstream_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Database request failed for %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_502_BAD_GATEWAY)


@app.exception_handler(StorageError)
async def storage_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure for %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error for %s", request.url.path, exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# Helpers


def _not_found(label: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")


def _audit(action: str, resource_type: str, resource_id: str, details: Optional[Dict[str, Any]] = None) -> None:
    get_storage().record_activity(SYSTEM_USER, action, resource_type, resource_id, details)


def _language(request: Request) -> str:
    return detect_language(
        request.cookies.get(LANGUAGE_COOKIE),
        request.headers.get("accept-language"),
        settings_manager.settings.get("agency", {}).get("language") or "en",
    )


def _chrome(request: Request) -> Chrome:
    return Chrome(
        language=_language(request),
        agency_name=settings_manager.settings.get("agency", {}).get("name") or "BailBond Pro",
        unread=notification_store.unread_count(),
        backend=get_storage().name,
    )


def _client_names(clients: List[Dict[str, Any]]) -> Dict[str, str]:
    return {
        client["id"]: f"{client.get('first_name') or ''} {client.get('last_name') or ''}".strip()
        for client in clients
    }


def _with_premium(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill in the premium rate and amount from the agency default when omitted.
    """
    # Bodies may mix camelCase and snake_case keys.
    data = {to_snake(key): value for key, value in payload.items()}
    if data.get("bond_amount") in (None, ""):
        return data
    if data.get("premium_rate") in (None, ""):
        percent = settings_manager.settings.get("agency", {}).get("default_premium_rate", 10)
        data["premium_rate"] = str(rate_to_fraction(percent))
    if data.get("premium_amount") in (None, ""):
        try:
            percent = Decimal(str(data["premium_rate"])) * 100
        except InvalidOperation as exc:
            raise ValueError(f"Invalid premium rate: {data['premium_rate']!r}") from exc
        data["premium_amount"] = str(premium_amount(data["bond_amount"], percent))
    return data


def _store_documents(
    files: Optional[List[UploadFile]],
    category: Optional[str],
    related_type: Optional[str] = None,
    related_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> List[Dict[str, Any]]:
    uploads = [upload for upload in files or [] if upload.filename]
    DOCUMENT_POLICY.check_count(len(uploads))
    if not category:
        raise UploadError("Category is required")
    storage = get_storage()
    saved = []
    created: List[Dict[str, Any]] = []
    try:
        for upload in uploads:
            content = upload.file.read()
            DOCUMENT_POLICY.check_file(upload.filename, upload.content_type, len(content))
            path = save_upload(UPLOAD_DIR, upload.filename, content)
            saved.append(path)
            record = DocumentIn.model_validate(
                {
                    "filename": path.name,
                    "original_name": upload.filename,
                    "file_size": len(content),
                    "mime_type": upload.content_type,
                    "category": category,
                    "related_type": related_type or None,
                    "related_id": related_id or None,
                    "uploaded_by": SYSTEM_USER,
                    "notes": notes or None,
                }
            ).to_record()
            created.append(storage.create_document(record))
    except (ValueError, StorageError, GibsonError):
        remove_files(saved)
        raise
    for document in created:
        _audit("uploaded", "document", document["id"], {"originalName": document.get("original_name")})
    logger.info("Uploaded %s document(s) in category %s.", len(created), category)
    return created


def _form_fields(body: bytes):
    form_pairs = parse_qs(body.decode("utf-8"))

    def get_field(name: str, default: str = "") -> str:
        values = form_pairs.get(name)
        if not values:
            return default
        return values[-1]

    return get_field


def _number_field(raw: str, current: Any, cast=float) -> Any:
    if raw == "":
        return current
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid numeric setting %r.", raw)
        return current


# Lifecycle


@app.on_event("startup")
async def on_startup() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    storage = get_storage()
    logger.info("Application startup complete (storage=%s).", storage.name)

    global monitor_task
    monitor_task = asyncio.create_task(reminder_monitor.loop(), name="reminder-monitor")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if monitor_task:
        monitor_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await monitor_task
    notification_store.compact()
    logger.info("Application shutdown complete.")


# Dashboard API


@app.get("/api/dashboard/stats")
def dashboard_stats() -> Dict[str, Any]:
    return get_storage().dashboard_stats(date.today())


@app.get("/api/dashboard/recent-activity")
def dashboard_recent_activity(limit: int = Query(10, ge=1, le=100)) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().recent_activity(limit))


@app.get("/api/dashboard/upcoming-court-dates")
def dashboard_upcoming_court_dates(limit: int = Query(10, ge=1, le=100)) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().upcoming_court_dates(limit, date.today()))


# Clients API


@app.get("/api/clients")
def list_clients(status_filter: Optional[str] = Query(None, alias="status"), search: Optional[str] = None) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_clients(status=status_filter, search=search))


@app.get("/api/clients/with-bonds")
def list_clients_with_bonds() -> List[Dict[str, Any]]:
    return to_api_list(get_storage().clients_with_bonds())


@app.get("/api/clients/{client_id}")
def get_client(client_id: str) -> Dict[str, Any]:
    client = get_storage().get_client(client_id)
    if client is None:
        raise _not_found("Client")
    return to_api(client)


@app.post("/api/clients", status_code=status.HTTP_201_CREATED)
def create_client(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    record = ClientIn.model_validate(payload).to_record()
    client = get_storage().create_client(record)
    _audit("created", "client", client["id"], {"name": f"{client['first_name']} {client['last_name']}"})
    return to_api(client)


@app.patch("/api/clients/{client_id}")
def update_client(client_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    storage = get_storage()
    existing = storage.get_client(client_id)
    if existing is None:
        raise _not_found("Client")
    changes = validate_changes(ClientIn, "clients", existing, payload)
    client = storage.update_client(client_id, changes)
    if client is None:
        raise _not_found("Client")
    _audit("updated", "client", client_id, {"fields": sorted(changes)})
    return to_api(client)


@app.delete("/api/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(client_id: str) -> Response:
    if not get_storage().delete_client(client_id):
        raise _not_found("Client")
    portal_sessions.revoke_client(client_id)
    _audit("deleted", "client", client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Cases API


@app.get("/api/cases")
def list_cases(
    client_id: Optional[str] = Query(None, alias="clientId"),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_cases(client_id=client_id, status=status_filter))


@app.get("/api/cases/{case_id}")
def get_case(case_id: str) -> Dict[str, Any]:
    case = get_storage().get_case(case_id)
    if case is None:
        raise _not_found("Case")
    return to_api(case)


@app.post("/api/cases", status_code=status.HTTP_201_CREATED)
def create_case(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    record = CaseIn.model_validate(payload).to_record()
    case = get_storage().create_case(record)
    _audit("created", "case", case["id"], {"caseNumber": case["case_number"]})
    return to_api(case)


@app.patch("/api/cases/{case_id}")
def update_case(case_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    storage = get_storage()
    existing = storage.get_case(case_id)
    if existing is None:
        raise _not_found("Case")
    changes = validate_changes(CaseIn, "cases", existing, payload)
    case = storage.update_case(case_id, changes)
    if case is None:
        raise _not_found("Case")
    _audit("updated", "case", case_id, {"fields": sorted(changes)})
    return to_api(case)


@app.delete("/api/cases/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_case(case_id: str) -> Response:
    if not get_storage().delete_case(case_id):
        raise _not_found("Case")
    _audit("deleted", "case", case_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Bonds API


@app.get("/api/bonds")
def list_bonds(
    client_id: Optional[str] = Query(None, alias="clientId"),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_bonds(client_id=client_id, status=status_filter))


@app.get("/api/bonds/with-details")
def list_bonds_with_details() -> List[Dict[str, Any]]:
    return to_api_list(get_storage().bonds_with_details())


@app.get("/api/bonds/{bond_id}")
def get_bond(bond_id: str) -> Dict[str, Any]:
    bond = get_storage().get_bond(bond_id)
    if bond is None:
        raise _not_found("Bond")
    return to_api(bond)


@app.post("/api/bonds", status_code=status.HTTP_201_CREATED)
def create_bond(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    record = BondIn.model_validate(_with_premium(payload)).to_record()
    bond = get_storage().create_bond(record)
    _audit("created", "bond", bond["id"], {"bondNumber": bond["bond_number"], "amount": bond["bond_amount"]})
    return to_api(bond)


@app.patch("/api/bonds/{bond_id}")
def update_bond(bond_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    storage = get_storage()
    existing = storage.get_bond(bond_id)
    if existing is None:
        raise _not_found("Bond")
    changes = validate_changes(BondIn, "bonds", existing, payload)
    bond = storage.update_bond(bond_id, changes)
    if bond is None:
        raise _not_found("Bond")
    _audit("updated", "bond", bond_id, {"fields": sorted(changes)})
    return to_api(bond)


@app.delete("/api/bonds/{bond_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bond(bond_id: str) -> Response:
    if not get_storage().delete_bond(bond_id):
        raise _not_found("Bond")
    _audit("deleted", "bond", bond_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Payments and financial API


@app.get("/api/payments")
def list_payments(
    bond_id: Optional[str] = Query(None, alias="bondId"),
    client_id: Optional[str] = Query(None, alias="clientId"),
) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_payments(bond_id=bond_id, client_id=client_id))


@app.post("/api/payments", status_code=status.HTTP_201_CREATED)
def create_payment(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    record = PaymentIn.model_validate(payload).to_record()
    payment = get_storage().create_payment(record)
    _audit("created", "payment", payment["id"], {"amount": payment["amount"], "transactionId": payment["transaction_id"]})
    return to_api(payment)


@app.get("/api/financial/summary")
def financial_summary() -> Dict[str, Any]:
    return get_storage().financial_summary(date.today())


@app.get("/api/activities")
def list_activities(
    resource_id: Optional[str] = Query(None, alias="resourceId"),
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    limit: int = Query(50, ge=1, le=500),
) -> List[Dict[str, Any]]:
    return to_api_list(
        get_storage().list_activities(resource_id=resource_id, resource_type=resource_type, limit=limit)
    )


# Documents API


@app.get("/api/documents")
def list_documents(
    category: Optional[str] = None,
    related_id: Optional[str] = Query(None, alias="relatedId"),
    related_type: Optional[str] = Query(None, alias="relatedType"),
) -> List[Dict[str, Any]]:
    return to_api_list(
        get_storage().list_documents(category=category, related_id=related_id, related_type=related_type)
    )


@app.post("/api/documents/upload", status_code=status.HTTP_201_CREATED)
def upload_documents(
    files: Optional[List[UploadFile]] = File(None),
    category: Optional[str] = Form(None),
    related_type: Optional[str] = Form(None, alias="relatedType"),
    related_id: Optional[str] = Form(None, alias="relatedId"),
    notes: Optional[str] = Form(None),
) -> Dict[str, Any]:
    created = _store_documents(files, category, related_type, related_id, notes)
    return {
        "message": f"Successfully uploaded {len(created)} document(s)",
        "documents": to_api_list(created),
    }


# Contracts API


@app.get("/api/contract-templates")
def list_contract_templates(
    template_type: Optional[str] = Query(None, alias="type"),
    active: Optional[bool] = None,
) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_contract_templates(template_type=template_type, active=active))


@app.post("/api/contract-templates", status_code=status.HTTP_201_CREATED)
def create_contract_template(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    record = ContractTemplateIn.model_validate(payload).to_record()
    if not record.get("variables"):
        record["variables"] = extract_variables(record["content"] + "\n" + record["content_es"])
    template = get_storage().create_contract_template(record)
    _audit("created", "contract_template", template["id"], {"name": template["name"]})
    return to_api(template)


@app.get("/api/contracts")
def list_contracts(
    client_id: Optional[str] = Query(None, alias="clientId"),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_contracts(client_id=client_id, status=status_filter))


@app.post("/api/contracts", status_code=status.HTTP_201_CREATED)
def generate_contract(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    request_model = GeneratedContractIn.model_validate(payload)
    storage = get_storage()
    template = storage.get_contract_template(request_model.template_id)
    if template is None:
        raise _not_found("Template")
    client = storage.get_client(request_model.client_id)
    if client is None:
        raise _not_found("Client")
    case = storage.get_case(request_model.case_id) if request_model.case_id else None
    bond = storage.get_bond(request_model.bond_id) if request_model.bond_id else None
    values = standard_values(client, case, bond, settings_manager.settings.get("agency"), date.today())
    values.update({key: str(value) for key, value in request_model.variables.items() if value is not None})
    content, missing = render_contract(localized(template, "content", request_model.language), values)
    record = request_model.to_record()
    record.update({"content": content, "variables": values, "status": "draft"})
    contract = storage.create_contract(record)
    _audit("generated", "contract", contract["id"], {"templateId": template["id"], "missing": missing})
    response = to_api(contract)
    response["missingVariables"] = missing
    return response


@app.patch("/api/contracts/{contract_id}")
def update_contract(contract_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    storage = get_storage()
    if storage.get_contract(contract_id) is None:
        raise _not_found("Contract")
    changes: Dict[str, Any] = {}
    if "status" in payload:
        if payload["status"] not in CONTRACT_STATUSES:
            raise ValueError(f"Invalid contract status: {payload['status']!r}")
        changes["status"] = payload["status"]
        if payload["status"] == "signed":
            changes["signed_at"] = utcnow()
    if "content" in payload:
        if not str(payload["content"]).strip():
            raise ValueError("Contract content cannot be empty")
        changes["content"] = str(payload["content"])
    contract = storage.update_contract(contract_id, changes)
    if contract is None:
        raise _not_found("Contract")
    _audit("updated", "contract", contract_id, {"fields": sorted(changes)})
    return to_api(contract)


# Assistant API


@app.post("/api/ai/search")
def ai_search(request: Request, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    query = str(payload.get("query") or "").strip()
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query is required")
    storage = get_storage()
    data = {
        "clients": storage.list_clients(),
        "cases": storage.list_cases(),
        "bonds": storage.list_bonds(),
        "payments": storage.list_payments(),
        "documents": storage.list_documents(),
    }
    language = payload.get("language") or _language(request)
    return {"results": get_ai().intelligent_search(query, data, language)}


@app.post("/api/ai/translate")
def ai_translate(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    text = payload.get("text")
    from_language = payload.get("fromLanguage")
    to_language = payload.get("toLanguage")
    if not text or not from_language or not to_language:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Text, fromLanguage, and toLanguage are required",
        )
    return {"translation": get_ai().translate_text(text, from_language, to_language)}


@app.post("/api/ai/verify-photo")
def ai_verify_photo(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    image_data = payload.get("imageData")
    if not image_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image data is required")
    return get_ai().verify_checkin_photo(image_data)


@app.post("/api/ai/help")
def ai_help(request: Request, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    question = str(payload.get("question") or "").strip()
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question is required")
    language = payload.get("language") or _language(request)
    return {"response": get_ai().generate_help(question, language)}


@app.post("/api/ai/analyze-compliance")
def ai_analyze_compliance(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    case_id = payload.get("caseId")
    if not case_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Case ID is required")
    storage = get_storage()
    case = storage.get_case(case_id)
    if case is None:
        raise _not_found("Case")
    checkins = storage.list_checkins(client_id=case.get("client_id"))
    return get_ai().analyze_case_compliance(case, checkins, date.today())


# Client portal API


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def portal_client(client_id: str, authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    session_client = portal_sessions.verify(authorization[7:].strip())
    if session_client is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    if session_client != client_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    client = get_storage().get_client(client_id)
    if not client or not client.get("portal_enabled"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Client not found or portal disabled")
    return client


@app.post("/api/client/login")
def client_login(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    ip = _client_ip(request)
    if login_limiter.blocked(ip):
        return JSONResponse({"error": RATE_LIMIT_MESSAGE}, status_code=status.HTTP_429_TOO_MANY_REQUESTS)
    username = str(payload.get("username") or "").strip()
    password = str(payload.get("password") or "")
    if not username or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password are required")
    client = authenticate(get_storage(), username, password)
    if client is None:
        login_limiter.record_failure(ip)
        logger.warning("Failed portal login for %s from %s.", username, ip)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    login_limiter.reset(ip)
    token = portal_sessions.issue(client["id"])
    logger.info("Portal login for client %s.", client["id"])
    return JSONResponse(
        {"success": True, "client": to_api(client), "token": token, "message": "Login successful"}
    )


@app.post("/api/client/{client_id}/enable-portal")
def enable_portal(client_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    username = str(payload.get("username") or "").strip()
    password = str(payload.get("password") or "")
    if not username or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password are required")
    storage = get_storage()
    if storage.get_client(client_id) is None:
        raise _not_found("Client")
    client = storage.enable_portal(client_id, username, password)
    if client is None:
        raise _not_found("Client")
    portal_sessions.revoke_client(client_id)
    _audit("portal_enabled", "client", client_id, {"username": username})
    return {"success": True, "client": to_api(client), "message": "Portal access enabled successfully"}


@app.get("/api/client/{client_id}/dashboard")
def client_dashboard(client: Dict[str, Any] = Depends(portal_client)) -> Dict[str, Any]:
    storage = get_storage()
    client_id = client["id"]
    return {
        "client": {
            "id": client_id,
            "firstName": client.get("first_name"),
            "lastName": client.get("last_name"),
            "phone": client.get("phone"),
            "email": client.get("email"),
            "status": client.get("status"),
            "lastCheckin": client.get("last_checkin"),
        },
        "bonds": to_api_list(storage.client_bonds(client_id)),
        "cases": to_api_list(storage.client_cases(client_id)),
        "upcomingCourtDates": to_api_list(storage.client_court_dates(client_id, date.today())),
        "recentCheckins": to_api_list(storage.list_checkins(client_id=client_id)[:5]),
    }


@app.post("/api/client/{client_id}/checkin")
def client_checkin(
    client: Dict[str, Any] = Depends(portal_client),
    bond_id: Optional[str] = Form(None, alias="bondId"),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    location_name: Optional[str] = Form(None, alias="locationName"),
    notes: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
) -> Dict[str, Any]:
    if not bond_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bond ID is required")
    storage = get_storage()
    bond = storage.get_bond(bond_id)
    if bond is None:
        raise _not_found("Bond")
    case = storage.get_case(bond["case_id"]) if bond.get("case_id") else None
    owner = case.get("client_id") if case else bond.get("client_id")
    if owner != client["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied - bond does not belong to client",
        )
    saved = []
    photo_url = None
    if photo is not None and photo.filename:
        content = photo.file.read()
        PHOTO_POLICY.check_file(photo.filename, photo.content_type, len(content))
        path = save_upload(UPLOAD_DIR, photo.filename, content)
        saved.append(path)
        photo_url = f"/uploads/{path.name}"
    try:
        record = CheckinIn.model_validate(
            {
                "client_id": client["id"],
                "bond_id": bond_id,
                "photo_url": photo_url,
                "latitude": latitude,
                "longitude": longitude,
                "location_name": location_name or None,
                "notes": notes or None,
            }
        ).to_record()
        checkin = storage.create_checkin(record)
    except (ValueError, StorageError, GibsonError):
        remove_files(saved)
        raise
    storage.touch_checkin(client["id"], checkin.get("created_at"))
    _audit("checked_in", "client", client["id"], {"bondId": bond_id})
    return {"success": True, "checkin": to_api(checkin), "message": "Check-in completed successfully"}


@app.get("/api/client/{client_id}/checkins")
def client_checkins(
    client: Dict[str, Any] = Depends(portal_client),
    bond_id: Optional[str] = Query(None, alias="bondId"),
) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().list_checkins(client_id=client["id"], bond_id=bond_id))


@app.get("/api/client/{client_id}/bonds")
def client_bonds(client: Dict[str, Any] = Depends(portal_client)) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().client_bonds(client["id"]))


@app.get("/api/client/{client_id}/cases")
def client_cases(client: Dict[str, Any] = Depends(portal_client)) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().client_cases(client["id"]))


@app.get("/api/client/{client_id}/court-dates")
def client_court_dates(client: Dict[str, Any] = Depends(portal_client)) -> List[Dict[str, Any]]:
    return to_api_list(get_storage().client_court_dates(client["id"], date.today()))


# Notifications API


@app.get("/api/notifications")
def list_notifications(
    status_filter: Optional[str] = Query(None, alias="status"),
    notification_type: Optional[str] = Query(None, alias="type"),
) -> List[Dict[str, Any]]:
    items = notification_store.list(status=status_filter, type=notification_type)
    return [to_api(item.to_dict()) for item in items]


@app.post("/api/notifications/scan")
def scan_notifications() -> Dict[str, Any]:
    added = reminder_monitor.scan()
    return {"added": len(added), "notifications": [to_api(item.to_dict()) for item in added]}


@app.post("/api/notifications/{notification_id}/read")
def read_notification(notification_id: str) -> Dict[str, Any]:
    notification = notification_store.mark_read(notification_id)
    if notification is None:
        raise _not_found("Notification")
    return to_api(notification.to_dict())


@app.post("/api/notifications/{notification_id}/dismiss")
def dismiss_notification(notification_id: str) -> Dict[str, Any]:
    notification = notification_store.dismiss(notification_id)
    if notification is None:
        raise _not_found("Notification")
    return to_api(notification.to_dict())


@app.get("/api/workflow-rules")
def list_workflow_rules() -> List[Dict[str, Any]]:
    rules = load_rules(settings_manager.settings.get("workflow_rules") or [])
    return [to_api(rule.to_dict()) for rule in rules]


@app.post("/api/workflow-rules")
def save_workflow_rule(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    data = {to_snake(key): value for key, value in payload.items()}
    if not str(data.get("name") or "").strip():
        raise ValueError("Rule name is required")
    data.setdefault("id", f"rule-{uuid4().hex[:8]}")
    rule = WorkflowRule.from_dict(data)
    rules = [
        existing
        for existing in settings_manager.settings.get("workflow_rules") or []
        if existing.get("id") != rule.id
    ]
    rules.append(rule.to_dict())
    settings_manager.save({"workflow_rules": rules})
    logger.info("Workflow rule %s saved (trigger=%s, active=%s).", rule.id, rule.trigger, rule.is_active)
    return to_api(rule.to_dict())


# Reports API


@app.get("/api/reports/summary")
def reports_summary() -> Dict[str, Any]:
    storage = get_storage()
    today = date.today()
    return build_summary(
        storage.list_clients(),
        storage.list_bonds(),
        storage.list_payments(),
        storage.financial_summary(today),
        today,
    )


@app.get("/api/reports/export.csv")
def reports_export(kind: str = "bonds") -> Response:
    if kind not in EXPORT_COLUMNS:
        raise ValueError(f"Unknown export kind: {kind!r}")
    storage = get_storage()
    rows = {
        "bonds": storage.bonds_with_details,
        "clients": storage.clients_with_bonds,
        "payments": storage.list_payments,
    }[kind]()
    return Response(
        content=export_csv(rows, EXPORT_COLUMNS[kind]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind}-{date.today().isoformat()}.csv"'},
    )


# Admin and health


@app.post("/api/admin/init-database")
def init_database() -> JSONResponse:
    storage = get_storage()
    if not isinstance(storage, GibsonStorage):
        return JSONResponse(
            {"error": "Database initialization requires a Gibson API key"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    tables = storage.initialize_database()
    return JSONResponse({"success": True, "tables": tables, "message": "Database initialized successfully"})


@app.get("/health/gibson", response_class=JSONResponse)
def gibson_health() -> JSONResponse:
    gibson = settings_manager.effective().get("gibson") or {}
    if not gibson.get("api_key"):
        return JSONResponse({"status": "warn", "label": "Gibson Not Configured"})
    client = GibsonClient(gibson.get("base_url") or "", gibson["api_key"], timeout=3)
    result = client.health()
    ok = result.get("ok", False)
    payload = {"status": "ok" if ok else "warn", "label": "Gibson Connected" if ok else "Gibson Offline"}
    if result.get("error"):
        payload["error"] = result["error"]
    return JSONResponse(payload)


@app.get("/status", response_class=JSONResponse)
async def status_endpoint() -> JSONResponse:
    data = {
        "storage": get_storage().name,
        "assistant": get_ai().available,
        "unread_notifications": notification_store.unread_count(),
        "monitor_running": bool(monitor_task and not monitor_task.done()),
        "last_scan": reminder_monitor.last_scan,
        "last_scan_error": reminder_monitor.last_error,
    }
    return JSONResponse(data)


# Staff pages


@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    storage = get_storage()
    today = date.today()
    html = render_dashboard(
        _chrome(request),
        storage.dashboard_stats(today),
        storage.recent_activity(10),
        storage.upcoming_court_dates(10, today),
    )
    return HTMLResponse(html)


@app.get("/clients", response_class=HTMLResponse)
def clients_page(request: Request, search: str = "", status_filter: str = Query("all", alias="status")) -> HTMLResponse:
    clients = filter_clients(get_storage().clients_with_bonds(), search, status_filter)
    return HTMLResponse(render_clients_page(_chrome(request), clients, search, status_filter))


@app.get("/clients/{client_id}", response_class=HTMLResponse)
def client_detail_page(request: Request, client_id: str) -> HTMLResponse:
    storage = get_storage()
    client = storage.get_client(client_id)
    if client is None:
        raise _not_found("Client")
    html = render_client_detail(
        _chrome(request),
        client,
        storage.list_cases(client_id=client_id),
        storage.list_bonds(client_id=client_id),
        storage.list_payments(client_id=client_id),
        storage.list_documents(related_id=client_id, related_type="client"),
        storage.list_checkins(client_id=client_id),
    )
    return HTMLResponse(html)


@app.get("/cases", response_class=HTMLResponse)
def cases_page(
    request: Request,
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    court_date: str = "",
) -> HTMLResponse:
    storage = get_storage()
    clients = storage.list_clients()
    cases = filter_cases(storage.list_cases(), clients, search, status_filter, court_date)
    return HTMLResponse(render_cases_page(_chrome(request), cases, _client_names(clients), search, status_filter, court_date))


@app.get("/bonds", response_class=HTMLResponse)
def bonds_page(
    request: Request,
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    court_date: str = "",
) -> HTMLResponse:
    details = get_storage().bonds_with_details()
    bonds = filter_bonds(details, search, status_filter, court_date)
    html = render_bonds_page(_chrome(request), bonds, bond_counts(details), search, status_filter, court_date)
    return HTMLResponse(html)


@app.get("/financial", response_class=HTMLResponse)
def financial_page(request: Request) -> HTMLResponse:
    storage = get_storage()
    today = date.today()
    payments = storage.list_payments()
    html = render_financial_page(
        _chrome(request),
        storage.financial_summary(today),
        payments,
        monthly_revenue(payments, 6, today),
    )
    return HTMLResponse(html)


@app.get("/documents", response_class=HTMLResponse)
def documents_page(
    request: Request,
    category: str = "all",
    uploaded: Optional[int] = None,
    error: Optional[str] = None,
) -> HTMLResponse:
    documents = get_storage().list_documents()
    notice = error or (f"Successfully uploaded {uploaded} document(s)" if uploaded else None)
    html = render_documents_page(
        _chrome(request),
        filter_documents(documents, category),
        document_counts(documents),
        category,
        notice=notice,
        error=bool(error),
    )
    return HTMLResponse(html)


@app.post("/documents")
def documents_upload_form(
    files: Optional[List[UploadFile]] = File(None),
    category: Optional[str] = Form(None),
) -> RedirectResponse:
    try:
        created = _store_documents(files, category)
    except ValueError as exc:
        return RedirectResponse(
            url="/documents?" + urlencode({"error": str(exc)}),
            status_code=status.HTTP_303_SEE_OTHER,
        )
    return RedirectResponse(
        url=f"/documents?uploaded={len(created)}", status_code=status.HTTP_303_SEE_OTHER
    )


@app.get("/reports", response_class=HTMLResponse)
def reports_page(request: Request) -> HTMLResponse:
    return HTMLResponse(render_reports_page(_chrome(request), reports_summary()))


@app.get("/notifications", response_class=HTMLResponse)
def notifications_page(request: Request, status_filter: str = Query("all", alias="status")) -> HTMLResponse:
    items = notification_store.list(status=None if status_filter in ("", "all") else status_filter)
    rules = load_rules(settings_manager.settings.get("workflow_rules") or [])
    html = render_notifications_page(
        _chrome(request),
        [item.to_dict() for item in items],
        [rule.to_dict() for rule in rules],
        status_filter,
    )
    return HTMLResponse(html)


@app.post("/notifications/scan")
def notifications_scan_form() -> RedirectResponse:
    reminder_monitor.scan()
    return RedirectResponse(url="/notifications", status_code=status.HTTP_303_SEE_OTHER)


@app.post("/notifications/{notification_id}/read")
def notification_read_form(notification_id: str) -> RedirectResponse:
    if notification_store.mark_read(notification_id) is None:
        raise _not_found("Notification")
    return RedirectResponse(url="/notifications", status_code=status.HTTP_303_SEE_OTHER)


@app.post("/notifications/{notification_id}/dismiss")
def notification_dismiss_form(notification_id: str) -> RedirectResponse:
    if notification_store.dismiss(notification_id) is None:
        raise _not_found("Notification")
    return RedirectResponse(url="/notifications", status_code=status.HTTP_303_SEE_OTHER)


@app.get("/contracts", response_class=HTMLResponse)
def contracts_page(request: Request) -> HTMLResponse:
    storage = get_storage()
    html = render_contracts_page(
        _chrome(request),
        storage.list_contract_templates(),
        storage.list_contracts(),
        _client_names(storage.list_clients()),
    )
    return HTMLResponse(html)


@app.get("/settings", response_class=HTMLResponse)
def settings_page(request: Request, saved: Optional[int] = None) -> HTMLResponse:
    html = render_settings_page(
        _chrome(request),
        settings_manager.settings,
        get_storage().health(),
        saved=bool(saved),
    )
    return HTMLResponse(html)


@app.post("/settings")
async def update_settings(request: Request) -> RedirectResponse:
    get_field = _form_fields(await request.body())
    current = settings_manager.settings
    agency = current.get("agency", {})
    gibson = current.get("gibson", {})
    assistant = current.get("assistant", {})
    reminders = current.get("notifications", {})

    language = get_field("language", agency.get("language", "en"))
    payload: Dict[str, Any] = {
        "agency": {
            "name": get_field("agency_name", agency.get("name", "")).strip() or agency.get("name", ""),
            "phone": get_field("agency_phone", agency.get("phone", "")).strip(),
            "default_premium_rate": _number_field(
                get_field("default_premium_rate"), agency.get("default_premium_rate", 10.0)
            ),
            "language": language if language in SUPPORTED_LANGUAGES else agency.get("language", "en"),
        },
        "gibson": {"base_url": get_field("gibson_base_url", gibson.get("base_url", "")).strip()},
        "assistant": {
            "base_url": get_field("assistant_base_url", assistant.get("base_url", "")).strip(),
            "model": get_field("assistant_model", assistant.get("model", "")).strip(),
        },
        "notifications": {
            "court_reminder_hours": _number_field(
                get_field("court_reminder_hours"), reminders.get("court_reminder_hours", 24), int
            ),
            "payment_overdue_days": _number_field(
                get_field("payment_overdue_days"), reminders.get("payment_overdue_days", 1), int
            ),
            "checkin_interval_days": _number_field(
                get_field("checkin_interval_days"), reminders.get("checkin_interval_days", 7), int
            ),
            "scan_interval_seconds": _number_field(
                get_field("scan_interval_seconds"), reminders.get("scan_interval_seconds", 300), int
            ),
        },
    }
    # Blank key fields keep the stored secret.
    if get_field("gibson_api_key"):
        payload["gibson"]["api_key"] = get_field("gibson_api_key").strip()
    if get_field("assistant_api_key"):
        payload["assistant"]["api_key"] = get_field("assistant_api_key").strip()

    storage_changed = payload["gibson"]["base_url"] != gibson.get("base_url") or "api_key" in payload["gibson"]
    settings_manager.save(payload)
    with _services_lock:
        _services["ai"] = None
        if storage_changed:
            _services["storage"] = None
    logger.info(
        "Settings updated agency=%s gibson=%s assistant_model=%s storage_rebuilt=%s",
        payload["agency"]["name"],
        payload["gibson"]["base_url"],
        payload["assistant"]["model"],
        storage_changed,
    )
    return RedirectResponse(url="/settings?saved=1", status_code=status.HTTP_303_SEE_OTHER)


@app.get("/help", response_class=HTMLResponse)
def help_page(request: Request) -> HTMLResponse:
    return HTMLResponse(render_help_page(_chrome(request)))


@app.post("/help", response_class=HTMLResponse)
async def ask_help(request: Request) -> HTMLResponse:
    get_field = _form_fields(await request.body())
    question = get_field("question").strip()
    chrome = _chrome(request)
    answer = None
    if question:
        answer = await asyncio.to_thread(get_ai().generate_help, question, chrome.language)
    return HTMLResponse(render_help_page(chrome, question, answer))


@app.get("/language/{code}")
def switch_language(request: Request, code: str) -> RedirectResponse:
    target = "/"
    referer = request.headers.get("referer")
    if referer:
        parsed = urlparse(referer)
        if parsed.path.startswith("/") and not parsed.path.startswith("//"):
            target = parsed.path + (f"?{parsed.query}" if parsed.query else "")
    response = RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)
    if code in SUPPORTED_LANGUAGES:
        response.set_cookie(LANGUAGE_COOKIE, code, max_age=365 * 24 * 60 * 60, samesite="lax")
    return response


# Portal pages


@app.get("/portal/login", response_class=HTMLResponse)
def portal_login_page(request: Request) -> HTMLResponse:
    return HTMLResponse(render_portal_login(_language(request)))


@app.post("/portal/login")
async def portal_login_form(request: Request) -> Response:
    get_field = _form_fields(await request.body())
    language = _language(request)
    username = get_field("username").strip()
    password = get_field("password")
    ip = _client_ip(request)
    if login_limiter.blocked(ip):
        return HTMLResponse(
            render_portal_login(language, RATE_LIMIT_MESSAGE, username),
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )
    client = await asyncio.to_thread(authenticate, get_storage(), username, password)
    if client is None:
        login_limiter.record_failure(ip)
        return HTMLResponse(
            render_portal_login(language, "Invalid credentials", username),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    login_limiter.reset(ip)
    response = RedirectResponse(url="/portal", status_code=status.HTTP_303_SEE_OTHER)
    response.set_cookie(
        PORTAL_COOKIE,
        portal_sessions.issue(client["id"]),
        max_age=SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
    )
    return response


@app.post("/portal/logout")
def portal_logout(request: Request) -> RedirectResponse:
    token = request.cookies.get(PORTAL_COOKIE)
    if token:
        portal_sessions.revoke(token)
    response = RedirectResponse(url="/portal/login", status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(PORTAL_COOKIE)
    return response


@app.get("/portal", response_class=HTMLResponse)
def portal_page(request: Request) -> Response:
    client_id = portal_sessions.verify(request.cookies.get(PORTAL_COOKIE))
    storage = get_storage()
    client = storage.get_client(client_id) if client_id else None
    if not client or not client.get("portal_enabled"):
        return RedirectResponse(url="/portal/login", status_code=status.HTTP_303_SEE_OTHER)
    html = render_portal_page(
        _language(request),
        client,
        storage.client_bonds(client["id"]),
        storage.client_court_dates(client["id"], date.today()),
        storage.list_checkins(client_id=client["id"])[:5],
    )
    return HTMLResponse(html)


# Convenience include for uvicorn.
__all__ = ["app"]
