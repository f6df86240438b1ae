from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import requests

from .filters import mask_email, parse_date, to_number

logger = logging.getLogger("bailbonds.ai")

SEARCH_CATEGORIES = ("clients", "cases", "bonds", "payments", "documents")
PREFILTER_FIELDS = {
    "clients": ("first_name", "last_name"),
    "cases": ("case_number", "charges"),
    "bonds": ("bond_number", "status"),
    "payments": ("payment_method",),
    "documents": ("original_name", "category"),
}
PREFILTER_PER_CATEGORY = 20
MAX_ASSISTANT_ITEMS = 50

HELP_APOLOGY = {
    "en": "I apologize, but I couldn't generate a helpful response. Please try rephrasing your question.",
    "es": "Lo siento, no pude generar una respuesta útil. Por favor intenta reformular tu pregunta.",
}

SYSTEM_OVERVIEW = """The system includes:
- Client Management: Add, edit, and track client information
- Case Management: Handle legal cases with court dates and documents
- Bond Management: Create and monitor bail bonds with payments
- Document Management: Upload and organize legal documents
- Check-in System: Client photo verification and GPS tracking
- Payment Processing: Track payments and generate reports
- Multi-language Support: English and Spanish interface"""

_DATA_URL_RE = re.compile(r"^data:image/(\w+);base64,(.+)$", re.DOTALL)


class AssistantError(RuntimeError):
    """Raised when the chat endpoint returns an error or malformed response."""


class ChatClient:
    """
    Minimal HTTP client for an OpenAI-compatible chat completions endpoint.
    """

    def __init__(self, base_url: str, api_key: str = "", model: str = "gpt-4o-mini", timeout: float = 60) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def chat(
        self,
        *,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if max_tokens:
            payload["max_tokens"] = max_tokens

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(
                self.base_url,
                headers=headers,
                data=json.dumps(payload),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AssistantError(f"Assistant request failed: {exc}") from exc
        if response.status_code >= 400:
            raise AssistantError(
                f"Assistant returned {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise AssistantError("Failed to decode assistant response as JSON.") from exc

    def complete(self, messages: List[Dict[str, Any]], *, json_mode: bool = False) -> str:
        data = self.chat(messages=messages, json_mode=json_mode)
        try:
            content = data["choices"][0]["message"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise AssistantError("Assistant response had no choices.") from exc
        if isinstance(content, list):
            content = "\n".join(
                block.get("text", "") for block in content if isinstance(block, dict)
            )
        return (content or "").strip()

    def complete_json(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        text = self.complete(messages, json_mode=True)
        try:
            parsed = json.loads(text or "{}")
        except ValueError as exc:
            raise AssistantError("Assistant did not return valid JSON.") from exc
        if not isinstance(parsed, dict):
            raise AssistantError("Assistant JSON was not an object.")
        return parsed


def build_chat_client(settings: Dict[str, Any]) -> Optional[ChatClient]:
    assistant = settings.get("assistant") or {}
    base_url = assistant.get("base_url") or ""
    api_key = assistant.get("api_key") or ""
    if not api_key and not base_url:
        return None
    if not base_url:
        base_url = "https://api.openai.com/v1/chat/completions"
    return ChatClient(base_url, api_key, assistant.get("model") or "gpt-4o-mini")


def _round_to(value: Any, step: int) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(round(float(to_number(value)) / step)) * step


def _year(value: Any) -> Optional[int]:
    parsed = parse_date(value)
    return parsed.year if parsed else None


def _month(value: Any) -> Optional[int]:
    parsed = parse_date(value)
    return parsed.month if parsed else None


def prefilter(query: str, data: Dict[str, List[Dict[str, Any]]]) -> Dict[str, List[Dict[str, Any]]]:
    terms = [term for term in query.lower().split() if len(term) > 2]
    filtered: Dict[str, List[Dict[str, Any]]] = {}
    for category in SEARCH_CATEGORIES:
        fields = PREFILTER_FIELDS[category]
        matches = [
            item
            for item in data.get(category) or []
            if any(term in str(item.get(field) or "").lower() for term in terms for field in fields)
        ]
        filtered[category] = matches[:PREFILTER_PER_CATEGORY]
    return filtered


def sanitize(data: Dict[str, List[Dict[str, Any]]]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Strip personal details before anything is sent to the assistant.
    """
    return {
        "clients": [
            {
                "id": client.get("id"),
                "initials": f"{(client.get('first_name') or '')[:1]}{(client.get('last_name') or '')[:1]}",
                "generalLocation": client.get("city") or "Unknown",
                "yearOfBirth": _year(client.get("date_of_birth")),
            }
            for client in data.get("clients") or []
        ],
        "cases": [
            {
                "id": case.get("id"),
                "caseNumber": case.get("case_number"),
                "status": case.get("status"),
                "courtYear": _year(case.get("court_date")),
            }
            for case in data.get("cases") or []
        ],
        "bonds": [
            {
                "id": bond.get("id"),
                "bondNumber": bond.get("bond_number"),
                "bondAmount": _round_to(bond.get("bond_amount"), 1000),
                "status": bond.get("status"),
            }
            for bond in data.get("bonds") or []
        ],
        "payments": [
            {
                "id": payment.get("id"),
                "amount": _round_to(payment.get("amount"), 100),
                "month": _month(payment.get("payment_date")),
                "paymentMethod": payment.get("payment_method"),
                "status": payment.get("status"),
            }
            for payment in data.get("payments") or []
        ],
        "documents": [
            {
                "id": document.get("id"),
                "category": document.get("category"),
                "uploadMonth": _month(document.get("created_at")),
            }
            for document in data.get("documents") or []
        ],
    }


def server_side_search(query: str, data: Dict[str, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    terms = [term for term in query.lower().split() if len(term) > 1]
    if not terms:
        return []
    results: List[Dict[str, Any]] = []

    def score(text: str) -> float:
        matched = [term for term in terms if term in text.lower()]
        return len(matched) / len(terms)

    for client in data.get("clients") or []:
        name = f"{client.get('first_name') or ''} {client.get('last_name') or ''}".strip()
        relevance = score(f"{name} {client.get('email') or ''}")
        if relevance:
            results.append(
                {
                    "type": "client",
                    "id": client.get("id"),
                    "title": name,
                    "description": f"Email: {mask_email(client.get('email')) or 'N/A'}",
                    "relevanceScore": relevance,
                }
            )
    for case in data.get("cases") or []:
        relevance = score(f"{case.get('case_number') or ''} {case.get('charges') or ''} {case.get('status') or ''}")
        if relevance:
            results.append(
                {
                    "type": "case",
                    "id": case.get("id"),
                    "title": f"Case {case.get('case_number')}",
                    "description": f"{case.get('charges') or ''} - {case.get('status') or ''}",
                    "relevanceScore": relevance,
                }
            )
    for bond in data.get("bonds") or []:
        relevance = score(f"{bond.get('bond_number') or ''} {bond.get('status') or ''}")
        if relevance:
            results.append(
                {
                    "type": "bond",
                    "id": bond.get("id"),
                    "title": f"Bond {bond.get('bond_number')}",
                    "description": f"${bond.get('bond_amount')} - {bond.get('status')}",
                    "relevanceScore": relevance,
                }
            )
    results.sort(key=lambda item: item["relevanceScore"], reverse=True)
    return results[:10]


def heuristic_compliance(
    case: Dict[str, Any],
    checkins: List[Dict[str, Any]],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    today = today or date.today()
    court_day = parse_date(case.get("court_date"))
    if court_day is not None and court_day < today and case.get("status") == "open":
        return {
            "complianceStatus": "non-compliant",
            "riskLevel": "high",
            "insights": [f"Court date {court_day.isoformat()} has passed while the case is still open."],
            "recommendations": ["Confirm whether the client appeared and update the case status."],
        }
    cutoff = today - timedelta(days=14)
    recent = [
        checkin
        for checkin in checkins
        if (parse_date(checkin.get("created_at")) or date.min) >= cutoff
    ]
    if not recent:
        return {
            "complianceStatus": "warning",
            "riskLevel": "medium",
            "insights": ["No check-ins recorded in the last 14 days."],
            "recommendations": ["Contact the client to schedule a check-in."],
        }
    return {
        "complianceStatus": "compliant",
        "riskLevel": "low",
        "insights": [f"{len(recent)} check-in(s) in the last 14 days."],
        "recommendations": ["Continue regular monitoring."],
    }


def _invalid_photo(issue: str) -> Dict[str, Any]:
    return {
        "isValidPhoto": False,
        "confidence": 0,
        "personDetected": False,
        "quality": "low",
        "issues": [issue],
    }


class AIService:
    """
    Assistant-backed features with offline fallbacks.

    Every public method returns a usable result when no assistant is
    configured or the call fails.
    """

    def __init__(self, client: Optional[ChatClient] = None) -> None:
        self.client = client

    @property
    def available(self) -> bool:
        return self.client is not None

    def intelligent_search(
        self,
        query: str,
        data: Dict[str, List[Dict[str, Any]]],
        language: str = "en",
    ) -> List[Dict[str, Any]]:
        filtered = prefilter(query, data)
        total = sum(len(items) for items in filtered.values())
        if self.client is None:
            return server_side_search(query, data)
        if total > MAX_ASSISTANT_ITEMS:
            logger.info("Search matched %s items; using server-side search only.", total)
            return server_side_search(query, data)
        system_prompt = (
            "Eres un asistente experto en el sistema de fianzas. Analiza la consulta del usuario "
            "y encuentra elementos relevantes en los datos proporcionados. Devuelve resultados en JSON."
            if language == "es"
            else "You are an expert bail bonds system assistant. Analyze the user's query and find "
            "relevant items in the provided data. Return results in JSON with relevance ranking."
        )
        messages = [
            {
                "role": "system",
                "content": system_prompt
                + '\n\nResponse format: {"results": [{"type": "client|case|bond|payment|document",'
                ' "id": "string", "title": "string", "description": "string", "relevanceScore": 0.0}]}',
            },
            {
                "role": "user",
                "content": f'Search query: "{query}"\n\nSanitized data:\n{json.dumps(sanitize(filtered))}',
            },
        ]
        try:
            result = self.client.complete_json(messages)
        except AssistantError as exc:
            logger.warning("Assistant search failed, falling back: %s", exc)
            return server_side_search(query, data)
        results = result.get("results")
        if not isinstance(results, list):
            return server_side_search(query, data)
        return [item for item in results if isinstance(item, dict)]

    def translate_text(self, text: str, from_language: str, to_language: str) -> str:
        if from_language == to_language or self.client is None:
            return text
        names = {"en": "English", "es": "Spanish"}
        messages = [
            {
                "role": "system",
                "content": (
                    "You are a professional translator specializing in legal and bail bonds terminology. "
                    f"Translate from {names.get(from_language, from_language)} to "
                    f"{names.get(to_language, to_language)}. Maintain legal accuracy and formal tone. "
                    "Return only the translated text."
                ),
            },
            {"role": "user", "content": text},
        ]
        try:
            return self.client.complete(messages) or text
        except AssistantError as exc:
            logger.warning("Translation failed: %s", exc)
            return text

    def generate_help(self, question: str, language: str = "en") -> str:
        apology = HELP_APOLOGY.get(language, HELP_APOLOGY["en"])
        if self.client is None:
            return apology
        system_prompt = (
            "Eres un asistente experto del sistema de gestión de fianzas. "
            "Proporciona ayuda clara y útil sobre cómo usar el sistema."
            if language == "es"
            else "You are an expert bail bonds management system assistant. "
            "Provide clear, helpful guidance on how to use the system."
        )
        messages = [
            {"role": "system", "content": f"{system_prompt}\n\n{SYSTEM_OVERVIEW}"},
            {"role": "user", "content": question},
        ]
        try:
            return self.client.complete(messages) or apology
        except AssistantError as exc:
            logger.warning("Help generation failed: %s", exc)
            return apology

    def verify_checkin_photo(self, image_data: str) -> Dict[str, Any]:
        image_type = "jpeg"
        payload = (image_data or "").strip()
        match = _DATA_URL_RE.match(payload)
        if match:
            image_type, payload = match.group(1), match.group(2)
        if len(payload) < 100:
            return _invalid_photo("Failed to analyze photo: Invalid image data")
        try:
            base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            return _invalid_photo("Failed to analyze photo: Invalid image data")
        if self.client is None:
            return _invalid_photo("Failed to analyze photo: assistant not configured")
        messages = [
            {
                "role": "system",
                "content": (
                    "You are a photo verification expert for a bail bonds check-in system. "
                    "Check for a clearly visible person and face, adequate quality, and that it is "
                    "not a screenshot or photo of a photo. Respond with JSON: "
                    '{"isValidPhoto": boolean, "confidence": number, "personDetected": boolean, '
                    '"quality": "high|medium|low", "issues": []}'
                ),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Analyze this check-in photo for client verification:"},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/{image_type};base64,{payload}"},
                    },
                ],
            },
        ]
        try:
            result = self.client.complete_json(messages)
        except AssistantError as exc:
            logger.warning("Photo verification failed: %s", exc)
            return _invalid_photo(f"Failed to analyze photo: {exc}")
        return {
            "isValidPhoto": bool(result.get("isValidPhoto")),
            "confidence": result.get("confidence") or 0,
            "personDetected": bool(result.get("personDetected")),
            "quality": result.get("quality") or "low",
            "issues": result.get("issues") or [],
        }

    def analyze_case_compliance(
        self,
        case: Dict[str, Any],
        checkins: List[Dict[str, Any]],
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        if self.client is None:
            return heuristic_compliance(case, checkins, today)
        messages = [
            {
                "role": "system",
                "content": (
                    "You are a compliance analyst for a bail bonds system. Analyze case data and "
                    "check-in history to assess compliance and risk. Respond with JSON: "
                    '{"complianceStatus": "compliant|warning|non-compliant", '
                    '"riskLevel": "low|medium|high", "insights": [], "recommendations": []}'
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Analyze this case:\nCase Data: {json.dumps(case, default=str)}\n"
                    f"Check-in History: {json.dumps(checkins, default=str)}"
                ),
            },
        ]
        try:
            result = self.client.complete_json(messages)
        except AssistantError as exc:
            logger.warning("Compliance analysis failed, using heuristic: %s", exc)
            return heuristic_compliance(case, checkins, today)
        return {
            "complianceStatus": result.get("complianceStatus") or "warning",
            "riskLevel": result.get("riskLevel") or "medium",
            "insights": result.get("insights") or [],
            "recommendations": result.get("recommendations") or [],
        }
