import base64
import json
from datetime import date

import pytest
import requests

from bailbonds.ai import (
    AIService,
    AssistantError,
    ChatClient,
    build_chat_client,
    heuristic_compliance,
    prefilter,
    sanitize,
    server_side_search,
)

DATA = {
    "clients": [
        {"id": "client-1", "first_name": "John", "last_name": "Smith", "email": "john.smith@example.com", "city": "Springfield", "date_of_birth": "1985-03-15", "phone": "(555) 123-4567"},
        {"id": "client-2", "first_name": "Maria", "last_name": "Garcia", "email": "maria@example.com", "city": ""},
    ],
    "cases": [{"id": "case-1", "case_number": "CR-2024-001", "charges": "DUI - First Offense", "status": "open", "court_date": "2024-06-20"}],
    "bonds": [{"id": "bond-1", "bond_number": "BB-2024-001", "bond_amount": "10499.00", "status": "active"}],
    "payments": [{"id": "payment-1", "amount": "1049.99", "payment_date": "2024-05-02", "payment_method": "cash", "status": "completed"}],
    "documents": [{"id": "document-1", "original_name": "Smith license.jpg", "category": "identification", "created_at": "2024-04-01T00:00:00Z"}],
}

PHOTO = base64.b64encode(b"\xff\xd8\xff" + b"x" * 200).decode("ascii")


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _reply(content) -> FakeResponse:
    return FakeResponse(payload={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _service(monkeypatch: pytest.MonkeyPatch, response) -> tuple:
    sent = []

    def fake_post(url, headers=None, data=None, timeout=None):
        sent.append({"url": url, "headers": headers, "payload": json.loads(data), "timeout": timeout})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr("bailbonds.ai.requests.post", fake_post)
    return AIService(ChatClient("https://llm.test/v1/chat/completions", "sk-test")), sent


def test_build_chat_client() -> None:
    assert build_chat_client({"assistant": {"api_key": "", "base_url": ""}}) is None
    client = build_chat_client({"assistant": {"api_key": "sk", "model": ""}})
    assert client.base_url == "https://api.openai.com/v1/chat/completions"
    assert client.model == "gpt-4o-mini"
    local = build_chat_client({"assistant": {"base_url": "http://localhost:8080/v1/chat/completions"}})
    assert local.api_key == ""


def test_sanitize_drops_personal_details() -> None:
    clean = sanitize(DATA)
    client = clean["clients"][0]
    assert client == {"id": "client-1", "initials": "JS", "generalLocation": "Springfield", "yearOfBirth": 1985}
    assert clean["clients"][1]["generalLocation"] == "Unknown"
    assert clean["bonds"][0]["bondAmount"] == 10000
    assert clean["payments"][0] == {"id": "payment-1", "amount": 1000, "month": 5, "paymentMethod": "cash", "status": "completed"}
    assert clean["documents"][0] == {"id": "document-1", "category": "identification", "uploadMonth": 4}
    assert "smith" not in json.dumps(clean).lower()


def test_prefilter_ignores_short_terms() -> None:
    filtered = prefilter("dui of smith", DATA)
    assert [item["id"] for item in filtered["clients"]] == ["client-1"]
    assert [item["id"] for item in filtered["cases"]] == ["case-1"]
    assert [item["id"] for item in filtered["documents"]] == ["document-1"]
    assert filtered["bonds"] == []


def test_server_side_search_ranks_and_masks() -> None:
    results = server_side_search("john smith", DATA)
    assert results[0]["id"] == "client-1"
    assert results[0]["relevanceScore"] == 1.0
    assert results[0]["description"] == "Email: jo***@example.com"
    assert server_side_search("x", DATA) == []
    assert [item["type"] for item in server_side_search("active", DATA)] == ["bond"]


def test_offline_fallbacks() -> None:
    service = AIService()
    assert not service.available
    assert service.intelligent_search("garcia", DATA)[0]["id"] == "client-2"
    assert service.translate_text("Hello", "en", "es") == "Hello"
    assert service.generate_help("How?", "es").startswith("Lo siento")
    assert service.verify_checkin_photo(PHOTO)["issues"] == ["Failed to analyze photo: assistant not configured"]
    assert service.verify_checkin_photo("short")["isValidPhoto"] is False


def test_heuristic_compliance() -> None:
    today = date(2024, 6, 15)
    missed = heuristic_compliance({"court_date": "2024-06-10", "status": "open"}, [], today)
    assert missed["complianceStatus"] == "non-compliant"
    quiet = heuristic_compliance({"court_date": "2024-07-10", "status": "open"}, [{"created_at": "2024-05-01"}], today)
    assert quiet["riskLevel"] == "medium"
    good = heuristic_compliance({"court_date": "2024-07-10", "status": "open"}, [{"created_at": "2024-06-14T10:00:00Z"}], today)
    assert good["complianceStatus"] == "compliant"


def test_search_uses_sanitized_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    reply = _reply(json.dumps({"results": [{"type": "client", "id": "client-1", "title": "J.S."}, "junk"]}))
    service, sent = _service(monkeypatch, reply)
    results = service.intelligent_search("smith", DATA)
    assert results == [{"type": "client", "id": "client-1", "title": "J.S."}]
    payload = sent[0]["payload"]
    assert payload["response_format"] == {"type": "json_object"}
    assert sent[0]["headers"]["Authorization"] == "Bearer sk-test"
    user_message = payload["messages"][1]["content"]
    assert "john.smith@example.com" not in user_message
    assert "(555) 123-4567" not in user_message


def test_search_falls_back_on_assistant_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    service, _ = _service(monkeypatch, FakeResponse(500, text="overloaded"))
    assert service.intelligent_search("garcia", DATA)[0]["id"] == "client-2"


def test_translate_and_help(monkeypatch: pytest.MonkeyPatch) -> None:
    service, sent = _service(monkeypatch, _reply("  Hola  "))
    assert service.translate_text("Hello", "en", "es") == "Hola"
    assert "from English to Spanish" in sent[0]["payload"]["messages"][0]["content"]
    assert service.generate_help("How do I add a bond?") == "Hola"


def test_network_errors_keep_original_text(monkeypatch: pytest.MonkeyPatch) -> None:
    service, _ = _service(monkeypatch, requests.ConnectionError("refused"))
    assert service.translate_text("Hello", "en", "es") == "Hello"
    assert service.generate_help("?", "en").startswith("I apologize")


def test_photo_verification(monkeypatch: pytest.MonkeyPatch) -> None:
    reply = _reply(json.dumps({"isValidPhoto": True, "confidence": 0.92, "personDetected": True, "quality": "high"}))
    service, sent = _service(monkeypatch, reply)
    result = service.verify_checkin_photo(f"data:image/png;base64,{PHOTO}")
    assert result == {"isValidPhoto": True, "confidence": 0.92, "personDetected": True, "quality": "high", "issues": []}
    image = sent[0]["payload"]["messages"][1]["content"][1]["image_url"]["url"]
    assert image.startswith("data:image/png;base64,")


def test_compliance_with_bad_json_uses_heuristic(monkeypatch: pytest.MonkeyPatch) -> None:
    service, _ = _service(monkeypatch, _reply("not json"))
    result = service.analyze_case_compliance({"court_date": "2024-06-10", "status": "open"}, [], date(2024, 6, 15))
    assert result["complianceStatus"] == "non-compliant"


def test_complete_rejects_missing_choices(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("bailbonds.ai.requests.post", lambda *args, **kwargs: FakeResponse(payload={"choices": []}))
    with pytest.raises(AssistantError):
        ChatClient("https://llm.test").complete([{"role": "user", "content": "hi"}])
