import json
import os
from pathlib import Path
from typing import Any, Dict


DEFAULT_SETTINGS: Dict[str, Any] = {
    "agency": {
        "name": "BailBond Pro",
        "phone": "",
        "default_premium_rate": 10.0,
        "language": "en",
    },
    "gibson": {
        "base_url": "https://api.gibsonai.com",
        "api_key": "",
        "timeout": 30,
    },
    "assistant": {
        "base_url": "",
        "api_key": "",
        "model": "gpt-4o-mini",
    },
    "notifications": {
        "court_reminder_hours": 24,
        "payment_overdue_days": 1,
        "checkin_interval_days": 7,
        "scan_interval_seconds": 300,
    },
    "workflow_rules": [
        {
            "id": "rule-1",
            "name": "Court Date Reminder",
            "name_es": "Recordatorio de Fecha de Corte",
            "description": "Send notification 24 hours before court appearance",
            "description_es": "Enviar notificación 24 horas antes de la comparecencia",
            "trigger": "court-date",
            "condition": "24 hours before",
            "action": "send-notification",
            "timing": "24 hours before",
            "is_active": True,
            "recipients": ["client", "indemnitor", "agency"],
        },
        {
            "id": "rule-2",
            "name": "Payment Due Alert",
            "name_es": "Alerta de Pago Vencido",
            "description": "Alert when payment is overdue",
            "description_es": "Alertar cuando el pago esté vencido",
            "trigger": "payment-due",
            "condition": "1 day overdue",
            "action": "send-notification",
            "timing": "Daily until paid",
            "is_active": True,
            "recipients": ["client", "indemnitor"],
        },
        {
            "id": "rule-3",
            "name": "Check-in Reminder",
            "name_es": "Recordatorio de Registro",
            "description": "Remind client to check in weekly",
            "description_es": "Recordar al cliente que se registre semanalmente",
            "trigger": "check-in-overdue",
            "condition": "7 days since last check-in",
            "action": "send-notification",
            "timing": "Weekly",
            "is_active": True,
            "recipients": ["client"],
        },
        {
            "id": "rule-4",
            "name": "New Bond Confirmation",
            "name_es": "Confirmación de Nueva Fianza",
            "description": "Notify the agency when a bond is written",
            "description_es": "Notificar a la agencia cuando se emite una fianza",
            "trigger": "bond-created",
            "condition": "bond created",
            "action": "send-notification",
            "timing": "Immediately",
            "is_active": True,
            "recipients": ["agency"],
        },
    ],
}

# Environment variables win over the file and are never written back.
ENV_OVERRIDES = (
    ("GIBSON_API_KEY", ("gibson", "api_key")),
    ("X_GIBSON_API_KEY", ("gibson", "api_key")),
    ("GIBSON_API_BASE", ("gibson", "base_url")),
    ("OPENAI_API_KEY", ("assistant", "api_key")),
    ("ASSISTANT_BASE_URL", ("assistant", "base_url")),
)


def data_dir() -> Path:
    return Path(os.environ.get("BAILBONDS_DATA_DIR", "data"))


class SettingsManager:
    """
    Handles loading and persisting the editable configuration file.

    The file is stored as pretty-printed JSON so staff can edit it by hand.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._settings: Dict[str, Any] | None = None
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def settings(self) -> Dict[str, Any]:
        if self._settings is None:
            self._settings = self._load_from_disk()
        return self._settings

    def effective(self) -> Dict[str, Any]:
        """
        Settings with environment overrides applied on top of the file.
        """
        merged = json.loads(json.dumps(self.settings))
        applied = set()
        for variable, target in ENV_OVERRIDES:
            value = os.environ.get(variable)
            if not value or target in applied:
                continue
            section, key = target
            merged.setdefault(section, {})[key] = value
            applied.add(target)
        return merged

    def _load_from_disk(self) -> Dict[str, Any]:
        if not self.path.exists():
            self._write(DEFAULT_SETTINGS)
            return json.loads(json.dumps(DEFAULT_SETTINGS))
        with self.path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        # Merge with defaults to backfill new keys without overwriting manual edits.
        merged = json.loads(json.dumps(DEFAULT_SETTINGS))
        _deep_update(merged, data)
        return merged

    def save(self, payload: Dict[str, Any]) -> None:
        config = json.loads(json.dumps(self.settings))
        _deep_update(config, payload)
        self._write(config)
        self._settings = config

    def reload(self) -> Dict[str, Any]:
        self._settings = self._load_from_disk()
        return self._settings

    def _write(self, data: Dict[str, Any]) -> None:
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, sort_keys=True, ensure_ascii=False)
            handle.write("\n")


def _deep_update(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    """
    Recursively update a mapping, preserving nested structures.
    """
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
