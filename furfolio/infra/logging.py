import contextvars
import json
import logging
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from furfolio.settings import settings

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_RE = re.compile(r"\b(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")
NAME_KEYS = {"client_name", "owner_name", "pet_name"}
CONTACT_KEYS = {"email", "phone"}
LOG_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("log_context", default={})
_RESERVED_ATTRS = frozenset(logging.LogRecord(None, 0, "", 0, "", (), None).__dict__) | {"message"}


def mask_email(email: str) -> str:
    """owner@example.com -> o***@example.com"""
    if "@" not in email:
        return "[REDACTED]"
    local, domain = email.split("@", 1)
    masked_local = "*" if len(local) <= 1 else local[0] + "***"
    return f"{masked_local}@{domain}"


def mask_phone(phone: str) -> str:
    """780-555-1234 -> ***-***-1234"""
    digits = re.sub(r"[^\d]", "", phone)
    if len(digits) < 4:
        return "[REDACTED]"
    return f"***-***-{digits[-4:]}"


def redact_text(value: str) -> str:
    value = EMAIL_RE.sub("[REDACTED_EMAIL]", value)
    return PHONE_RE.sub("[REDACTED_PHONE]", value)


def _scrub(value: Any, key: str | None = None) -> Any:
    lowered = key.lower() if key else None
    if lowered in NAME_KEYS:
        return "[REDACTED]"
    if lowered in CONTACT_KEYS and isinstance(value, str):
        return mask_email(value) if lowered == "email" else mask_phone(value)
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, (list, tuple)):
        return [_scrub(item) for item in value]
    if isinstance(value, dict):
        return {item_key: _scrub(item_value, item_key) for item_key, item_value in value.items()}
    return value


@contextmanager
def log_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """Attach ``fields`` to every record logged inside the block."""
    merged = {**LOG_CONTEXT.get({}), **{key: value for key, value in fields.items() if value is not None}}
    token = LOG_CONTEXT.set(merged)
    try:
        yield merged
    finally:
        LOG_CONTEXT.reset(token)


def clear_log_context() -> None:
    LOG_CONTEXT.set({})


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }
    nested = fields.pop("extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


class RedactingJsonFormatter(logging.Formatter):
    """One JSON object per record with client contact data masked."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": redact_text(record.getMessage()),
        }
        payload.update(_scrub(LOG_CONTEXT.get({})))
        payload.update(_scrub(_record_fields(record)))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(RedactingJsonFormatter())
    root = logging.getLogger()
    root.setLevel(level or settings.log_level)
    root.handlers.clear()
    root.addHandler(handler)
