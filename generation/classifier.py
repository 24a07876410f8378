"""Maps upstream status codes and error bodies to GenerationErrorKind."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from core import GenerationErrorKind


INSPECTED_FIELDS = ("code", "type", "error")

RATE_LIMIT_TOKENS = {
    "rate_limit",
    "rate_limited",
    "rate_limit_error",
    "rate_limit_exceeded",
    "too_many_requests",
    "requests_limit_exceeded",
}

INVALID_MODEL_TOKENS = {
    "model_not_found",
    "invalid_model",
    "unsupported_model",
}

TIMEOUT_STATUSES = {408, 504}
UNAVAILABLE_STATUSES = {500, 502, 503}


def _normalize_token(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def _is_rate_limit_token(value: Any) -> bool:
    token = _normalize_token(value)
    return bool(token) and (token in RATE_LIMIT_TOKENS or "rate_limit" in token)


def _is_invalid_model_token(value: Any) -> bool:
    return _normalize_token(value) in INVALID_MODEL_TOKENS


def _scan(payload: Any, matches: Callable[[Any], bool], depth: int = 0) -> bool:
    # top level plus one nested level of code/type/error
    if not isinstance(payload, Mapping):
        return matches(payload)
    for key in INSPECTED_FIELDS:
        value = payload.get(key)
        if isinstance(value, Mapping):
            if depth < 1 and _scan(value, matches, depth + 1):
                return True
        elif matches(value):
            return True
    return False


def is_rate_limit_payload(payload: Any) -> bool:
    """True when an error body carries a rate-limit code, type or error marker."""
    return _scan(payload, _is_rate_limit_token)


def is_invalid_model_payload(payload: Any) -> bool:
    return _scan(payload, _is_invalid_model_token)


def classify_status(status: Optional[int], payload: Any = None) -> GenerationErrorKind:
    """Classify a non-2xx upstream response."""
    if status == 429 or is_rate_limit_payload(payload):
        return GenerationErrorKind.RATE_LIMITED
    if status == 422 or is_invalid_model_payload(payload):
        return GenerationErrorKind.INVALID_MODEL
    if status in TIMEOUT_STATUSES:
        return GenerationErrorKind.TIMEOUT
    if status in UNAVAILABLE_STATUSES:
        return GenerationErrorKind.SERVICE_UNAVAILABLE
    return GenerationErrorKind.UNKNOWN


def extract_error_message(payload: Any) -> Optional[str]:
    """Best-effort human message from an error body."""
    if isinstance(payload, str):
        text = payload.strip()
        return text or None
    if not isinstance(payload, Mapping):
        return None
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    nested = payload.get("error")
    if isinstance(nested, Mapping):
        message = nested.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(nested, str) and nested.strip():
        return nested.strip()
    return None
