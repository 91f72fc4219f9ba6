import re
from typing import Any

from fastapi import HTTPException


KNOWN_ERROR_CODES = {
    "schema_mismatch",
    "rate_limited",
    "timeout",
    "quality_failed",
    "config_error",
    "empty_output",
    "provider_error",
    "db_error",
    "not_found",
    "invalid_request",
    "unknown",
}

RETRYABLE_ERROR_CODES = {
    "schema_mismatch",
    "rate_limited",
    "timeout",
    "quality_failed",
    "empty_output",
}

_PIPELINE_FAILURE_PATTERN = re.compile(r"^([a-z0-9_]+)_failed:([a-z_]+):(.*)$")

_DEFAULT_MESSAGES = {
    "schema_mismatch": "AI response schema mismatch",
    "rate_limited": "AI provider rate limited the request",
    "timeout": "AI request timed out",
    "quality_failed": "Generated output did not pass quality checks",
    "config_error": "AI service configuration error",
    "empty_output": "AI returned empty content",
    "provider_error": "AI provider request failed",
    "db_error": "Failed to persist generated result",
    "not_found": "Requested resource was not found",
    "invalid_request": "Request is not valid for course generation",
    "unknown": "Request failed",
}


def normalize_error_code(value: Any) -> str:
    raw = str(value or "").strip().lower()
    if raw in KNOWN_ERROR_CODES:
        return raw
    return "unknown"


def _build_message(code: str, reason: str) -> str:
    message = " ".join(str(reason or "").split()).strip()
    if message:
        return message[:260]
    return _DEFAULT_MESSAGES.get(code, "Request failed")


def build_structured_error_detail(
    *,
    error_code: str,
    message: str | None = None,
    retryable: bool | None = None,
    phase: str | None = None,
    detail: Any = None,
) -> dict[str, Any]:
    code = normalize_error_code(error_code)
    message_text = " ".join(str(message or "").split()).strip()
    if not message_text:
        message_text = _build_message(code, str(detail or ""))
    if retryable is None:
        retryable = code in RETRYABLE_ERROR_CODES

    legacy_detail = " ".join(str(detail or "").split()).strip()
    if not legacy_detail:
        legacy_detail = message_text

    return {
        "error_code": code,
        "message": message_text[:260],
        "retryable": bool(retryable),
        "phase": phase,
        "detail": legacy_detail,
    }


def parse_pipeline_detail(detail: Any) -> tuple[str, str, str | None, str]:
    """Return (code, message, phase, raw) for a plain-string HTTPException detail."""
    text = " ".join(str(detail or "").split()).strip()
    if not text:
        return "unknown", _build_message("unknown", ""), None, ""

    match = _PIPELINE_FAILURE_PATTERN.match(text)
    if match:
        code = normalize_error_code(match.group(2))
        if code == "unknown":
            code = "provider_error"
        return code, _build_message(code, match.group(3)), match.group(1), text

    token = text.split(":", 1)[0].strip().lower()
    token_code = normalize_error_code(token)
    if token_code != "unknown":
        reason = text.split(":", 1)[1] if ":" in text else ""
        return token_code, _build_message(token_code, reason), None, text

    return "unknown", _build_message("unknown", text), None, text


def _payload_from_detail_dict(detail: dict[str, Any]) -> tuple[str, str, bool, str | None, str]:
    code = normalize_error_code(detail.get("error_code"))
    phase = detail.get("phase")
    inferred_raw = ""
    if code == "unknown":
        code, _, inferred_phase, inferred_raw = parse_pipeline_detail(detail.get("detail"))
        phase = phase or inferred_phase
    message = " ".join(str(detail.get("message") or "").split()).strip()
    if not message:
        message = _build_message(code, detail.get("detail") or "")
    retryable = bool(detail.get("retryable")) if "retryable" in detail else code in RETRYABLE_ERROR_CODES
    raw_detail = str(detail.get("detail") or "").strip() or inferred_raw or message
    return code, message[:260], retryable, phase, raw_detail


def build_http_error_payload(exc: HTTPException, trace_id: str) -> dict[str, Any]:
    detail = exc.detail

    if isinstance(detail, dict):
        code, message, retryable, phase, raw_detail = _payload_from_detail_dict(detail)
    else:
        code, message, phase, raw_detail = parse_pipeline_detail(detail)
        if code == "unknown" and exc.status_code == 404:
            code = "not_found"
        retryable = code in RETRYABLE_ERROR_CODES

    return {
        "error_code": code,
        "message": message,
        "retryable": retryable,
        "phase": phase,
        "trace_id": trace_id,
        "detail": raw_detail,
    }


def build_unexpected_error_payload(trace_id: str) -> dict[str, Any]:
    return {
        "error_code": "unknown",
        "message": "Unexpected server error",
        "retryable": False,
        "phase": None,
        "trace_id": trace_id,
        "detail": "unexpected_server_error",
    }
