from __future__ import annotations

from coursegen.domain.errors import CourseGenerationError, GenerationError, ParseError, ValidationError


PHASE_TOPIC_DETECTION = "topic_detection"
PHASE_LESSON_GENERATION = "lesson_generation"
PHASE_PERSISTENCE = "persistence"

_STATUS_BY_KIND = {
    "rate_limited": 429,
    "timeout": 504,
    "quality_failed": 422,
    "schema_mismatch": 422,
    "config_error": 503,
    "empty_output": 502,
    "provider_error": 502,
    "db_error": 500,
}
_RETRYABLE_KINDS = {"rate_limited", "timeout", "schema_mismatch", "quality_failed", "empty_output"}


class PipelineFailure(RuntimeError):
    def __init__(
        self,
        *,
        phase: str,
        kind: str,
        status_code: int,
        retryable: bool,
        reason: str,
    ) -> None:
        self.phase = phase
        self.kind = kind
        self.status_code = status_code
        self.retryable = retryable
        self.reason = reason
        super().__init__(f"{phase}:{kind}:{reason}")


def ai_error_detail(exc: Exception) -> str:
    message = str(exc).strip()
    if not message:
        return type(exc).__name__
    return message[:300]


def normalize_error_reason(value: str) -> str:
    return " ".join(str(value or "").split())[:260] or "ai_provider_failed"


def format_pipeline_error_detail(phase: str, kind: str, reason: str) -> str:
    return f"{phase}_failed:{kind}:{normalize_error_reason(reason)}"


def classify_ai_failure(detail: str) -> tuple[str, int, bool]:
    text = str(detail or "").lower()

    rate_limit_tokens = (
        "429",
        "too many requests",
        "rate limit",
        "rate_limit",
        "resource exhausted",
        "overloaded",
        "quota",
        "ai_backpressure_busy",
    )
    timeout_tokens = (
        "timed out",
        "timeout",
        "read operation timed out",
    )
    schema_tokens = (
        "schema",
        "json",
        "jsondecodeerror",
        "expecting value",
        "ai_response_not_",
    )
    config_tokens = (
        "api_key_missing",
        "base_url_missing",
        "unsupported_ai_provider",
        "gateway_init_failed",
        "config_error",
        "401",
        "403",
    )

    if any(token in text for token in rate_limit_tokens):
        return ("rate_limited", 429, True)
    if any(token in text for token in timeout_tokens):
        return ("timeout", 504, True)
    if "quality_validation_failed" in text:
        return ("quality_failed", 422, True)
    if any(token in text for token in config_tokens):
        return ("config_error", 503, False)
    if "empty_output" in text:
        return ("empty_output", 502, True)
    if any(token in text for token in schema_tokens):
        return ("schema_mismatch", 422, True)
    return ("provider_error", 502, False)


def failure_from_exception(phase: str, exc: Exception) -> PipelineFailure:
    reason = ai_error_detail(exc)

    if isinstance(exc, GenerationError):
        kind, status_code, retryable = classify_ai_failure(reason)
    elif isinstance(exc, (ParseError, ValidationError)):
        kind = exc.kind
        status_code = _STATUS_BY_KIND.get(kind, 422)
        retryable = kind in _RETRYABLE_KINDS
    elif isinstance(exc, CourseGenerationError):
        kind = exc.kind
        status_code = _STATUS_BY_KIND.get(kind, 500)
        retryable = kind in _RETRYABLE_KINDS
    elif phase == PHASE_PERSISTENCE:
        kind, status_code, retryable = ("db_error", 500, False)
    else:
        kind, status_code, retryable = classify_ai_failure(reason)

    return PipelineFailure(
        phase=phase,
        kind=kind,
        status_code=status_code,
        retryable=retryable,
        reason=reason,
    )
