import json
import logging
import re
from typing import Any

from coursegen.domain.errors import ParseError


logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_+-]*\s*$")


def strip_code_fence(text: str) -> str:
    raw = str(text or "").strip()
    if raw.startswith("```"):
        lines = raw.splitlines()
        if len(lines) >= 2 and _FENCE_OPEN.match(lines[0].strip()) and lines[-1].strip() == "```":
            return "\n".join(lines[1:-1]).strip()
    return raw


def parse_json_text(text: str, expected: type = dict) -> Any:
    cleaned = strip_code_fence(text)
    if not cleaned:
        raise ParseError("ai_response_empty")

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse JSON response: %s", cleaned[:500])
        raise ParseError(f"ai_response_invalid_json:{exc}") from exc

    if not isinstance(parsed, expected):
        raise ParseError(f"ai_response_not_{expected.__name__}")
    return parsed


def parse_markdown_text(text: str) -> str:
    cleaned = strip_code_fence(text)
    if not cleaned:
        raise ParseError("ai_response_empty")
    return cleaned
