import json
from typing import Any
from urllib import request


def post_json(
    endpoint: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str],
    timeout_sec: float,
    provider: str,
) -> dict[str, Any]:
    req = request.Request(
        endpoint,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout_sec) as response:
            body = response.read().decode("utf-8")
    except Exception as exc:  # pragma: no cover - network boundary
        raise RuntimeError(f"{provider}_request_failed:{exc}") from exc

    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"{provider}_response_not_json:{body[:200]}") from exc
    if not isinstance(decoded, dict):
        raise RuntimeError(f"{provider}_response_not_object")
    return decoded


def require_text(text: Any, provider: str) -> str:
    if isinstance(text, str) and text.strip():
        return text
    raise RuntimeError(f"{provider}_empty_output")
