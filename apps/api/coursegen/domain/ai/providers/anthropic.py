from typing import Any

from coursegen.domain.ai.providers.base import ResponseFormat
from coursegen.domain.ai.providers.common import post_json, require_text


ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_sec: float = 30,
    ) -> None:
        if not api_key:
            raise ValueError("anthropic_api_key_missing")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec

    def build_payload(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        response_format: ResponseFormat = "text",
    ) -> dict[str, Any]:
        # Messages API 에는 JSON 모드가 없으므로 json 요청은 프롬프트 지시로만 처리한다.
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": int(max_tokens),
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    def send_chat(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        response_format: ResponseFormat = "text",
        timeout_sec: float | None = None,
    ) -> str:
        payload = self.build_payload(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=max_tokens,
            response_format=response_format,
        )
        decoded = post_json(
            f"{self.base_url}/messages",
            payload,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            timeout_sec=timeout_sec or self.timeout_sec,
            provider=self.name,
        )
        return self._extract_text(decoded)

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        content = response_json.get("content")
        if not isinstance(content, list) or not content:
            raise RuntimeError("anthropic_content_missing")

        texts = [
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ]
        return require_text("".join(texts), "anthropic")
