from typing import Any

from coursegen.domain.ai.providers.base import ResponseFormat
from coursegen.domain.ai.providers.common import post_json


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_sec: float = 30,
    ) -> None:
        if not api_key:
            raise ValueError("openai_api_key_missing")
        if not base_url:
            raise ValueError("openai_base_url_missing")

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
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            # 최신 모델은 max_tokens 대신 max_completion_tokens 만 허용한다.
            "max_completion_tokens": int(max_tokens),
        }
        if response_format == "json":
            payload["response_format"] = {"type": "json_object"}
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
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout_sec=timeout_sec or self.timeout_sec,
            provider=self.name,
        )
        return self._extract_text(decoded)

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        choices = response_json.get("choices")
        if not isinstance(choices, list) or not choices:
            raise RuntimeError("openai_choices_missing")

        first = choices[0]
        message = first.get("message", {}) if isinstance(first, dict) else {}
        content = message.get("content")

        if isinstance(content, str) and content.strip():
            return content

        if isinstance(content, list):
            texts: list[str] = []
            for part in content:
                if isinstance(part, dict):
                    text = part.get("text")
                    if isinstance(text, str) and text.strip():
                        texts.append(text)
            if texts:
                return "\n".join(texts)

        finish_reason = first.get("finish_reason") if isinstance(first, dict) else None
        raise RuntimeError(f"openai_empty_output:finish_reason={finish_reason or 'unknown'}")
