from typing import Any
from urllib import parse

from coursegen.domain.ai.providers.base import ResponseFormat
from coursegen.domain.ai.providers.common import post_json, require_text


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_sec: float = 30,
    ) -> None:
        if not api_key:
            raise ValueError("gemini_api_key_missing")
        self.api_key = api_key
        self.model = model
        self.timeout_sec = timeout_sec

    def build_payload(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        response_format: ResponseFormat = "text",
    ) -> dict[str, Any]:
        generation_config: dict[str, Any] = {
            "maxOutputTokens": int(max_tokens),
            "temperature": 0.3,
        }
        if response_format == "json":
            generation_config["responseMimeType"] = "application/json"

        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": user_prompt}],
                }
            ],
            "generationConfig": generation_config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
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
        endpoint = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{parse.quote(self.model)}:generateContent?key={parse.quote(self.api_key)}"
        )
        payload = self.build_payload(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=max_tokens,
            response_format=response_format,
        )
        decoded = post_json(
            endpoint,
            payload,
            headers={},
            timeout_sec=timeout_sec or self.timeout_sec,
            provider=self.name,
        )
        return self._extract_text(decoded)

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        candidates = response_json.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise RuntimeError("gemini_candidates_missing")

        first = candidates[0]
        content = first.get("content", {}) if isinstance(first, dict) else {}
        parts = content.get("parts", [])
        if not isinstance(parts, list):
            raise RuntimeError("gemini_parts_missing")

        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip()
        ]
        return require_text("".join(texts), "gemini")
