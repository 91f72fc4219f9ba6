from typing import Literal, Protocol


ResponseFormat = Literal["text", "json"]


class ChatProvider(Protocol):
    """Text-generation provider contract. Returns non-empty text or raises."""

    name: str
    model: str

    def send_chat(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        response_format: ResponseFormat = "text",
        timeout_sec: float | None = None,
    ) -> str:
        ...
