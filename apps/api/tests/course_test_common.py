import json
import re
import threading
from typing import Any, Callable, Sequence

from coursegen.core.config import Settings
from coursegen.domain.course.models import Question
from coursegen.domain.course.prompts import REQUIRED_LESSON_SUBHEADINGS


_TOPIC_LINE = re.compile(r"^TOPIC: (.+)$", re.MULTILINE)
_QUESTION_ID_LINE = re.compile(r"^Question ID: (\S+)$", re.MULTILINE)

# 문항 본문과 겹치지 않는 어휘만 사용해 유출 검사에 걸리지 않게 한다.
_FILLER = "learners revisit foundational ideas"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "openai_api_key": "test-key",
        "topic_batch_delay_sec": 0,
        "lesson_window_delay_sec": 0,
        "database_url": "sqlite://",
    }
    values.update(overrides)
    return Settings(**values)


def make_question(index: int, *, prefix: str = "q") -> Question:
    return Question(
        id=f"{prefix}{index}",
        text=f"Which statement about sample case {index} holds true?",
        options={"A": f"first choice {index}", "B": f"second choice {index}"},
        correct_answer="A",
    )


def make_questions(count: int, *, prefix: str = "q") -> list[Question]:
    return [make_question(index, prefix=prefix) for index in range(1, count + 1)]


def build_lesson(topic_name: str, *, filler_repeats: int = 30) -> str:
    body = " ".join([_FILLER] * filler_repeats)
    parts = [f"# {topic_name}"]
    for heading in REQUIRED_LESSON_SUBHEADINGS:
        parts.append(f"## {heading}")
        parts.append(body if heading == "Overview" else "- keep practicing deliberately")
    return "\n\n".join(parts)


def topic_reply(*topics: tuple[str, Sequence[str]], concepts: Sequence[str] = ("concept a", "concept b")) -> str:
    return json.dumps(
        {
            "topics": [
                {"name": name, "question_ids": list(ids), "concepts": list(concepts)}
                for name, ids in topics
            ]
        }
    )


def prompt_topic_name(prompt: str) -> str:
    match = _TOPIC_LINE.search(prompt)
    return match.group(1).strip() if match else ""


def prompt_question_ids(prompt: str) -> list[str]:
    return _QUESTION_ID_LINE.findall(prompt)


class FakeGateway:
    """Stands in for GenerationGateway: scripted replies or a handler keyed on the prompt."""

    def __init__(
        self,
        replies: Sequence[Any] | None = None,
        *,
        handler: Callable[[str, str], str] | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.handler = handler
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def call(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 3000,
        timeout_sec: float = 30,
        retries: int | None = None,
        response_format: str = "text",
    ) -> str:
        with self._lock:
            self.calls.append(
                {
                    "prompt": prompt,
                    "system_prompt": system_prompt,
                    "max_tokens": max_tokens,
                    "timeout_sec": timeout_sec,
                    "retries": retries,
                    "response_format": response_format,
                }
            )
            if self.handler is None:
                reply = self.replies.pop(0)
            else:
                reply = None

        if self.handler is not None:
            reply = self.handler(prompt, response_format)
        if isinstance(reply, Exception):
            raise reply
        return reply


class ScriptedProvider:
    """ChatProvider double whose send_chat walks through a script of results or exceptions."""

    name = "scripted"
    model = "scripted-model"

    def __init__(self, script: Sequence[Any]) -> None:
        self.script = list(script)
        self.calls = 0

    def send_chat(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        response_format: str = "text",
        timeout_sec: float | None = None,
    ) -> str:
        self.calls += 1
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step()
        return step
