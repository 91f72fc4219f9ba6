from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import re
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Question(BaseModel):
    id: str
    text: str
    options: dict[str, str] = Field(default_factory=dict)
    correct_answer: str | None = None

    model_config = {"frozen": True}

    @field_validator("options")
    @classmethod
    def _require_two_options(cls, value: dict[str, str]) -> dict[str, str]:
        if len(value) < 2:
            raise ValueError("question_options_lt_2")
        return value

    def source_text(self) -> str:
        return " ".join([self.text, *self.options.values()])


def normalize_topic_key(name: str) -> str:
    return re.sub(r"\s+", " ", str(name or "")).strip().casefold()


def dedupe_concepts(concepts: list[str] | tuple[str, ...], limit: int = 5) -> tuple[str, ...]:
    seen: set[str] = set()
    result: list[str] = []
    for item in concepts:
        text = " ".join(str(item or "").split())
        key = text.casefold()
        if not text or key in seen:
            continue
        seen.add(key)
        result.append(text)
        if len(result) >= limit:
            break
    return tuple(result)


@dataclass(frozen=True)
class DetectedTopic:
    name: str
    question_ids: tuple[str, ...] = ()
    concepts: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return normalize_topic_key(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "question_ids": list(self.question_ids),
            "concepts": list(self.concepts),
        }


@dataclass(frozen=True)
class LessonSection:
    topic_name: str
    content_markdown: str
    order_index: int

    @property
    def word_count(self) -> int:
        return len(self.content_markdown.split())


@dataclass
class GenerationRun:
    exam_id: str
    topics: list[DetectedTopic] = field(default_factory=list)
    sections: list[LessonSection] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    assignment: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return round((self.finished_at - self.started_at).total_seconds(), 2)
