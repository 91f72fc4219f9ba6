import re
from typing import Any

from coursegen.domain.course.models import DetectedTopic, dedupe_concepts, normalize_topic_key
from coursegen.domain.course.prompts import REQUIRED_LESSON_SUBHEADINGS
from coursegen.domain.errors import ValidationError


def validate_topic_detection_response(
    data: Any,
    *,
    min_topics: int | None = 5,
    max_topics: int | None = 12,
    max_concepts: int = 5,
    require_question_ids: bool = True,
) -> list[DetectedTopic]:
    if not isinstance(data, dict):
        raise ValidationError("topic_response_not_object")

    raw_topics = data.get("topics")
    if not isinstance(raw_topics, list):
        raise ValidationError("topic_response_topics_missing")

    count = len(raw_topics)
    if (min_topics is not None and count < min_topics) or (max_topics is not None and count > max_topics):
        raise ValidationError(
            f"topic_count_invalid:{count} (expected {min_topics or 1}-{max_topics or 'any'})",
        )

    topics: list[DetectedTopic] = []
    for idx, item in enumerate(raw_topics, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"topic{idx}_not_object")

        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"topic{idx}_name_missing")
        name = " ".join(name.split())

        question_ids = item.get("question_ids")
        if not isinstance(question_ids, list) or (require_question_ids and not question_ids):
            raise ValidationError(f'topic_question_ids_missing:"{name}"')
        if not all(isinstance(qid, (str, int)) and not isinstance(qid, bool) for qid in question_ids):
            raise ValidationError(f'topic_question_ids_not_strings:"{name}"')

        concepts = item.get("concepts")
        if not isinstance(concepts, list) or not concepts:
            raise ValidationError(f'topic_concepts_missing:"{name}"')
        if not all(isinstance(concept, str) for concept in concepts):
            raise ValidationError(f'topic_concepts_not_strings:"{name}"')

        topics.append(
            DetectedTopic(
                name=name,
                question_ids=tuple(str(qid).strip() for qid in question_ids),
                concepts=dedupe_concepts(concepts, limit=max_concepts),
            )
        )

    return topics


_CLOSING_HASHES = re.compile(r"\s+#+\s*$")


def _normalize_heading(line: str) -> str:
    # 닫는 # 는 앞에 공백이 있을 때만 제거한다 ("# C#" 의 본문은 "C#").
    return normalize_topic_key(_CLOSING_HASHES.sub("", line.strip()))


def count_words(markdown: str) -> int:
    return len(markdown.split())


def lesson_quality_issues(
    markdown: str,
    topic_name: str,
    *,
    min_words: int = 100,
    max_words: int = 600,
) -> list[str]:
    issues: list[str] = []

    words = count_words(markdown)
    if words < min_words:
        issues.append(f"lesson_too_short:{words}<{min_words}")
    if words > max_words:
        issues.append(f"lesson_too_long:{words}>{max_words}")

    top_headings: set[str] = set()
    sub_headings: set[str] = set()
    for line in markdown.splitlines():
        match = re.match(r"^\s{0,3}(#{1,2})\s+(.+?)\s*$", line)
        if not match:
            continue
        target = top_headings if match.group(1) == "#" else sub_headings
        target.add(_normalize_heading(match.group(2)))

    if normalize_topic_key(topic_name) not in top_headings:
        issues.append(f"heading_missing:# {topic_name}")
    for heading in REQUIRED_LESSON_SUBHEADINGS:
        if normalize_topic_key(heading) not in sub_headings:
            issues.append(f"heading_missing:## {heading}")

    return issues


def assert_lesson_quality(
    markdown: str,
    topic_name: str,
    *,
    min_words: int = 100,
    max_words: int = 600,
) -> None:
    issues = lesson_quality_issues(markdown, topic_name, min_words=min_words, max_words=max_words)
    if issues:
        raise ValidationError(
            f"quality_validation_failed:{'|'.join(issues[:6])}",
            kind="quality_failed",
            issues=issues,
        )
