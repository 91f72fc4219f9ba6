"""
Topic detection over an exam's question set.

Small exams are analyzed in one call. Large exams are split into sequential
batches: the first batch seeds the topic vocabulary and later batches are asked
to reuse it. Each batch reply is folded into an immutable topic tuple by
``merge_topics``; question ownership is decided by the ``AssignmentTracker``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import time
from typing import Any, Callable, Sequence

from coursegen.core.config import Settings
from coursegen.domain.ai.gateway import GenerationGateway
from coursegen.domain.ai.parsing import parse_json_text
from coursegen.domain.course.models import DetectedTopic, Question, dedupe_concepts
from coursegen.domain.course.prompts import (
    TOPIC_SYSTEM_PROMPT,
    build_continuation_batch_prompt,
    build_seed_batch_prompt,
    build_topic_detection_prompt,
)
from coursegen.domain.course.tracker import AssignmentTracker, TrackerValidation
from coursegen.domain.course.validation import validate_topic_detection_response
from coursegen.domain.errors import ValidationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopicDetectionResult:
    topics: list[DetectedTopic]
    statistics: dict[str, Any] = field(default_factory=dict)
    validation: TrackerValidation = field(default_factory=lambda: TrackerValidation(is_valid=True))
    batch_count: int = 1


def merge_topics(
    existing: tuple[DetectedTopic, ...],
    incoming: Sequence[DetectedTopic],
    *,
    max_concepts: int = 5,
) -> tuple[DetectedTopic, ...]:
    """Fold ``incoming`` into ``existing`` by normalized topic name. Pure."""
    merged = list(existing)
    index = {topic.key: position for position, topic in enumerate(merged)}

    for topic in incoming:
        position = index.get(topic.key)
        if position is None:
            index[topic.key] = len(merged)
            merged.append(
                replace(
                    topic,
                    question_ids=tuple(dict.fromkeys(topic.question_ids)),
                    concepts=dedupe_concepts(topic.concepts, limit=max_concepts),
                )
            )
            continue

        current = merged[position]
        merged[position] = DetectedTopic(
            name=current.name,
            question_ids=tuple(dict.fromkeys(current.question_ids + topic.question_ids)),
            concepts=dedupe_concepts(current.concepts + topic.concepts, limit=max_concepts),
        )

    return tuple(merged)


def split_batches(questions: Sequence[Question], batch_size: int) -> list[list[Question]]:
    size = max(1, int(batch_size))
    return [list(questions[start:start + size]) for start in range(0, len(questions), size)]


class TopicDetector:
    def __init__(
        self,
        gateway: GenerationGateway,
        settings: Settings,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self._sleep = sleep

    def detect(self, questions: Sequence[Question]) -> TopicDetectionResult:
        if not questions:
            raise ValidationError("no_questions")

        tracker = AssignmentTracker(question.id for question in questions)
        if len(questions) > self.settings.large_set_threshold:
            topics, batch_count = self._detect_batched(questions, tracker)
        else:
            topics = self._detect_single(questions, tracker)
            batch_count = 1

        recovery = tracker.create_recovery_topic()
        if recovery is not None:
            topics = merge_topics(topics, [recovery], max_concepts=self.settings.max_concepts)

        final_topics = self._drop_empty(topics)
        validation = tracker.validate()
        for error in validation.errors:
            logger.warning("Assignment check: %s", error)
        logger.info(tracker.report())

        self._check_partition(final_topics, questions)
        return TopicDetectionResult(
            topics=list(final_topics),
            statistics=tracker.statistics(),
            validation=validation,
            batch_count=batch_count,
        )

    def _detect_single(self, questions: Sequence[Question], tracker: AssignmentTracker) -> tuple[DetectedTopic, ...]:
        min_topics = min(self.settings.min_topics, len(questions))
        prompt = build_topic_detection_prompt(
            questions,
            min_topics=min_topics,
            max_topics=self.settings.max_topics,
        )
        reply = self._call(prompt)
        detected = validate_topic_detection_response(
            reply,
            min_topics=min_topics,
            max_topics=self.settings.max_topics,
            max_concepts=self.settings.max_concepts,
        )
        logger.info("Detected %d topics in single-pass mode", len(detected))
        return self._fold((), detected, tracker)

    def _detect_batched(
        self,
        questions: Sequence[Question],
        tracker: AssignmentTracker,
    ) -> tuple[tuple[DetectedTopic, ...], int]:
        batches = split_batches(questions, self.settings.topic_batch_size)
        total = len(batches)
        logger.info("Detecting topics for %d questions in %d batches", len(questions), total)

        topics: tuple[DetectedTopic, ...] = ()
        for number, batch in enumerate(batches, start=1):
            if number == 1:
                prompt = build_seed_batch_prompt(
                    batch,
                    batch_number=number,
                    total_batches=total,
                    total_questions=len(questions),
                )
            else:
                prompt = build_continuation_batch_prompt(
                    batch,
                    topics,
                    batch_number=number,
                    total_batches=total,
                )

            reply = self._call(prompt)
            detected = validate_topic_detection_response(
                reply,
                min_topics=1,
                max_topics=None,
                max_concepts=self.settings.max_concepts,
                require_question_ids=False,
            )
            topics = self._fold(topics, detected, tracker)
            logger.info("Batch %d/%d folded: %d topics so far", number, total, len(topics))

            if number < total and self.settings.topic_batch_delay_sec > 0:
                self._sleep(self.settings.topic_batch_delay_sec)

        return topics, total

    def _call(self, prompt: str) -> Any:
        text = self.gateway.call(
            prompt=prompt,
            system_prompt=TOPIC_SYSTEM_PROMPT,
            max_tokens=self.settings.topic_detection_max_tokens,
            timeout_sec=self.settings.topic_detection_timeout_sec,
            retries=self.settings.ai_retries,
            response_format="json",
        )
        return parse_json_text(text)

    def _fold(
        self,
        topics: tuple[DetectedTopic, ...],
        detected: Sequence[DetectedTopic],
        tracker: AssignmentTracker,
    ) -> tuple[DetectedTopic, ...]:
        for topic in detected:
            canonical = next((item.name for item in topics if item.key == topic.key), topic.name)
            result = tracker.assign(canonical, topic.question_ids)
            if result.duplicates or result.invalid:
                logger.warning(
                    'Topic "%s": assigned=%d duplicates=%d invalid=%d',
                    canonical,
                    result.assigned,
                    result.duplicates,
                    result.invalid,
                )
            claimed = DetectedTopic(name=canonical, question_ids=result.accepted, concepts=topic.concepts)
            topics = merge_topics(topics, [claimed], max_concepts=self.settings.max_concepts)
        return topics

    @staticmethod
    def _drop_empty(topics: tuple[DetectedTopic, ...]) -> tuple[DetectedTopic, ...]:
        kept = tuple(topic for topic in topics if topic.question_ids)
        for topic in topics:
            if not topic.question_ids:
                logger.warning('Dropping topic "%s": no questions left after assignment', topic.name)
        return kept

    @staticmethod
    def _check_partition(topics: Sequence[DetectedTopic], questions: Sequence[Question]) -> None:
        seen: set[str] = set()
        for topic in topics:
            overlap = seen.intersection(topic.question_ids)
            if overlap:
                raise ValidationError(f"assignment_overlap:{sorted(overlap)[:5]}")
            seen.update(topic.question_ids)

        expected = {question.id for question in questions}
        if seen != expected:
            missing = sorted(expected - seen)[:5]
            raise ValidationError(f"assignment_incomplete:missing={missing}")