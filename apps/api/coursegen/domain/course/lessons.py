from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import time
from typing import Callable, Sequence

from coursegen.core.config import Settings
from coursegen.domain.ai.gateway import GenerationGateway
from coursegen.domain.ai.parsing import parse_markdown_text
from coursegen.domain.course.leakage import detect_exam_leakage, sanitize_lesson_content
from coursegen.domain.course.models import DetectedTopic, LessonSection, Question
from coursegen.domain.course.prompts import LESSON_SYSTEM_PROMPT, build_lesson_generation_prompt
from coursegen.domain.course.validation import assert_lesson_quality
from coursegen.domain.errors import ValidationError


logger = logging.getLogger(__name__)


class LessonGenerator:
    """
    Authors one markdown lesson per topic.

    Topics are processed in fixed-size windows: calls inside a window run
    concurrently, the next window starts only after the whole window finished.
    A failure for any topic aborts the phase.
    """

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

    def generate(self, topics: Sequence[DetectedTopic], questions: Sequence[Question]) -> list[LessonSection]:
        by_id = {question.id: question for question in questions}
        window_size = max(1, int(self.settings.lesson_window_size))
        sections: list[LessonSection] = []

        with ThreadPoolExecutor(max_workers=window_size, thread_name_prefix="lesson") as executor:
            for start in range(0, len(topics), window_size):
                window = [(idx, topics[idx]) for idx in range(start, min(start + window_size, len(topics)))]
                logger.info(
                    "Generating lessons %d-%d of %d",
                    start + 1,
                    start + len(window),
                    len(topics),
                )
                futures = [
                    executor.submit(
                        self.generate_one,
                        topic,
                        [by_id[qid] for qid in topic.question_ids if qid in by_id],
                        order_index,
                    )
                    for order_index, topic in window
                ]
                # 창 전체가 끝날 때까지 기다린 뒤 첫 번째 실패를 그대로 올린다.
                errors = [future.exception() for future in futures]
                first_error = next((error for error in errors if error is not None), None)
                if first_error is not None:
                    raise first_error
                sections.extend(future.result() for future in futures)

                if start + window_size < len(topics) and self.settings.lesson_window_delay_sec > 0:
                    self._sleep(self.settings.lesson_window_delay_sec)

        return sections

    def generate_one(
        self,
        topic: DetectedTopic,
        topic_questions: Sequence[Question],
        order_index: int,
    ) -> LessonSection:
        prompt = build_lesson_generation_prompt(
            topic,
            topic_questions,
            max_words=min(500, self.settings.lesson_max_words),
        )
        text = self.gateway.call(
            prompt=prompt,
            system_prompt=LESSON_SYSTEM_PROMPT,
            max_tokens=self.settings.lesson_max_tokens,
            timeout_sec=self.settings.lesson_generation_timeout_sec,
            retries=self.settings.ai_retries,
            response_format="text",
        )
        markdown = parse_markdown_text(text)
        self._validate(markdown, topic)

        leakage = detect_exam_leakage(
            markdown,
            topic_questions,
            threshold=self.settings.leakage_threshold,
        )
        if leakage.has_leakage:
            logger.warning('Leakage detected in topic "%s": %s', topic.name, leakage.details)
            markdown = self._apply_leakage_policy(markdown, topic, topic_questions, leakage.details or "")

        logger.info('Lesson ready for "%s" (%d words)', topic.name, len(markdown.split()))
        return LessonSection(topic_name=topic.name, content_markdown=markdown, order_index=order_index)

    def _apply_leakage_policy(
        self,
        markdown: str,
        topic: DetectedTopic,
        topic_questions: Sequence[Question],
        details: str,
    ) -> str:
        policy = self.settings.leakage_policy
        if policy == "reject":
            raise ValidationError(
                f'quality_validation_failed:leakage_detected:"{topic.name}":{details}',
                kind="quality_failed",
                issues=["leakage_detected"],
            )
        if policy == "sanitize":
            sanitized = sanitize_lesson_content(markdown, topic_questions)
            self._validate(sanitized, topic)
            return sanitized
        return markdown

    def _validate(self, markdown: str, topic: DetectedTopic) -> None:
        assert_lesson_quality(
            markdown,
            topic.name,
            min_words=self.settings.lesson_min_words,
            max_words=self.settings.lesson_max_words,
        )
