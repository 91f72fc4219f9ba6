from datetime import datetime, timedelta, timezone
from functools import lru_cache
import logging
import time
from typing import Any, Callable, Sequence

from fastapi import HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from coursegen.core.config import Settings, get_settings
from coursegen.domain.ai import build_generation_gateway
from coursegen.domain.ai.gateway import GenerationGateway
from coursegen.domain.course.lessons import LessonGenerator
from coursegen.domain.course.models import GenerationRun, Question
from coursegen.domain.course.repository import CourseRepository, SqlCourseRepository
from coursegen.domain.course.topic_detection import TopicDetector
from coursegen.domain.errors import CourseGenerationError
from coursegen.services.course.error_policy import build_structured_error_detail
from coursegen.services.course.pipeline_runtime import (
    PHASE_LESSON_GENERATION,
    PHASE_PERSISTENCE,
    PHASE_TOPIC_DETECTION,
    PipelineFailure,
    ai_error_detail,
    failure_from_exception,
    format_pipeline_error_detail,
)


logger = logging.getLogger(__name__)
settings = get_settings()


class GenerateCourseRequest(BaseModel):
    examId: str = Field(min_length=1)
    force: bool = False


@lru_cache(maxsize=1)
def _get_generation_gateway() -> GenerationGateway:
    return build_generation_gateway(settings)


@lru_cache(maxsize=1)
def _get_course_repository() -> CourseRepository:
    return SqlCourseRepository.from_url(settings.database_url)


def _require_generation_gateway() -> GenerationGateway:
    try:
        return _get_generation_gateway()
    except Exception as exc:
        reason = ai_error_detail(exc)
        raise HTTPException(
            status_code=503,
            detail=build_structured_error_detail(
                error_code="config_error",
                message=reason,
                retryable=False,
                detail=f"gateway_init_failed:config_error:{reason}",
            ),
        ) from exc


def _raise_pipeline_http_exception(failure: PipelineFailure) -> None:
    raise HTTPException(
        status_code=failure.status_code,
        detail=build_structured_error_detail(
            error_code=failure.kind,
            message=failure.reason,
            retryable=failure.retryable,
            phase=failure.phase,
            detail=format_pipeline_error_detail(failure.phase, failure.kind, failure.reason),
        ),
    ) from failure


def _raise_request_error(status_code: int, code: str, message: str) -> None:
    raise HTTPException(
        status_code=status_code,
        detail=build_structured_error_detail(
            error_code=code,
            message=message,
            retryable=False,
            detail=message,
        ),
    )


def run_course_generation(
    exam_id: str,
    questions: Sequence[Question],
    *,
    gateway: GenerationGateway,
    config: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> GenerationRun:
    run = GenerationRun(exam_id=exam_id, started_at=datetime.now(timezone.utc))
    logger.info(
        "Generating course for exam %s with %d questions (worst case %.0fs)",
        exam_id,
        len(questions),
        config.max_run_duration_sec(len(questions)),
    )

    try:
        detection = TopicDetector(gateway, config, sleep=sleep).detect(questions)
    except CourseGenerationError as exc:
        logger.error("Topic detection failed for exam %s: %s", exam_id, exc)
        raise failure_from_exception(PHASE_TOPIC_DETECTION, exc) from exc
    run.topics = detection.topics
    run.assignment = dict(detection.statistics)
    logger.info("Detected %d topics for exam %s", len(run.topics), exam_id)

    try:
        run.sections = LessonGenerator(gateway, config, sleep=sleep).generate(run.topics, questions)
    except CourseGenerationError as exc:
        logger.error("Lesson generation failed for exam %s: %s", exam_id, exc)
        raise failure_from_exception(PHASE_LESSON_GENERATION, exc) from exc

    run.finished_at = datetime.now(timezone.utc)
    return run


def generate_course(payload: GenerateCourseRequest) -> dict[str, Any]:
    repository = _get_course_repository()
    exam_id = payload.examId.strip()

    if not repository.exam_exists(exam_id):
        _raise_request_error(404, "not_found", f"exam_not_found:{exam_id}")

    if not payload.force:
        since = datetime.now(timezone.utc) - timedelta(minutes=settings.regen_window_minutes)
        if repository.course_generated_since(exam_id, since):
            return {
                "success": True,
                "examId": exam_id,
                "status": "exists",
                "message": "Course already exists for this exam",
            }

    questions = repository.load_questions(exam_id)
    if not questions:
        _raise_request_error(400, "invalid_request", f"exam_has_no_questions:{exam_id}")

    gateway = _require_generation_gateway()
    try:
        run = run_course_generation(exam_id, questions, gateway=gateway, config=settings)
    except PipelineFailure as failure:
        _raise_pipeline_http_exception(failure)

    try:
        repository.replace_course(exam_id, run.topics, run.sections)
    except SQLAlchemyError as exc:
        logger.error("Persisting course for exam %s failed: %s", exam_id, exc)
        _raise_pipeline_http_exception(failure_from_exception(PHASE_PERSISTENCE, exc))

    logger.info("Course generation complete for exam %s in %.2fs", exam_id, run.duration_seconds)
    return {
        "success": True,
        "examId": exam_id,
        "status": "generated",
        "topics": [{"name": topic.name, "status": "generated"} for topic in run.topics],
        "totalSections": len(run.sections),
        "generationTimeSeconds": run.duration_seconds,
        "assignment": run.assignment,
    }


def load_course(exam_id: str) -> dict[str, Any]:
    course = _get_course_repository().load_course(exam_id)
    if course is None:
        raise HTTPException(
            status_code=404,
            detail=build_structured_error_detail(
                error_code="not_found",
                message="No course found for this exam",
                retryable=False,
                detail=f"not_generated:{exam_id}",
            ),
        )
    return course
