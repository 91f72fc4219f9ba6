import unittest

from fastapi import HTTPException
from pydantic import ValidationError as RequestValidationError

try:
    from tests.course_test_common import (
        FakeGateway,
        build_lesson,
        make_questions,
        make_settings,
        prompt_question_ids,
        prompt_topic_name,
        topic_reply,
    )
except ModuleNotFoundError:
    from course_test_common import (
        FakeGateway,
        build_lesson,
        make_questions,
        make_settings,
        prompt_question_ids,
        prompt_topic_name,
        topic_reply,
    )

from coursegen.domain.course.repository import SqlCourseRepository
from coursegen.domain.errors import GenerationError
from coursegen.services.course import generation_service as gs
from coursegen.services.course.error_policy import build_http_error_payload


def _course_handler(prompt: str, response_format: str) -> str:
    if response_format == "json":
        ids = prompt_question_ids(prompt)
        half = len(ids) // 2
        return topic_reply(("Alpha Topic", ids[:half]), ("Beta Topic", ids[half:]))
    return f"```markdown\n{build_lesson(prompt_topic_name(prompt))}\n```"


class CourseGenerationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._original_get_course_repository = gs._get_course_repository
        self._original_get_generation_gateway = gs._get_generation_gateway
        self._original_settings = gs.settings

        self.repository = SqlCourseRepository.from_url("sqlite://")
        self.repository.add_exam("exam-1", make_questions(12))
        self.gateway = FakeGateway(handler=_course_handler)

        gs.settings = make_settings(min_topics=2)
        gs._get_course_repository = lambda: self.repository
        gs._get_generation_gateway = lambda: self.gateway

    def tearDown(self) -> None:
        gs._get_course_repository = self._original_get_course_repository
        gs._get_generation_gateway = self._original_get_generation_gateway
        gs.settings = self._original_settings

    def _error_payload(self, exc: HTTPException) -> dict:
        return build_http_error_payload(exc, trace_id="trace-test")

    def test_request_requires_exam_id(self) -> None:
        with self.assertRaises(RequestValidationError):
            gs.GenerateCourseRequest(examId="")
        self.assertFalse(gs.GenerateCourseRequest(examId="exam-1").force)

    def test_generates_and_persists_course(self) -> None:
        result = gs.generate_course(gs.GenerateCourseRequest(examId="exam-1"))

        self.assertTrue(result["success"])
        self.assertEqual(result["status"], "generated")
        self.assertEqual(result["topics"], [
            {"name": "Alpha Topic", "status": "generated"},
            {"name": "Beta Topic", "status": "generated"},
        ])
        self.assertEqual(result["totalSections"], 2)
        self.assertEqual(result["assignment"]["assigned"], 12)
        self.assertGreaterEqual(result["generationTimeSeconds"], 0)

        course = gs.load_course("exam-1")
        self.assertEqual(course["status"], "generated")
        self.assertEqual([section["orderIndex"] for section in course["sections"]], [0, 1])
        self.assertEqual(len(course["topics"][0]["questionIds"]) + len(course["topics"][1]["questionIds"]), 12)

    def test_recent_course_is_not_regenerated_unless_forced(self) -> None:
        gs.generate_course(gs.GenerateCourseRequest(examId="exam-1"))
        calls_after_first_run = len(self.gateway.calls)

        again = gs.generate_course(gs.GenerateCourseRequest(examId="exam-1"))
        self.assertEqual(again["status"], "exists")
        self.assertEqual(len(self.gateway.calls), calls_after_first_run)

        forced = gs.generate_course(gs.GenerateCourseRequest(examId="exam-1", force=True))
        self.assertEqual(forced["status"], "generated")
        self.assertGreater(len(self.gateway.calls), calls_after_first_run)

    def test_unknown_exam_returns_not_found(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            gs.generate_course(gs.GenerateCourseRequest(examId="missing"))

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(self._error_payload(ctx.exception)["error_code"], "not_found")
        self.assertEqual(self.gateway.calls, [])

    def test_exam_without_questions_is_rejected(self) -> None:
        self.repository.add_exam("empty-exam", [])

        with self.assertRaises(HTTPException) as ctx:
            gs.generate_course(gs.GenerateCourseRequest(examId="empty-exam"))

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(self._error_payload(ctx.exception)["error_code"], "invalid_request")

    def test_topic_detection_failure_is_tagged_with_phase(self) -> None:
        def handler(_prompt: str, _fmt: str) -> str:
            raise GenerationError("ai_call_failed_after_2_attempts:ai_call_timeout:20s")

        self.gateway.handler = handler

        with self.assertRaises(HTTPException) as ctx:
            gs.generate_course(gs.GenerateCourseRequest(examId="exam-1"))

        payload = self._error_payload(ctx.exception)
        self.assertEqual(ctx.exception.status_code, 504)
        self.assertEqual(payload["error_code"], "timeout")
        self.assertEqual(payload["phase"], "topic_detection")
        self.assertTrue(payload["retryable"])
        self.assertTrue(payload["detail"].startswith("topic_detection_failed:timeout:"))

    def test_lesson_failure_persists_nothing(self) -> None:
        def handler(prompt: str, response_format: str) -> str:
            if response_format == "json":
                return _course_handler(prompt, response_format)
            return "# Alpha Topic\n\nToo short."

        self.gateway.handler = handler

        with self.assertRaises(HTTPException) as ctx:
            gs.generate_course(gs.GenerateCourseRequest(examId="exam-1"))

        payload = self._error_payload(ctx.exception)
        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(payload["error_code"], "quality_failed")
        self.assertEqual(payload["phase"], "lesson_generation")
        self.assertIsNone(self.repository.load_course("exam-1"))

    def test_gateway_init_failure_maps_to_config_error(self) -> None:
        def broken_gateway():
            raise ValueError("openai_api_key_missing")

        gs._get_generation_gateway = broken_gateway

        with self.assertRaises(HTTPException) as ctx:
            gs.generate_course(gs.GenerateCourseRequest(examId="exam-1"))

        payload = self._error_payload(ctx.exception)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(payload["error_code"], "config_error")
        self.assertFalse(payload["retryable"])

    def test_missing_course_is_not_found(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            gs.load_course("exam-1")

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("not_generated", self._error_payload(ctx.exception)["detail"])


if __name__ == "__main__":
    unittest.main()
