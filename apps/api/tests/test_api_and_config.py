import logging
import unittest

from fastapi.testclient import TestClient

try:
    from tests.course_test_common import make_questions, make_settings
except ModuleNotFoundError:
    from course_test_common import make_questions, make_settings

from coursegen.core.logging_config import LOGGER_NAME, configure_logging
from coursegen.domain.course.repository import SqlCourseRepository
from coursegen.main import app
from coursegen.services.course import generation_service as gs


class SettingsTests(unittest.TestCase):
    def test_run_duration_bound_for_small_exam(self) -> None:
        settings = make_settings(topic_batch_delay_sec=1.0, lesson_window_delay_sec=1.0)
        # 탐지 1회(2번 시도 + 1초 대기) + 레슨 4개 창(각 2번 시도 + 1초 대기) + 창 사이 3초
        self.assertEqual(settings.max_run_duration_sec(50), 41 + 244 + 3)

    def test_run_duration_bound_for_batched_exam(self) -> None:
        settings = make_settings(topic_batch_delay_sec=1.0, lesson_window_delay_sec=1.0)
        self.assertEqual(settings.max_run_duration_sec(250, topic_count=3), 7 * 41 + 6 + 61)

    def test_configure_logging_is_idempotent(self) -> None:
        configure_logging(make_settings(log_level="debug"))
        logger = configure_logging(make_settings(log_level="warning"))

        self.assertEqual(logger.name, LOGGER_NAME)
        self.assertEqual(logger.level, logging.WARNING)
        self.assertEqual(sum(1 for handler in logger.handlers if getattr(handler, "_coursegen", False)), 1)


class CourseApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self._original_get_course_repository = gs._get_course_repository
        self._original_settings = gs.settings

        self.repository = SqlCourseRepository.from_url("sqlite://")
        self.repository.add_exam("exam-1", make_questions(3))
        gs.settings = make_settings()
        gs._get_course_repository = lambda: self.repository
        self.client = TestClient(app)

    def tearDown(self) -> None:
        gs._get_course_repository = self._original_get_course_repository
        gs.settings = self._original_settings

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_generate_for_unknown_exam_returns_error_envelope(self) -> None:
        response = self.client.post(
            "/api/generate-course",
            json={"examId": "missing"},
            headers={"x-trace-id": "trace-api"},
        )

        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertEqual(body["error_code"], "not_found")
        self.assertEqual(body["trace_id"], "trace-api")
        self.assertFalse(body["retryable"])

    def test_course_not_generated_yet(self) -> None:
        response = self.client.get("/api/courses/exam-1")

        self.assertEqual(response.status_code, 404)
        self.assertIn("not_generated", response.json()["detail"])


if __name__ == "__main__":
    unittest.main()
