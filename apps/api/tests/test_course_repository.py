import unittest
from datetime import datetime, timedelta, timezone

try:
    from tests.course_test_common import build_lesson, make_questions
except ModuleNotFoundError:
    from course_test_common import build_lesson, make_questions

from coursegen.domain.course.models import DetectedTopic, LessonSection
from coursegen.domain.course.repository import SqlCourseRepository


class SqlCourseRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = SqlCourseRepository.from_url("sqlite://")
        self.repository.add_exam("exam-1", make_questions(3), title="Biology midterm")

    def _course(self, *names: str) -> tuple[list[DetectedTopic], list[LessonSection]]:
        topics = [
            DetectedTopic(name=name, question_ids=(f"q{index}",), concepts=("concept",))
            for index, name in enumerate(names, start=1)
        ]
        sections = [
            LessonSection(topic_name=name, content_markdown=build_lesson(name), order_index=index)
            for index, name in enumerate(names)
        ]
        return topics, sections

    def test_loads_exam_questions_in_order(self) -> None:
        self.assertTrue(self.repository.exam_exists("exam-1"))
        self.assertFalse(self.repository.exam_exists("exam-2"))

        questions = self.repository.load_questions("exam-1")
        self.assertEqual([question.id for question in questions], ["q1", "q2", "q3"])
        self.assertEqual(questions[0].options, {"A": "first choice 1", "B": "second choice 1"})
        self.assertEqual(self.repository.load_questions("exam-2"), [])

    def test_replace_course_overwrites_previous_rows(self) -> None:
        self.repository.replace_course("exam-1", *self._course("Alpha", "Beta"))
        self.repository.replace_course("exam-1", *self._course("Gamma"))

        course = self.repository.load_course("exam-1")
        self.assertEqual(course["status"], "generated")
        self.assertEqual([topic["name"] for topic in course["topics"]], ["Gamma"])
        self.assertEqual([section["topicName"] for section in course["sections"]], ["Gamma"])
        self.assertEqual(course["topics"][0]["questionIds"], ["q1"])

    def test_topics_without_sections_report_topics_only(self) -> None:
        topics, _ = self._course("Alpha")
        self.repository.replace_topics("exam-1", topics)

        course = self.repository.load_course("exam-1")
        self.assertEqual(course["status"], "topics_only")
        self.assertEqual(course["sections"], [])

    def test_missing_course_loads_as_none(self) -> None:
        self.assertIsNone(self.repository.load_course("exam-1"))

    def test_recent_generation_window(self) -> None:
        now = datetime.now(timezone.utc)
        self.assertFalse(self.repository.course_generated_since("exam-1", now - timedelta(minutes=10)))

        self.repository.replace_course("exam-1", *self._course("Alpha"))

        self.assertTrue(self.repository.course_generated_since("exam-1", now - timedelta(minutes=10)))
        self.assertFalse(self.repository.course_generated_since("exam-1", now + timedelta(minutes=1)))


if __name__ == "__main__":
    unittest.main()
