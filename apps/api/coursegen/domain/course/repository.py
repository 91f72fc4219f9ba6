"""
Persistence for exams, detected topics and generated course sections.

Topics and sections are written with replace-all semantics per exam.
``replace_course`` writes both inside a single transaction.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, create_engine, delete, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from coursegen.domain.course.models import DetectedTopic, LessonSection, Question


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Exam(Base):
    __tablename__ = "exams"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<Exam(id='{self.id}', title='{self.title}')>"


class ExamQuestion(Base):
    __tablename__ = "questions"

    id = Column(String(64), primary_key=True)
    exam_id = Column(String(64), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False, default=dict)
    correct_answer = Column(String(32), nullable=True)


class DetectedTopicRecord(Base):
    __tablename__ = "ai_detected_topics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(String(64), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    topic_name = Column(String(255), nullable=False)
    question_ids = Column(JSON, nullable=False, default=list)
    concepts = Column(JSON, nullable=False, default=list)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class CourseSectionRecord(Base):
    __tablename__ = "ai_generated_course_sections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(String(64), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    topic_name = Column(String(255), nullable=False)
    content_md = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class CourseRepository(Protocol):
    def exam_exists(self, exam_id: str) -> bool:
        ...

    def load_questions(self, exam_id: str) -> list[Question]:
        ...

    def course_generated_since(self, exam_id: str, since: datetime) -> bool:
        ...

    def replace_topics(self, exam_id: str, topics: Sequence[DetectedTopic]) -> None:
        ...

    def replace_sections(self, exam_id: str, sections: Sequence[LessonSection]) -> None:
        ...

    def replace_course(
        self,
        exam_id: str,
        topics: Sequence[DetectedTopic],
        sections: Sequence[LessonSection],
    ) -> None:
        ...

    def load_course(self, exam_id: str) -> dict[str, Any] | None:
        ...


def build_session_factory(database_url: str) -> sessionmaker:
    kwargs: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


class SqlCourseRepository:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlCourseRepository":
        return cls(build_session_factory(database_url))

    def add_exam(self, exam_id: str, questions: Sequence[Question], title: str = "") -> None:
        with self._session_factory.begin() as session:
            session.merge(Exam(id=exam_id, title=title))
            session.execute(delete(ExamQuestion).where(ExamQuestion.exam_id == exam_id))
            session.add_all(
                ExamQuestion(
                    id=question.id,
                    exam_id=exam_id,
                    position=position,
                    question_text=question.text,
                    options=dict(question.options),
                    correct_answer=question.correct_answer,
                )
                for position, question in enumerate(questions)
            )

    def exam_exists(self, exam_id: str) -> bool:
        with self._session_factory() as session:
            return session.get(Exam, exam_id) is not None

    def load_questions(self, exam_id: str) -> list[Question]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ExamQuestion)
                .where(ExamQuestion.exam_id == exam_id)
                .order_by(ExamQuestion.position, ExamQuestion.id)
            ).all()
            return [
                Question(
                    id=row.id,
                    text=row.question_text,
                    options=dict(row.options or {}),
                    correct_answer=row.correct_answer,
                )
                for row in rows
            ]

    def course_generated_since(self, exam_id: str, since: datetime) -> bool:
        with self._session_factory() as session:
            row = session.scalars(
                select(CourseSectionRecord.created_at)
                .where(CourseSectionRecord.exam_id == exam_id)
                .order_by(CourseSectionRecord.created_at.desc())
                .limit(1)
            ).first()
        if row is None:
            return False
        # SQLite 는 tz 정보를 버리므로 naive 값은 UTC 로 간주한다.
        created_at = row if row.tzinfo else row.replace(tzinfo=timezone.utc)
        return created_at >= since

    def replace_topics(self, exam_id: str, topics: Sequence[DetectedTopic]) -> None:
        with self._session_factory.begin() as session:
            self._write_topics(session, exam_id, topics)

    def replace_sections(self, exam_id: str, sections: Sequence[LessonSection]) -> None:
        with self._session_factory.begin() as session:
            self._write_sections(session, exam_id, sections)

    def replace_course(
        self,
        exam_id: str,
        topics: Sequence[DetectedTopic],
        sections: Sequence[LessonSection],
    ) -> None:
        with self._session_factory.begin() as session:
            self._write_topics(session, exam_id, topics)
            self._write_sections(session, exam_id, sections)

    def load_course(self, exam_id: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            topic_rows = session.scalars(
                select(DetectedTopicRecord)
                .where(DetectedTopicRecord.exam_id == exam_id)
                .order_by(DetectedTopicRecord.order_index)
            ).all()
            section_rows = session.scalars(
                select(CourseSectionRecord)
                .where(CourseSectionRecord.exam_id == exam_id)
                .order_by(CourseSectionRecord.order_index)
            ).all()

            if not topic_rows and not section_rows:
                return None

            return {
                "examId": exam_id,
                "status": "generated" if section_rows else "topics_only",
                "topics": [
                    {
                        "name": row.topic_name,
                        "questionIds": list(row.question_ids or []),
                        "concepts": list(row.concepts or []),
                        "orderIndex": row.order_index,
                    }
                    for row in topic_rows
                ],
                "sections": [
                    {
                        "topicName": row.topic_name,
                        "contentMd": row.content_md,
                        "orderIndex": row.order_index,
                    }
                    for row in section_rows
                ],
            }

    @staticmethod
    def _write_topics(session: Session, exam_id: str, topics: Sequence[DetectedTopic]) -> None:
        session.execute(delete(DetectedTopicRecord).where(DetectedTopicRecord.exam_id == exam_id))
        session.add_all(
            DetectedTopicRecord(
                exam_id=exam_id,
                topic_name=topic.name,
                question_ids=list(topic.question_ids),
                concepts=list(topic.concepts),
                order_index=position,
            )
            for position, topic in enumerate(topics)
        )

    @staticmethod
    def _write_sections(session: Session, exam_id: str, sections: Sequence[LessonSection]) -> None:
        session.execute(delete(CourseSectionRecord).where(CourseSectionRecord.exam_id == exam_id))
        session.add_all(
            CourseSectionRecord(
                exam_id=exam_id,
                topic_name=section.topic_name,
                content_md=section.content_markdown,
                order_index=section.order_index,
            )
            for section in sections
        )
