"""Error taxonomy shared by the generation gateway and the course pipeline."""


class CourseGenerationError(RuntimeError):
    """Base class for failures that abort the enclosing pipeline phase."""

    kind = "unknown"

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        if kind:
            self.kind = kind


class GenerationError(CourseGenerationError):
    """An external generation call failed after exhausting its retries."""

    kind = "provider_error"

    def __init__(self, message: str, *, kind: str | None = None, attempt_count: int = 0) -> None:
        super().__init__(message, kind=kind)
        self.attempt_count = attempt_count


class ParseError(CourseGenerationError):
    """The model reply could not be decoded into the expected structure."""

    kind = "schema_mismatch"


class ValidationError(CourseGenerationError):
    """The reply decoded but violates shape or quality constraints."""

    kind = "schema_mismatch"

    def __init__(self, message: str, *, kind: str | None = None, issues: list[str] | None = None) -> None:
        super().__init__(message, kind=kind)
        self.issues = list(issues or [])


class AssignmentWarning(UserWarning):
    """A duplicate or unknown question id claimed by a topic. Never raised."""

    def __init__(self, question_id: str, topic_name: str, reason: str, existing_topic: str | None = None) -> None:
        self.question_id = question_id
        self.topic_name = topic_name
        self.reason = reason
        self.existing_topic = existing_topic
        super().__init__(self.describe())

    def describe(self) -> str:
        if self.reason == "duplicate":
            return (
                f'Question {self.question_id} already assigned to "{self.existing_topic}", '
                f'duplicate assignment to "{self.topic_name}"'
            )
        return f'Invalid question ID detected: {self.question_id} (claimed by "{self.topic_name}")'
