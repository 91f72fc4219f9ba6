"""
Question assignment bookkeeping for topic detection.

The tracker is the single source of truth for which question belongs to which
topic. Claims are first-wins: a later claim on an already assigned question is
recorded as a conflict and discarded. Ids outside the run are discarded as
invalid. Nothing here raises.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable

from coursegen.domain.course.models import DetectedTopic
from coursegen.domain.errors import AssignmentWarning


logger = logging.getLogger(__name__)

RECOVERY_TOPIC_NAME = "Additional Review Topics"
RECOVERY_CONCEPTS = (
    "Mixed concepts",
    "Additional review materials",
    "Supplementary topics",
    "Cross-domain knowledge",
)
_MAX_ERROR_LINES = 10


@dataclass(frozen=True)
class AssignmentResult:
    assigned: int = 0
    duplicates: int = 0
    invalid: int = 0
    accepted: tuple[str, ...] = ()


@dataclass(frozen=True)
class TrackerValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


class AssignmentTracker:
    def __init__(self, question_ids: Iterable[str]) -> None:
        # 입력 순서를 유지해야 복구 토픽의 문항 순서가 안정적이다.
        self._all_ids: dict[str, None] = dict.fromkeys(str(qid) for qid in question_ids)
        self._assigned: dict[str, str] = {}
        self._conflicts: dict[str, list[str]] = {}
        self._invalid: dict[str, list[str]] = {}
        self.warnings: list[AssignmentWarning] = []

    def assign(self, topic_name: str, question_ids: Iterable[str]) -> AssignmentResult:
        assigned = 0
        duplicates = 0
        invalid = 0
        accepted: list[str] = []

        for raw_id in question_ids:
            qid = str(raw_id).strip()
            if qid not in self._all_ids:
                invalid += 1
                self._invalid.setdefault(qid, []).append(topic_name)
                self._warn(AssignmentWarning(qid, topic_name, "invalid"))
            elif self._assigned.get(qid) == topic_name:
                # 같은 토픽이 같은 문항을 다시 나열한 경우는 충돌이 아니다.
                continue
            elif qid in self._assigned:
                duplicates += 1
                existing = self._assigned[qid]
                self._conflicts.setdefault(qid, [existing]).append(topic_name)
                self._warn(AssignmentWarning(qid, topic_name, "duplicate", existing_topic=existing))
            else:
                self._assigned[qid] = topic_name
                accepted.append(qid)
                assigned += 1

        return AssignmentResult(
            assigned=assigned,
            duplicates=duplicates,
            invalid=invalid,
            accepted=tuple(accepted),
        )

    def unassigned(self) -> list[str]:
        return [qid for qid in self._all_ids if qid not in self._assigned]

    def topic_of(self, question_id: str) -> str | None:
        return self._assigned.get(question_id)

    @property
    def conflicts(self) -> dict[str, list[str]]:
        return {qid: list(topics) for qid, topics in self._conflicts.items()}

    @property
    def invalid_ids(self) -> list[str]:
        return list(self._invalid)

    def create_recovery_topic(self, name: str = RECOVERY_TOPIC_NAME) -> DetectedTopic | None:
        remaining = self.unassigned()
        if not remaining:
            return None

        result = self.assign(name, remaining)
        logger.info("Recovered %d unassigned questions into %r", result.assigned, name)
        return DetectedTopic(
            name=name,
            question_ids=result.accepted,
            concepts=RECOVERY_CONCEPTS,
        )

    def validate(self) -> TrackerValidation:
        errors: list[str] = []

        unassigned = self.unassigned()
        if unassigned:
            errors.append(f"{len(unassigned)} questions were not assigned to any topic")
            errors.append(f"Sample unassigned IDs: {', '.join(unassigned[:5])}")

        # 중복 배정은 first-wins 로 이미 해소되었으므로 기록만 하고 유효성에는 반영하지 않는다.
        if self._conflicts:
            errors.append(f"{len(self._conflicts)} questions were assigned to multiple topics")
            for qid, topics in self._conflicts.items():
                if len(errors) >= _MAX_ERROR_LINES:
                    break
                errors.append(f"Question {qid} assigned to: {', '.join(topics)}")

        return TrackerValidation(is_valid=not unassigned, errors=errors)

    def statistics(self) -> dict[str, int | str]:
        total = len(self._all_ids)
        assigned = len(self._assigned)
        rate = (assigned / total * 100) if total else 100.0
        return {
            "total": total,
            "assigned": assigned,
            "unassigned": total - assigned,
            "duplicates": len(self._conflicts),
            "invalid": len(self._invalid),
            "assignment_rate": f"{rate:.1f}%",
        }

    def report(self) -> str:
        stats = self.statistics()
        validation = self.validate()

        lines = [
            "Question Assignment Report:",
            f"- Total Questions: {stats['total']}",
            f"- Assigned: {stats['assigned']} ({stats['assignment_rate']})",
            f"- Unassigned: {stats['unassigned']}",
            f"- Duplicates: {stats['duplicates']}",
            f"- Invalid IDs: {stats['invalid']}",
            f"- Status: {'valid' if validation.is_valid else 'invalid'}",
        ]
        if validation.errors:
            lines.append("Notes:")
            lines.extend(f"  - {error}" for error in validation.errors)
        return "\n".join(lines)

    def _warn(self, warning: AssignmentWarning) -> None:
        self.warnings.append(warning)
        logger.warning(warning.describe())
