from dataclasses import dataclass
import logging
import re
from typing import Sequence

from coursegen.domain.course.models import Question


logger = logging.getLogger(__name__)

JACCARD_THRESHOLD = 0.30
PHRASE_LENGTH = 5
LINE_SIMILARITY_LIMIT = 0.5
_SHORT_LINE_CHARS = 20


@dataclass(frozen=True)
class LeakageReport:
    has_leakage: bool
    similarity: float
    details: str | None = None
    matched_phrase: str | None = None


def _tokens(text: str) -> list[str]:
    return re.sub(r"[^a-z0-9\s]", " ", str(text or "").lower()).split()


def _significant_words(text: str) -> set[str]:
    return {word for word in _tokens(text) if len(word) > 3}


def jaccard_similarity(text1: str, text2: str) -> float:
    words1 = _significant_words(text1)
    words2 = _significant_words(text2)
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def find_shared_phrase(candidate: str, source: str, length: int = PHRASE_LENGTH) -> str | None:
    source_tokens = _tokens(source)
    if len(source_tokens) < length:
        return None
    source_phrases = {
        tuple(source_tokens[idx:idx + length])
        for idx in range(len(source_tokens) - length + 1)
    }

    candidate_tokens = _tokens(candidate)
    for idx in range(len(candidate_tokens) - length + 1):
        phrase = tuple(candidate_tokens[idx:idx + length])
        if phrase in source_phrases:
            return " ".join(phrase)
    return None


def detect_exam_leakage(
    candidate: str,
    questions: Sequence[Question],
    *,
    threshold: float = JACCARD_THRESHOLD,
    phrase_length: int = PHRASE_LENGTH,
) -> LeakageReport:
    source = " ".join(question.source_text() for question in questions)
    similarity = jaccard_similarity(candidate, source)

    details: list[str] = []
    if similarity >= threshold:
        details.append(
            f"High similarity detected ({similarity * 100:.1f}%). Lesson may contain exam question text."
        )

    phrase = find_shared_phrase(candidate, source, phrase_length)
    if phrase:
        details.append(f'Exact phrase match found: "{phrase[:50]}"')

    return LeakageReport(
        has_leakage=bool(details),
        similarity=similarity,
        details=" ".join(details) or None,
        matched_phrase=phrase,
    )


def sanitize_lesson_content(markdown: str, questions: Sequence[Question]) -> str:
    """Drop lines that closely echo a single question's text. Short lines are kept."""
    kept: list[str] = []
    for line in markdown.split("\n"):
        if len(line.strip()) < _SHORT_LINE_CHARS:
            kept.append(line)
            continue
        echoed = next(
            (question for question in questions if jaccard_similarity(line, question.text) > LINE_SIMILARITY_LIMIT),
            None,
        )
        if echoed is not None:
            logger.warning("Removed line similar to question %s: %s...", echoed.id, line[:50])
            continue
        kept.append(line)
    return "\n".join(kept)
