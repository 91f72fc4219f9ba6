from typing import Sequence

from coursegen.domain.course.models import DetectedTopic, Question


TOPIC_SYSTEM_PROMPT = "You are a senior exam content analyst. Respond with valid JSON only."
LESSON_SYSTEM_PROMPT = "You are a master instructor. Respond with Markdown content only."

REQUIRED_LESSON_SUBHEADINGS = (
    "Overview",
    "Core Principles",
    "Common Traps & Misconceptions",
    "Example or Analogy",
    "Summary / Quick Takeaways",
)

_SECTION_HINTS = {
    "Overview": "(2-3 sentences: What is this topic about? Why is it important?)",
    "Core Principles": "(3-5 bullet points: Key concepts, rules, or formulas students must know)",
    "Common Traps & Misconceptions": (
        "(3-5 bullet points: what the trap is, why it's tempting, how to avoid it)"
    ),
    "Example or Analogy": "(1 brief original example or real-world analogy - NOT from the exam questions)",
    "Summary / Quick Takeaways": "(3-5 bullet points: Key points to remember for quick review)",
}

_QUESTION_TEXT_LIMIT = 600
_OPTION_TEXT_LIMIT = 200

_TOPIC_JSON_FORMAT = """{
  "topics": [
    {
      "name": "Topic Name Here",
      "question_ids": ["q1-uuid", "q2-uuid", "q15-uuid"],
      "concepts": ["concept 1", "concept 2", "concept 3"]
    }
  ]
}"""


def _truncate_text(value: str, limit: int) -> str:
    text = " ".join(str(value or "").split())
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)].rstrip() + "..."


def format_question_block(question: Question, *, include_answer: bool = True) -> str:
    options_text = "\n".join(
        f"  {label}. {_truncate_text(value, _OPTION_TEXT_LIMIT)}"
        for label, value in question.options.items()
    )
    rows = [
        f"Question ID: {question.id}",
        f"Question: {_truncate_text(question.text, _QUESTION_TEXT_LIMIT)}",
        "Options:",
        options_text,
    ]
    if include_answer:
        rows.append(f"Correct Answer: {question.correct_answer or 'Not specified'}")
    rows.append("---")
    return "\n".join(rows)


def _question_list(questions: Sequence[Question]) -> str:
    return "\n\n".join(format_question_block(question) for question in questions)


def build_topic_detection_prompt(
    questions: Sequence[Question],
    *,
    min_topics: int = 5,
    max_topics: int = 12,
) -> str:
    return f"""You are a senior exam content analyst with expertise in curriculum design and topic taxonomy.

Your task is to analyze the following exam questions and identify {min_topics}-{max_topics} coherent, well-defined topics that group related questions together. Focus on underlying concepts and skills being tested, NOT superficial keywords.

EXAM QUESTIONS:
{_question_list(questions)}

REQUIREMENTS:
1. Detect between {min_topics} and {max_topics} topics
2. Each topic should group questions testing similar concepts, skills, or knowledge areas
3. Assign each question ID to EXACTLY ONE topic (no duplicates, no omissions)
4. For each topic, provide:
   - A clear, concise topic name (2-5 words)
   - Array of question_ids that belong to this topic
   - List of 2-5 key concepts tested in this topic
5. Topics should be at an appropriate granularity:
   - Not too broad (e.g., avoid "General Knowledge")
   - Not too narrow (e.g., avoid single-question topics unless necessary)
6. CRITICAL: Do NOT copy or paraphrase any exam question text in your output

IMPORTANT: Respond with ONLY valid JSON, no markdown code blocks, no explanations. Use this exact format:

{_TOPIC_JSON_FORMAT}"""


def build_seed_batch_prompt(
    questions: Sequence[Question],
    *,
    batch_number: int,
    total_batches: int,
    total_questions: int,
) -> str:
    return f"""You are a senior exam content analyst with expertise in curriculum design and topic taxonomy.

This exam has {total_questions} questions. They are analyzed in {total_batches} batches; this is batch {batch_number} of {total_batches}.
The topics you create now become the shared vocabulary for every later batch, so name them for the whole exam, not only for this batch.

EXAM QUESTIONS (batch {batch_number}):
{_question_list(questions)}

REQUIREMENTS:
1. Create topics that group questions testing similar concepts, skills, or knowledge areas
2. Prefer broad, reusable topic names (2-5 words) that later questions are likely to fit
3. Assign each question ID in THIS batch to EXACTLY ONE topic (no duplicates, no omissions)
4. List 2-5 key concepts per topic
5. CRITICAL: Do NOT copy or paraphrase any exam question text in your output

IMPORTANT: Respond with ONLY valid JSON, no markdown code blocks, no explanations. Use this exact format:

{_TOPIC_JSON_FORMAT}"""


def build_continuation_batch_prompt(
    questions: Sequence[Question],
    existing_topics: Sequence[DetectedTopic],
    *,
    batch_number: int,
    total_batches: int,
) -> str:
    topic_lines = "\n".join(
        f"- {topic.name}" + (f" (concepts: {', '.join(topic.concepts)})" if topic.concepts else "")
        for topic in existing_topics
    )
    return f"""You are a senior exam content analyst continuing a topic analysis that spans {total_batches} batches. This is batch {batch_number} of {total_batches}.

EXISTING TOPICS:
{topic_lines or "- (none yet)"}

EXAM QUESTIONS (batch {batch_number}):
{_question_list(questions)}

REQUIREMENTS:
1. Assign each question ID in THIS batch to EXACTLY ONE topic (no duplicates, no omissions)
2. REUSE an existing topic whenever a question fits it, and copy its name EXACTLY as listed above
3. Only create a new topic when no existing topic fits
4. List 2-5 key concepts per topic you return
5. Only return topics that receive at least one question from this batch
6. CRITICAL: Do NOT copy or paraphrase any exam question text in your output

IMPORTANT: Respond with ONLY valid JSON, no markdown code blocks, no explanations. Use this exact format:

{_TOPIC_JSON_FORMAT}"""


def build_lesson_generation_prompt(
    topic: DetectedTopic,
    questions: Sequence[Question],
    *,
    max_words: int = 500,
) -> str:
    concepts = "\n".join(f"- {concept}" for concept in topic.concepts) or "- (infer from the context)"
    context_blocks = "\n\n".join(format_question_block(question) for question in questions)
    sections = "\n\n".join(f"## {heading}\n{_SECTION_HINTS[heading]}" for heading in REQUIRED_LESSON_SUBHEADINGS)

    return f"""You are a master instructor who writes compact, practical study notes that teach underlying concepts and help students avoid common mistakes.

TOPIC: {topic.name}

KEY CONCEPTS TO COVER:
{concepts}

BACKGROUND CONTEXT (DO NOT QUOTE):
The questions below show what students are tested on. Use them ONLY to understand which concepts matter.
Never copy, quote, paraphrase, or hint at these questions, their options, or their answers.
{context_blocks}

YOUR TASK:
Generate a concise, educational lesson in Markdown format (at most {max_words} words) that teaches the concepts tested in this topic.

CRITICAL REQUIREMENTS:
1. DO NOT include any specific exam content, questions, or scenarios
2. Teach ONLY the UNDERLYING CONCEPTS and general principles
3. Use your knowledge of the topic to identify common misconceptions
4. Create your own original examples and analogies
5. Keep it actionable and concise - no fluff

REQUIRED MARKDOWN STRUCTURE:
# {topic.name}

{sections}

Return ONLY the Markdown content, no explanations, no metadata."""
