"""
Quiz generation engine

Builds a generation prompt from extracted text, calls the completion
capability once, and turns whatever comes back into a canonical Quiz.
Malformed output never raises: it yields the canonical fallback quiz.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.database import commit_or_raise, utcnow
from app.exceptions import CompletionTimeout
from app.models import Quiz as QuizRow
from app.schemas.quiz import GenerationOptions, Question, Quiz, QuizMetadata
from app.services import fallbacks
from app.services.completion_client import CompletionClient, complete_with_retry
from app.services.output_parser import as_string_list, parse_structured

logger = logging.getLogger(__name__)

QUESTION_TYPES = ("multiple_choice", "true_false", "open")
QUESTION_DIFFICULTIES = ("easy", "medium", "hard")

TYPE_ALIASES = {
    "multiple_choice": "multiple_choice",
    "multiplechoice": "multiple_choice",
    "mcq": "multiple_choice",
    "true_false": "true_false",
    "truefalse": "true_false",
    "boolean": "true_false",
    "open": "open",
    "open_ended": "open",
    "short": "open",
    "short_answer": "open",
}

TRUE_WORDS = {"true", "yes", "1"}
FALSE_WORDS = {"false", "no", "0"}


@dataclass
class SourceDefaults:
    title: str
    question_count: int
    question_types: List[str]
    time_limit: int


DEFAULT_QUESTION_COUNT = 5
# quizzes.title and mastery_records.topic are String(255)
MAX_TITLE_LENGTH = 255

SOURCE_DEFAULTS: Dict[Optional[str], SourceDefaults] = {
    None: SourceDefaults("Generated quiz", DEFAULT_QUESTION_COUNT, ["multiple_choice", "true_false"], 900),
    "document": SourceDefaults("Document quiz", 20, ["multiple_choice", "true_false"], 900),
    "video": SourceDefaults("Video quiz", 20, ["multiple_choice", "true_false"], 900),
    "course": SourceDefaults("Course assessment", 20, list(QUESTION_TYPES), 1800),
}


@dataclass
class ResolvedOptions:
    """Generation options with source-specific defaults applied"""
    title: str
    title_is_explicit: bool
    question_count: int
    difficulty: str
    question_types: List[str]
    topic: Optional[str]
    focus_areas: List[str] = field(default_factory=list)
    time_limit: Optional[int] = None


def resolve_options(options: GenerationOptions, source_type: Optional[str] = None) -> ResolvedOptions:
    defaults = SOURCE_DEFAULTS.get(source_type, SOURCE_DEFAULTS[None])
    count = options.question_count or defaults.question_count
    return ResolvedOptions(
        title=options.title or defaults.title,
        title_is_explicit=bool(options.title),
        question_count=min(count, settings.MAX_QUIZ_QUESTIONS),
        difficulty=options.difficulty,
        question_types=list(options.question_types or defaults.question_types),
        topic=options.topic,
        focus_areas=list(options.focus_areas),
        time_limit=options.time_limit or defaults.time_limit,
    )


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if value is not None else ""
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    return None


def _infer_type(raw_type: Any, correct: Any, options: Any) -> str:
    key = str(raw_type or "").strip().lower().replace("-", "_").replace(" ", "_")
    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]
    if isinstance(correct, bool):
        return "true_false"
    if isinstance(options, list) and options:
        return "multiple_choice"
    return "open"


def normalize_question(item: Any, question_id: str) -> Tuple[Optional[dict], List[str]]:
    """
    Normalize one generated question

    Returns:
        (question dict or None when the item is unusable, notes)
    """
    notes: List[str] = []
    if not isinstance(item, dict):
        return None, [f"{question_id}: skipped non-object item"]

    text = item.get("text") or item.get("question")
    if not isinstance(text, str) or not text.strip():
        return None, [f"{question_id}: skipped item without text"]

    correct = item.get("correct_answer", item.get("correctAnswer"))
    raw_options = item.get("options")
    q_type = _infer_type(item.get("type"), correct, raw_options)
    if item.get("type") != q_type:
        notes.append(f"{question_id}: type {item.get('type')!r} -> {q_type}")

    options = None
    if q_type == "multiple_choice":
        options = as_string_list(raw_options) if isinstance(raw_options, list) else []
        if not options:
            options = [str(correct)] if correct not in (None, "") else [fallbacks.DEFAULT_OPTION]
            notes.append(f"{question_id}: options replaced by single-element default")

        if isinstance(correct, int) and not isinstance(correct, bool) and 0 <= correct < len(options):
            correct = options[correct]
        elif isinstance(correct, str) and len(correct.strip()) == 1 and correct.strip().upper() in "ABCDEFGH" \
                and correct.strip() not in options:
            index = ord(correct.strip().upper()) - ord("A")
            correct = options[index] if index < len(options) else options[0]
        elif correct in (None, ""):
            correct = options[0]
            notes.append(f"{question_id}: missing correct answer, using first option")
        correct = str(correct)

    elif q_type == "true_false":
        coerced = _coerce_bool(correct)
        if coerced is None:
            notes.append(f"{question_id}: unreadable true/false answer {correct!r}, using false")
            coerced = False
        correct = coerced

    explanation = item.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        explanation = fallbacks.DEFAULT_EXPLANATION
        notes.append(f"{question_id}: default explanation")

    if q_type == "open":
        correct = str(correct).strip() if correct not in (None, "") else explanation

    difficulty = str(item.get("difficulty") or "").strip().lower()
    if difficulty not in QUESTION_DIFFICULTIES:
        difficulty = "medium"
        notes.append(f"{question_id}: default difficulty")

    return {
        "id": question_id,
        "text": text.strip(),
        "type": q_type,
        "options": options,
        "correct_answer": correct,
        "explanation": explanation.strip(),
        "difficulty": difficulty,
    }, notes


def normalize_quiz_payload(data: dict, quiz_id: UUID, resolved: ResolvedOptions) -> Tuple[dict, List[str]]:
    """
    Fill defaults on a parsed quiz payload

    Raises:
        ValueError: when there is no usable question list
    """
    notes: List[str] = []
    raw_questions = data.get("questions")
    if not isinstance(raw_questions, list):
        raise ValueError("'questions' is missing or not a list")

    questions = []
    for item in raw_questions[:settings.MAX_QUIZ_QUESTIONS]:
        question, question_notes = normalize_question(item, f"{quiz_id}_q{len(questions) + 1}")
        notes.extend(question_notes)
        if question is not None:
            questions.append(question)

    if not questions:
        raise ValueError("no usable questions in payload")

    if len(questions) != resolved.question_count:
        logger.warning(f"Expected {resolved.question_count} questions, got {len(questions)}")

    title = data.get("title")
    if resolved.title_is_explicit or not isinstance(title, str) or not title.strip():
        if not resolved.title_is_explicit:
            notes.append("default title")
        title = resolved.title
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        notes.append("title truncated")
        title = title[:MAX_TITLE_LENGTH].rstrip()

    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        description = fallbacks.DEFAULT_QUIZ_DESCRIPTION
        notes.append("default description")

    return {
        "title": title,
        "description": description.strip(),
        "questions": questions,
        "generation_status": "generated",
    }, notes


def fallback_quiz_payload(quiz_id: UUID) -> dict:
    """The canonical fallback quiz content"""
    question = dict(fallbacks.FALLBACK_QUESTION)
    question["options"] = list(fallbacks.FALLBACK_QUESTION["options"])
    question["id"] = f"{quiz_id}_q1"
    return {
        "title": fallbacks.FALLBACK_QUIZ_TITLE,
        "description": fallbacks.FALLBACK_QUIZ_DESCRIPTION,
        "questions": [question],
        "generation_status": "fallback",
    }


class QuizGenerationEngine:
    """
    Generates quizzes through the completion capability

    Only network, auth and rate-limit failures of the capability propagate;
    unparseable output and timeouts yield the fallback quiz.
    """

    def __init__(self, client: CompletionClient):
        self.client = client

    def build_prompt(self, content: str, resolved: ResolvedOptions) -> str:
        """Create structured prompt for quiz generation"""
        if resolved.difficulty == "mixed":
            difficulty_line = "of varying difficulty levels (easy, medium and hard)"
        else:
            difficulty_line = f"of {resolved.difficulty} difficulty"

        lines = [
            "You are an expert educator writing a quiz based on the following content:",
            "",
            content,
            "",
            "Requirements:",
            f"- Generate {resolved.question_count} questions {difficulty_line}.",
            f"- Use only these question types: {', '.join(resolved.question_types)}.",
        ]
        if resolved.topic:
            lines.append(f"- Focus on the topic: {resolved.topic}.")
        if resolved.focus_areas:
            lines.append(f"- Concentrate the questions on these areas: {', '.join(resolved.focus_areas)}.")
        lines.extend([
            "- For each question include the text, the type, the options (multiple_choice only), "
            "the correct answer and a DETAILED explanation.",
            "- Explanations must say why the correct answer is right and why the other options are wrong.",
            "- Multiple choice questions have exactly 4 options with one correct answer.",
            "- Test understanding and application, not just memorization.",
            "",
            "Return ONLY valid JSON in this exact format (no markdown, no preamble):",
            """{
  "title": "Quiz title",
  "description": "Short description of the quiz",
  "questions": [
    {
      "text": "Question text?",
      "type": "multiple_choice",
      "options": ["option 1", "option 2", "option 3", "option 4"],
      "correct_answer": "option 1",
      "explanation": "Why option 1 is correct and the others are not",
      "difficulty": "easy"
    },
    {
      "text": "Statement to judge",
      "type": "true_false",
      "correct_answer": true,
      "explanation": "Why the statement is true",
      "difficulty": "medium"
    },
    {
      "text": "Open question?",
      "type": "open",
      "correct_answer": "Model answer",
      "explanation": "What a complete answer must contain",
      "difficulty": "hard"
    }
  ]
}""",
        ])
        return "\n".join(lines)

    async def generate(
        self,
        content: str,
        options: Optional[GenerationOptions] = None,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Quiz:
        """
        Generate a quiz from extracted text

        Args:
            content: Bounded plain text
            options: Generation options (defaults depend on source_type)
            source_type: document / video / course, None for free text
            source_id: Source identifier recorded in the metadata

        Returns:
            A well-formed Quiz with at least one question
        """
        resolved = resolve_options(options or GenerationOptions(), source_type)
        prompt = self.build_prompt(content, resolved)

        try:
            raw = await complete_with_retry(self.client, prompt)
        except CompletionTimeout:
            logger.warning("Quiz generation timed out, returning fallback quiz")
            raw = ""

        quiz_id = uuid.uuid4()
        outcome = parse_structured(
            raw,
            normalize=lambda data: normalize_quiz_payload(data, quiz_id, resolved),
            fallback=lambda: fallback_quiz_payload(quiz_id),
            label="quiz",
        )
        payload = outcome.value
        now = utcnow()

        quiz = Quiz(
            id=quiz_id,
            title=payload["title"],
            description=payload["description"],
            questions=[Question(**q) for q in payload["questions"]],
            time_limit=resolved.time_limit,
            passing_score=settings.DEFAULT_PASSING_SCORE,
            created_at=now,
            updated_at=now,
            metadata=QuizMetadata(
                source_type=source_type,
                source_id=source_id,
                generation_model=getattr(self.client, "model_name", None),
                topic=resolved.topic,
                generation_status=payload["generation_status"],
            ),
        )
        logger.info(
            f"Quiz {quiz.id} generated ({outcome.kind}): {len(quiz.questions)} questions"
        )
        return quiz


def save_quiz(db: Session, quiz: Quiz) -> QuizRow:
    """Persist a generated quiz"""
    row = QuizRow(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        questions=[q.model_dump(mode="json") for q in quiz.questions],
        time_limit=quiz.time_limit,
        passing_score=quiz.passing_score,
        quiz_metadata=quiz.metadata.model_dump(mode="json"),
        created_at=quiz.created_at,
        updated_at=quiz.updated_at,
    )
    db.add(row)
    commit_or_raise(db, "save quiz")
    return row


def quiz_from_row(row: QuizRow) -> Quiz:
    """Rebuild the canonical Quiz from its stored row"""
    return Quiz(
        id=row.id,
        title=row.title,
        description=row.description,
        questions=[Question(**q) for q in row.questions],
        time_limit=row.time_limit,
        passing_score=row.passing_score,
        created_at=row.created_at,
        updated_at=row.updated_at,
        metadata=QuizMetadata(**(row.quiz_metadata or {})),
    )
