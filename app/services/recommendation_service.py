"""
Review recommendations and study suggestions

Recommendations are produced for a weak mastery record; a ``quiz``
recommendation additionally gets a short remedial quiz generated from the
most recent material on the topic.
"""
import copy
import logging
import math
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.database import commit_or_raise, utcnow
from app.exceptions import (
    AssessmentError,
    InvalidStatusTransition,
    ResourceNotFound,
    UpstreamCapabilityError,
)
from app.models import ContentSource, MasteryRecord, Quiz as QuizRow, ReviewRecommendation
from app.schemas.mastery import ReviewRecommendation as ReviewRecommendationSchema
from app.schemas.quiz import AttemptResult, GenerationOptions, Quiz, SourceRef, StudySuggestions
from app.services import fallbacks
from app.services.completion_client import CompletionClient, complete_with_retry
from app.services.content_extractor import ContentExtractor
from app.services.output_parser import as_string_list, parse_structured, unique_preserving_order
from app.services.quiz_generator import QuizGenerationEngine, save_quiz

logger = logging.getLogger(__name__)

RECOMMENDATION_TYPES = ("quiz", "review", "practice")
RESOURCE_KINDS = ("documents", "videos", "quizzes")
MIN_PRIORITY = 1
MAX_PRIORITY = 5

# pending is the only non-terminal state
ALLOWED_TRANSITIONS = {
    "pending": {"completed", "skipped"},
    "completed": set(),
    "skipped": set(),
}


def _normalize_resources(value) -> dict:
    resources = value if isinstance(value, dict) else {}
    return {kind: as_string_list(resources.get(kind)) for kind in RESOURCE_KINDS}


def normalize_recommendations(data: dict) -> Tuple[List[dict], List[str]]:
    """
    Map the recommendation payload onto type / priority / content / resources

    Raises:
        ValueError: when no usable recommendation is present
    """
    notes: List[str] = []
    items = data.get("recommendations")
    if not isinstance(items, list):
        raise ValueError("recommendations is not a list")

    normalized = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            notes.append(f"recommendation {index} is not an object")
            continue
        content = str(item.get("content") or "").strip()
        if not content:
            notes.append(f"recommendation {index} has no content")
            continue

        rec_type = str(item.get("type") or "").strip().lower()
        if rec_type not in RECOMMENDATION_TYPES:
            notes.append(f"recommendation {index} has unknown type {rec_type!r}, using review")
            rec_type = "review"

        try:
            priority = float(item.get("priority"))
        except (TypeError, ValueError):
            priority = math.nan
        if math.isfinite(priority):
            priority = int(priority)
        else:
            notes.append(f"recommendation {index} has no usable priority")
            priority = index + 1
        priority = max(MIN_PRIORITY, min(MAX_PRIORITY, priority))

        normalized.append({
            "type": rec_type,
            "priority": priority,
            "content": content,
            "resources": _normalize_resources(item.get("resources")),
        })

    if not normalized:
        raise ValueError("no usable recommendations")
    return normalized, notes


def normalize_study_suggestions(data: dict) -> Tuple[dict, List[str]]:
    """Map the study plan payload onto StudySuggestions fields"""
    notes: List[str] = []
    weak_areas = unique_preserving_order(as_string_list(data.get("weak_areas", data.get("weakAreas"))))
    recommendations = unique_preserving_order(as_string_list(data.get("recommendations")))
    next_steps = data.get("next_steps", data.get("nextSteps"))
    if isinstance(next_steps, list):
        next_steps = " ".join(as_string_list(next_steps))
        notes.append("next steps given as list")

    if not weak_areas and not recommendations:
        raise ValueError("study plan has neither weak areas nor recommendations")
    if not isinstance(next_steps, str) or not next_steps.strip():
        notes.append("missing next steps")
        next_steps = fallbacks.FALLBACK_STUDY_SUGGESTIONS["next_steps"]

    return {
        "weak_areas": weak_areas,
        "recommendations": recommendations,
        "next_steps": next_steps.strip(),
    }, notes


def recommendation_to_schema(row: ReviewRecommendation) -> ReviewRecommendationSchema:
    return ReviewRecommendationSchema(
        id=row.id,
        user_id=row.user_id,
        mastery_record_id=row.mastery_record_id,
        type=row.recommendation_type,
        priority=row.priority,
        content=row.content,
        resources=row.resources or {},
        status=row.status,
        effectiveness=row.effectiveness,
        created_at=row.created_at,
        completed_at=row.completed_at,
    )


def find_topic_material(db: Session, topic: str) -> Optional[ContentSource]:
    """
    Most recent content source for a topic

    Sources tagged with the topic (or titled like it) come first; otherwise
    the source behind the latest quiz with that title is used.
    """
    source = (
        db.query(ContentSource)
        .filter((ContentSource.topic == topic) | (ContentSource.title == topic))
        .order_by(ContentSource.created_at.desc())
        .first()
    )
    if source is not None:
        return source

    quizzes = (
        db.query(QuizRow)
        .filter(QuizRow.title == topic)
        .order_by(QuizRow.created_at.desc())
        .all()
    )
    for quiz in quizzes:
        source_id = (quiz.quiz_metadata or {}).get("source_id")
        if not source_id:
            continue
        try:
            source = db.query(ContentSource).filter(ContentSource.id == UUID(str(source_id))).first()
        except ValueError:
            continue
        if source is not None:
            return source
    return None


def list_pending_recommendations(db: Session, user_id: str) -> List[ReviewRecommendation]:
    """Pending recommendations ordered by priority, creation time, then id"""
    return (
        db.query(ReviewRecommendation)
        .filter(
            ReviewRecommendation.user_id == user_id,
            ReviewRecommendation.status == "pending",
        )
        .order_by(
            ReviewRecommendation.priority,
            ReviewRecommendation.created_at,
            ReviewRecommendation.id,
        )
        .all()
    )


def update_recommendation_status(
    db: Session,
    recommendation_id: UUID,
    status: str,
    effectiveness: Optional[float] = None,
) -> ReviewRecommendation:
    """
    Close a pending recommendation

    Raises:
        ResourceNotFound: unknown recommendation id
        InvalidStatusTransition: illegal transition, or effectiveness given
            for anything but completion
    """
    row = db.query(ReviewRecommendation).filter(ReviewRecommendation.id == recommendation_id).first()
    if row is None:
        raise ResourceNotFound(f"Recommendation {recommendation_id} not found")

    if status not in ALLOWED_TRANSITIONS.get(row.status, set()):
        raise InvalidStatusTransition(f"Cannot move recommendation from {row.status} to {status}")
    if effectiveness is not None:
        if status != "completed":
            raise InvalidStatusTransition("Effectiveness can only be recorded when completing")
        if not 0.0 <= effectiveness <= 1.0:
            raise InvalidStatusTransition("Effectiveness must be between 0 and 1")

    row.status = status
    row.effectiveness = effectiveness
    row.completed_at = utcnow() if status == "completed" else None
    commit_or_raise(db, "update recommendation status")
    logger.info(f"Recommendation {row.id} marked {status}")
    return row


class ReviewRecommendationGenerator:
    """Produces and persists remedial recommendations for weak topics"""

    def __init__(
        self,
        client: CompletionClient,
        quiz_generator: QuizGenerationEngine,
        extractor_factory: Callable[[Session], ContentExtractor],
    ):
        self.client = client
        self.quiz_generator = quiz_generator
        self.extractor_factory = extractor_factory

    def build_prompt(self, record: MasteryRecord) -> str:
        topic = record.topic + (f" / {record.subtopic}" if record.subtopic else "")
        return f"""
A learner is struggling with the topic "{topic}".
They answered {record.correct_count} of {record.total_count} quizzes correctly (mastery {record.mastery}%).

Suggest 1 to 3 remedial actions. Each action has:
- type: "quiz" (a short practice quiz), "review" (re-read material) or "practice" (exercises)
- priority: 1 (most urgent) to 5
- content: one or two sentences telling the learner what to do
- resources: ids of documents, videos and quizzes to use (may be empty)

Return ONLY valid JSON (no markdown):
{{
  "recommendations": [
    {{
      "type": "quiz",
      "priority": 1,
      "content": "What to do",
      "resources": {{"documents": [], "videos": [], "quizzes": []}}
    }}
  ]
}}
"""

    async def generate(self, db: Session, record: MasteryRecord) -> List[ReviewRecommendation]:
        """
        Create pending recommendations for a weak mastery record

        Args:
            db: Database session
            record: Mastery record below the threshold

        Returns:
            Persisted recommendation rows
        """
        try:
            raw = await complete_with_retry(self.client, self.build_prompt(record))
        except UpstreamCapabilityError as e:
            logger.warning(f"Recommendation call failed for {record.topic}, using fallback: {str(e)}")
            raw = ""

        outcome = parse_structured(
            raw,
            normalize=normalize_recommendations,
            fallback=lambda: [copy.deepcopy(fallbacks.FALLBACK_RECOMMENDATION)],
            label="recommendation",
        )

        rows = [
            ReviewRecommendation(
                user_id=record.user_id,
                mastery_record_id=record.id,
                recommendation_type=item["type"],
                priority=item["priority"],
                content=item["content"],
                resources=item["resources"],
                status="pending",
            )
            for item in outcome.value
        ]
        db.add_all(rows)
        commit_or_raise(db, "save recommendations")
        logger.info(f"Created {len(rows)} recommendations for {record.user_id}/{record.topic}")

        quiz_rows = [row for row in rows if row.recommendation_type == "quiz"]
        if quiz_rows:
            quiz = await self.generate_remedial_quiz(db, record)
            if quiz is not None:
                for row in quiz_rows:
                    resources = _normalize_resources(row.resources)
                    resources["quizzes"] = resources["quizzes"] + [str(quiz.id)]
                    row.resources = resources
                commit_or_raise(db, "link remedial quiz")
        return rows

    async def generate_remedial_quiz(self, db: Session, record: MasteryRecord) -> Optional[Quiz]:
        """Short quiz on the weak topic; None when no material is available"""
        source = find_topic_material(db, record.topic)
        if source is None:
            logger.warning(f"No material found for topic {record.topic}, skipping remedial quiz")
            return None

        options = GenerationOptions(
            title=record.topic,
            question_count=settings.REMEDIAL_QUIZ_QUESTIONS,
            difficulty="intermediate",
            question_types=["multiple_choice", "true_false"],
            topic=record.subtopic or None,
        )
        ref = SourceRef(source_type=source.source_type, source_id=source.id)
        try:
            content = self.extractor_factory(db).extract(ref)
            quiz = await self.quiz_generator.generate(
                content.text,
                options,
                source_type=source.source_type,
                source_id=str(source.id),
            )
            save_quiz(db, quiz)
        except AssessmentError as e:
            logger.warning(f"Remedial quiz for {record.topic} skipped: {e.message}")
            return None

        logger.info(f"Remedial quiz {quiz.id} generated for {record.user_id}/{record.topic}")
        return quiz


class StudySuggestionGenerator:
    """Study plan for the questions a learner got wrong"""

    def __init__(self, client: CompletionClient):
        self.client = client

    def build_prompt(self, quiz: Quiz, result: AttemptResult) -> str:
        questions = {q.id: q for q in quiz.questions}
        lines = []
        for item in result.question_results:
            if item.is_correct:
                continue
            question = questions.get(item.question_id)
            if question is None:
                continue
            lines.append(
                f"- Question: {question.text}\n"
                f"  Student answer: {item.submitted_answer}\n"
                f"  Correct answer: {question.correct_answer}\n"
                f"  Explanation: {question.explanation}"
            )
        wrong = "\n".join(lines)
        return f"""
A student took the quiz "{quiz.title}" and scored {result.aggregate_score}/100.
These are the questions they answered incorrectly:

{wrong}

Identify the weak areas, recommend what to study and describe the next steps.

Return ONLY valid JSON (no markdown):
{{
  "weak_areas": ["area"],
  "recommendations": ["what to study"],
  "next_steps": "Concrete next steps"
}}
"""

    async def suggest(self, quiz: Quiz, result: AttemptResult) -> StudySuggestions:
        if all(item.is_correct for item in result.question_results):
            return StudySuggestions(
                weak_areas=[],
                recommendations=[],
                next_steps="All questions were answered correctly; move on to the next topic.",
            )

        try:
            raw = await complete_with_retry(self.client, self.build_prompt(quiz, result))
        except UpstreamCapabilityError as e:
            logger.warning(f"Study suggestion call failed, using fallback: {str(e)}")
            raw = ""

        outcome = parse_structured(
            raw,
            normalize=normalize_study_suggestions,
            fallback=lambda: copy.deepcopy(fallbacks.FALLBACK_STUDY_SUGGESTIONS),
            label="study suggestions",
        )
        return StudySuggestions(**outcome.value)
