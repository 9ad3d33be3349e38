"""
Assessment pipeline facade

Wires content extraction, quiz generation, grading, mastery tracking and
recommendations behind the operations the HTTP layer exposes.
"""
import logging
import uuid
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.database import commit_or_raise, utcnow
from app.exceptions import EmptyContent, ResourceNotFound
from app.models import (
    AttemptResult as AttemptResultRow,
    ContentSource,
    MasteryRecord,
    QuestionEvaluation,
    Quiz as QuizRow,
    QuizAttempt,
)
from app.schemas.mastery import LearningProgress, ReviewRecommendation
from app.schemas.quiz import (
    AttemptResult,
    GenerationOptions,
    QuestionResult,
    Quiz,
    SourceRef,
    StudySuggestions,
    SubmittedAnswer,
)
from app.services.analytics_service import analytics_service
from app.services.completion_client import CompletionClient, GeminiCompletionClient
from app.services.content_extractor import (
    ContentExtractor,
    ContentStore,
    DatabaseContentStore,
    normalize_whitespace,
)
from app.services.evaluation_service import AnswerEvaluationEngine
from app.services.grading_service import GradedAttempt, SubmissionGrader
from app.services.mastery_service import MasteryTracker
from app.services import recommendation_service
from app.services.recommendation_service import ReviewRecommendationGenerator, StudySuggestionGenerator
from app.services.quiz_generator import QuizGenerationEngine, quiz_from_row, save_quiz
from app.utils.cache import CacheService

logger = logging.getLogger(__name__)


def attempt_result_from_row(row: AttemptResultRow) -> AttemptResult:
    """Rebuild the canonical AttemptResult from its stored row"""
    return AttemptResult(
        attempt_id=row.attempt_id,
        quiz_id=row.quiz_id,
        user_id=row.user_id,
        question_results=[QuestionResult(**item) for item in row.question_results],
        aggregate_score=row.aggregate_score,
        passing_score=row.passing_score,
        passed=row.passed,
        created_at=row.created_at,
    )


class AssessmentService:
    """
    Entry point for every pipeline operation

    Args:
        completion_client: Text-completion capability shared by all engines
        content_store_factory: Builds a ContentStore for a database session
        cache: Cache for extracted source text (module default when None)
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        content_store_factory: Callable[[Session], ContentStore] = DatabaseContentStore,
        cache: Optional[CacheService] = None,
    ):
        self.client = completion_client
        self.content_store_factory = content_store_factory
        self.cache = cache

        self.generator = QuizGenerationEngine(completion_client)
        self.evaluator = AnswerEvaluationEngine(completion_client)
        self.grader = SubmissionGrader(self.evaluator)
        self.recommender = ReviewRecommendationGenerator(
            completion_client,
            quiz_generator=self.generator,
            extractor_factory=self.extractor_for,
        )
        self.mastery = MasteryTracker(recommender=self.recommender)
        self.study_planner = StudySuggestionGenerator(completion_client)

    def extractor_for(self, db: Session) -> ContentExtractor:
        return ContentExtractor(self.content_store_factory(db), cache=self.cache)

    # Sources

    def register_source(
        self,
        db: Session,
        source_type: str,
        title: str,
        text: str,
        topic: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ContentSource:
        """
        Store a document, transcript or course body

        Raises:
            EmptyContent: when the text is only whitespace
        """
        body = normalize_whitespace(text or "")
        if not body:
            raise EmptyContent(f"{source_type} '{title}' has no text")

        source = ContentSource(
            source_type=source_type,
            title=title,
            topic=topic,
            body=body,
            mime_type=mime_type or "text/plain",
        )
        db.add(source)
        commit_or_raise(db, "register content source")
        db.refresh(source)
        logger.info(f"Registered {source_type} source {source.id} ({len(body)} chars)")
        return source

    def get_source(self, db: Session, source_id: UUID) -> ContentSource:
        source = db.query(ContentSource).filter(ContentSource.id == source_id).first()
        if source is None:
            raise ResourceNotFound(f"Source {source_id} not found")
        return source

    # Quizzes

    async def generate_quiz(
        self,
        db: Session,
        source_ref: SourceRef,
        options: Optional[GenerationOptions] = None,
    ) -> Quiz:
        """
        Extract, generate and persist a quiz

        Raises:
            ContentUnavailable, EmptyContent: the source cannot be used
            UpstreamCapabilityError: the completion capability is unusable
            PersistenceFailure: the quiz could not be stored
        """
        content = self.extractor_for(db).extract(source_ref)
        options = options or GenerationOptions()
        if not options.topic and content.topic:
            options = options.model_copy(update={"topic": content.topic})

        quiz = await self.generator.generate(
            content.text,
            options,
            source_type=source_ref.source_type,
            source_id=str(source_ref.source_id),
        )
        save_quiz(db, quiz)
        logger.info(f"Quiz {quiz.id} stored for {source_ref.source_type} {source_ref.source_id}")
        return quiz

    def get_quiz(self, db: Session, quiz_id: UUID) -> Quiz:
        row = db.query(QuizRow).filter(QuizRow.id == quiz_id).first()
        if row is None:
            raise ResourceNotFound(f"Quiz {quiz_id} not found")
        return quiz_from_row(row)

    # Attempts

    async def submit_attempt(
        self,
        db: Session,
        quiz_id: UUID,
        user_id: str,
        answers: List[SubmittedAnswer],
    ) -> AttemptResult:
        """
        Grade a submission, persist it and update mastery

        The attempt, its result and the open-answer audit rows are committed
        together; the mastery update is a separate step that can be replayed
        from the stored results with rebuild_mastery.
        """
        quiz = self.get_quiz(db, quiz_id)
        graded = await self.grader.grade(quiz, answers)
        result = self._persist_attempt(db, quiz, user_id, answers, graded)

        await self.mastery.record_result(
            db,
            user_id=user_id,
            topic=quiz.title,
            subtopic=quiz.metadata.topic,
            score=result.aggregate_score,
        )
        return result

    def _persist_attempt(
        self,
        db: Session,
        quiz: Quiz,
        user_id: str,
        answers: List[SubmittedAnswer],
        graded: GradedAttempt,
    ) -> AttemptResult:
        now = utcnow()
        attempt_id = uuid.uuid4()

        db.add(QuizAttempt(
            id=attempt_id,
            user_id=user_id,
            quiz_id=quiz.id,
            answers=[a.model_dump(mode="json") for a in answers],
            created_at=now,
        ))

        result = AttemptResult(
            attempt_id=attempt_id,
            quiz_id=quiz.id,
            user_id=user_id,
            question_results=graded.question_results,
            aggregate_score=graded.aggregate_score,
            passing_score=quiz.passing_score,
            passed=graded.passed,
            created_at=now,
        )
        db.add(AttemptResultRow(
            attempt_id=attempt_id,
            quiz_id=quiz.id,
            user_id=user_id,
            question_results=[r.model_dump(mode="json") for r in result.question_results],
            aggregate_score=result.aggregate_score,
            passing_score=result.passing_score,
            passed=result.passed,
            created_at=now,
        ))

        for item in result.question_results:
            if item.evaluation is None:
                continue
            analysis = graded.analyses.get(item.question_id)
            db.add(QuestionEvaluation(
                attempt_id=attempt_id,
                question_id=item.question_id,
                user_id=user_id,
                score=item.evaluation.score,
                confidence=item.evaluation.confidence,
                completeness=analysis.completeness if analysis else None,
                accuracy=analysis.accuracy if analysis else None,
                relevance=analysis.relevance if analysis else None,
                understanding=analysis.understanding if analysis else None,
                missing_concepts=analysis.missing_concepts if analysis else [],
                incorrect_concepts=analysis.incorrect_concepts if analysis else [],
                well_explained_concepts=analysis.well_explained_concepts if analysis else [],
                feedback=item.evaluation.feedback,
                evaluated_at=now,
            ))

        commit_or_raise(db, "save quiz attempt")
        logger.info(f"Attempt {attempt_id} by {user_id} saved: {result.aggregate_score}/100")
        return result

    def get_attempt_result(self, db: Session, attempt_id: UUID) -> AttemptResult:
        row = db.query(AttemptResultRow).filter(AttemptResultRow.attempt_id == attempt_id).first()
        if row is None:
            raise ResourceNotFound(f"Attempt {attempt_id} not found")
        return attempt_result_from_row(row)

    async def suggest_study_plan(self, db: Session, attempt_id: UUID) -> StudySuggestions:
        result = self.get_attempt_result(db, attempt_id)
        quiz = self.get_quiz(db, result.quiz_id)
        return await self.study_planner.suggest(quiz, result)

    # Mastery and recommendations

    def get_recommendations(self, db: Session, user_id: str) -> List[ReviewRecommendation]:
        """Pending recommendations; repeated calls return the same list"""
        rows = recommendation_service.list_pending_recommendations(db, user_id)
        return [recommendation_service.recommendation_to_schema(row) for row in rows]

    def update_recommendation_status(
        self,
        db: Session,
        recommendation_id: UUID,
        status: str,
        effectiveness: Optional[float] = None,
    ) -> None:
        recommendation_service.update_recommendation_status(db, recommendation_id, status, effectiveness)

    def get_learning_progress(self, db: Session, user_id: str) -> LearningProgress:
        return analytics_service.get_learning_progress(db, user_id)

    def rebuild_mastery(self, db: Session, user_id: str) -> List[MasteryRecord]:
        return self.mastery.rebuild(db, user_id)


_assessment_service: Optional[AssessmentService] = None


def get_assessment_service() -> AssessmentService:
    """FastAPI dependency returning the Gemini-backed service"""
    global _assessment_service
    if _assessment_service is None:
        _assessment_service = AssessmentService(GeminiCompletionClient())
    return _assessment_service
