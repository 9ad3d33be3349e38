"""
Quiz generation, submission and attempt result API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from app.database import get_db
from app.schemas.quiz import AttemptResult, Quiz, QuizGenerateRequest, QuizSubmission, StudySuggestions
from app.services.assessment_service import AssessmentService, get_assessment_service
from app.utils.rate_limiter import rate_limiter

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
attempts_router = APIRouter(prefix="/api/attempts", tags=["attempts"])
logger = logging.getLogger(__name__)


@router.post("/generate", response_model=Quiz, status_code=201, dependencies=[Depends(rate_limiter)])
async def generate_quiz(
    request: QuizGenerateRequest,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Generate a quiz from a document, video transcript or course

    - Source text is extracted and capped before prompting
    - Unusable model output yields the placeholder quiz
      (metadata.generation_status = "fallback")
    - The quiz is stored and returned
    """
    logger.info(f"Generating quiz from {request.source.source_type} {request.source.source_id}")
    return await service.generate_quiz(db, request.source, request.options)


@router.get("/{quiz_id}", response_model=Quiz)
async def get_quiz(
    quiz_id: UUID,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """Get a stored quiz"""
    return service.get_quiz(db, quiz_id)


@router.post("/{quiz_id}/submit", response_model=AttemptResult, dependencies=[Depends(rate_limiter)])
async def submit_quiz(
    quiz_id: UUID,
    submission: QuizSubmission,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Submit and grade a quiz

    Grading strategy:
    - Multiple choice / true-false: exact match (100 or 0)
    - Open: weighted multi-factor evaluation, correct at >= 70

    Mastery for the quiz topic is updated afterwards; a mastery below 85
    creates review recommendations.
    """
    logger.info(f"Grading quiz {quiz_id} for user {submission.user_id}")
    return await service.submit_attempt(db, quiz_id, submission.user_id, submission.answers)


@attempts_router.get("/{attempt_id}/result", response_model=AttemptResult)
async def get_attempt_result(
    attempt_id: UUID,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """Get the stored grading result of an attempt"""
    return service.get_attempt_result(db, attempt_id)


@attempts_router.get(
    "/{attempt_id}/study-suggestions",
    response_model=StudySuggestions,
    dependencies=[Depends(rate_limiter)],
)
async def get_study_suggestions(
    attempt_id: UUID,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """Study plan for the questions answered incorrectly"""
    return await service.suggest_study_plan(db, attempt_id)
