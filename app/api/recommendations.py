"""
Review recommendation and learning progress API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List
import logging

from app.database import get_db
from app.schemas.mastery import LearningProgress, RecommendationStatusUpdate, ReviewRecommendation
from app.services.assessment_service import AssessmentService, get_assessment_service

router = APIRouter(prefix="/api", tags=["recommendations"])
logger = logging.getLogger(__name__)


@router.get("/users/{user_id}/recommendations", response_model=List[ReviewRecommendation])
async def get_recommendations(
    user_id: str,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Pending review recommendations for a user

    Ordered by priority (1 first), then creation time.
    """
    return service.get_recommendations(db, user_id)


@router.patch("/recommendations/{recommendation_id}", status_code=204)
async def update_recommendation(
    recommendation_id: UUID,
    update: RecommendationStatusUpdate,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Complete or skip a pending recommendation

    - Effectiveness (0-1) may be recorded when completing
    - Completed and skipped are terminal (409 on further changes)
    """
    service.update_recommendation_status(db, recommendation_id, update.status, update.effectiveness)


@router.get("/users/{user_id}/progress", response_model=LearningProgress)
async def get_learning_progress(
    user_id: str,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Learning summary for a user

    Returns:
    - Attempt count, pass count and average score
    - Mastery per topic
    - Mastered (>= 85), struggling (< 70) and recommended topics
    """
    logger.info(f"Fetching learning progress for user {user_id}")
    return service.get_learning_progress(db, user_id)
