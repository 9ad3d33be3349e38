"""
Analytics service for learner progress
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from app.config import settings
from app.models import AttemptResult, MasteryRecord, ReviewRecommendation
from app.schemas.mastery import LearningProgress, MasteryRecord as MasteryRecordSchema

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Service for summarising a learner's progress"""

    def get_learning_progress(self, db: Session, user_id: str) -> LearningProgress:
        """
        Get the learning summary for a user

        Args:
            db: Database session
            user_id: Opaque learner id

        Returns:
            LearningProgress with attempt statistics and topic lists
        """
        results = db.query(AttemptResult).filter(AttemptResult.user_id == user_id).all()
        records = (
            db.query(MasteryRecord)
            .filter(MasteryRecord.user_id == user_id)
            .order_by(MasteryRecord.mastery.desc(), MasteryRecord.topic)
            .all()
        )

        total_attempts = len(results)
        passed_attempts = sum(1 for r in results if r.passed)
        if results:
            average_score = sum(r.aggregate_score for r in results) / total_attempts
        else:
            average_score = 0.0

        return LearningProgress(
            user_id=user_id,
            total_attempts=total_attempts,
            passed_attempts=passed_attempts,
            average_score=round(average_score, 2),
            mastery_records=[MasteryRecordSchema.model_validate(r) for r in records],
            mastered_topics=self._topics(r for r in records if r.mastery >= settings.MASTERY_THRESHOLD),
            struggling_topics=self._topics(
                r for r in records if r.mastery < settings.OPEN_ANSWER_CORRECT_SCORE
            ),
            recommended_topics=self._recommended_topics(db, user_id),
        )

    def _topics(self, records) -> List[str]:
        topics = []
        for record in records:
            if record.topic not in topics:
                topics.append(record.topic)
        return topics

    def _recommended_topics(self, db: Session, user_id: str) -> List[str]:
        """Topics with at least one pending recommendation"""
        rows = (
            db.query(MasteryRecord.topic)
            .join(ReviewRecommendation, ReviewRecommendation.mastery_record_id == MasteryRecord.id)
            .filter(
                ReviewRecommendation.user_id == user_id,
                ReviewRecommendation.status == "pending",
            )
            .order_by(MasteryRecord.topic)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]


# Global instance
analytics_service = AnalyticsService()
