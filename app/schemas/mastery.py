"""
Pydantic schemas for mastery tracking, recommendations and progress
"""
from pydantic import BaseModel, Field, model_validator
from typing import List, Literal, Optional
from uuid import UUID
from datetime import datetime


RecommendationType = Literal["quiz", "review", "practice"]
RecommendationStatus = Literal["pending", "completed", "skipped"]


class MasteryRecord(BaseModel):
    """Mastery of one (user, topic, subtopic) key"""
    id: UUID
    user_id: str
    topic: str
    subtopic: Optional[str] = None
    correct_count: int
    total_count: int
    mastery: int = Field(..., ge=0, le=100)
    last_quiz_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecommendationResources(BaseModel):
    """Linked learning material ids"""
    documents: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    quizzes: List[str] = Field(default_factory=list)


class ReviewRecommendation(BaseModel):
    """Remedial action suggested for a weak topic"""
    id: UUID
    user_id: str
    mastery_record_id: UUID
    type: RecommendationType
    priority: int
    content: str
    resources: RecommendationResources = Field(default_factory=RecommendationResources)
    status: RecommendationStatus
    effectiveness: Optional[float] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class RecommendationStatusUpdate(BaseModel):
    """Request body for closing a recommendation"""
    status: Literal["completed", "skipped"]
    effectiveness: Optional[float] = Field(None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def effectiveness_only_when_completed(self):
        if self.effectiveness is not None and self.status != "completed":
            raise ValueError("effectiveness can only be set when completing a recommendation")
        return self


class LearningProgress(BaseModel):
    """Per-user learning summary"""
    user_id: str
    total_attempts: int
    passed_attempts: int
    average_score: float
    mastery_records: List[MasteryRecord]
    mastered_topics: List[str]
    struggling_topics: List[str]
    recommended_topics: List[str]
