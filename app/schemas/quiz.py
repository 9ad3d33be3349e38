"""
Pydantic schemas for quiz generation, attempts and grading
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional, Union
from uuid import UUID
from datetime import datetime

from app.schemas.evaluation import EvaluationResult


SourceType = Literal["document", "video", "course"]
QuestionType = Literal["multiple_choice", "true_false", "open"]
QuestionDifficulty = Literal["easy", "medium", "hard"]
QuizDifficulty = Literal["easy", "medium", "hard", "mixed"]

# Older callers still send the beginner/intermediate/advanced scale
LEGACY_DIFFICULTY = {
    "beginner": "easy",
    "intermediate": "medium",
    "advanced": "hard",
}


class SourceRef(BaseModel):
    """Reference to the content a quiz is generated from"""
    source_type: SourceType
    source_id: UUID


class GenerationOptions(BaseModel):
    """Options accepted by the quiz generator"""
    title: Optional[str] = Field(None, max_length=255)
    question_count: Optional[int] = Field(None, ge=1, le=50, description="Number of questions")
    difficulty: QuizDifficulty = "mixed"
    question_types: Optional[List[QuestionType]] = Field(None, min_length=1)
    topic: Optional[str] = Field(None, max_length=255, description="Topic to focus on")
    focus_areas: List[str] = Field(default_factory=list)
    time_limit: Optional[int] = Field(None, ge=60, description="Time limit in seconds")

    @field_validator("difficulty", mode="before")
    @classmethod
    def map_legacy_difficulty(cls, value):
        if isinstance(value, str):
            return LEGACY_DIFFICULTY.get(value.lower(), value.lower())
        return value


class QuizGenerateRequest(BaseModel):
    """Request schema for quiz generation"""
    source: SourceRef
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class Question(BaseModel):
    """Individual quiz question"""
    id: str
    text: str
    type: QuestionType
    options: Optional[List[str]] = None  # multiple_choice only
    correct_answer: Union[bool, str]
    explanation: str
    difficulty: QuestionDifficulty = "medium"


class QuizMetadata(BaseModel):
    """Where a quiz came from and how it was produced"""
    source_type: Optional[SourceType] = None
    source_id: Optional[str] = None
    generation_model: Optional[str] = None
    topic: Optional[str] = None
    generation_status: Literal["generated", "fallback"] = "generated"


class Quiz(BaseModel):
    """Canonical quiz"""
    id: UUID
    title: str
    description: str
    questions: List[Question] = Field(..., min_length=1)
    time_limit: Optional[int] = None
    passing_score: int = 70
    created_at: datetime
    updated_at: datetime
    metadata: QuizMetadata = Field(default_factory=QuizMetadata)


class SubmittedAnswer(BaseModel):
    """A learner's answer to one question"""
    question_id: str
    answer: Union[bool, int, str]


class QuizSubmission(BaseModel):
    """Schema for quiz submission"""
    user_id: str = Field(..., min_length=1, max_length=128)
    answers: List[SubmittedAnswer]


class QuestionResult(BaseModel):
    """Grading details for a single question"""
    question_id: str
    question_type: QuestionType
    submitted_answer: Union[bool, int, str]
    correct_answer: Union[bool, str]
    score: int = Field(..., ge=0, le=100)
    is_correct: bool
    evaluation: Optional[EvaluationResult] = None


class AttemptResult(BaseModel):
    """Response after quiz grading"""
    attempt_id: UUID
    quiz_id: UUID
    user_id: str
    question_results: List[QuestionResult]
    aggregate_score: int = Field(..., ge=0, le=100)
    passing_score: int
    passed: bool
    created_at: datetime


class StudySuggestions(BaseModel):
    """Study plan derived from the incorrectly answered questions"""
    weak_areas: List[str]
    recommendations: List[str]
    next_steps: str
