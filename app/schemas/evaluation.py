"""
Pydantic schemas for open-answer evaluation
"""
from pydantic import BaseModel, Field
from typing import List


class AnswerAnalysis(BaseModel):
    """Normalized factors returned by the analysis call"""
    completeness: float = Field(0.0, ge=0.0, le=1.0)
    accuracy: float = Field(0.0, ge=0.0, le=1.0)
    relevance: float = Field(0.0, ge=0.0, le=1.0)
    understanding: float = Field(0.0, ge=0.0, le=1.0)
    missing_concepts: List[str] = Field(default_factory=list)
    incorrect_concepts: List[str] = Field(default_factory=list)
    well_explained_concepts: List[str] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    """Outcome of grading one free-text answer"""
    score: int = Field(..., ge=0, le=100)
    is_correct: bool
    feedback: str
    keywords: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
