"""
Attempt models - submissions, grading results and open-answer audit rows
"""
from sqlalchemy import Column, String, Text, Integer, Float, Boolean, DateTime, ForeignKey, Uuid
from app.database import Base, JSONType, utcnow
import uuid


class QuizAttempt(Base):
    """
    Quiz attempts table - a learner's raw submission, never mutated
    """
    __tablename__ = "quiz_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id"), nullable=False, index=True)
    answers = Column(JSONType, nullable=False)  # [{question_id, answer}]
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<QuizAttempt(id={self.id}, user_id={self.user_id}, quiz_id={self.quiz_id})>"


class AttemptResult(Base):
    """
    Attempt results table - single source of truth for scores

    Mastery records can be rebuilt from these rows.
    """
    __tablename__ = "attempt_results"

    attempt_id = Column(Uuid(as_uuid=True), ForeignKey("quiz_attempts.id"), primary_key=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    question_results = Column(JSONType, nullable=False)  # Per-question scores and evaluations
    aggregate_score = Column(Integer, nullable=False)
    passing_score = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<AttemptResult(attempt_id={self.attempt_id}, score={self.aggregate_score}, passed={self.passed})>"


class QuestionEvaluation(Base):
    """
    Audit trail of open-answer analyses
    """
    __tablename__ = "question_evaluations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    attempt_id = Column(Uuid(as_uuid=True), ForeignKey("quiz_attempts.id"), nullable=False, index=True)
    question_id = Column(String(128), nullable=False)
    user_id = Column(String(128), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    confidence = Column(Float, nullable=False)
    completeness = Column(Float)
    accuracy = Column(Float)
    relevance = Column(Float)
    understanding = Column(Float)
    missing_concepts = Column(JSONType)
    incorrect_concepts = Column(JSONType)
    well_explained_concepts = Column(JSONType)
    feedback = Column(Text)
    evaluated_at = Column(DateTime, default=utcnow, nullable=False)
