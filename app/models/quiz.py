"""
Quiz model - stores generated quizzes
"""
from sqlalchemy import Column, String, Text, Integer, DateTime, Uuid
from app.database import Base, JSONType, utcnow
import uuid


class Quiz(Base):
    """
    Quizzes table - one row per generated (or fallback) quiz

    Questions are stored inline as JSON; they are owned by the quiz and never
    edited by the pipeline.
    """
    __tablename__ = "quizzes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    questions = Column(JSONType, nullable=False)  # Full question data
    time_limit = Column(Integer)  # seconds
    passing_score = Column(Integer, nullable=False, default=70)
    # "metadata" is reserved on declarative classes
    quiz_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, questions={len(self.questions or [])})>"
