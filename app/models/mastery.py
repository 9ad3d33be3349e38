"""
Mastery models - per-topic statistics and the recommendations they drive
"""
from sqlalchemy import (
    Column, String, Text, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Uuid
)
from app.database import Base, JSONType, utcnow
import uuid


class MasteryRecord(Base):
    """
    Mastery records table - rolling correctness per (user, topic, subtopic)

    ``version`` is an optimistic lock: a concurrent update of the same row
    raises StaleDataError instead of silently losing an increment.
    """
    __tablename__ = "mastery_records"
    __table_args__ = (
        UniqueConstraint("user_id", "topic", "subtopic", name="uq_mastery_key"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    topic = Column(String(255), nullable=False)
    subtopic = Column(String(255), nullable=False, default="")
    correct_count = Column(Integer, nullable=False, default=0)
    total_count = Column(Integer, nullable=False, default=0)
    mastery = Column(Integer, nullable=False, default=0)  # 0-100
    last_quiz_date = Column(DateTime)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<MasteryRecord(user_id={self.user_id}, topic={self.topic}, mastery={self.mastery})>"


class ReviewRecommendation(Base):
    """
    Review recommendations table - pending -> completed | skipped
    """
    __tablename__ = "review_recommendations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    mastery_record_id = Column(Uuid(as_uuid=True), ForeignKey("mastery_records.id"), nullable=False)
    recommendation_type = Column(String(20), nullable=False)  # quiz | review | practice
    priority = Column(Integer, nullable=False, default=1)  # 1 = most urgent
    content = Column(Text, nullable=False)
    resources = Column(JSONType, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending", index=True)
    effectiveness = Column(Float)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime)

    def __repr__(self):
        return f"<ReviewRecommendation(id={self.id}, type={self.recommendation_type}, status={self.status})>"
