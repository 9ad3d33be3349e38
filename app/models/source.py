"""
ContentSource model - documents, video transcripts and course bodies
"""
from sqlalchemy import Column, String, Text, DateTime, Uuid
from app.database import Base, utcnow
import uuid


class ContentSource(Base):
    """
    Content sources table - plain text the quiz generator draws from

    Documents store the text extracted at upload time, videos their
    transcript, courses the concatenated course body.
    """
    __tablename__ = "content_sources"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_type = Column(String(20), nullable=False, index=True)  # document | video | course
    title = Column(String(255), nullable=False)
    topic = Column(String(255), index=True)
    body = Column(Text, nullable=False, default="")
    mime_type = Column(String(100))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ContentSource(id={self.id}, type={self.source_type}, title={self.title})>"
