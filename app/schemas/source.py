"""
Pydantic schemas for content source registration
"""
from pydantic import BaseModel, Field
from typing import Literal, Optional
from uuid import UUID
from datetime import datetime


class SourceCreate(BaseModel):
    """Schema for registering a transcript, course body or plain-text document"""
    source_type: Literal["document", "video", "course"]
    title: str = Field(..., min_length=1, max_length=255)
    topic: Optional[str] = Field(None, max_length=255)
    text: str = Field(..., description="Plain text body (transcript, course content, ...)")


class SourceResponse(BaseModel):
    """Registered content source"""
    id: UUID
    source_type: str
    title: str
    topic: Optional[str] = None
    mime_type: Optional[str] = None
    characters: int
    created_at: datetime
