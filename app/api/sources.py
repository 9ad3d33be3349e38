"""
Content source API endpoints
"""
from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException
from sqlalchemy.orm import Session
from uuid import UUID, uuid4
import aiofiles
import os
import logging
from typing import Optional

from app.config import settings
from app.database import get_db
from app.models import ContentSource
from app.schemas.source import SourceCreate, SourceResponse
from app.services.assessment_service import AssessmentService, get_assessment_service
from app.services.content_extractor import extract_pdf_text
from app.services.quiz_generator import MAX_TITLE_LENGTH

router = APIRouter(prefix="/api/sources", tags=["sources"])
logger = logging.getLogger(__name__)

TEXT_SUFFIXES = (".txt", ".md")


def _to_response(source: ContentSource) -> SourceResponse:
    return SourceResponse(
        id=source.id,
        source_type=source.source_type,
        title=source.title,
        topic=source.topic,
        mime_type=source.mime_type,
        characters=len(source.body or ""),
        created_at=source.created_at,
    )


@router.post("", response_model=SourceResponse, status_code=201)
async def register_source(
    request: SourceCreate,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Register a plain-text source

    - Video transcripts, course bodies or plain-text documents
    - Whitespace is normalized; empty text is rejected (422)
    """
    source = service.register_source(
        db,
        source_type=request.source_type,
        title=request.title,
        text=request.text,
        topic=request.topic,
    )
    return _to_response(source)


@router.post("/upload", response_model=SourceResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None, max_length=MAX_TITLE_LENGTH),
    topic: Optional[str] = Form(None, max_length=MAX_TITLE_LENGTH),
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """
    Upload a PDF or text document

    - PDF text is extracted with pypdf
    - .txt / .md files are decoded as UTF-8
    """
    filename = file.filename or "document"
    lowered = filename.lower()
    if not (lowered.endswith(".pdf") or lowered.endswith(TEXT_SUFFIXES)):
        raise HTTPException(status_code=400, detail="Only PDF and text files are allowed")

    # Save file temporarily
    temp_path = os.path.join(settings.UPLOAD_DIR, f"{uuid4()}_{os.path.basename(filename)}")
    try:
        async with aiofiles.open(temp_path, "wb") as f:
            content = await file.read()
            await f.write(content)

        logger.info(f"Uploading document: {filename} ({len(content)} bytes)")

        if lowered.endswith(".pdf"):
            async with aiofiles.open(temp_path, "rb") as f:
                text = extract_pdf_text(await f.read())
            mime_type = "application/pdf"
        else:
            async with aiofiles.open(temp_path, "r", encoding="utf-8", errors="replace") as f:
                text = await f.read()
            mime_type = "text/plain"
    finally:
        # Cleanup temp file
        if os.path.exists(temp_path):
            os.remove(temp_path)

    source = service.register_source(
        db,
        source_type="document",
        title=title or os.path.splitext(os.path.basename(filename))[0][:MAX_TITLE_LENGTH],
        text=text,
        topic=topic,
        mime_type=mime_type,
    )
    return _to_response(source)


@router.get("/{source_id}", response_model=SourceResponse)
async def get_source(
    source_id: UUID,
    db: Session = Depends(get_db),
    service: AssessmentService = Depends(get_assessment_service),
):
    """Get a registered content source"""
    return _to_response(service.get_source(db, source_id))
