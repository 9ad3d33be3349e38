"""
Content extraction for quiz generation

Normalizes a source reference (document, video transcript or course body)
into bounded plain text.
"""
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import ContentNotFound, ContentUnavailable, EmptyContent
from app.models import ContentSource
from app.schemas.quiz import SourceRef
from app.utils.cache import CacheService, cache_service

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... (content truncated)"


@dataclass
class ExtractedContent:
    """Plain text ready to be embedded in a generation prompt"""
    text: str
    truncated: bool
    original_length: int
    title: Optional[str] = None
    topic: Optional[str] = None


class ContentStore(Protocol):
    """Resolves source references to raw text; raises ContentNotFound"""

    def get_content(self, ref: SourceRef) -> str:
        ...

    def describe(self, ref: SourceRef) -> dict:
        ...


class DatabaseContentStore:
    """Content store backed by the content_sources table"""

    def __init__(self, db: Session):
        self.db = db

    def _get_source(self, ref: SourceRef) -> ContentSource:
        source = self.db.query(ContentSource).filter(ContentSource.id == ref.source_id).first()
        if source is None or source.source_type != ref.source_type:
            raise ContentNotFound(f"{ref.source_type} {ref.source_id} not found")
        return source

    def get_content(self, ref: SourceRef) -> str:
        return self._get_source(ref).body or ""

    def describe(self, ref: SourceRef) -> dict:
        source = self._get_source(ref)
        return {"title": source.title, "topic": source.topic}


def extract_pdf_text(pdf_bytes: bytes) -> str:
    """Extract plain text from a PDF byte stream using pypdf"""
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
    except (PdfReadError, ValueError) as e:
        raise EmptyContent(f"PDF could not be read: {str(e)}") from e

    texts = []
    for page in reader.pages:
        page_text = page.extract_text()
        if page_text:
            texts.append(page_text.strip())
    return "\n\n".join(texts)


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces and blank lines while keeping paragraphs"""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_chars: int) -> str:
    """Cap text at max_chars, appending the truncation marker when cut"""
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]} {TRUNCATION_MARKER}"


class ContentExtractor:
    """
    Turns a SourceRef into bounded plain text

    Raises ContentUnavailable when the reference cannot be resolved and
    EmptyContent when there is nothing but whitespace; a quiz is never
    generated from empty content.
    """

    def __init__(
        self,
        store: ContentStore,
        cache: Optional[CacheService] = None,
        max_chars: Optional[int] = None,
    ):
        self.store = store
        self.cache = cache if cache is not None else cache_service
        self.max_chars = max_chars or settings.MAX_CONTENT_CHARS

    def extract(self, ref: SourceRef) -> ExtractedContent:
        key = self.cache.content_key(ref.source_type, str(ref.source_id))
        cached = self.cache.get(key)

        if cached:
            raw, title, topic = cached["text"], cached.get("title"), cached.get("topic")
        else:
            try:
                raw = self.store.get_content(ref)
                details = self.store.describe(ref)
            except ContentNotFound as e:
                logger.warning(f"Content unavailable for {ref.source_type} {ref.source_id}")
                raise ContentUnavailable(str(e)) from e
            title, topic = details.get("title"), details.get("topic")

        text = normalize_whitespace(raw or "")
        if not text:
            raise EmptyContent(f"No text could be extracted from {ref.source_type} {ref.source_id}")

        if not cached:
            self.cache.set(key, {"text": text, "title": title, "topic": topic})

        bounded = truncate(text, self.max_chars)
        truncated = bounded != text
        if truncated:
            logger.info(f"Truncated {ref.source_type} {ref.source_id} from {len(text)} to {self.max_chars} chars")

        return ExtractedContent(
            text=bounded,
            truncated=truncated,
            original_length=len(text),
            title=title,
            topic=topic,
        )
