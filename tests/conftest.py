"""
Shared fixtures: in-memory SQLite, scripted completion client, API client
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "100000"
os.environ["COMPLETION_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

import json
from typing import Callable, List, Optional, Union

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_db
from app.services.assessment_service import AssessmentService, get_assessment_service


class FakeCompletionClient:
    """
    Scripted completion client

    Either routes every prompt through ``responder`` or pops ``responses``
    in order. Exceptions in the script are raised instead of returned.
    """

    model_name = "fake-model"

    def __init__(
        self,
        responses: Optional[List[Union[str, Exception]]] = None,
        responder: Optional[Callable[[str], str]] = None,
        default: str = "",
    ):
        self.responses = list(responses or [])
        self.responder = responder
        self.default = default
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.responder is not None:
            response = self.responder(prompt)
        elif self.responses:
            response = self.responses.pop(0)
        else:
            response = self.default
        if isinstance(response, Exception):
            raise response
        return response


class MemoryCache:
    """Dict-backed stand-in for the Redis cache"""

    def __init__(self):
        self.store = {}

    def content_key(self, source_type: str, source_id: str) -> str:
        return f"content:{source_type}:{source_id}"

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl=None):
        self.store[key] = value
        return True

    def delete(self, key):
        return self.store.pop(key, None) is not None


QUIZ_PAYLOAD = {
    "title": "Photosynthesis basics",
    "description": "How plants turn light into energy",
    "questions": [
        {
            "text": "Which pigment absorbs light?",
            "type": "multiple_choice",
            "options": ["Chlorophyll", "Keratin", "Insulin", "Melanin"],
            "correct_answer": "Chlorophyll",
            "explanation": "Chlorophyll absorbs red and blue light.",
            "difficulty": "easy",
        },
        {
            "text": "Photosynthesis produces oxygen.",
            "type": "true_false",
            "correct_answer": True,
            "explanation": "Oxygen is released when water is split.",
            "difficulty": "easy",
        },
    ],
}

RECOMMENDATION_PAYLOAD = {
    "recommendations": [
        {
            "type": "review",
            "priority": 2,
            "content": "Re-read the section on light reactions.",
            "resources": {"documents": [], "videos": [], "quizzes": []},
        },
        {
            "type": "quiz",
            "priority": 1,
            "content": "Take a short practice quiz on pigments.",
            "resources": {"documents": [], "videos": [], "quizzes": []},
        },
    ]
}


def routing_responder(quiz=None, recommendations=None, analysis=None, feedback=None, study=None):
    """Answer each prompt kind with its scripted JSON payload"""
    def respond(prompt: str) -> str:
        if "writing a quiz" in prompt:
            return json.dumps(quiz if quiz is not None else QUIZ_PAYLOAD)
        if "struggling with the topic" in prompt:
            return json.dumps(recommendations if recommendations is not None else RECOMMENDATION_PAYLOAD)
        if "grading a student's answer" in prompt:
            return json.dumps(analysis or {})
        if "Write constructive" in prompt:
            return json.dumps(feedback or {})
        if "answered incorrectly" in prompt:
            return json.dumps(study or {})
        return ""
    return respond


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_client():
    return FakeCompletionClient(responder=routing_responder())


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def service(fake_client, memory_cache):
    return AssessmentService(fake_client, cache=memory_cache)


@pytest.fixture
def api_client(db, service):
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_assessment_service] = lambda: service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
