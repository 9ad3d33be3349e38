import asyncio
import json

import pytest

from app.config import settings
from app.exceptions import AuthError
from app.schemas.quiz import GenerationOptions
from app.services import fallbacks
from app.services.quiz_generator import (
    MAX_TITLE_LENGTH,
    QuizGenerationEngine,
    normalize_question,
    resolve_options,
)
from tests.conftest import QUIZ_PAYLOAD, FakeCompletionClient


async def test_generate_parses_well_formed_output():
    engine = QuizGenerationEngine(FakeCompletionClient([json.dumps(QUIZ_PAYLOAD)]))

    quiz = await engine.generate("Plants use light.", source_type="document", source_id="abc")

    assert quiz.title == "Photosynthesis basics"
    assert [q.type for q in quiz.questions] == ["multiple_choice", "true_false"]
    assert [q.id for q in quiz.questions] == [f"{quiz.id}_q1", f"{quiz.id}_q2"]
    assert quiz.questions[1].correct_answer is True
    assert quiz.passing_score == settings.DEFAULT_PASSING_SCORE
    assert quiz.metadata.generation_status == "generated"
    assert quiz.metadata.source_type == "document"
    assert quiz.metadata.generation_model == "fake-model"


@pytest.mark.parametrize("raw", ["", "I cannot help with that", '{"questions": []}', '{"title": "x"}'])
async def test_unusable_output_yields_fallback_quiz(raw):
    engine = QuizGenerationEngine(FakeCompletionClient([raw]))

    quiz = await engine.generate("Some text")

    assert len(quiz.questions) >= 1
    assert quiz.title == fallbacks.FALLBACK_QUIZ_TITLE
    assert quiz.description == fallbacks.FALLBACK_QUIZ_DESCRIPTION
    assert quiz.metadata.generation_status == "fallback"
    question = quiz.questions[0]
    assert question.options == fallbacks.FALLBACK_QUESTION["options"]
    assert question.correct_answer == "Option 1"


async def test_timeout_yields_fallback_quiz(monkeypatch):
    class SlowClient:
        model_name = "slow"

        async def complete(self, prompt):
            await asyncio.sleep(1)
            return json.dumps(QUIZ_PAYLOAD)

    monkeypatch.setattr(settings, "COMPLETION_TIMEOUT_SECONDS", 0.01)
    monkeypatch.setattr(settings, "COMPLETION_RETRY_BACKOFF_SECONDS", 0.0)

    quiz = await QuizGenerationEngine(SlowClient()).generate("Some text")

    assert quiz.metadata.generation_status == "fallback"


async def test_auth_errors_propagate():
    engine = QuizGenerationEngine(FakeCompletionClient([AuthError("bad key")]))
    with pytest.raises(AuthError):
        await engine.generate("Some text")


async def test_explicit_title_wins_over_model_title():
    engine = QuizGenerationEngine(FakeCompletionClient([json.dumps(QUIZ_PAYLOAD)]))

    quiz = await engine.generate("text", GenerationOptions(title="Plant biology", topic="pigments"))

    assert quiz.title == "Plant biology"
    assert quiz.metadata.topic == "pigments"


async def test_overlong_model_title_is_truncated():
    payload = {**QUIZ_PAYLOAD, "title": "Photosynthesis " * 30}
    engine = QuizGenerationEngine(FakeCompletionClient([json.dumps(payload)]))

    quiz = await engine.generate("Plants use light.")

    assert len(quiz.title) <= MAX_TITLE_LENGTH
    assert quiz.title.startswith("Photosynthesis Photosynthesis")
    assert quiz.metadata.generation_status == "generated"


def test_normalize_question_fills_defaults():
    question, notes = normalize_question(
        {"question": "Pick one", "options": ["a", "b", "c"], "correctAnswer": 1},
        "q1",
    )
    assert question["text"] == "Pick one"
    assert question["type"] == "multiple_choice"
    assert question["correct_answer"] == "b"
    assert question["explanation"] == fallbacks.DEFAULT_EXPLANATION
    assert question["difficulty"] == "medium"
    assert notes


def test_normalize_question_letter_answer_and_missing_options():
    question, _ = normalize_question(
        {"text": "Pick", "type": "multiple_choice", "options": ["x", "y"], "correct_answer": "B"},
        "q1",
    )
    assert question["correct_answer"] == "y"

    question, _ = normalize_question({"text": "Pick", "type": "mcq"}, "q2")
    assert question["options"] == [fallbacks.DEFAULT_OPTION]
    assert question["correct_answer"] == fallbacks.DEFAULT_OPTION


def test_normalize_question_true_false_and_open():
    tf, _ = normalize_question({"text": "Sky is blue", "type": "true_false", "correct_answer": "yes"}, "q1")
    assert tf["correct_answer"] is True
    assert tf["options"] is None

    open_q, _ = normalize_question(
        {"text": "Explain osmosis", "type": "open", "explanation": "Water moves across a membrane."},
        "q2",
    )
    assert open_q["correct_answer"] == "Water moves across a membrane."

    skipped, _ = normalize_question({"type": "open"}, "q3")
    assert skipped is None


async def test_skipped_items_keep_ids_sequential():
    payload = {"questions": ["junk", QUIZ_PAYLOAD["questions"][0], {"text": ""}, QUIZ_PAYLOAD["questions"][1]]}
    engine = QuizGenerationEngine(FakeCompletionClient([json.dumps(payload)]))

    quiz = await engine.generate("text")

    assert [q.id for q in quiz.questions] == [f"{quiz.id}_q1", f"{quiz.id}_q2"]
    assert quiz.description == fallbacks.DEFAULT_QUIZ_DESCRIPTION


def test_resolve_options_uses_source_defaults():
    course = resolve_options(GenerationOptions(), "course")
    assert course.question_types == ["multiple_choice", "true_false", "open"]
    assert course.question_count == 20

    free = resolve_options(GenerationOptions(question_count=3), None)
    assert free.question_count == 3
    assert free.question_types == ["multiple_choice", "true_false"]


def test_legacy_difficulty_is_mapped():
    assert GenerationOptions(difficulty="intermediate").difficulty == "medium"
    assert GenerationOptions(difficulty="beginner").difficulty == "easy"
