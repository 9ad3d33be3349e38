import json

import pytest

from app.exceptions import NetworkError
from app.schemas.evaluation import AnswerAnalysis
from app.services import fallbacks
from app.services.evaluation_service import (
    AnswerEvaluationEngine,
    calculate_confidence,
    calculate_score,
    compose_feedback,
    normalize_analysis,
    normalize_feedback,
)
from tests.conftest import FakeCompletionClient

ANALYSIS = {
    "completeness": 0.8,
    "accuracy": 0.6,
    "relevance": 0.5,
    "understanding": 0.5,
    "missingConcepts": ["chlorophyll"],
    "incorrectConcepts": ["respiration"],
    "wellExplainedConcepts": ["light energy"],
}

FEEDBACK = {
    "strengths": "You described the role of light clearly.",
    "improvements": ["Mention chlorophyll"],
    "suggestions": ["Review the light reactions", "Review the light reactions", "Draw the cycle"],
}


def _analysis(value, **concepts):
    return AnswerAnalysis(
        completeness=value, accuracy=value, relevance=value, understanding=value, **concepts
    )


def test_score_examples():
    assert calculate_score(_analysis(1.0)) == 100
    assert calculate_score(_analysis(0.0)) == 0
    mixed = AnswerAnalysis(completeness=0.8, accuracy=0.6, relevance=0.5, understanding=0.5)
    assert calculate_score(mixed) == 61


def test_confidence_bounds():
    low = calculate_confidence(_analysis(0.0))
    high = calculate_confidence(_analysis(1.0, well_explained_concepts=["a", "b"]))
    assert 0.0 <= low <= 1.0
    assert 0.0 <= high <= 1.0
    assert low == pytest.approx(0.45)
    assert high == pytest.approx(1.0)


def test_normalize_analysis_accepts_snake_case_and_percentages():
    analysis, notes = normalize_analysis({
        "completeness": 80,
        "accuracy": 0.5,
        "relevance": 0.5,
        "details": {"missing_concepts": ["x"], "incorrect_concepts": [], "well_explained_concepts": ["y"]},
    })
    assert analysis.completeness == pytest.approx(0.8)
    assert analysis.understanding == 0.0
    assert analysis.missing_concepts == ["x"]
    assert any("understanding" in note for note in notes)

    with pytest.raises(ValueError):
        normalize_analysis({"feedback": "no factors"})


def test_compose_feedback_mentions_every_weak_concept():
    analysis = _analysis(0.5, missing_concepts=["chlorophyll", "stomata"], incorrect_concepts=["respiration"])
    text, suggestions = compose_feedback(
        {"strengths": "Good start.", "improvements": ["Mention chlorophyll"], "suggestions": ["Draw it", "draw it"]},
        analysis,
    )
    assert text.startswith("Good start.")
    assert "stomata" in text
    assert "respiration" in text
    assert text.lower().count("chlorophyll") == 1
    assert suggestions == ["Draw it"]


async def test_evaluate_scores_open_answer():
    client = FakeCompletionClient([json.dumps(ANALYSIS), json.dumps(FEEDBACK)])
    engine = AnswerEvaluationEngine(client)

    result = await engine.evaluate("What is photosynthesis?", "Plants convert light...", "Plants use light")

    assert result.score == 61
    assert result.is_correct is False
    assert 0.0 <= result.confidence <= 1.0
    assert result.keywords == ["light energy", "chlorophyll", "respiration"]
    assert result.suggestions == ["Review the light reactions", "Draw the cycle"]
    assert "respiration" in result.feedback
    assert len(client.prompts) == 2


async def test_blank_answer_skips_completion():
    client = FakeCompletionClient()
    result = await AnswerEvaluationEngine(client).evaluate("Q", "A", "   ")

    assert result.score == 0
    assert result.feedback == fallbacks.BLANK_ANSWER_EVALUATION["feedback"]
    assert client.prompts == []


@pytest.mark.parametrize("responses", [
    ["not json"],
    [json.dumps(ANALYSIS), "still not json"],
    [json.dumps({name: float("nan") for name in ("completeness", "accuracy", "relevance", "understanding")})],
    [json.dumps({**ANALYSIS, "accuracy": float("inf")})],
    [NetworkError("down"), NetworkError("down")],
])
async def test_failures_return_conservative_default(responses):
    engine = AnswerEvaluationEngine(FakeCompletionClient(responses))

    result = await engine.evaluate("Q", "A", "some answer")

    assert result.score == 0
    assert result.is_correct is False
    assert result.feedback == "evaluation unavailable"


def test_normalize_analysis_rejects_non_finite_factors():
    with pytest.raises(ValueError):
        normalize_analysis({**ANALYSIS, "completeness": float("nan")})


def test_normalize_feedback_ignores_non_text_strengths():
    feedback, notes = normalize_feedback({"strengths": {"text": "good"}, "improvements": ["x"]})
    assert feedback["strengths"] == ""
    assert feedback["improvements"] == ["x"]
    assert notes

    with pytest.raises(ValueError):
        normalize_feedback({"strengths": 42})


async def test_object_strengths_still_grade_the_answer():
    feedback = {"strengths": {"text": "good"}, "improvements": ["Mention chlorophyll"]}
    client = FakeCompletionClient([json.dumps(ANALYSIS), json.dumps(feedback)])

    result = await AnswerEvaluationEngine(client).evaluate("Q", "A", "Plants use light")

    assert result.score == 61
    assert result.feedback.startswith("You explained light energy well.")
    assert "Mention chlorophyll" in result.feedback
