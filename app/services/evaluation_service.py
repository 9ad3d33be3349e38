"""
Open-answer evaluation engine

Grades one free-text answer against a reference answer with a weighted
multi-factor analysis:

- Completeness (25%), accuracy (35%), relevance (20%), understanding (20%)
  produce the 0-100 score
- The same factors, thresholded at 0.3, plus concept coverage produce the
  0-1 confidence

Two structured completion calls are made (analysis, then feedback). Any
failure of either returns the conservative default so grading stays total.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from app.config import settings
from app.exceptions import EvaluationFailure, UpstreamCapabilityError
from app.schemas.evaluation import AnswerAnalysis, EvaluationResult
from app.services import fallbacks
from app.services.completion_client import CompletionClient, complete_with_retry
from app.services.output_parser import (
    as_string_list,
    parse_structured,
    unique_preserving_order,
)
from app.utils.numbers import clamp, round_half_up

logger = logging.getLogger(__name__)

FACTORS = ("completeness", "accuracy", "relevance", "understanding")


@dataclass(frozen=True)
class ScoringWeights:
    """Weights shared by the score and confidence formulas"""
    # score
    completeness: float = 0.25
    accuracy: float = 0.35
    relevance: float = 0.20
    understanding: float = 0.20
    # confidence
    confidence_completeness: float = 0.2
    confidence_accuracy: float = 0.3
    confidence_relevance: float = 0.2
    confidence_understanding: float = 0.2
    confidence_coverage: float = 0.1
    # a factor above this counts fully towards confidence, otherwise half
    reliable_factor_threshold: float = 0.3


SCORING_WEIGHTS = ScoringWeights()


def calculate_score(analysis: AnswerAnalysis, weights: ScoringWeights = SCORING_WEIGHTS) -> int:
    """Weighted 0-100 score"""
    weighted = (
        analysis.completeness * weights.completeness
        + analysis.accuracy * weights.accuracy
        + analysis.relevance * weights.relevance
        + analysis.understanding * weights.understanding
    )
    return int(clamp(round_half_up(weighted * 100), 0, 100))


def calculate_confidence(analysis: AnswerAnalysis, weights: ScoringWeights = SCORING_WEIGHTS) -> float:
    """Self-reported reliability of the score, 0-1"""
    def factor(value: float) -> float:
        return 1.0 if value > weights.reliable_factor_threshold else 0.5

    coverage = min(
        (len(analysis.well_explained_concepts) + len(analysis.incorrect_concepts))
        / (len(analysis.missing_concepts) + 1),
        1.0,
    )
    confidence = (
        factor(analysis.completeness) * weights.confidence_completeness
        + factor(analysis.accuracy) * weights.confidence_accuracy
        + factor(analysis.relevance) * weights.confidence_relevance
        + factor(analysis.understanding) * weights.confidence_understanding
        + coverage * weights.confidence_coverage
    )
    return clamp(confidence, 0.0, 1.0)


def extract_keywords(analysis: AnswerAnalysis) -> List[str]:
    """Union of all concepts mentioned by the analysis"""
    return unique_preserving_order(
        analysis.well_explained_concepts
        + analysis.missing_concepts
        + analysis.incorrect_concepts
    )


def _factor_value(value: Any) -> float:
    """Read a factor; percentages (1 < x <= 100) are scaled down"""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"factor is not a finite number: {value!r}")
    if 1.0 < number <= 100.0:
        number = number / 100.0
    return clamp(number, 0.0, 1.0)


def _first_present(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def normalize_analysis(data: dict) -> Tuple[AnswerAnalysis, List[str]]:
    """
    Map the analysis payload onto AnswerAnalysis

    Raises:
        ValueError: when none of the four factors is present
    """
    notes: List[str] = []
    if not any(name in data for name in FACTORS):
        raise ValueError("analysis payload has none of the scoring factors")

    values = {}
    for name in FACTORS:
        if name not in data:
            notes.append(f"missing {name}, using 0")
            values[name] = 0.0
        else:
            values[name] = _factor_value(data[name])

    details = data.get("details") if isinstance(data.get("details"), dict) else data
    missing = _first_present(details, "missingConcepts", "missing_concepts")
    incorrect = _first_present(details, "incorrectConcepts", "incorrect_concepts")
    well = _first_present(details, "wellExplainedConcepts", "well_explained_concepts")
    for label, value in (("missing", missing), ("incorrect", incorrect), ("well explained", well)):
        if not isinstance(value, list):
            notes.append(f"{label} concepts not a list")

    return AnswerAnalysis(
        missing_concepts=unique_preserving_order(as_string_list(missing)),
        incorrect_concepts=unique_preserving_order(as_string_list(incorrect)),
        well_explained_concepts=unique_preserving_order(as_string_list(well)),
        **values,
    ), notes


def normalize_feedback(data: dict) -> Tuple[dict, List[str]]:
    """
    Map the feedback payload onto strengths / improvements / suggestions

    Raises:
        ValueError: when the payload has neither strengths nor improvements
    """
    notes: List[str] = []
    strengths = data.get("strengths")
    if isinstance(strengths, list):
        strengths = " ".join(as_string_list(strengths))
        notes.append("strengths given as list")
    elif not isinstance(strengths, str):
        if strengths is not None:
            notes.append("strengths not text, ignored")
        strengths = ""
    improvements = as_string_list(data.get("improvements"))
    suggestions = as_string_list(data.get("suggestions"))

    if not strengths.strip() and not improvements:
        raise ValueError("feedback payload has neither strengths nor improvements")

    return {
        "strengths": strengths.strip(),
        "improvements": improvements,
        "suggestions": suggestions,
    }, notes


def compose_feedback(feedback: dict, analysis: AnswerAnalysis) -> Tuple[str, List[str]]:
    """
    Assemble the learner-facing feedback text

    Opens with strengths, then lists improvement areas (every missing or
    incorrect concept is named at least once), then ends with suggestions
    that do not repeat each other or the improvement lines.
    """
    strengths = feedback["strengths"]
    if not strengths:
        if analysis.well_explained_concepts:
            strengths = f"You explained {', '.join(analysis.well_explained_concepts)} well."
        else:
            strengths = "You made an attempt at answering the question."

    improvements = list(feedback["improvements"])
    mentioned = " ".join(improvements).casefold()
    for concept in analysis.missing_concepts:
        if concept.casefold() not in mentioned:
            improvements.append(f"Cover the missing concept: {concept}")
    for concept in analysis.incorrect_concepts:
        if concept.casefold() not in mentioned:
            improvements.append(f"Correct your understanding of: {concept}")
    improvements = unique_preserving_order(improvements)

    improvement_keys = {line.casefold() for line in improvements}
    suggestions = [
        s for s in unique_preserving_order(feedback["suggestions"])
        if s.casefold() not in improvement_keys
    ]

    parts = [strengths]
    if improvements:
        parts.append("Areas to improve:\n" + "\n".join(f"- {line}" for line in improvements))
    if suggestions:
        parts.append("Next steps:\n" + "\n".join(f"- {line}" for line in suggestions))
    return "\n\n".join(parts), suggestions


class AnswerEvaluationEngine:
    """Scores free-text answers through the completion capability"""

    def __init__(self, client: CompletionClient, weights: ScoringWeights = SCORING_WEIGHTS):
        self.client = client
        self.weights = weights

    def _analysis_prompt(self, question: str, reference_answer: str, user_answer: str) -> str:
        return f"""
You are grading a student's answer to an open question.

**Question:** {question}
**Reference Answer:** {reference_answer}
**Student's Answer:** {user_answer}

Analyse the student's answer and rate, each on a scale of 0.0 to 1.0:
1. completeness - how much of the reference answer is covered
2. accuracy - how correct the stated concepts are
3. relevance - how pertinent the answer is to the question
4. understanding - the depth of understanding demonstrated

Also list the concepts that are missing, the concepts that are wrong and
the concepts that are well explained.

Return ONLY valid JSON (no markdown):
{{
  "completeness": 0.8,
  "accuracy": 0.6,
  "relevance": 0.9,
  "understanding": 0.7,
  "missingConcepts": ["concept"],
  "incorrectConcepts": ["concept"],
  "wellExplainedConcepts": ["concept"]
}}
"""

    def _feedback_prompt(self, question: str, analysis: AnswerAnalysis) -> str:
        return f"""
Write constructive, encouraging feedback for a student based on this analysis.

**Question:** {question}
Completeness: {analysis.completeness}
Accuracy: {analysis.accuracy}
Relevance: {analysis.relevance}
Understanding: {analysis.understanding}
Missing concepts: {', '.join(analysis.missing_concepts) or 'none'}
Incorrect concepts: {', '.join(analysis.incorrect_concepts) or 'none'}
Well explained concepts: {', '.join(analysis.well_explained_concepts) or 'none'}

The feedback must:
1. Start with what the student did well
2. Identify the areas to improve, referring to the missing and incorrect concepts
3. End with 3-5 specific, actionable suggestions that do not repeat each other

Return ONLY valid JSON (no markdown):
{{
  "strengths": "What the student did well",
  "improvements": ["area to improve"],
  "suggestions": ["actionable suggestion"]
}}
"""

    async def _structured_call(self, prompt: str, normalize, label: str):
        raw = await complete_with_retry(self.client, prompt)
        outcome = parse_structured(raw, normalize=normalize, fallback=lambda: None, label=label)
        if outcome.is_fallback:
            raise EvaluationFailure(f"{label} output unusable: {outcome.error}")
        return outcome.value

    async def analyze(self, question: str, reference_answer: str, user_answer: str) -> AnswerAnalysis:
        """First structured call: factors and concept lists"""
        return await self._structured_call(
            self._analysis_prompt(question, reference_answer, user_answer),
            normalize_analysis,
            "answer analysis",
        )

    async def evaluate(
        self,
        question: str,
        reference_answer: str,
        user_answer: Optional[str],
    ) -> EvaluationResult:
        """
        Grade one open answer

        Args:
            question: Question text
            reference_answer: Expected answer
            user_answer: Learner's answer

        Returns:
            EvaluationResult; the conservative default when evaluation fails
        """
        result, _ = await self.evaluate_with_analysis(question, reference_answer, user_answer)
        return result

    async def evaluate_with_analysis(
        self,
        question: str,
        reference_answer: str,
        user_answer: Optional[str],
    ) -> Tuple[EvaluationResult, Optional[AnswerAnalysis]]:
        """Like evaluate, also returning the analysis for the audit trail"""
        if user_answer is None or not str(user_answer).strip():
            return EvaluationResult(**fallbacks.BLANK_ANSWER_EVALUATION), None

        try:
            analysis = await self.analyze(question, reference_answer, str(user_answer))
            feedback = await self._structured_call(
                self._feedback_prompt(question, analysis),
                normalize_feedback,
                "answer feedback",
            )
        except (EvaluationFailure, UpstreamCapabilityError) as e:
            logger.warning(f"Answer evaluation failed, using default: {str(e)}")
            return EvaluationResult(**fallbacks.FALLBACK_EVALUATION), None

        score = calculate_score(analysis, self.weights)
        text, suggestions = compose_feedback(feedback, analysis)
        result = EvaluationResult(
            score=score,
            is_correct=score >= settings.OPEN_ANSWER_CORRECT_SCORE,
            feedback=text,
            keywords=extract_keywords(analysis),
            suggestions=suggestions,
            confidence=calculate_confidence(analysis, self.weights),
        )
        logger.info(f"Open answer scored {result.score} (confidence {result.confidence:.2f})")
        return result, analysis
