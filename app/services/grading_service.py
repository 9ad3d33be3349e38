"""
Submission grading with hybrid approach
Objective (multiple choice, true/false): exact match
Open: multi-factor evaluation via the completion capability
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.config import settings
from app.schemas.evaluation import AnswerAnalysis
from app.schemas.quiz import Question, QuestionResult, Quiz, SubmittedAnswer
from app.services.evaluation_service import AnswerEvaluationEngine
from app.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

TRUE_WORDS = {"true", "yes", "1"}
FALSE_WORDS = {"false", "no", "0"}


def aggregate_score(scores: List[int]) -> int:
    """round(mean(scores)), 0 when nothing was graded"""
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    return None


@dataclass
class GradedAttempt:
    """Grading outcome before persistence"""
    question_results: List[QuestionResult]
    aggregate_score: int
    passed: bool
    analyses: Dict[str, AnswerAnalysis] = field(default_factory=dict)


class SubmissionGrader:
    """
    Grades every answer of an attempt

    Strategy:
    - Multiple choice: submitted option equals the marked-correct option
      (option text, 0-based index or letter)
    - True/false: boolean equality ("true"/"false" strings accepted)
    - Open: evaluation engine score, correct at >= 70
    """

    def __init__(self, evaluator: AnswerEvaluationEngine):
        self.evaluator = evaluator

    def grade_multiple_choice(self, question: Question, answer: Any) -> bool:
        options = question.options or []
        chosen = answer
        if isinstance(answer, int) and not isinstance(answer, bool):
            chosen = options[answer] if 0 <= answer < len(options) else None
        elif isinstance(answer, str):
            stripped = answer.strip()
            if stripped in options:
                chosen = stripped
            elif len(stripped) == 1 and stripped.upper() in "ABCDEFGH":
                # Letter answers map to option positions
                index = ord(stripped.upper()) - ord("A")
                chosen = options[index] if index < len(options) else stripped
            else:
                chosen = stripped
        if chosen is None:
            return False
        return str(chosen).strip().casefold() == str(question.correct_answer).strip().casefold()

    def grade_true_false(self, question: Question, answer: Any) -> bool:
        submitted = _as_bool(answer)
        expected = _as_bool(question.correct_answer)
        return submitted is not None and submitted == expected

    def grade_objective(self, question: Question, answer: Any) -> Tuple[int, bool]:
        """
        Grade a multiple choice or true/false answer

        Returns:
            Tuple of (score, is_correct)
        """
        if question.type == "multiple_choice":
            is_correct = self.grade_multiple_choice(question, answer)
        else:
            is_correct = self.grade_true_false(question, answer)
        return (100 if is_correct else 0), is_correct

    async def grade(self, quiz: Quiz, answers: List[SubmittedAnswer]) -> GradedAttempt:
        """
        Grade a complete submission

        Answers to question ids that are not part of the quiz are ignored,
        as are repeated answers to the same question.

        Args:
            quiz: The quiz being attempted
            answers: Submitted answers

        Returns:
            GradedAttempt with per-question results in submission order
        """
        questions = {q.id: q for q in quiz.questions}
        graded: List[Tuple[Question, SubmittedAnswer]] = []
        seen = set()
        for answer in answers:
            question = questions.get(answer.question_id)
            if question is None:
                logger.warning(f"Ignoring answer to unknown question {answer.question_id}")
                continue
            if question.id in seen:
                continue
            seen.add(question.id)
            graded.append((question, answer))

        open_items = [(q, a) for q, a in graded if q.type == "open"]
        evaluations = await asyncio.gather(*[
            self.evaluator.evaluate_with_analysis(q.text, str(q.correct_answer), str(a.answer))
            for q, a in open_items
        ])
        evaluated = {q.id: outcome for (q, _), outcome in zip(open_items, evaluations)}

        results: List[QuestionResult] = []
        analyses: Dict[str, AnswerAnalysis] = {}
        for question, answer in graded:
            evaluation = None
            if question.type == "open":
                evaluation, analysis = evaluated[question.id]
                score = evaluation.score
                is_correct = score >= settings.OPEN_ANSWER_CORRECT_SCORE
                if analysis is not None:
                    analyses[question.id] = analysis
            else:
                score, is_correct = self.grade_objective(question, answer.answer)

            results.append(QuestionResult(
                question_id=question.id,
                question_type=question.type,
                submitted_answer=answer.answer,
                correct_answer=question.correct_answer,
                score=score,
                is_correct=is_correct,
                evaluation=evaluation,
            ))

        aggregate = aggregate_score([r.score for r in results])
        passed = aggregate >= quiz.passing_score

        logger.info(
            f"Quiz {quiz.id} graded: {aggregate}/100 over {len(results)} answers, passed={passed}"
        )
        return GradedAttempt(
            question_results=results,
            aggregate_score=aggregate,
            passed=passed,
            analyses=analyses,
        )
