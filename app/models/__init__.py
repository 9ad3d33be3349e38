"""
Database models package
"""
from app.models.source import ContentSource
from app.models.quiz import Quiz
from app.models.quiz_attempt import QuizAttempt, AttemptResult, QuestionEvaluation
from app.models.mastery import MasteryRecord, ReviewRecommendation

__all__ = [
    "ContentSource",
    "Quiz",
    "QuizAttempt",
    "AttemptResult",
    "QuestionEvaluation",
    "MasteryRecord",
    "ReviewRecommendation",
]
