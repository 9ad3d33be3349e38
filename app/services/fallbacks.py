"""
Canonical fallback values

Every deterministic default the pipeline substitutes for unusable completion
output lives here so callers and tests reference one table. Bump
FALLBACKS_VERSION when any literal changes.
"""
from typing import Any, Dict

FALLBACKS_VERSION = "1"

FALLBACK_QUIZ_TITLE = "Auto-generated quiz"
FALLBACK_QUIZ_DESCRIPTION = (
    "Quiz generation failed; this placeholder quiz was created instead."
)

FALLBACK_QUESTION: Dict[str, Any] = {
    "text": "Sample question (the system could not generate a complete quiz)",
    "type": "multiple_choice",
    "options": ["Option 1", "Option 2", "Option 3", "Option 4"],
    "correct_answer": "Option 1",
    "explanation": "This is a placeholder question.",
    "difficulty": "medium",
}

DEFAULT_QUIZ_DESCRIPTION = "Automatically generated quiz"
DEFAULT_EXPLANATION = "No explanation provided."
DEFAULT_OPTION = "Option 1"

FALLBACK_EVALUATION: Dict[str, Any] = {
    "score": 0,
    "is_correct": False,
    "feedback": "evaluation unavailable",
    "keywords": [],
    "suggestions": [],
    "confidence": 0.0,
}

BLANK_ANSWER_EVALUATION: Dict[str, Any] = {
    "score": 0,
    "is_correct": False,
    "feedback": "No answer provided",
    "keywords": [],
    "suggestions": [],
    "confidence": 1.0,
}

FALLBACK_RECOMMENDATION: Dict[str, Any] = {
    "type": "quiz",
    "priority": 1,
    "content": "Review quiz needed based on recent performance",
    "resources": {"documents": [], "videos": [], "quizzes": []},
}

FALLBACK_STUDY_SUGGESTIONS: Dict[str, Any] = {
    "weak_areas": ["General understanding of the topics"],
    "recommendations": ["Review the course material"],
    "next_steps": "Review the topics and retake the quiz.",
}
