"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str

    # Gemini API
    GEMINI_API_KEY: str
    GEMINI_MODEL: str = "gemini-1.5-flash"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Application
    APP_NAME: str = "Assessment Pipeline"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]
    UPLOAD_DIR: str = "/tmp"

    # Rate Limiting (completion-backed endpoints only)
    RATE_LIMIT_PER_MINUTE: int = 30
    RATE_LIMIT_PER_HOUR: int = 500

    # Completion capability
    COMPLETION_TIMEOUT_SECONDS: float = 30.0
    COMPLETION_MAX_RETRIES: int = 1
    COMPLETION_RETRY_BACKOFF_SECONDS: float = 1.0

    # Content extraction
    MAX_CONTENT_CHARS: int = 6000
    CONTENT_CACHE_TTL: int = 3600  # 1 hour

    # Quiz Settings
    MAX_QUIZ_QUESTIONS: int = 50
    DEFAULT_PASSING_SCORE: int = 70
    OPEN_ANSWER_CORRECT_SCORE: int = 70

    # Mastery
    MASTERY_THRESHOLD: int = 85
    REMEDIAL_QUIZ_QUESTIONS: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
