"""
POSTURE MUSE Configuration

Environment variables and application settings.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "POSTURE MUSE"
    DEBUG: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173", "http://localhost:8080"]

    # Challenge timing
    COUNTDOWN_SECONDS: int = 3
    COUNTDOWN_TICK_SECONDS: float = 1.0
    LIVE_AVERAGE_INTERVAL_SECONDS: float = 1.0
    DEFAULT_HOLD_SECONDS: int = 30

    # Feedback
    LIVE_HINT_COUNT: int = 3

    # Sessions
    MAX_ACTIVE_SESSIONS: int = 100

    # Pose library (built-in library when unset)
    POSE_LIBRARY_PATH: Optional[str] = None

    # Report rendering
    THUMBNAIL_FETCH_TIMEOUT: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
