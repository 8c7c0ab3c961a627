"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "BoardSync"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Remote task endpoint
    SYNC_MODE: str = "stub"  # stub or live
    TASK_API_BASE_URL: Optional[str] = "http://localhost:8000"
    TASK_API_TOKEN: Optional[str] = None
    WORKSPACE_ID: str = "default"
    SYNC_TIMEOUT_SECONDS: float = 10.0
    FETCH_RETRY_ATTEMPTS: int = 3

    # Ordering
    ORDER_STRATEGY: str = "renumber"  # renumber or gap
    ORDER_GAP: float = 1024.0
    ORDER_MIN_GAP: float = 1e-6

    # CORS (reference endpoint)
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Localization
    DEFAULT_LOCALE: str = "en"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
