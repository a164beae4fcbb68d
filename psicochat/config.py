from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Remote consultation API (the part before /chat, /psicologos, ...)
    api_url: str = "http://localhost:3005/api"
    http_timeout_seconds: Optional[float] = None  # None = wait as long as the backend takes

    # Messages
    message_page_limit: int = 50
    max_file_size_mb: int = 10

    # Subscriptions
    poll_interval_seconds: int = 5

    # Sessions (one controller per bearer token)
    session_idle_minutes: int = 120
    max_sessions: int = 500

    # Logging
    log_level: str = "INFO"

    # CORS - include both local and production origins
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    class Config:
        env_file = ".env"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
