from __future__ import annotations

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Remote prediction service
    API_URL: str = ""
    API_TIMEOUT: float = 30.0  # seconds
    API_MAX_FILE_SIZE: int = 5 * 1024 * 1024

    # Simulated progress feedback
    PROGRESS_INTERVAL: float = 0.2
    PROGRESS_MAX_STEP: float = 1.2

    # Observability
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"  # plain | json
    METRICS_ENABLED: bool = True
    SENTRY_DSN: str | None = None

    ENV: str = "dev"

    @property
    def is_development(self) -> bool:
        return (self.ENV or "").lower() in {"dev", "development"}

    @property
    def is_production(self) -> bool:
        return (self.ENV or "").lower() in {"prod", "production"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def validate_config(settings: Settings | None = None) -> Settings:
    s = settings or get_settings()
    if not s.API_URL:
        raise ConfigurationError("API_URL is required")
    if s.is_production and "localhost" in s.API_URL:
        logger.warning("Using localhost API URL in production: %s", s.API_URL)
    return s
