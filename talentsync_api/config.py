"""API settings loaded from environment variables."""

from functools import lru_cache
from typing import List, Optional

from talentsync import __version__
from talentsync.config import ProcessorSettings


class ApiSettings(ProcessorSettings):
    """Processor settings plus the fields only the HTTP surface needs."""

    # Application
    APP_NAME: str = "TalentSync API"
    APP_VERSION: str = __version__
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Shared secret for the external scheduler's /cron calls
    CRON_API_KEY: Optional[str] = None

    # Public base URL JobAdder posts webhooks to
    API_PUBLIC_URL: str = "http://localhost:8000"

    @property
    def webhook_url(self) -> str:
        return f"{self.API_PUBLIC_URL.rstrip('/')}/api/v1/webhooks/jobadder"


@lru_cache
def get_api_settings() -> ApiSettings:
    """Get cached settings instance."""
    return ApiSettings()
