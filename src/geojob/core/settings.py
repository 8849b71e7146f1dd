from pathlib import Path
from typing import Optional

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings

from geojob.adapters.logging_adapter import LoggingAdapter
from geojob.core.interfaces.logging import LoggingPort


# using pydantic_settings to manage environment variables
# and do automatic type casting in a central place
class GeoJobSettings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }
    GEOJOB_LOG_LEVEL: str = "INFO"
    GEOJOB_OPERATIONS_FILE: Optional[Path] = None
    GEOJOB_ELEVATION_SERVICE_URL: str = (
        "https://elevation.arcgis.com/arcgis/rest/services/Tools/Elevation/GPServer"
    )
    GEOJOB_REQUEST_TIMEOUT: Optional[float] = None
    GEOJOB_POLL_INITIAL_INTERVAL: float = 1.0
    GEOJOB_POLL_MAX_INTERVAL: float = 30.0
    GEOJOB_POLL_BACKOFF_MULTIPLIER: float = 2.0
    GEOJOB_POLL_MAX_TOTAL_WAIT: float = 600.0
    GEOJOB_POLL_MAX_TRANSPORT_FAILURES: int = 3
    GEOJOB_SUBMIT_MAX_RETRIES: int = 3
    GEOJOB_SUBMIT_RETRY_BASE_WAIT: float = 0.5
    GEOJOB_SUBMIT_RETRY_MAX_WAIT: float = 5.0
    # Either an API key or a pre-acquired token; the client never refreshes it
    GEOJOB_API_KEY: Optional[SecretStr] = None
    GEOJOB_TOKEN: Optional[SecretStr] = None

    @field_validator("GEOJOB_ELEVATION_SERVICE_URL", mode="before")
    def strip_trailing_slash(cls, value: str) -> str:
        """Service URLs are joined with '/<Task>' so keep them slash-free."""
        return str(value).rstrip("/")

    def print_settings(self, logger: LoggingPort):
        """Logs the settings for debugging purposes (secrets stay masked)"""
        logger.debug("GeoJob Settings:")
        for name, value in self.model_dump().items():
            logger.debug("  %s=%s", name, value)


app_settings = GeoJobSettings()

logger = LoggingAdapter("geojob", app_settings.GEOJOB_LOG_LEVEL)


def set_logger(new_logger: LoggingAdapter) -> None:
    """Point the shared module-level logger at another adapter's target.

    Modules import `logger` by name, so the object is retargeted in place
    rather than rebound.
    """
    logger.rebind(new_logger.logger)
