"""
Runtime settings read from the environment.

Every value has a default so the adapters work out of the box against the
WellSky sandbox; override with EMR_* variables in deployment.
"""
import os
from functools import lru_cache
from typing import Optional

from ..models.cdm import RetryConfig

DEFAULT_WELLSKY_BASE_URL = "https://avasandbox.clearcareonline.com"
DEFAULT_HTTP_TIMEOUT_MS = 30000


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


class Settings:
    """Adapter, transport and logging settings."""

    def __init__(self):
        self.wellsky_base_url = os.getenv("EMR_WELLSKY_BASE_URL", DEFAULT_WELLSKY_BASE_URL).rstrip("/")
        self.http_timeout_ms = int(os.getenv("EMR_HTTP_TIMEOUT_MS", str(DEFAULT_HTTP_TIMEOUT_MS)))

        self.retry_max_attempts = int(os.getenv("EMR_RETRY_MAX_ATTEMPTS", "3"))
        self.retry_backoff_ms = int(os.getenv("EMR_RETRY_BACKOFF_MS", "1000"))

        # Where .session-<vendor>.json files live
        self.session_dir = os.getenv("EMR_SESSION_DIR", ".")
        # The vendor never tells us when a session dies; None means "until a request fails"
        self.session_ttl_minutes = _env_optional_int("EMR_SESSION_TTL_MINUTES")

        self.log_level = os.getenv("EMR_LOG_LEVEL", "INFO")
        self.log_json = _env_bool("EMR_LOG_JSON")

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            backoff_ms=self.retry_backoff_ms,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
