import os
from collections.abc import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    model_config = {"populate_by_name": True}

    # VAPI Configuration
    vapi_base_url: str = Field(default="https://api.vapi.ai", alias="VAPI_BASE_URL")
    vapi_secret_key: str = Field(default="", alias="VAPI_SECRET_KEY")

    # Transport
    vapi_request_timeout: float = Field(
        default=30.0, gt=0, alias="VAPI_REQUEST_TIMEOUT"
    )
    vapi_max_content_length: int = Field(
        default=50 * 1024 * 1024, gt=0, alias="VAPI_MAX_CONTENT_LENGTH"
    )
    vapi_max_redirects: int = Field(default=3, ge=0, alias="VAPI_MAX_REDIRECTS")
    vapi_max_connections: int = Field(default=20, ge=1, alias="VAPI_MAX_CONNECTIONS")
    vapi_max_keepalive: int = Field(default=10, ge=0, alias="VAPI_MAX_KEEPALIVE")

    # Retry
    vapi_max_retries: int = Field(default=3, ge=0, alias="VAPI_MAX_RETRIES")
    vapi_retry_base_delay: float = Field(
        default=1.0, ge=0, alias="VAPI_RETRY_BASE_DELAY"
    )
    vapi_retry_non_idempotent: bool = Field(
        default=False, alias="VAPI_RETRY_NON_IDEMPOTENT"
    )

    # Batching
    vapi_batch_size: int = Field(default=5, ge=1, alias="VAPI_BATCH_SIZE")
    vapi_batch_delay_ms: int = Field(default=100, ge=0, alias="VAPI_BATCH_DELAY_MS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def vapi_batch_delay(self) -> float:
        """Inter-batch delay in seconds."""
        return self.vapi_batch_delay_ms / 1000


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from environment variables (defaults to ``os.environ``)."""
    source = os.environ if env is None else env
    return Settings.model_validate(dict(source))


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
