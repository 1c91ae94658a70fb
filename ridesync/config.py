"""Centralised application settings loaded from environment / .env file."""

from typing import Optional

from pydantic_settings import BaseSettings

from ridesync.domain.enums import TimeoutPolicy


class Settings(BaseSettings):
    # Backend
    backend_base_url: str = "https://api.easyride.com"
    access_token: Optional[str] = None
    backend_timeout_ms: int = 10_000  # per-call deadline
    on_timeout: TimeoutPolicy = TimeoutPolicy.TREAT_AS_FAILURE

    # Reconciliation
    poll_interval_seconds: float = 10.0
    degraded_after_failures: int = 3

    # History
    history_page_size: int = 20

    # Driver identity used by the local gateway when the caller omits it
    driver_id: Optional[str] = None

    # Local gateway
    gateway_rate_limit: str = "100/minute"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
