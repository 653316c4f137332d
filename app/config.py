from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process configuration read from the environment."""

    stripe_api_base: str = "https://api.stripe.com"
    ghl_api_base: str = "https://rest.gohighlevel.com/v1"
    stripe_webhook_secret: str = ""
    ghl_webhook_secret: str = ""

    # Outbound HTTP retry policy
    http_max_retries: int = 3
    http_base_delay_ms: int = 1000
    http_timeout_seconds: float = 30.0

    sync_hour_utc: int = 2
    scheduler_enabled: bool = True

    encryption_key: str = ""
    frontend_origin: str = "http://localhost:3000"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build settings from environment variables (after loading .env)."""
    return Settings(
        stripe_api_base=os.getenv("STRIPE_API_BASE", "https://api.stripe.com"),
        ghl_api_base=os.getenv("GHL_API_BASE", "https://rest.gohighlevel.com/v1"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        ghl_webhook_secret=os.getenv("GHL_WEBHOOK_SECRET", ""),
        http_max_retries=int(os.getenv("HTTP_MAX_RETRIES", "3")),
        http_base_delay_ms=int(os.getenv("HTTP_BASE_DELAY_MS", "1000")),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
        sync_hour_utc=int(os.getenv("SYNC_HOUR_UTC", "2")),
        scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
        encryption_key=os.getenv("ENCRYPTION_KEY", ""),
        frontend_origin=os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
