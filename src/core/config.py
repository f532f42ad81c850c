from __future__ import annotations

from functools import lru_cache
from typing import Dict, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Ignore unrelated env keys so local/dev .env can include frontend settings.
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Junket Reporting Backend"
    environment: str = "development"
    api_prefix: str = "/api/v1"
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    junket_api_url: str = Field(default="http://localhost:3001/api", alias="JUNKET_API_URL")
    junket_api_token: Optional[str] = Field(default=None, alias="JUNKET_API_TOKEN")
    junket_api_timeout_seconds: float = Field(default=30.0, alias="JUNKET_API_TIMEOUT_SECONDS")

    supabase_url: Optional[str] = Field(default=None, alias="SUPABASE_URL")
    supabase_service_role_key: Optional[str] = Field(
        default=None, alias="SUPABASE_SERVICE_ROLE_KEY"
    )
    supabase_anon_key: Optional[str] = Field(default=None, alias="SUPABASE_ANON_KEY")

    global_currency: str = Field(default="HKD", alias="GLOBAL_CURRENCY")
    fallback_trip_currency: str = Field(default="HKD", alias="FALLBACK_TRIP_CURRENCY")
    fx_static_rates: str = Field(default="", alias="FX_STATIC_RATES")

    fetch_max_workers: int = Field(default=6, alias="FETCH_MAX_WORKERS")
    recent_activity_hours: int = Field(default=24, alias="RECENT_ACTIVITY_HOURS")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_cors_origins() -> list[str]:
    settings = get_settings()
    return [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]


def parse_static_rates(raw: str) -> Dict[Tuple[str, str], float]:
    """Parse ``"USD/HKD=7.8,HKD/USD=0.128"`` into a pair-keyed mapping.

    Malformed entries are skipped.
    """
    rates: Dict[Tuple[str, str], float] = {}
    for entry in (raw or "").split(","):
        entry = entry.strip()
        if not entry or "=" not in entry:
            continue
        pair, value = entry.split("=", 1)
        if "/" not in pair:
            continue
        base, quote = [part.strip().upper() for part in pair.split("/", 1)]
        if not base or not quote:
            continue
        try:
            rates[(base, quote)] = float(value.strip())
        except ValueError:
            continue
    return rates
