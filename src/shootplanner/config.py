"""Application configuration and settings management."""

from datetime import time
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="SHOOT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Shoot Planner API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level (DEBUG, INFO, WARNING, ...).")
    timezone: str = Field(default="Europe/Berlin", description="Business-local timezone used for 'now'.")

    home_base_lat: float = Field(default=48.3705, ge=-90.0, le=90.0)
    home_base_lng: float = Field(default=10.8978, ge=-180.0, le=180.0)

    business_start: time = Field(default=time(8, 0), description="Weekday opening time.")
    business_end: time = Field(default=time(18, 0), description="Weekday closing time.")
    weekend_start: time = Field(default=time(9, 0), description="Opening time for weekend requests.")
    weekend_end: time = Field(default=time(14, 0), description="Closing time for weekend requests.")
    working_days: tuple[str, ...] = Field(default=("MON", "TUE", "WED", "THU", "FRI"))

    slot_interval_minutes: int = Field(default=30, ge=5)
    buffer_after_minutes: int = Field(default=15, ge=0, description="Time kept free after each shoot.")
    default_drive_buffer_minutes: int = Field(
        default=15,
        ge=0,
        description="Buffer applied around existing bookings that carry no explicit drive buffer.",
    )
    time_rounding_minutes: int = Field(default=5, ge=1)
    lookahead_days: int = Field(default=14, ge=1)
    max_properties_per_batch: int = Field(default=10, ge=1)
    weekend_requests_enabled: bool = True

    mapbox_access_token: Optional[str] = Field(default=None, description="Mapbox token for geocoding and matrix.")
    mapbox_base_url: str = "https://api.mapbox.com"
    mapbox_profile: Literal["driving", "driving-traffic"] = "driving"
    geocoding_country: str = "de"
    geocoding_language: str = "de"
    request_timeout_seconds: float = Field(default=5.0, gt=0.0)
    mapbox_max_retries: int = Field(default=1, ge=0)
    mapbox_backoff_seconds: float = Field(default=0.5, ge=0.0)
    mapbox_max_coordinates_per_request: int = Field(default=25, ge=2)
    max_parallel_requests: int = Field(default=4, ge=1)

    average_speed_kmh: float = Field(default=50.0, gt=0.0)
    fallback_drive_minutes: int = Field(
        default=45,
        ge=0,
        description="Worst-case drive time used when a travel lookup fails.",
    )

    optimization_budget_seconds: float = Field(default=12.0, gt=0.0)
    brute_force_max_properties: int = Field(default=5, ge=1, le=8)
    two_opt_max_iterations: int = Field(default=200, ge=0)
    max_candidates_per_day: int = Field(default=3, ge=1)
    efficiency_drive_weight: float = Field(default=1.0, ge=0.0)
    efficiency_idle_weight: float = Field(default=1.0, ge=0.0)

    availability_cache_ttl_seconds: float = Field(default=60.0, ge=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("frontend_allowed_origins", "working_days", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("working_days", mode="after")
    @classmethod
    def _normalize_days(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(day.strip().upper()[:3] for day in value)


settings = Settings()
