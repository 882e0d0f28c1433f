"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PICKUP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Pickup Sync API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Router (OptimoRoute-style API)
    router_base_url: str = Field(
        default="https://api.optimoroute.com/v1",
        description="Base URL of the external routing service.",
    )
    router_api_key: Optional[str] = Field(
        default=None,
        description="API key sent as the `key` query parameter on every router call.",
    )
    router_timeout_seconds: float = Field(default=30.0, gt=0.0)
    router_max_retries: int = Field(default=3, ge=0)
    router_backoff_seconds: float = Field(default=1.0, ge=0.0)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    google_maps_api_key: Optional[str] = Field(default=None, description="Key for the Google Geocoding API.")
    stripe_api_key: Optional[str] = Field(default=None, description="Stripe secret key for subscription creation.")

    # Reconciliation
    sync_window_days: int = Field(default=28, ge=1)
    order_duration_minutes: int = Field(default=10, ge=1)

    # Pickup day detection
    detection_min_pickups: int = Field(default=3, ge=1)
    detection_min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    detection_history_weeks: int = Field(default=12, ge=1)
    detection_batch_size: int = Field(default=50, ge=1)

    # Insertion-cost optimizer
    optimization_window_days: int = Field(default=7, ge=1)
    optimization_metric: Literal["distance", "time", "both"] = Field(default="distance")
    optimization_avg_speed_mph: float = Field(default=25.0, gt=0.0)
    optimization_route_source: Literal["database", "router"] = Field(
        default="database",
        description="Where recent routes are read from: the local routes table or the router itself.",
    )

    # Feasibility probe
    feasibility_poll_interval_seconds: float = Field(default=2.0, ge=0.0)
    feasibility_max_poll_attempts: int = Field(default=30, ge=1)

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
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

    @field_validator("router_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


settings = Settings()
