# backend/fieldbook/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root


class Settings(BaseSettings):
    database_url: str
    redis_url: str

    appointment_timezone: str = "America/New_York"
    cors_allow_origins: str = "*"
    log_level: str = "INFO"

    # Geocoding (Mapbox forward geocoding)
    mapbox_access_token: str | None = None
    geocode_timeout_seconds: float = 3.0

    # Scheduling knobs, folded into BookingConfig
    slot_step_minutes: int = 60
    padding_hours: int = 24
    capacity: int = 2
    hold_ttl_minutes: int = 15
    suggestion_limit: int = 8
    cluster_picks: int = 3
    cluster_radius_km: float = 30.0
    default_window_days: int = 14
    max_window_days: int = 90

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative path -> absolute, anchored at the repo root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url

    @property
    def allowed_origins(self) -> list[str]:
        raw = (self.cors_allow_origins or "").strip()
        if not raw or raw == "*":
            return ["*"]
        origins = [o.strip().rstrip("/") for o in raw.split(",")]
        return [o for o in origins if o] or ["*"]


settings = Settings()
