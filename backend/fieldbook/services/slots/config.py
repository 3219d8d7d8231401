# backend/fieldbook/services/slots/config.py
"""
Booking configuration for availability scanning and holds.
"""

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the availability/hold system.

    Attributes:
        timezone: IANA zone used when policy does not name one
        slot_step_minutes: Grid step for candidate starts (15/30/60)
        padding_hours: Lookback/lookahead around a scan or hold when loading commitments
        capacity: Parallel jobs allowed to overlap (proxy for crews)
        hold_ttl_minutes: Lifetime of a hold before it lapses
        suggestion_limit: Max merged suggestions returned by a scan
        cluster_picks: How many best-ranked slots go ahead of the soonest ones
        cluster_radius_km: Radius for counting nearby same-day jobs
        default_window_days: Booking window when policy has no positive value
        max_window_days: Upper bound for any booking window
    """
    timezone: str = "America/New_York"
    slot_step_minutes: int = 60  # 15 / 30 / 60
    padding_hours: int = 24
    capacity: int = 2
    hold_ttl_minutes: int = 15
    suggestion_limit: int = 8
    cluster_picks: int = 3
    cluster_radius_km: float = 30.0
    default_window_days: int = 14
    max_window_days: int = 90

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 15, 30, or 60, got {self.slot_step_minutes}")
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        if self.hold_ttl_minutes < 1:
            raise ValueError(f"hold_ttl_minutes must be >= 1, got {self.hold_ttl_minutes}")
        if self.suggestion_limit < 1:
            raise ValueError(f"suggestion_limit must be >= 1, got {self.suggestion_limit}")

    @property
    def padding(self) -> timedelta:
        return timedelta(hours=self.padding_hours)

    @property
    def hold_ttl(self) -> timedelta:
        return timedelta(minutes=self.hold_ttl_minutes)

    def window_days(self, policy_days: int | float | None) -> int:
        """Booking window in days: policy value capped, or the default."""
        if isinstance(policy_days, (int, float)) and policy_days > 0:
            return min(int(policy_days), self.max_window_days)
        return self.default_window_days


@lru_cache
def get_booking_config() -> BookingConfig:
    """
    Get booking configuration (singleton), built from Settings.
    """
    return BookingConfig(
        timezone=settings.appointment_timezone,
        slot_step_minutes=settings.slot_step_minutes,
        padding_hours=settings.padding_hours,
        capacity=settings.capacity,
        hold_ttl_minutes=settings.hold_ttl_minutes,
        suggestion_limit=settings.suggestion_limit,
        cluster_picks=settings.cluster_picks,
        cluster_radius_km=settings.cluster_radius_km,
        default_window_days=settings.default_window_days,
        max_window_days=settings.max_window_days,
    )
