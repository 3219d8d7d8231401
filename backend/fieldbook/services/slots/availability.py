# backend/fieldbook/services/slots/availability.py
"""
Availability scanner.

Suggests start times for a quote across the booking horizon.

Takes into account:
- Business hours and closed dates (policy)
- Daily job ceiling (policy max_jobs_per_day)
- Existing appointments and active holds of other quotes (capacity overlap)
- Proximity of same-day jobs (ranking only)

Read-only: never writes, never locks.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...errors import NotFound, ValidationFailed
from ...models.generated import InstantQuotes
from ..geocode import Address, Geocoder, LatLng
from ..policy import (
    PolicyProvider,
    PolicySnapshot,
    business_hour_windows_for_date,
    is_postal_code_allowed,
    normalize_postal_code,
    resolve_timezone,
)
from ..properties import normalize_address, resolve_coordinates
from .config import BookingConfig, get_booking_config
from .duration import estimate_duration
from .intervals import BlockedInterval, block_distance_km, load_blocked_intervals, overlap_count

logger = logging.getLogger(__name__)

OUT_OF_AREA_MESSAGE = "Thanks for reaching out. We don't serve that area yet."


@dataclass(frozen=True)
class RankReason:
    """
    Why a slot ranks where it does.

    kind:
        proximity     - nearby_count jobs within radius_km, nearest at nearest_km
        city_cluster  - nearby_count jobs in the same city/state that day
        no_conflicts  - nothing scheduled nearby
    """
    kind: str
    nearby_count: int = 0
    nearest_km: Optional[float] = None
    radius_km: float = 30.0
    slot_minutes: int = 0

    @property
    def sort_key(self) -> tuple:
        nearest = self.nearest_km if self.nearest_km is not None else float("inf")
        return (-self.nearby_count, nearest)

    @property
    def label(self) -> str:
        if self.kind == "proximity":
            return (
                f"Nearest scheduled job ~{self.nearest_km:.1f} km; "
                f"{self.nearby_count} within {self.radius_km:g} km"
            )
        if self.kind == "city_cluster":
            return f"Aligned with {self.nearby_count} nearby job(s) on this day"
        return f"No conflicts; {self.slot_minutes} min slot"


@dataclass(frozen=True)
class Slot:
    start_at: datetime  # UTC
    end_at: datetime
    reason: RankReason


@dataclass
class DaySlots:
    date: date
    slots: list[Slot] = field(default_factory=list)


@dataclass
class AvailabilityScan:
    timezone: str
    duration_minutes: int
    loads: int
    travel_buffer_minutes: int
    capacity: int
    slot_interval_minutes: int
    suggestions: list[Slot]
    days: list[DaySlots]


def ensure_in_service_area(address: Address, policy: PolicySnapshot) -> None:
    """Raise out_of_area when a recognisable postal code is not on the allow-list."""
    normalized = normalize_postal_code(address.postal_code)
    if normalized and not is_postal_code_allowed(normalized, policy.service_area):
        logger.info(f"Out of area: {normalized}")
        raise ValidationFailed("out_of_area", message=OUT_OF_AREA_MESSAGE)


def scan_availability(
    db: Session,
    quote_id: str,
    location: Address,
    horizon_days: int | None = None,
    *,
    policy_provider: PolicyProvider,
    geocoder: Geocoder,
    config: BookingConfig | None = None,
    now: datetime | None = None,
    target: LatLng | None = None,
) -> AvailabilityScan:
    """
    Scan the booking horizon for bookable slots.

    Raises:
        ValidationFailed: out_of_area
        NotFound: quote_not_found
    """
    config = config or get_booking_config()
    now = now or datetime.now(timezone.utc)
    location = normalize_address(location)

    # Step 1: Policy and quote
    policy = policy_provider.get_policy()
    ensure_in_service_area(location, policy)

    quote = db.get(InstantQuotes, quote_id)
    if quote is None:
        raise NotFound("quote_not_found")

    estimate = estimate_duration(quote.perceived_size, quote.ai_result)
    duration = estimate.duration_minutes
    travel_buffer = policy.booking_rules.buffer_minutes
    tz_name = resolve_timezone(policy.timezone)
    tz = ZoneInfo(tz_name)

    window_days = config.window_days(policy.booking_rules.booking_window_days)
    horizon = min(horizon_days, window_days) if horizon_days and horizon_days > 0 else window_days

    # Step 2: Target coordinates (best-effort)
    coords = resolve_coordinates(db, location, geocoder, target)

    # Step 3: Commitments in the padded horizon
    blocks = load_blocked_intervals(
        db,
        window_start=now - config.padding,
        window_end=now + timedelta(days=horizon) + config.padding,
        now=now,
        default_duration=duration,
        default_buffer=travel_buffer,
        exclude_quote_id=quote.id,
    )
    blocks_by_day: dict[date, list[BlockedInterval]] = {}
    for block in blocks:
        blocks_by_day.setdefault(block.start.astimezone(tz).date(), []).append(block)

    # Step 4: Walk each day of the horizon
    # Days 0..horizon-1 only; create_hold also accepts the last day (today + window).
    max_jobs = policy.booking_rules.max_jobs_per_day
    step = timedelta(minutes=config.slot_step_minutes)
    length = timedelta(minutes=duration)
    today = now.astimezone(tz).date()

    all_slots: list[Slot] = []
    days: list[DaySlots] = []
    for offset in range(horizon):
        day = today + timedelta(days=offset)
        windows = business_hour_windows_for_date(day, policy.business_hours)
        if not windows:
            continue

        day_blocks = blocks_by_day.get(day, [])
        if max_jobs > 0 and len(day_blocks) >= max_jobs:
            days.append(DaySlots(date=day))
            continue

        reason = _rank_day(day_blocks, coords, location, config, duration)
        day_slots = []
        for window_start, window_end in windows:
            start = window_start
            while start + length <= window_end:
                if start > now and overlap_count(blocks, start, start + length) < config.capacity:
                    start_utc = start.astimezone(timezone.utc)
                    day_slots.append(Slot(start_at=start_utc, end_at=start_utc + length, reason=reason))
                start += step

        day_slots.sort(key=lambda s: s.start_at)
        all_slots.extend(day_slots)
        days.append(DaySlots(date=day, slots=day_slots))

    # Step 5: Ranked picks first, then the soonest, deduplicated by start
    suggestions = _merge_suggestions(all_slots, config)

    logger.info(
        f"Scan quote={quote_id} horizon={horizon}d slots={len(all_slots)} "
        f"suggestions={len(suggestions)} geo={'yes' if coords else 'no'}"
    )
    return AvailabilityScan(
        timezone=tz_name,
        duration_minutes=duration,
        loads=estimate.loads,
        travel_buffer_minutes=travel_buffer,
        capacity=config.capacity,
        slot_interval_minutes=config.slot_step_minutes,
        suggestions=suggestions,
        days=days,
    )


def _rank_day(
    day_blocks: list[BlockedInterval],
    coords: Optional[LatLng],
    location: Address,
    config: BookingConfig,
    duration: int,
) -> RankReason:
    radius = config.cluster_radius_km

    if coords is not None:
        distances = [
            d for d in (block_distance_km(b, coords.lat, coords.lng) for b in day_blocks)
            if d is not None
        ]
        if distances:
            return RankReason(
                kind="proximity",
                nearby_count=sum(1 for d in distances if d <= radius),
                nearest_km=min(distances),
                radius_km=radius,
                slot_minutes=duration,
            )

    city = location.city.strip().lower()
    state = location.state.strip().lower()
    same_city = sum(1 for b in day_blocks if b.city == city and b.state == state)
    if same_city:
        return RankReason(kind="city_cluster", nearby_count=same_city, radius_km=radius, slot_minutes=duration)

    return RankReason(kind="no_conflicts", radius_km=radius, slot_minutes=duration)


def _merge_suggestions(slots: list[Slot], config: BookingConfig) -> list[Slot]:
    ranked = sorted(slots, key=lambda s: (*s.reason.sort_key, s.start_at))[: config.cluster_picks]
    soonest = sorted(slots, key=lambda s: s.start_at)[: config.suggestion_limit]

    merged: list[Slot] = []
    seen: set[datetime] = set()
    for slot in ranked + soonest:
        if slot.start_at in seen:
            continue
        seen.add(slot.start_at)
        merged.append(slot)
        if len(merged) >= config.suggestion_limit:
            break
    return merged
