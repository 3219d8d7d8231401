# backend/fieldbook/services/slots/intervals.py
"""
Blocked intervals: existing commitments as half-open time ranges.

A commitment is a non-canceled appointment or an active, unexpired hold.
It blocks [start, start + duration + travel_buffer).

Expiry is lazy: every read goes through active_hold_clause(now), nothing
sweeps stale holds.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...models.generated import Appointments, AppointmentHolds, Properties

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class BlockedInterval:
    start: datetime
    end: datetime
    source: str  # "appointment" | "hold"
    lat: Optional[float] = None
    lng: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None


def active_hold_clause(now: datetime):
    """SQL filter for holds that still count: active and not yet expired."""
    return and_(AppointmentHolds.status == "active", AppointmentHolds.expires_at > now)


def active_appointment_clause():
    return and_(Appointments.start_at.isnot(None), Appointments.status != "canceled")


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def overlap_count(blocks: Iterable[BlockedInterval], start: datetime, end: datetime) -> int:
    return sum(1 for b in blocks if overlaps(start, end, b.start, b.end))


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def block_distance_km(block: BlockedInterval, lat: float, lng: float) -> Optional[float]:
    if block.lat is None or block.lng is None:
        return None
    return distance_km(block.lat, block.lng, lat, lng)


def load_blocked_intervals(
    db: Session,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    default_duration: int,
    default_buffer: int,
    exclude_quote_id: Optional[str] = None,
) -> list[BlockedInterval]:
    """
    Commitments starting inside [window_start, window_end], with their locations.

    Rows missing a duration/buffer fall back to the job's own values.
    Holds of exclude_quote_id are skipped: a new hold for that quote releases them.
    """
    appointments = (
        db.query(Appointments, Properties)
        .outerjoin(Properties, Appointments.property_id == Properties.id)
        .filter(
            active_appointment_clause(),
            Appointments.start_at >= window_start,
            Appointments.start_at <= window_end,
        )
        .all()
    )
    holds_query = (
        db.query(AppointmentHolds, Properties)
        .outerjoin(Properties, AppointmentHolds.property_id == Properties.id)
        .filter(
            active_hold_clause(now),
            AppointmentHolds.start_at >= window_start,
            AppointmentHolds.start_at <= window_end,
        )
    )
    if exclude_quote_id is not None:
        holds_query = holds_query.filter(
            or_(
                AppointmentHolds.instant_quote_id.is_(None),
                AppointmentHolds.instant_quote_id != exclude_quote_id,
            )
        )
    holds = holds_query.all()

    blocks = [
        _to_block(row, prop, "appointment", default_duration, default_buffer)
        for row, prop in appointments
    ]
    blocks.extend(
        _to_block(row, prop, "hold", default_duration, default_buffer)
        for row, prop in holds
    )
    blocks.sort(key=lambda b: b.start)
    return blocks


def _to_block(row, prop: Optional[Properties], source: str, default_duration: int, default_buffer: int) -> BlockedInterval:
    duration = row.duration_min if row.duration_min is not None else default_duration
    buffer = row.travel_buffer_min if row.travel_buffer_min is not None else default_buffer
    return BlockedInterval(
        start=row.start_at,
        end=row.start_at + timedelta(minutes=duration + buffer),
        source=source,
        lat=prop.lat if prop is not None else None,
        lng=prop.lng if prop is not None else None,
        city=_norm(prop.city) if prop is not None else None,
        state=_norm(prop.state) if prop is not None else None,
    )


def _norm(value: Optional[str]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip().lower()
