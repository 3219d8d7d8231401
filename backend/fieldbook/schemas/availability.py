# backend/fieldbook/schemas/availability.py
"""
Pydantic schemas for the availability scan.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from ..services.slots.availability import AvailabilityScan, Slot
from .common import AddressFields, CamelModel


class AvailabilityRequest(AddressFields):
    """POST /junk-quote/availability"""
    instant_quote_id: UUID
    target_lat: Optional[float] = Field(None, ge=-90, le=90)
    target_lng: Optional[float] = Field(None, ge=-180, le=180)
    horizon_days: Optional[int] = Field(None, ge=1, le=90)


class RankOut(CamelModel):
    """Structured ranking; `reason` on the slot is rendered from it."""
    kind: str  # proximity / city_cluster / no_conflicts
    nearby_count: int
    nearest_km: Optional[float] = None
    radius_km: float


class SlotOut(CamelModel):
    start_at: datetime
    end_at: datetime
    reason: str
    rank: RankOut

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotOut":
        r = slot.reason
        return cls(
            start_at=slot.start_at,
            end_at=slot.end_at,
            reason=r.label,
            rank=RankOut(
                kind=r.kind,
                nearby_count=r.nearby_count,
                nearest_km=round(r.nearest_km, 1) if r.nearest_km is not None else None,
                radius_km=r.radius_km,
            ),
        )


class DayOut(CamelModel):
    date: date
    slots: list[SlotOut]


class AvailabilityResponse(CamelModel):
    ok: bool = True
    timezone: str
    duration_minutes: int
    loads: int
    travel_buffer_minutes: int
    capacity: int
    slot_interval_minutes: int = Field(description="Grid step in minutes (15/30/60)")
    suggestions: list[SlotOut]
    days: list[DayOut]

    @classmethod
    def from_scan(cls, scan: AvailabilityScan) -> "AvailabilityResponse":
        return cls(
            timezone=scan.timezone,
            duration_minutes=scan.duration_minutes,
            loads=scan.loads,
            travel_buffer_minutes=scan.travel_buffer_minutes,
            capacity=scan.capacity,
            slot_interval_minutes=scan.slot_interval_minutes,
            suggestions=[SlotOut.from_slot(s) for s in scan.suggestions],
            days=[DayOut(date=d.date, slots=[SlotOut.from_slot(s) for s in d.slots]) for d in scan.days],
        )
