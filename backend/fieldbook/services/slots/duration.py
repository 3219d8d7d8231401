# backend/fieldbook/services/slots/duration.py
"""
Job duration estimate from quote signals.

Units approximate quarter-trailer volume: the AI price ceiling divided by 200
when present, otherwise a fallback keyed by the customer's perceived size.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

UNIT_PRICE = 200
LOAD_MINUTES = 240

FALLBACK_UNITS = {
    "few_items": 2,
    "small_area": 2,
    "one_room_or_half_garage": 3,
    "big_cleanout": 6,
}
DEFAULT_FALLBACK_UNITS = 3


@dataclass(frozen=True)
class DurationEstimate:
    duration_minutes: int
    loads: int
    units: int
    max_units: Optional[int] = None  # units derived from the AI price, if any


def estimate_duration(perceived_size: Optional[str], ai_result: Any = None) -> DurationEstimate:
    """Estimate service duration and load count for a quote."""
    max_units = _units_from_price(ai_result)
    units = max_units if max_units is not None else _fallback_units(perceived_size)
    duration, loads = duration_for_units(units)
    return DurationEstimate(duration_minutes=duration, loads=loads, units=units, max_units=max_units)


def duration_for_units(units: int) -> tuple[int, int]:
    """Map a unit count to (duration_minutes, loads)."""
    if units <= 2:
        return 120, 1
    if units <= 4:
        return 180, 1
    loads = max(2, math.ceil(units / 4))
    return loads * LOAD_MINUTES, loads


def _units_from_price(ai_result: Any) -> Optional[int]:
    if not isinstance(ai_result, dict):
        return None
    price_high = ai_result.get("priceHigh")
    if isinstance(price_high, bool) or not isinstance(price_high, (int, float)):
        return None
    if not math.isfinite(price_high) or price_high <= 0:
        return None
    # half-up, so 500 -> 3 units
    return int(math.floor(price_high / UNIT_PRICE + 0.5))


def _fallback_units(perceived_size: Optional[str]) -> int:
    return FALLBACK_UNITS.get((perceived_size or "").strip().lower(), DEFAULT_FALLBACK_UNITS)
