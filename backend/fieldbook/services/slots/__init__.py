# backend/fieldbook/services/slots/__init__.py
"""
Slots module.

Scanner: ranked suggestions across the booking horizon (read-only)
Holds: short-lived reservations, serialized per calendar day
"""

from .config import BookingConfig, get_booking_config
from .duration import DurationEstimate, estimate_duration
from .availability import AvailabilityScan, DaySlots, RankReason, Slot, scan_availability
from .holds import HoldHandoff, HoldResult, create_hold, get_hold_handoff, release_hold

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "DurationEstimate",
    "estimate_duration",
    "AvailabilityScan",
    "DaySlots",
    "RankReason",
    "Slot",
    "scan_availability",
    "HoldHandoff",
    "HoldResult",
    "create_hold",
    "get_hold_handoff",
    "release_hold",
]
