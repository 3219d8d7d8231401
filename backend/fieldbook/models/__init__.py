from .generated import (
    Base,
    metadata,
    InstantQuotes,
    Properties,
    Appointments,
    AppointmentHolds,
    PolicySettings,
    BookingDayLocks,
)

__all__ = [
    "Base",
    "metadata",
    "InstantQuotes",
    "Properties",
    "Appointments",
    "AppointmentHolds",
    "PolicySettings",
    "BookingDayLocks",
]
