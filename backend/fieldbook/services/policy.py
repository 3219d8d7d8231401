"""
backend/fieldbook/services/policy.py

Business policy snapshot (read-only).

Policies live in the policy_settings table as JSON documents keyed by name:
  business_hours  {"timezone": "...", "weekly": {"monday": [{"start": "08:00", "end": "18:00"}], ...},
                   "closedDates": ["2030-12-25"]}
  quiet_hours     {"channels": {"sms": {"start": "20:00", "end": "08:00"}}}
  booking_rules   {"bookingWindowDays": 30, "bufferMinutes": 30, "maxJobsPerDay": 6, "maxJobsPerCrew": 3}
  service_area    {"zipAllowlist": ["30188", ...], "homeBase": "...", "radiusMiles": 50}
  standard_job    {"allowedServices": [...], "maxVolumeCubicYards": 12, "maxItemCount": 20}
  item_policies   {"declined": ["paint"], "extraFees": [{"item": "mattress", "fee": 25}]}

Every call re-reads the table, so edits apply on the next request.
Missing or malformed values fall back to defaults field by field.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ..models.generated import PolicySettings
from ..config import settings

logger = logging.getLogger(__name__)

WEEKDAY_KEYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class TimeWindow:
    start: str  # "HH:MM"
    end: str


@dataclass(frozen=True)
class BusinessHoursPolicy:
    timezone: str
    weekly: dict[str, list[TimeWindow]]
    closed_dates: frozenset[str] = frozenset()


@dataclass(frozen=True)
class QuietHoursPolicy:
    channels: dict[str, TimeWindow]


@dataclass(frozen=True)
class BookingRulesPolicy:
    booking_window_days: int = 30
    buffer_minutes: int = 30
    max_jobs_per_day: int = 6
    max_jobs_per_crew: int = 3


@dataclass(frozen=True)
class ServiceAreaPolicy:
    zip_allowlist: list[str] = field(default_factory=list)
    mode: str = "zip_allowlist"
    home_base: Optional[str] = None
    radius_miles: Optional[float] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class StandardJobPolicy:
    allowed_services: list[str] = field(default_factory=lambda: ["junk_removal_primary"])
    max_volume_cubic_yards: float = 12
    max_item_count: int = 20
    notes: Optional[str] = "Standard jobs only. Oversize/hazard items require approval."


@dataclass(frozen=True)
class ExtraFee:
    item: str
    fee: float


@dataclass(frozen=True)
class ItemPoliciesPolicy:
    declined: list[str] = field(default_factory=lambda: ["hazmat", "paint", "oil"])
    extra_fees: list[ExtraFee] = field(default_factory=lambda: [ExtraFee("mattress", 25)])


@dataclass(frozen=True)
class PolicySnapshot:
    business_hours: BusinessHoursPolicy
    quiet_hours: QuietHoursPolicy
    booking_rules: BookingRulesPolicy
    service_area: ServiceAreaPolicy
    standard_job: StandardJobPolicy
    item_policies: ItemPoliciesPolicy

    @property
    def timezone(self) -> str:
        return self.business_hours.timezone


class PolicyProvider(Protocol):
    def get_policy(self) -> PolicySnapshot: ...


def default_business_hours(timezone: Optional[str] = None) -> BusinessHoursPolicy:
    weekday = [TimeWindow("08:00", "18:00")]
    return BusinessHoursPolicy(
        timezone=timezone or settings.appointment_timezone,
        weekly={
            "monday": list(weekday),
            "tuesday": list(weekday),
            "wednesday": list(weekday),
            "thursday": list(weekday),
            "friday": list(weekday),
            "saturday": [TimeWindow("09:00", "14:00")],
            "sunday": [],
        },
    )


def default_quiet_hours() -> QuietHoursPolicy:
    return QuietHoursPolicy(channels={
        "sms": TimeWindow("20:00", "08:00"),
        "email": TimeWindow("19:00", "07:00"),
        "dm": TimeWindow("20:00", "08:00"),
    })


def default_policy() -> PolicySnapshot:
    return PolicySnapshot(
        business_hours=default_business_hours(),
        quiet_hours=default_quiet_hours(),
        booking_rules=BookingRulesPolicy(),
        service_area=ServiceAreaPolicy(),
        standard_job=StandardJobPolicy(),
        item_policies=ItemPoliciesPolicy(),
    )


class DatabasePolicyProvider:
    """Reads policy_settings on every call."""

    def __init__(self, db: Session):
        self.db = db

    def get_policy(self) -> PolicySnapshot:
        rows = self.db.query(PolicySettings).all()
        stored = {row.key: row.value for row in rows if isinstance(row.value, dict)}
        return build_policy_snapshot(stored)


def build_policy_snapshot(stored: dict[str, dict]) -> PolicySnapshot:
    """Coerce stored JSON documents into a snapshot."""
    return PolicySnapshot(
        business_hours=_coerce_business_hours(stored.get("business_hours")),
        quiet_hours=_coerce_quiet_hours(stored.get("quiet_hours")),
        booking_rules=_coerce_booking_rules(stored.get("booking_rules")),
        service_area=_coerce_service_area(stored.get("service_area")),
        standard_job=_coerce_standard_job(stored.get("standard_job")),
        item_policies=_coerce_item_policies(stored.get("item_policies")),
    )


# ── Business hours ───────────────────────────────────────────────────────


def resolve_timezone(value: Any) -> str:
    """Return value if it names a known zone, else the configured default."""
    fallback = settings.appointment_timezone
    candidate = value.strip() if isinstance(value, str) and value.strip() else fallback
    try:
        ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone in policy: {candidate!r}, using {fallback}")
        return fallback
    return candidate


def business_hour_windows_for_date(
    target_date: date,
    policy: BusinessHoursPolicy,
) -> list[tuple[datetime, datetime]]:
    """
    Working windows for a local calendar date, as aware datetimes in the policy zone.

    Closed dates and weekdays without windows yield an empty list.
    """
    if target_date.isoformat() in policy.closed_dates:
        return []

    tz = ZoneInfo(resolve_timezone(policy.timezone))
    windows = policy.weekly.get(WEEKDAY_KEYS[target_date.weekday()], [])

    result = []
    for window in windows:
        start_min = _to_minutes(window.start)
        end_min = _to_minutes(window.end)
        if end_min <= start_min:
            continue
        start = datetime.combine(target_date, time(start_min // 60, start_min % 60), tzinfo=tz)
        end = datetime.combine(target_date, time(end_min // 60, end_min % 60), tzinfo=tz)
        result.append((start, end))
    return result


def is_within_business_hours(start_at: datetime, duration_minutes: int, policy: BusinessHoursPolicy) -> bool:
    tz = ZoneInfo(resolve_timezone(policy.timezone))
    start_local = start_at.astimezone(tz)
    end_local = start_local + timedelta(minutes=duration_minutes)
    return any(
        start_local >= w_start and end_local <= w_end
        for w_start, w_end in business_hour_windows_for_date(start_local.date(), policy)
    )


def is_quiet_hours_active(at: datetime, channel: str, policy: QuietHoursPolicy, timezone: str) -> bool:
    """True if `at` falls inside the channel's quiet window (windows may wrap midnight)."""
    window = policy.channels.get(channel)
    if not window:
        return False
    local = at.astimezone(ZoneInfo(resolve_timezone(timezone)))
    minutes = local.hour * 60 + local.minute
    start = _to_minutes(window.start)
    end = _to_minutes(window.end)
    if start == end:
        return False
    if start < end:
        return start <= minutes < end
    return minutes >= start or minutes < end


# ── Service area ─────────────────────────────────────────────────────────


def normalize_postal_code(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    if len(digits) < 5:
        return None
    return digits[:5]


def is_postal_code_allowed(postal_code: Optional[str], policy: ServiceAreaPolicy) -> bool:
    normalized = normalize_postal_code(postal_code)
    if not normalized:
        return False
    if not policy.zip_allowlist:
        return True
    return normalized in policy.zip_allowlist


# ── Coercion helpers ─────────────────────────────────────────────────────


def _to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hour, minute = value.split(":")
    return int(hour) * 60 + int(minute)


def _parse_time(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def _coerce_window(value: Any) -> Optional[TimeWindow]:
    if not isinstance(value, dict):
        return None
    start = _parse_time(value.get("start"))
    end = _parse_time(value.get("end"))
    if not start or not end:
        return None
    return TimeWindow(start, end)


def _coerce_window_list(value: Any, fallback: list[TimeWindow]) -> list[TimeWindow]:
    if not isinstance(value, list):
        return list(fallback)
    return [w for w in (_coerce_window(item) for item in value) if w]


def _number(value: Any, fallback):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return fallback
    return value


def _string_list(value: Any, fallback: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(fallback)
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _optional_str(value: Any, fallback: Optional[str]) -> Optional[str]:
    return value if isinstance(value, str) else fallback


def _coerce_business_hours(stored: Optional[dict]) -> BusinessHoursPolicy:
    default = default_business_hours()
    if not stored:
        return default
    weekly_raw = stored.get("weekly") if isinstance(stored.get("weekly"), dict) else {}
    weekly = {
        key: _coerce_window_list(weekly_raw.get(key), default.weekly[key])
        for key in WEEKDAY_KEYS
    }
    raw_closed = stored.get("closedDates")
    if not isinstance(raw_closed, list):
        raw_closed = []
    closed = []
    for value in raw_closed:
        try:
            closed.append(date.fromisoformat(str(value)).isoformat())
        except ValueError:
            continue
    return BusinessHoursPolicy(
        timezone=resolve_timezone(stored.get("timezone")),
        weekly=weekly,
        closed_dates=frozenset(closed),
    )


def _coerce_quiet_hours(stored: Optional[dict]) -> QuietHoursPolicy:
    default = default_quiet_hours()
    if not stored:
        return default
    channels = dict(default.channels)
    raw = stored.get("channels") if isinstance(stored.get("channels"), dict) else {}
    for channel, value in raw.items():
        window = _coerce_window(value)
        if window:
            channels[channel] = window
    return QuietHoursPolicy(channels=channels)


def _coerce_booking_rules(stored: Optional[dict]) -> BookingRulesPolicy:
    default = BookingRulesPolicy()
    if not stored:
        return default
    return BookingRulesPolicy(
        booking_window_days=int(_number(stored.get("bookingWindowDays"), default.booking_window_days)),
        buffer_minutes=int(_number(stored.get("bufferMinutes"), default.buffer_minutes)),
        max_jobs_per_day=int(_number(stored.get("maxJobsPerDay"), default.max_jobs_per_day)),
        max_jobs_per_crew=int(_number(stored.get("maxJobsPerCrew"), default.max_jobs_per_crew)),
    )


def _coerce_service_area(stored: Optional[dict]) -> ServiceAreaPolicy:
    default = ServiceAreaPolicy()
    if not stored:
        return default
    allowlist = [
        code for code in (normalize_postal_code(v) for v in _string_list(stored.get("zipAllowlist"), []))
        if code
    ]
    return ServiceAreaPolicy(
        zip_allowlist=allowlist,
        home_base=_optional_str(stored.get("homeBase"), default.home_base),
        radius_miles=_number(stored.get("radiusMiles"), default.radius_miles),
        notes=_optional_str(stored.get("notes"), default.notes),
    )


def _coerce_standard_job(stored: Optional[dict]) -> StandardJobPolicy:
    default = StandardJobPolicy()
    if not stored:
        return default
    return StandardJobPolicy(
        allowed_services=_string_list(stored.get("allowedServices"), default.allowed_services),
        max_volume_cubic_yards=_number(stored.get("maxVolumeCubicYards"), default.max_volume_cubic_yards),
        max_item_count=int(_number(stored.get("maxItemCount"), default.max_item_count)),
        notes=_optional_str(stored.get("notes"), default.notes),
    )


def _coerce_item_policies(stored: Optional[dict]) -> ItemPoliciesPolicy:
    default = ItemPoliciesPolicy()
    if not stored:
        return default
    fees_raw = stored.get("extraFees")
    if isinstance(fees_raw, list):
        extra_fees = []
        for entry in fees_raw:
            if not isinstance(entry, dict):
                continue
            item = entry.get("item").strip() if isinstance(entry.get("item"), str) else ""
            fee = _number(entry.get("fee"), None)
            if item and fee is not None and fee >= 0:
                extra_fees.append(ExtraFee(item, fee))
    else:
        extra_fees = list(default.extra_fees)
    return ItemPoliciesPolicy(
        declined=_string_list(stored.get("declined"), default.declined),
        extra_fees=extra_fees,
    )
