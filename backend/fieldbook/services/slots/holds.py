# backend/fieldbook/services/slots/holds.py
"""
Hold reservation.

A hold reserves one start time for a quote for a short TTL, until a downstream
confirmation step turns it into an appointment (see get_hold_handoff).

create_hold runs in one transaction, serialized per local calendar day:
    1. quote lock, then day lock
    2. release the quote's other active holds
    3. daily ceiling      -> day_full
    4. capacity overlap   -> slot_full
    5. insert the hold
Any error rolls the whole transaction back.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...errors import CapacityExceeded, NotFound, ValidationFailed
from ...models.generated import AppointmentHolds, Appointments, InstantQuotes, utcnow
from ..events import emit_event
from ..geocode import Address, Geocoder, LatLng
from ..policy import PolicyProvider, PolicySnapshot, business_hour_windows_for_date, resolve_timezone
from ..properties import get_or_create_property, normalize_address, resolve_coordinates
from ..standard_job import StandardJobEvaluation, build_standard_job_message, evaluate_standard_job
from .availability import ensure_in_service_area
from .config import BookingConfig, get_booking_config
from .duration import estimate_duration
from .intervals import active_appointment_clause, active_hold_clause, load_blocked_intervals, overlap_count
from .locks import acquire_day_lock, acquire_quote_lock, day_lock_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StandardJobReview:
    required: bool
    message: str
    evaluation: StandardJobEvaluation


@dataclass(frozen=True)
class HoldResult:
    hold_id: str
    expires_at: datetime
    standard_job_review: Optional[StandardJobReview] = None


@dataclass(frozen=True)
class HoldHandoff:
    """What the confirmation step needs to turn a hold into an appointment."""
    hold_id: str
    instant_quote_id: Optional[str]
    property_id: Optional[str]
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    travel_buffer_minutes: int
    expires_at: datetime


def create_hold(
    db: Session,
    quote_id: str,
    start_at: datetime,
    location: Address,
    *,
    policy_provider: PolicyProvider,
    geocoder: Geocoder,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> HoldResult:
    """
    Reserve start_at for a quote.

    Raises:
        ValidationFailed: invalid_startAt, out_of_area, start_in_past,
            outside_booking_window, unavailable_day, outside_business_hours,
            invalid_start_time
        NotFound: quote_not_found
        CapacityExceeded: day_full, slot_full
    """
    config = config or get_booking_config()
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    location = normalize_address(location)

    if start_at.tzinfo is None or start_at.utcoffset() is None:
        raise ValidationFailed("invalid_startAt", message="startAt must carry a UTC offset")

    policy = policy_provider.get_policy()
    ensure_in_service_area(location, policy)

    quote = db.get(InstantQuotes, quote_id)
    if quote is None:
        raise NotFound("quote_not_found")

    review = _standard_job_review(quote, policy)
    duration = estimate_duration(quote.perceived_size, quote.ai_result).duration_minutes
    travel_buffer = policy.booking_rules.buffer_minutes

    tz = ZoneInfo(resolve_timezone(policy.timezone))
    start_local = start_at.astimezone(tz)
    _validate_start(start_local, now, duration, policy, config)

    # Outside the transaction: may call the geocoder
    coords = resolve_coordinates(db, location, geocoder)

    start_utc = start_at.astimezone(timezone.utc)
    try:
        acquire_quote_lock(db, quote.id)
        acquire_day_lock(db, day_lock_key(start_local.date()))
        _release_active_holds(db, quote.id, now)
        _check_day_ceiling(db, start_local, now, policy)
        _check_capacity(db, start_utc, duration, travel_buffer, now, config)
        hold = _insert_hold(
            db, quote.id, location, coords, start_utc, duration, travel_buffer, now + config.hold_ttl,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    handoff = _to_handoff(hold)
    logger.info(f"Hold {hold.id} created: quote={quote.id} start={start_utc.isoformat()} expires={hold.expires_at.isoformat()}")
    emit_event("hold_created", asdict(handoff))

    return HoldResult(hold_id=hold.id, expires_at=hold.expires_at, standard_job_review=review)


def get_hold_handoff(db: Session, hold_id: str, now: datetime | None = None) -> HoldHandoff:
    """Hand-off contract of an active, unexpired, unconsumed hold."""
    now = now or datetime.now(timezone.utc)
    hold = (
        db.query(AppointmentHolds)
        .filter(
            AppointmentHolds.id == hold_id,
            active_hold_clause(now),
            AppointmentHolds.consumed_at.is_(None),
        )
        .first()
    )
    if hold is None:
        raise NotFound("hold_not_found")
    return _to_handoff(hold)


def release_hold(db: Session, hold_id: str) -> AppointmentHolds:
    """Mark a hold released. Releasing a released hold is a no-op."""
    hold = db.get(AppointmentHolds, hold_id)
    if hold is None:
        raise NotFound("hold_not_found")
    if hold.status == "active":
        hold.status = "released"
        hold.updated_at = utcnow()
        db.commit()
        logger.info(f"Hold {hold_id} released")
    return hold


# ── Validation (no writes) ───────────────────────────────────────────────


def _validate_start(
    start_local: datetime,
    now: datetime,
    duration: int,
    policy: PolicySnapshot,
    config: BookingConfig,
) -> None:
    if start_local <= now:
        raise ValidationFailed("start_in_past")

    now_local = now.astimezone(start_local.tzinfo)
    window_days = config.window_days(policy.booking_rules.booking_window_days)
    # One day past the last day the scanner offers
    last_day = now_local.date() + timedelta(days=window_days)
    if start_local > datetime.combine(last_day, time.max, tzinfo=start_local.tzinfo):
        raise ValidationFailed("outside_booking_window")

    windows = business_hour_windows_for_date(start_local.date(), policy.business_hours)
    if not windows:
        raise ValidationFailed("unavailable_day")

    end_local = start_local + timedelta(minutes=duration)
    window = next((w for w in windows if start_local >= w[0] and end_local <= w[1]), None)
    if window is None:
        raise ValidationFailed("outside_business_hours")

    offset_seconds = (start_local - window[0]).total_seconds()
    if offset_seconds % (config.slot_step_minutes * 60) != 0:
        raise ValidationFailed("invalid_start_time")


def _standard_job_review(quote: InstantQuotes, policy: PolicySnapshot) -> Optional[StandardJobReview]:
    evaluation = evaluate_standard_job(
        job_types=quote.job_types or [],
        perceived_size=quote.perceived_size,
        notes=quote.notes,
        ai_result=quote.ai_result,
        standard_policy=policy.standard_job,
        item_policy=policy.item_policies,
    )
    if evaluation.is_standard:
        return None
    return StandardJobReview(required=True, message=build_standard_job_message(evaluation), evaluation=evaluation)


# ── Transactional steps ──────────────────────────────────────────────────


def _release_active_holds(db: Session, quote_id: str, now: datetime) -> int:
    released = (
        db.query(AppointmentHolds)
        .filter(AppointmentHolds.instant_quote_id == quote_id, AppointmentHolds.status == "active")
        .update({AppointmentHolds.status: "released", AppointmentHolds.updated_at: now}, synchronize_session=False)
    )
    if released:
        logger.info(f"Released {released} prior hold(s) for quote {quote_id}")
    return released


def _check_day_ceiling(db: Session, start_local: datetime, now: datetime, policy: PolicySnapshot) -> None:
    max_jobs = policy.booking_rules.max_jobs_per_day
    if max_jobs <= 0:
        return

    tz = start_local.tzinfo
    day_start = datetime.combine(start_local.date(), time.min, tzinfo=tz).astimezone(timezone.utc)
    day_end = datetime.combine(start_local.date() + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)

    appointments = (
        db.query(func.count(Appointments.id))
        .filter(active_appointment_clause(), Appointments.start_at >= day_start, Appointments.start_at < day_end)
        .scalar()
    )
    holds = (
        db.query(func.count(AppointmentHolds.id))
        .filter(active_hold_clause(now), AppointmentHolds.start_at >= day_start, AppointmentHolds.start_at < day_end)
        .scalar()
    )
    if (appointments or 0) + (holds or 0) >= max_jobs:
        logger.info(f"Day full: {start_local.date()} ({appointments} appointments, {holds} holds, max {max_jobs})")
        raise CapacityExceeded("day_full")


def _check_capacity(
    db: Session,
    start_utc: datetime,
    duration: int,
    travel_buffer: int,
    now: datetime,
    config: BookingConfig,
) -> None:
    end_utc = start_utc + timedelta(minutes=duration)
    blocks = load_blocked_intervals(
        db,
        window_start=start_utc - config.padding,
        window_end=end_utc + config.padding,
        now=now,
        default_duration=duration,
        default_buffer=travel_buffer,
    )
    if overlap_count(blocks, start_utc, end_utc) >= config.capacity:
        logger.info(f"Slot full: {start_utc.isoformat()} (capacity {config.capacity})")
        raise CapacityExceeded("slot_full")


def _insert_hold(
    db: Session,
    quote_id: str,
    location: Address,
    coords: Optional[LatLng],
    start_utc: datetime,
    duration: int,
    travel_buffer: int,
    expires_at: datetime,
) -> AppointmentHolds:
    prop = get_or_create_property(db, location, coords)
    hold = AppointmentHolds(
        instant_quote_id=quote_id,
        property_id=prop.id,
        start_at=start_utc,
        duration_min=duration,
        travel_buffer_min=travel_buffer,
        status="active",
        expires_at=expires_at,
    )
    db.add(hold)
    db.flush()
    return hold


def _to_handoff(hold: AppointmentHolds) -> HoldHandoff:
    return HoldHandoff(
        hold_id=hold.id,
        instant_quote_id=hold.instant_quote_id,
        property_id=hold.property_id,
        start_at=hold.start_at,
        end_at=hold.start_at + timedelta(minutes=hold.duration_min),
        duration_minutes=hold.duration_min,
        travel_buffer_minutes=hold.travel_buffer_min,
        expires_at=hold.expires_at,
    )
