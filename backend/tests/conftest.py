"""
Shared fixtures: file-backed SQLite, fake policy/geocoder, in-memory Redis list.

Settings are read at import time, so the environment is prepared before any
fieldbook module is imported.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from uuid import uuid4
from zoneinfo import ZoneInfo

_DB_DIR = tempfile.mkdtemp(prefix="fieldbook-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ["APPOINTMENT_TIMEZONE"] = "America/New_York"
os.environ["MAPBOX_ACCESS_TOKEN"] = ""

import pytest  # noqa: E402

from fieldbook.database import SessionLocal, create_tables  # noqa: E402
from fieldbook.models.generated import (  # noqa: E402
    AppointmentHolds,
    Appointments,
    Base,
    InstantQuotes,
    Properties,
)
from fieldbook.services import events  # noqa: E402
from fieldbook.services.geocode import Address  # noqa: E402
from fieldbook.services.policy import build_policy_snapshot  # noqa: E402
from fieldbook.services.slots.config import BookingConfig  # noqa: E402

TZ = ZoneInfo("America/New_York")

# Monday 2030-06-03 06:00 EDT
NOW = datetime(2030, 6, 3, 10, 0, tzinfo=timezone.utc)

ADDRESS = Address(
    address_line1="120 Peachtree St NE",
    city="Atlanta",
    state="GA",
    postal_code="30303",
)


def local(day: int, hour: int, minute: int = 0, month: int = 6) -> datetime:
    """Aware New York datetime in 2030."""
    return datetime(2030, month, day, hour, minute, tzinfo=TZ)


# ── Fakes ────────────────────────────────────────────────────────────────


class DummyRedis:
    def __init__(self):
        self.lists: dict[str, list[str]] = {}
        self.values: dict[str, str] = {}

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value
        return True

    def ping(self):
        return True


class StaticPolicyProvider:
    def __init__(self, **documents):
        self.documents = documents
        self.calls = 0

    def get_policy(self):
        self.calls += 1
        return build_policy_snapshot(self.documents)


class StaticGeocoder:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def geocode(self, address):
        self.calls.append(address)
        if self.error is not None:
            raise self.error
        return self.result


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture(scope="session", autouse=True)
def _tables():
    create_tables()
    yield


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    session = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    finally:
        session.close()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def redis_events(monkeypatch):
    dummy = DummyRedis()
    monkeypatch.setattr(events, "redis_client", dummy)
    return dummy


@pytest.fixture
def config():
    return BookingConfig()


@pytest.fixture
def policy():
    """Default business hours, 14-day window."""
    return StaticPolicyProvider(booking_rules={"bookingWindowDays": 14})


@pytest.fixture
def geocoder():
    return StaticGeocoder()


# ── Seed helpers ─────────────────────────────────────────────────────────


def make_quote(db, perceived_size="few_items", ai_result=None, job_types=None, notes=None) -> InstantQuotes:
    quote = InstantQuotes(
        perceived_size=perceived_size,
        job_types=job_types if job_types is not None else ["general_junk"],
        ai_result=ai_result or {},
        notes=notes,
        zip="30303",
    )
    db.add(quote)
    db.commit()
    return quote


def make_property(db, address_line1="1 Test Way", city="Atlanta", state="GA", postal_code="30303",
                  lat=None, lng=None) -> Properties:
    prop = Properties(
        address_line1=address_line1,
        city=city,
        state=state,
        postal_code=postal_code,
        lat=lat,
        lng=lng,
    )
    db.add(prop)
    db.commit()
    return prop


def make_appointment(db, start_at, prop=None, duration=120, buffer=30, status="confirmed") -> Appointments:
    if prop is None:
        prop = make_property(db, address_line1=f"{uuid4().hex[:8]} Appointment Rd")
    appt = Appointments(
        property_id=prop.id,
        start_at=start_at,
        duration_min=duration,
        travel_buffer_min=buffer,
        status=status,
    )
    db.add(appt)
    db.commit()
    return appt


def make_hold(db, start_at, expires_at, quote=None, duration=120, buffer=30, status="active") -> AppointmentHolds:
    quote = quote or make_quote(db)
    hold = AppointmentHolds(
        instant_quote_id=quote.id,
        start_at=start_at,
        duration_min=duration,
        travel_buffer_min=buffer,
        status=status,
        expires_at=expires_at,
    )
    db.add(hold)
    db.commit()
    return hold


def utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc)


def after(minutes: int) -> datetime:
    return NOW + timedelta(minutes=minutes)


