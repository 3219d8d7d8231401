from datetime import date, datetime, timezone

from conftest import local

from fieldbook.models.generated import PolicySettings
from fieldbook.services.policy import (
    DatabasePolicyProvider,
    ServiceAreaPolicy,
    build_policy_snapshot,
    business_hour_windows_for_date,
    default_policy,
    is_postal_code_allowed,
    is_quiet_hours_active,
    is_within_business_hours,
    normalize_postal_code,
)


def test_defaults_when_nothing_stored():
    snapshot = build_policy_snapshot({})
    assert snapshot == default_policy()
    assert snapshot.timezone == "America/New_York"
    assert snapshot.booking_rules.booking_window_days == 30
    assert snapshot.booking_rules.buffer_minutes == 30
    assert snapshot.booking_rules.max_jobs_per_day == 6


def test_malformed_values_fall_back_field_by_field():
    snapshot = build_policy_snapshot({
        "booking_rules": {"bookingWindowDays": "soon", "bufferMinutes": 45, "maxJobsPerDay": True},
        "business_hours": {
            "timezone": "Mars/Olympus",
            "weekly": {"monday": [{"start": "9:00", "end": "17:30"}, {"start": "bad", "end": "12:00"}]},
            "closedDates": 20300604,
        },
    })
    assert snapshot.booking_rules.booking_window_days == 30
    assert snapshot.booking_rules.buffer_minutes == 45
    assert snapshot.booking_rules.max_jobs_per_day == 6
    assert snapshot.timezone == "America/New_York"
    monday = snapshot.business_hours.weekly["monday"]
    assert [(w.start, w.end) for w in monday] == [("09:00", "17:30")]
    # weekdays not mentioned keep the defaults
    assert [(w.start, w.end) for w in snapshot.business_hours.weekly["saturday"]] == [("09:00", "14:00")]
    assert snapshot.business_hours.closed_dates == frozenset()


def test_windows_for_weekday_saturday_and_sunday():
    hours = default_policy().business_hours
    monday = business_hour_windows_for_date(date(2030, 6, 3), hours)
    assert monday == [(local(3, 8), local(3, 18))]
    saturday = business_hour_windows_for_date(date(2030, 6, 8), hours)
    assert saturday == [(local(8, 9), local(8, 14))]
    assert business_hour_windows_for_date(date(2030, 6, 9), hours) == []


def test_closed_dates_have_no_windows():
    hours = build_policy_snapshot({"business_hours": {"closedDates": ["2030-06-04", "not-a-date"]}}).business_hours
    assert hours.closed_dates == frozenset({"2030-06-04"})
    assert business_hour_windows_for_date(date(2030, 6, 4), hours) == []
    assert business_hour_windows_for_date(date(2030, 6, 5), hours) != []


def test_within_business_hours():
    hours = default_policy().business_hours
    assert is_within_business_hours(local(3, 16), 120, hours)
    assert not is_within_business_hours(local(3, 17), 120, hours)
    assert not is_within_business_hours(local(3, 19), 120, hours)
    # same instant expressed in UTC
    assert is_within_business_hours(datetime(2030, 6, 3, 12, 0, tzinfo=timezone.utc), 120, hours)


def test_quiet_hours_wrap_midnight():
    quiet = default_policy().quiet_hours
    assert is_quiet_hours_active(local(3, 21), "sms", quiet, "America/New_York")
    assert is_quiet_hours_active(local(3, 7, 59), "sms", quiet, "America/New_York")
    assert not is_quiet_hours_active(local(3, 12), "sms", quiet, "America/New_York")
    assert not is_quiet_hours_active(local(3, 21), "fax", quiet, "America/New_York")


def test_postal_code_normalisation_and_allow_list():
    assert normalize_postal_code("30303-1234") == "30303"
    assert normalize_postal_code("303") is None
    assert is_postal_code_allowed("30303", ServiceAreaPolicy())
    area = build_policy_snapshot({"service_area": {"zipAllowlist": ["30303", "30060-0001"]}}).service_area
    assert area.zip_allowlist == ["30303", "30060"]
    assert is_postal_code_allowed("30060", area)
    assert not is_postal_code_allowed("90210", area)


def test_database_provider_rereads_every_call(db):
    provider = DatabasePolicyProvider(db)
    assert provider.get_policy().booking_rules.booking_window_days == 30

    db.add(PolicySettings(key="booking_rules", value={"bookingWindowDays": 7}))
    db.commit()
    assert provider.get_policy().booking_rules.booking_window_days == 7

    row = db.get(PolicySettings, "booking_rules")
    row.value = {"bookingWindowDays": 21}
    db.commit()
    assert provider.get_policy().booking_rules.booking_window_days == 21
