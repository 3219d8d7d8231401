from datetime import timedelta

import pytest
from conftest import NOW, local, make_appointment, make_hold, make_property

from fieldbook.services.slots.intervals import (
    BlockedInterval,
    distance_km,
    load_blocked_intervals,
    overlap_count,
    overlaps,
)


def test_overlap_is_half_open():
    a, b = local(3, 8), local(3, 10)
    assert overlaps(a, b, local(3, 9), local(3, 11))
    assert not overlaps(a, b, b, local(3, 12))
    assert not overlaps(a, b, local(3, 7), a)


def test_overlap_count():
    blocks = [
        BlockedInterval(start=local(3, 8), end=local(3, 10, 30), source="appointment"),
        BlockedInterval(start=local(3, 10), end=local(3, 12, 30), source="hold"),
    ]
    assert overlap_count(blocks, local(3, 10), local(3, 12)) == 2
    assert overlap_count(blocks, local(3, 12, 30), local(3, 14, 30)) == 0


def test_distance_km():
    assert distance_km(33.75, -84.39, 33.75, -84.39) == 0
    # one degree of latitude
    assert distance_km(33.0, -84.0, 34.0, -84.0) == pytest.approx(111.19, abs=0.05)


def test_load_blocked_intervals(db):
    prop = make_property(db, city=" Atlanta ", state="ga", lat=33.75, lng=-84.39)
    make_appointment(db, local(3, 10), prop=prop, duration=90, buffer=15)
    make_appointment(db, local(3, 13), status="canceled")
    make_hold(db, local(4, 9), expires_at=NOW + timedelta(minutes=5), duration=180, buffer=0)
    make_hold(db, local(4, 9), expires_at=NOW)
    make_appointment(db, local(20, 10))  # outside the window

    blocks = load_blocked_intervals(db, NOW - timedelta(days=1), NOW + timedelta(days=3), NOW, 120, 30)

    assert [(b.source, b.start, b.end) for b in blocks] == [
        ("appointment", local(3, 10), local(3, 11, 45)),
        ("hold", local(4, 9), local(4, 12)),
    ]
    assert (blocks[0].city, blocks[0].state, blocks[0].lat) == ("atlanta", "ga", 33.75)
    assert blocks[1].lat is None and blocks[1].city is None
