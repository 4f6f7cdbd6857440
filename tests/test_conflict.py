import datetime

import pytest

from stallbook.services.conflict import (
    CONFLICT_WINDOW_MS,
    day_distance_ms,
    find_conflicts,
    has_conflict,
    to_date,
)


def _booking(id_, market_id, date_, vendor_id="vendor-a"):
    return {"id": id_, "market_id": market_id, "date": date_, "vendor_id": vendor_id}


def test_window_is_seven_days_in_ms():
    assert CONFLICT_WINDOW_MS == 7 * 86400000


@pytest.mark.parametrize(
    "candidate, expected",
    [
        ("2025-03-10", True),
        ("2025-03-16", True),
        ("2025-03-17", False),
        ("2025-03-04", True),
        ("2025-03-03", False),
    ],
)
def test_boundary_is_exclusive(candidate, expected):
    bookings = [_booking("b1", "m1", "2025-03-10")]
    assert has_conflict(bookings, "m1", candidate) is expected


def test_other_market_never_conflicts():
    bookings = [_booking("b1", "m1", "2025-03-10")]
    assert find_conflicts(bookings, "m2", "2025-03-10") == []


def test_empty_market_id_is_not_a_conflict():
    bookings = [_booking("b1", "", "2025-03-10")]
    assert find_conflicts(bookings, "", "2025-03-10") == []
    assert find_conflicts(bookings, None, "2025-03-10") == []


def test_edit_excludes_own_booking():
    bookings = [_booking("b1", "m1", "2025-03-10"), _booking("b2", "m1", "2025-03-20")]
    assert find_conflicts(bookings, "m1", "2025-03-12", exclude_booking_id="b1") == []
    assert [b["id"] for b in find_conflicts(bookings, "m1", "2025-03-14", "b1")] == ["b2"]


def test_scenario_from_vendor_bookings():
    # A на m1 10.03, B пытается 14.03 - конфликт, на 17.03 - можно
    existing = [_booking("a1", "m1", datetime.date(2025, 3, 10), "vendor-a")]
    assert has_conflict(existing, "m1", datetime.date(2025, 3, 14))
    assert not has_conflict(existing, "m1", datetime.date(2025, 3, 17))


def test_conflict_is_symmetric():
    first = _booking("a1", "m1", "2025-03-10", "vendor-a")
    second = _booking("b1", "m1", "2025-03-13", "vendor-b")
    assert has_conflict([first], "m1", second["date"])
    assert has_conflict([second], "m1", first["date"])


def test_works_with_objects_and_camel_case_fields():
    class Row:
        def __init__(self):
            self.id = "x"
            self.marketId = "m1"
            self.date = datetime.date(2025, 1, 1)

    assert has_conflict([Row()], "m1", "2025-01-05")


def test_day_distance_and_to_date():
    assert day_distance_ms("2025-01-01", "2025-01-08") == CONFLICT_WINDOW_MS
    assert day_distance_ms(datetime.date(2025, 1, 8), "2025-01-01") == CONFLICT_WINDOW_MS
    assert to_date(datetime.datetime(2025, 5, 1, 23, 59)) == datetime.date(2025, 5, 1)
    with pytest.raises(ValueError):
        to_date("01.05.2025")
