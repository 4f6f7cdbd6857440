import datetime

from stallbook.services.recommendation import (
    BEST_MATCH,
    POPULAR,
    UNDER_EXPLORED,
    collect_stats,
    recommend,
)

TODAY = datetime.date(2025, 6, 30)


def _market(id_):
    return {"id": id_, "city": "Тайбэй", "name": f"Рынок {id_}"}


def _booking(market_id, date_, vendor_id):
    return {"market_id": market_id, "date": date_, "vendor_id": vendor_id}


def _ids(suggestions):
    return [(s.market_id, s.reason) for s in suggestions]


def test_no_markets_no_suggestions():
    assert recommend([], [], "vendor-a", today=TODAY) == []


def test_never_booked_markets_are_eligible():
    markets = [_market("m1"), _market("m2")]
    result = recommend([], markets, "vendor-a", today=TODAY)
    assert _ids(result) == [("m1", POPULAR), ("m2", POPULAR)]
    assert all(s.last_booked is None and s.count == 0 for s in result)


def test_recently_booked_market_is_excluded():
    markets = [_market("m1"), _market("m2")]
    bookings = [_booking("m1", "2025-06-20", "vendor-b")]
    assert _ids(recommend(bookings, markets, "vendor-a", today=TODAY)) == [("m2", POPULAR)]


def test_threshold_boundary():
    markets = [_market("m1")]
    # ровно 14 дней назад - еще не подходит, 15 дней - подходит
    on_cutoff = [_booking("m1", "2025-06-16", "vendor-b")]
    before_cutoff = [_booking("m1", "2025-06-15", "vendor-b")]
    assert recommend(on_cutoff, markets, "vendor-a", today=TODAY) == []
    assert len(recommend(before_cutoff, markets, "vendor-a", today=TODAY)) == 1


def test_categories_in_precedence_order():
    markets = [_market(m) for m in ("m1", "m2", "m3", "m4")]
    bookings = [
        _booking("m1", "2025-05-01", "vendor-a"),
        _booking("m1", "2025-05-08", "vendor-a"),
        _booking("m1", "2025-05-15", "vendor-a"),
        _booking("m2", "2025-05-02", "vendor-a"),
        _booking("m3", "2025-05-03", "vendor-b"),
        _booking("m3", "2025-05-10", "vendor-b"),
        _booking("m3", "2025-05-17", "vendor-b"),
        _booking("m3", "2025-05-24", "vendor-b"),
    ]
    result = recommend(bookings, markets, "vendor-a", today=TODAY)
    assert _ids(result) == [("m1", BEST_MATCH), ("m2", UNDER_EXPLORED), ("m3", POPULAR)]
    assert result[0].count == 3
    assert result[0].last_booked == datetime.date(2025, 5, 15)


def test_results_are_deduplicated_when_vendor_used_one_market():
    markets = [_market("m1"), _market("m2")]
    bookings = [_booking("m1", "2025-05-01", "vendor-a")]
    result = recommend(bookings, markets, "vendor-a", today=TODAY)
    assert _ids(result) == [("m1", BEST_MATCH), ("m2", POPULAR)]


def test_popular_ties_prefer_staler_then_id():
    markets = [_market("m3"), _market("m2"), _market("m1")]
    bookings = [
        _booking("m1", "2025-05-10", "vendor-b"),
        _booking("m2", "2025-05-01", "vendor-b"),
        _booking("m3", "2025-05-01", "vendor-b"),
    ]
    result = recommend(bookings, markets, None, today=TODAY)
    assert [s.market_id for s in result] == ["m2", "m3", "m1"]


def test_limit_and_custom_threshold():
    markets = [_market(f"m{i}") for i in range(5)]
    assert len(recommend([], markets, "vendor-a", today=TODAY)) == 3
    assert len(recommend([], markets, "vendor-a", today=TODAY, limit=5)) == 5

    bookings = [_booking("m0", "2025-06-25", "vendor-b")]
    result = recommend(bookings, markets[:1], "vendor-a", today=TODAY, threshold_days=3)
    assert _ids(result) == [("m0", POPULAR)]


def test_collect_stats_counts_vendor_and_total():
    markets = [_market("m1")]
    bookings = [
        _booking("m1", "2025-05-01", "vendor-a"),
        _booking("m1", "2025-05-20", "vendor-b"),
        _booking("unknown", "2025-05-20", "vendor-b"),
    ]
    stats = collect_stats(bookings, markets, "vendor-a")
    assert list(stats) == ["m1"]
    assert stats["m1"].count == 2
    assert stats["m1"].vendor_count == 1
    assert stats["m1"].last_booked == datetime.date(2025, 5, 20)


def test_vendor_ties_prefer_staler_market():
    markets = [_market("m1"), _market("m2"), _market("m3")]
    bookings = [
        _booking("m1", "2025-06-01", "vendor-a"),
        _booking("m2", "2025-01-01", "vendor-a"),
    ]
    result = recommend(bookings, markets, "vendor-a", today=TODAY)
    assert _ids(result) == [("m2", BEST_MATCH), ("m1", UNDER_EXPLORED), ("m3", POPULAR)]
    assert result[0].last_booked == datetime.date(2025, 1, 1)
