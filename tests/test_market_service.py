import pytest

from stallbook.core.exceptions import ValidationError
from stallbook.services.announcement_service import AnnouncementService
from stallbook.services.booking_service import BookingService
from stallbook.services.market_service import MarketService


@pytest.mark.asyncio
async def test_create_and_group_markets(session, markets):
    svc = MarketService(session)
    market = await svc.create_market(" Гаосюн ", "Рынок Лючжун")

    assert market.id
    assert market.city == "Гаосюн"
    assert await svc.get_cities() == ["Гаосюн", "Тайбэй", "Тайчжун"]

    grouped = await svc.grouped_by_city()
    assert [m.name for m in grouped["Тайбэй"]] == ["Ночной рынок Шилинь", "Рынок Раохэ"]
    assert [m.id for m in await svc.get_by_city("Тайчжун")] == ["m3"]


@pytest.mark.asyncio
async def test_duplicate_markets_are_allowed(session, markets):
    svc = MarketService(session)
    copy = await svc.create_market("Тайбэй", "Рынок Раохэ")

    assert copy.id != "m2"
    assert len(await svc.get_by_city("Тайбэй")) == 3
    found = await svc.find_by_name("Рынок Раохэ", "Тайбэй")
    assert found.id in ("m2", copy.id)


@pytest.mark.asyncio
async def test_invalid_market_names_are_rejected(session):
    svc = MarketService(session)
    with pytest.raises(ValidationError):
        await svc.create_market("Тайбэй", "")
    with pytest.raises(ValidationError):
        await svc.create_market("", "Рынок")
    with pytest.raises(ValidationError):
        await svc.create_market("Тайбэй", "x" * 101)


@pytest.mark.asyncio
async def test_market_names_with_sql_words_are_allowed(session):
    svc = MarketService(session)
    market = await svc.create_market("New York", "Union Square Greenmarket")
    assert market.name == "Union Square Greenmarket"

    market = await svc.update_market(market, name="Update; Select Street Fair")
    assert market.name == "Update; Select Street Fair"


@pytest.mark.asyncio
async def test_update_market_keeps_booking_snapshots(session, vendors, markets):
    booking = (await BookingService(session).create(vendors["a"], "2025-03-10", "m1")).result

    svc = MarketService(session)
    market = await svc.update_market(markets["m1"], name="Шилинь")
    assert market.name == "Шилинь"
    assert market.city == "Тайбэй"
    assert await svc.update_market(market) is market

    stored = await BookingService(session).get_by_id(booking.id)
    assert stored.market_name == "Ночной рынок Шилинь"


@pytest.mark.asyncio
async def test_delete_market_refused_while_booked(session, vendors, markets):
    await BookingService(session).create(vendors["a"], "2025-03-10", "m1")
    svc = MarketService(session)

    with pytest.raises(ValidationError):
        await svc.delete_market(markets["m1"])

    await svc.delete_market(markets["m2"])
    assert await svc.get_by_id("m2") is None


@pytest.mark.asyncio
async def test_announcements_latest_only(session):
    svc = AnnouncementService(session)
    assert await svc.get_latest() is None

    await svc.post("Завтра ярмарка")
    second = await svc.post("  Ярмарка перенесена <b>на субботу</b> ")

    latest = await svc.get_latest()
    assert latest.id == second.id
    assert latest.content == "Ярмарка перенесена bна субботу/b"

    with pytest.raises(ValidationError):
        await svc.post("   ")
    with pytest.raises(ValidationError):
        await svc.post("x" * 2001)
