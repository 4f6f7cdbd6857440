import pytest

from stallbook.core.config import Settings
from stallbook.core.exceptions import AuthError, PermissionDeniedError, ValidationError
from stallbook.models.vendor import Vendor
from stallbook.services.booking_service import BookingService
from stallbook.services.market_service import MarketService
from stallbook.services.vendor_service import VendorService


@pytest.mark.asyncio
async def test_create_vendor_and_lookup_is_case_insensitive(session):
    svc = VendorService(session)

    vendor = await svc.create_vendor("Vendor-C", "Продавец C")
    assert isinstance(vendor, Vendor)
    assert vendor.id == "Vendor-C"
    assert not vendor.is_admin
    assert not vendor.has_password

    assert (await svc.get_by_id("vendor-c")).id == "Vendor-C"
    with pytest.raises(ValidationError):
        await svc.create_vendor("VENDOR-C", "Дубликат")


@pytest.mark.asyncio
async def test_create_vendor_validates_input(session):
    svc = VendorService(session)
    with pytest.raises(ValidationError):
        await svc.create_vendor("bad id", "Имя")
    with pytest.raises(ValidationError):
        await svc.create_vendor("ok-id", "   ")
    with pytest.raises(ValidationError):
        await svc.create_vendor("ok-id", "Имя", password="123")


@pytest.mark.asyncio
async def test_password_is_hashed_and_verified(session):
    svc = VendorService(session)
    vendor = await svc.create_vendor("v1", "Продавец", password="secret-1")

    assert vendor.password_hash != "secret-1"
    assert (await svc.authenticate("V1", "secret-1")).id == "v1"
    with pytest.raises(AuthError):
        await svc.authenticate("v1", "wrong")
    with pytest.raises(AuthError):
        await svc.authenticate("nobody", "secret-1")


@pytest.mark.asyncio
async def test_vendor_without_password_logs_in_by_id(session, vendors):
    svc = VendorService(session)
    vendor = await svc.authenticate("vendor-a", None)
    assert vendor.id == "vendor-a"

    await svc.set_password(vendor, "abcd")
    with pytest.raises(AuthError):
        await svc.authenticate("vendor-a", None)


@pytest.mark.asyncio
async def test_change_and_reset_password(session, vendors):
    svc = VendorService(session)
    vendor = await svc.set_password(vendors["a"], "first")

    with pytest.raises(AuthError):
        await svc.authenticate("vendor-a", "second")
    await svc.set_password(vendor, "second")
    await svc.authenticate("vendor-a", "second")

    reset = await svc.reset_password("vendor-a")
    assert reset.password_hash is None
    with pytest.raises(ValidationError):
        await svc.reset_password("ghost")


@pytest.mark.asyncio
async def test_delete_vendor_keeps_booking_history(session, vendors, markets):
    svc = VendorService(session)
    booking = (await BookingService(session).create(vendors["b"], "2025-03-10", "m1")).result

    with pytest.raises(PermissionDeniedError):
        await svc.delete_vendor("SD", protected_id="sd")

    await svc.delete_vendor("vendor-b", protected_id="sd")
    assert await svc.get_by_id("vendor-b") is None

    kept = await BookingService(session).get_by_id(booking.id)
    assert kept.vendor_name == "Продавец B"


@pytest.mark.asyncio
async def test_rename_does_not_touch_old_bookings(session, vendors, markets):
    booking = (await BookingService(session).create(vendors["a"], "2025-03-10", "m1")).result

    vendor = await VendorService(session).rename(vendors["a"], "  Новое имя ")
    assert vendor.name == "Новое имя"
    assert (await BookingService(session).get_by_id(booking.id)).vendor_name == "Продавец A"


@pytest.mark.asyncio
async def test_update_chat_id_moves_chat_between_vendors(session, vendors):
    svc = VendorService(session)
    await svc.update_chat_id(vendors["a"], 111)
    await svc.update_chat_id(vendors["b"], 111)

    assert (await svc.get_by_chat_id(111)).id == "vendor-b"
    assert (await svc.get_by_id("vendor-a")).chat_id is None
    assert [v.id for v in await svc.get_with_chat()] == ["vendor-b"]


@pytest.mark.asyncio
async def test_seed_defaults_only_on_empty_store(session):
    svc = VendorService(session)
    settings = Settings(seed_admin_id="boss", seed_admin_name="Босс", redis_dsn=None)

    assert await svc.seed_defaults(settings) is True
    admin = await svc.get_by_id("boss")
    assert admin.is_admin and admin.name == "Босс"
    assert len(await MarketService(session).list_markets()) == 3

    assert await svc.seed_defaults(settings) is False
