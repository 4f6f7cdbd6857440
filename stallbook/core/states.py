from aiogram.fsm.state import State, StatesGroup


class AuthStates(StatesGroup):
    waiting_vendor_id = State()
    waiting_password = State()
    waiting_new_password = State()


class ChangePasswordStates(StatesGroup):
    waiting_old_password = State()
    waiting_new_password = State()


class ProfileStates(StatesGroup):
    waiting_name = State()


class BookingStates(StatesGroup):
    waiting_booking = State()
    waiting_date = State()
    waiting_city = State()
    waiting_market = State()
    waiting_new_market_city = State()
    waiting_new_market_name = State()
    waiting_remark = State()


class DeleteBookingStates(StatesGroup):
    waiting_booking = State()
    waiting_confirmation = State()


class SalesStates(StatesGroup):
    waiting_booking = State()
    waiting_quantity = State()


class PromoStates(StatesGroup):
    waiting_booking = State()


class CreateVendorStates(StatesGroup):
    waiting_id = State()
    waiting_name = State()
    waiting_role = State()


class DeleteVendorStates(StatesGroup):
    waiting_vendor = State()
    waiting_confirmation = State()


class ResetPasswordStates(StatesGroup):
    waiting_vendor = State()


class CreateMarketStates(StatesGroup):
    waiting_city = State()
    waiting_name = State()


class EditMarketStates(StatesGroup):
    waiting_market = State()
    waiting_field = State()
    waiting_value = State()


class DeleteMarketStates(StatesGroup):
    waiting_market = State()
    waiting_confirmation = State()


class AnnouncementStates(StatesGroup):
    waiting_content = State()


class ImportStates(StatesGroup):
    waiting_file = State()
