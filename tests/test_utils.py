import datetime
from types import SimpleNamespace

import pytest

from stallbook.core.config import Settings, load_settings
from stallbook.core.exceptions import ValidationError
from stallbook.utils.date_utils import (
    format_date_for_display,
    count_by_day,
    get_month_range,
    parse_period,
    render_month,
    validate_date_format as parse_date,
)
from stallbook.utils.menu import (
    ADMIN_MENU_TEXT,
    VENDOR_MENU_TEXT,
    get_menu_text,
    unique_labels,
    upcoming_dates,
)
from stallbook.utils.security import hash_password, verify_password
from stallbook.utils.validators import (
    sanitize_input,
    validate_date_format,
    validate_name,
    validate_sales_quantity,
    validate_vendor_id,
)

D = datetime.date


@pytest.mark.parametrize("raw, expected", [("0", 0), (" 15 ", 15), ("1 200", 1200)])
def test_sales_quantity_valid(raw, expected):
    assert validate_sales_quantity(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "-3", "2.5", "abc"])
def test_sales_quantity_invalid(raw):
    with pytest.raises(ValidationError):
        validate_sales_quantity(raw)


def test_date_formats():
    assert parse_date("10.03.2025") == D(2025, 3, 10)
    assert parse_date("10/03/2025") == D(2025, 3, 10)
    assert parse_date("2025-03-10") == D(2025, 3, 10)
    with pytest.raises(ValueError):
        parse_date("31.02.2025")
    with pytest.raises(ValidationError):
        validate_date_format("завтра")


def test_names_and_ids():
    assert validate_name("  Анна ") == "Анна"
    assert sanitize_input("<b>x</b>") == "bx/b"
    with pytest.raises(ValidationError):
        validate_name("a" * 101)
    assert validate_vendor_id(" vendor.a-1 ") == "vendor.a-1"
    with pytest.raises(ValidationError):
        validate_vendor_id("продавец")


def test_month_helpers():
    assert get_month_range(D(2024, 2, 10)) == (D(2024, 2, 1), D(2024, 2, 29))
    assert get_month_range(D(2024, 12, 31)) == (D(2024, 12, 1), D(2024, 12, 31))
    assert count_by_day([D(2025, 3, 1), D(2025, 3, 1), D(2025, 3, 2)]) == {
        D(2025, 3, 1): 2,
        D(2025, 3, 2): 1,
    }


def test_render_month_marks_booked_days():
    text = render_month(2025, 3, {D(2025, 3, 10): 2})
    lines = text.splitlines()
    assert lines[0] == "Март 2025"
    assert lines[1].split() == ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]
    assert "10·2" in text
    assert "11·" not in text


def test_format_and_period():
    assert format_date_for_display(D(2025, 3, 1)) == "1 марта 2025"
    assert format_date_for_display(D(2025, 3, 1), "short") == "01.03.2025"
    assert format_date_for_display(D(2025, 3, 1), "month_year") == "март 2025"
    with pytest.raises(ValueError):
        format_date_for_display(D(2025, 3, 1), "weird")

    assert parse_period("01.03.2025 31.03.2025") == (D(2025, 3, 1), D(2025, 3, 31))
    assert parse_period("01.03.2025 - 02.03.2025") == (D(2025, 3, 1), D(2025, 3, 2))
    assert parse_period("05.03.2025") == (D(2025, 3, 5), D(2025, 3, 5))
    with pytest.raises(ValueError):
        parse_period("31.03.2025 01.03.2025")


def test_password_hashing():
    hashed = hash_password("секрет")
    assert hashed != "секрет"
    assert verify_password("секрет", hashed)
    assert not verify_password("другой", hashed)
    assert not verify_password("секрет", None)
    assert not verify_password(None, hashed)

    # bcrypt учитывает только первые 72 байта
    long_hash = hash_password("я" * 40)
    assert verify_password("я" * 36 + "другое", long_hash)


def test_menu_helpers():
    assert get_menu_text("admin") == ADMIN_MENU_TEXT
    assert get_menu_text("vendor") == VENDOR_MENU_TEXT
    assert "/start" in get_menu_text(None)
    assert "/export" in ADMIN_MENU_TEXT and "/export" not in VENDOR_MENU_TEXT

    items = [SimpleNamespace(id="a", name="Рынок"), SimpleNamespace(id="b", name="Рынок")]
    assert unique_labels(items, lambda m: m.name) == {"Рынок": "a", "Рынок (2)": "b"}
    assert upcoming_dates(D(2025, 12, 30), days=3) == ["30.12.2025", "31.12.2025", "01.01.2026"]


def test_settings_validation():
    assert Settings(conflict_policy="warn").soft_conflicts
    assert not Settings().soft_conflicts
    with pytest.raises(ValueError):
        Settings(conflict_policy="maybe")
    with pytest.raises(ValueError):
        Settings(recommendation_limit=0)


def test_load_settings_from_env(monkeypatch):
    monkeypatch.setattr("stallbook.core.config.load_dotenv", lambda **kwargs: None)
    monkeypatch.setenv("BOT_TOKEN", "token")
    monkeypatch.setenv("APP_ID", "market-app")
    monkeypatch.setenv("CONFLICT_POLICY", "WARN")
    monkeypatch.setenv("RECOMMENDATION_LIMIT", "5")
    monkeypatch.setenv("ADMIN_CHAT_IDS", "1, 2,")
    monkeypatch.setenv("REDIS_DSN", "")

    settings = load_settings()
    assert settings.bot_token == "token"
    assert settings.app_id == "market-app"
    assert settings.soft_conflicts
    assert settings.recommendation_limit == 5
    assert settings.admin_chat_ids == (1, 2)
    assert settings.redis_dsn is None
