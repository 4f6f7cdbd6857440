import re
import datetime

from stallbook.core.exceptions import ValidationError


MAX_NAME_LENGTH = 100
VENDOR_ID_PATTERN = r"^[A-Za-z0-9_.\-]{1,32}$"


def validate_sales_quantity(quantity_str: str) -> int:
    """
    Валидирует строку количества продаж и преобразует её в целое число.

    Args:
        quantity_str: Строка с количеством продаж

    Returns:
        int: Количество продаж

    Raises:
        ValidationError: Если строка пустая, не число или число отрицательное
    """
    if quantity_str is None or not str(quantity_str).strip():
        raise ValidationError("Количество продаж не может быть пустым")

    quantity_str = str(quantity_str).strip().replace(" ", "")

    if not re.match(r"^-?[0-9]+$", quantity_str):
        raise ValidationError(
            f"Неверный формат количества: {quantity_str}. Используйте целое число."
        )

    quantity = int(quantity_str)
    if quantity < 0:
        raise ValidationError("Количество продаж не может быть отрицательным")

    return quantity


def validate_date_format(date_str: str) -> datetime.date:
    """
    Валидирует и преобразует строку даты в объект datetime.date.
    Поддерживает форматы: DD.MM.YYYY, DD/MM/YYYY, YYYY-MM-DD
    """
    from stallbook.utils.date_utils import validate_date_format as date_validator

    try:
        return date_validator(date_str)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def validate_name(value: str, field: str = "Значение", max_length: int = MAX_NAME_LENGTH) -> str:
    """Обязательное текстовое поле: непустое и не длиннее max_length"""
    value = (value or "").strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} не может быть длиннее {max_length} символов")
    value = sanitize_input(value).strip()
    if not value:
        raise ValidationError(f"{field} не может быть пустым")
    return value


def validate_vendor_id(vendor_id: str) -> str:
    """Код продавца: латиница, цифры, точка, дефис и подчеркивание"""
    vendor_id = (vendor_id or "").strip()
    if not vendor_id:
        raise ValidationError("Код продавца не может быть пустым")
    if not re.match(VENDOR_ID_PATTERN, vendor_id):
        raise ValidationError(
            "Код продавца может содержать только латиницу, цифры и символы . _ -"
        )
    return vendor_id


def sanitize_input(input_str: str) -> str:
    """
    Санитизирует ввод пользователя: убирает угловые скобки (ответы бота
    уходят в HTML-режиме) и ограничивает длину.
    """
    if not input_str:
        return ""

    sanitized = re.sub(r"[<>]", "", input_str)

    return sanitized[:2000]
