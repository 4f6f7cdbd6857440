"""
Ошибки предметной области. Сервисы их выбрасывают, обработчики бота
перехватывают на границе и превращают в сообщения пользователю.
"""

from typing import Sequence


class StallbookError(Exception):
    """Базовая ошибка приложения"""


class ValidationError(StallbookError, ValueError):
    """Не заполнено или неверно заполнено обязательное поле"""


class ConflictError(StallbookError):
    """Рынок уже занят другим продавцом в пределах 7 дней"""

    def __init__(self, message: str, conflicts: Sequence = ()):
        super().__init__(message)
        self.conflicts = list(conflicts)


class StoreWriteError(StallbookError):
    """Хранилище недоступно или запись не удалась"""


class AuthError(StallbookError):
    """Неизвестный продавец или неверный пароль"""


class PermissionDeniedError(StallbookError):
    """Операция над чужой записью или без прав администратора"""


class ExternalServiceError(StallbookError):
    """Сбой внешнего сервиса (генерация текста, погода)"""


class ImportInterruptedError(StoreWriteError):
    """Импорт прерван сбоем записи; строки до сбоя уже сохранены"""

    def __init__(self, message: str, result):
        super().__init__(message)
        self.result = result
