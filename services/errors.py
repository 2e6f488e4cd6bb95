"""
Исключения стойки аренды.
"""
from typing import Dict


class RentalDeskError(Exception):
    """Базовая ошибка"""


class DraftValidationError(RentalDeskError):
    """Черновик не прошел проверку; errors = {поле: сообщение}"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in self.errors.items()))


class RentalConflictError(RentalDeskError):
    """Техника уже занята на выбранный период"""


class RentalNotFoundError(RentalDeskError):
    pass


class SubmissionTimeoutError(RentalDeskError):
    pass


class OCRError(RentalDeskError):
    pass


class OCRTimeoutError(OCRError):
    pass
