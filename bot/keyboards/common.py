from aiogram.types import KeyboardButton, ReplyKeyboardMarkup


NEW_RENTAL_BUTTON = "🛵 Новая аренда"
RESUME_RENTAL_BUTTON = "📝 Продолжить оформление"


def get_main_menu_keyboard() -> ReplyKeyboardMarkup:
    """Главное меню сотрудника"""
    keyboard = [
        [KeyboardButton(text=NEW_RENTAL_BUTTON)],
        [KeyboardButton(text=RESUME_RENTAL_BUTTON)],
    ]
    return ReplyKeyboardMarkup(keyboard=keyboard, resize_keyboard=True)
