from aiogram import Router
from aiogram.filters import CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, ReplyKeyboardRemove
from loguru import logger

from bot.keyboards.common import get_main_menu_keyboard
from services.user_service import UserService

router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext):
    """Обработчик команды /start"""
    telegram_id = message.from_user.id
    logger.info(f"🆔 /start: ID={telegram_id}, Username=@{message.from_user.username}")

    await state.clear()
    user = await UserService.ensure_staff_user(
        telegram_id, message.from_user.full_name, message.from_user.username
    )

    if user is None or not user.can_book_rentals:
        await message.answer(
            "🔒 Бот доступен только сотрудникам проката.\n\n"
            f"Передайте администратору ваш ID: {telegram_id}",
            reply_markup=ReplyKeyboardRemove(),
        )
        return

    welcome_text = f"👋 С возвращением, {user.full_name}!"
    if user.is_approver:
        welcome_text += "\n\n👑 Вы получаете запросы на одобрение цен."

    await message.answer(welcome_text, reply_markup=get_main_menu_keyboard())
