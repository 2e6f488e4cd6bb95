import asyncio

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.fsm.storage.redis import RedisStorage
from loguru import logger
import redis.asyncio as redis

from config.settings import settings
from database.base import init_db
from bot.handlers.common.start import router as start_router
from bot.handlers.admin.rental_booking import router as rental_booking_router
from bot.utils.draft_storage import init_draft_storage


async def main():
    """Главная функция запуска бота"""

    # Настройка логирования
    logger.add(
        "logs/bot.log",
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

    logger.info("🚀 Запуск бота...")

    bot = Bot(token=settings.bot_token)

    # Выбор хранилища для FSM состояний и черновиков
    try:
        redis_client = redis.from_url(settings.redis_url)
        await redis_client.ping()
        storage = RedisStorage(redis_client)
        init_draft_storage(redis_client)
        logger.info("✅ Подключение к Redis успешно")
    except Exception as e:
        # Без Redis черновики живут только в памяти процесса
        logger.warning(f"⚠️ Redis недоступен ({e}), используем MemoryStorage")
        storage = MemoryStorage()

    dp = Dispatcher(storage=storage)

    # 1. Команды (/start)
    dp.include_router(start_router)
    # 2. Оформление аренды
    dp.include_router(rental_booking_router)

    logger.info("✅ Все роутеры зарегистрированы")

    try:
        logger.info("🗄️ Инициализация базы данных...")
        await init_db()
        logger.info("✅ База данных инициализирована")

        logger.info("🤖 Бот запущен и готов к работе!")
        await dp.start_polling(bot)

    except Exception as e:
        logger.error(f"❌ Ошибка при запуске: {e}")
        raise
    finally:
        await bot.session.close()
        await storage.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("👋 Бот остановлен пользователем")
    except Exception as e:
        logger.error(f"💥 Критическая ошибка: {e}")
        raise
