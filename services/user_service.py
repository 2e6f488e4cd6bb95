"""
Сотрудники бота: поиск по Telegram ID и назначение ролей.
"""
from typing import Optional

from loguru import logger
from sqlalchemy import select

from config.settings import settings
from database.base import async_session_factory
from database.models.user import User, UserRole


class UserService:
    """Сервис для работы с сотрудниками"""

    @staticmethod
    async def get_by_telegram_id(telegram_id: int) -> Optional[User]:
        async with async_session_factory() as session:
            result = await session.execute(select(User).where(User.telegram_id == telegram_id))
            return result.scalar_one_or_none()

    @staticmethod
    async def ensure_staff_user(telegram_id: int, full_name: str, username: Optional[str] = None) -> Optional[User]:
        """
        Найти сотрудника при /start.
        Пользователи из ADMIN_IDS создаются или повышаются до admin автоматически.

        Returns:
            User или None, если сотрудник не заведен
        """
        is_configured_admin = telegram_id in settings.admin_ids

        async with async_session_factory() as session:
            result = await session.execute(select(User).where(User.telegram_id == telegram_id))
            user = result.scalar_one_or_none()

            if user is None:
                if not is_configured_admin:
                    return None
                user = User(
                    telegram_id=telegram_id,
                    username=username,
                    full_name=full_name,
                    role=UserRole.ADMIN,
                )
                session.add(user)
                logger.info(f"✅ Создан администратор из ADMIN_IDS: {full_name} (ID: {telegram_id})")
            elif is_configured_admin and user.role not in (UserRole.OWNER, UserRole.ADMIN):
                user.role = UserRole.ADMIN
                logger.info(f"✅ Автоматически назначен администратором: {user.full_name} (ID: {telegram_id})")

            await session.commit()
            await session.refresh(user)
            return user

    @staticmethod
    async def set_role(telegram_id: int, role: UserRole) -> Optional[User]:
        async with async_session_factory() as session:
            result = await session.execute(select(User).where(User.telegram_id == telegram_id))
            user = result.scalar_one_or_none()
            if user is None:
                return None
            old_role = user.role
            user.role = role
            await session.commit()
            await session.refresh(user)
        logger.info(f"🔄 Роль {user.full_name} изменена: {old_role.value} → {role.value}")
        return user
