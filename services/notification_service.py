"""
Уведомления администраторам о ручной цене, ждущей одобрения.
Доставка best-effort: ошибки только логируются.
"""
import asyncio
from decimal import Decimal
from typing import List

from aiogram import Bot
from loguru import logger
from sqlalchemy import select

from config.settings import settings
from database.base import async_session_factory
from database.models.user import User, UserRole


NOTIFIED_ROLES = (UserRole.OWNER, UserRole.ADMIN)


class NotificationService:
    """Рассылка запросов на одобрение через Telegram"""

    # Пауза между сообщениями, чтобы не упереться в лимиты Telegram
    SEND_DELAY = 0.5

    def __init__(self, bot: Bot):
        self.bot = bot

    async def get_approvers(self) -> List[User]:
        async with async_session_factory() as session:
            result = await session.execute(
                select(User).where(
                    User.role.in_(NOTIFIED_ROLES),
                    User.notifications_enabled.is_(True),
                    User.is_active.is_(True),
                ).order_by(User.id)
            )
            return list(result.scalars().all())

    @staticmethod
    def build_message(pending_total: Decimal, rental_ref: str, requested_by: str = "Employee") -> str:
        return (
            "🚨 Требуется одобрение цены\n\n"
            f"💰 Запрошенный итог: {pending_total} {settings.currency}\n"
            f"📋 Аренда: #{rental_ref}\n"
            f"👤 Запросил: {requested_by}\n\n"
            "⚠️ Рассмотрите запрос в течение 24 часов"
        )

    async def notify_approvers(self, pending_total: Decimal, rental_ref: str, requested_by: str = "Employee") -> int:
        """
        Отправить запрос всем owner/admin с включенными уведомлениями.

        Returns:
            Количество успешно отправленных сообщений
        """
        try:
            approvers = await self.get_approvers()
        except Exception as e:
            logger.error(f"❌ Не удалось получить список администраторов: {e}")
            return 0

        if not approvers:
            logger.info("📭 Нет администраторов с включенными уведомлениями")
            return 0

        text = self.build_message(pending_total, rental_ref, requested_by)
        sent = 0
        for index, approver in enumerate(approvers):
            try:
                await self.bot.send_message(approver.telegram_id, text)
                sent += 1
            except Exception as e:
                logger.error(f"❌ Уведомление для {approver.full_name} не отправлено: {e}")
            if index < len(approvers) - 1:
                await asyncio.sleep(self.SEND_DELAY)

        logger.info(f"📱 Уведомлено администраторов: {sent}/{len(approvers)}")
        return sent
