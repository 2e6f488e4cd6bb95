"""
Redis storage для черновиков аренды.
Черновик переживает перезапуск бота и удаляется через 24 часа.
"""
from typing import Optional

from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis

from services.rental_draft import RentalDraft


# TTL черновика (24 часа)
DRAFT_TTL = 24 * 60 * 60


class DraftStorage:
    """Снимки черновиков аренды в Redis"""

    def __init__(self, redis: Redis):
        self.redis = redis

    def _key(self, telegram_id: int) -> str:
        return f"rental_draft:{telegram_id}"

    async def save(self, telegram_id: int, draft: RentalDraft) -> None:
        await self.redis.setex(self._key(telegram_id), DRAFT_TTL, draft.model_dump_json())

    async def load(self, telegram_id: int) -> Optional[RentalDraft]:
        value = await self.redis.get(self._key(telegram_id))
        if not value:
            return None
        try:
            return RentalDraft.model_validate_json(value)
        except ValidationError as e:
            logger.warning(f"⚠️ Поврежденный черновик {telegram_id} удален: {e}")
            await self.clear(telegram_id)
            return None

    async def clear(self, telegram_id: int) -> None:
        await self.redis.delete(self._key(telegram_id))


# Глобальный экземпляр (будет инициализирован при старте бота)
_draft_storage: Optional[DraftStorage] = None


def init_draft_storage(redis: Redis) -> DraftStorage:
    """Инициализировать глобальное хранилище"""
    global _draft_storage
    _draft_storage = DraftStorage(redis)
    return _draft_storage


def get_draft_storage() -> Optional[DraftStorage]:
    """Хранилище или None, если Redis недоступен"""
    return _draft_storage
