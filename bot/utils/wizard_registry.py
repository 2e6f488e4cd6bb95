"""
Активные мастера оформления аренды: по одному на сотрудника.
"""
from typing import Dict, Optional

from loguru import logger

from bot.utils.draft_storage import get_draft_storage
from services.rental_wizard import RentalWizard


_wizards: Dict[int, RentalWizard] = {}


def get_wizard(telegram_id: int) -> Optional[RentalWizard]:
    return _wizards.get(telegram_id)


def register_wizard(telegram_id: int, wizard: RentalWizard) -> RentalWizard:
    """Новый мастер вытесняет предыдущий; его незавершенные запросы отбрасываются"""
    previous = _wizards.get(telegram_id)
    if previous is not None and previous is not wizard:
        previous.reset()
    _wizards[telegram_id] = wizard
    return wizard


async def restore_wizard(telegram_id: int, **kwargs) -> Optional[RentalWizard]:
    """Мастер из памяти или из сохраненного в Redis черновика"""
    wizard = _wizards.get(telegram_id)
    if wizard is not None:
        return wizard

    storage = get_draft_storage()
    if storage is None:
        return None
    try:
        draft = await storage.load(telegram_id)
    except Exception as e:
        logger.error(f"❌ Ошибка чтения черновика {telegram_id}: {e}")
        return None
    if draft is None:
        return None

    wizard = RentalWizard(draft=draft, **kwargs)
    await wizard.load_reference_data()
    logger.info(f"♻️ Черновик аренды восстановлен для {telegram_id}")
    return register_wizard(telegram_id, wizard)


async def save_draft(telegram_id: int) -> None:
    wizard = _wizards.get(telegram_id)
    storage = get_draft_storage()
    if wizard is None or storage is None:
        return
    try:
        await storage.save(telegram_id, wizard.draft)
    except Exception as e:
        logger.error(f"❌ Ошибка сохранения черновика {telegram_id}: {e}")


async def discard_wizard(telegram_id: int) -> None:
    """Отмена: мастер сбрасывается, черновик удаляется"""
    wizard = _wizards.pop(telegram_id, None)
    if wizard is not None:
        wizard.reset()

    storage = get_draft_storage()
    if storage is not None:
        try:
            await storage.clear(telegram_id)
        except Exception as e:
            logger.error(f"❌ Ошибка удаления черновика {telegram_id}: {e}")
