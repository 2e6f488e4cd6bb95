from decimal import Decimal
from typing import Dict, List

from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import select, update

from database.base import async_session_factory
from database.models.settings import SystemSettings
from services.rental_draft import DepositPreset, TransportFees
from services.rental_pricing import to_money


class DamageDepositConfig(BaseModel):
    presets: Dict[int, List[DepositPreset]] = Field(default_factory=dict)
    allow_custom_deposit: bool = True


class SettingsService:
    """Сервис для работы с настройками системы"""

    @staticmethod
    async def get_settings() -> SystemSettings:
        """Получить текущие настройки системы"""
        async with async_session_factory() as session:
            result = await session.execute(select(SystemSettings))
            settings = result.scalars().first()

            if not settings:
                # Создаем настройки по умолчанию
                settings = SystemSettings(damage_deposit_presets={})
                session.add(settings)
                await session.commit()
                await session.refresh(settings)

            return settings

    @staticmethod
    async def get_transport_fees() -> TransportFees:
        """Стоимость доставки и забора техники"""
        settings = await SettingsService.get_settings()
        return TransportFees(
            pickup_fee=to_money(settings.transport_pickup_fee),
            dropoff_fee=to_money(settings.transport_dropoff_fee),
        )

    @staticmethod
    async def get_damage_deposit_presets() -> DamageDepositConfig:
        """Пресеты залога по моделям техники"""
        settings = await SettingsService.get_settings()
        presets: Dict[int, List[DepositPreset]] = {}

        for model_id, items in (settings.damage_deposit_presets or {}).items():
            try:
                presets[int(model_id)] = [DepositPreset(**item) for item in items]
            except (TypeError, ValueError) as e:
                logger.warning(f"⚠️ Пропущены некорректные пресеты залога для модели {model_id}: {e}")

        return DamageDepositConfig(presets=presets, allow_custom_deposit=settings.allow_custom_deposit)

    @staticmethod
    async def update_transport_fees(pickup_fee: Decimal = None, dropoff_fee: Decimal = None) -> bool:
        """Обновить стоимость доставки/забора"""
        async with async_session_factory() as session:
            try:
                result = await session.execute(select(SystemSettings))
                settings = result.scalars().first()

                if not settings:
                    settings = SystemSettings(damage_deposit_presets={})
                    session.add(settings)
                    await session.flush()

                update_data = {}
                if pickup_fee is not None:
                    update_data['transport_pickup_fee'] = to_money(pickup_fee)
                if dropoff_fee is not None:
                    update_data['transport_dropoff_fee'] = to_money(dropoff_fee)

                if update_data:
                    await session.execute(
                        update(SystemSettings)
                        .where(SystemSettings.id == settings.id)
                        .values(**update_data)
                    )

                await session.commit()
                return True

            except Exception as e:
                await session.rollback()
                logger.error(f"❌ Ошибка обновления стоимости транспорта: {e}")
                return False

    @staticmethod
    async def set_damage_deposit_presets(model_id: int, presets: List[DepositPreset]) -> bool:
        """Заменить пресеты залога для модели техники"""
        async with async_session_factory() as session:
            try:
                result = await session.execute(select(SystemSettings))
                settings = result.scalars().first()

                if not settings:
                    settings = SystemSettings(damage_deposit_presets={})
                    session.add(settings)
                    await session.flush()

                all_presets = dict(settings.damage_deposit_presets or {})
                all_presets[str(model_id)] = [p.model_dump(mode="json") for p in presets]

                await session.execute(
                    update(SystemSettings)
                    .where(SystemSettings.id == settings.id)
                    .values(damage_deposit_presets=all_presets)
                )

                await session.commit()
                return True

            except Exception as e:
                await session.rollback()
                logger.error(f"❌ Ошибка сохранения пресетов залога: {e}")
                return False
