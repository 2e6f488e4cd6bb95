import asyncio
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from decimal import Decimal

from database.base import async_session_factory, init_db
from database.models.vehicle import VehicleModel
from services.rental_draft import DepositPreset
from services.settings_service import SettingsService
from sqlalchemy import select


DEFAULT_PICKUP_FEE = Decimal("100.00")
DEFAULT_DROPOFF_FEE = Decimal("100.00")

# Пресеты залога, одинаковые для всех моделей; потом правятся по моделям
DEFAULT_DEPOSIT_PRESETS = [
    DepositPreset(label="Standard", amount=Decimal("1000.00")),
    DepositPreset(label="Premium", amount=Decimal("2500.00")),
]


async def init_default_settings():
    """Инициализировать настройки по умолчанию"""
    await init_db()

    settings = await SettingsService.get_settings()
    print(f"✅ Настройки (ID: {settings.id}), компания: {settings.company_name}")

    if await SettingsService.update_transport_fees(DEFAULT_PICKUP_FEE, DEFAULT_DROPOFF_FEE):
        print(f"🚚 Доставка: {DEFAULT_PICKUP_FEE}, забор: {DEFAULT_DROPOFF_FEE}")

    async with async_session_factory() as session:
        models = (await session.execute(select(VehicleModel).order_by(VehicleModel.id))).scalars().all()

    if not models:
        print("💡 Моделей техники нет, сначала запустите scripts/add_test_vehicles.py")
        return

    config = await SettingsService.get_damage_deposit_presets()
    for model in models:
        if model.id in config.presets:
            print(f"⏭ Пресеты залога для {model.name} уже заданы")
            continue
        await SettingsService.set_damage_deposit_presets(model.id, DEFAULT_DEPOSIT_PRESETS)
        print(f"🔐 Пресеты залога для {model.name} созданы")


if __name__ == "__main__":
    asyncio.run(init_default_settings())
