import asyncio
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from decimal import Decimal

from database.base import async_session_factory, init_db
from database.models.vehicle import Vehicle, VehicleModel, VehicleStatus
from sqlalchemy import func, select


TEST_FLEET = {
    "Scooter 125": [
        {"plate_number": "SC-001", "name": "Scooter 125 #1", "hourly_rate": "50.00", "daily_rate": "250.00"},
        {"plate_number": "SC-002", "name": "Scooter 125 #2", "hourly_rate": "50.00", "daily_rate": "250.00"},
    ],
    "Quad 450": [
        {"plate_number": "QD-001", "name": "Quad 450 #1", "hourly_rate": "200.00", "daily_rate": "1200.00"},
    ],
    "E-Bike": [
        {"plate_number": "EB-001", "name": "E-Bike #1", "hourly_rate": "30.00", "daily_rate": "150.00"},
    ],
}


async def add_test_vehicles():
    """Добавить тестовую технику в базу данных"""
    await init_db()

    async with async_session_factory() as session:
        count = (await session.execute(select(func.count(Vehicle.id)))).scalar()
        if count > 0:
            print(f"В базе уже есть {count} единиц техники. Пропускаем добавление.")
            return

        for model_name, vehicles in TEST_FLEET.items():
            model = VehicleModel(name=model_name)
            session.add(model)
            await session.flush()

            for data in vehicles:
                session.add(Vehicle(
                    plate_number=data["plate_number"],
                    name=data["name"],
                    model_id=model.id,
                    status=VehicleStatus.AVAILABLE,
                    hourly_rate=Decimal(data["hourly_rate"]),
                    daily_rate=Decimal(data["daily_rate"]),
                ))
            print(f"✅ Модель {model_name} (ID: {model.id}): {len(vehicles)} ед.")

        await session.commit()
        print("🛵 Тестовая техника добавлена")


if __name__ == "__main__":
    asyncio.run(add_test_vehicles())
