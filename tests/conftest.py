"""
Test Configuration and Fixtures

Настройки читаются при импорте config.settings, поэтому окружение
задается до импорта модулей проекта.
"""
import os

os.environ.setdefault("BOT_TOKEN", "123456:TEST-TOKEN")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("ADMIN_IDS", "")

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from database.base import create_engine_for, create_session_factory, init_db
from database.models.customer import Customer
from database.models.user import User, UserRole
from database.models.vehicle import Vehicle, VehicleModel, VehicleStatus


SESSION_FACTORY_MODULES = (
    "services.customer_service",
    "services.notification_service",
    "services.rental_service",
    "services.settings_service",
    "services.user_service",
    "services.vehicle_service",
)


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
async def db(tmp_path, monkeypatch):
    """Временная SQLite база, подставленная во все сервисы"""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(bind=engine)
    factory = create_session_factory(engine)

    for module in SESSION_FACTORY_MODULES:
        monkeypatch.setattr(f"{module}.async_session_factory", factory)

    yield factory
    await engine.dispose()


@pytest.fixture
async def fleet(db):
    """Модель с двумя единицами техники и одна единица в ремонте"""
    async with db() as session:
        model = VehicleModel(name="Scooter 125")
        session.add(model)
        await session.flush()

        vehicles = [
            Vehicle(plate_number="SC-001", name="Scooter #1", model_id=model.id,
                    hourly_rate=Decimal("50.00"), daily_rate=Decimal("1500.00")),
            Vehicle(plate_number="SC-002", name="Scooter #2", model_id=model.id,
                    hourly_rate=Decimal("60.00"), daily_rate=Decimal("1800.00")),
            Vehicle(plate_number="SC-003", name="Scooter #3", model_id=model.id,
                    status=VehicleStatus.MAINTENANCE,
                    hourly_rate=Decimal("50.00"), daily_rate=Decimal("1500.00")),
        ]
        session.add_all(vehicles)
        await session.commit()
        for vehicle in vehicles:
            await session.refresh(vehicle)
        return {"model": model, "vehicles": vehicles}


@pytest.fixture
async def staff(db):
    """Сотрудники всех ролей"""
    async with db() as session:
        users = {
            "owner": User(telegram_id=1001, full_name="Owner", role=UserRole.OWNER),
            "admin": User(telegram_id=1002, full_name="Admin", role=UserRole.ADMIN),
            "muted_admin": User(telegram_id=1003, full_name="Muted Admin", role=UserRole.ADMIN,
                                notifications_enabled=False),
            "employee": User(telegram_id=2001, full_name="Employee", role=UserRole.EMPLOYEE),
            "guide": User(telegram_id=2002, full_name="Guide", role=UserRole.GUIDE),
        }
        session.add_all(users.values())
        await session.commit()
        for user in users.values():
            await session.refresh(user)
        return users


@pytest.fixture
async def customer(db):
    async with db() as session:
        record = Customer(full_name="Amina Benali", phone="+212600000001", id_number="AB123456")
        session.add(record)
        await session.commit()
        await session.refresh(record)
        return record


# ============================================================================
# MOCK FIXTURES
# ============================================================================

@pytest.fixture
def mock_bot():
    """Mock aiogram Bot."""
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.download = AsyncMock()
    return bot


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.notify_approvers = AsyncMock(return_value=2)
    return notifier


@pytest.fixture
def mock_ocr():
    ocr = MagicMock()
    ocr.extract_fields = AsyncMock()
    return ocr


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    return redis
