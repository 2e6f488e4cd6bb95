from typing import List, Optional

from sqlalchemy import select

from database.base import async_session_factory
from database.models.rental import RentalType
from database.models.vehicle import Vehicle, VehicleStatus
from services.rental_draft import VehicleRates
from services.rental_pricing import to_money


class VehicleService:
    """Справочник техники и тарифов"""

    @staticmethod
    async def list_available_vehicles() -> List[Vehicle]:
        async with async_session_factory() as session:
            result = await session.execute(
                select(Vehicle)
                .where(Vehicle.status == VehicleStatus.AVAILABLE)
                .order_by(Vehicle.id)
            )
            return list(result.scalars().all())

    @staticmethod
    async def get_vehicle(vehicle_id: int) -> Optional[Vehicle]:
        async with async_session_factory() as session:
            return await session.get(Vehicle, vehicle_id)

    @staticmethod
    def unit_price_for(vehicle: Vehicle, rental_type: RentalType):
        """Базовая цена за час или за день"""
        rate = vehicle.hourly_rate if rental_type == RentalType.HOURLY else vehicle.daily_rate
        return to_money(rate)

    @staticmethod
    def to_rates(vehicle: Vehicle) -> VehicleRates:
        return VehicleRates(
            vehicle_id=vehicle.id,
            name=vehicle.name,
            model_id=vehicle.model_id,
            hourly_rate=to_money(vehicle.hourly_rate),
            daily_rate=to_money(vehicle.daily_rate),
        )
