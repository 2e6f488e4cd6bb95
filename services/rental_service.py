"""
Хранилище аренд: создание и изменение с проверкой занятости техники.
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from database.base import async_session_factory
from database.models.rental import BLOCKING_STATUSES, Rental
from database.models.vehicle import Vehicle
from services.errors import DraftValidationError, RentalConflictError, RentalNotFoundError
from services.rental_pricing import ApprovalDecision, derive_financials


REQUIRED_FIELDS = {
    "customer_id": "Customer is required",
    "vehicle_id": "Vehicle selection is required",
    "start_date": "Start date is required",
}


def payload_from_draft(draft, decision: ApprovalDecision, customer_id: int, created_by: Optional[int] = None) -> Dict[str, Any]:
    """
    Колонки аренды из черновика после проверки цены.
    При ожидании одобрения в аренду пишется расчетная цена, а ручной итог
    лежит в pending_total_request.
    """
    financials = derive_financials(
        draft.quantity, decision.effective_unit_price, draft.transport_fee, draft.deposit_amount
    )
    return {
        "customer_id": customer_id,
        "vehicle_id": draft.vehicle_id,
        "created_by": created_by,
        "rental_type": draft.rental_type,
        "status": draft.rental_status,
        "start_date": draft.start_date,
        "end_date": draft.end_date,
        "start_at": draft.start_at,
        "end_at": draft.end_at,
        "pickup_location": draft.pickup_location,
        "dropoff_location": draft.dropoff_location,
        "transport_pickup": draft.transport_pickup,
        "transport_dropoff": draft.transport_dropoff,
        "quantity": draft.quantity,
        "unit_price": decision.effective_unit_price,
        "transport_fee": draft.transport_fee,
        "total_amount": decision.effective_total,
        "deposit_amount": draft.deposit_amount,
        "remaining_amount": financials.remaining_amount,
        "damage_deposit": draft.damage_deposit,
        "damage_deposit_source": draft.damage_deposit_source or None,
        "payment_status": draft.payment_status,
        "approval_status": decision.approval_status,
        "pending_total_request": decision.pending_total_request,
        "notes": draft.notes or None,
    }


class RentalService:
    """Сервис для работы с арендами"""

    @staticmethod
    def _check_required(payload: Dict[str, Any]) -> None:
        errors = {field: msg for field, msg in REQUIRED_FIELDS.items() if not payload.get(field)}
        if errors:
            raise DraftValidationError(errors)

    @staticmethod
    async def _check_availability(session, payload: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        """Пересечение с другой активной/запланированной арендой той же техники"""
        query = select(Rental).where(
            Rental.vehicle_id == payload["vehicle_id"],
            Rental.status.in_(BLOCKING_STATUSES),
            Rental.start_at < payload["end_at"],
            Rental.end_at > payload["start_at"],
        )
        if exclude_id is not None:
            query = query.where(Rental.id != exclude_id)

        result = await session.execute(query.order_by(Rental.start_at))
        conflict = result.scalars().first()
        if conflict:
            raise RentalConflictError(
                f"Vehicle availability check failed: vehicle {payload['vehicle_id']} is booked "
                f"from {conflict.start_at:%Y-%m-%d %H:%M} to {conflict.end_at:%Y-%m-%d %H:%M} "
                f"(rental #{conflict.id})"
            )

    @staticmethod
    async def get_rental(rental_id: int) -> Optional[Rental]:
        async with async_session_factory() as session:
            result = await session.execute(
                select(Rental).options(selectinload(Rental.customer)).where(Rental.id == rental_id)
            )
            return result.scalar_one_or_none()

    @staticmethod
    async def create_rental(payload: Dict[str, Any]) -> Rental:
        """
        Создать аренду.

        Raises:
            DraftValidationError: нет клиента, техники или даты начала
            RentalConflictError: техника занята на этот период
        """
        RentalService._check_required(payload)

        async with async_session_factory() as session:
            if await session.get(Vehicle, payload["vehicle_id"]) is None:
                raise DraftValidationError({"vehicle_id": "Please select a valid vehicle"})

            await RentalService._check_availability(session, payload)

            rental = Rental(**payload)
            session.add(rental)
            await session.commit()
            await session.refresh(rental)

        logger.info(
            f"✅ Аренда #{rental.id} создана: техника {rental.vehicle_id}, "
            f"итог {rental.total_amount}, одобрение {rental.approval_status.value}"
        )
        return rental

    @staticmethod
    async def update_rental(rental_id: int, payload: Dict[str, Any]) -> Rental:
        """
        Raises:
            RentalNotFoundError: аренды нет
            DraftValidationError, RentalConflictError: как в create_rental
        """
        RentalService._check_required(payload)

        async with async_session_factory() as session:
            rental = await session.get(Rental, rental_id)
            if rental is None:
                raise RentalNotFoundError(f"Rental {rental_id} not found")

            await RentalService._check_availability(session, payload, exclude_id=rental_id)

            for column, value in payload.items():
                setattr(rental, column, value)
            await session.commit()
            await session.refresh(rental)

        logger.info(f"✏️ Аренда #{rental.id} обновлена, одобрение {rental.approval_status.value}")
        return rental
