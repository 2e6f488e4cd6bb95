"""
Справочник клиентов: найти существующего клиента или создать нового
до того, как аренда сошлется на него по id.
"""
from datetime import date
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import select

from database.base import async_session_factory
from database.models.customer import Customer
from services.errors import DraftValidationError


# Поле черновика -> колонка клиента
DRAFT_TO_CUSTOMER = {
    "customer_name": "full_name",
    "customer_phone": "phone",
    "customer_email": "email",
    "customer_licence_number": "licence_number",
    "customer_id_number": "id_number",
    "customer_dob": "date_of_birth",
    "customer_place_of_birth": "place_of_birth",
    "customer_nationality": "nationality",
    "customer_issue_date": "issue_date",
    "customer_id_image": "id_image",
}

_DATE_COLUMNS = ("date_of_birth", "issue_date")


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"⚠️ Не удалось разобрать дату документа: {value!r}")
        return None


def customer_data_from_draft(draft) -> Dict[str, Any]:
    """Данные клиента из черновика; пустые значения отбрасываются"""
    data: Dict[str, Any] = {}
    for draft_field, column in DRAFT_TO_CUSTOMER.items():
        value = getattr(draft, draft_field)
        if isinstance(value, str):
            value = value.strip()
        if not value:
            continue
        if column in _DATE_COLUMNS:
            value = _parse_date(value)
            if value is None:
                continue
        data[column] = value
    if draft.customer_id:
        data["id"] = draft.customer_id
    return data


class CustomerService:
    """Сервис для работы с клиентами"""

    @staticmethod
    async def _find_existing(session, data: Dict[str, Any]) -> Optional[Customer]:
        if data.get("id"):
            customer = await session.get(Customer, data["id"])
            if customer:
                return customer

        for column in ("phone", "id_number"):
            value = data.get(column)
            if not value:
                continue
            result = await session.execute(
                select(Customer).where(getattr(Customer, column) == value).order_by(Customer.id)
            )
            customer = result.scalars().first()
            if customer:
                return customer
        return None

    @staticmethod
    async def upsert_customer(data: Dict[str, Any]) -> Customer:
        """
        Найти клиента по id, телефону или номеру документа и дополнить
        пустые поля, либо создать нового.

        Raises:
            DraftValidationError: не указано имя для нового клиента
        """
        async with async_session_factory() as session:
            customer = await CustomerService._find_existing(session, data)

            if customer:
                for column, value in data.items():
                    if column == "id":
                        continue
                    if getattr(customer, column) in (None, ""):
                        setattr(customer, column, value)
                logger.info(f"👤 Найден клиент {customer.id} ({customer.full_name})")
            else:
                if not data.get("full_name"):
                    raise DraftValidationError({"customer_name": "Customer name is required"})
                customer = Customer(**{k: v for k, v in data.items() if k != "id"})
                session.add(customer)
                logger.info(f"👤 Создан клиент {customer.full_name}")

            await session.commit()
            await session.refresh(customer)
            return customer
