"""
Расчет аренды: количество часов/дней, транспорт, итоговые суммы,
статус оплаты и проверка ручной цены.

Все функции чистые: без I/O, без состояния. Их вызывает редьюсер
черновика после каждого действия пользователя.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from loguru import logger

from database.models.rental import ApprovalStatus, PaymentStatus, RentalType
from database.models.user import APPROVER_ROLES, STAFF_ROLES


CENTS = Decimal("0.01")
ZERO = Decimal("0")
# Предел колонок Numeric(10, 2)
MAX_AMOUNT = Decimal("99999999.99")


def to_money(value: Any) -> Decimal:
    """Привести ввод к сумме; пустое или нечисловое значение = 0"""
    if value is None or value == "":
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            return ZERO
        return amount.quantize(CENTS)
    except (InvalidOperation, ValueError):
        return ZERO


def parse_amount(value: Any) -> Decimal:
    """
    Сумма, введенная пользователем.

    Raises:
        ValueError: не число, отрицательное значение или больше MAX_AMOUNT
    """
    if value is None or value == "":
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError("Amount must be a non-negative number")
    if amount > MAX_AMOUNT:
        raise ValueError(f"Amount must not exceed {MAX_AMOUNT}")
    return amount.quantize(CENTS)


def parse_time(value: Optional[str]) -> time:
    """'HH:MM' -> time; пустое значение = 00:00"""
    if not value:
        return time(0, 0)
    hours, minutes = value.strip().split(":")[:2]
    return time(int(hours), int(minutes))


def format_time(value: datetime) -> str:
    return value.strftime("%H:%M")


def compose_datetime(day: date, clock: Optional[str]) -> datetime:
    """Локальные дата + время без часового пояса"""
    return datetime.combine(day, parse_time(clock))


# ==================== ГРАФИК ====================

@dataclass(frozen=True)
class Schedule:
    quantity: int
    adjusted_end_date: date
    is_overnight: bool = False


def derive_schedule(
    rental_type: RentalType,
    start_date: date,
    start_time: Optional[str],
    end_date: date,
    end_time: Optional[str],
) -> Optional[Schedule]:
    """
    Посчитать количество единиц аренды.

    Возвращает None, если начало позже конца и это не ночная
    почасовая аренда: вызывающий код оставляет прежнее количество.
    Совпадающие начало и конец дают минимум в одну единицу.
    """
    start_at = compose_datetime(start_date, start_time)
    end_at = compose_datetime(end_date, end_time)
    adjusted_end_date = end_date
    is_overnight = False

    if start_at > end_at:
        same_day_wrap = (
            rental_type == RentalType.HOURLY
            and end_date == start_date
            and end_at < start_at
        )
        if not same_day_wrap:
            return None
        # Конец "раньше" начала в тот же день: аренда через полночь
        adjusted_end_date = end_date + timedelta(days=1)
        end_at = compose_datetime(adjusted_end_date, end_time)
        is_overnight = True
        if start_at >= end_at:
            return None

    if rental_type == RentalType.HOURLY:
        hours = (end_at - start_at).total_seconds() / 3600
        quantity = math.ceil(max(1.0, hours))
    else:
        # Только календарные даты, чтобы неполный день не давал +1
        quantity = max(1, (adjusted_end_date - start_date).days)

    return Schedule(quantity=quantity, adjusted_end_date=adjusted_end_date, is_overnight=is_overnight)


def step_back_start(rental_type: RentalType, end_date: date, end_time: Optional[str]) -> datetime:
    """Новое начало на одну единицу раньше конца"""
    end_at = compose_datetime(end_date, end_time)
    if rental_type == RentalType.HOURLY:
        return end_at - timedelta(hours=1)
    return end_at - timedelta(days=1)


# ==================== ФИНАНСЫ ====================

@dataclass(frozen=True)
class Financials:
    subtotal: Decimal
    total_amount: Decimal
    remaining_amount: Decimal


def derive_financials(quantity: int, unit_price: Any, transport_fee: Any, deposit_amount: Any) -> Financials:
    subtotal = (Decimal(quantity or 0) * to_money(unit_price)).quantize(CENTS)
    total = subtotal + to_money(transport_fee)
    remaining = max(ZERO, total - to_money(deposit_amount))
    return Financials(subtotal=subtotal, total_amount=total, remaining_amount=remaining)


def derive_transport_fee(pickup: bool, dropoff: bool, pickup_fee: Any = None, dropoff_fee: Any = None) -> Decimal:
    """Незагруженные настройки считаются нулевым сбором"""
    fee = ZERO
    if pickup:
        fee += to_money(pickup_fee)
    if dropoff:
        fee += to_money(dropoff_fee)
    return fee


# ==================== СТАТУС ОПЛАТЫ ====================

def derive_payment_status(
    deposit_amount: Any,
    total_amount: Any,
    current_status: PaymentStatus,
    manual_override: bool = False,
) -> PaymentStatus:
    if manual_override:
        return current_status
    if current_status == PaymentStatus.OVERDUE:
        return PaymentStatus.OVERDUE

    deposit = to_money(deposit_amount)
    total = to_money(total_amount)
    if total <= 0 or deposit <= 0:
        return PaymentStatus.UNPAID
    if deposit >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


# ==================== ОДОБРЕНИЕ ЦЕНЫ ====================

@dataclass(frozen=True)
class ApprovalDecision:
    approval_status: ApprovalStatus
    pending_total_request: Optional[Decimal]
    effective_total: Decimal
    effective_unit_price: Decimal


def is_price_override(manual_unit_price: Any, auto_unit_price: Any, tolerance: Any = ZERO) -> bool:
    return abs(to_money(manual_unit_price) - to_money(auto_unit_price)) > to_money(tolerance)


def derive_approval(
    manual_unit_price: Any,
    auto_unit_price: Any,
    user_role: Optional[str],
    quantity: int,
    transport_fee: Any,
    tolerance: Any = ZERO,
) -> ApprovalDecision:
    """
    Проверка ручной цены перед сохранением.

    Сотрудник (employee/guide) или неизвестная роль: скидка не применяется
    сразу, клиенту считается расчетная цена, а ручной итог уходит на
    одобрение. Admin/owner: ручная цена применяется сразу.
    """
    manual = to_money(manual_unit_price)
    auto = to_money(auto_unit_price)
    manual_total = derive_financials(quantity, manual, transport_fee, ZERO).total_amount

    if not is_price_override(manual, auto, tolerance):
        return ApprovalDecision(ApprovalStatus.AUTO, None, manual_total, manual)

    role = (user_role or "").lower()
    if role in APPROVER_ROLES:
        logger.info(f"✅ Ручная цена {manual} (расчетная {auto}) применена ролью {role}")
        return ApprovalDecision(ApprovalStatus.APPROVED, None, manual_total, manual)

    if role not in STAFF_ROLES:
        logger.warning(f"⚠️ Неизвестная роль '{user_role}' с ручной ценой, требуется одобрение")

    auto_total = derive_financials(quantity, auto, transport_fee, ZERO).total_amount
    logger.info(f"⏳ Ручная цена {manual} вместо {auto}: итог {manual_total} ждет одобрения")
    return ApprovalDecision(ApprovalStatus.PENDING, manual_total, auto_total, auto)
