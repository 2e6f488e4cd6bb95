"""
Черновик аренды и редьюсер действий пользователя.

Черновик неизменяемый: каждое действие (SetDepositAmount, SetPaymentStatus,
...) дает новый черновик, после чего производные поля пересчитываются
явно в recompute(). Ручная смена статуса оплаты отличается от остальных
действий по типу, а не по внешнему флагу.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from database.models.rental import ApprovalStatus, PaymentStatus, RentalStatus, RentalType
from services.ocr_service import OCRResult, merge_ocr_fields
from services.rental_pricing import (
    MAX_AMOUNT,
    ZERO,
    compose_datetime,
    derive_financials,
    derive_payment_status,
    derive_schedule,
    derive_transport_fee,
    format_time,
    parse_amount,
    step_back_start,
    to_money,
)


START_ADJUSTED_NOTICE = "Start time was automatically adjusted to be before the end time."
DEFAULT_LOCATION = "Office"
DAILY_DEFAULT_TIME = "09:00"
CUSTOM_DEPOSIT = "custom"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Поля, которые пользователь может менять напрямую через EditField
EDITABLE_FIELDS = frozenset({
    "customer_id",
    "customer_name",
    "customer_phone",
    "customer_email",
    "customer_licence_number",
    "customer_id_number",
    "customer_dob",
    "customer_place_of_birth",
    "customer_nationality",
    "customer_issue_date",
    "customer_id_image",
    "pickup_location",
    "dropoff_location",
    "notes",
})


# ==================== СПРАВОЧНЫЕ ДАННЫЕ ====================

class TransportFees(BaseModel):
    pickup_fee: Decimal = ZERO
    dropoff_fee: Decimal = ZERO


class DepositPreset(BaseModel):
    label: str
    amount: Decimal
    enabled: bool = True


class VehicleRates(BaseModel):
    vehicle_id: int
    name: str = ""
    model_id: Optional[int] = None
    hourly_rate: Decimal = ZERO
    daily_rate: Decimal = ZERO

    def rate_for(self, rental_type: RentalType) -> Decimal:
        return self.hourly_rate if rental_type == RentalType.HOURLY else self.daily_rate


class PricingContext(BaseModel):
    """Данные, загруженные при открытии формы; редьюсер только читает их"""
    model_config = ConfigDict(frozen=True)

    transport_fees: TransportFees = Field(default_factory=TransportFees)
    vehicles: Dict[int, VehicleRates] = Field(default_factory=dict)
    deposit_presets: Dict[int, List[DepositPreset]] = Field(default_factory=dict)
    allow_custom_deposit: bool = True
    ocr_confidence_threshold: float = 0.8

    def enabled_presets_for(self, vehicle_id: Optional[int]) -> List[DepositPreset]:
        vehicle = self.vehicles.get(vehicle_id) if vehicle_id is not None else None
        if not vehicle or vehicle.model_id is None:
            return []
        return [p for p in self.deposit_presets.get(vehicle.model_id, []) if p.enabled]


# ==================== ЧЕРНОВИК ====================

class RentalDraft(BaseModel):
    model_config = ConfigDict(frozen=True)

    rental_id: Optional[int] = None

    # Клиент
    customer_id: Optional[int] = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    customer_licence_number: str = ""
    customer_id_number: str = ""
    customer_dob: str = ""
    customer_place_of_birth: str = ""
    customer_nationality: str = ""
    customer_issue_date: str = ""
    customer_id_image: Optional[str] = None

    # Техника и даты
    vehicle_id: Optional[int] = None
    rental_type: Optional[RentalType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: str = ""
    end_time: str = ""
    pickup_location: str = DEFAULT_LOCATION
    dropoff_location: str = DEFAULT_LOCATION
    transport_pickup: bool = False
    transport_dropoff: bool = False

    # Финансы
    quantity: int = 0
    unit_price: Decimal = ZERO
    auto_unit_price: Decimal = ZERO
    transport_fee: Decimal = ZERO
    subtotal: Decimal = ZERO
    total_amount: Decimal = ZERO
    deposit_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    damage_deposit: Decimal = ZERO
    damage_deposit_source: str = ""
    payment_status: PaymentStatus = PaymentStatus.UNPAID

    # Одобрение
    approval_status: ApprovalStatus = ApprovalStatus.AUTO
    pending_total_request: Optional[Decimal] = None
    # Ручная цена, уже одобренная для сохраненной аренды
    approved_unit_price: Optional[Decimal] = None

    rental_status: RentalStatus = RentalStatus.SCHEDULED
    notes: str = ""

    # Поля, введенные пользователем вручную (OCR их не перезаписывает)
    edited_fields: FrozenSet[str] = frozenset()
    schedule_notice: Optional[str] = None

    @classmethod
    def from_rental(cls, rental, auto_unit_price: Any = None) -> "RentalDraft":
        """
        Черновик для редактирования сохраненной аренды.

        auto_unit_price - текущий тариф техники. В аренде, ждущей одобрения,
        хранится расчетная цена, поэтому ручная цена восстанавливается из
        pending_total_request.
        """
        customer = rental.customer
        stored_price = to_money(rental.unit_price)
        unit_price = stored_price
        if rental.approval_status == ApprovalStatus.PENDING and rental.pending_total_request is not None and rental.quantity:
            requested = to_money(rental.pending_total_request) - to_money(rental.transport_fee)
            unit_price = to_money(requested / rental.quantity)
        approved_price = stored_price if rental.approval_status == ApprovalStatus.APPROVED else None

        return cls(
            rental_id=rental.id,
            customer_id=rental.customer_id,
            customer_name=customer.full_name if customer else "",
            customer_phone=(customer.phone or "") if customer else "",
            customer_email=(customer.email or "") if customer else "",
            customer_licence_number=(customer.licence_number or "") if customer else "",
            customer_id_number=(customer.id_number or "") if customer else "",
            vehicle_id=rental.vehicle_id,
            rental_type=rental.rental_type,
            start_date=rental.start_date,
            end_date=rental.end_date,
            start_time=format_time(rental.start_at),
            end_time=format_time(rental.end_at),
            pickup_location=rental.pickup_location or DEFAULT_LOCATION,
            dropoff_location=rental.dropoff_location or DEFAULT_LOCATION,
            transport_pickup=rental.transport_pickup,
            transport_dropoff=rental.transport_dropoff,
            quantity=rental.quantity,
            unit_price=unit_price,
            auto_unit_price=stored_price if auto_unit_price is None else to_money(auto_unit_price),
            transport_fee=to_money(rental.transport_fee),
            subtotal=to_money(rental.quantity * unit_price),
            total_amount=to_money(rental.total_amount),
            deposit_amount=to_money(rental.deposit_amount),
            remaining_amount=to_money(rental.remaining_amount),
            damage_deposit=to_money(rental.damage_deposit),
            damage_deposit_source=rental.damage_deposit_source or "",
            payment_status=rental.payment_status,
            approval_status=rental.approval_status,
            pending_total_request=rental.pending_total_request,
            approved_unit_price=approved_price,
            rental_status=rental.status,
            notes=rental.notes or "",
        )

    @property
    def start_at(self) -> Optional[datetime]:
        return compose_datetime(self.start_date, self.start_time) if self.start_date else None

    @property
    def end_at(self) -> Optional[datetime]:
        return compose_datetime(self.end_date, self.end_time) if self.end_date else None


# ==================== ДЕЙСТВИЯ ====================

@dataclass(frozen=True)
class EditField:
    field: str
    value: Any


@dataclass(frozen=True)
class SetRentalType:
    rental_type: RentalType
    now: Optional[datetime] = None


@dataclass(frozen=True)
class SelectVehicle:
    vehicle_id: Any


@dataclass(frozen=True)
class SetStartDate:
    value: date


@dataclass(frozen=True)
class SetEndDate:
    value: date


@dataclass(frozen=True)
class SetStartTime:
    value: str


@dataclass(frozen=True)
class SetEndTime:
    value: str


@dataclass(frozen=True)
class SelectQuickDuration:
    hours: int


@dataclass(frozen=True)
class SetUnitPrice:
    value: Any


@dataclass(frozen=True)
class ToggleTransport:
    leg: str  # "pickup" | "dropoff"
    enabled: bool


@dataclass(frozen=True)
class SetDepositAmount:
    value: Any


@dataclass(frozen=True)
class SetPaymentStatus:
    """Явный выбор статуса пользователем; автоматический вывод пропускается"""
    status: PaymentStatus


@dataclass(frozen=True)
class SelectDamageDeposit:
    source: str
    amount: Any = None


@dataclass(frozen=True)
class ApplyScan:
    result: OCRResult


# ==================== РЕДЬЮСЕР ====================

def _edit_field(draft: RentalDraft, action: EditField, context: PricingContext) -> Dict[str, Any]:
    if action.field not in EDITABLE_FIELDS:
        raise ValueError(f"Field '{action.field}' cannot be edited directly")
    value = action.value.strip() if isinstance(action.value, str) else action.value
    return {action.field: value, "edited_fields": draft.edited_fields | {action.field}}


def _set_rental_type(draft: RentalDraft, action: SetRentalType, context: PricingContext) -> Dict[str, Any]:
    now = action.now or datetime.now()
    start_date = draft.start_date or now.date()
    updates: Dict[str, Any] = {"rental_type": action.rental_type, "start_date": start_date}

    if action.rental_type == RentalType.HOURLY:
        updates.update(
            end_date=start_date,
            start_time=format_time(now),
            end_time=format_time(now + timedelta(hours=1)),
        )
    else:
        updates.update(
            end_date=start_date + timedelta(days=1),
            start_time=DAILY_DEFAULT_TIME,
            end_time=DAILY_DEFAULT_TIME,
        )
    updates.update(_auto_price(draft.vehicle_id, action.rental_type, context))
    return updates


def _select_vehicle(draft: RentalDraft, action: SelectVehicle, context: PricingContext) -> Dict[str, Any]:
    vehicle_id = parse_vehicle_id(action.vehicle_id)
    if vehicle_id is None:
        raise ValueError(f"Invalid vehicle id: {action.vehicle_id!r}")

    updates: Dict[str, Any] = {"vehicle_id": vehicle_id}
    updates.update(_auto_price(vehicle_id, draft.rental_type, context))

    presets = context.enabled_presets_for(vehicle_id)
    if presets:
        first = presets[0]
        updates.update(damage_deposit=to_money(first.amount), damage_deposit_source=first.label)
        logger.debug(f"Залог выбран автоматически: {first.label} ({first.amount})")
    elif context.allow_custom_deposit:
        updates["damage_deposit_source"] = CUSTOM_DEPOSIT
    return updates


def _auto_price(vehicle_id: Optional[int], rental_type: Optional[RentalType], context: PricingContext) -> Dict[str, Any]:
    """Расчетная цена подставляется при смене техники или типа аренды"""
    # Одобрение ручной цены относится к прежней технике и типу аренды
    if vehicle_id is None or rental_type is None:
        return {"unit_price": ZERO, "auto_unit_price": ZERO, "approved_unit_price": None}
    vehicle = context.vehicles.get(vehicle_id)
    if vehicle is None:
        logger.warning(f"⚠️ Нет тарифа для техники {vehicle_id}, цена 0")
        return {"unit_price": ZERO, "auto_unit_price": ZERO, "approved_unit_price": None}
    price = to_money(vehicle.rate_for(rental_type))
    return {"unit_price": price, "auto_unit_price": price, "approved_unit_price": None}


def _set_start_date(draft: RentalDraft, action: SetStartDate, context: PricingContext) -> Dict[str, Any]:
    updates: Dict[str, Any] = {"start_date": action.value}
    if draft.rental_type == RentalType.DAILY:
        updates["end_date"] = action.value + timedelta(days=1)
    elif draft.rental_type == RentalType.HOURLY:
        updates["end_date"] = action.value
    return updates


def _select_quick_duration(draft: RentalDraft, action: SelectQuickDuration, context: PricingContext) -> Dict[str, Any]:
    if not draft.start_date or not draft.start_time:
        raise ValueError("Please set start date and time first")
    end_at = draft.start_at + timedelta(hours=action.hours)
    return {"end_date": end_at.date(), "end_time": format_time(end_at)}


def _toggle_transport(draft: RentalDraft, action: ToggleTransport, context: PricingContext) -> Dict[str, Any]:
    if action.leg not in ("pickup", "dropoff"):
        raise ValueError(f"Unknown transport leg: {action.leg}")
    return {f"transport_{action.leg}": bool(action.enabled)}


def _set_payment_status(draft: RentalDraft, action: SetPaymentStatus, context: PricingContext) -> Dict[str, Any]:
    updates: Dict[str, Any] = {"payment_status": action.status}
    if action.status == PaymentStatus.PAID:
        updates["deposit_amount"] = draft.total_amount
    elif action.status == PaymentStatus.UNPAID:
        updates["deposit_amount"] = ZERO
    return updates


def _select_damage_deposit(draft: RentalDraft, action: SelectDamageDeposit, context: PricingContext) -> Dict[str, Any]:
    if action.source == CUSTOM_DEPOSIT:
        if not context.allow_custom_deposit:
            raise ValueError("Custom damage deposit is disabled")
        return {"damage_deposit": parse_amount(action.amount), "damage_deposit_source": CUSTOM_DEPOSIT}

    for preset in context.enabled_presets_for(draft.vehicle_id):
        if preset.label == action.source:
            return {"damage_deposit": to_money(preset.amount), "damage_deposit_source": preset.label}
    raise ValueError(f"Unknown damage deposit preset: {action.source}")


def _apply_scan(draft: RentalDraft, action: ApplyScan, context: PricingContext) -> Dict[str, Any]:
    current = draft.model_dump(include=set(EDITABLE_FIELDS))
    return merge_ocr_fields(current, action.result, draft.edited_fields, context.ocr_confidence_threshold)


_HANDLERS = {
    EditField: _edit_field,
    SetRentalType: _set_rental_type,
    SelectVehicle: _select_vehicle,
    SetStartDate: _set_start_date,
    SetEndDate: lambda d, a, c: {"end_date": a.value},
    SetStartTime: lambda d, a, c: {"start_time": a.value},
    SetEndTime: lambda d, a, c: {"end_time": a.value},
    SelectQuickDuration: _select_quick_duration,
    SetUnitPrice: lambda d, a, c: {"unit_price": parse_amount(a.value)},
    ToggleTransport: _toggle_transport,
    SetDepositAmount: lambda d, a, c: {"deposit_amount": parse_amount(a.value)},
    SetPaymentStatus: _set_payment_status,
    SelectDamageDeposit: _select_damage_deposit,
    ApplyScan: _apply_scan,
}


def reduce(draft: RentalDraft, action: Any, context: Optional[PricingContext] = None) -> RentalDraft:
    """Применить действие и пересчитать производные поля"""
    context = context or PricingContext()
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unsupported action: {type(action).__name__}")

    updated = draft.model_copy(update=handler(draft, action, context))
    return recompute(
        updated,
        context,
        previous=draft,
        manual_status=isinstance(action, SetPaymentStatus),
    )


def recompute(
    draft: RentalDraft,
    context: Optional[PricingContext] = None,
    previous: Optional[RentalDraft] = None,
    manual_status: bool = False,
) -> RentalDraft:
    """График -> транспорт -> суммы -> статус оплаты"""
    context = context or PricingContext()
    updates: Dict[str, Any] = {}

    if draft.rental_type and draft.start_date and draft.end_date:
        updates.update(_recompute_schedule(draft))

    transport_fee = derive_transport_fee(
        draft.transport_pickup,
        draft.transport_dropoff,
        context.transport_fees.pickup_fee,
        context.transport_fees.dropoff_fee,
    )
    quantity = updates.get("quantity", draft.quantity)
    financials = derive_financials(quantity, draft.unit_price, transport_fee, draft.deposit_amount)
    updates.update(
        transport_fee=transport_fee,
        subtotal=financials.subtotal,
        total_amount=financials.total_amount,
        remaining_amount=financials.remaining_amount,
    )

    # Статус выводится заново только когда изменились залог или итог
    amounts_changed = previous is None or (
        previous.deposit_amount != draft.deposit_amount
        or previous.total_amount != financials.total_amount
    )
    if manual_status or amounts_changed:
        updates["payment_status"] = derive_payment_status(
            draft.deposit_amount,
            financials.total_amount,
            draft.payment_status,
            manual_override=manual_status,
        )

    return draft.model_copy(update=updates)


def _recompute_schedule(draft: RentalDraft) -> Dict[str, Any]:
    updates: Dict[str, Any] = {"schedule_notice": None}
    schedule = derive_schedule(draft.rental_type, draft.start_date, draft.start_time, draft.end_date, draft.end_time)

    if schedule is None:
        # Конец не позже начала: сдвигаем начало на одну единицу назад
        new_start = step_back_start(draft.rental_type, draft.end_date, draft.end_time)
        logger.debug(f"Начало аренды сдвинуто на {new_start}")
        updates.update(
            start_date=new_start.date(),
            start_time=format_time(new_start),
            schedule_notice=START_ADJUSTED_NOTICE,
        )
        schedule = derive_schedule(
            draft.rental_type, new_start.date(), format_time(new_start), draft.end_date, draft.end_time
        )

    if schedule is not None:
        updates["quantity"] = schedule.quantity
        if schedule.is_overnight:
            updates["end_date"] = schedule.adjusted_end_date
    return updates


# ==================== ПРОВЕРКА ====================

def parse_vehicle_id(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        vehicle_id = int(str(value).strip())
    except ValueError:
        return None
    return vehicle_id if vehicle_id > 0 else None


def validate_step(draft: RentalDraft, step: int) -> Dict[str, str]:
    """1 - клиент, 2 - техника и даты, 3 - цена"""
    errors: Dict[str, str] = {}

    if step == 1:
        if not draft.customer_name.strip():
            errors["customer_name"] = "Customer name is required"
        if not draft.customer_phone.strip():
            errors["customer_phone"] = "Phone is required"
        email = draft.customer_email.strip()
        if email and not EMAIL_RE.match(email):
            errors["customer_email"] = "Please enter a valid email address"
    elif step == 2:
        if draft.rental_type is None:
            errors["rental_type"] = "Rental type is required"
        if draft.vehicle_id is None:
            errors["vehicle_id"] = "Vehicle selection is required"
        elif parse_vehicle_id(draft.vehicle_id) is None:
            errors["vehicle_id"] = "Please select a valid vehicle"
        if not draft.start_date:
            errors["start_date"] = "Start date is required"
        if not draft.end_date:
            errors["end_date"] = "End date is required"
        if draft.start_date and draft.end_date and draft.start_at >= draft.end_at:
            errors["end_date"] = "End date must be after start date"
    elif step == 3:
        if draft.unit_price <= 0:
            errors["unit_price"] = "Unit price is required"
        for field in ("unit_price", "deposit_amount", "damage_deposit", "total_amount"):
            if getattr(draft, field) > MAX_AMOUNT:
                errors[field] = f"Amount must not exceed {MAX_AMOUNT}"
    return errors


def validate_draft(draft: RentalDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for step in (1, 2, 3):
        errors.update(validate_step(draft, step))
    return errors
