from typing import List

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from database.models.rental import PaymentStatus, RentalType
from services.rental_draft import DepositPreset, RentalDraft, VehicleRates


QUICK_DURATIONS = (1, 2, 3, 4, 8, 24)

PAYMENT_STATUS_LABELS = {
    PaymentStatus.UNPAID: "⏳ Не оплачено",
    PaymentStatus.PARTIAL: "🌓 Частично",
    PaymentStatus.PAID: "✅ Оплачено",
    PaymentStatus.OVERDUE: "🚨 Просрочено",
}


def get_cancel_keyboard() -> InlineKeyboardMarkup:
    keyboard = [[InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")]]
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_rental_type_keyboard() -> InlineKeyboardMarkup:
    """Выбор типа аренды"""
    keyboard = [
        [
            InlineKeyboardButton(text="⏱ Почасовая", callback_data=f"rb_type_{RentalType.HOURLY.value}"),
            InlineKeyboardButton(text="📅 Посуточная", callback_data=f"rb_type_{RentalType.DAILY.value}"),
        ],
        [InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")],
    ]
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_vehicles_keyboard(vehicles: List[VehicleRates], rental_type: RentalType, currency: str) -> InlineKeyboardMarkup:
    """Список доступной техники с тарифом выбранного типа"""
    unit = "ч" if rental_type == RentalType.HOURLY else "сут"
    keyboard = []
    for vehicle in vehicles:
        keyboard.append([
            InlineKeyboardButton(
                text=f"🛵 {vehicle.name} - {vehicle.rate_for(rental_type)} {currency}/{unit}",
                callback_data=f"rb_vehicle_{vehicle.vehicle_id}",
            )
        ])
    keyboard.append([InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")])
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_end_keyboard(rental_type: RentalType) -> InlineKeyboardMarkup:
    """Быстрый выбор длительности (только для почасовой) или ввод окончания"""
    keyboard = []
    if rental_type == RentalType.HOURLY:
        buttons = [InlineKeyboardButton(text=f"{h} ч", callback_data=f"rb_dur_{h}") for h in QUICK_DURATIONS]
        keyboard.append(buttons[:3])
        keyboard.append(buttons[3:])
    keyboard.append([InlineKeyboardButton(text="✏️ Ввести окончание", callback_data="rb_end_manual")])
    keyboard.append([InlineKeyboardButton(text="➡️ Оставить как есть", callback_data="rb_end_keep")])
    keyboard.append([InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")])
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_customer_source_keyboard() -> InlineKeyboardMarkup:
    """Данные клиента: фото документа или ручной ввод"""
    keyboard = [
        [InlineKeyboardButton(text="📷 Сканировать документ", callback_data="rb_scan")],
        [InlineKeyboardButton(text="✍️ Ввести вручную", callback_data="rb_manual")],
        [InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")],
    ]
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_scan_keyboard(scanning: bool = False) -> InlineKeyboardMarkup:
    if scanning:
        keyboard = [[InlineKeyboardButton(text="🛑 Остановить распознавание", callback_data="rb_ocr_cancel")]]
    else:
        keyboard = [
            [InlineKeyboardButton(text="✍️ Ввести вручную", callback_data="rb_manual")],
            [InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")],
        ]
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_skip_keyboard(callback_data: str) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(text="⏭ Пропустить", callback_data=callback_data)],
        [InlineKeyboardButton(text="❌ Отменить оформление", callback_data="rb_cancel")],
    ]
    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_pricing_keyboard(
    draft: RentalDraft,
    presets: List[DepositPreset],
    allow_custom_deposit: bool = True,
) -> InlineKeyboardMarkup:
    """Итоговая форма: цена, транспорт, предоплата, залог, статус оплаты"""
    pickup_mark = "✅" if draft.transport_pickup else "▫️"
    dropoff_mark = "✅" if draft.transport_dropoff else "▫️"

    keyboard = [
        [InlineKeyboardButton(text="💰 Изменить цену", callback_data="rb_price")],
        [
            InlineKeyboardButton(text=f"{pickup_mark} Доставка", callback_data="rb_tr_pickup"),
            InlineKeyboardButton(text=f"{dropoff_mark} Забор", callback_data="rb_tr_dropoff"),
        ],
        [InlineKeyboardButton(text="💵 Предоплата", callback_data="rb_deposit")],
    ]

    status_row = []
    for status, label in PAYMENT_STATUS_LABELS.items():
        text = f"• {label}" if draft.payment_status == status else label
        status_row.append(InlineKeyboardButton(text=text, callback_data=f"rb_pay_{status.value}"))
    keyboard.append(status_row[:2])
    keyboard.append(status_row[2:])

    for index, preset in enumerate(presets):
        mark = "🔘" if draft.damage_deposit_source == preset.label else "⚪️"
        keyboard.append([
            InlineKeyboardButton(text=f"{mark} Залог: {preset.label} ({preset.amount})", callback_data=f"rb_dmg_{index}")
        ])
    if allow_custom_deposit:
        keyboard.append([InlineKeyboardButton(text="✏️ Свой залог", callback_data="rb_dmg_custom")])

    keyboard.extend([
        [InlineKeyboardButton(text="📝 Заметка", callback_data="rb_notes")],
        [
            InlineKeyboardButton(text="✅ Сохранить", callback_data="rb_confirm"),
            InlineKeyboardButton(text="❌ Отменить", callback_data="rb_cancel"),
        ],
    ])
    return InlineKeyboardMarkup(inline_keyboard=keyboard)
