"""
Оформление аренды сотрудником: тип -> техника -> время -> клиент
(фото документа или ручной ввод) -> цена и оплата -> сохранение.
"""
from datetime import datetime
from typing import Optional

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from loguru import logger

from bot.keyboards.admin import (
    PAYMENT_STATUS_LABELS,
    get_cancel_keyboard,
    get_customer_source_keyboard,
    get_end_keyboard,
    get_pricing_keyboard,
    get_rental_type_keyboard,
    get_scan_keyboard,
    get_skip_keyboard,
    get_vehicles_keyboard,
)
from bot.keyboards.common import NEW_RENTAL_BUTTON, RESUME_RENTAL_BUTTON, get_main_menu_keyboard
from bot.states.rental import RentalBookingStates
from bot.utils.wizard_registry import (
    discard_wizard,
    get_wizard,
    register_wizard,
    restore_wizard,
    save_draft,
)
from config.settings import settings
from database.models.rental import ApprovalStatus, PaymentStatus, RentalType
from services.errors import RentalDeskError, RentalNotFoundError
from services.notification_service import NotificationService
from services.rental_draft import (
    CUSTOM_DEPOSIT,
    EditField,
    SelectDamageDeposit,
    SelectQuickDuration,
    SelectVehicle,
    SetDepositAmount,
    SetEndDate,
    SetEndTime,
    SetPaymentStatus,
    SetRentalType,
    SetStartDate,
    SetStartTime,
    SetUnitPrice,
    ToggleTransport,
)
from services.rental_pricing import MAX_AMOUNT, parse_amount
from services.rental_wizard import RentalWizard
from services.user_service import UserService

router = Router()


DATETIME_HINT = "Формат: ДД.ММ.ГГГГ ЧЧ:ММ или только ЧЧ:ММ"
SESSION_EXPIRED = "⌛ Оформление не найдено. Начните заново: «🛵 Новая аренда»"


# ==================== ВСПОМОГАТЕЛЬНЫЕ ====================

def parse_datetime_input(text: str, default_date) -> Optional[datetime]:
    """ДД.ММ.ГГГГ ЧЧ:ММ или ЧЧ:ММ (дата остается прежней)"""
    text = (text or "").strip()
    for fmt in ("%d.%m.%Y %H:%M", "%d.%m.%y %H:%M"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        clock = datetime.strptime(text, "%H:%M").time()
    except ValueError:
        return None
    if default_date is None:
        return None
    return datetime.combine(default_date, clock)


def format_errors(errors) -> str:
    return "\n".join(f"• {message}" for message in errors.values())


def render_summary(wizard: RentalWizard) -> str:
    """Итоговая карточка аренды"""
    draft = wizard.draft
    currency = settings.currency
    vehicle = wizard.context.vehicles.get(draft.vehicle_id)
    unit = "ч" if draft.rental_type == RentalType.HOURLY else "сут"

    lines = [
        "✏️ Изменение аренды" if wizard.is_edit_mode else "🛵 Новая аренда",
        "",
        f"👤 Клиент: {draft.customer_name or '-'}",
        f"📱 Телефон: {draft.customer_phone or '-'}",
    ]
    if draft.customer_email:
        lines.append(f"📧 Email: {draft.customer_email}")
    if draft.customer_id_number:
        lines.append(f"🪪 Документ: {draft.customer_id_number}")

    lines.extend([
        "",
        f"🛵 Техника: {vehicle.name if vehicle else draft.vehicle_id or '-'}",
        f"🕐 Начало: {draft.start_at:%d.%m.%Y %H:%M}" if draft.start_at else "🕐 Начало: -",
        f"🏁 Окончание: {draft.end_at:%d.%m.%Y %H:%M}" if draft.end_at else "🏁 Окончание: -",
        f"⏱ Количество: {draft.quantity} {unit}",
    ])
    if draft.schedule_notice:
        lines.append(f"⚠️ {draft.schedule_notice}")

    lines.extend([
        "",
        f"💰 Цена: {draft.unit_price} {currency}/{unit}",
        f"🧮 Аренда: {draft.subtotal} {currency}",
        f"🚚 Транспорт: {draft.transport_fee} {currency}",
        f"💵 Итого: {draft.total_amount} {currency}",
        f"💳 Предоплата: {draft.deposit_amount} {currency}",
        f"📉 Остаток: {draft.remaining_amount} {currency}",
        f"🔐 Залог за ущерб: {draft.damage_deposit} {currency}"
        + (f" ({draft.damage_deposit_source})" if draft.damage_deposit_source else ""),
        f"📊 Оплата: {PAYMENT_STATUS_LABELS[draft.payment_status]}",
    ])
    if draft.notes:
        lines.append(f"📝 {draft.notes}")

    decision = wizard.preview_approval()
    if decision.approval_status == ApprovalStatus.PENDING:
        lines.extend([
            "",
            f"⚠️ Цена отличается от тарифа ({draft.auto_unit_price} {currency}). "
            f"Итог {decision.pending_total_request} {currency} уйдет на одобрение администратору, "
            f"до одобрения действует {decision.effective_total} {currency}.",
        ])
    elif decision.approval_status == ApprovalStatus.APPROVED:
        lines.extend(["", "👑 Ручная цена будет применена сразу."])

    if wizard.errors:
        lines.extend(["", "❌ " + format_errors(wizard.errors)])
    return "\n".join(lines)


async def show_summary(message: Message, wizard: RentalWizard, state: FSMContext, edit: bool = False):
    presets = wizard.context.enabled_presets_for(wizard.draft.vehicle_id)
    keyboard = get_pricing_keyboard(wizard.draft, presets, wizard.context.allow_custom_deposit)
    text = render_summary(wizard)
    if edit:
        try:
            await message.edit_text(text, reply_markup=keyboard)
        except Exception as e:
            logger.debug(f"Не удалось отредактировать карточку: {e}")
            await message.answer(text, reply_markup=keyboard)
    else:
        await message.answer(text, reply_markup=keyboard)
    await state.set_state(RentalBookingStates.pricing_summary)


async def ask_customer_field(message: Message, wizard: RentalWizard, state: FSMContext):
    """Запросить первое незаполненное поле клиента либо перейти к цене"""
    draft = wizard.draft
    if not draft.customer_name:
        await message.answer("👤 Введите ФИО клиента:", reply_markup=get_cancel_keyboard())
        await state.set_state(RentalBookingStates.entering_customer_name)
    elif not draft.customer_phone:
        await message.answer("📱 Введите телефон клиента:", reply_markup=get_cancel_keyboard())
        await state.set_state(RentalBookingStates.entering_customer_phone)
    else:
        await show_summary(message, wizard, state)


async def _wizard_for_callback(callback: CallbackQuery, state: FSMContext) -> Optional[RentalWizard]:
    wizard = get_wizard(callback.from_user.id)
    if wizard is None:
        await state.clear()
        await callback.answer(SESSION_EXPIRED, show_alert=True)
    return wizard


async def _wizard_for_message(message: Message, state: FSMContext) -> Optional[RentalWizard]:
    wizard = get_wizard(message.from_user.id)
    if wizard is None:
        await state.clear()
        await message.answer(SESSION_EXPIRED)
    return wizard


async def _build_wizard(message: Message, bot: Bot, rental_id: Optional[int] = None) -> Optional[RentalWizard]:
    user = await UserService.get_by_telegram_id(message.from_user.id)
    if user is None or not user.can_book_rentals:
        await message.answer("🚫 Оформлять аренды могут только сотрудники проката")
        return None

    kwargs = dict(
        user_id=user.id,
        notifier=NotificationService(bot),
        requested_by=user.full_name,
    )
    if rental_id is not None:
        wizard = await RentalWizard.for_rental(rental_id, user.role.value, **kwargs)
    else:
        wizard = RentalWizard(user.role.value, **kwargs)
    await wizard.load_reference_data()
    return register_wizard(message.from_user.id, wizard)


# ==================== СТАРТ ====================

@router.message(F.text == NEW_RENTAL_BUTTON)
@router.message(Command("new_rental"))
async def start_booking(message: Message, state: FSMContext, bot: Bot):
    """Начать оформление новой аренды"""
    await state.clear()
    await discard_wizard(message.from_user.id)

    wizard = await _build_wizard(message, bot)
    if wizard is None:
        return

    await message.answer("🛵 Новая аренда\n\nВыберите тип аренды:", reply_markup=get_rental_type_keyboard())
    await state.set_state(RentalBookingStates.choosing_rental_type)


@router.message(Command("edit_rental"))
async def start_editing(message: Message, state: FSMContext, bot: Bot, command: CommandObject):
    """/edit_rental <id> - изменить сохраненную аренду"""
    if not command.args or not command.args.strip().isdigit():
        await message.answer("ℹ️ Использование: /edit_rental <номер аренды>")
        return

    await state.clear()
    await discard_wizard(message.from_user.id)
    try:
        wizard = await _build_wizard(message, bot, rental_id=int(command.args.strip()))
    except RentalNotFoundError:
        await message.answer(f"❌ Аренда #{command.args.strip()} не найдена")
        return
    if wizard is None:
        return

    await save_draft(message.from_user.id)
    await show_summary(message, wizard, state)


@router.message(F.text == RESUME_RENTAL_BUTTON)
async def resume_booking(message: Message, state: FSMContext, bot: Bot):
    """Вернуться к незавершенному оформлению"""
    user = await UserService.get_by_telegram_id(message.from_user.id)
    if user is None or not user.can_book_rentals:
        await message.answer("🚫 Оформлять аренды могут только сотрудники проката")
        return

    wizard = await restore_wizard(
        message.from_user.id,
        user_role=user.role.value,
        user_id=user.id,
        notifier=NotificationService(bot),
        requested_by=user.full_name,
    )
    if wizard is None:
        await message.answer("📭 Незавершенных оформлений нет", reply_markup=get_main_menu_keyboard())
        return
    await show_summary(message, wizard, state)


@router.callback_query(F.data == "rb_cancel")
async def cancel_booking(callback: CallbackQuery, state: FSMContext):
    await discard_wizard(callback.from_user.id)
    await state.clear()
    await callback.message.edit_text("❌ Оформление отменено")
    await callback.answer()


# ==================== ТИП И ТЕХНИКА ====================

@router.callback_query(RentalBookingStates.choosing_rental_type, F.data.startswith("rb_type_"))
async def process_rental_type(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    rental_type = RentalType(callback.data.removeprefix("rb_type_"))
    wizard.dispatch(SetRentalType(rental_type))
    await save_draft(callback.from_user.id)

    if not wizard.vehicles:
        await callback.message.edit_text(
            "😔 Нет доступной техники. Проверьте парк или попробуйте позже.",
            reply_markup=get_cancel_keyboard(),
        )
        await callback.answer()
        return

    await callback.message.edit_text(
        "🛵 Выберите технику:",
        reply_markup=get_vehicles_keyboard(wizard.vehicles, rental_type, settings.currency),
    )
    await state.set_state(RentalBookingStates.choosing_vehicle)
    await callback.answer()


@router.callback_query(RentalBookingStates.choosing_vehicle, F.data.startswith("rb_vehicle_"))
async def process_vehicle(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    try:
        wizard.dispatch(SelectVehicle(callback.data.removeprefix("rb_vehicle_")))
    except ValueError as e:
        await callback.answer(f"❌ {e}", show_alert=True)
        return
    await save_draft(callback.from_user.id)

    draft = wizard.draft
    await callback.message.edit_text(
        f"🕐 Начало аренды: {draft.start_at:%d.%m.%Y %H:%M}\n\n"
        f"Введите другое время начала или пропустите.\n{DATETIME_HINT}",
        reply_markup=get_skip_keyboard("rb_start_keep"),
    )
    await state.set_state(RentalBookingStates.entering_start)
    await callback.answer()


# ==================== ВРЕМЯ ====================

async def ask_end(message: Message, wizard: RentalWizard, state: FSMContext):
    draft = wizard.draft
    text = f"🏁 Окончание: {draft.end_at:%d.%m.%Y %H:%M} ({draft.quantity} ед.)"
    if draft.schedule_notice:
        text += f"\n\n⚠️ {draft.schedule_notice}"
    await message.answer(text, reply_markup=get_end_keyboard(draft.rental_type))
    await state.set_state(RentalBookingStates.choosing_end)


@router.callback_query(RentalBookingStates.entering_start, F.data == "rb_start_keep")
async def keep_start(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return
    await callback.answer()
    await ask_end(callback.message, wizard, state)


@router.message(RentalBookingStates.entering_start)
async def process_start(message: Message, state: FSMContext):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    value = parse_datetime_input(message.text, wizard.draft.start_date)
    if value is None:
        await message.answer(f"❌ Не удалось разобрать дату. {DATETIME_HINT}")
        return

    wizard.dispatch(SetStartDate(value.date()))
    wizard.dispatch(SetStartTime(f"{value:%H:%M}"))
    await save_draft(message.from_user.id)
    await ask_end(message, wizard, state)


@router.callback_query(RentalBookingStates.choosing_end, F.data.startswith("rb_dur_"))
async def process_quick_duration(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    try:
        wizard.dispatch(SelectQuickDuration(int(callback.data.removeprefix("rb_dur_"))))
    except ValueError as e:
        await callback.answer(f"❌ {e}", show_alert=True)
        return
    await save_draft(callback.from_user.id)
    await callback.answer()
    await finish_schedule(callback.message, wizard, state)


@router.callback_query(RentalBookingStates.choosing_end, F.data == "rb_end_manual")
async def ask_manual_end(callback: CallbackQuery, state: FSMContext):
    await callback.message.answer(f"🏁 Введите окончание аренды.\n{DATETIME_HINT}", reply_markup=get_cancel_keyboard())
    await state.set_state(RentalBookingStates.entering_end)
    await callback.answer()


@router.callback_query(RentalBookingStates.choosing_end, F.data == "rb_end_keep")
async def keep_end(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return
    await callback.answer()
    await finish_schedule(callback.message, wizard, state)


@router.message(RentalBookingStates.entering_end)
async def process_end(message: Message, state: FSMContext):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    value = parse_datetime_input(message.text, wizard.draft.end_date)
    if value is None:
        await message.answer(f"❌ Не удалось разобрать дату. {DATETIME_HINT}")
        return

    wizard.dispatch(SetEndDate(value.date()))
    wizard.dispatch(SetEndTime(f"{value:%H:%M}"))
    await save_draft(message.from_user.id)
    await finish_schedule(message, wizard, state)


async def finish_schedule(message: Message, wizard: RentalWizard, state: FSMContext):
    """Проверка шага с техникой и временем, затем данные клиента"""
    if not wizard.validate_step(2):
        await message.answer("❌ " + format_errors(wizard.errors))
        await ask_end(message, wizard, state)
        return

    if wizard.draft.schedule_notice:
        await message.answer(f"⚠️ {wizard.draft.schedule_notice}")

    if wizard.draft.customer_id:
        await ask_customer_field(message, wizard, state)
        return
    await message.answer(
        "👤 Данные клиента\n\nОтправьте фото паспорта или прав, либо введите данные вручную.",
        reply_markup=get_customer_source_keyboard(),
    )


# ==================== КЛИЕНТ ====================

@router.callback_query(F.data == "rb_scan")
async def ask_document_photo(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return
    wizard.dismiss_ocr_error()
    await callback.message.answer("📷 Отправьте фото документа клиента", reply_markup=get_scan_keyboard())
    await state.set_state(RentalBookingStates.waiting_document_photo)
    await callback.answer()


@router.message(RentalBookingStates.waiting_document_photo, F.photo)
async def process_document_photo(message: Message, state: FSMContext, bot: Bot):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    photo = message.photo[-1]
    progress = await message.answer("🔎 Распознаю документ...", reply_markup=get_scan_keyboard(scanning=True))
    try:
        image = await bot.download(photo)
        applied = await wizard.scan_document(image.read(), f"{photo.file_unique_id}.jpg")
    except Exception as e:
        logger.error(f"❌ Ошибка загрузки фото документа: {e}")
        await progress.edit_text("❌ Не удалось загрузить фото. Попробуйте еще раз.", reply_markup=get_scan_keyboard())
        return

    if wizard.ocr_error:
        await progress.edit_text(
            f"❌ Распознавание не удалось: {wizard.ocr_error}\n\nОтправьте фото еще раз или введите данные вручную.",
            reply_markup=get_scan_keyboard(),
        )
        return

    wizard.dispatch(EditField("customer_id_image", photo.file_id))
    await save_draft(message.from_user.id)
    if applied:
        await progress.edit_text("✅ Данные документа добавлены в форму")
    else:
        await progress.edit_text("ℹ️ Документ не распознан уверенно, проверьте данные вручную")
    await ask_customer_field(message, wizard, state)


@router.message(RentalBookingStates.waiting_document_photo)
async def process_document_not_photo(message: Message):
    await message.answer("📷 Нужна фотография документа", reply_markup=get_scan_keyboard())


@router.callback_query(F.data == "rb_ocr_cancel")
async def cancel_document_scan(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return
    if wizard.cancel_scan():
        await callback.message.edit_text("🛑 Распознавание остановлено", reply_markup=get_scan_keyboard())
    await callback.answer()


@router.callback_query(F.data == "rb_manual")
async def start_manual_customer(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return
    wizard.cancel_scan()
    await callback.answer()
    await ask_customer_field(callback.message, wizard, state)


@router.message(RentalBookingStates.entering_customer_name)
async def process_customer_name(message: Message, state: FSMContext):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    if not message.text or len(message.text.strip()) < 2:
        await message.answer("❌ Введите корректное ФИО (минимум 2 символа)")
        return

    wizard.dispatch(EditField("customer_name", message.text))
    await save_draft(message.from_user.id)
    if wizard.draft.customer_phone:
        await ask_customer_field(message, wizard, state)
        return
    await message.answer("📱 Введите телефон клиента:", reply_markup=get_cancel_keyboard())
    await state.set_state(RentalBookingStates.entering_customer_phone)


@router.message(RentalBookingStates.entering_customer_phone)
async def process_customer_phone(message: Message, state: FSMContext):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    if not message.text or not message.text.strip():
        await message.answer("❌ Введите телефон")
        return

    wizard.dispatch(EditField("customer_phone", message.text))
    await save_draft(message.from_user.id)
    await message.answer("📧 Введите email клиента или пропустите:", reply_markup=get_skip_keyboard("rb_skip_email"))
    await state.set_state(RentalBookingStates.entering_customer_email)


@router.callback_query(RentalBookingStates.entering_customer_email, F.data == "rb_skip_email")
async def skip_customer_email(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return
    await callback.answer()
    await finish_customer(callback.message, wizard, state)


@router.message(RentalBookingStates.entering_customer_email)
async def process_customer_email(message: Message, state: FSMContext):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    wizard.dispatch(EditField("customer_email", message.text or ""))
    await save_draft(message.from_user.id)
    await finish_customer(message, wizard, state)


async def finish_customer(message: Message, wizard: RentalWizard, state: FSMContext):
    if not wizard.validate_step(1):
        await message.answer("❌ " + format_errors(wizard.errors))
        if "customer_email" in wizard.errors:
            await message.answer("📧 Введите email еще раз:", reply_markup=get_skip_keyboard("rb_skip_email"))
            await state.set_state(RentalBookingStates.entering_customer_email)
        else:
            await ask_customer_field(message, wizard, state)
        return
    await show_summary(message, wizard, state)


# ==================== ЦЕНА И ОПЛАТА ====================

@router.callback_query(RentalBookingStates.pricing_summary, F.data.startswith("rb_tr_"))
async def toggle_transport(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    leg = callback.data.removeprefix("rb_tr_")
    enabled = not getattr(wizard.draft, f"transport_{leg}")
    wizard.dispatch(ToggleTransport(leg, enabled))
    await save_draft(callback.from_user.id)
    await show_summary(callback.message, wizard, state, edit=True)
    await callback.answer()


@router.callback_query(RentalBookingStates.pricing_summary, F.data.startswith("rb_pay_"))
async def set_payment_status(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    wizard.dispatch(SetPaymentStatus(PaymentStatus(callback.data.removeprefix("rb_pay_"))))
    await save_draft(callback.from_user.id)
    await show_summary(callback.message, wizard, state, edit=True)
    await callback.answer()


@router.callback_query(RentalBookingStates.pricing_summary, F.data.startswith("rb_dmg_"))
async def select_damage_deposit(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    choice = callback.data.removeprefix("rb_dmg_")
    if choice == CUSTOM_DEPOSIT:
        await callback.message.answer(f"🔐 Введите сумму залога ({settings.currency}):", reply_markup=get_cancel_keyboard())
        await state.set_state(RentalBookingStates.entering_damage_deposit)
        await callback.answer()
        return

    presets = wizard.context.enabled_presets_for(wizard.draft.vehicle_id)
    try:
        wizard.dispatch(SelectDamageDeposit(presets[int(choice)].label))
    except (IndexError, ValueError) as e:
        await callback.answer(f"❌ {e}", show_alert=True)
        return
    await save_draft(callback.from_user.id)
    await show_summary(callback.message, wizard, state, edit=True)
    await callback.answer()


PROMPTS = {
    "rb_price": (RentalBookingStates.entering_unit_price, "💰 Введите цену за единицу ({currency}):"),
    "rb_deposit": (RentalBookingStates.entering_deposit, "💳 Введите сумму предоплаты ({currency}):"),
    "rb_notes": (RentalBookingStates.entering_notes, "📝 Введите заметку к аренде:"),
}


@router.callback_query(RentalBookingStates.pricing_summary, F.data.in_(PROMPTS.keys()))
async def ask_summary_value(callback: CallbackQuery, state: FSMContext):
    next_state, prompt = PROMPTS[callback.data]
    await callback.message.answer(prompt.format(currency=settings.currency), reply_markup=get_cancel_keyboard())
    await state.set_state(next_state)
    await callback.answer()


@router.message(RentalBookingStates.entering_unit_price)
@router.message(RentalBookingStates.entering_deposit)
@router.message(RentalBookingStates.entering_damage_deposit)
@router.message(RentalBookingStates.entering_notes)
async def process_summary_value(message: Message, state: FSMContext):
    wizard = await _wizard_for_message(message, state)
    if wizard is None:
        return

    current = await state.get_state()
    text = (message.text or "").strip()

    if current == RentalBookingStates.entering_notes.state:
        wizard.dispatch(EditField("notes", text))
    else:
        amount = text.replace(" ", "")
        try:
            if not amount:
                raise ValueError("Empty amount")
            parse_amount(amount)
        except ValueError:
            await message.answer(f"❌ Введите сумму от 0 до {MAX_AMOUNT}")
            return

        try:
            if current == RentalBookingStates.entering_unit_price.state:
                wizard.dispatch(SetUnitPrice(amount))
            elif current == RentalBookingStates.entering_deposit.state:
                wizard.dispatch(SetDepositAmount(amount))
            else:
                wizard.dispatch(SelectDamageDeposit(CUSTOM_DEPOSIT, amount))
        except ValueError as e:
            await message.answer(f"❌ {e}")
            return

    await save_draft(message.from_user.id)
    await show_summary(message, wizard, state)


# ==================== СОХРАНЕНИЕ ====================

@router.callback_query(RentalBookingStates.pricing_summary, F.data == "rb_confirm")
async def confirm_booking(callback: CallbackQuery, state: FSMContext):
    wizard = await _wizard_for_callback(callback, state)
    if wizard is None:
        return

    if wizard.is_submitting:
        await callback.answer("⏳ Сохраняем...")
        return
    await callback.answer()

    # Текст ошибки для карточки мастер кладет в wizard.errors
    try:
        result = await wizard.submit()
    except RentalDeskError:
        await show_summary(callback.message, wizard, state, edit=True)
        return
    except Exception as e:
        logger.error(f"❌ Ошибка оформления аренды: {e}")
        await show_summary(callback.message, wizard, state, edit=True)
        return

    if result is None:
        return

    text = f"✅ {result.message}\n\n📋 Аренда #{result.rental.id}, итог {result.rental.total_amount} {settings.currency}"
    if result.approval_status == ApprovalStatus.PENDING:
        text += f"\n📨 Уведомлено администраторов: {result.notified_count}"
    await callback.message.edit_text(text)

    await discard_wizard(callback.from_user.id)
    await state.clear()
    await callback.message.answer("Главное меню", reply_markup=get_main_menu_keyboard())
