"""
Tests for booking conversation helpers
"""
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

import bot.utils.draft_storage as draft_storage_module
import bot.utils.wizard_registry as registry
from bot.handlers.admin.rental_booking import parse_datetime_input, process_summary_value, render_summary
from bot.keyboards.admin import get_end_keyboard, get_pricing_keyboard
from bot.states.rental import RentalBookingStates
from database.models.rental import RentalType
from services.rental_draft import (
    DepositPreset,
    PricingContext,
    RentalDraft,
    SelectVehicle,
    SetRentalType,
    SetUnitPrice,
    VehicleRates,
)
from services.rental_wizard import RentalWizard


def make_wizard(role):
    context = PricingContext(
        vehicles={1: VehicleRates(vehicle_id=1, name="Scooter", model_id=3,
                                  hourly_rate=Decimal("50"), daily_rate=Decimal("1500"))},
        deposit_presets={3: [DepositPreset(label="Standard", amount=Decimal("1000"))]},
    )
    wizard = RentalWizard(role, context=context)
    wizard.dispatch(SetRentalType(RentalType.DAILY, now=datetime(2024, 3, 1, 8, 0)))
    wizard.dispatch(SelectVehicle(1))
    return wizard


class TestParseDatetimeInput:

    def test_full_datetime(self):
        assert parse_datetime_input("05.03.2024 14:30", None) == datetime(2024, 3, 5, 14, 30)

    def test_time_only_keeps_date(self):
        assert parse_datetime_input("14:30", date(2024, 3, 5)) == datetime(2024, 3, 5, 14, 30)

    def test_garbage(self):
        assert parse_datetime_input("tomorrow", date(2024, 3, 5)) is None
        assert parse_datetime_input("14:30", None) is None


class TestSummary:

    def test_staff_override_warning(self):
        wizard = make_wizard("employee")
        wizard.dispatch(SetUnitPrice("1200"))

        text = render_summary(wizard)

        assert "Scooter" in text
        assert "1200.00" in text
        assert "одобрение" in text

    def test_no_warning_at_auto_price(self):
        text = render_summary(make_wizard("employee"))

        assert "одобрение" not in text

    def test_pricing_keyboard_lists_presets(self):
        wizard = make_wizard("employee")
        presets = wizard.context.enabled_presets_for(1)

        keyboard = get_pricing_keyboard(wizard.draft, presets, allow_custom_deposit=False)

        callbacks = [button.callback_data for row in keyboard.inline_keyboard for button in row]
        assert "rb_dmg_0" in callbacks
        assert "rb_dmg_custom" not in callbacks
        assert "rb_confirm" in callbacks

    def test_quick_durations_only_for_hourly(self):
        hourly = [b.callback_data for row in get_end_keyboard(RentalType.HOURLY).inline_keyboard for b in row]
        daily = [b.callback_data for row in get_end_keyboard(RentalType.DAILY).inline_keyboard for b in row]

        assert "rb_dur_4" in hourly
        assert not any(c.startswith("rb_dur_") for c in daily)

    def test_empty_draft_renders(self):
        wizard = RentalWizard("employee")
        wizard.draft = RentalDraft()

        assert "-" in render_summary(wizard)


class TestSummaryValueInput:

    @pytest.fixture
    def wizard(self, monkeypatch):
        wizard = make_wizard("employee")
        monkeypatch.setattr(registry, "_wizards", {42: wizard})
        monkeypatch.setattr(draft_storage_module, "_draft_storage", None)
        return wizard

    @staticmethod
    def make_message(text):
        message = MagicMock()
        message.text = text
        message.from_user.id = 42
        message.answer = AsyncMock()
        return message

    @pytest.mark.parametrize("text", ["1e30", "1" + "0" * 30, "100000000", "-5", "abc"])
    async def test_out_of_range_amount_answers_inline(self, wizard, text):
        message = self.make_message(text)
        state = AsyncMock()
        state.get_state.return_value = RentalBookingStates.entering_unit_price.state

        await process_summary_value(message, state)

        message.answer.assert_awaited_once()
        assert "99999999.99" in message.answer.await_args.args[0]
        assert wizard.draft.unit_price == Decimal("1500.00")
        state.set_state.assert_not_awaited()

    async def test_valid_amount_updates_draft(self, wizard):
        message = self.make_message("1 200,50")
        state = AsyncMock()
        state.get_state.return_value = RentalBookingStates.entering_unit_price.state

        await process_summary_value(message, state)

        assert wizard.draft.unit_price == Decimal("1200.50")
