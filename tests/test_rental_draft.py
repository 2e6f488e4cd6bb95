"""
Tests for RentalDraft reducer

Каждое действие возвращает новый черновик с пересчитанными полями.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from database.models.rental import PaymentStatus, RentalType
from services.ocr_service import OCRResult
from services.rental_draft import (
    CUSTOM_DEPOSIT,
    START_ADJUSTED_NOTICE,
    ApplyScan,
    DepositPreset,
    EditField,
    PricingContext,
    RentalDraft,
    SelectDamageDeposit,
    SelectQuickDuration,
    SelectVehicle,
    SetDepositAmount,
    SetEndDate,
    SetEndTime,
    SetPaymentStatus,
    SetRentalType,
    SetStartDate,
    SetUnitPrice,
    ToggleTransport,
    TransportFees,
    VehicleRates,
    parse_vehicle_id,
    reduce,
    validate_draft,
    validate_step,
)


NOW = datetime(2024, 1, 1, 10, 0)


@pytest.fixture
def context():
    return PricingContext(
        transport_fees=TransportFees(pickup_fee=Decimal("100.00"), dropoff_fee=Decimal("150.00")),
        vehicles={
            1: VehicleRates(vehicle_id=1, name="Scooter", model_id=10,
                            hourly_rate=Decimal("50.00"), daily_rate=Decimal("1500.00")),
            2: VehicleRates(vehicle_id=2, name="Quad", model_id=20,
                            hourly_rate=Decimal("200.00"), daily_rate=Decimal("1200.00")),
        },
        deposit_presets={
            10: [
                DepositPreset(label="Disabled", amount=Decimal("100"), enabled=False),
                DepositPreset(label="Standard", amount=Decimal("1000")),
                DepositPreset(label="Premium", amount=Decimal("2500")),
            ],
        },
    )


def apply(draft, context, *actions):
    for action in actions:
        draft = reduce(draft, action, context)
    return draft


class TestRentalDraft:

    def test_draft_is_immutable(self):
        draft = RentalDraft()

        with pytest.raises(ValidationError):
            draft.customer_name = "Changed"

    def test_reduce_returns_new_draft(self, context):
        draft = RentalDraft()
        updated = reduce(draft, EditField("customer_name", "  Amina  "), context)

        assert updated is not draft
        assert draft.customer_name == ""
        assert updated.customer_name == "Amina"
        assert "customer_name" in updated.edited_fields

    def test_unknown_field_rejected(self, context):
        with pytest.raises(ValueError):
            reduce(RentalDraft(), EditField("total_amount", "1"), context)

    def test_unsupported_action_rejected(self, context):
        with pytest.raises(TypeError):
            reduce(RentalDraft(), object(), context)


class TestScheduleActions:

    def test_hourly_defaults(self, context):
        draft = apply(RentalDraft(), context, SetRentalType(RentalType.HOURLY, now=NOW))

        assert draft.start_date == date(2024, 1, 1)
        assert draft.start_time == "10:00"
        assert draft.end_time == "11:00"
        assert draft.quantity == 1

    def test_daily_defaults(self, context):
        draft = apply(RentalDraft(), context, SetRentalType(RentalType.DAILY, now=NOW))

        assert (draft.start_time, draft.end_time) == ("09:00", "09:00")
        assert draft.end_date == date(2024, 1, 2)
        assert draft.quantity == 1

    def test_late_hourly_default_wraps_overnight(self, context):
        draft = apply(RentalDraft(), context, SetRentalType(RentalType.HOURLY, now=datetime(2024, 1, 1, 23, 30)))

        assert draft.end_date == date(2024, 1, 2)
        assert draft.end_time == "00:30"
        assert draft.quantity == 1

    def test_overnight_end_time(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.HOURLY, now=datetime(2024, 1, 1, 23, 0)),
            SetEndDate(date(2024, 1, 1)),
            SetEndTime("00:30"),
        )

        assert draft.end_date == date(2024, 1, 2)
        assert draft.quantity == 2

    def test_start_date_moves_end_date_for_daily(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SetStartDate(date(2024, 2, 10)),
        )

        assert draft.end_date == date(2024, 2, 11)
        assert draft.quantity == 1

    def test_end_before_start_steps_start_back(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SetEndDate(date(2023, 12, 20)),
        )

        assert draft.start_date == date(2023, 12, 19)
        assert draft.schedule_notice == START_ADJUSTED_NOTICE
        assert draft.quantity == 1

    def test_notice_cleared_on_valid_change(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SetEndDate(date(2023, 12, 20)),
            SetEndDate(date(2023, 12, 25)),
        )

        assert draft.schedule_notice is None
        assert draft.quantity == 6

    def test_quick_duration(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.HOURLY, now=NOW),
            SelectQuickDuration(4),
        )

        assert draft.end_time == "14:00"
        assert draft.quantity == 4

    def test_quick_duration_requires_start(self, context):
        with pytest.raises(ValueError):
            reduce(RentalDraft(), SelectQuickDuration(2), context)


class TestPricingActions:

    def test_vehicle_sets_auto_price_and_first_enabled_preset(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle("1"),
        )

        assert draft.vehicle_id == 1
        assert draft.unit_price == Decimal("1500.00")
        assert draft.auto_unit_price == Decimal("1500.00")
        assert draft.damage_deposit == Decimal("1000.00")
        assert draft.damage_deposit_source == "Standard"
        assert draft.total_amount == Decimal("1500.00")

    def test_vehicle_without_presets_falls_back_to_custom(self, context):
        draft = apply(RentalDraft(), context, SetRentalType(RentalType.DAILY, now=NOW), SelectVehicle(2))

        assert draft.damage_deposit_source == CUSTOM_DEPOSIT

    def test_invalid_vehicle_id(self, context):
        with pytest.raises(ValueError):
            reduce(RentalDraft(), SelectVehicle("abc"), context)

    def test_rental_type_change_reprices(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle(1),
            SetRentalType(RentalType.HOURLY, now=NOW),
        )

        assert draft.unit_price == Decimal("50.00")

    def test_date_change_keeps_manual_price(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle(1),
            SetUnitPrice("1200"),
            SetEndDate(date(2024, 1, 4)),
        )

        assert draft.unit_price == Decimal("1200.00")
        assert draft.auto_unit_price == Decimal("1500.00")
        assert draft.total_amount == Decimal("3600.00")

    def test_transport_fee_added_to_total(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle(1),
            ToggleTransport("pickup", True),
            ToggleTransport("dropoff", True),
        )

        assert draft.transport_fee == Decimal("250.00")
        assert draft.total_amount == Decimal("1750.00")
        assert draft.remaining_amount == Decimal("1750.00")

    def test_damage_deposit_not_in_total(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle(1),
            SelectDamageDeposit("Premium"),
        )

        assert draft.damage_deposit == Decimal("2500.00")
        assert draft.total_amount == Decimal("1500.00")

    def test_custom_damage_deposit(self, context):
        draft = apply(
            RentalDraft(), context,
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle(1),
            SelectDamageDeposit(CUSTOM_DEPOSIT, "750"),
        )

        assert draft.damage_deposit == Decimal("750.00")
        assert draft.damage_deposit_source == CUSTOM_DEPOSIT

    def test_out_of_range_amounts_rejected(self, context):
        draft = apply(RentalDraft(), context, SetRentalType(RentalType.DAILY, now=NOW), SelectVehicle(1))

        for action in (
            SetUnitPrice("1e30"),
            SetDepositAmount("1" + "0" * 30),
            SelectDamageDeposit(CUSTOM_DEPOSIT, "100000000"),
        ):
            with pytest.raises(ValueError):
                reduce(draft, action, context)

        assert draft.unit_price == Decimal("1500.00")

    def test_custom_damage_deposit_disabled(self, context):
        strict = context.model_copy(update={"allow_custom_deposit": False})

        with pytest.raises(ValueError):
            reduce(RentalDraft(), SelectDamageDeposit(CUSTOM_DEPOSIT, "750"), strict)

    def test_disabled_preset_not_selectable(self, context):
        draft = apply(RentalDraft(), context, SetRentalType(RentalType.DAILY, now=NOW), SelectVehicle(1))

        with pytest.raises(ValueError):
            reduce(draft, SelectDamageDeposit("Disabled"), context)


class TestPaymentActions:

    @pytest.fixture
    def priced(self, context):
        return apply(RentalDraft(), context, SetRentalType(RentalType.DAILY, now=NOW), SelectVehicle(1))

    def test_deposit_infers_status(self, priced, context):
        partial = reduce(priced, SetDepositAmount("500"), context)
        paid = reduce(partial, SetDepositAmount("1500"), context)

        assert partial.payment_status == PaymentStatus.PARTIAL
        assert partial.remaining_amount == Decimal("1000.00")
        assert paid.payment_status == PaymentStatus.PAID
        assert paid.remaining_amount == Decimal("0.00")

    def test_manual_paid_fills_deposit(self, priced, context):
        draft = reduce(priced, SetPaymentStatus(PaymentStatus.PAID), context)

        assert draft.payment_status == PaymentStatus.PAID
        assert draft.deposit_amount == Decimal("1500.00")
        assert draft.remaining_amount == Decimal("0.00")

    def test_manual_unpaid_clears_deposit(self, priced, context):
        draft = apply(priced, context, SetDepositAmount("500"), SetPaymentStatus(PaymentStatus.UNPAID))

        assert draft.payment_status == PaymentStatus.UNPAID
        assert draft.deposit_amount == Decimal("0")

    def test_manual_partial_survives_unrelated_edit(self, priced, context):
        draft = apply(
            priced, context,
            SetPaymentStatus(PaymentStatus.PARTIAL),
            EditField("notes", "helmet included"),
        )

        assert draft.payment_status == PaymentStatus.PARTIAL

    def test_overdue_sticky_through_amount_changes(self, priced, context):
        draft = apply(
            priced, context,
            SetPaymentStatus(PaymentStatus.OVERDUE),
            SetDepositAmount("1500"),
            ToggleTransport("pickup", True),
        )

        assert draft.payment_status == PaymentStatus.OVERDUE


class TestApplyScan:

    def test_scan_fills_empty_fields(self, context):
        result = OCRResult(confidence=0.95, fields={"full_name": "Amina Benali", "document_number": "AB123"})
        draft = reduce(RentalDraft(), ApplyScan(result), context)

        assert draft.customer_name == "Amina Benali"
        assert draft.customer_id_number == "AB123"

    def test_scan_never_overwrites_user_input(self, context):
        draft = reduce(RentalDraft(), EditField("customer_name", "Typed Name"), context)
        result = OCRResult(confidence=0.99, fields={"full_name": "Scanned Name"})

        draft = reduce(draft, ApplyScan(result), context)

        assert draft.customer_name == "Typed Name"

    def test_low_confidence_scan_ignored(self, context):
        result = OCRResult(confidence=0.5, fields={"full_name": "Amina Benali"})
        draft = reduce(RentalDraft(), ApplyScan(result), context)

        assert draft.customer_name == ""


class TestValidation:

    def test_customer_step(self):
        errors = validate_step(RentalDraft(customer_email="not-an-email"), 1)

        assert set(errors) == {"customer_name", "customer_phone", "customer_email"}

    def test_schedule_step(self):
        errors = validate_step(RentalDraft(), 2)

        assert {"rental_type", "vehicle_id", "start_date", "end_date"} <= set(errors)

    def test_schedule_end_must_follow_start(self):
        draft = RentalDraft(
            rental_type=RentalType.HOURLY, vehicle_id=1,
            start_date=date(2024, 1, 1), start_time="10:00",
            end_date=date(2024, 1, 1), end_time="10:00",
        )

        assert validate_step(draft, 2) == {"end_date": "End date must be after start date"}

    def test_pricing_step(self):
        assert "unit_price" in validate_step(RentalDraft(), 3)

    def test_pricing_step_amount_limit(self):
        draft = RentalDraft(unit_price=Decimal("60000000.00"), quantity=2, total_amount=Decimal("120000000.00"))

        errors = validate_step(draft, 3)

        assert set(errors) == {"total_amount"}
        assert "99999999.99" in errors["total_amount"]

    def test_complete_draft_is_valid(self, context):
        draft = apply(
            RentalDraft(), context,
            EditField("customer_name", "Amina"),
            EditField("customer_phone", "+212600000001"),
            SetRentalType(RentalType.DAILY, now=NOW),
            SelectVehicle(1),
        )

        assert validate_draft(draft) == {}

    @pytest.mark.parametrize("value,expected", [("3", 3), (7, 7), ("0", None), ("-1", None), ("x", None), (None, None), (True, None)])
    def test_parse_vehicle_id(self, value, expected):
        assert parse_vehicle_id(value) == expected
