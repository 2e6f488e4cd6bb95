from aiogram.fsm.state import State, StatesGroup


class RentalBookingStates(StatesGroup):
    choosing_rental_type = State()
    choosing_vehicle = State()
    entering_start = State()
    choosing_end = State()
    entering_end = State()
    entering_customer_name = State()
    entering_customer_phone = State()
    entering_customer_email = State()
    waiting_document_photo = State()
    pricing_summary = State()
    entering_unit_price = State()
    entering_deposit = State()
    entering_damage_deposit = State()
    entering_notes = State()
