"""
Tests for CustomerService
"""
from datetime import date

import pytest
from sqlalchemy import func, select

from database.models.customer import Customer
from services.customer_service import CustomerService, customer_data_from_draft
from services.errors import DraftValidationError
from services.rental_draft import RentalDraft


class TestCustomerDataFromDraft:

    def test_maps_and_drops_empty(self):
        draft = RentalDraft(
            customer_name=" Amina ",
            customer_phone="+212600000001",
            customer_dob="1990-05-17",
            customer_issue_date="garbage",
        )

        data = customer_data_from_draft(draft)

        assert data == {
            "full_name": "Amina",
            "phone": "+212600000001",
            "date_of_birth": date(1990, 5, 17),
        }

    def test_includes_known_customer_id(self):
        assert customer_data_from_draft(RentalDraft(customer_id=7))["id"] == 7


class TestCustomerService:

    async def test_creates_new_customer(self, db):
        customer = await CustomerService.upsert_customer({"full_name": "Youssef", "phone": "+212600000002"})

        assert customer.id is not None
        assert customer.full_name == "Youssef"

    async def test_new_customer_needs_name(self, db):
        with pytest.raises(DraftValidationError):
            await CustomerService.upsert_customer({"phone": "+212600000002"})

    async def test_matches_by_phone_and_fills_blanks(self, db, customer):
        matched = await CustomerService.upsert_customer({
            "full_name": "Different Spelling",
            "phone": customer.phone,
            "email": "amina@example.com",
        })

        assert matched.id == customer.id
        assert matched.full_name == "Amina Benali"
        assert matched.email == "amina@example.com"

    async def test_matches_by_id_number(self, db, customer):
        matched = await CustomerService.upsert_customer({"full_name": "Amina", "id_number": "AB123456"})

        assert matched.id == customer.id

    async def test_matches_by_id_first(self, db, customer):
        matched = await CustomerService.upsert_customer({"id": customer.id, "phone": "+212611111111"})

        assert matched.id == customer.id
        assert matched.phone == customer.phone

    async def test_no_duplicates(self, db, customer):
        await CustomerService.upsert_customer({"full_name": "Amina", "phone": customer.phone})

        async with db() as session:
            count = (await session.execute(select(func.count(Customer.id)))).scalar()

        assert count == 1
