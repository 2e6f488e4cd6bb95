"""
Tests for NotificationService
"""
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from services.notification_service import NotificationService


@pytest.fixture
def service(mock_bot, monkeypatch):
    monkeypatch.setattr(NotificationService, "SEND_DELAY", 0)
    return NotificationService(mock_bot)


class TestNotificationService:

    async def test_notifies_owner_and_admins_with_notifications(self, service, staff, mock_bot):
        sent = await service.notify_approvers(Decimal("2400.00"), "17", "Employee")

        assert sent == 2
        recipients = [call.args[0] for call in mock_bot.send_message.await_args_list]
        assert recipients == [staff["owner"].telegram_id, staff["admin"].telegram_id]

    async def test_message_contents(self, service, staff, mock_bot):
        await service.notify_approvers(Decimal("2400.00"), "17", "Guide")

        text = mock_bot.send_message.await_args_list[0].args[1]
        assert "2400.00" in text
        assert "#17" in text
        assert "Guide" in text

    async def test_failed_recipient_does_not_stop_others(self, service, staff, mock_bot):
        mock_bot.send_message = AsyncMock(side_effect=[Exception("blocked"), None])

        sent = await service.notify_approvers(Decimal("100"), "1")

        assert sent == 1
        assert mock_bot.send_message.await_count == 2

    async def test_no_approvers(self, service, db, mock_bot):
        assert await service.notify_approvers(Decimal("100"), "1") == 0
        mock_bot.send_message.assert_not_awaited()

    async def test_lookup_failure_is_swallowed(self, service, mock_bot):
        service.get_approvers = AsyncMock(side_effect=RuntimeError("db down"))

        assert await service.notify_approvers(Decimal("100"), "1") == 0
