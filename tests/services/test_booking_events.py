"""
Tests del publicador de eventos de reservas.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.services.booking_events import BookingEventPublisher, BOOKING_CONFIRMED


class TestBookingEventPublisher:

    @pytest.mark.asyncio
    async def test_message_format(self):
        publisher = BookingEventPublisher(channel="test-channel")
        redis_client = AsyncMock()
        occurred_at = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)

        message = await publisher.publish(BOOKING_CONFIRMED, {"id": 7}, redis_client, occurred_at=occurred_at)

        assert message == {"type": "booking.confirmed", "occurred_at": "2025-06-02T08:00:00+00:00", "data": {"id": 7}}
        channel, raw = redis_client.publish.await_args.args
        assert channel == "test-channel"
        assert json.loads(raw) == message

    @pytest.mark.asyncio
    async def test_without_redis_only_logs(self, caplog):
        publisher = BookingEventPublisher()

        with caplog.at_level("INFO"):
            message = await publisher.publish(BOOKING_CONFIRMED, {"id": 7})

        assert message["type"] == BOOKING_CONFIRMED
        assert "booking.confirmed" in caplog.text

    @pytest.mark.asyncio
    async def test_redis_failure_is_logged(self, caplog):
        publisher = BookingEventPublisher()
        redis_client = AsyncMock()
        redis_client.publish.side_effect = ConnectionError("redis caído")

        message = await publisher.publish(BOOKING_CONFIRMED, {"id": 7}, redis_client)

        assert message["data"] == {"id": 7}
        assert "Error publicando evento" in caplog.text
