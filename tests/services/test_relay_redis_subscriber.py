# tests/services/test_relay_redis_subscriber.py
"""
Тесты подписчика на канал команд доставки.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.common.constants import ActorRole
from src.core.actors.models import ActorIdentity
from src.services.realtime_relay.redis_subscriber import RedisDispatchSubscriber


@pytest.fixture
def handler() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def subscriber(handler: AsyncMock) -> RedisDispatchSubscriber:
    return RedisDispatchSubscriber(MagicMock(), "relay:dispatch", handler)


class TestProcessMessage:
    """Тесты разбора сообщений Pub/Sub."""

    @pytest.mark.asyncio
    async def test_valid_command(self, subscriber: RedisDispatchSubscriber, handler: AsyncMock) -> None:
        data = json.dumps({"identity": "D1", "role": "driver", "event": "ride:offer", "payload": {"rideId": "R1"}})

        await subscriber.process_message({"type": "message", "data": data.encode()})

        command = handler.await_args.args[0]
        assert command.identity == ActorIdentity("D1", ActorRole.DRIVER)
        assert command.event == "ride:offer"
        assert command.payload == {"rideId": "R1"}

    @pytest.mark.parametrize(
        "data",
        [b"not json", b"[]", b"[" * 100000, json.dumps({"identity": "D1"}).encode()],
    )
    @pytest.mark.asyncio
    async def test_invalid_dropped(self, subscriber: RedisDispatchSubscriber, handler: AsyncMock, data: bytes) -> None:
        await subscriber.process_message({"type": "message", "data": data})

        handler.assert_not_awaited()
        assert subscriber.get_stats() == {"received": 1, "dropped": 1}

    @pytest.mark.asyncio
    async def test_non_message_ignored(self, subscriber: RedisDispatchSubscriber, handler: AsyncMock) -> None:
        await subscriber.process_message({"type": "subscribe", "data": 1})

        handler.assert_not_awaited()
        assert subscriber.get_stats()["received"] == 0


class TestLifecycle:
    """Тесты start / stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, handler: AsyncMock) -> None:
        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.get_message = AsyncMock(return_value=None)
        redis = MagicMock()
        redis.pubsub.return_value = pubsub

        subscriber = RedisDispatchSubscriber(redis, "relay:dispatch", handler, poll_timeout=0.01)

        await subscriber.start()
        assert subscriber.is_running is True
        pubsub.subscribe.assert_awaited_once_with("relay:dispatch")

        await subscriber.stop()
        assert subscriber.is_running is False
        pubsub.unsubscribe.assert_awaited_once()
        pubsub.aclose.assert_awaited_once()
