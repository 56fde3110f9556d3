# src/services/realtime_relay/redis_subscriber.py
"""
Подписчик на Redis Pub/Sub: входящие команды доставки от других сервисов.

Формат сообщения канала: {"identity": ..., "role": ..., "event": ..., "payload": ...}
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from src.common.logger import log_debug, log_error, log_info
from src.services.realtime_relay.validation import Accepted, DispatchCommand, Rejected, parse_dispatch

if TYPE_CHECKING:
    from redis.asyncio import Redis

CommandHandler = Callable[[DispatchCommand], Awaitable[Any]]


class RedisDispatchSubscriber:
    """
    Подписчик на канал команд доставки.

    Реестр соединений остаётся локальным для процесса; Redis здесь только
    вход для сервисов, работающих в других процессах.
    """

    def __init__(
        self,
        redis: "Redis",
        channel: str,
        handler: CommandHandler,
        poll_timeout: float = 1.0,
    ) -> None:
        """
        Args:
            redis: Клиент Redis
            channel: Канал команд
            handler: Callback для валидной команды
            poll_timeout: Таймаут ожидания сообщения (секунды)
        """
        self._redis = redis
        self._channel = channel
        self._handler = handler
        self._poll_timeout = poll_timeout
        self._pubsub = None
        self._task: asyncio.Task | None = None
        self._running = False

        # Статистика
        self._received = 0
        self._dropped = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запустить подписчика."""
        if self._running:
            return

        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self._channel)
        self._running = True
        self._task = asyncio.create_task(self._listen())
        await log_info(f"Подписка на канал {self._channel}", logger_name="realtime_relay")

    async def stop(self) -> None:
        """Остановить подписчика."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None

    async def _listen(self) -> None:
        """Слушать сообщения из Redis."""
        while self._running:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._poll_timeout,
                )
                if message is None:
                    continue
                await self.process_message(message)
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Логируем ошибку, но продолжаем работу
                await log_error(f"Redis subscriber error: {e}", logger_name="realtime_relay")
                await asyncio.sleep(1)

    async def process_message(self, message: dict[str, Any]) -> None:
        """Разобрать сообщение Pub/Sub и передать команду обработчику."""
        if message.get("type") != "message":
            return

        self._received += 1
        data = message.get("data", b"")
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")

        try:
            parsed = json.loads(data)
        except (ValueError, TypeError, RecursionError):
            parsed = None

        match parse_dispatch(parsed):
            case Rejected(reason=reason):
                self._dropped += 1
                await log_debug(f"Команда доставки отброшена: {reason}", logger_name="realtime_relay")
            case Accepted(value=command):
                await self._handler(command)

    def get_stats(self) -> dict[str, int]:
        return {"received": self._received, "dropped": self._dropped}
