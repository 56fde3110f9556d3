# src/services/realtime_relay/service.py
"""
Бизнес-логика realtime relay: композиция реестра и обработчиков.
"""

from __future__ import annotations

from typing import Any

from src.common.constants import DispatchStatus, RelayEvent
from src.common.logger import log_debug
from src.core.actors.models import ActorIdentity
from src.core.actors.repository import ActorRepository
from src.services.realtime_relay.dispatcher import TargetedDispatcher
from src.services.realtime_relay.handlers import (
    IdentityBindingHandler,
    LifecycleReaper,
    LocationIngestionHandler,
)
from src.services.realtime_relay.registry import ConnectionHandle, ConnectionRegistry
from src.services.realtime_relay.writer import LatestWinsWriter


class RelayService:
    """
    Сервис realtime relay.

    Ответственности:
    - Маршрутизация входящих сообщений соединения (join / локация / ping)
    - Очистка при закрытии соединения
    - Адресная доставка событий (используется ride-matching и уведомлениями)

    Реестр передаётся явно: у каждого экземпляра сервиса свой реестр.
    """

    def __init__(
        self,
        repository: ActorRepository,
        registry: ConnectionRegistry | None = None,
        writer: LatestWinsWriter | None = None,
        join_ack: bool = True,
    ) -> None:
        self.registry = registry or ConnectionRegistry()
        self.writer = writer or LatestWinsWriter()
        self.repository = repository

        self.binding = IdentityBindingHandler(self.registry, repository, self.writer, ack_enabled=join_ack)
        self.ingestion = LocationIngestionHandler(self.registry, repository, self.writer)
        self.reaper = LifecycleReaper(self.registry, repository, self.writer)
        self.dispatcher = TargetedDispatcher(self.registry, self.reaper)

    async def handle_message(self, handle: ConnectionHandle, message: Any) -> None:
        """
        Обработать сообщение клиента {"event": ..., "data": ...}.
        Неизвестные события и не-объекты игнорируются.
        """
        if not isinstance(message, dict):
            await log_debug("Сообщение не является объектом, пропущено", logger_name="realtime_relay")
            return

        event = message.get("event")
        data = message.get("data")

        match event:
            case RelayEvent.JOIN:
                await self.binding.handle(handle, data)
            case RelayEvent.UPDATE_LOCATION | RelayEvent.UPDATE_LOCATION_ALIAS:
                await self.ingestion.handle(handle, data)
            case RelayEvent.PING:
                await handle.send(RelayEvent.PONG.value, {})
            case _:
                await log_debug(f"Неизвестное событие {event!r}", logger_name="realtime_relay")

    async def on_close(self, handle: ConnectionHandle) -> None:
        """Транспорт сообщил о закрытии соединения."""
        await self.reaper.on_close(handle)

    async def send(self, identity: ActorIdentity, event: str, payload: Any) -> DispatchStatus:
        return await self.dispatcher.send(identity, event, payload)

    def presence(self, identity: ActorIdentity) -> dict[str, Any]:
        """Живая достижимость актора по реестру."""
        handle = self.registry.lookup(identity)
        return {
            "identity": identity.actor_id,
            "role": identity.role.value,
            "online": handle is not None,
            "connection_id": handle.connection_id if handle is not None else None,
        }

    async def drain(self, timeout: float | None = None) -> bool:
        """Дождаться фоновых записей в БД."""
        return await self.writer.drain(timeout)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            **self.registry.get_stats(),
            "reaper": self.reaper.get_stats(),
            "dispatch": self.dispatcher.get_stats(),
            "join": self.binding.get_stats(),
            "location": self.ingestion.get_stats(),
            "writer": self.writer.get_stats(),
        }
