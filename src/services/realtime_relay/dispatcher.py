# src/services/realtime_relay/dispatcher.py
"""
Адресная доставка событий конкретному актору.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from src.common.constants import DispatchStatus
from src.common.logger import log_debug
from src.core.actors.models import ActorIdentity
from src.services.realtime_relay.registry import ConnectionRegistry

if TYPE_CHECKING:
    from src.services.realtime_relay.handlers import LifecycleReaper


class TargetedDispatcher:
    """
    Доставка события в живое соединение актора.

    UNREACHABLE является штатным результатом (актор офлайн), а не ошибкой:
    вызывающая бизнес-логика сама решает, что делать дальше.
    Без соединения транспорт не трогается.
    """

    def __init__(self, registry: ConnectionRegistry, reaper: "LifecycleReaper | None" = None) -> None:
        self._registry = registry
        self._reaper = reaper

        # Для статистики
        self._delivered = 0
        self._unreachable = 0

    async def send(self, identity: ActorIdentity, event: str, payload: Any) -> DispatchStatus:
        """
        Отправить событие актору.

        Returns:
            REACHABLE если событие передано в соединение, иначе UNREACHABLE

        Raises:
            TypeError, ValueError: payload не сериализуется в JSON; привязка
                актора при этом сохраняется
        """
        handle = self._registry.lookup(identity)
        if handle is None:
            self._unreachable += 1
            return DispatchStatus.UNREACHABLE

        if handle.closed or not await handle.send(event, payload):
            # Транспорт уже мёртв, но close ещё не пришёл
            self._unreachable += 1
            if self._reaper is not None:
                await self._reaper.on_close(handle)
            await handle.close()
            await log_debug(
                f"Событие {event} для {identity} не доставлено: соединение закрыто",
                logger_name="realtime_relay",
            )
            return DispatchStatus.UNREACHABLE

        self._delivered += 1
        return DispatchStatus.REACHABLE

    def get_stats(self) -> dict[str, int]:
        """Получить статистику."""
        return {
            "delivered": self._delivered,
            "unreachable": self._unreachable,
        }
