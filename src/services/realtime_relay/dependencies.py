# src/services/realtime_relay/dependencies.py
"""
Доступ к экземпляру relay из хост-процесса и FastAPI зависимостей.
"""

from __future__ import annotations

from src.services.realtime_relay.dispatcher import TargetedDispatcher
from src.services.realtime_relay.service import RelayService


class RelayNotInitializedError(RuntimeError):
    """Relay запрошен до старта транспорта: ошибка порядка инициализации."""


_relay: RelayService | None = None


def init_relay(relay: RelayService) -> RelayService:
    """Зарегистрировать relay (вызывается из lifespan приложения)."""
    global _relay
    _relay = relay
    return relay


def reset_relay() -> None:
    global _relay
    _relay = None


def get_relay() -> RelayService:
    """Получить relay. Не инициализирован -> RelayNotInitializedError."""
    if _relay is None:
        raise RelayNotInitializedError("Realtime relay не инициализирован")
    return _relay


def get_dispatcher() -> TargetedDispatcher:
    """Dispatcher для бизнес-логики (ride-matching, уведомления)."""
    return get_relay().dispatcher
