# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ActorRole(str, Enum):
    """Роли участников realtime-канала."""
    RIDER = "rider"
    DRIVER = "driver"


class DispatchStatus(str, Enum):
    """Результат адресной доставки события."""
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


class RelayEvent(str, Enum):
    """Имена событий WebSocket протокола."""
    # Входящие
    JOIN = "join"
    UPDATE_LOCATION = "update-location-captain"
    UPDATE_LOCATION_ALIAS = "location:update"
    PING = "ping"

    # Исходящие
    JOINED = "joined"
    PONG = "pong"


# Устаревшие значения роли из клиентов первой версии (user/captain)
LEGACY_ROLE_ALIASES: dict[str, ActorRole] = {
    "user": ActorRole.RIDER,
    "captain": ActorRole.DRIVER,
}
