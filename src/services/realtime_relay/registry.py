# src/services/realtime_relay/registry.py
"""
Реестр соединений: идентичность актора -> живое соединение.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from src.common.constants import ActorRole
from src.core.actors.models import ActorIdentity


class ConnectionHandle(Protocol):
    """Транспортное соединение с одним клиентом."""

    @property
    def connection_id(self) -> str: ...

    @property
    def closed(self) -> bool: ...

    async def send(self, event: str, payload: Any) -> bool: ...

    async def close(self, code: int = 1000) -> None: ...

@dataclass
class RegistryEntry:
    """Привязка актора к соединению."""
    identity: ActorIdentity
    handle: ConnectionHandle
    bound_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def role(self) -> ActorRole:
        return self.identity.role


class ConnectionRegistry:
    """
    Реестр живых соединений.

    Инварианты:
    - у идентичности не больше одного соединения (последний bind побеждает);
    - у соединения не больше одной идентичности.

    Все операции синхронные и тотальные: реестр меняется только внутри
    одного шага event loop, ошибок наружу не отдаёт.
    """

    def __init__(self) -> None:
        # identity -> entry
        self._by_identity: dict[ActorIdentity, RegistryEntry] = {}
        # connection_id -> identity
        self._by_connection: dict[str, ActorIdentity] = {}

        # Для статистики
        self._total_binds: int = 0
        self._total_superseded: int = 0
        self._total_unbinds: int = 0

    @property
    def active_connections(self) -> int:
        """Количество привязанных соединений."""
        return len(self._by_identity)

    def bind(self, identity: ActorIdentity, handle: ConnectionHandle) -> RegistryEntry | None:
        """
        Привязать соединение к идентичности.

        Предыдущее соединение той же идентичности перестаёт быть адресуемым,
        но не закрывается. Если соединение было привязано к другой
        идентичности, та привязка снимается.

        Returns:
            Вытесненная запись этой идентичности (другое соединение) или None
        """
        previous_identity = self._by_connection.get(handle.connection_id)
        if previous_identity is not None and previous_identity != identity:
            del self._by_identity[previous_identity]
            self._total_unbinds += 1

        superseded = self._by_identity.get(identity)
        if superseded is not None and superseded.handle.connection_id != handle.connection_id:
            self._by_connection.pop(superseded.handle.connection_id, None)
            self._total_superseded += 1
        else:
            superseded = None

        current = self._by_identity.get(identity)
        if current is None or current.handle.connection_id != handle.connection_id:
            self._by_identity[identity] = RegistryEntry(identity=identity, handle=handle)
        self._by_connection[handle.connection_id] = identity
        self._total_binds += 1

        return superseded

    def lookup(self, identity: ActorIdentity) -> ConnectionHandle | None:
        """Текущее соединение идентичности или None."""
        entry = self._by_identity.get(identity)
        return entry.handle if entry is not None else None

    def entry_for(self, identity: ActorIdentity) -> RegistryEntry | None:
        return self._by_identity.get(identity)

    def identity_of(self, handle: ConnectionHandle) -> ActorIdentity | None:
        """Идентичность, к которой привязано соединение (None если не привязано или вытеснено)."""
        return self._by_connection.get(handle.connection_id)

    def is_current(self, identity: ActorIdentity, handle: ConnectionHandle) -> bool:
        """Указывает ли запись идентичности именно на это соединение."""
        entry = self._by_identity.get(identity)
        return entry is not None and entry.handle.connection_id == handle.connection_id

    def unbind(self, handle: ConnectionHandle) -> RegistryEntry | None:
        """
        Снять привязку соединения.

        No-op, если соединение не привязано (повторный unbind после logout
        и закрытия транспорта допустим).

        Returns:
            Удалённая запись или None
        """
        identity = self._by_connection.pop(handle.connection_id, None)
        if identity is None:
            return None

        entry = self._by_identity.get(identity)
        if entry is None or entry.handle.connection_id != handle.connection_id:
            return None

        del self._by_identity[identity]
        self._total_unbinds += 1
        return entry

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._by_identity),
            "connections_by_role": self._count_by_role(),
            "total_binds": self._total_binds,
            "total_superseded": self._total_superseded,
            "total_unbinds": self._total_unbinds,
        }

    def _count_by_role(self) -> dict[str, int]:
        counts: dict[str, int] = {role.value: 0 for role in ActorRole}
        for identity in self._by_identity:
            counts[identity.role.value] += 1
        return counts
