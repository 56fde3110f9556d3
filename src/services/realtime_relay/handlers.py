# src/services/realtime_relay/handlers.py
"""
Обработчики событий соединения: join, локация водителя, закрытие.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any, Hashable

from src.common.constants import ActorRole, RelayEvent
from src.common.logger import log_debug, log_info
from src.core.actors.models import ActorIdentity
from src.core.actors.repository import ActorRepository
from src.services.realtime_relay.registry import ConnectionHandle, ConnectionRegistry, RegistryEntry
from src.services.realtime_relay.validation import (
    Accepted,
    Rejected,
    ValidationResult,
    parse_join,
    parse_location,
)
from src.services.realtime_relay.writer import LatestWinsWriter

LOGGER_NAME = "realtime_relay"


def reachability_key(identity: ActorIdentity) -> Hashable:
    return ("reachability", identity.role.value, identity.actor_id)


def location_key(driver_id: str) -> Hashable:
    return ("location", driver_id)


@dataclass(frozen=True)
class LocationReport:
    """Принятый отчёт о локации (в истории не хранится)."""
    driver: ActorIdentity
    lat: float
    lng: float
    received_at: datetime


class IdentityBindingHandler:
    """
    Обработка join: привязывает соединение к актору.

    Повторный join (реконнект, дубль сообщения) просто вытесняет прежнюю
    привязку. Запись online в БД идёт в фоне и не откатывает привязку
    в памяти при ошибке.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        repository: ActorRepository,
        writer: LatestWinsWriter,
        ack_enabled: bool = True,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._writer = writer
        self._ack_enabled = ack_enabled
        self._rejected = 0

    async def handle(self, handle: ConnectionHandle, data: Any) -> ValidationResult[RegistryEntry]:
        match parse_join(data):
            case Rejected() as rejected:
                self._rejected += 1
                await log_debug(
                    f"join отклонён: {rejected.reason}",
                    logger_name=LOGGER_NAME,
                    extra={"connection_id": handle.connection_id},
                )
                return rejected
            case Accepted(value=message):
                identity = message.to_identity()

        previous = self._registry.identity_of(handle)
        superseded = self._registry.bind(identity, handle)
        entry = self._registry.entry_for(identity)

        if previous is not None and previous != identity:
            # Соединение перешло к другому актору: прежний больше недостижим
            self._writer.submit(
                reachability_key(previous),
                partial(self._repository.set_reachability, previous, None),
            )

        self._writer.submit(
            reachability_key(identity),
            partial(self._repository.set_reachability, identity, handle.connection_id),
        )

        await log_info(
            f"Соединение {handle.connection_id} привязано к {identity}",
            logger_name=LOGGER_NAME,
            extra={"identity": str(identity), "connection_id": handle.connection_id},
        )
        if superseded is not None:
            await log_debug(
                f"Привязка {identity} к {superseded.handle.connection_id} вытеснена",
                logger_name=LOGGER_NAME,
            )

        if self._ack_enabled:
            await handle.send(RelayEvent.JOINED.value, {
                "identity": identity.actor_id,
                "role": identity.role.value,
                "connectionId": handle.connection_id,
            })

        return Accepted(entry)

    def get_stats(self) -> dict[str, int]:
        return {"rejected": self._rejected}


class LocationIngestionHandler:
    """
    Приём локации водителя.

    Принимаются только отчёты с соединения, привязанного к водителю,
    с той же идентичностью и координатами в диапазоне. Запись в БД
    коалесцируется по водителю: последняя принятая локация побеждает,
    очередь не растёт при любой частоте отчётов.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        repository: ActorRepository,
        writer: LatestWinsWriter,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._writer = writer
        self._accepted = 0
        self._rejected = 0

    async def handle(self, handle: ConnectionHandle, data: Any) -> ValidationResult[LocationReport]:
        result = self._check(handle, data)

        match result:
            case Rejected(reason=reason):
                self._rejected += 1
                await log_debug(
                    f"Локация отклонена: {reason}",
                    logger_name=LOGGER_NAME,
                    extra={"connection_id": handle.connection_id},
                )
            case Accepted(value=report):
                self._accepted += 1
                self._writer.submit(
                    location_key(report.driver.actor_id),
                    partial(
                        self._repository.update_location,
                        report.driver.actor_id,
                        report.lat,
                        report.lng,
                        report.received_at,
                    ),
                )

        return result

    def _check(self, handle: ConnectionHandle, data: Any) -> ValidationResult[LocationReport]:
        identity = self._registry.identity_of(handle)
        if identity is None:
            return Rejected("connection is not bound")
        if identity.role != ActorRole.DRIVER:
            return Rejected("connection is not bound to a driver")

        match parse_location(data):
            case Rejected() as rejected:
                return rejected
            case Accepted(value=message):
                if message.identity != identity.actor_id:
                    return Rejected("identity does not match connection binding")
                return Accepted(LocationReport(
                    driver=identity,
                    lat=message.location.lat,
                    lng=message.location.lng,
                    received_at=datetime.now(timezone.utc),
                ))

    def get_stats(self) -> dict[str, int]:
        return {"accepted": self._accepted, "rejected": self._rejected}


class LifecycleReaper:
    """
    Очистка при закрытии соединения.

    Offline пишется только если запись идентичности всё ещё указывает
    именно на это соединение: поздний close уже вытесненного соединения
    не должен гасить более новую привязку.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        repository: ActorRepository,
        writer: LatestWinsWriter,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._writer = writer
        self._reaped = 0
        self._ignored = 0

    async def on_close(self, handle: ConnectionHandle) -> RegistryEntry | None:
        """
        Returns:
            Снятая запись, если соединение было текущим для своего актора
        """
        identity = self._registry.identity_of(handle)
        is_current = identity is not None and self._registry.is_current(identity, handle)

        entry = self._registry.unbind(handle)

        if not is_current or entry is None:
            self._ignored += 1
            await log_debug(
                f"Закрыто непривязанное или вытесненное соединение {handle.connection_id}",
                logger_name=LOGGER_NAME,
            )
            return None

        self._reaped += 1
        self._writer.submit(
            reachability_key(entry.identity),
            partial(self._repository.set_reachability, entry.identity, None),
        )
        await log_info(
            f"Соединение {handle.connection_id} актора {entry.identity} закрыто",
            logger_name=LOGGER_NAME,
            extra={"identity": str(entry.identity), "connection_id": handle.connection_id},
        )
        return entry

    def get_stats(self) -> dict[str, int]:
        return {"reaped": self._reaped, "ignored_closes": self._ignored}
