# src/services/realtime_relay/validation.py
"""
Валидация входящих сообщений relay.

Функции тотальные: на любой вход возвращают Accepted или Rejected,
исключения pydantic наружу не выходят.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from src.common.constants import LEGACY_ROLE_ALIASES, ActorRole
from src.core.actors.models import ActorIdentity

T = TypeVar("T")


@dataclass(frozen=True)
class Accepted(Generic[T]):
    value: T


@dataclass(frozen=True)
class Rejected:
    reason: str


ValidationResult = Union[Accepted[T], Rejected]


# === MODELS ===

def _normalize_identity_value(cls, v: Any) -> Any:
    """Числовые ID (старые клиенты) приводим к строке, пробелы обрезаем."""
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    if isinstance(v, str):
        return v.strip()
    return v


class JoinMessage(BaseModel):
    """Handshake: связывает соединение с актором."""
    identity: str = Field(..., min_length=1, validation_alias=AliasChoices("identity", "userId"))
    role: ActorRole = Field(..., validation_alias=AliasChoices("role", "userType"))

    normalize_identity = field_validator("identity", mode="before")(_normalize_identity_value)

    @field_validator("role", mode="before")
    @classmethod
    def map_legacy_role(cls, v: Any) -> Any:
        """Клиенты первой версии присылают user/captain."""
        if isinstance(v, str):
            v = v.strip().lower()
            return LEGACY_ROLE_ALIASES.get(v, v)
        return v

    def to_identity(self) -> ActorIdentity:
        return ActorIdentity(self.identity, self.role)


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        # bool является подклассом int: в lax-режиме True стал бы 1.0
        if isinstance(v, bool):
            raise ValueError("coordinate must be a number")
        return v


class LocationMessage(BaseModel):
    """Отчёт о локации водителя."""
    identity: str = Field(..., min_length=1, validation_alias=AliasChoices("identity", "userId"))
    location: Coordinates

    normalize_identity = field_validator("identity", mode="before")(_normalize_identity_value)


@dataclass(frozen=True)
class DispatchCommand:
    """Команда адресной доставки от внешних сервисов."""
    identity: ActorIdentity
    event: str
    payload: Any


class DispatchMessage(BaseModel):
    identity: str = Field(..., min_length=1, validation_alias=AliasChoices("identity", "userId"))
    role: ActorRole
    event: str = Field(..., min_length=1)
    payload: Any = None

    normalize_identity = field_validator("identity", mode="before")(_normalize_identity_value)

    @field_validator("role", mode="before")
    @classmethod
    def map_legacy_role(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return LEGACY_ROLE_ALIASES.get(v, v)
        return v


# === PARSERS ===

def _first_error(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return "invalid payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "invalid")


def parse_join(data: Any) -> ValidationResult[JoinMessage]:
    """Разобрать join. Неизвестная роль или пустая идентичность -> Rejected."""
    if not isinstance(data, dict):
        return Rejected("join payload is not an object")
    try:
        return Accepted(JoinMessage.model_validate(data))
    except ValidationError as e:
        return Rejected(_first_error(e))


def parse_location(data: Any) -> ValidationResult[LocationMessage]:
    """Разобрать отчёт о локации. Координаты вне диапазона -> Rejected."""
    if not isinstance(data, dict):
        return Rejected("location payload is not an object")
    try:
        return Accepted(LocationMessage.model_validate(data))
    except ValidationError as e:
        return Rejected(_first_error(e))


def parse_dispatch(data: Any) -> ValidationResult[DispatchCommand]:
    """Разобрать команду доставки (HTTP / Redis)."""
    if not isinstance(data, dict):
        return Rejected("dispatch payload is not an object")
    try:
        message = DispatchMessage.model_validate(data)
    except ValidationError as e:
        return Rejected(_first_error(e))
    return Accepted(
        DispatchCommand(
            identity=ActorIdentity(message.identity, message.role),
            event=message.event,
            payload=message.payload,
        )
    )
