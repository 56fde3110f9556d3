# src/core/actors/models.py
"""
Модели данных акторов.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.common.constants import ActorRole


@dataclass(frozen=True)
class ActorIdentity:
    """
    Устойчивый идентификатор актора с ролью.

    Один и тот же actor_id у пассажира и водителя даёт разные идентичности
    (хранятся в разных таблицах).
    """
    actor_id: str
    role: ActorRole

    def __str__(self) -> str:
        return f"{self.role.value}:{self.actor_id}"


class GeoPoint(BaseModel):
    """Точка в формате GeoJSON: coordinates = [lng, lat]."""

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float] = Field(..., description="[долгота, широта]")

    @classmethod
    def from_lat_lng(cls, lat: float, lng: float) -> "GeoPoint":
        return cls(coordinates=(lng, lat))

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    @property
    def lng(self) -> float:
        return self.coordinates[0]


class Actor(BaseModel):
    """Проекция актора в БД (только поля, которые трогает relay)."""

    id: str = Field(..., description="ID актора")
    role: ActorRole = Field(..., description="Роль")
    socket_id: Optional[str] = Field(None, description="Маркер достижимости (ID соединения)")
    status: Optional[str] = Field(None, description="Статус водителя")
    location: Optional[GeoPoint] = Field(None, description="Текущая локация водителя")
    location_updated_at: Optional[datetime] = Field(None, description="Время приёма последней локации")

    model_config = {"from_attributes": True}

    @property
    def identity(self) -> ActorIdentity:
        return ActorIdentity(self.id, self.role)

    @property
    def is_online(self) -> bool:
        """Есть ли у актора (по данным БД) активное соединение."""
        return bool(self.socket_id)
