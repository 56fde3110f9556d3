# src/core/actors/repository.py
"""
Репозиторий проекции акторов в БД.
Relay пишет сюда только маркер достижимости и текущую локацию водителя.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from src.common.constants import ActorRole
from src.common.logger import log_error
from src.core.actors.models import Actor, ActorIdentity, GeoPoint
from src.infra.database import DatabaseManager


# Отдельная таблица на каждую роль
TABLES: dict[ActorRole, str] = {
    ActorRole.RIDER: "riders",
    ActorRole.DRIVER: "drivers",
}


def _parse_location(value: Any) -> Optional[GeoPoint]:
    """JSONB приходит из asyncpg строкой, если не настроен кодек."""
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return GeoPoint.model_validate(value)


class ActorRepository:
    """
    Репозиторий акторов.

    Все методы записи возвращают True/False и логируют ошибку;
    исключения БД наружу не выходят.
    """

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, identity: ActorIdentity) -> Optional[Actor]:
        """
        Получает актора по идентичности.

        Returns:
            Актор или None (не найден / ошибка БД)
        """
        table = TABLES[identity.role]
        if identity.role == ActorRole.DRIVER:
            query = f"SELECT id, socket_id, status, location, location_updated_at FROM {table} WHERE id = $1"
        else:
            query = f"SELECT id, socket_id FROM {table} WHERE id = $1"

        try:
            row = await self._db.fetchrow(query, identity.actor_id)
            if row is None:
                return None

            return Actor(
                id=row["id"],
                role=identity.role,
                socket_id=row["socket_id"],
                status=row.get("status"),
                location=_parse_location(row.get("location")),
                location_updated_at=row.get("location_updated_at"),
            )
        except Exception as e:
            await log_error(f"Ошибка получения актора {identity}: {e}")
            return None

    async def set_reachability(self, identity: ActorIdentity, marker: Optional[str]) -> bool:
        """
        Обновляет маркер достижимости.

        Args:
            identity: Актор
            marker: Непрозрачный ID соединения (online) или None (offline)

        Returns:
            True если строка актора обновлена
        """
        table = TABLES[identity.role]
        try:
            status = await self._db.execute(
                f"UPDATE {table} SET socket_id = $2, updated_at = $3 WHERE id = $1",
                identity.actor_id,
                marker,
                datetime.now(timezone.utc),
            )
            return _affected(status) > 0
        except Exception as e:
            state = "online" if marker else "offline"
            await log_error(
                f"Ошибка обновления достижимости {identity} ({state}): {e}",
                extra={"identity": str(identity), "marker": marker},
            )
            return False

    async def update_location(
        self,
        driver_id: str,
        lat: float,
        lng: float,
        received_at: Optional[datetime] = None,
    ) -> bool:
        """
        Перезаписывает текущую локацию водителя (last-write-wins).

        Returns:
            True если строка водителя обновлена
        """
        point = GeoPoint.from_lat_lng(lat, lng)
        now = received_at or datetime.now(timezone.utc)
        try:
            status = await self._db.execute(
                f"""
                UPDATE {TABLES[ActorRole.DRIVER]}
                SET location = $2::jsonb, location_updated_at = $3, updated_at = $3
                WHERE id = $1
                """,
                driver_id,
                point.model_dump_json(),
                now,
            )
            return _affected(status) > 0
        except Exception as e:
            await log_error(
                f"Ошибка обновления локации водителя {driver_id}: {e}",
                extra={"driver_id": driver_id, "lat": lat, "lng": lng},
            )
            return False


def _affected(status: Any) -> int:
    """Количество строк из статуса asyncpg ('UPDATE 1')."""
    if not isinstance(status, str):
        return 0
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0
