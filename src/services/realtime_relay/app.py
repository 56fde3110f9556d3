# src/services/realtime_relay/app.py
"""
FastAPI приложение Realtime Relay.

WebSocket endpoints:
- {WS_PATH} (по умолчанию /ws): единый канал для пассажиров и водителей

REST endpoints (для внутренних сервисов):
- GET /health: проверка здоровья
- GET /stats: статистика relay
- POST /api/v1/dispatch: адресная доставка события актору
- GET /api/v1/presence/{role}/{identity}: достижим ли актор
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from src.common.constants import ActorRole, DispatchStatus
from src.common.logger import log_error, log_info, log_warning, setup_logging
from src.config import settings
from src.core.actors.models import ActorIdentity, GeoPoint
from src.core.actors.repository import ActorRepository
from src.services.realtime_relay.dependencies import get_relay, init_relay, reset_relay
from src.services.realtime_relay.redis_subscriber import RedisDispatchSubscriber
from src.services.realtime_relay.service import RelayService
from src.services.realtime_relay.transport import OriginPolicy, WebSocketHandle
from src.services.realtime_relay.validation import DispatchCommand
from src.shared.models.common import HealthStatus

SERVICE_NAME = "realtime_relay"


# === MODELS ===

class DispatchRequest(BaseModel):
    """Запрос на адресную доставку."""
    identity: str = Field(..., min_length=1)
    role: ActorRole
    event: str = Field(..., min_length=1)
    payload: Any = None


class DispatchResponse(BaseModel):
    """Результат доставки."""
    status: DispatchStatus


class PresenceResponse(BaseModel):
    """Достижимость актора."""
    identity: str
    role: ActorRole
    online: bool
    connection_id: str | None = None
    durable_online: bool = False
    location: GeoPoint | None = None


# === HELPERS ===

async def _dispatch_command(relay: RelayService, command: DispatchCommand) -> DispatchStatus:
    return await relay.send(command.identity, command.event, command.payload)


def _decode_frame(message: dict[str, Any]) -> Any:
    """Текст или байты кадра -> JSON. Невалидный JSON -> None."""
    raw = message.get("text")
    if raw is None and message.get("bytes") is not None:
        raw = message["bytes"].decode("utf-8", errors="replace")
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return None


# === APP ===

def create_app(
    relay: RelayService | None = None,
    enable_redis: bool | None = None,
    origin_policy: OriginPolicy | None = None,
) -> FastAPI:
    """
    Собрать приложение.

    Args:
        relay: Готовый relay (тесты); если None, создаётся в lifespan поверх PostgreSQL
        enable_redis: Подписка на канал команд; None означает значение из настроек
        origin_policy: Allow-list origin'ов; None означает значение из настроек
    """
    policy = origin_policy or OriginPolicy.from_settings()
    use_redis = settings.realtime.REDIS_DISPATCH_ENABLED if enable_redis is None else enable_redis

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        setup_logging()

        db = None
        redis = None
        subscriber: RedisDispatchSubscriber | None = None

        service = relay
        if service is None:
            from src.infra.database import init_db
            db = await init_db()
            service = RelayService(
                ActorRepository(db),
                join_ack=settings.realtime.JOIN_ACK_ENABLED,
            )
        init_relay(service)

        if use_redis:
            from redis.asyncio import Redis
            redis = Redis.from_url(settings.redis.url)
            subscriber = RedisDispatchSubscriber(
                redis,
                settings.realtime.DISPATCH_CHANNEL,
                partial(_dispatch_command, service),
            )
            await subscriber.start()

        app.state.relay = service
        app.state.db = db
        app.state.subscriber = subscriber
        await log_info("Realtime relay запущен", logger_name=SERVICE_NAME)

        try:
            yield
        finally:
            if subscriber is not None:
                await subscriber.stop()

            if not await service.drain(settings.realtime.SHUTDOWN_DRAIN_TIMEOUT):
                await log_warning(
                    "Не все фоновые записи в БД завершились до остановки",
                    logger_name=SERVICE_NAME,
                )
            reset_relay()

            if redis is not None:
                await redis.aclose()
            if db is not None:
                from src.infra.database import close_db
                await close_db()
            await log_info("Realtime relay остановлен", logger_name=SERVICE_NAME)

    app = FastAPI(
        title="Realtime Relay",
        description="Присутствие, локация водителей и адресная доставка событий.",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=policy.origins,
        allow_origin_regex=policy.pattern,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса (PostgreSQL, если relay работает поверх БД)."""
        deps: dict[str, str] = {}

        db = getattr(app.state, "db", None)
        if db is not None:
            healthy = db.is_connected and await db.health_check()
            deps["postgres"] = "healthy" if healthy else "unhealthy"

        overall = "healthy" if all(v == "healthy" for v in deps.values()) else "degraded"

        return HealthStatus(
            status=overall,
            service=SERVICE_NAME,
            version=settings.system.VERSION,
            dependencies=deps,
        )

    # === STATS ===

    @app.get("/stats", tags=["Stats"])
    async def get_stats(service: RelayService = Depends(get_relay)) -> dict[str, Any]:
        """Статистика соединений, доставки и фоновых записей."""
        stats = service.get_stats()
        subscriber = getattr(app.state, "subscriber", None)
        if subscriber is not None:
            stats["redis"] = subscriber.get_stats()
        return stats

    # === DISPATCH ===

    @app.post("/api/v1/dispatch", response_model=DispatchResponse, tags=["Dispatch"])
    async def dispatch_event(
        request: DispatchRequest,
        service: RelayService = Depends(get_relay),
    ) -> DispatchResponse:
        """
        Отправить событие конкретному актору.

        `unreachable` является штатным ответом (актор офлайн), HTTP статус 200.
        """
        result = await service.send(
            ActorIdentity(request.identity, request.role),
            request.event,
            request.payload,
        )
        return DispatchResponse(status=result)

    @app.get("/api/v1/presence/{role}/{identity}", response_model=PresenceResponse, tags=["Presence"])
    async def get_presence(
        role: ActorRole,
        identity: str,
        service: RelayService = Depends(get_relay),
    ) -> PresenceResponse:
        """
        Достижим ли актор прямо сейчас.

        online берётся из реестра соединений, durable_online и location из
        проекции в БД (могут отставать на время фоновой записи).
        """
        actor = ActorIdentity(identity, role)
        stored = await service.repository.get_by_id(actor)
        return PresenceResponse(
            **service.presence(actor),
            durable_online=stored is not None and stored.is_online,
            location=stored.location if stored is not None else None,
        )

    # === WEBSOCKET ===

    @app.websocket(settings.realtime.WS_PATH)
    async def websocket_relay(websocket: WebSocket) -> None:
        """
        Единый WebSocket канал.

        Входящие сообщения:
        - {"event": "join", "data": {"identity": "...", "role": "rider|driver"}}
        - {"event": "update-location-captain", "data": {"identity": "...", "location": {"lat": 12.9, "lng": 77.6}}}
        - {"event": "ping"}
        """
        if not policy.is_allowed(websocket.headers.get("origin")):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        service = get_relay()
        await websocket.accept()
        handle = WebSocketHandle(websocket)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                await service.handle_message(handle, _decode_frame(message))
        except WebSocketDisconnect:
            pass
        except Exception as e:
            await log_error(
                f"Ошибка WebSocket соединения {handle.connection_id}: {e}",
                logger_name=SERVICE_NAME,
                exc_info=True,
            )
        finally:
            handle.mark_closed()
            await service.on_close(handle)

    return app


app = create_app()


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.deployment.REALTIME_RELAY_HOST, port=settings.deployment.REALTIME_RELAY_PORT)
