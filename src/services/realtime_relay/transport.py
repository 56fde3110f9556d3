# src/services/realtime_relay/transport.py
"""
WebSocket транспорт: дескриптор соединения и проверка origin.
"""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, Iterable

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState


class WebSocketHandle:
    """
    Дескриптор одного WebSocket соединения.

    connection_id: непрозрачный маркер, который можно хранить в БД;
    сам дескриптор никогда не сохраняется.
    """

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or uuid.uuid4().hex
        self._closed = False
        self._close_sent = False
        self.messages_sent = 0

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def closed(self) -> bool:
        return self._closed or self._websocket.application_state == WebSocketState.DISCONNECTED

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, event: str, payload: Any) -> bool:
        """
        Отправить событие в формате {"event": ..., "data": ...}.

        Returns:
            False если соединение разорвано

        Raises:
            TypeError, ValueError: payload не сериализуется в JSON (соединение не трогается)
        """
        if self.closed:
            return False
        text = json.dumps({"event": event, "data": payload}, separators=(",", ":"), ensure_ascii=False)
        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError):
            self._closed = True
            return False
        self.messages_sent += 1
        return True

    async def close(self, code: int = 1000) -> None:
        """Закрыть соединение со стороны сервера. Повторный вызов ничего не делает."""
        self._closed = True
        if self._close_sent or self._websocket.application_state == WebSocketState.DISCONNECTED:
            return
        self._close_sent = True
        try:
            await self._websocket.close(code=code)
        except (RuntimeError, OSError):
            # Уже закрыто на стороне ASGI сервера
            pass

    def __repr__(self) -> str:
        return f"WebSocketHandle({self._connection_id})"


class OriginPolicy:
    """
    Allow-list origin'ов, общий для CORS и WebSocket.

    Запрос без Origin (не из браузера) пропускается.
    """

    def __init__(self, origins: Iterable[str], pattern: str | None = None) -> None:
        self.origins: list[str] = list(dict.fromkeys(origins))
        self.pattern = pattern
        self._regex = re.compile(pattern) if pattern else None

    @classmethod
    def from_settings(cls) -> "OriginPolicy":
        from src.config import settings
        return cls(settings.cors.allowed_origins, settings.cors.ALLOWED_ORIGIN_REGEX or None)

    def is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return True
        if origin in self.origins:
            return True
        return bool(self._regex and self._regex.fullmatch(origin))
