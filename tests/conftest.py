# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from src.common.constants import ActorRole
from src.core.actors.models import ActorIdentity


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "комментарий",
        "PROJECT_NAME": "ride_relay_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "REALTIME_RELAY_HOST": "127.0.0.1",
        "REALTIME_RELAY_PORT": 9000,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "colored",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "ride_relay_test",
        "DB_USER": "postgres",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "CORS_DEFAULT_ORIGINS": ["http://localhost:5173"],
        "FRONTEND_URL": "https://app.example.com",
        "CORS_ALLOWED_ORIGIN_REGEX": r"https?://.*\.vercel\.app$",
        "WS_PATH": "/relay",
        "DISPATCH_CHANNEL": "relay:test",
        "REDIS_DISPATCH_ENABLED": False,
        "JOIN_ACK_ENABLED": False,
        "SHUTDOWN_DRAIN_TIMEOUT": 2.5,
    }


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_repository() -> AsyncMock:
    """Мок репозитория акторов: все записи успешны."""
    repository = AsyncMock()
    repository.set_reachability = AsyncMock(return_value=True)
    repository.update_location = AsyncMock(return_value=True)
    repository.get_by_id = AsyncMock(return_value=None)
    return repository


# =============================================================================
# ФИКСТУРЫ СОЕДИНЕНИЙ
# =============================================================================

class FakeHandle:
    """Соединение в памяти: копит отправленные события."""

    def __init__(self, connection_id: str, fail_send: bool = False) -> None:
        self.connection_id = connection_id
        self.closed = False
        self.fail_send = fail_send
        self.sent: list[tuple[str, Any]] = []
        self.close_codes: list[int] = []

    async def send(self, event: str, payload: Any) -> bool:
        if self.closed or self.fail_send:
            return False
        self.sent.append((event, payload))
        return True

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_codes.append(code)

    def events(self) -> list[str]:
        return [event for event, _ in self.sent]


@pytest.fixture
def make_handle():
    """Фабрика FakeHandle с уникальными ID."""
    counter = {"n": 0}

    def factory(connection_id: str | None = None, **kwargs: Any) -> FakeHandle:
        counter["n"] += 1
        return FakeHandle(connection_id or f"conn-{counter['n']}", **kwargs)

    return factory


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def rider() -> ActorIdentity:
    return ActorIdentity("rider-1", ActorRole.RIDER)


@pytest.fixture
def driver() -> ActorIdentity:
    return ActorIdentity("driver-1", ActorRole.DRIVER)


@pytest.fixture
def sample_driver_row() -> dict[str, Any]:
    """Строка водителя из БД."""
    return {
        "id": "driver-1",
        "socket_id": "abc123",
        "status": "active",
        "location": json.dumps({"type": "Point", "coordinates": [77.6, 12.9]}),
        "location_updated_at": None,
    }


# =============================================================================
# УТИЛИТЫ
# =============================================================================

@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file
