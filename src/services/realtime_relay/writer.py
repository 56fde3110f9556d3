# src/services/realtime_relay/writer.py
"""
Фоновая запись в БД по принципу "последняя запись побеждает".
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Hashable

from src.common.logger import log_error

WriteFn = Callable[[], Awaitable[Any]]


class LatestWinsWriter:
    """
    Ключевой писатель с коалесценцией.

    На ключ одновременно не больше одной записи в полёте и одной в ожидании;
    новая заявка заменяет ожидающую. Память ограничена числом ключей,
    вызывающий код никогда не ждёт БД.

    Запись считается неудачной, если вернула False или бросила исключение.
    Повторов нет.
    """

    def __init__(self, name: str = "relay_writer") -> None:
        self._name = name
        self._pending: dict[Hashable, WriteFn] = {}
        self._workers: dict[Hashable, asyncio.Task] = {}

        # Статистика
        self._submitted = 0
        self._applied = 0
        self._failed = 0
        self._coalesced = 0

    @property
    def in_flight(self) -> int:
        return len(self._workers)

    def submit(self, key: Hashable, write: WriteFn) -> None:
        """Поставить запись для ключа. Должно вызываться внутри работающего event loop."""
        self._submitted += 1
        if key in self._pending:
            self._coalesced += 1
        self._pending[key] = write

        if key not in self._workers:
            self._workers[key] = asyncio.create_task(self._run(key), name=f"{self._name}:{key}")

    async def _run(self, key: Hashable) -> None:
        try:
            while key in self._pending:
                write = self._pending.pop(key)
                await self._apply(key, write)
        finally:
            self._workers.pop(key, None)

    async def _apply(self, key: Hashable, write: WriteFn) -> None:
        try:
            result = await write()
        except Exception as e:
            self._failed += 1
            await log_error(
                f"[{self._name}] Ошибка фоновой записи {key}: {e}",
                extra={"key": str(key)},
                exc_info=True,
            )
            return

        if result is False:
            self._failed += 1
        else:
            self._applied += 1

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Дождаться завершения всех записей (включая ожидающие).

        Returns:
            False если не уложились в timeout
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._workers:
            tasks = list(self._workers.values())
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            _, pending = await asyncio.wait(tasks, timeout=remaining)
            if pending and deadline is not None and loop.time() >= deadline:
                return False
        return True

    def get_stats(self) -> dict[str, int]:
        """Получить статистику."""
        return {
            "submitted": self._submitted,
            "applied": self._applied,
            "failed": self._failed,
            "coalesced": self._coalesced,
            "in_flight": len(self._workers),
        }
