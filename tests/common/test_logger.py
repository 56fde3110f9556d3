# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

import json
import logging
from unittest.mock import Mock, patch

import pytest

import src.common.logger as logger_module
from src.common.constants import TypeMsg
from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    ColoredFormatter,
    JsonFormatter,
    _get_caller_info,
    _loggers,
    _read_log_options,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
    setup_logging,
)


def _record(level: int = logging.INFO, msg: str = "Test message") -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_is_valid_json(self) -> None:
        """Запись сериализуется в JSON с базовыми полями."""
        data = json.loads(JsonFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["module"] == "test_module"
        assert data["line"] == 10
        assert data["timestamp"].endswith("Z")

    def test_format_with_extra_data(self) -> None:
        """extra_data попадает в поле extra."""
        record = _record(logging.WARNING)
        record.extra_data = {"identity": "driver:42", "connection_id": "abc"}

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"identity": "driver:42", "connection_id": "abc"}

    def test_format_with_exception(self) -> None:
        """Трейсбек попадает в поле exception."""
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            exc_info = sys.exc_info()

        record = _record(logging.ERROR)
        record.exc_info = exc_info

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError" in data["exception"]
        assert "boom" in data["exception"]


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_contains_level_and_color(self) -> None:
        result = ColoredFormatter().format(_record())

        assert "[INFO]" in result
        assert "Test message" in result
        assert "\033[32m" in result

    def test_format_with_caller_info(self) -> None:
        """Информация о вызывающем коде выводится в скобках."""
        record = _record(logging.DEBUG)
        record.extra_data = {
            "caller_function": "handle",
            "caller_module": "relay",
            "caller_file": "handlers.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "relay.handle()" in result
        assert "handlers.py:42" in result


class TestReadLogOptions:
    """Тесты для чтения параметров логирования."""

    @patch("src.config.settings")
    def test_reads_settings(self, mock_settings: Mock) -> None:
        mock_settings.logging.LOG_LEVEL = "WARNING"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = False
        mock_settings.logging.LOG_FILE_PATH = "logs/relay.log"
        mock_settings.logging.LOG_MAX_BYTES = 1024

        options = _read_log_options()

        assert options.level == "WARNING"
        assert options.fmt == "json"
        assert options.to_file is False
        assert options.file_path == "logs/relay.log"
        assert options.max_bytes == 1024

    def test_defaults_when_config_unavailable(self) -> None:
        with patch.dict("sys.modules", {"src.config": None}):
            options = _read_log_options()

        assert options.level == "DEBUG"
        assert options.to_file is False


class TestGetLogger:
    """Тесты для get_logger."""

    def setup_method(self) -> None:
        _loggers.clear()
        for name in ("test_logger", "test_with_settings"):
            logging.getLogger(name).handlers.clear()

    def test_creates_logger_with_console_handler(self) -> None:
        logger = get_logger("test_logger")

        assert logger.name == "test_logger"
        assert len(logger.handlers) >= 1
        assert logger.propagate is False

    def test_returns_cached_logger(self) -> None:
        assert get_logger("test_logger") is get_logger("test_logger")

    @patch("src.config.settings")
    def test_level_from_settings(self, mock_settings: Mock) -> None:
        mock_settings.logging.LOG_LEVEL = "WARNING"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = False

        logger = get_logger("test_with_settings")

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)


class TestSetupLogging:
    """Тесты для setup_logging."""

    def setup_method(self) -> None:
        _loggers.clear()
        logging.getLogger(DEFAULT_LOGGER_NAME).handlers.clear()

    def test_initializes_default_logger(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", False)

        setup_logging()

        assert DEFAULT_LOGGER_NAME in _loggers
        assert logging.getLogger("asyncpg").level == logging.WARNING
        assert logging.getLogger("websockets").level == logging.WARNING

    def test_idempotent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", True)

        setup_logging()

        assert DEFAULT_LOGGER_NAME not in _loggers


class TestGetCallerInfo:
    """Тесты для _get_caller_info."""

    def test_contains_caller_function(self) -> None:
        def wrapper():
            return inner()

        def inner():
            return _get_caller_info()

        info = wrapper()

        assert info["caller_function"] == "wrapper"
        assert info["caller_file"] == "test_logger.py"


class TestAsyncLogFunctions:
    """Тесты для асинхронных функций логирования."""

    @pytest.mark.asyncio
    async def test_log_info(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = Mock()
            mock_get_logger.return_value = mock_logger

            await log_info("Info message", extra={"identity": "rider:1"})

            mock_logger.info.assert_called_once()
            args, kwargs = mock_logger.info.call_args
            assert args[0] == "Info message"
            assert kwargs["extra"]["extra_data"]["identity"] == "rider:1"

    @pytest.mark.asyncio
    async def test_log_info_with_type_msg(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = Mock()
            mock_get_logger.return_value = mock_logger

            await log_info("Critical", type_msg=TypeMsg.CRITICAL)

            mock_logger.critical.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_debug_and_warning(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = Mock()
            mock_get_logger.return_value = mock_logger

            await log_debug("Debug", logger_name="realtime_relay")
            await log_warning("Warning")

            mock_logger.debug.assert_called_once()
            mock_logger.warning.assert_called_once()
            mock_get_logger.assert_any_call("realtime_relay")

    @pytest.mark.asyncio
    async def test_log_error_passes_exc_info(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = Mock()
            mock_get_logger.return_value = mock_logger

            await log_error("Error", exc_info=True)

            _, kwargs = mock_logger.error.call_args
            assert kwargs["exc_info"] is True
