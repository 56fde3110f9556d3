# src/config/__init__.py
"""
Конфигурация realtime relay.
Экспортирует синглтон настроек (config/config.json + переменные окружения).
"""

from src.config.loader import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
