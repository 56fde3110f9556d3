# src/services/__init__.py
"""
Сервисы приложения.

Сервисы:
- realtime_relay: WebSocket relay присутствия, локации водителей и адресной доставки
"""

__all__: list[str] = []
