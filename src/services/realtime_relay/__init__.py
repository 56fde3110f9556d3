# src/services/realtime_relay/__init__.py
"""
Realtime relay: присутствие и локация акторов.

Обеспечивает:
- Привязку WebSocket соединения к актору (join)
- Приём геолокации водителей
- Адресную доставку событий конкретному актору
- Очистку привязок при разрыве соединения
"""
