# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL.
"""

from src.infra.database import DatabaseManager, get_db

__all__ = [
    "DatabaseManager",
    "get_db",
]
