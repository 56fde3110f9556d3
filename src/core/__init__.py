# src/core/__init__.py
"""
Доменный слой (Core Domain).
Модели акторов и их проекция в БД.
"""

from src.core.actors import Actor, ActorIdentity, ActorRepository, GeoPoint

__all__ = [
    "Actor",
    "ActorIdentity",
    "ActorRepository",
    "GeoPoint",
]
