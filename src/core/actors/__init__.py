# src/core/actors/__init__.py
"""
Проекция акторов (пассажиров и водителей), с которой работает realtime relay.
"""

from src.core.actors.models import Actor, ActorIdentity, GeoPoint
from src.core.actors.repository import ActorRepository

__all__ = ["Actor", "ActorIdentity", "GeoPoint", "ActorRepository"]
