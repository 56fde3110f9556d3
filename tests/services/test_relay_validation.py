# tests/services/test_relay_validation.py
"""
Тесты валидации входящих сообщений relay.
"""

from __future__ import annotations

import math
from typing import Any

import pytest

from src.common.constants import ActorRole
from src.core.actors.models import ActorIdentity
from src.services.realtime_relay.validation import (
    Accepted,
    Rejected,
    parse_dispatch,
    parse_join,
    parse_location,
)


class TestParseJoin:
    """Тесты для parse_join."""

    def test_accepts_identity_and_role(self) -> None:
        result = parse_join({"identity": "D1", "role": "driver"})

        assert isinstance(result, Accepted)
        assert result.value.to_identity() == ActorIdentity("D1", ActorRole.DRIVER)

    @pytest.mark.parametrize(
        "payload, expected_role",
        [
            ({"userId": "u1", "userType": "user"}, ActorRole.RIDER),
            ({"userId": "c1", "userType": "captain"}, ActorRole.DRIVER),
            ({"identity": "r1", "role": "RIDER"}, ActorRole.RIDER),
        ],
    )
    def test_legacy_fields(self, payload: dict[str, Any], expected_role: ActorRole) -> None:
        result = parse_join(payload)

        assert isinstance(result, Accepted)
        assert result.value.role is expected_role

    def test_numeric_identity_becomes_string(self) -> None:
        result = parse_join({"identity": 42, "role": "rider"})

        assert isinstance(result, Accepted)
        assert result.value.identity == "42"

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            "join",
            [],
            {},
            {"identity": "", "role": "rider"},
            {"identity": "   ", "role": "rider"},
            {"identity": "x"},
            {"identity": "x", "role": "admin"},
            {"identity": True, "role": "rider"},
        ],
    )
    def test_rejects(self, payload: Any) -> None:
        result = parse_join(payload)

        assert isinstance(result, Rejected)
        assert result.reason


class TestParseLocation:
    """Тесты для parse_location."""

    def test_accepts_valid(self) -> None:
        result = parse_location({"identity": "D1", "location": {"lat": 12.9, "lng": 77.6}})

        assert isinstance(result, Accepted)
        assert result.value.location.lat == 12.9
        assert result.value.location.lng == 77.6

    def test_zero_is_valid(self) -> None:
        result = parse_location({"userId": "D1", "location": {"lat": 0, "lng": 0}})

        assert isinstance(result, Accepted)
        assert result.value.location.lat == 0.0

    @pytest.mark.parametrize("lat, lng", [(90, 180), (-90, -180)])
    def test_boundaries(self, lat: float, lng: float) -> None:
        assert isinstance(parse_location({"identity": "D1", "location": {"lat": lat, "lng": lng}}), Accepted)

    @pytest.mark.parametrize(
        "location",
        [
            {"lat": 91, "lng": 0},
            {"lat": 0, "lng": -200},
            {"lat": -90.5, "lng": 0},
            {"lat": 0, "lng": 180.01},
            {"lat": math.nan, "lng": 0},
            {"lat": 0, "lng": math.inf},
            {"lat": "north", "lng": 0},
            {"lat": True, "lng": 0},
            {"lat": 1},
            None,
        ],
    )
    def test_rejects_bad_coordinates(self, location: Any) -> None:
        assert isinstance(parse_location({"identity": "D1", "location": location}), Rejected)

    def test_rejects_non_object(self) -> None:
        assert isinstance(parse_location("12.9,77.6"), Rejected)


class TestParseDispatch:
    """Тесты для parse_dispatch."""

    def test_accepts_command(self) -> None:
        result = parse_dispatch({
            "identity": "D1",
            "role": "driver",
            "event": "ride:offer",
            "payload": {"rideId": "R1"},
        })

        assert isinstance(result, Accepted)
        assert result.value.identity == ActorIdentity("D1", ActorRole.DRIVER)
        assert result.value.event == "ride:offer"
        assert result.value.payload == {"rideId": "R1"}

    def test_payload_optional(self) -> None:
        result = parse_dispatch({"identity": "r1", "role": "user", "event": "ride:cancelled"})

        assert isinstance(result, Accepted)
        assert result.value.payload is None
        assert result.value.identity.role is ActorRole.RIDER

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {"identity": "D1", "role": "driver"},
            {"identity": "D1", "role": "driver", "event": ""},
            {"identity": "D1", "role": "robot", "event": "x"},
        ],
    )
    def test_rejects(self, payload: Any) -> None:
        assert isinstance(parse_dispatch(payload), Rejected)
