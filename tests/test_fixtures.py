"""
Test fixtures and sample data for Map Click Quiz tests.
"""
from typing import Dict, List
from unittest.mock import AsyncMock, Mock

import discord

from map_quiz.geocoding import StaticResolver
from map_quiz.models import GeographicFeature, GeometryKind, Question, QuizSettings
from map_quiz.question_set import QuestionSet


def square(west: float, south: float, east: float, north: float) -> List[List[float]]:
    """Closed counter-clockwise ring for a lon/lat box."""
    return [[west, south], [east, south], [east, north], [west, north], [west, south]]


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def unit_square_feature() -> GeographicFeature:
        return GeographicFeature(
            GeometryKind.POLYGON,
            [[[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]]
        )

    @staticmethod
    def paris_feature() -> GeographicFeature:
        """Rough box around Paris, anchored on the city centre."""
        return GeographicFeature(
            GeometryKind.POLYGON,
            [square(2.22, 48.81, 2.47, 48.91)],
            anchor=(2.3522, 48.8566),
            display_name="Paris, Île-de-France, France"
        )

    @staticmethod
    def tokyo_feature() -> GeographicFeature:
        """Rough box around central Tokyo."""
        return GeographicFeature(
            GeometryKind.POLYGON,
            [square(139.56, 35.52, 139.92, 35.82)],
            anchor=(139.6917, 35.6895),
            display_name="Tokyo, Japan"
        )

    @staticmethod
    def seine_feature() -> GeographicFeature:
        return GeographicFeature(
            GeometryKind.LINE_STRING,
            [[2.25, 48.84], [2.30, 48.86], [2.35, 48.855], [2.40, 48.83]],
            display_name="Seine"
        )

    @staticmethod
    def eiffel_tower_feature() -> GeographicFeature:
        return GeographicFeature.point(2.2945, 48.8584, display_name="Eiffel Tower")

    @staticmethod
    def places() -> Dict[str, GeographicFeature]:
        return {
            "Paris": TestFixtures.paris_feature(),
            "Tokyo": TestFixtures.tokyo_feature(),
            "Seine": TestFixtures.seine_feature(),
            "Eiffel Tower": TestFixtures.eiffel_tower_feature(),
        }

    @staticmethod
    def create_resolver() -> StaticResolver:
        return StaticResolver(TestFixtures.places())

    @staticmethod
    def create_question_set(names: List[str] = None) -> QuestionSet:
        places = TestFixtures.places()
        question_set = QuestionSet()
        for name in names or ["Paris", "Tokyo"]:
            question_set.append(Question(place_name=name, target=places[name]))
        return question_set

    @staticmethod
    def create_settings(**overrides) -> QuizSettings:
        settings = QuizSettings(timer_duration=30)
        for key, value in overrides.items():
            setattr(settings, key, value)
        return settings

    @staticmethod
    def nominatim_response(features: List[Dict] = None) -> Dict:
        """Nominatim GeoJSON search response."""
        return {
            "type": "FeatureCollection",
            "licence": "Data © OpenStreetMap contributors, ODbL 1.0.",
            "features": features if features is not None else [TestFixtures.nominatim_paris()],
        }

    @staticmethod
    def nominatim_paris() -> Dict:
        return {
            "type": "Feature",
            "properties": {
                "place_id": 88066702,
                "osm_type": "relation",
                "display_name": "Paris, Île-de-France, France métropolitaine, France",
                "lat": "48.8588897",
                "lon": "2.3200410",
            },
            "bbox": [2.224122, 48.8155755, 2.4697602, 48.9021560],
            "geometry": {
                "type": "Polygon",
                "coordinates": [square(2.224122, 48.8155755, 2.4697602, 48.902156)],
            },
        }


class MockDiscordObjects:
    """Mock Discord objects for testing."""

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345) -> Mock:
        interaction = Mock(spec=discord.Interaction)
        interaction.channel_id = channel_id
        interaction.response = Mock()
        interaction.response.send_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        interaction.response.is_done.return_value = False
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction
