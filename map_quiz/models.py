"""
Core data models for the Map Click Quiz.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import UnsupportedGeometryError

# (longitude, latitude)
Coordinate = Tuple[float, float]


class GeometryKind(Enum):
    """GeoJSON geometry types the quiz knows how to test."""
    POINT = "Point"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"
    LINE_STRING = "LineString"
    MULTI_LINE_STRING = "MultiLineString"

    @classmethod
    def from_geojson_type(cls, type_name: str) -> "GeometryKind":
        for kind in cls:
            if kind.value == type_name:
                return kind
        raise UnsupportedGeometryError(f"Unsupported geometry type: {type_name!r}")


class QuestionStatus(Enum):
    UNANSWERED = "unanswered"
    CORRECT = "correct"


class MatchMode(Enum):
    """
    How a click is compared with a question's target.

    EXACT_POINT: within tolerance of the feature's anchor.
    POLYGON: inside an area, or within tolerance of a line or point.
    LINE: within tolerance of an area's outline, or of a line or point.
    """
    EXACT_POINT = "exact_point"
    POLYGON = "polygon"
    LINE = "line"


class TurnMode(Enum):
    SINGLE = "single"
    ALTERNATING_TWO_PLAYER = "alternating_two_player"


class ExpiryPolicy(Enum):
    """Action taken when a turn countdown reaches zero."""
    END_SESSION = "end_session"
    SWITCH_TURN = "switch_turn"
    RESTART = "restart"


def _coordinate(value: Any) -> Coordinate:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise ValueError(f"Coordinate must be a [longitude, latitude] pair, got {value!r}")
    lon, lat = float(value[0]), float(value[1])
    return (lon, lat)


def _line(values: Any, minimum: int) -> List[Coordinate]:
    if not isinstance(values, (list, tuple)) or len(values) < minimum:
        raise ValueError(f"Expected at least {minimum} coordinates, got {values!r}")
    return [_coordinate(v) for v in values]


def _ring(values: Any) -> List[Coordinate]:
    ring = _line(values, 4)
    if ring[0] != ring[-1]:
        raise ValueError("Polygon rings must be closed (first point equal to last point)")
    return ring


def _polygon(values: Any) -> List[List[Coordinate]]:
    if not isinstance(values, (list, tuple)) or not values:
        raise ValueError("Polygon needs at least an outer ring")
    return [_ring(r) for r in values]


@dataclass(frozen=True)
class GeographicFeature:
    """
    A resolved place geometry.

    Coordinates follow GeoJSON nesting for the feature kind and use
    [longitude, latitude] order:

    - Point: (lon, lat)
    - LineString: [(lon, lat), ...]
    - Polygon: [outer_ring, hole, ...]
    - MultiLineString: [line, ...]
    - MultiPolygon: [polygon, ...]

    ``anchor`` is a representative point for exact-point matching; for a
    Point it is the point itself.
    """
    kind: GeometryKind
    coordinates: Any
    anchor: Optional[Coordinate] = None
    display_name: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.kind, GeometryKind):
            raise UnsupportedGeometryError(f"Unsupported geometry kind: {self.kind!r}")

        parsers = {
            GeometryKind.POINT: _coordinate,
            GeometryKind.LINE_STRING: lambda v: _line(v, 2),
            GeometryKind.POLYGON: _polygon,
            GeometryKind.MULTI_LINE_STRING: lambda v: [_line(line, 2) for line in _non_empty(v)],
            GeometryKind.MULTI_POLYGON: lambda v: [_polygon(p) for p in _non_empty(v)],
        }
        object.__setattr__(self, 'coordinates', parsers[self.kind](self.coordinates))

        anchor = self.anchor
        if anchor is None:
            anchor = self.coordinates if self.kind is GeometryKind.POINT else _first_vertex(self)
        object.__setattr__(self, 'anchor', _coordinate(anchor))

    @classmethod
    def point(cls, lon: float, lat: float, display_name: Optional[str] = None) -> "GeographicFeature":
        return cls(GeometryKind.POINT, (lon, lat), display_name=display_name)

    @classmethod
    def from_geojson(cls, data: Dict[str, Any]) -> "GeographicFeature":
        """
        Build a feature from a GeoJSON Feature or bare geometry object.

        Nominatim puts its centre point in ``properties.lat``/``properties.lon``
        and the full name in ``properties.display_name``; both are picked up
        when present.

        Raises:
            UnsupportedGeometryError: geometry type is not handled
            ValueError: structure or coordinates are malformed
        """
        if not isinstance(data, dict):
            raise ValueError("GeoJSON data must be an object")

        properties: Dict[str, Any] = {}
        geometry = data
        if data.get("type") == "Feature":
            geometry = data.get("geometry")
            properties = data.get("properties") or {}
        if not isinstance(geometry, dict) or "type" not in geometry:
            raise ValueError("GeoJSON feature has no geometry")

        kind = GeometryKind.from_geojson_type(geometry["type"])
        if "coordinates" not in geometry:
            raise ValueError("GeoJSON geometry has no coordinates")

        anchor = None
        if "lon" in properties and "lat" in properties:
            anchor = (float(properties["lon"]), float(properties["lat"]))
        elif isinstance(properties.get("anchor"), (list, tuple)):
            anchor = properties["anchor"]

        return cls(
            kind=kind,
            coordinates=geometry["coordinates"],
            anchor=anchor,
            display_name=properties.get("display_name"),
        )

    def to_geojson(self) -> Dict[str, Any]:
        """Serialize to a GeoJSON Feature (tuples become lists)."""
        properties: Dict[str, Any] = {"anchor": list(self.anchor)}
        if self.display_name:
            properties["display_name"] = self.display_name
        return {
            "type": "Feature",
            "geometry": {"type": self.kind.value, "coordinates": _as_lists(self.coordinates)},
            "properties": properties,
        }


def _non_empty(values: Any) -> Sequence:
    if not isinstance(values, (list, tuple)) or not values:
        raise ValueError("Multi-part geometry needs at least one member")
    return values


def _first_vertex(feature: GeographicFeature) -> Coordinate:
    coords = feature.coordinates
    while isinstance(coords, list):
        coords = coords[0]
    return coords


def _as_lists(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    return value


@dataclass
class Question:
    """Represents a single map question."""
    place_name: str
    target: GeographicFeature
    prompt: str = ""
    status: QuestionStatus = QuestionStatus.UNANSWERED

    def __post_init__(self):
        if not self.prompt:
            self.prompt = f"Click on {self.place_name}"


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    timer_duration: int = 30
    tolerance_meters: float = 100.0
    match_mode: MatchMode = MatchMode.POLYGON
    turn_mode: TurnMode = TurnMode.SINGLE
    expiry_policy: ExpiryPolicy = ExpiryPolicy.END_SESSION


@dataclass
class TimerState:
    remaining: int = 0
    running: bool = False


@dataclass
class ContainmentResult:
    """Outcome of a containment test; ``unsupported`` flags a geometry that could not be tested."""
    hit: bool
    unsupported: bool = False
    distance_meters: Optional[float] = None


@dataclass
class SessionSnapshot:
    """Read-only view of a session used for status displays."""
    state: str
    current_index: int
    total_questions: int
    score: int
    prompt: str
    current_player: int
    player_scores: List[int] = field(default_factory=list)
    timer: TimerState = field(default_factory=TimerState)
