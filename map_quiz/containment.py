"""
Containment tests deciding whether a clicked coordinate hits a target geometry.

Pure functions, no state. All tolerances and distances are in meters.

Polygon edges use the half-open crossing rule ``(yi > y) != (yj > y)``, so a
shared vertex is counted once. A point exactly on a ring edge is therefore
inside on the left/bottom edges and outside on the right/top edges, and the
answer is the same on every call. Inner rings (holes) are subtracted.
"""
import logging
import math
from typing import Optional, Sequence

from .models import ContainmentResult, Coordinate, GeographicFeature, GeometryKind

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000.0
DEFAULT_TOLERANCE_METERS = 100.0


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two (lon, lat) points."""
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def _project(origin: Coordinate, point: Coordinate) -> Coordinate:
    """Equirectangular projection of ``point`` in meters around ``origin``."""
    dlon = point[0] - origin[0]
    # Take the short way round the antimeridian
    if dlon > 180:
        dlon -= 360
    elif dlon < -180:
        dlon += 360
    x = math.radians(dlon) * EARTH_RADIUS_METERS * math.cos(math.radians(origin[1]))
    y = math.radians(point[1] - origin[1]) * EARTH_RADIUS_METERS
    return (x, y)


def segment_distance(point: Coordinate, start: Coordinate, end: Coordinate) -> float:
    """
    Distance in meters from ``point`` to the segment ``start``-``end``.

    The segment is projected onto a plane centred on ``point``; the
    interpolation parameter is clamped to [0, 1] so the nearest point never
    leaves the segment.
    """
    ax, ay = _project(point, start)
    bx, by = _project(point, end)
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(ax, ay)
    t = -(ax * dx + ay * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(ax + t * dx, ay + t * dy)


def ring_contains(point: Coordinate, ring: Sequence[Coordinate]) -> bool:
    """Even-odd ray casting against a single closed ring."""
    x, y = point
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > y) != (yj > y):
            crossing_x = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < crossing_x:
                inside = not inside
        j = i
    return inside


def polygon_contains(point: Coordinate, rings: Sequence[Sequence[Coordinate]]) -> bool:
    """Inside the outer ring and outside every hole."""
    if not ring_contains(point, rings[0]):
        return False
    return not any(ring_contains(point, hole) for hole in rings[1:])


def line_distance(point: Coordinate, line: Sequence[Coordinate]) -> float:
    return min(segment_distance(point, line[i], line[i + 1]) for i in range(len(line) - 1))


class ContainmentEngine:
    """Point versus feature hit test."""

    def __init__(self, default_tolerance: float = DEFAULT_TOLERANCE_METERS):
        self.default_tolerance = default_tolerance

    def evaluate(
        self,
        point: Coordinate,
        feature: GeographicFeature,
        tolerance_meters: Optional[float] = None
    ) -> bool:
        """
        Test a clicked (lon, lat) point against a feature.

        Never raises for an unsupported feature; that is a miss. Use
        ``classify`` to tell a miss from an untestable geometry.
        """
        return self.classify(point, feature, tolerance_meters).hit

    def classify(
        self,
        point: Coordinate,
        feature: GeographicFeature,
        tolerance_meters: Optional[float] = None
    ) -> ContainmentResult:
        tolerance = self.default_tolerance if tolerance_meters is None else tolerance_meters
        kind = getattr(feature, 'kind', None)

        try:
            if kind is GeometryKind.POINT:
                distance = haversine_distance(point, feature.coordinates)
                return ContainmentResult(hit=distance <= tolerance, distance_meters=distance)

            if kind is GeometryKind.POLYGON:
                return ContainmentResult(hit=polygon_contains(point, feature.coordinates))

            if kind is GeometryKind.MULTI_POLYGON:
                hit = any(polygon_contains(point, polygon) for polygon in feature.coordinates)
                return ContainmentResult(hit=hit)

            if kind is GeometryKind.LINE_STRING:
                distance = line_distance(point, feature.coordinates)
                return ContainmentResult(hit=distance <= tolerance, distance_meters=distance)

            if kind is GeometryKind.MULTI_LINE_STRING:
                distance = min(line_distance(point, line) for line in feature.coordinates)
                return ContainmentResult(hit=distance <= tolerance, distance_meters=distance)
        except (TypeError, ValueError, IndexError, ZeroDivisionError) as e:
            logger.warning(
                f"Malformed {kind} geometry treated as unsupported: {e}",
                extra={'event_type': 'containment_malformed_geometry', 'kind': str(kind)}
            )
            return ContainmentResult(hit=False, unsupported=True)

        logger.warning(
            f"Unsupported geometry kind {kind!r}, counting as a miss",
            extra={'event_type': 'containment_unsupported_geometry', 'kind': str(kind)}
        )
        return ContainmentResult(hit=False, unsupported=True)

    def evaluate_boundary(
        self,
        point: Coordinate,
        feature: GeographicFeature,
        tolerance_meters: Optional[float] = None
    ) -> ContainmentResult:
        """
        Outline matching: distance to the nearest ring of an area within tolerance.

        Clicks deep inside a polygon miss. Lines and points are tested as in
        ``classify``.
        """
        kind = getattr(feature, 'kind', None)
        if kind is GeometryKind.POLYGON:
            rings = list(feature.coordinates)
        elif kind is GeometryKind.MULTI_POLYGON:
            rings = [ring for polygon in feature.coordinates for ring in polygon]
        else:
            return self.classify(point, feature, tolerance_meters)

        tolerance = self.default_tolerance if tolerance_meters is None else tolerance_meters
        try:
            distance = min(line_distance(point, ring) for ring in rings)
        except (TypeError, ValueError, IndexError) as e:
            logger.warning(
                f"Malformed {kind} geometry treated as unsupported: {e}",
                extra={'event_type': 'containment_malformed_geometry', 'kind': str(kind)}
            )
            return ContainmentResult(hit=False, unsupported=True)
        return ContainmentResult(hit=distance <= tolerance, distance_meters=distance)

    def evaluate_anchor(
        self,
        point: Coordinate,
        feature: GeographicFeature,
        tolerance_meters: Optional[float] = None
    ) -> ContainmentResult:
        """Exact-point matching: distance to the feature's anchor within tolerance."""
        tolerance = self.default_tolerance if tolerance_meters is None else tolerance_meters
        distance = haversine_distance(point, feature.anchor)
        return ContainmentResult(hit=distance <= tolerance, distance_meters=distance)
