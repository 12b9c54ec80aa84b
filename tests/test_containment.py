"""
Unit tests for the containment engine.
"""
import unittest

from map_quiz.containment import (
    ContainmentEngine, haversine_distance, ring_contains, segment_distance,
)
from map_quiz.models import GeographicFeature, GeometryKind
from tests.test_fixtures import TestFixtures, square


class TestHaversine(unittest.TestCase):
    """Great-circle distance in meters."""

    def test_zero_distance(self):
        self.assertEqual(haversine_distance((2.35, 48.85), (2.35, 48.85)), 0.0)

    def test_one_degree_of_latitude(self):
        # 2 * pi * 6371km / 360
        self.assertAlmostEqual(haversine_distance((0, 0), (0, 1)), 111194.9, delta=1.0)

    def test_paris_to_london(self):
        distance = haversine_distance((2.3522, 48.8566), (-0.1276, 51.5072))
        self.assertAlmostEqual(distance / 1000, 343.5, delta=2.0)

    def test_symmetric(self):
        a, b = (139.69, 35.69), (-74.0, 40.71)
        self.assertAlmostEqual(haversine_distance(a, b), haversine_distance(b, a))


class TestSegmentDistance(unittest.TestCase):

    def test_perpendicular_foot_inside_segment(self):
        # 0.001 degrees of latitude north of an east-west segment at the equator
        distance = segment_distance((0.5, 0.001), (0, 0), (1, 0))
        self.assertAlmostEqual(distance, 111.19, delta=0.5)

    def test_clamped_to_endpoint(self):
        # Beyond the east end: nearest point is the endpoint itself
        point = (1.001, 0.0)
        self.assertAlmostEqual(
            segment_distance(point, (0, 0), (1, 0)),
            haversine_distance(point, (1, 0)),
            delta=0.5
        )

    def test_degenerate_segment(self):
        self.assertAlmostEqual(
            segment_distance((0, 0.001), (0, 0), (0, 0)),
            haversine_distance((0, 0.001), (0, 0)),
            delta=0.5
        )


class TestPolygonContainment(unittest.TestCase):
    """Ray casting over polygon rings."""

    def setUp(self):
        self.engine = ContainmentEngine()
        self.square = TestFixtures.unit_square_feature()

    def test_interior_point_hits(self):
        self.assertTrue(self.engine.evaluate((5, 5), self.square))

    def test_exterior_point_misses(self):
        self.assertFalse(self.engine.evaluate((15, 15), self.square))

    def test_interior_points_grid(self):
        for x in (0.5, 2.5, 7.5, 9.5):
            for y in (0.5, 5.0, 9.5):
                self.assertTrue(self.engine.evaluate((x, y), self.square), (x, y))

    def test_exterior_points(self):
        for point in [(-1, 5), (11, 5), (5, -1), (5, 11), (-5, -5)]:
            self.assertFalse(self.engine.evaluate(point, self.square), point)

    def test_boundary_points_are_deterministic(self):
        for point in [(0, 5), (10, 5), (5, 0), (5, 10), (0, 0), (10, 10)]:
            first = self.engine.evaluate(point, self.square)
            for _ in range(5):
                self.assertEqual(self.engine.evaluate(point, self.square), first, point)

    def test_documented_edge_rule(self):
        # Left and bottom edges are inside, right and top edges are outside
        self.assertTrue(self.engine.evaluate((0, 5), self.square))
        self.assertTrue(self.engine.evaluate((5, 0), self.square))
        self.assertFalse(self.engine.evaluate((10, 5), self.square))
        self.assertFalse(self.engine.evaluate((5, 10), self.square))

    def test_ray_through_vertex_counted_once(self):
        diamond = [(5, 0), (10, 5), (5, 10), (0, 5), (5, 0)]
        self.assertTrue(ring_contains((2, 5), diamond))
        self.assertFalse(ring_contains((-2, 5), diamond))

    def test_concave_polygon(self):
        # U shape opening to the north
        u_shape = GeographicFeature(GeometryKind.POLYGON, [[
            [0, 0], [10, 0], [10, 10], [7, 10], [7, 3], [3, 3], [3, 10], [0, 10], [0, 0]
        ]])
        self.assertTrue(self.engine.evaluate((1, 8), u_shape))
        self.assertTrue(self.engine.evaluate((5, 1), u_shape))
        self.assertFalse(self.engine.evaluate((5, 8), u_shape))

    def test_hole_is_subtracted(self):
        with_hole = GeographicFeature(GeometryKind.POLYGON, [
            square(0, 0, 10, 10),
            square(4, 4, 6, 6),
        ])
        self.assertFalse(self.engine.evaluate((5, 5), with_hole))
        self.assertTrue(self.engine.evaluate((2, 2), with_hole))

    def test_multipolygon_any_member(self):
        islands = GeographicFeature(GeometryKind.MULTI_POLYGON, [
            [square(0, 0, 1, 1)],
            [square(5, 5, 6, 6)],
        ])
        self.assertTrue(self.engine.evaluate((0.5, 0.5), islands))
        self.assertTrue(self.engine.evaluate((5.5, 5.5), islands))
        self.assertFalse(self.engine.evaluate((3, 3), islands))

    def test_polygon_ignores_tolerance(self):
        self.assertFalse(self.engine.evaluate((10.0001, 5), self.square, tolerance_meters=1e9))


class TestLineAndPointContainment(unittest.TestCase):

    def setUp(self):
        self.engine = ContainmentEngine()

    def test_line_within_tolerance(self):
        line = GeographicFeature(GeometryKind.LINE_STRING, [[0, 0], [1, 0]])
        # About 55m north of the line
        self.assertTrue(self.engine.evaluate((0.5, 0.0005), line, tolerance_meters=100))
        self.assertFalse(self.engine.evaluate((0.5, 0.0005), line, tolerance_meters=10))

    def test_line_beyond_end_uses_endpoint(self):
        line = GeographicFeature(GeometryKind.LINE_STRING, [[0, 0], [1, 0]])
        # On the line's extension 1km past the end
        self.assertFalse(self.engine.evaluate((1.009, 0), line, tolerance_meters=100))

    def test_multilinestring_nearest_member(self):
        lines = GeographicFeature(GeometryKind.MULTI_LINE_STRING, [
            [[0, 0], [1, 0]],
            [[0, 5], [1, 5]],
        ])
        result = self.engine.classify((0.5, 5.0003), lines, tolerance_meters=100)
        self.assertTrue(result.hit)
        self.assertLess(result.distance_meters, 100)

    def test_point_target_within_default_tolerance(self):
        tower = TestFixtures.eiffel_tower_feature()
        # About 50m away
        self.assertTrue(self.engine.evaluate((2.2945, 48.85885), tower))
        # About 1.1km away
        self.assertFalse(self.engine.evaluate((2.2945, 48.8684), tower))

    def test_anchor_matching(self):
        paris = TestFixtures.paris_feature()
        self.assertTrue(self.engine.evaluate_anchor((2.3522, 48.8566), paris, 100).hit)
        self.assertFalse(self.engine.evaluate_anchor((2.30, 48.88), paris, 100).hit)


class TestBoundaryMatching(unittest.TestCase):
    """Clicks scored against an area's outline."""

    def setUp(self):
        self.engine = ContainmentEngine()
        self.square = TestFixtures.unit_square_feature()

    def test_interior_click_misses(self):
        result = self.engine.evaluate_boundary((5, 5), self.square, tolerance_meters=1000)
        self.assertFalse(result.hit)
        self.assertGreater(result.distance_meters, 500000)

    def test_near_edge_hits_from_either_side(self):
        # About 55m from the southern edge
        self.assertTrue(self.engine.evaluate_boundary((5, 0.0005), self.square, tolerance_meters=100).hit)
        self.assertTrue(self.engine.evaluate_boundary((5, -0.0005), self.square, tolerance_meters=100).hit)
        self.assertFalse(self.engine.evaluate_boundary((5, -0.0005), self.square, tolerance_meters=10).hit)

    def test_hole_outline_counts(self):
        donut = GeographicFeature(GeometryKind.MULTI_POLYGON, [
            [square(0, 0, 10, 10), square(4, 4, 6, 6)],
        ])
        self.assertTrue(self.engine.evaluate_boundary((5, 4.0005), donut, tolerance_meters=100).hit)

    def test_lines_use_distance(self):
        line = GeographicFeature(GeometryKind.LINE_STRING, [[0, 0], [1, 0]])
        self.assertTrue(self.engine.evaluate_boundary((0.5, 0.0005), line, tolerance_meters=100).hit)


class TestUnsupportedGeometry(unittest.TestCase):

    def setUp(self):
        self.engine = ContainmentEngine()

    def test_unknown_kind_is_a_flagged_miss(self):
        fake = UntestableFeature("GeometryCollection")
        self.assertFalse(self.engine.evaluate((0, 0), fake))
        result = self.engine.classify((0, 0), fake)
        self.assertFalse(result.hit)
        self.assertTrue(result.unsupported)

    def test_supported_kind_not_flagged(self):
        result = self.engine.classify((15, 15), TestFixtures.unit_square_feature())
        self.assertFalse(result.hit)
        self.assertFalse(result.unsupported)


class UntestableFeature:
    """Stand-in for a feature that bypassed construction checks."""

    def __init__(self, kind):
        self.kind = kind
        self.coordinates = []


if __name__ == '__main__':
    unittest.main()
