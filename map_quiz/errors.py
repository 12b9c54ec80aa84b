"""
Exception hierarchy for the Map Click Quiz.

Engine components raise these; QuizController turns them into status
results so none of them ends a game.
"""


class MapQuizError(Exception):
    """Base exception for quiz errors."""
    pass


class PlaceNotFoundError(MapQuizError):
    """Raised when a place name cannot be resolved to a supported geometry."""

    def __init__(self, place_name: str, reason: str = "no results"):
        super().__init__(f"Place not found: {place_name!r} ({reason})")
        self.place_name = place_name
        self.reason = reason


class UnsupportedGeometryError(MapQuizError, ValueError):
    """Raised for geometry kinds other than Point, Polygon, MultiPolygon, LineString and MultiLineString."""
    pass


class EmptyQuestionSetError(MapQuizError):
    """Raised when starting a session with no questions."""
    pass


class IndexOutOfRangeError(MapQuizError, IndexError):
    """Raised for a question index outside 0..n-1."""

    def __init__(self, index: int, length: int):
        super().__init__(f"Question index {index} out of range (0..{length - 1})" if length
                         else f"Question index {index} out of range (question set is empty)")
        self.index = index
        self.length = length


class InvalidSessionStateError(MapQuizError):
    """Raised when a session is in the wrong state for the requested operation."""
    pass


class InvalidNameError(MapQuizError):
    """Raised when a saved quiz name is empty or blank."""
    pass


class QuizNotFoundError(MapQuizError):
    """Raised when a saved quiz does not exist or cannot be read."""

    def __init__(self, name: str, reason: str = "not saved"):
        super().__init__(f"Saved quiz not found: {name!r} ({reason})")
        self.name = name
        self.reason = reason


class QuotaExceededError(MapQuizError):
    """Raised when the storage backend refuses a write."""
    pass
