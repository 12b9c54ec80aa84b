"""
Map Click Quiz: place names resolve to map geometry and players score by
clicking inside (or near) them.
"""
from .containment import ContainmentEngine, haversine_distance
from .models import (
    ExpiryPolicy, GeographicFeature, GeometryKind, MatchMode, Question,
    QuestionStatus, QuizSettings, TurnMode,
)
from .question_set import QuestionSet
from .quiz_session import QuizSession, SessionState
from .quiz_store import QuizStore
from .turn_timer import TurnTimer

__version__ = "1.0.0"
