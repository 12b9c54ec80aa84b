"""
Events emitted by a quiz session for the presentation layer.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import Coordinate


class FeedbackKind(Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    EXPIRED = "expired"
    NOT_ACTIVE = "not_active"


@dataclass(frozen=True)
class PromptChanged:
    text: str


@dataclass(frozen=True)
class ScoreChanged:
    value: int


@dataclass(frozen=True)
class TimeChanged:
    seconds: int


@dataclass(frozen=True)
class Feedback:
    kind: FeedbackKind
    # Submitted (lon, lat) for INCORRECT feedback
    point: Optional[Coordinate] = None


@dataclass(frozen=True)
class TurnChanged:
    player: int


@dataclass(frozen=True)
class SessionComplete:
    score: int
