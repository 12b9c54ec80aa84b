"""
Quiz session state machine: question order, scoring, turns and the turn timer.
"""
import logging
import time
from enum import Enum
from typing import Any, Callable, List, Optional

from .containment import ContainmentEngine
from .errors import EmptyQuestionSetError, InvalidSessionStateError
from .events import (
    Feedback, FeedbackKind, PromptChanged, ScoreChanged, SessionComplete,
    TimeChanged, TurnChanged,
)
from .models import (
    ContainmentResult, Coordinate, ExpiryPolicy, MatchMode, QuestionStatus,
    QuizSettings, SessionSnapshot, TurnMode,
)
from .question_set import QuestionSet
from .turn_timer import TurnTimer

POINTS_PER_CORRECT_ANSWER = 10
COMPLETE_PROMPT = "Quiz complete!"
IDLE_PROMPT = "Add places and start the game"


class SessionState(Enum):
    """Enumeration of possible quiz session states."""
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETE = "complete"


class QuizSession:
    """
    One game over a QuestionSet.

    IDLE -> ACTIVE on ``start()``, ACTIVE -> COMPLETE when the last question
    is answered or the timer ends the round, and ``reset()`` returns to IDLE
    from anywhere. ``score`` and ``current_index`` only grow until a reset.

    Listeners registered with ``subscribe`` receive the event objects from
    ``map_quiz.events`` synchronously, in the order they are emitted.
    """

    def __init__(
        self,
        question_set: QuestionSet,
        settings: Optional[QuizSettings] = None,
        containment: Optional[ContainmentEngine] = None,
        channel_id: str = None,
        auto_tick: bool = True
    ):
        self.logger = logging.getLogger(__name__)
        self.question_set = question_set
        self.settings = settings or QuizSettings()
        self.containment = containment or ContainmentEngine()
        self.channel_id = channel_id

        self.state = SessionState.IDLE
        self.current_index = 0
        self.score = 0
        self.current_player = 0
        self.player_scores: List[int] = [0] * self.player_count
        self._listeners: List[Callable[[Any], Any]] = []

        self.timer = TurnTimer(
            channel_id=channel_id,
            expiry_policy=self.settings.expiry_policy,
            on_tick=self._on_timer_tick,
            on_expire=self._on_timer_expired,
            auto_tick=auto_tick
        )

    @property
    def player_count(self) -> int:
        return 2 if self.settings.turn_mode is TurnMode.ALTERNATING_TWO_PLAYER else 1

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def prompt(self) -> str:
        if self.state is SessionState.COMPLETE:
            return COMPLETE_PROMPT
        if self.state is SessionState.ACTIVE and self.current_index < len(self.question_set):
            return self.question_set.get(self.current_index).prompt
        return IDLE_PROMPT

    def subscribe(self, listener: Callable[[Any], Any]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[Any], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def apply_settings(self, settings: QuizSettings) -> None:
        """
        Replace the session settings.

        Raises:
            InvalidSessionStateError: If a game is in progress
        """
        if self.is_active:
            raise InvalidSessionStateError("Cannot change settings while a game is in progress")
        self.settings = settings
        self.timer.expiry_policy = settings.expiry_policy
        self.player_scores = [0] * self.player_count

    def start(self) -> None:
        """
        Start a game from the first question.

        Raises:
            EmptyQuestionSetError: If there are no questions (state unchanged)
            InvalidSessionStateError: If a game is already in progress
        """
        if self.is_active:
            raise InvalidSessionStateError("A game is already in progress")
        if len(self.question_set) == 0:
            raise EmptyQuestionSetError("Add at least one place before starting the game")

        self.question_set.reset_status()
        self.current_index = 0
        self.score = 0
        self.current_player = 0
        self.player_scores = [0] * self.player_count
        self._transition(SessionState.ACTIVE, "start")

        self._emit(ScoreChanged(self.score))
        self._emit(PromptChanged(self.prompt))
        if self.player_count > 1:
            self._emit(TurnChanged(self.current_player))
        self.timer.start(self.settings.timer_duration)

    def submit_answer(self, point: Coordinate) -> Feedback:
        """
        Score a clicked (lon, lat) point against the current question.

        Outside an active game this is a no-op that reports NOT_ACTIVE.
        """
        if not self.is_active:
            return self._emit(Feedback(FeedbackKind.NOT_ACTIVE))

        question = self.question_set.get(self.current_index)
        result = self._check(point, question.target)
        if result.unsupported:
            self.logger.error(
                f"Question {self.current_index} ({question.place_name}) has an untestable geometry",
                extra={
                    'event_type': 'session_unsupported_geometry',
                    'channel_id': self.channel_id,
                    'place_name': question.place_name,
                    'timestamp': time.time()
                }
            )

        if not result.hit:
            self.logger.debug(f"Miss on {question.place_name} at {point} (channel {self.channel_id})")
            return self._emit(Feedback(FeedbackKind.INCORRECT, point=point))

        self.score += POINTS_PER_CORRECT_ANSWER
        self.player_scores[self.current_player] += POINTS_PER_CORRECT_ANSWER
        question.status = QuestionStatus.CORRECT
        self.current_index += 1
        self.logger.info(
            f"Correct answer for {question.place_name}, score {self.score}",
            extra={
                'event_type': 'session_correct_answer',
                'channel_id': self.channel_id,
                'question_index': self.current_index - 1,
                'score': self.score,
                'player': self.current_player,
                'timestamp': time.time()
            }
        )

        feedback = self._emit(Feedback(FeedbackKind.CORRECT))
        self._emit(ScoreChanged(self.score))

        if self.current_index >= len(self.question_set):
            self._complete("all questions answered")
        else:
            self._emit(PromptChanged(self.prompt))
            if self.player_count > 1:
                self._switch_player()
                self.timer.start(self.settings.timer_duration)
        return feedback

    def force_complete(self) -> None:
        """End an active game early, keeping the score."""
        if self.is_active:
            self._complete("forced")

    def reset(self) -> None:
        """Return to IDLE from any state, clearing score, index and timer."""
        self.timer.reset()
        self.current_index = 0
        self.score = 0
        self.current_player = 0
        self.player_scores = [0] * self.player_count
        self.question_set.reset_status()
        if self.state is not SessionState.IDLE:
            self._transition(SessionState.IDLE, "reset")
        self._emit(ScoreChanged(self.score))
        self._emit(TimeChanged(0))
        self._emit(PromptChanged(self.prompt))

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state.value,
            current_index=self.current_index,
            total_questions=len(self.question_set),
            score=self.score,
            prompt=self.prompt,
            current_player=self.current_player,
            player_scores=list(self.player_scores),
            timer=self.timer.state
        )

    def _check(self, point: Coordinate, target) -> ContainmentResult:
        tolerance = self.settings.tolerance_meters
        if self.settings.match_mode is MatchMode.EXACT_POINT:
            return self.containment.evaluate_anchor(point, target, tolerance)
        if self.settings.match_mode is MatchMode.LINE:
            return self.containment.evaluate_boundary(point, target, tolerance)
        return self.containment.classify(point, target, tolerance)

    def _complete(self, reason: str) -> None:
        self.timer.stop()
        self._transition(SessionState.COMPLETE, reason)
        self._emit(PromptChanged(COMPLETE_PROMPT))
        self._emit(SessionComplete(self.score))

    def _switch_player(self) -> None:
        self.current_player = (self.current_player + 1) % self.player_count
        self._emit(TurnChanged(self.current_player))

    def _on_timer_tick(self, remaining: int) -> None:
        self._emit(TimeChanged(remaining))

    def _on_timer_expired(self, policy: ExpiryPolicy) -> None:
        if not self.is_active:
            return
        if policy is ExpiryPolicy.END_SESSION:
            self._emit(Feedback(FeedbackKind.EXPIRED))
            self._complete("timer expired")
        elif policy is ExpiryPolicy.SWITCH_TURN:
            self._emit(Feedback(FeedbackKind.EXPIRED))
            self._switch_player()
        # RESTART: the timer starts over on its own, nothing else changes

    def _transition(self, new_state: SessionState, reason: str) -> None:
        old_state = self.state
        self.state = new_state
        self.logger.info(
            f"Session state {old_state.value} -> {new_state.value} ({reason}) for channel {self.channel_id}",
            extra={
                'event_type': 'session_state_transition',
                'channel_id': self.channel_id,
                'from_state': old_state.value,
                'to_state': new_state.value,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    def _emit(self, event):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self.logger.error(f"Session listener failed on {type(event).__name__}: {e}", exc_info=True)
        return event
