"""
Turn countdown for quiz sessions.
Counts down in one-second ticks and applies an expiry policy at zero.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .models import ExpiryPolicy, TimerState

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(channel_id: str, duration: int, policy: ExpiryPolicy) -> None:
        """Log countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Channel {channel_id}, Duration {duration}s, Policy {policy.value}",
            extra={
                'event_type': 'timer_countdown_start',
                'channel_id': channel_id,
                'duration': duration,
                'expiry_policy': policy.value,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(channel_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100 if total_duration else 100.0
            logger.debug(
                f"Timer lifecycle: UPDATE - Channel {channel_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'channel_id': channel_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_expiry(channel_id: str, policy: ExpiryPolicy, total_duration: int) -> None:
        """Log natural expiry and the policy being applied."""
        logger.info(
            f"Timer lifecycle: EXPIRED - Channel {channel_id}, Policy {policy.value}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_expired',
                'channel_id': channel_id,
                'expiry_policy': policy.value,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(channel_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - Channel {channel_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'channel_id': channel_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(channel_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Channel {channel_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'channel_id': channel_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class TurnTimer:
    """
    Single countdown owned by a quiz session.

    ``tick()`` does the work of one second and can be driven directly. When
    ``auto_tick`` is on and an event loop is running, ``start()`` also
    schedules a task that calls ``tick()`` every ``interval`` seconds.

    At zero the timer stops and calls ``on_expire(policy)`` once. For
    SWITCH_TURN and RESTART a fresh countdown of the same duration then
    begins; for END_SESSION the timer stays stopped.
    """

    def __init__(
        self,
        channel_id: str = None,
        expiry_policy: ExpiryPolicy = ExpiryPolicy.END_SESSION,
        on_tick: Optional[Callable[[int], Any]] = None,
        on_expire: Optional[Callable[[ExpiryPolicy], Any]] = None,
        auto_tick: bool = True,
        interval: float = 1.0
    ):
        self._channel_id = channel_id
        self.expiry_policy = expiry_policy
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._auto_tick = auto_tick
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._remaining_time = 0
        self._total_duration = 0
        self._running = False
        # Bumped on every start/stop so a stale task can tell it has been superseded
        self._countdown_id = 0

    def start(self, duration: int) -> None:
        """Begin a new countdown, replacing any countdown in progress."""
        if duration <= 0:
            raise ValueError(f"Timer duration must be positive, got {duration}")

        self._cancel_task()
        self._countdown_id += 1
        self._total_duration = duration
        self._remaining_time = duration
        self._running = True
        TimerLifecycleLogger.log_timer_start(self._channel_id, duration, self.expiry_policy)
        self._notify_tick()

        if self._auto_tick:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug(f"No running event loop for channel {self._channel_id}; timer must be ticked manually")
                return
            self._task = loop.create_task(self._countdown(self._countdown_id))

    def tick(self) -> bool:
        """
        Advance the countdown by one second.

        Returns:
            True if the timer was running, False if the tick was ignored
        """
        if not self._running:
            return False

        self._remaining_time -= 1
        TimerLifecycleLogger.log_timer_update(self._channel_id, self._remaining_time, self._total_duration)
        self._notify_tick()

        if self._remaining_time <= 0:
            self._expire()
        return True

    def stop(self) -> None:
        """Cancel the countdown without firing expiry."""
        if self._running:
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id, "running", "stopped", "stop requested"
            )
        self._running = False
        self._countdown_id += 1
        self._cancel_task()

    def reset(self) -> None:
        """Stop and clear the remaining time."""
        self.stop()
        self._remaining_time = 0
        self._total_duration = 0

    def _expire(self) -> None:
        self._running = False
        policy = self.expiry_policy
        TimerLifecycleLogger.log_timer_expiry(self._channel_id, policy, self._total_duration)
        expired_countdown = self._countdown_id

        if self._on_expire:
            try:
                self._on_expire(policy)
            except Exception as e:
                TimerLifecycleLogger.log_timer_error(self._channel_id, "expiry_callback_error", str(e), "expire")

        # The expiry callback may already have stopped or restarted the timer
        if self._countdown_id != expired_countdown:
            return

        if policy in (ExpiryPolicy.SWITCH_TURN, ExpiryPolicy.RESTART):
            self._countdown_id += 1
            self._remaining_time = self._total_duration
            self._running = True
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id, "expired", "running", f"{policy.value} restart"
            )
            self._notify_tick()

    def _notify_tick(self) -> None:
        if self._on_tick:
            try:
                self._on_tick(self._remaining_time)
            except Exception as e:
                TimerLifecycleLogger.log_timer_error(self._channel_id, "tick_callback_error", str(e), "tick")

    async def _countdown(self, countdown_id: int) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                if self._task is not asyncio.current_task() or not self._running:
                    break
                self.tick()
                # END_SESSION leaves the timer stopped; restarts keep this task going
                if not self._running:
                    break
        except asyncio.CancelledError:
            logger.debug(f"Countdown task {countdown_id} cancelled for channel {self._channel_id}")
            raise

    def _cancel_task(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def remaining_time(self) -> int:
        """Get remaining time in seconds."""
        return self._remaining_time

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def total_duration(self) -> int:
        return self._total_duration

    @property
    def state(self) -> TimerState:
        return TimerState(remaining=self._remaining_time, running=self._running)
