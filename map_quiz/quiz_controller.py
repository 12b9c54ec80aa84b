"""
Quiz controller for the Map Click Quiz.
Manages one game per channel and turns UI commands into engine calls.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .config_manager import ConfigManager
from .containment import ContainmentEngine
from .errors import (
    EmptyQuestionSetError, IndexOutOfRangeError, InvalidNameError,
    InvalidSessionStateError, PlaceNotFoundError, QuizNotFoundError,
    QuotaExceededError,
)
from .geocoding import REGIONS, GeometryResolver
from .models import Question
from .question_set import QuestionSet
from .quiz_session import QuizSession, SessionState
from .quiz_store import QuizStore


@dataclass
class ChannelGame:
    """Question set, session and bookkeeping for one channel."""
    question_set: QuestionSet
    session: QuizSession
    # Incremented by clear/load so late geocoding results can be recognised and dropped
    generation: int = 0
    batch_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class QuizController:
    """
    Orchestrates map quiz games across channels.

    Every public command returns a result dictionary:
    ``{'success': bool, 'message' or 'error': str, 'user_message': str, ...}``.
    Engine errors are caught here and reported, so a failed command leaves
    the game as it was.
    """

    def __init__(
        self,
        resolver: GeometryResolver,
        store: QuizStore,
        config_manager: ConfigManager,
        containment: Optional[ContainmentEngine] = None,
        auto_tick: bool = True
    ):
        """
        Initialize the quiz controller.

        Args:
            resolver: Place name to geometry lookup
            store: Saved quiz persistence
            config_manager: Source of settings for new games
            containment: Hit test shared by all sessions
            auto_tick: Let session timers tick on the event loop (off in tests)
        """
        self.logger = logging.getLogger(__name__)
        self.resolver = resolver
        self.store = store
        self.config_manager = config_manager
        self.containment = containment or ContainmentEngine()
        self._auto_tick = auto_tick
        self._games: Dict[int, ChannelGame] = {}
        self._listeners: List[Callable[[int, Any], Any]] = []

        self.logger.info("QuizController initialized")

    def subscribe(self, listener: Callable[[int, Any], Any]) -> None:
        """Register ``listener(channel_id, event)`` for events from every channel."""
        self._listeners.append(listener)

    def get_game(self, channel_id: int) -> ChannelGame:
        """Return the channel's game, creating an idle one on first use."""
        game = self._games.get(channel_id)
        if game is None:
            question_set = QuestionSet()
            session = QuizSession(
                question_set,
                settings=self.config_manager.get_quiz_settings(),
                containment=self.containment,
                channel_id=str(channel_id),
                auto_tick=self._auto_tick
            )
            session.subscribe(lambda event, cid=channel_id: self._forward(cid, event))
            game = ChannelGame(question_set=question_set, session=session)
            self._games[channel_id] = game
            self.logger.debug(f"Created game for channel {channel_id}")
        return game

    def has_game(self, channel_id: int) -> bool:
        return channel_id in self._games

    async def add_places(self, channel_id: int, place_names: List[str]) -> Dict[str, Any]:
        """
        Resolve place names one at a time, in order, appending each hit.

        A place that cannot be found is reported and the rest of the batch
        continues. If the game is cleared or reloaded while a lookup is in
        flight, that result and the remainder of the batch are dropped.
        """
        names = [name.strip() for name in place_names if isinstance(name, str) and name.strip()]
        if not names:
            return {
                'success': False,
                'error': "No place names given",
                'user_message': "❌ Enter at least one place name"
            }

        game = self.get_game(channel_id)
        added: List[str] = []
        not_found: List[str] = []
        discarded = False

        async with game.batch_lock:
            generation = game.generation
            for name in names:
                try:
                    feature = await self.resolver.resolve(name)
                except PlaceNotFoundError as e:
                    if game.generation != generation:
                        discarded = True
                        break
                    self.logger.warning(f"Place not found for channel {channel_id}: {e}")
                    not_found.append(name)
                    continue
                except Exception as e:
                    if game.generation != generation:
                        discarded = True
                        break
                    self.logger.error(f"Unexpected error resolving {name!r}: {e}", exc_info=True)
                    not_found.append(name)
                    continue

                if game.generation != generation:
                    self.logger.info(
                        f"Discarding geocode result for {name!r}: game in channel {channel_id} was cleared",
                        extra={
                            'event_type': 'geocode_result_discarded',
                            'channel_id': channel_id,
                            'place_name': name,
                            'timestamp': time.time()
                        }
                    )
                    discarded = True
                    break

                game.question_set.append(Question(place_name=name, target=feature))
                added.append(name)

        if discarded:
            return {
                'success': False,
                'error': "Game was cleared while places were being added",
                'user_message': "⚠️ The game was cleared, remaining places were not added",
                'added': added,
                'not_found': not_found,
                'discarded': True
            }

        if not added:
            return {
                'success': False,
                'error': f"None of the places could be found: {', '.join(not_found)}",
                'user_message': f"❌ Could not find: {', '.join(not_found)}",
                'added': added,
                'not_found': not_found,
                'discarded': False
            }

        message = f"Added {len(added)} place(s)"
        user_message = f"✅ Added: {', '.join(added)}"
        if not_found:
            user_message += f"\n⚠️ Not found: {', '.join(not_found)}"
        self.logger.info(f"{message} to channel {channel_id}, {len(not_found)} not found")
        return {
            'success': True,
            'message': message,
            'user_message': user_message,
            'added': added,
            'not_found': not_found,
            'discarded': False
        }

    async def auto_generate(self, channel_id: int, region: str) -> Dict[str, Any]:
        """Replace the channel's questions with places found in a region and start the game."""
        region_key = next((r for r in REGIONS if r.casefold() == region.strip().casefold()), None)
        if region_key is None:
            return {
                'success': False,
                'error': f"Unknown region: {region}",
                'user_message': f"❌ Unknown region. Choose one of: {', '.join(REGIONS)}"
            }

        game = self.get_game(channel_id)
        generation = game.generation
        try:
            features = await self.resolver.search(region_key, viewbox=REGIONS[region_key])
        except PlaceNotFoundError as e:
            self.logger.warning(f"Region search failed for {region_key}: {e}")
            features = []

        if game.generation != generation:
            return {
                'success': False,
                'error': "Game was cleared while the quiz was being generated",
                'user_message': "⚠️ The game was cleared before the quiz was ready",
                'discarded': True
            }
        if not features:
            return {
                'success': False,
                'error': f"No places found for region {region_key}",
                'user_message': "❌ Could not generate quiz for this region."
            }

        # Only a successful search replaces the questions and drops pending batches
        self._invalidate(game)
        game.session.reset()
        game.question_set.clear()
        for feature in features:
            name = feature.display_name or region_key
            game.question_set.append(Question(place_name=name, target=feature))

        result = self.start_game(channel_id)
        result['generated'] = len(features)
        return result

    def start_game(self, channel_id: int) -> Dict[str, Any]:
        game = self.get_game(channel_id)
        try:
            if not game.session.is_active:
                game.session.apply_settings(self.config_manager.get_quiz_settings())
            game.session.start()
        except EmptyQuestionSetError as e:
            self.logger.warning(f"Cannot start game in channel {channel_id}: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ Add some places before starting the game"
            }
        except InvalidSessionStateError as e:
            return {
                'success': False,
                'error': str(e),
                'user_message': "⚠️ A game is already running. Use /clear to stop it first"
            }

        return {
            'success': True,
            'message': f"Game started with {len(game.question_set)} questions",
            'user_message': f"🎯 {game.session.prompt}",
            'prompt': game.session.prompt
        }

    def clear_game(self, channel_id: int) -> Dict[str, Any]:
        """Stop the timer, reset the session and remove every question."""
        game = self.get_game(channel_id)
        self._invalidate(game)
        game.session.reset()
        game.question_set.clear()
        self.logger.info(f"Cleared game in channel {channel_id}")
        return {
            'success': True,
            'message': "Game cleared",
            'user_message': "🧹 Quiz cleared"
        }

    def submit_click(self, channel_id: int, lat: float, lng: float) -> Dict[str, Any]:
        if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
            return {
                'success': False,
                'error': f"Coordinate out of range: lat={lat}, lng={lng}",
                'user_message': "❌ Latitude must be between -90 and 90 and longitude between -180 and 180"
            }

        game = self.get_game(channel_id)
        feedback = game.session.submit_answer((lng, lat))
        return {
            'success': True,
            'message': f"Click at ({lat}, {lng}): {feedback.kind.value}",
            'feedback': feedback,
            'score': game.session.score,
            'prompt': game.session.prompt
        }

    def remove_place(self, channel_id: int, index: int) -> Dict[str, Any]:
        game = self.get_game(channel_id)
        if game.session.state is SessionState.ACTIVE:
            return {
                'success': False,
                'error': "Cannot remove places while a game is running",
                'user_message': "⚠️ Stop the game with /clear before removing places"
            }
        try:
            removed = game.question_set.remove_at(index)
        except IndexOutOfRangeError as e:
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ There is no place number {index + 1}"
            }
        # A finished game's index may now point past the end
        if game.session.state is SessionState.COMPLETE:
            game.session.reset()
        return {
            'success': True,
            'message': f"Removed {removed.place_name}",
            'user_message': f"🗑️ Removed {removed.place_name}",
            'removed': removed.place_name
        }

    def list_places(self, channel_id: int) -> List[str]:
        if channel_id not in self._games:
            return []
        return self._games[channel_id].question_set.place_names()

    def save_quiz(self, channel_id: int, name: str) -> Dict[str, Any]:
        game = self.get_game(channel_id)
        if len(game.question_set) == 0:
            return {
                'success': False,
                'error': "Nothing to save",
                'user_message': "❌ Add some places before saving"
            }
        try:
            saved_name = self.store.save(name, game.question_set)
        except InvalidNameError as e:
            return {'success': False, 'error': str(e), 'user_message': "❌ Please enter a quiz name"}
        except QuotaExceededError as e:
            self.logger.error(f"Saving quiz for channel {channel_id} failed: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ Storage is full or refused the quiz; nothing was changed"
            }
        return {
            'success': True,
            'message': f"Saved quiz '{saved_name}'",
            'user_message': f"💾 Quiz '{saved_name}' saved"
        }

    def load_quiz(self, channel_id: int, name: str) -> Dict[str, Any]:
        """Replace the channel's questions with a saved quiz and return to idle."""
        try:
            loaded = self.store.load(name)
        except InvalidNameError as e:
            return {'success': False, 'error': str(e), 'user_message': "❌ Please enter a quiz name"}
        except QuizNotFoundError as e:
            return {'success': False, 'error': str(e), 'user_message': f"❌ Quiz '{e.name}' not found"}

        game = self.get_game(channel_id)
        self._invalidate(game)
        game.session.reset()
        game.question_set.clear()
        for question in loaded:
            game.question_set.append(question)
        return {
            'success': True,
            'message': f"Loaded quiz '{name.strip()}' with {len(game.question_set)} questions",
            'user_message': f"📂 Quiz '{name.strip()}' loaded ({len(game.question_set)} places)",
            'places': game.question_set.place_names()
        }

    def delete_quiz(self, name: str) -> Dict[str, Any]:
        try:
            self.store.delete(name)
        except InvalidNameError as e:
            return {'success': False, 'error': str(e), 'user_message': "❌ Please enter a quiz name"}
        except QuizNotFoundError as e:
            return {'success': False, 'error': str(e), 'user_message': f"❌ Quiz '{e.name}' not found"}
        return {
            'success': True,
            'message': f"Deleted quiz '{name.strip()}'",
            'user_message': f"🗑️ Quiz '{name.strip()}' deleted"
        }

    def list_quizzes(self) -> List[str]:
        try:
            return self.store.list()
        except OSError as e:
            self.logger.error(f"Failed to list saved quizzes: {e}")
            return []

    def get_status(self, channel_id: int) -> Dict[str, Any]:
        game = self.get_game(channel_id)
        snapshot = game.session.snapshot()
        return {
            'state': snapshot.state,
            'prompt': snapshot.prompt,
            'score': snapshot.score,
            'current_index': snapshot.current_index,
            'total_questions': snapshot.total_questions,
            'current_player': snapshot.current_player,
            'player_scores': snapshot.player_scores,
            'remaining_time': snapshot.timer.remaining,
            'timer_running': snapshot.timer.running,
            'places': game.question_set.place_names()
        }

    async def shutdown(self) -> None:
        """Stop every timer and release the resolver."""
        for channel_id, game in self._games.items():
            self._invalidate(game)
            game.session.timer.reset()
        close = getattr(self.resolver, 'aclose', None)
        if close is not None:
            await close()
        self.logger.info("QuizController shut down")

    def _invalidate(self, game: ChannelGame) -> None:
        game.generation += 1

    def _forward(self, channel_id: int, event: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(channel_id, event)
            except Exception as e:
                self.logger.error(f"Event listener failed for channel {channel_id}: {e}", exc_info=True)
