import discord
from discord.ext import commands
import logging
import asyncio
from typing import Any, Dict, Optional
import os
from pathlib import Path

from .config_manager import ConfigManager
from .events import (
    Feedback, FeedbackKind, PromptChanged, ScoreChanged, SessionComplete,
    TimeChanged, TurnChanged,
)
from .geocoding import REGIONS, NominatimResolver
from .quiz_controller import QuizController
from .quiz_store import JsonDirectoryBackend, QuizStore

logger = logging.getLogger(__name__)

# Feedback answered directly in the command response, not re-posted from the event stream
RESPONSE_FEEDBACK = {FeedbackKind.CORRECT, FeedbackKind.INCORRECT, FeedbackKind.NOT_ACTIVE}


def setup_logging(log_directory: str = "logs", level: int = logging.INFO):
    """Set up comprehensive logging for debugging and monitoring."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),  # File output
        ]
    )

    # Set up error-specific logging
    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce library noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


def format_event(event: Any) -> Optional[str]:
    """Channel message for a game event, or None when it should not be posted."""
    if isinstance(event, PromptChanged):
        return f"🎯 **{event.text}**"
    if isinstance(event, ScoreChanged):
        return f"🏆 Score: {event.value}" if event.value > 0 else None
    if isinstance(event, TimeChanged):
        seconds = event.seconds
        if seconds > 0 and (seconds % 10 == 0 or seconds <= 5):
            return f"⏰ {seconds} seconds left"
        return None
    if isinstance(event, Feedback):
        if event.kind is FeedbackKind.EXPIRED:
            return "⌛ Time's up!"
        return None
    if isinstance(event, TurnChanged):
        return f"🔄 Player {event.player + 1}'s turn"
    if isinstance(event, SessionComplete):
        return f"🏁 Quiz complete! Final score: {event.score}"
    return None


def format_feedback(feedback: Feedback) -> str:
    if feedback.kind is FeedbackKind.CORRECT:
        return "✅ Correct!"
    if feedback.kind is FeedbackKind.INCORRECT:
        lng, lat = feedback.point
        return f"❌ Incorrect! You clicked ({lat:.4f}, {lng:.4f})"
    if feedback.kind is FeedbackKind.EXPIRED:
        return "⌛ Time's up!"
    return "ℹ️ No game is running. Use `/start` to begin"


class MapQuizBot(commands.Bot):
    """Discord bot for map click quizzes"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None
        # Per-channel outgoing event queues, drained in order by one task each
        self._event_queues: Dict[int, asyncio.Queue] = {}
        self._event_workers: Dict[int, asyncio.Task] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.config_manager.apply_config(self.app_config)

            geocoding = self.config_manager.get_geocoding_settings()
            resolver = NominatimResolver(
                base_url=geocoding['base_url'],
                user_agent=geocoding['user_agent']
            )
            store = QuizStore(
                JsonDirectoryBackend(self.config_manager.get_save_directory()),
                max_bytes=self.config_manager.max_save_bytes
            )
            self.quiz_controller = QuizController(resolver, store, self.config_manager)
            self.quiz_controller.subscribe(self.on_game_event)

            await self.setup_commands()
            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="add_places", description="Add comma-separated place names to the quiz")
        async def add_places_command(interaction: discord.Interaction, places: str):
            await self.handle_add_places(interaction, places)

        @self.tree.command(name="auto_quiz", description="Generate a quiz from a region and start it")
        async def auto_quiz_command(interaction: discord.Interaction, region: str):
            await self.handle_auto_quiz(interaction, region)

        @self.tree.command(name="start", description="Start the quiz")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="clear", description="Stop the game and remove all places")
        async def clear_command(interaction: discord.Interaction):
            await self.handle_clear(interaction)

        @self.tree.command(name="click", description="Click the map at a latitude/longitude")
        async def click_command(interaction: discord.Interaction, lat: float, lng: float):
            await self.handle_click(interaction, lat, lng)

        @self.tree.command(name="remove", description="Remove a place by its number in /places")
        async def remove_command(interaction: discord.Interaction, position: int):
            await self.handle_remove(interaction, position)

        @self.tree.command(name="places", description="List the places in the current quiz")
        async def places_command(interaction: discord.Interaction):
            await self.handle_places(interaction)

        @self.tree.command(name="save", description="Save the current places as a named quiz")
        async def save_command(interaction: discord.Interaction, name: str):
            await self.handle_result(interaction, self.quiz_controller.save_quiz(interaction.channel_id, name))

        @self.tree.command(name="load", description="Load a saved quiz")
        async def load_command(interaction: discord.Interaction, name: str):
            await self.handle_result(interaction, self.quiz_controller.load_quiz(interaction.channel_id, name))

        @self.tree.command(name="delete_quiz", description="Delete a saved quiz")
        async def delete_quiz_command(interaction: discord.Interaction, name: str):
            await self.handle_result(interaction, self.quiz_controller.delete_quiz(name))

        @self.tree.command(name="quizzes", description="List saved quizzes")
        async def quizzes_command(interaction: discord.Interaction):
            await self.handle_quizzes(interaction)

        @self.tree.command(name="status", description="Show the current game status")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="set_timer", description="Set the turn timer (5-300 seconds)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_result(interaction, self.config_manager.set_timer_duration(seconds))

        @self.tree.command(name="set_tolerance", description="Set the click tolerance in meters for points and lines")
        async def set_tolerance_command(interaction: discord.Interaction, meters: float):
            await self.handle_result(interaction, self.config_manager.set_tolerance(meters))

        @self.tree.command(name="mode", description="Set match mode, turn mode and timeout policy")
        async def mode_command(
            interaction: discord.Interaction,
            match_mode: Optional[str] = None,
            turn_mode: Optional[str] = None,
            on_timeout: Optional[str] = None
        ):
            await self.handle_mode(interaction, match_mode, turn_mode, on_timeout)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        for worker in self._event_workers.values():
            worker.cancel()
        if self.quiz_controller:
            await self.quiz_controller.shutdown()
        await super().close()

    def on_game_event(self, channel_id: int, event: Any) -> None:
        """Queue a game event for posting to its channel."""
        text = format_event(event)
        if text is None:
            return
        queue = self._event_queues.get(channel_id)
        if queue is None:
            queue = asyncio.Queue()
            self._event_queues[channel_id] = queue
            self._event_workers[channel_id] = asyncio.get_running_loop().create_task(
                self._drain_events(channel_id, queue)
            )
        queue.put_nowait(text)

    async def _drain_events(self, channel_id: int, queue: asyncio.Queue) -> None:
        while True:
            text = await queue.get()
            channel = self.get_channel(channel_id)
            if channel is None:
                logger.warning(f"Dropping event for unknown channel {channel_id}: {text}")
                continue
            try:
                await channel.send(text)
            except discord.HTTPException as e:
                logger.error(f"Failed to post game event to channel {channel_id}: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        help_embed = discord.Embed(
            title="🗺️ Map Quiz Commands",
            description="Find places on the map by latitude and longitude",
            color=0x00ff00
        )
        help_embed.add_field(
            name="📋 Building a Quiz",
            value=(
                "`/add_places <a, b, c>` - Add places (looked up in order)\n"
                "`/auto_quiz <region>` - Generate a quiz for a region and start it\n"
                "`/places` - List places\n"
                "`/remove <number>` - Remove a place\n"
                "`/save <name>` / `/load <name>` / `/delete_quiz <name>` / `/quizzes`"
            ),
            inline=False
        )
        help_embed.add_field(
            name="🎮 Playing",
            value=(
                "`/start` - Start the game\n"
                "`/click <lat> <lng>` - Answer by clicking a coordinate\n"
                "`/status` - Score, timer and current question\n"
                "`/clear` - Stop the game and remove all places"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Settings",
            value=(
                "`/set_timer <seconds>` - Turn timer\n"
                "`/set_tolerance <meters>` - Click tolerance for points and lines\n"
                "`/mode` - exact_point/polygon/line, single/alternating_two_player, "
                "end_session/switch_turn/restart"
            ),
            inline=False
        )
        help_embed.add_field(
            name="Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        help_embed.add_field(name="Regions", value=", ".join(REGIONS), inline=False)
        await interaction.response.send_message(embed=help_embed)

    async def handle_add_places(self, interaction: discord.Interaction, places: str):
        """Handle /add_places command; lookups can be slow so the response is deferred."""
        names = [p for p in places.split(",") if p.strip()]
        await interaction.response.defer(thinking=True)
        result = await self.quiz_controller.add_places(interaction.channel_id, names)
        await self.send_result_followup(interaction, result)

    async def handle_auto_quiz(self, interaction: discord.Interaction, region: str):
        await interaction.response.defer(thinking=True)
        result = await self.quiz_controller.auto_generate(interaction.channel_id, region)
        await self.send_result_followup(interaction, result)

    async def handle_start(self, interaction: discord.Interaction):
        result = self.quiz_controller.start_game(interaction.channel_id)
        if result['success']:
            await self.send_info_response(interaction, result['message'], "🚀 Game Started", ephemeral=False)
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Cannot Start")

    async def handle_clear(self, interaction: discord.Interaction):
        await self.handle_result(interaction, self.quiz_controller.clear_game(interaction.channel_id))

    async def handle_click(self, interaction: discord.Interaction, lat: float, lng: float):
        result = self.quiz_controller.submit_click(interaction.channel_id, lat, lng)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Click")
            return
        feedback = result['feedback']
        await interaction.response.send_message(
            format_feedback(feedback),
            ephemeral=feedback.kind is FeedbackKind.NOT_ACTIVE
        )

    async def handle_remove(self, interaction: discord.Interaction, position: int):
        # Users count from 1
        await self.handle_result(interaction, self.quiz_controller.remove_place(interaction.channel_id, position - 1))

    async def handle_places(self, interaction: discord.Interaction):
        places = self.quiz_controller.list_places(interaction.channel_id)
        if not places:
            await self.send_info_response(interaction, "No places yet. Use `/add_places`.", "📍 Places")
            return
        lines = [f"{i + 1}. {name}" for i, name in enumerate(places)]
        await self.send_info_response(interaction, "\n".join(lines)[:4000], "📍 Places")

    async def handle_quizzes(self, interaction: discord.Interaction):
        names = self.quiz_controller.list_quizzes()
        message = "\n".join(f"• {n}" for n in names) if names else "No saved quizzes yet. Use `/save`."
        await self.send_info_response(interaction, message[:4000], "💾 Saved Quizzes")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        status = self.quiz_controller.get_status(interaction.channel_id)
        embed = discord.Embed(title="📊 Quiz Status", color=0x0099ff)
        embed.add_field(name="State", value=status['state'], inline=True)
        embed.add_field(name="Score", value=str(status['score']), inline=True)
        embed.add_field(
            name="Progress",
            value=f"{status['current_index']}/{status['total_questions']}",
            inline=True
        )
        embed.add_field(name="Question", value=status['prompt'], inline=False)
        if len(status['player_scores']) > 1:
            scores = " | ".join(f"Player {i + 1}: {s}" for i, s in enumerate(status['player_scores']))
            embed.add_field(name=f"Player {status['current_player'] + 1} to play", value=scores, inline=False)
        if status['timer_running']:
            embed.add_field(name="⏰ Timer", value=f"{status['remaining_time']} seconds remaining", inline=False)
        embed.set_footer(text="Use /help to see all available commands")
        await interaction.response.send_message(embed=embed)

    async def handle_mode(self, interaction, match_mode, turn_mode, on_timeout):
        results = []
        if match_mode:
            results.append(self.config_manager.set_match_mode(match_mode))
        if turn_mode:
            results.append(self.config_manager.set_turn_mode(turn_mode))
        if on_timeout:
            results.append(self.config_manager.set_expiry_policy(on_timeout))

        failures = [r for r in results if not r['success']]
        if failures:
            await self.send_error_response(interaction, "\n".join(r['user_message'] for r in failures))
            return
        summary = self.config_manager.get_settings_summary()
        note = "Changes apply to the next game." if results else "No changes requested."
        await self.send_info_response(interaction, f"{note}\n```\n{summary}\n```", "⚙️ Settings")

    async def handle_result(self, interaction: discord.Interaction, result: Dict[str, Any]):
        """Reply to a command with its controller result"""
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "✅ Done", ephemeral=False)
        else:
            await self.send_error_response(interaction, result['user_message'])

    async def send_result_followup(self, interaction: discord.Interaction, result: Dict[str, Any]):
        color = 0x00ff00 if result['success'] else (0xffaa00 if result.get('discarded') else 0xff0000)
        embed = discord.Embed(description=result['user_message'], color=color)
        try:
            await interaction.followup.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send followup: {e}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_embed(interaction, message, title, 0xff0000, ephemeral=True,
                               footer="If this error persists, try using /help for available commands")

    async def send_info_response(self, interaction: discord.Interaction, message: str,
                                 title: str = "ℹ️ Information", ephemeral: bool = True):
        """Send formatted info response to user"""
        await self._send_embed(interaction, message, title, 0x6699ff, ephemeral=ephemeral)

    async def _send_embed(self, interaction, message, title, color, ephemeral, footer=None):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if footer:
                embed.set_footer(text=footer)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=ephemeral)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=ephemeral)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {title}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = MapQuizBot(config)

    try:
        logger.info("Starting Map Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
