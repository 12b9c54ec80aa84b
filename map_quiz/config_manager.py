"""
Configuration manager for Map Click Quiz settings and parameters.
"""
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path

from .models import ExpiryPolicy, MatchMode, QuizSettings, TurnMode


class ConfigManager:
    """Manages quiz configuration settings and service parameters."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_TOLERANCE_METERS = 100.0
    DEFAULT_SAVE_DIRECTORY = "./saved_quizzes/"
    DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org"
    DEFAULT_USER_AGENT = "map-click-quiz/1.0"
    DEFAULT_MAX_SAVE_BYTES = 5 * 1024 * 1024

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_TOLERANCE_METERS = 1.0
    MAX_TOLERANCE_METERS = 500000.0  # 500km

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._save_directory = self.DEFAULT_SAVE_DIRECTORY
        self.nominatim_url = self.DEFAULT_NOMINATIM_URL
        self.user_agent = self.DEFAULT_USER_AGENT
        self.max_save_bytes = self.DEFAULT_MAX_SAVE_BYTES

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            timer_duration=self._global_settings.timer_duration,
            tolerance_meters=self._global_settings.tolerance_meters,
            match_mode=self._global_settings.match_mode,
            turn_mode=self._global_settings.turn_mode,
            expiry_policy=self._global_settings.expiry_policy
        )

    def apply_config(self, config: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Apply the ``quiz``, ``geocoding`` and ``storage`` sections of a config.json dict.

        Invalid values are reported and the defaults kept.

        Returns:
            Results of the setters that failed
        """
        quiz_config = config.get('quiz', {})
        results = []
        if 'default_timer_duration' in quiz_config:
            results.append(self.set_timer_duration(quiz_config['default_timer_duration']))
        if 'tolerance_meters' in quiz_config:
            results.append(self.set_tolerance(quiz_config['tolerance_meters']))
        if 'match_mode' in quiz_config:
            results.append(self.set_match_mode(quiz_config['match_mode']))
        if 'turn_mode' in quiz_config:
            results.append(self.set_turn_mode(quiz_config['turn_mode']))
        if 'expiry_policy' in quiz_config:
            results.append(self.set_expiry_policy(quiz_config['expiry_policy']))

        geocoding_config = config.get('geocoding', {})
        self.nominatim_url = geocoding_config.get('base_url', self.nominatim_url)
        self.user_agent = geocoding_config.get('user_agent', self.user_agent)

        storage_config = config.get('storage', {})
        if 'save_directory' in storage_config:
            results.append(self.set_save_directory(storage_config['save_directory']))
        if isinstance(storage_config.get('max_bytes'), int) and storage_config['max_bytes'] > 0:
            self.max_save_bytes = storage_config['max_bytes']

        failures = [r for r in results if not r['success']]
        for failure in failures:
            self.logger.warning(f"Ignoring invalid configuration value: {failure['error']}")
        return failures

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the turn timer duration with error handling.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(duration, int) or isinstance(duration, bool):
            error_msg = f"Timer duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_TIMER_DURATION:
            error_msg = f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            }

        if duration > self.MAX_TIMER_DURATION:
            error_msg = f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds ({self.MAX_TIMER_DURATION // 60} minutes)"
            }

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def set_tolerance(self, meters: float) -> Dict[str, Any]:
        """
        Set how far (in meters) a click may be from a point or line target.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(meters, (int, float)) or isinstance(meters, bool):
            error_msg = f"Tolerance must be a number, got {type(meters).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number of meters, got {type(meters).__name__}"
            }

        if not self.MIN_TOLERANCE_METERS <= meters <= self.MAX_TOLERANCE_METERS:
            error_msg = (f"Tolerance must be between {self.MIN_TOLERANCE_METERS:g} and "
                         f"{self.MAX_TOLERANCE_METERS:g} meters")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._global_settings.tolerance_meters = float(meters)
        self.logger.info(f"Tolerance set to {meters} meters")
        return {
            'success': True,
            'message': f"Tolerance set to {meters} meters",
            'user_message': f"✅ Clicks within {meters:g} m of a point or line count as correct"
        }

    def get_tolerance(self) -> float:
        return self._global_settings.tolerance_meters

    def set_match_mode(self, mode) -> Dict[str, Any]:
        return self._set_enum('match_mode', MatchMode, mode, "Match mode")

    def set_turn_mode(self, mode) -> Dict[str, Any]:
        return self._set_enum('turn_mode', TurnMode, mode, "Turn mode")

    def set_expiry_policy(self, policy) -> Dict[str, Any]:
        return self._set_enum('expiry_policy', ExpiryPolicy, policy, "Expiry policy")

    def _set_enum(self, attribute: str, enum_type, value, label: str) -> Dict[str, Any]:
        """Set an enum-valued setting from a member or its string value."""
        try:
            member = value if isinstance(value, enum_type) else enum_type(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in enum_type)
            error_msg = f"{label} must be one of: {choices}; got {value!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown {label.lower()} '{value}'. Choose one of: {choices}"
            }

        setattr(self._global_settings, attribute, member)
        self.logger.info(f"{label} set to {member.value}")
        return {
            'success': True,
            'message': f"{label} set to {member.value}",
            'user_message': f"✅ {label} set to {member.value.replace('_', ' ')}"
        }

    def set_save_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory holding saved quizzes.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Save directory must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Directory path cannot be empty"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid directory path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {directory}"
            }

        system_dirs = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']
        if any(normalized_path.startswith(sys_dir) for sys_dir in system_dirs):
            error_msg = f"Cannot use system directory: {normalized_path}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Cannot use system directory: {directory}"
            }

        self._save_directory = normalized_path
        self.logger.info(f"Save directory set to {normalized_path}")
        return {
            'success': True,
            'message': f"Save directory set to {normalized_path}",
            'user_message': f"✅ Save directory set to {normalized_path}"
        }

    def get_save_directory(self) -> str:
        return self._save_directory

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings()
        self._save_directory = self.DEFAULT_SAVE_DIRECTORY
        self.nominatim_url = self.DEFAULT_NOMINATIM_URL
        self.user_agent = self.DEFAULT_USER_AGENT
        self.max_save_bytes = self.DEFAULT_MAX_SAVE_BYTES
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._global_settings

        if (not isinstance(settings.timer_duration, int) or
                not self.MIN_TIMER_DURATION <= settings.timer_duration <= self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid timer duration: {settings.timer_duration}")

        if (not isinstance(settings.tolerance_meters, (int, float)) or
                not self.MIN_TOLERANCE_METERS <= settings.tolerance_meters <= self.MAX_TOLERANCE_METERS):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid tolerance: {settings.tolerance_meters}")

        if (settings.turn_mode is TurnMode.SINGLE and
                settings.expiry_policy is ExpiryPolicy.SWITCH_TURN):
            validation_result["issues"].append(
                "Expiry policy switch_turn has no second player in single mode"
            )

        if not isinstance(self._save_directory, str) or not self._save_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid save directory: {self._save_directory}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        return (
            f"Quiz Settings:\n"
            f"• Timer: {settings.timer_duration} seconds\n"
            f"• Tolerance: {settings.tolerance_meters:g} meters\n"
            f"• Match mode: {settings.match_mode.value}\n"
            f"• Turn mode: {settings.turn_mode.value}\n"
            f"• On timeout: {settings.expiry_policy.value}\n"
            f"• Save Directory: {self._save_directory}"
        )

    def get_geocoding_settings(self) -> Dict[str, Optional[str]]:
        return {'base_url': self.nominatim_url, 'user_agent': self.user_agent}
