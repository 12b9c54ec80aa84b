"""
Unit tests for ConfigManager class.
"""
import logging
import unittest
from pathlib import Path

from map_quiz.config_manager import ConfigManager
from map_quiz.models import ExpiryPolicy, MatchMode, TurnMode


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.config_manager = ConfigManager()

        # Suppress logging during tests
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def test_initialization_with_defaults(self):
        settings = self.config_manager.get_quiz_settings()
        self.assertEqual(settings.timer_duration, 30)
        self.assertEqual(settings.tolerance_meters, 100.0)
        self.assertIs(settings.match_mode, MatchMode.POLYGON)
        self.assertIs(settings.turn_mode, TurnMode.SINGLE)
        self.assertIs(settings.expiry_policy, ExpiryPolicy.END_SESSION)
        self.assertEqual(self.config_manager.get_save_directory(), "./saved_quizzes/")

    def test_get_quiz_settings_returns_copy(self):
        settings = self.config_manager.get_quiz_settings()
        settings.timer_duration = 999
        self.assertEqual(self.config_manager.get_timer_duration(), 30)

    def test_set_timer_duration_valid_values(self):
        for duration in (5, 60, 300):
            result = self.config_manager.set_timer_duration(duration)
            self.assertTrue(result['success'])
            self.assertEqual(self.config_manager.get_timer_duration(), duration)

    def test_set_timer_duration_invalid_values(self):
        for duration in (4, 0, -10, 301, "30", 12.5, True, None):
            result = self.config_manager.set_timer_duration(duration)
            self.assertFalse(result['success'], duration)
            self.assertIn('error', result)
            self.assertIn('user_message', result)
        self.assertEqual(self.config_manager.get_timer_duration(), 30)

    def test_set_tolerance(self):
        self.assertTrue(self.config_manager.set_tolerance(250)['success'])
        self.assertEqual(self.config_manager.get_tolerance(), 250.0)
        self.assertIsInstance(self.config_manager.get_tolerance(), float)

    def test_set_tolerance_invalid_values(self):
        for meters in (0, 0.5, 500001, "100", False):
            self.assertFalse(self.config_manager.set_tolerance(meters)['success'], meters)
        self.assertEqual(self.config_manager.get_tolerance(), 100.0)

    def test_set_modes_from_strings(self):
        self.assertTrue(self.config_manager.set_match_mode("Exact_Point")['success'])
        self.assertTrue(self.config_manager.set_turn_mode(" alternating_two_player ")['success'])
        self.assertTrue(self.config_manager.set_expiry_policy("restart")['success'])
        settings = self.config_manager.get_quiz_settings()
        self.assertIs(settings.match_mode, MatchMode.EXACT_POINT)
        self.assertIs(settings.turn_mode, TurnMode.ALTERNATING_TWO_PLAYER)
        self.assertIs(settings.expiry_policy, ExpiryPolicy.RESTART)

    def test_set_modes_from_members(self):
        self.assertTrue(self.config_manager.set_match_mode(MatchMode.LINE)['success'])
        self.assertIs(self.config_manager.get_quiz_settings().match_mode, MatchMode.LINE)

    def test_unknown_mode(self):
        result = self.config_manager.set_expiry_policy("explode")
        self.assertFalse(result['success'])
        self.assertIn("end_session", result['user_message'])
        self.assertIs(self.config_manager.get_quiz_settings().expiry_policy, ExpiryPolicy.END_SESSION)

    def test_set_save_directory(self):
        result = self.config_manager.set_save_directory("./my_quizzes")
        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_save_directory(), str(Path("./my_quizzes").resolve()))

    def test_set_save_directory_invalid(self):
        self.assertFalse(self.config_manager.set_save_directory("")['success'])
        self.assertFalse(self.config_manager.set_save_directory("   ")['success'])
        self.assertFalse(self.config_manager.set_save_directory("/etc/quizzes")['success'])

    def test_apply_config(self):
        failures = self.config_manager.apply_config({
            'quiz': {
                'default_timer_duration': 45,
                'tolerance_meters': 2000,
                'match_mode': 'line',
                'turn_mode': 'alternating_two_player',
                'expiry_policy': 'switch_turn'
            },
            'geocoding': {'base_url': 'http://localhost:8080', 'user_agent': 'test-agent/0.1'},
            'storage': {'max_bytes': 1024}
        })
        self.assertEqual(failures, [])
        settings = self.config_manager.get_quiz_settings()
        self.assertEqual(settings.timer_duration, 45)
        self.assertEqual(settings.tolerance_meters, 2000.0)
        self.assertIs(settings.expiry_policy, ExpiryPolicy.SWITCH_TURN)
        self.assertEqual(self.config_manager.get_geocoding_settings(),
                         {'base_url': 'http://localhost:8080', 'user_agent': 'test-agent/0.1'})
        self.assertEqual(self.config_manager.max_save_bytes, 1024)

    def test_apply_config_keeps_defaults_for_bad_values(self):
        failures = self.config_manager.apply_config({
            'quiz': {'default_timer_duration': 1, 'match_mode': 'nearest'}
        })
        self.assertEqual(len(failures), 2)
        self.assertEqual(self.config_manager.get_timer_duration(), 30)
        self.assertIs(self.config_manager.get_quiz_settings().match_mode, MatchMode.POLYGON)

    def test_apply_empty_config(self):
        self.assertEqual(self.config_manager.apply_config({}), [])

    def test_reset_to_defaults(self):
        self.config_manager.set_timer_duration(120)
        self.config_manager.set_turn_mode(TurnMode.ALTERNATING_TWO_PLAYER)
        self.config_manager.nominatim_url = "http://localhost"
        self.config_manager.reset_to_defaults()
        self.assertEqual(self.config_manager.get_timer_duration(), 30)
        self.assertIs(self.config_manager.get_quiz_settings().turn_mode, TurnMode.SINGLE)
        self.assertEqual(self.config_manager.nominatim_url, ConfigManager.DEFAULT_NOMINATIM_URL)

    def test_validate_settings(self):
        result = self.config_manager.validate_settings()
        self.assertTrue(result['valid'])
        self.assertEqual(result['issues'], [])

    def test_validate_flags_switch_turn_in_single_mode(self):
        self.config_manager.set_expiry_policy(ExpiryPolicy.SWITCH_TURN)
        result = self.config_manager.validate_settings()
        self.assertTrue(result['valid'])
        self.assertEqual(len(result['issues']), 1)

    def test_settings_summary(self):
        summary = self.config_manager.get_settings_summary()
        self.assertIn("30 seconds", summary)
        self.assertIn("100 meters", summary)
        self.assertIn("end_session", summary)


if __name__ == '__main__':
    unittest.main()
