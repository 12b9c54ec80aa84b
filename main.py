#!/usr/bin/env python3
"""
Map Click Quiz Bot - Main Entry Point

This script runs the Discord map quiz bot. Configure your bot token in
config.json or set the DISCORD_BOT_TOKEN environment variable.

Usage:
    python main.py

Configuration:
    1. Copy config.json and set your Discord bot token
    2. Or set DISCORD_BOT_TOKEN environment variable
    3. Customize quiz, geocoding and storage settings in config.json as needed

Environment Variables:
    DISCORD_BOT_TOKEN: Your Discord bot token (overrides config.json)
"""

import asyncio
import sys
import os
import json
import logging
from pathlib import Path


def load_config():
    """Load configuration from config.json file."""
    config_path = Path("config.json")

    if not config_path.exists():
        print("❌ Error: config.json not found!")
        print("Please copy config.json and configure your Discord bot token.")
        sys.exit(1)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
        return config
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON in config.json: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error loading config.json: {e}")
        sys.exit(1)


def get_bot_token(config):
    """Get bot token from environment variable or config file."""
    # Environment variable takes precedence
    token = os.getenv('DISCORD_BOT_TOKEN')
    if token:
        return token

    token = config.get('bot', {}).get('token')
    if not token or token == "YOUR_DISCORD_BOT_TOKEN_HERE":
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print("  2. Update the 'token' field in config.json")
        sys.exit(1)

    return token


def setup_logging_from_config(config):
    """Set up logging based on configuration."""
    from map_quiz.bot import setup_logging

    log_config = config.get('logging', {})
    log_level = getattr(logging, log_config.get('level', 'INFO').upper(), logging.INFO)
    setup_logging(log_config.get('log_directory', './logs/'), log_level)


async def run_bot_with_config():
    """Run the bot with configuration."""
    config = load_config()
    setup_logging_from_config(config)
    token = get_bot_token(config)

    from map_quiz.bot import run_bot
    await run_bot(token, config)


if __name__ == "__main__":
    try:
        print("🗺️ Starting Map Quiz Bot...")
        asyncio.run(run_bot_with_config())
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
