"""Telegram client factory for telerelay.

The bot signs in with a bot token, so there is no interactive login; the
session file only caches the authorization and entity hashes.
"""

from __future__ import annotations

import logging
import os
from typing import Tuple

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> Tuple[TelegramClient, str]:
    """Create a Telethon client and return it with the bot token to start it with."""

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    bot_token = os.getenv("BOT_TOKEN")
    session_name = os.getenv("SESSION_NAME", "telerelay")

    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    if not bot_token:
        raise RuntimeError("Missing BOT_TOKEN in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash), bot_token
