"""Telegram transport adapter.

Sends HTML replies and forwards archived messages through the Telethon client.
When Telegram asks us to slow down ("retry after N seconds") we sleep and
retry the same call, up to a fixed number of attempts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from telethon import errors

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class TelegramSender:
    """Sender adapter backed by a Telethon client."""

    def __init__(self, client, max_attempts: int = 5, sleep=asyncio.sleep) -> None:
        self._client = client
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep

    async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await call()
            except errors.FloodWaitError as exc:
                if attempt >= self._max_attempts:
                    raise
                LOGGER.warning(
                    "Rate limited, retrying in %ss (attempt %s/%s)",
                    exc.seconds,
                    attempt,
                    self._max_attempts,
                )
                await self._sleep(exc.seconds)
                attempt += 1

    async def send_text(self, chat_id: int, text: str, reply_to: Optional[int] = None) -> None:
        await self._with_retry(
            lambda: self._client.send_message(
                chat_id, text, reply_to=reply_to, parse_mode="html", link_preview=False
            )
        )

    async def forward(self, to_chat_id: int, from_chat_id: int, message_id: int) -> None:
        await self._with_retry(
            lambda: self._client.forward_messages(to_chat_id, message_id, from_peer=from_chat_id)
        )
