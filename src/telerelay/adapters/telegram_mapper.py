"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the relay router and the core.
"""

from __future__ import annotations

from typing import Optional, Tuple

from telethon import utils
from telethon.tl.custom import Message
from telethon.tl.types import MessageActionChannelMigrateFrom, MessageService, PeerChat

from telerelay.core.models import IncomingMessage


def build_incoming(message: Message, is_private: bool) -> IncomingMessage:
    """Build a core IncomingMessage from a Telethon Message.

    Media without a caption has no text; the group buffer still remembers it.
    """

    text = getattr(message, "raw_text", None)
    return IncomingMessage(
        chat_id=message.chat_id,
        message_id=message.id,
        sender_id=getattr(message, "sender_id", None),
        is_private=is_private,
        text=text or None,
    )


def migration_from_service(message: object) -> Optional[Tuple[int, int]]:
    """Return (old_chat_id, new_chat_id) for a supergroup upgrade service message."""

    if not isinstance(message, MessageService):
        return None
    action = message.action
    if not isinstance(action, MessageActionChannelMigrateFrom):
        return None
    old_id = utils.get_peer_id(PeerChat(action.chat_id))
    new_id = utils.get_peer_id(message.peer_id)
    return old_id, new_id
