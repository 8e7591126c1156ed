"""Update router for the relay bot.

Each chat carries a dialogue variant (idle, private, group). Every update
first moves the chat through the dialogue transition table, then the variant
decides who handles it:

1) group: the chat buffer classifies and archives relayed messages
2) private: slash commands go to administration, other text is a retrieval
   query (unregistered users get an echo)
3) idle: unregistered group chats are ignored
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List

from telerelay.adapters import replies
from telerelay.core.admin import AdminService
from telerelay.core.buffer import ChatBuffers
from telerelay.core.dialogue import DialogueKind, next_dialogue
from telerelay.core.errors import RelayError, StoreFailure
from telerelay.core.grammar import Command, parse_command, parse_query
from telerelay.core.models import IncomingMessage, StoredMessage, UserGroup
from telerelay.core.ports import Sender
from telerelay.core.retrieval import RetrievalEngine

LOGGER = logging.getLogger(__name__)

CommandHandler = Callable[[int, str], Awaitable[List[str]]]


class Relay:
    """Route updates from Telegram to the buffer, retrieval and admin services."""

    def __init__(
        self,
        buffers: ChatBuffers,
        engine: RetrievalEngine,
        admin: AdminService,
        sender: Sender,
        known_tags: List[str],
    ) -> None:
        self._buffers = buffers
        self._engine = engine
        self._admin = admin
        self._sender = sender
        self._known_tags = sorted(known_tags)
        self._dialogues: Dict[int, DialogueKind] = {}
        self._commands: Dict[str, CommandHandler] = {
            "list_users": self._list_users,
            "add_user": self._add_user,
            "del_user": self._del_user,
            "list_chats": self._list_chats,
            "add_chat": self._add_chat,
            "del_chat": self._del_chat,
            "allow": self._allow,
            "revoke": self._revoke,
            "access": self._access,
            "deldb": self._deldb,
            "cleandb": self._cleandb,
            "statdb": self._statdb,
        }

    def dialogue(self, chat_id: int) -> DialogueKind:
        return self._dialogues.get(chat_id, DialogueKind.IDLE)

    async def handle(self, incoming: IncomingMessage) -> None:
        current = self.dialogue(incoming.chat_id)
        known = incoming.chat_id in self._admin.known_chats
        variant = next_dialogue(incoming.is_private, current, known)
        if current is DialogueKind.GROUP and variant is not DialogueKind.GROUP:
            self._buffers.discard(incoming.chat_id)
        # IDLE is the default, so only active dialogues are kept.
        if variant is DialogueKind.IDLE:
            self._dialogues.pop(incoming.chat_id, None)
        else:
            self._dialogues[incoming.chat_id] = variant

        if variant is DialogueKind.GROUP:
            await self._handle_group(incoming)
        elif variant is DialogueKind.PRIVATE:
            await self._handle_private(incoming)
        else:
            LOGGER.debug("Ignoring update from unregistered chat %s", incoming.chat_id)

    async def migrate(self, from_id: int, to_id: int) -> None:
        """Follow a group that was upgraded to a supergroup."""

        self._buffers.discard(from_id)
        self._dialogues.pop(from_id, None)
        await self._admin.migrate_chat(from_id, to_id)

    async def _reply(self, incoming: IncomingMessage, text: str, quote: bool = False) -> None:
        reply_to = incoming.message_id if quote else None
        await self._sender.send_text(incoming.chat_id, text, reply_to=reply_to)

    async def _reply_error(self, incoming: IncomingMessage, error: RelayError) -> None:
        if isinstance(error, StoreFailure):
            LOGGER.error("Store failure for chat %s", incoming.chat_id, exc_info=error)
        await self._reply(incoming, replies.render_error(error, self._known_tags))

    # Group chats

    async def _handle_group(self, incoming: IncomingMessage) -> None:
        try:
            outcome = await self._buffers.handle(incoming.chat_id, incoming.message_id, incoming.text)
        except RelayError as error:
            await self._reply_error(incoming, error)
            return
        text, quote = replies.render_outcome(outcome)
        await self._reply(incoming, text, quote=quote)

    # Private chats

    async def _handle_private(self, incoming: IncomingMessage) -> None:
        user_id = incoming.sender_id or incoming.chat_id
        command = parse_command(incoming.text)
        try:
            if command is not None:
                await self._handle_command(incoming, user_id, command)
                return

            group = await self._admin.get_group(user_id)
            if group is UserGroup.UNREGISTERED:
                await self._reply(incoming, replies.render_echo(incoming.text))
                return

            results = await self._engine.retrieve_query(user_id, parse_query(incoming.text))
        except RelayError as error:
            await self._reply_error(incoming, error)
            return
        await self._send_grouped(incoming, results, with_ids=False)

    async def _handle_command(self, incoming: IncomingMessage, user_id: int, command: Command) -> None:
        if command.name == "start":
            await self._reply(incoming, "Hello! Send regions to get the latest reports.")
            return
        if command.name == "listdb":
            grouped = await self._admin.list_day(user_id, command.args)
            if not grouped:
                await self._reply(incoming, "No messages for this day")
                return
            await self._send_grouped(incoming, grouped, with_ids=True)
            return

        handler = self._commands.get(command.name)
        if handler is None:
            group = await self._admin.get_group(user_id)
            await self._reply(incoming, replies.render_help(group))
            return
        for text in await handler(user_id, command.args):
            await self._reply(incoming, text)

    async def _send_grouped(
        self,
        incoming: IncomingMessage,
        grouped: Dict[str, List[StoredMessage]],
        with_ids: bool,
    ) -> None:
        for region, messages in grouped.items():
            await self._reply(incoming, replies.render_region_header(region))
            for message in messages:
                if with_ids:
                    await self._reply(incoming, str(message.id))
                await self._sender.forward(incoming.chat_id, message.chat_id, message.message_id)

    # Admin commands; each returns the reply lines to send.

    async def _list_users(self, caller: int, args: str) -> List[str]:
        users = await self._admin.list_users(caller)
        return [replies.render_user(user) for user in users] or ["No users"]

    async def _add_user(self, caller: int, args: str) -> List[str]:
        user = await self._admin.add_user(caller, args)
        return [f"Added user {user.id} ({user.group.value})"]

    async def _del_user(self, caller: int, args: str) -> List[str]:
        user_id = await self._admin.delete_user(caller, args)
        return [f"Deleted user {user_id}"]

    async def _list_chats(self, caller: int, args: str) -> List[str]:
        return replies.render_chats(await self._admin.list_chats(caller))

    async def _add_chat(self, caller: int, args: str) -> List[str]:
        chat_id = await self._admin.add_chat(caller, args)
        return [f"Added chat {chat_id}"]

    async def _del_chat(self, caller: int, args: str) -> List[str]:
        chat_id = await self._admin.delete_chat(caller, args)
        return [f"Deleted chat {chat_id}"]

    async def _allow(self, caller: int, args: str) -> List[str]:
        user_id, _ = await self._admin.allow_regions(caller, args)
        _, regions = await self._admin.show_access(caller, str(user_id))
        return [replies.render_access(user_id, regions)]

    async def _revoke(self, caller: int, args: str) -> List[str]:
        user_id, _ = await self._admin.revoke_regions(caller, args)
        _, regions = await self._admin.show_access(caller, str(user_id))
        return [replies.render_access(user_id, regions)]

    async def _access(self, caller: int, args: str) -> List[str]:
        user_id, regions = await self._admin.show_access(caller, args)
        return [replies.render_access(user_id, regions)]

    async def _deldb(self, caller: int, args: str) -> List[str]:
        message_id = await self._admin.delete_message(caller, args)
        return [f"Deleted message {message_id}"]

    async def _cleandb(self, caller: int, args: str) -> List[str]:
        before, removed = await self._admin.purge(caller, args)
        return [replies.render_purge(before, removed)]

    async def _statdb(self, caller: int, args: str) -> List[str]:
        zone, stat = await self._admin.stat(caller, args)
        return [replies.render_stat(zone, stat)]

