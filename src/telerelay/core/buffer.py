"""Per-chat buffering of relayed messages (core domain).

Forwarded reports arrive first and are classified later: a trailing finalize
line ("<regions> [tags]") stamps every buffered message with its regions and
tags and persists them as one batch.

Decision order for one incoming message:
1) Finalize: region clause resolves (AllCountry is not accepted here)
2) Bad tag next to a resolved region clause is an error; the buffer is kept
3) Short noise is ignored, or reported when it looks like a mistyped region
4) Anything else is remembered
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Callable, Dict, List, Optional, Tuple, Union

from telerelay.core.catalog import AliasIndex, Resolved, ResolvedTags, TagValidator, Unresolved
from telerelay.core.config import BufferConfig
from telerelay.core.errors import BadRegion, BadTag
from telerelay.core.grammar import parse_finalize
from telerelay.core.models import NewMessage, PendingMessage
from telerelay.core.ports import MessageStore

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BufferState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


@dataclass(frozen=True)
class Saved:
    """Buffered messages were classified and persisted (count may be 0)."""

    count: int
    regions: Tuple[str, ...]
    tags: Tuple[str, ...]


@dataclass(frozen=True)
class Remembered:
    count: int


@dataclass(frozen=True)
class Ignored:
    message_id: int


BufferOutcome = Union[Saved, Remembered, Ignored]


class ChatBuffer:
    """Buffer of pending messages for a single group chat.

    Not safe for concurrent use on its own; ChatBuffers serialises calls per
    chat.
    """

    def __init__(
        self,
        chat_id: int,
        aliases: AliasIndex,
        tags: TagValidator,
        store: MessageStore,
        config: BufferConfig,
        clock: Clock = utc_now,
    ) -> None:
        self.chat_id = chat_id
        self._aliases = aliases
        self._tags = tags
        self._store = store
        self._config = config
        self._clock = clock
        self._pending: List[PendingMessage] = []

    @property
    def state(self) -> BufferState:
        return BufferState.ACCUMULATING if self._pending else BufferState.IDLE

    @property
    def count(self) -> int:
        return len(self._pending)

    async def handle(self, message_id: int, text: Optional[str]) -> BufferOutcome:
        """Run one message through the buffer and report what happened."""

        line = parse_finalize(text)

        regions: Optional[Tuple[str, ...]] = None
        if line.regions is not None:
            resolution = self._aliases.resolve(line.regions)
            if isinstance(resolution, Resolved) and resolution.regions:
                regions = resolution.regions

        if regions is not None:
            tags: Tuple[str, ...] = ()
            if line.tags is not None:
                tag_resolution = self._tags.resolve(line.tags)
                if not isinstance(tag_resolution, ResolvedTags):
                    raise BadTag(tag_resolution.token)
                tags = tag_resolution.tags
            return await self._finalize(regions, tags)

        # Tags without a resolvable region clause carry no meaning on their own.
        text = text or ""
        if text and len(text) < self._config.short_text_chars:
            resolution = self._aliases.resolve(text)
            if isinstance(resolution, Unresolved):
                raise BadRegion(resolution.token, resolution.candidates)
            return Ignored(message_id)

        self._pending.append(PendingMessage(chat_id=self.chat_id, message_id=message_id))
        return Remembered(len(self._pending))

    async def _finalize(self, regions: Tuple[str, ...], tags: Tuple[str, ...]) -> Saved:
        count = len(self._pending)
        if not count:
            return Saved(count=0, regions=regions, tags=tags)

        timestamp = self._clock()
        for pending in self._pending:
            pending.regions = list(regions)
            pending.tags = list(tags)
        batch = [
            NewMessage(
                chat_id=pending.chat_id,
                message_id=pending.message_id,
                timestamp=timestamp,
                regions=tuple(pending.regions),
                tags=tuple(pending.tags),
            )
            for pending in self._pending
        ]
        # Only a successful insert empties the buffer; store errors propagate.
        await self._store.insert_batch(batch)
        self._pending.clear()
        LOGGER.info("Saved %s messages from chat %s to %s %s", count, self.chat_id, regions, tags)
        return Saved(count=count, regions=regions, tags=tags)


class ChatBuffers:
    """Lazily created chat buffers with one lock per chat.

    Transitions for the same chat run strictly one after another; different
    chats proceed independently.
    """

    def __init__(
        self,
        aliases: AliasIndex,
        tags: TagValidator,
        store: MessageStore,
        config: BufferConfig,
        clock: Clock = utc_now,
    ) -> None:
        self._aliases = aliases
        self._tags = tags
        self._store = store
        self._config = config
        self._clock = clock
        self._buffers: Dict[int, ChatBuffer] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, chat_id: int) -> Optional[ChatBuffer]:
        return self._buffers.get(chat_id)

    async def handle(self, chat_id: int, message_id: int, text: Optional[str]) -> BufferOutcome:
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        async with lock:
            buffer = self._buffers.get(chat_id)
            if buffer is None:
                buffer = ChatBuffer(
                    chat_id, self._aliases, self._tags, self._store, self._config, self._clock
                )
                self._buffers[chat_id] = buffer
            return await buffer.handle(message_id, text)

    def discard(self, chat_id: int) -> int:
        """Drop a chat's buffer and return how many pending messages were lost."""

        buffer = self._buffers.pop(chat_id, None)
        self._locks.pop(chat_id, None)
        if buffer is None:
            return 0
        if buffer.count:
            LOGGER.warning("Dropped %s pending messages for chat %s", buffer.count, chat_id)
        return buffer.count
