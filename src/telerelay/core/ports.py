"""Ports (interfaces) used by the core.

Ports define the minimal contracts for storage and transport adapters so
that the core can be reused with different backends. Every operation is
async so no adapter blocks the shared event loop.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence, Set

from telerelay.core.models import NewMessage, StoredMessage, User, UserGroup, Window


class MessageStore(Protocol):
    """Archive of classified messages."""

    async def insert_batch(self, messages: Sequence[NewMessage]) -> List[int]:
        ...

    async def query(
        self, regions: Sequence[str], tags: Sequence[str], window: Window
    ) -> List[StoredMessage]:
        ...

    async def delete_message(self, message_id: int) -> bool:
        ...

    async def delete_before(self, before: datetime) -> int:
        ...

    async def count_between(self, start: Optional[datetime], end: Optional[datetime]) -> int:
        ...

    async def migrate_chat(self, from_id: int, to_id: int) -> None:
        ...


class WatermarkStore(Protocol):
    async def get_watermark(self, user_id: int, region: str) -> Optional[datetime]:
        ...

    async def set_watermark(self, user_id: int, region: str, timestamp: datetime) -> None:
        ...


class AccessStore(Protocol):
    """Per-user region allow-lists."""

    async def get_allowed_regions(self, user_id: int) -> Set[str]:
        ...

    async def allow_regions(self, user_id: int, regions: Iterable[str]) -> None:
        ...

    async def revoke_regions(self, user_id: int, regions: Iterable[str]) -> None:
        ...


class UserStore(Protocol):
    async def get_user_group(self, user_id: int) -> UserGroup:
        ...

    async def list_users(self) -> List[User]:
        ...

    async def add_user(self, user: User) -> None:
        ...

    async def delete_user(self, user_id: int) -> bool:
        ...


class ChatStore(Protocol):
    """Group chats registered as relay sources."""

    async def list_chats(self) -> Set[int]:
        ...

    async def add_chat(self, chat_id: int) -> None:
        ...

    async def delete_chat(self, chat_id: int) -> bool:
        ...


class Sender(Protocol):
    """Transport operations used by the relay router."""

    async def send_text(self, chat_id: int, text: str, reply_to: Optional[int] = None) -> None:
        ...

    async def forward(self, to_chat_id: int, from_chat_id: int, message_id: int) -> None:
        ...
