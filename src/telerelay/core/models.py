"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Region:
    """Catalog region: canonical code plus lowercase aliases (code included)."""

    code: str
    aliases: Tuple[str, ...]


@dataclass
class PendingMessage:
    """A relayed message waiting in a chat buffer for its finalize line."""

    chat_id: int
    message_id: int
    regions: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class NewMessage:
    """A stamped message ready to be persisted as part of a batch."""

    chat_id: int
    message_id: int
    timestamp: datetime
    regions: Tuple[str, ...]
    tags: Tuple[str, ...]


@dataclass(frozen=True)
class StoredMessage:
    """Persisted archive entry."""

    id: int
    timestamp: datetime
    chat_id: int
    message_id: int
    regions: Tuple[str, ...]
    tags: Tuple[str, ...]


@dataclass(frozen=True)
class Window:
    """Half-open time window [start, end) in UTC."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class UserGroup(str, Enum):
    ADMIN = "Admin"
    REGISTERED = "Registered"
    UNREGISTERED = "Unregistered"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UserGroup":
        """Return the group for a stored/typed name, Unregistered if unknown."""

        for group in cls:
            if value and group.value.lower() == value.strip().lower():
                return group
        return cls.UNREGISTERED


@dataclass(frozen=True)
class User:
    id: int
    group: UserGroup


@dataclass(frozen=True)
class DbStat:
    """Archive message counts relative to the start of today."""

    today: int
    yesterday: int
    before_yesterday: int
    week: int
    month: int
    earlier: int


@dataclass(frozen=True)
class IncomingMessage:
    """Minimal update context used by the relay router."""

    chat_id: int
    message_id: int
    sender_id: Optional[int]
    is_private: bool
    text: Optional[str]
