"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta, timezone, tzinfo
from typing import Optional, Tuple


@dataclass(frozen=True)
class BufferConfig:
    """Chat buffer settings for group relay chats."""

    short_text_chars: int = 20


@dataclass(frozen=True)
class RetrievalConfig:
    """Retrieval settings consumed by the retrieval engine."""

    tag_priority: Tuple[str, ...] = ()
    timezone: tzinfo = field(default=timezone.utc)
    country_region: Optional[str] = None


def parse_utc_offset(value: str) -> timezone:
    """Parse a "+HH:MM" / "-HH:MM" offset into a fixed timezone."""

    value = value.strip()
    if len(value) != 6 or value[0] not in "+-" or value[3] != ":":
        raise ValueError(f"Unsupported UTC offset: {value!r}")
    hours, minutes = int(value[1:3]), int(value[4:6])
    if hours > 23 or minutes > 59:
        raise ValueError(f"Unsupported UTC offset: {value!r}")
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(-delta if value[0] == "-" else delta)
