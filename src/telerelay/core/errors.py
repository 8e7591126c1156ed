"""Error taxonomy for the relay core.

Each error carries the structured data a caller needs to render an
actionable reply; rendering itself lives in the adapters.
"""

from __future__ import annotations

from typing import Optional, Sequence

from telerelay.core.models import UserGroup, Window


class RelayError(Exception):
    """Base class for every error the core reports to callers."""


class NoRegions(RelayError):
    def __init__(self) -> None:
        super().__init__("No regions given")


class BadRegion(RelayError):
    """Unknown or ambiguous region token."""

    def __init__(self, token: str, candidates: Sequence[str]) -> None:
        super().__init__(f"Unknown region {token!r}, candidates: {list(candidates)}")
        self.token = token
        self.candidates = list(candidates)


class BadTag(RelayError):
    def __init__(self, token: str) -> None:
        super().__init__(f"Unknown tag {token!r}")
        self.token = token


class BadDuration(RelayError):
    def __init__(self, value: str) -> None:
        super().__init__(f"Unclear duration {value!r}")
        self.value = value


class NoMessages(RelayError):
    """A valid query matched nothing."""

    def __init__(self, regions: Sequence[str], window: Optional[Window], tags: Sequence[str]) -> None:
        super().__init__("No messages for this query")
        self.regions = list(regions)
        self.window = window
        self.tags = list(tags)


class StoreFailure(RelayError):
    """Opaque persistence error; the original error is chained as __cause__."""


class PrivilegeFailure(RelayError):
    def __init__(self, desired: UserGroup, current: UserGroup) -> None:
        super().__init__(
            f"You must belong to group {desired.value} to run this command. "
            f"Current group: {current.value}"
        )
        self.desired = desired
        self.current = current


class CommandError(RelayError):
    """Malformed arguments for a slash command."""
