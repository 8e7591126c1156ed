"""Incremental retrieval of archived messages (core domain).

Each (user, region) pair has a watermark: the end of the last window served
to that user for that region. A request without explicit hours returns what
arrived since the watermark (or since the start of today), and every request
moves the watermark to "now", including requests with an explicit window.
Regions are processed one by one; a store failure in a later region leaves
the watermarks already moved for earlier regions in place.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from telerelay.core.buffer import Clock, utc_now
from telerelay.core.catalog import AliasIndex, ResolvedTags, TagValidator, Unresolved
from telerelay.core.config import RetrievalConfig
from telerelay.core.errors import BadDuration, BadRegion, BadTag, NoMessages, NoRegions
from telerelay.core.grammar import Query
from telerelay.core.models import StoredMessage, Window
from telerelay.core.ports import AccessStore, MessageStore, WatermarkStore

LOGGER = logging.getLogger(__name__)

Period = Tuple[timedelta, timedelta]


class TagPriority:
    """Ordering of messages by the leading character of their first tag.

    `classes` lists tag prefixes from highest to lowest priority. A first tag
    matching no class ranks after all classes; messages without tags rank
    last.
    """

    def __init__(self, classes: Sequence[str]) -> None:
        self._classes = tuple(c.upper() for c in classes if c)

    def rank(self, tags: Sequence[str]) -> int:
        if not tags:
            return len(self._classes) + 1
        first = tags[0].upper()
        for index, prefix in enumerate(self._classes):
            if first.startswith(prefix):
                return index
        return len(self._classes)

    def sort(self, messages: Sequence[StoredMessage]) -> List[StoredMessage]:
        return sorted(messages, key=lambda m: (self.rank(m.tags), m.timestamp, m.id))


def start_of_day(moment: datetime, config: RetrievalConfig) -> datetime:
    """Return local midnight (per config timezone) of `moment`, as an aware datetime."""

    local = moment.astimezone(config.timezone)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_period(since_hours: str, duration_hours: str) -> Period:
    """Convert hour strings into a (since, duration) period."""

    period = []
    for value in (since_hours, duration_hours):
        try:
            period.append(timedelta(hours=int(value)))
        except (ValueError, OverflowError) as exc:
            raise BadDuration(value) from exc
    return period[0], period[1]


def explicit_window(now: datetime, period: Period) -> Window:
    """Build [now - since, now - since + duration)."""

    since, duration = period
    try:
        start = now - since
        return Window(start=start, end=start + duration)
    except OverflowError as exc:
        raise BadDuration(f"{since.total_seconds() / 3600:g}") from exc


def _unique(values: Sequence[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


class RetrievalEngine:
    """Resolve a private query and return region-grouped, priority-sorted messages."""

    def __init__(
        self,
        aliases: AliasIndex,
        tags: TagValidator,
        messages: MessageStore,
        watermarks: WatermarkStore,
        access: AccessStore,
        config: RetrievalConfig,
        clock: Clock = utc_now,
    ) -> None:
        self._aliases = aliases
        self._tags = tags
        self._messages = messages
        self._watermarks = watermarks
        self._access = access
        self._config = config
        self._priority = TagPriority(config.tag_priority)
        self._clock = clock

    def resolve_regions(self, text: Optional[str]) -> List[str]:
        if text is None:
            raise NoRegions()
        resolution = self._aliases.resolve(text)
        if isinstance(resolution, Unresolved):
            raise BadRegion(resolution.token, resolution.candidates)
        # AllCountry carries every catalog region.
        return list(resolution.regions)

    def resolve_tags(self, text: Optional[str]) -> Tuple[str, ...]:
        if text is None:
            return ()
        resolution = self._tags.resolve(text)
        if not isinstance(resolution, ResolvedTags):
            raise BadTag(resolution.token)
        return resolution.tags

    async def retrieve_query(self, user_id: int, query: Query) -> Dict[str, List[StoredMessage]]:
        """Run a parsed private query."""

        regions = self.resolve_regions(query.regions)
        tags = self.resolve_tags(query.tags)
        period = None
        if query.since_hours is not None:
            period = parse_period(query.since_hours, query.duration_hours or query.since_hours)
        return await self.retrieve(user_id, regions, tags, period)

    async def retrieve(
        self,
        user_id: int,
        regions: Sequence[str],
        tags: Sequence[str],
        period: Optional[Period] = None,
    ) -> Dict[str, List[StoredMessage]]:
        """Serve resolved regions to a user and advance their watermarks."""

        allowed = await self._access.get_allowed_regions(user_id)
        targets = [region for region in _unique(regions) if region in allowed]
        dropped = set(regions) - allowed
        if dropped:
            LOGGER.info("User %s is not allowed regions %s", user_id, sorted(dropped))

        now = self._clock()
        window = explicit_window(now, period) if period is not None else None
        grouped: Dict[str, List[StoredMessage]] = {}
        windows: List[Window] = []
        for region in targets:
            region_window = window
            if region_window is None:
                start = await self._watermarks.get_watermark(user_id, region)
                if start is None:
                    start = start_of_day(now, self._config)
                region_window = Window(start=start, end=now)
            windows.append(region_window)

            found = await self._messages.query([region], list(tags), region_window)
            # Explicit windows move the watermark too.
            await self._watermarks.set_watermark(user_id, region, now)
            if found:
                grouped[region] = self._priority.sort(found)

        if not grouped:
            span = None
            if windows:
                span = Window(
                    start=min(w.start for w in windows),
                    end=max(w.end for w in windows),
                )
            raise NoMessages(regions=targets, window=span, tags=list(tags))

        LOGGER.info(
            "Served user %s: %s",
            user_id,
            ", ".join(f"{region}={len(items)}" for region, items in grouped.items()),
        )
        return self._ordered(grouped)

    def _ordered(self, grouped: Dict[str, List[StoredMessage]]) -> Dict[str, List[StoredMessage]]:
        last = self._config.country_region
        codes = sorted(grouped, key=lambda code: (code == last, code))
        return {code: grouped[code] for code in codes}
