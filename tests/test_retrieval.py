from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from telerelay.core.catalog import AliasIndex, TagValidator, build_catalog
from telerelay.core.config import RetrievalConfig
from telerelay.core.errors import BadDuration, BadRegion, NoMessages, NoRegions, StoreFailure
from telerelay.core.grammar import parse_query
from telerelay.core.models import StoredMessage, Window
from telerelay.core.retrieval import RetrievalEngine, TagPriority, explicit_window, parse_period, start_of_day

USER = 7
MSK_ZONE = timezone(timedelta(hours=3))


class FakeArchive:
    """In-memory message, watermark and access stores."""

    def __init__(self) -> None:
        self.messages: list[StoredMessage] = []
        self.watermarks: dict[tuple[int, str], datetime] = {}
        self.allowed: dict[int, set[str]] = {}
        self.queries: list[tuple[list[str], list[str], Window]] = []

    def add(self, timestamp: datetime, regions: tuple, tags: tuple = ()) -> StoredMessage:
        message = StoredMessage(
            id=len(self.messages) + 1,
            timestamp=timestamp,
            chat_id=-100,
            message_id=len(self.messages) + 1,
            regions=regions,
            tags=tags,
        )
        self.messages.append(message)
        return message

    async def query(self, regions, tags, window: Window) -> list[StoredMessage]:
        self.queries.append((list(regions), list(tags), window))
        return [
            message
            for message in self.messages
            if window.contains(message.timestamp)
            and (not regions or set(regions) & set(message.regions))
            and (not tags or set(tags) & set(message.tags))
        ]

    async def get_watermark(self, user_id: int, region: str) -> Optional[datetime]:
        return self.watermarks.get((user_id, region))

    async def set_watermark(self, user_id: int, region: str, timestamp: datetime) -> None:
        self.watermarks[(user_id, region)] = timestamp

    async def get_allowed_regions(self, user_id: int) -> set[str]:
        return set(self.allowed.get(user_id, set()))


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _engine(archive: FakeArchive, clock: Clock, **config) -> RetrievalEngine:
    catalog = build_catalog(
        [
            {"code": "CENTRAL", "aliases": ["capital"]},
            {"code": "SOUTH", "aliases": ["south"]},
            {"code": "RF", "aliases": ["country"]},
        ],
        ["A", "B", "C"],
    )
    return RetrievalEngine(
        AliasIndex(catalog, "all"),
        TagValidator(catalog),
        archive,
        archive,
        archive,
        RetrievalConfig(**config),
        clock=clock,
    )


def test_consecutive_requests_serve_disjoint_windows() -> None:
    archive = FakeArchive()
    archive.allowed[USER] = {"CENTRAL"}
    clock = Clock(datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc))
    engine = _engine(archive, clock)
    first = archive.add(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc), ("CENTRAL",))

    result = asyncio.run(engine.retrieve(USER, ["CENTRAL"], []))
    assert result == {"CENTRAL": [first]}

    second = archive.add(datetime(2024, 3, 1, 10, 30, tzinfo=timezone.utc), ("CENTRAL",))
    clock.now = datetime(2024, 3, 1, 11, 0, tzinfo=timezone.utc)
    result = asyncio.run(engine.retrieve(USER, ["CENTRAL"], []))
    assert result == {"CENTRAL": [second]}

    first_window, second_window = (query[2] for query in archive.queries)
    assert first_window.end == second_window.start

    with pytest.raises(NoMessages):
        asyncio.run(engine.retrieve(USER, ["CENTRAL"], []))


def test_first_request_starts_at_local_midnight() -> None:
    archive = FakeArchive()
    archive.allowed[USER] = {"SOUTH"}
    now = datetime(2024, 3, 1, 22, 30, tzinfo=timezone.utc)
    engine = _engine(archive, Clock(now), timezone=MSK_ZONE)
    # 22:30 UTC is already 01:30 on the next local day.
    archive.add(datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc), ("SOUTH",))
    fresh = archive.add(datetime(2024, 3, 1, 21, 30, tzinfo=timezone.utc), ("SOUTH",))

    result = asyncio.run(engine.retrieve(USER, ["SOUTH"], []))

    assert result == {"SOUTH": [fresh]}
    window = archive.queries[0][2]
    assert window.start == datetime(2024, 3, 1, 21, 0, tzinfo=timezone.utc)
    assert window.end == now


def test_explicit_window_also_moves_the_watermark() -> None:
    archive = FakeArchive()
    archive.allowed[USER] = {"CENTRAL"}
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    engine = _engine(archive, Clock(now))
    old = archive.add(now - timedelta(hours=20), ("CENTRAL",))
    archive.add(now - timedelta(hours=2), ("CENTRAL",))

    result = asyncio.run(engine.retrieve_query(USER, parse_query("capital 24 6")))

    assert result == {"CENTRAL": [old]}
    assert archive.queries[0][2] == Window(now - timedelta(hours=24), now - timedelta(hours=18))
    assert archive.watermarks[(USER, "CENTRAL")] == now


def test_regions_outside_the_allow_list_are_dropped() -> None:
    archive = FakeArchive()
    archive.allowed[USER] = {"CENTRAL"}
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    engine = _engine(archive, Clock(now))
    central = archive.add(now - timedelta(hours=1), ("CENTRAL",))
    archive.add(now - timedelta(hours=1), ("SOUTH",))

    result = asyncio.run(engine.retrieve_query(USER, parse_query("capital south")))

    assert result == {"CENTRAL": [central]}
    assert (USER, "SOUTH") not in archive.watermarks


class FailingArchive(FakeArchive):
    def __init__(self, failing_region: str) -> None:
        super().__init__()
        self.failing_region = failing_region

    async def query(self, regions, tags, window: Window) -> list[StoredMessage]:
        if self.failing_region in regions:
            raise StoreFailure("database is locked")
        return await super().query(regions, tags, window)


def test_store_failure_keeps_watermarks_of_earlier_regions() -> None:
    archive = FailingArchive("SOUTH")
    archive.allowed[USER] = {"CENTRAL", "SOUTH"}
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    engine = _engine(archive, Clock(now))
    archive.add(now - timedelta(hours=1), ("CENTRAL",))

    with pytest.raises(StoreFailure):
        asyncio.run(engine.retrieve(USER, ["CENTRAL", "SOUTH"], []))

    assert archive.watermarks[(USER, "CENTRAL")] == now
    assert (USER, "SOUTH") not in archive.watermarks


def test_nothing_allowed_reports_no_messages_without_window() -> None:
    archive = FakeArchive()
    engine = _engine(archive, Clock(datetime(2024, 3, 1, tzinfo=timezone.utc)))

    with pytest.raises(NoMessages) as excinfo:
        asyncio.run(engine.retrieve(USER, ["CENTRAL"], ["A"]))

    assert excinfo.value.regions == []
    assert excinfo.value.window is None
    assert excinfo.value.tags == ["A"]


def test_results_are_sorted_by_tag_priority_and_country_region_is_last() -> None:
    archive = FakeArchive()
    archive.allowed[USER] = {"CENTRAL", "SOUTH", "RF"}
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    engine = _engine(archive, Clock(now), tag_priority=("B", "A"), country_region="RF")
    untagged = archive.add(now - timedelta(hours=3), ("CENTRAL",))
    tagged_a = archive.add(now - timedelta(hours=2), ("CENTRAL",), ("A",))
    tagged_b = archive.add(now - timedelta(hours=1), ("CENTRAL",), ("B",))
    tagged_c = archive.add(now - timedelta(minutes=30), ("CENTRAL",), ("C",))
    country = archive.add(now - timedelta(hours=1), ("RF",))
    south = archive.add(now - timedelta(hours=1), ("SOUTH",))

    result = asyncio.run(engine.retrieve_query(USER, parse_query("all")))

    assert list(result) == ["CENTRAL", "SOUTH", "RF"]
    assert result["CENTRAL"] == [tagged_b, tagged_a, tagged_c, untagged]
    assert result["SOUTH"] == [south]
    assert result["RF"] == [country]


def test_query_without_regions_is_rejected() -> None:
    engine = _engine(FakeArchive(), Clock(datetime(2024, 3, 1, tzinfo=timezone.utc)))

    with pytest.raises(NoRegions):
        asyncio.run(engine.retrieve_query(USER, parse_query("5")))


def test_unknown_region_in_query_is_rejected() -> None:
    engine = _engine(FakeArchive(), Clock(datetime(2024, 3, 1, tzinfo=timezone.utc)))

    with pytest.raises(BadRegion) as excinfo:
        asyncio.run(engine.retrieve_query(USER, parse_query("capital nowhere")))

    assert excinfo.value.token == "nowhere"


def test_huge_hours_are_a_bad_duration() -> None:
    with pytest.raises(BadDuration):
        parse_period("99999999999999999999", "1")
    with pytest.raises(BadDuration):
        explicit_window(datetime(2024, 3, 1, tzinfo=timezone.utc), parse_period("99999999", "1"))


def test_tag_priority_ranks() -> None:
    priority = TagPriority(["a", "b"])

    assert priority.rank(["A"]) == 0
    assert priority.rank(["b", "A"]) == 1
    assert priority.rank(["C"]) == 2
    assert priority.rank([]) == 3


def test_start_of_day_uses_configured_zone() -> None:
    moment = datetime(2024, 3, 1, 22, 30, tzinfo=timezone.utc)

    assert start_of_day(moment, RetrievalConfig()) == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert start_of_day(moment, RetrievalConfig(timezone=MSK_ZONE)) == datetime(2024, 3, 2, tzinfo=MSK_ZONE)
