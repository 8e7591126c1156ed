from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from telerelay.core.buffer import BufferState, ChatBuffer, ChatBuffers, Ignored, Remembered, Saved
from telerelay.core.catalog import AliasIndex, TagValidator, build_catalog
from telerelay.core.config import BufferConfig
from telerelay.core.errors import BadRegion, BadTag, StoreFailure
from telerelay.core.models import NewMessage

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
LONG_TEXT = "Convoy spotted moving north along the highway"


class FakeMessageStore:
    def __init__(self, fail: bool = False) -> None:
        self.batches: list[list[NewMessage]] = []
        self.fail = fail

    async def insert_batch(self, messages: list[NewMessage]) -> list[int]:
        if self.fail:
            raise StoreFailure("disk full")
        self.batches.append(list(messages))
        return list(range(1, len(messages) + 1))


def _catalog():
    return build_catalog(
        [
            {"code": "CENTRAL", "aliases": ["capital", "cap"]},
            {"code": "SOUTH", "aliases": ["south"]},
        ],
        ["A", "B"],
    )


def _buffer(store: FakeMessageStore) -> ChatBuffer:
    catalog = _catalog()
    return ChatBuffer(
        -100,
        AliasIndex(catalog, "all"),
        TagValidator(catalog),
        store,
        BufferConfig(short_text_chars=20),
        clock=lambda: NOW,
    )


def test_buffered_messages_are_saved_by_finalize_line() -> None:
    store = FakeMessageStore()
    buffer = _buffer(store)

    assert asyncio.run(buffer.handle(1, LONG_TEXT)) == Remembered(1)
    assert asyncio.run(buffer.handle(2, None)) == Remembered(2)
    assert asyncio.run(buffer.handle(3, LONG_TEXT)) == Remembered(3)
    assert buffer.state is BufferState.ACCUMULATING

    outcome = asyncio.run(buffer.handle(4, "capital south a"))

    assert outcome == Saved(count=3, regions=("CENTRAL", "SOUTH"), tags=("A",))
    assert buffer.state is BufferState.IDLE
    [batch] = store.batches
    assert [message.message_id for message in batch] == [1, 2, 3]
    assert {message.timestamp for message in batch} == {NOW}
    assert all(message.regions == ("CENTRAL", "SOUTH") for message in batch)
    assert all(message.tags == ("A",) for message in batch)


def test_finalize_with_empty_buffer_saves_nothing() -> None:
    store = FakeMessageStore()
    buffer = _buffer(store)

    assert asyncio.run(buffer.handle(1, "cap")) == Saved(count=0, regions=("CENTRAL",), tags=())
    assert store.batches == []


def test_unknown_tag_keeps_the_buffer() -> None:
    store = FakeMessageStore()
    buffer = _buffer(store)
    asyncio.run(buffer.handle(1, LONG_TEXT))

    with pytest.raises(BadTag) as excinfo:
        asyncio.run(buffer.handle(2, "capital Z"))

    assert excinfo.value.token == "Z"
    assert buffer.count == 1
    assert store.batches == []


def test_tag_only_line_is_not_a_finalize_line() -> None:
    store = FakeMessageStore()
    buffer = _buffer(store)
    asyncio.run(buffer.handle(1, LONG_TEXT))

    with pytest.raises(BadRegion):
        asyncio.run(buffer.handle(2, "A"))

    assert buffer.count == 1


def test_mistyped_region_reports_candidates() -> None:
    buffer = _buffer(FakeMessageStore())

    with pytest.raises(BadRegion) as excinfo:
        asyncio.run(buffer.handle(1, "ca!"))

    assert excinfo.value.token == "ca!"


def test_ambiguous_prefix_reports_all_candidates() -> None:
    catalog = build_catalog(
        [{"code": "CENTRAL", "aliases": ["mo"]}, {"code": "SOUTH", "aliases": ["mor"]}], []
    )
    buffer = ChatBuffer(
        -100, AliasIndex(catalog, "all"), TagValidator(catalog), FakeMessageStore(), BufferConfig()
    )

    with pytest.raises(BadRegion) as excinfo:
        asyncio.run(buffer.handle(1, "m 1"))

    assert excinfo.value.candidates == ["CENTRAL", "SOUTH"]


def test_country_keyword_is_noise_in_groups() -> None:
    buffer = _buffer(FakeMessageStore())
    asyncio.run(buffer.handle(1, LONG_TEXT))

    assert asyncio.run(buffer.handle(2, "all")) == Ignored(2)
    assert buffer.count == 1


def test_store_failure_keeps_the_buffer() -> None:
    store = FakeMessageStore(fail=True)
    buffer = _buffer(store)
    asyncio.run(buffer.handle(1, LONG_TEXT))
    asyncio.run(buffer.handle(2, LONG_TEXT))

    with pytest.raises(StoreFailure):
        asyncio.run(buffer.handle(3, "south"))

    assert buffer.count == 2
    store.fail = False
    assert asyncio.run(buffer.handle(4, "south")).count == 2


def test_chat_buffers_are_independent_per_chat() -> None:
    catalog = _catalog()
    store = FakeMessageStore()
    buffers = ChatBuffers(
        AliasIndex(catalog, "all"), TagValidator(catalog), store, BufferConfig(), clock=lambda: NOW
    )

    async def scenario() -> None:
        await asyncio.gather(
            buffers.handle(1, 10, LONG_TEXT),
            buffers.handle(2, 20, LONG_TEXT),
            buffers.handle(1, 11, LONG_TEXT),
        )
        saved = await buffers.handle(1, 12, "cap")
        assert saved.count == 2

    asyncio.run(scenario())

    assert buffers.get(2).count == 1
    assert buffers.discard(2) == 1
    assert buffers.get(2) is None
