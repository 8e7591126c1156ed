from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from telerelay.adapters.sqlite_storage import SQLiteStorage
from telerelay.core.admin import AdminService
from telerelay.core.buffer import ChatBuffers
from telerelay.core.catalog import AliasIndex, TagValidator, build_catalog
from telerelay.core.config import BufferConfig, RetrievalConfig
from telerelay.core.dialogue import DialogueKind
from telerelay.core.models import IncomingMessage, User, UserGroup
from telerelay.core.retrieval import RetrievalEngine
from telerelay.relay import Relay

ADMIN = 1
MEMBER = 2
STRANGER = 3
GROUP = -100
LONG_TEXT = "Convoy spotted moving north along the highway"


class TickingClock:
    """Every reading is one second after the previous one."""

    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FakeSender:
    def __init__(self) -> None:
        self.texts: list[tuple[int, str, Optional[int]]] = []
        self.forwards: list[tuple[int, int, int]] = []

    async def send_text(self, chat_id: int, text: str, reply_to: Optional[int] = None) -> None:
        self.texts.append((chat_id, text, reply_to))

    async def forward(self, to_chat_id: int, from_chat_id: int, message_id: int) -> None:
        self.forwards.append((to_chat_id, from_chat_id, message_id))


def _relay(tmp_path) -> tuple[Relay, SQLiteStorage, FakeSender]:
    catalog = build_catalog(
        [{"code": "CENTRAL", "aliases": ["capital"]}, {"code": "SOUTH", "aliases": ["south"]}],
        ["A", "B"],
    )
    aliases = AliasIndex(catalog, "all")
    tags = TagValidator(catalog)
    storage = SQLiteStorage(str(tmp_path / "relay.db"))
    storage.init_db()
    asyncio.run(storage.add_user(User(ADMIN, UserGroup.ADMIN)))
    asyncio.run(storage.add_user(User(MEMBER, UserGroup.REGISTERED)))
    asyncio.run(storage.add_chat(GROUP))

    clock = TickingClock()
    config = RetrievalConfig()
    admin = AdminService(storage, storage, storage, storage, aliases, config, clock=clock)
    asyncio.run(admin.load_chats())
    sender = FakeSender()
    relay = Relay(
        ChatBuffers(aliases, tags, storage, BufferConfig(), clock=clock),
        RetrievalEngine(aliases, tags, storage, storage, storage, config, clock=clock),
        admin,
        sender,
        sorted(catalog.tags),
    )
    return relay, storage, sender


def _group(message_id: int, text: Optional[str], chat_id: int = GROUP) -> IncomingMessage:
    return IncomingMessage(chat_id=chat_id, message_id=message_id, sender_id=50, is_private=False, text=text)


def _private(user_id: int, text: str, message_id: int = 1) -> IncomingMessage:
    return IncomingMessage(chat_id=user_id, message_id=message_id, sender_id=user_id, is_private=True, text=text)


def test_relayed_reports_are_archived_and_served(tmp_path) -> None:
    relay, storage, sender = _relay(tmp_path)

    asyncio.run(relay.handle(_group(10, LONG_TEXT)))
    asyncio.run(relay.handle(_group(11, "capital a")))

    assert sender.texts == [
        (GROUP, "Accepted 1", 10),
        (GROUP, "Saved [1]\nCENTRAL: [A]", None),
    ]
    assert relay.dialogue(GROUP) is DialogueKind.GROUP

    sender.texts.clear()
    asyncio.run(relay.handle(_private(ADMIN, "/allow 2 capital")))
    asyncio.run(relay.handle(_private(MEMBER, "capital")))

    assert sender.texts[0] == (ADMIN, "User 2: [CENTRAL]", None)
    assert sender.texts[1] == (MEMBER, "<b>Region:</b> CENTRAL", None)
    assert sender.forwards == [(MEMBER, GROUP, 10)]

    asyncio.run(relay.handle(_private(MEMBER, "capital")))
    assert sender.texts[-1] == (MEMBER, "No messages for this query 🔎❌", None)


def test_bad_tag_in_group_is_reported(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)

    asyncio.run(relay.handle(_group(10, LONG_TEXT)))
    asyncio.run(relay.handle(_group(11, "capital z")))

    assert "Unknown tag" in sender.texts[-1][1]
    assert "[A, B]" in sender.texts[-1][1]


def test_unregistered_group_is_ignored(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)

    asyncio.run(relay.handle(_group(10, LONG_TEXT, chat_id=-999)))

    assert sender.texts == []
    assert relay.dialogue(-999) is DialogueKind.IDLE
    assert -999 not in relay._dialogues


def test_unregistered_user_gets_an_echo(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)

    asyncio.run(relay.handle(_private(STRANGER, "capital <b>")))

    assert sender.texts == [(STRANGER, "capital &lt;b&gt;", None)]


def test_admin_commands_check_privileges(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)

    asyncio.run(relay.handle(_private(MEMBER, "/list_users")))
    asyncio.run(relay.handle(_private(ADMIN, "/list_users")))

    assert "You must belong to group Admin" in sender.texts[0][1]
    assert [text for _, text, _ in sender.texts[1:]] == ["1: Admin", "2: Registered"]


def test_unknown_command_shows_help(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)

    asyncio.run(relay.handle(_private(MEMBER, "/whatever")))

    assert sender.texts == [(MEMBER, "Regions [hours [duration]] [tags]", None)]


def test_deleting_a_chat_drops_its_buffer(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)
    asyncio.run(relay.handle(_group(10, LONG_TEXT)))

    asyncio.run(relay.handle(_private(ADMIN, f"/del_chat {GROUP}")))
    asyncio.run(relay.handle(_group(11, "capital")))

    assert sender.texts[-1] == (ADMIN, f"Deleted chat {GROUP}", None)
    assert relay.dialogue(GROUP) is DialogueKind.IDLE
    assert GROUP not in relay._dialogues


def test_listdb_sends_archive_ids_before_forwards(tmp_path) -> None:
    relay, _, sender = _relay(tmp_path)
    asyncio.run(relay.handle(_group(10, LONG_TEXT)))
    asyncio.run(relay.handle(_group(11, "south")))
    sender.texts.clear()

    asyncio.run(relay.handle(_private(ADMIN, "/listdb 01.03.24")))

    assert sender.texts == [
        (ADMIN, "<b>Region:</b> SOUTH", None),
        (ADMIN, "1", None),
    ]
    assert sender.forwards == [(ADMIN, GROUP, 10)]


def test_migration_follows_the_new_chat(tmp_path) -> None:
    relay, storage, sender = _relay(tmp_path)
    asyncio.run(relay.handle(_group(10, LONG_TEXT)))

    asyncio.run(relay.migrate(GROUP, -100200))

    assert asyncio.run(storage.list_chats()) == {-100200}
    asyncio.run(relay.handle(_group(12, LONG_TEXT, chat_id=-100200)))
    assert sender.texts[-1] == (-100200, "Accepted 1", 12)
