"""SQLite storage adapter.

Implements every core store port using a single SQLite database. Each call
opens its own connection and runs in a worker thread, so the event loop is
never blocked and concurrent calls do not share a connection.
"""

from __future__ import annotations

import asyncio
from contextlib import closing
from datetime import datetime, timezone
import json
import sqlite3
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set, TypeVar

from telerelay.core.errors import StoreFailure
from telerelay.core.models import NewMessage, StoredMessage, User, UserGroup, Window

T = TypeVar("T")


def _encode_ts(value: datetime) -> str:
    # Fixed-width UTC text keeps lexical order equal to time order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _decode_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the core store contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StoreFailure(f"SQLite error: {exc}") from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - messages: classified archive entries
        - message_regions / message_tags: lookup tables for filtering
        - watermarks: last served timestamp per (user, region)
        - user_regions: per-user region allow-list
        - users: registered users and their group
        - chats: group chats relayed into the archive
        """

        with closing(self._connect()) as conn, conn:
            # messages keeps the ordered region/tag lists as JSON so rows read
            # back exactly as they were stamped.
            # Fields:
            # - id: auto-increment primary key, shown to admins for /deldb
            # - timestamp: persist time (UTC), assigned at finalize
            # - chat_id / message_id: where to forward the original from
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    chat_id INTEGER NOT NULL,
                    message_id INTEGER NOT NULL,
                    regions TEXT NOT NULL,
                    tags TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS messages_timestamp ON messages (timestamp)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS message_regions (
                    message_id INTEGER NOT NULL REFERENCES messages (id) ON DELETE CASCADE,
                    region TEXT NOT NULL,
                    PRIMARY KEY (message_id, region)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS message_regions_region ON message_regions (region)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS message_tags (
                    message_id INTEGER NOT NULL REFERENCES messages (id) ON DELETE CASCADE,
                    tag TEXT NOT NULL,
                    PRIMARY KEY (message_id, tag)
                )
                """
            )
            # watermarks: absence of a row means "never served".
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS watermarks (
                    user_id INTEGER NOT NULL,
                    region TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    PRIMARY KEY (user_id, region)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_regions (
                    user_id INTEGER NOT NULL,
                    region TEXT NOT NULL,
                    PRIMARY KEY (user_id, region)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY,
                    user_group TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE TABLE IF NOT EXISTS chats (id INTEGER PRIMARY KEY)")

    # Messages

    def _insert_batch(self, messages: Sequence[NewMessage]) -> List[int]:
        ids: List[int] = []
        # One transaction: the whole batch lands or none of it does.
        with closing(self._connect()) as conn, conn:
            for message in messages:
                cur = conn.execute(
                    """
                    INSERT INTO messages (timestamp, chat_id, message_id, regions, tags)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        _encode_ts(message.timestamp),
                        message.chat_id,
                        message.message_id,
                        json.dumps(list(message.regions), ensure_ascii=False),
                        json.dumps(list(message.tags), ensure_ascii=False),
                    ),
                )
                row_id = int(cur.lastrowid)
                conn.executemany(
                    "INSERT OR IGNORE INTO message_regions (message_id, region) VALUES (?, ?)",
                    [(row_id, region) for region in message.regions],
                )
                conn.executemany(
                    "INSERT OR IGNORE INTO message_tags (message_id, tag) VALUES (?, ?)",
                    [(row_id, tag) for tag in message.tags],
                )
                ids.append(row_id)
        return ids

    async def insert_batch(self, messages: Sequence[NewMessage]) -> List[int]:
        return await self._run(self._insert_batch, list(messages))

    def _query(self, regions: Sequence[str], tags: Sequence[str], window: Window) -> List[StoredMessage]:
        sql = ["SELECT * FROM messages m WHERE m.timestamp >= ? AND m.timestamp < ?"]
        params: List[Any] = [_encode_ts(window.start), _encode_ts(window.end)]
        if regions:
            marks = ", ".join("?" for _ in regions)
            sql.append(
                "AND EXISTS (SELECT 1 FROM message_regions r "
                f"WHERE r.message_id = m.id AND r.region IN ({marks}))"
            )
            params.extend(regions)
        if tags:
            marks = ", ".join("?" for _ in tags)
            sql.append(
                "AND EXISTS (SELECT 1 FROM message_tags t "
                f"WHERE t.message_id = m.id AND t.tag IN ({marks}))"
            )
            params.extend(tags)
        sql.append("ORDER BY m.timestamp, m.id")
        with closing(self._connect()) as conn:
            rows = conn.execute(" ".join(sql), params).fetchall()
        return [self._row_to_message(row) for row in rows]

    async def query(
        self, regions: Sequence[str], tags: Sequence[str], window: Window
    ) -> List[StoredMessage]:
        """Messages in window carrying any of `regions` and any of `tags`.

        Empty `regions` or `tags` means no filter on that field.
        """

        return await self._run(self._query, list(regions), list(tags), window)

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> StoredMessage:
        return StoredMessage(
            id=int(row["id"]),
            timestamp=_decode_ts(row["timestamp"]),
            chat_id=int(row["chat_id"]),
            message_id=int(row["message_id"]),
            regions=tuple(json.loads(row["regions"])),
            tags=tuple(json.loads(row["tags"])),
        )

    def _delete_message(self, message_id: int) -> bool:
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            return cur.rowcount > 0

    async def delete_message(self, message_id: int) -> bool:
        return await self._run(self._delete_message, message_id)

    def _delete_before(self, before: datetime) -> int:
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM messages WHERE timestamp < ?", (_encode_ts(before),))
            return cur.rowcount

    async def delete_before(self, before: datetime) -> int:
        """Delete messages persisted before `before` and return how many went."""

        return await self._run(self._delete_before, before)

    def _count_between(self, start: Optional[datetime], end: Optional[datetime]) -> int:
        sql = "SELECT COUNT(*) AS n FROM messages WHERE 1 = 1"
        params: List[str] = []
        if start is not None:
            sql += " AND timestamp >= ?"
            params.append(_encode_ts(start))
        if end is not None:
            sql += " AND timestamp < ?"
            params.append(_encode_ts(end))
        with closing(self._connect()) as conn:
            return int(conn.execute(sql, params).fetchone()["n"])

    async def count_between(self, start: Optional[datetime], end: Optional[datetime]) -> int:
        return await self._run(self._count_between, start, end)

    def _migrate_chat(self, from_id: int, to_id: int) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute("UPDATE messages SET chat_id = ? WHERE chat_id = ?", (to_id, from_id))

    async def migrate_chat(self, from_id: int, to_id: int) -> None:
        await self._run(self._migrate_chat, from_id, to_id)

    # Watermarks

    def _get_watermark(self, user_id: int, region: str) -> Optional[datetime]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT timestamp FROM watermarks WHERE user_id = ? AND region = ?",
                (user_id, region),
            ).fetchone()
        return _decode_ts(row["timestamp"]) if row else None

    async def get_watermark(self, user_id: int, region: str) -> Optional[datetime]:
        return await self._run(self._get_watermark, user_id, region)

    def _set_watermark(self, user_id: int, region: str, timestamp: datetime) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO watermarks (user_id, region, timestamp)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, region) DO UPDATE SET timestamp = excluded.timestamp
                """,
                (user_id, region, _encode_ts(timestamp)),
            )

    async def set_watermark(self, user_id: int, region: str, timestamp: datetime) -> None:
        await self._run(self._set_watermark, user_id, region, timestamp)

    # Allow-lists

    def _get_allowed_regions(self, user_id: int) -> Set[str]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT region FROM user_regions WHERE user_id = ?", (user_id,)
            ).fetchall()
        return {row["region"] for row in rows}

    async def get_allowed_regions(self, user_id: int) -> Set[str]:
        return await self._run(self._get_allowed_regions, user_id)

    def _allow_regions(self, user_id: int, regions: List[str]) -> None:
        with closing(self._connect()) as conn, conn:
            conn.executemany(
                "INSERT OR IGNORE INTO user_regions (user_id, region) VALUES (?, ?)",
                [(user_id, region) for region in regions],
            )

    async def allow_regions(self, user_id: int, regions: Iterable[str]) -> None:
        await self._run(self._allow_regions, user_id, list(regions))

    def _revoke_regions(self, user_id: int, regions: List[str]) -> None:
        with closing(self._connect()) as conn, conn:
            conn.executemany(
                "DELETE FROM user_regions WHERE user_id = ? AND region = ?",
                [(user_id, region) for region in regions],
            )

    async def revoke_regions(self, user_id: int, regions: Iterable[str]) -> None:
        await self._run(self._revoke_regions, user_id, list(regions))

    # Users

    def _get_user_group(self, user_id: int) -> UserGroup:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT user_group FROM users WHERE id = ?", (user_id,)).fetchone()
        return UserGroup.parse(row["user_group"]) if row else UserGroup.UNREGISTERED

    async def get_user_group(self, user_id: int) -> UserGroup:
        return await self._run(self._get_user_group, user_id)

    def _list_users(self) -> List[User]:
        with closing(self._connect()) as conn:
            rows = conn.execute("SELECT id, user_group FROM users ORDER BY id").fetchall()
        return [User(id=int(row["id"]), group=UserGroup.parse(row["user_group"])) for row in rows]

    async def list_users(self) -> List[User]:
        return await self._run(self._list_users)

    def _add_user(self, user: User) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO users (id, user_group) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET user_group = excluded.user_group
                """,
                (user.id, user.group.value),
            )

    async def add_user(self, user: User) -> None:
        await self._run(self._add_user, user)

    def _delete_user(self, user_id: int) -> bool:
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cur.rowcount > 0

    async def delete_user(self, user_id: int) -> bool:
        return await self._run(self._delete_user, user_id)

    # Chats

    def _list_chats(self) -> Set[int]:
        with closing(self._connect()) as conn:
            rows = conn.execute("SELECT id FROM chats").fetchall()
        return {int(row["id"]) for row in rows}

    async def list_chats(self) -> Set[int]:
        return await self._run(self._list_chats)

    def _add_chat(self, chat_id: int) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute("INSERT OR IGNORE INTO chats (id) VALUES (?)", (chat_id,))

    async def add_chat(self, chat_id: int) -> None:
        await self._run(self._add_chat, chat_id)

    def _delete_chat(self, chat_id: int) -> bool:
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            return cur.rowcount > 0

    async def delete_chat(self, chat_id: int) -> bool:
        return await self._run(self._delete_chat, chat_id)
