"""Reply text rendering.

Keeping formatting here prevents drift between group and private handlers
and keeps every reply consistent. Replies are Telegram HTML, so every value
that came from users or config is escaped.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
import html
from typing import Iterable, List, Optional, Sequence, Tuple

from telerelay.core.buffer import BufferOutcome, Ignored, Remembered, Saved
from telerelay.core.errors import (
    BadDuration,
    BadRegion,
    BadTag,
    CommandError,
    NoMessages,
    NoRegions,
    PrivilegeFailure,
    RelayError,
    StoreFailure,
)
from telerelay.core.models import DbStat, User, UserGroup

ADMIN_HELP = "\n".join(
    [
        "/list_users",
        "/add_user &lt;id&gt; [Admin]",
        "/del_user &lt;id&gt;",
        "/list_chats",
        "/add_chat &lt;id&gt;",
        "/del_chat &lt;id&gt;",
        "/allow &lt;id&gt; &lt;regions&gt;",
        "/revoke &lt;id&gt; &lt;regions&gt;",
        "/access &lt;id&gt;",
        "/listdb [DD.MM.YY [+HH:MM]]",
        "/deldb &lt;id&gt;",
        "/cleandb &lt;days to keep&gt;",
        "/statdb [+HH:MM]",
    ]
)
QUERY_HELP = "Regions [hours [duration]] [tags]"


def _list(values: Iterable[str]) -> str:
    return "[" + ", ".join(html.escape(value) for value in values) + "]"


def _format_ts(value: datetime, zone: tzinfo = timezone.utc) -> str:
    return value.astimezone(zone).strftime("%H:%M:%S %d-%m-%Y")


def render_outcome(outcome: BufferOutcome) -> Tuple[str, bool]:
    """Return the group reply text and whether it should quote the incoming message."""

    if isinstance(outcome, Saved):
        if not outcome.count:
            return "Nothing to save", False
        regions = (
            _list(outcome.regions) if len(outcome.regions) > 1 else html.escape(outcome.regions[0])
        )
        tags = f": {_list(outcome.tags)}" if outcome.tags else ""
        return f"Saved [{outcome.count}]\n{regions}{tags}", False
    if isinstance(outcome, Remembered):
        return f"Accepted {outcome.count}", True
    if isinstance(outcome, Ignored):
        return "Ignored", True
    raise ValueError(f"Unsupported outcome: {outcome!r}")


def render_error(error: RelayError, known_tags: Sequence[str] = ()) -> str:
    """Render a core error into an actionable reply."""

    if isinstance(error, NoRegions):
        return f"No regions given 🗺❌\n{QUERY_HELP}"
    if isinstance(error, BadRegion):
        return (
            f"⚠️ Unknown region ⚠️\n\"{html.escape(error.token)}\".\n"
            f"Matches: {_list(error.candidates)}"
        )
    if isinstance(error, BadTag):
        return (
            f"⚠️ Unknown tag ⚠️\n\"{html.escape(error.token)}\". "
            f"Allowed tags: {_list(sorted(known_tags))}"
        )
    if isinstance(error, BadDuration):
        return f"Unclear duration \"{html.escape(error.value)}\" 🕒❌"
    if isinstance(error, NoMessages):
        return "No messages for this query 🔎❌"
    if isinstance(error, PrivilegeFailure):
        return html.escape(str(error))
    if isinstance(error, CommandError):
        return html.escape(str(error))
    if isinstance(error, StoreFailure):
        return "⚠️ The database returned an error ⚠️ 🧑‍💻"
    return html.escape(str(error))


def render_help(group: UserGroup) -> str:
    if group is UserGroup.ADMIN:
        return f"{ADMIN_HELP}\n{QUERY_HELP}"
    if group is UserGroup.REGISTERED:
        return QUERY_HELP
    return "Test echo bot"


def render_region_header(region: str) -> str:
    return f"<b>Region:</b> {html.escape(region)}"


def render_echo(text: Optional[str]) -> str:
    return html.escape(text or "")


def render_user(user: User) -> str:
    return f"{user.id}: {html.escape(user.group.value)}"


def render_chats(chats: Iterable[int]) -> List[str]:
    chats = sorted(chats)
    if not chats:
        return ["No chats added yet. Use /add_chat &lt;id&gt; to add one."]
    return [str(chat_id) for chat_id in chats]


def render_access(user_id: int, regions: Sequence[str]) -> str:
    if not regions:
        return f"User {user_id} has no regions"
    return f"User {user_id}: {_list(regions)}"


def render_purge(before: datetime, removed: int) -> str:
    return f"Deleted {removed} messages before {_format_ts(before)} UTC"


def render_stat(zone: tzinfo, stat: DbStat) -> str:
    label = html.escape(str(zone))
    lines = [
        f"Message count ({label}).",
        f"Today\t- {stat.today}",
        f"Yesterday\t- {stat.yesterday}",
        f"Day before\t- {stat.before_yesterday}",
        f"Week\t- {stat.week}",
        f"Month\t- {stat.month}",
        f"Earlier\t- {stat.earlier}",
    ]
    return "\n".join(lines)
