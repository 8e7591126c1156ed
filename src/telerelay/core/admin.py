"""Administrative operations (core domain).

Every operation except group lookup and chat migration requires the caller to
be an Admin; a PrivilegeFailure is raised otherwise and reaches the reply
layer unchanged. Argument strings come straight from slash commands and are
validated here.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
import logging
from typing import Dict, List, Optional, Set, Tuple

from telerelay.core.buffer import Clock, utc_now
from telerelay.core.catalog import AliasIndex, Unresolved
from telerelay.core.config import RetrievalConfig, parse_utc_offset
from telerelay.core.errors import BadRegion, CommandError, PrivilegeFailure
from telerelay.core.models import DbStat, StoredMessage, User, UserGroup, Window
from telerelay.core.ports import AccessStore, ChatStore, MessageStore, UserStore

LOGGER = logging.getLogger(__name__)


def _parse_id(value: Optional[str]) -> int:
    try:
        parsed = int(value or "")
    except ValueError:
        raise CommandError("Unclear id") from None
    if parsed == 0:
        raise CommandError("Unclear id")
    return parsed


def _parse_offset(value: Optional[str], default: tzinfo) -> tzinfo:
    if not value:
        return default
    try:
        return parse_utc_offset(value)
    except ValueError:
        raise CommandError(f"Unclear UTC offset {value!r}, expected +HH:MM") from None


def group_by_region(
    messages: List[StoredMessage], country_region: Optional[str]
) -> Dict[str, List[StoredMessage]]:
    """Group messages under every region they carry; country-wide region last."""

    grouped: Dict[str, List[StoredMessage]] = {}
    for message in messages:
        for region in dict.fromkeys(message.regions):
            grouped.setdefault(region, []).append(message)
    codes = sorted(grouped, key=lambda code: (code == country_region, code))
    return {code: grouped[code] for code in codes}


class AdminService:
    """User, chat, allow-list and archive administration."""

    def __init__(
        self,
        users: UserStore,
        chats: ChatStore,
        access: AccessStore,
        messages: MessageStore,
        aliases: AliasIndex,
        config: RetrievalConfig,
        clock: Clock = utc_now,
    ) -> None:
        self._users = users
        self._chats = chats
        self._access = access
        self._messages = messages
        self._aliases = aliases
        self._config = config
        self._clock = clock
        self.known_chats: Set[int] = set()

    async def load_chats(self) -> int:
        self.known_chats = set(await self._chats.list_chats())
        return len(self.known_chats)

    async def get_group(self, user_id: int) -> UserGroup:
        return await self._users.get_user_group(user_id)

    async def require_admin(self, user_id: int) -> None:
        current = await self.get_group(user_id)
        if current is not UserGroup.ADMIN:
            raise PrivilegeFailure(desired=UserGroup.ADMIN, current=current)

    async def list_users(self, caller: int) -> List[User]:
        await self.require_admin(caller)
        return await self._users.list_users()

    async def add_user(self, caller: int, args: str) -> User:
        await self.require_admin(caller)
        parts = args.split()
        if not parts or len(parts) > 2:
            raise CommandError("Usage: /add_user <id> [Admin]")
        group = UserGroup.REGISTERED
        if len(parts) == 2:
            group = UserGroup.parse(parts[1])
            if group is UserGroup.UNREGISTERED:
                raise CommandError("Usage: /add_user <id> [Admin]")
        user = User(id=_parse_id(parts[0]), group=group)
        await self._users.add_user(user)
        LOGGER.info("Admin %s added user %s (%s)", caller, user.id, user.group.value)
        return user

    async def delete_user(self, caller: int, args: str) -> int:
        await self.require_admin(caller)
        user_id = _parse_id(args)
        await self._users.delete_user(user_id)
        LOGGER.info("Admin %s deleted user %s", caller, user_id)
        return user_id

    async def list_chats(self, caller: int) -> Set[int]:
        await self.require_admin(caller)
        return await self._chats.list_chats()

    async def add_chat(self, caller: int, args: str) -> int:
        await self.require_admin(caller)
        chat_id = _parse_id(args)
        await self._chats.add_chat(chat_id)
        self.known_chats.add(chat_id)
        LOGGER.info("Admin %s added chat %s", caller, chat_id)
        return chat_id

    async def delete_chat(self, caller: int, args: str) -> int:
        await self.require_admin(caller)
        chat_id = _parse_id(args)
        await self._chats.delete_chat(chat_id)
        self.known_chats.discard(chat_id)
        LOGGER.info("Admin %s deleted chat %s", caller, chat_id)
        return chat_id

    def _parse_user_regions(self, args: str, usage: str) -> Tuple[int, List[str]]:
        parts = args.split(maxsplit=1)
        if len(parts) != 2:
            raise CommandError(usage)
        user_id = _parse_id(parts[0])
        regions_text = parts[1]
        resolution = self._aliases.resolve(regions_text)
        if isinstance(resolution, Unresolved):
            raise BadRegion(resolution.token, resolution.candidates)
        return user_id, list(dict.fromkeys(resolution.regions))

    async def allow_regions(self, caller: int, args: str) -> Tuple[int, List[str]]:
        await self.require_admin(caller)
        user_id, regions = self._parse_user_regions(args, "Usage: /allow <id> <regions>")
        await self._access.allow_regions(user_id, regions)
        LOGGER.info("Admin %s allowed %s for user %s", caller, regions, user_id)
        return user_id, regions

    async def revoke_regions(self, caller: int, args: str) -> Tuple[int, List[str]]:
        await self.require_admin(caller)
        user_id, regions = self._parse_user_regions(args, "Usage: /revoke <id> <regions>")
        await self._access.revoke_regions(user_id, regions)
        LOGGER.info("Admin %s revoked %s for user %s", caller, regions, user_id)
        return user_id, regions

    async def show_access(self, caller: int, args: str) -> Tuple[int, List[str]]:
        await self.require_admin(caller)
        user_id = _parse_id(args)
        return user_id, sorted(await self._access.get_allowed_regions(user_id))

    async def list_day(self, caller: int, args: str) -> Dict[str, List[StoredMessage]]:
        """Archive for one local day: `[DD.MM.YY [+HH:MM]]`, today by default."""

        await self.require_admin(caller)
        parts = args.split()
        if len(parts) > 2:
            raise CommandError("Usage: /listdb [DD.MM.YY [+HH:MM]]")
        zone = _parse_offset(parts[1] if len(parts) > 1 else None, self._config.timezone)
        if parts:
            try:
                day = datetime.strptime(parts[0], "%d.%m.%y").replace(tzinfo=zone)
            except ValueError:
                raise CommandError("Wrong date, expected DD.MM.YY") from None
        else:
            day = self._clock().astimezone(zone).replace(hour=0, minute=0, second=0, microsecond=0)
        window = Window(start=day, end=day + timedelta(days=1))
        messages = await self._messages.query([], [], window)
        return group_by_region(messages, self._config.country_region)

    async def delete_message(self, caller: int, args: str) -> int:
        await self.require_admin(caller)
        message_id = _parse_id(args)
        if not await self._messages.delete_message(message_id):
            raise CommandError(f"No message with id {message_id}")
        LOGGER.info("Admin %s deleted message %s", caller, message_id)
        return message_id

    async def purge(self, caller: int, args: str) -> Tuple[datetime, int]:
        """Delete messages older than the given number of days."""

        await self.require_admin(caller)
        try:
            days = int(args)
            if days < 0:
                raise ValueError(days)
            before = self._clock() - timedelta(days=days)
        except (ValueError, OverflowError):
            raise CommandError("Unclear number of days") from None
        removed = await self._messages.delete_before(before)
        LOGGER.info("Admin %s purged %s messages before %s", caller, removed, before)
        return before, removed

    async def stat(self, caller: int, args: str) -> Tuple[tzinfo, DbStat]:
        await self.require_admin(caller)
        zone = _parse_offset(args or None, self._config.timezone)
        today = self._clock().astimezone(zone).replace(hour=0, minute=0, second=0, microsecond=0)
        day = timedelta(days=1)
        count = self._messages.count_between
        stat = DbStat(
            today=await count(today, None),
            yesterday=await count(today - day, today),
            before_yesterday=await count(today - 2 * day, today - day),
            week=await count(today - 7 * day, today),
            month=await count(today - 30 * day, today),
            earlier=await count(None, today - 30 * day),
        )
        return zone, stat

    async def migrate_chat(self, from_id: int, to_id: int) -> None:
        """Move a group's registration and archive after a supergroup upgrade."""

        await self._messages.migrate_chat(from_id, to_id)
        if from_id in self.known_chats:
            await self._chats.delete_chat(from_id)
            await self._chats.add_chat(to_id)
            self.known_chats.discard(from_id)
            self.known_chats.add(to_id)
        LOGGER.info("Migrated chat %s to %s", from_id, to_id)
