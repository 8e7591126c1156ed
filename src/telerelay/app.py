"""Application entry point for the telerelay bot."""

from __future__ import annotations

import argparse
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events, types

from telerelay import settings
from telerelay.adapters.sqlite_storage import SQLiteStorage
from telerelay.adapters.telegram_mapper import build_incoming, migration_from_service
from telerelay.adapters.telegram_sender import TelegramSender
from telerelay.client import build_client
from telerelay.core.admin import AdminService
from telerelay.core.buffer import ChatBuffers
from telerelay.core.catalog import AliasIndex, TagValidator, build_catalog
from telerelay.core.config import BufferConfig, RetrievalConfig, parse_utc_offset
from telerelay.core.retrieval import RetrievalEngine
from telerelay.relay import Relay

NAME = "TELERELAY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Mask secret values (bot token and friends) in every log line."""

    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = {os.getenv(name) for name in redact_cfg.get("patterns", [])}
    # Longest first so a secret containing another is masked whole.
    return sorted((value for value in values if value), key=len, reverse=True)


def _build_handlers(config: dict, level: int, formatter: logging.Formatter) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/telerelay.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = _RedactingFormatter(
        _collect_redaction_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers = _build_handlers(config, level, formatter)
    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO about reconnects and updates.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting telerelay")

    catalog = build_catalog(settings.REGIONS, settings.TAGS)
    aliases = AliasIndex(catalog, settings.COUNTRY_KEYWORD)
    tags = TagValidator(catalog)
    logger.info("%s regions and %s tags are loaded", len(catalog.regions), len(catalog.tags))

    retrieval_config = RetrievalConfig(
        tag_priority=settings.TAG_PRIORITY,
        timezone=parse_utc_offset(settings.TIMEZONE),
        country_region=settings.COUNTRY_REGION,
    )
    if retrieval_config.country_region and retrieval_config.country_region not in catalog.region_codes:
        raise RuntimeError(f"country_region {retrieval_config.country_region!r} is not a catalog region")

    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()

    buffers = ChatBuffers(
        aliases, tags, storage, BufferConfig(short_text_chars=settings.SHORT_TEXT_CHARS)
    )
    engine = RetrievalEngine(aliases, tags, storage, storage, storage, retrieval_config)
    admin = AdminService(storage, storage, storage, storage, aliases, retrieval_config)

    client, bot_token = build_client()
    sender = TelegramSender(client, max_attempts=settings.SEND_RETRIES)
    relay = Relay(buffers, engine, admin, sender, sorted(catalog.tags))

    chats = client.loop.run_until_complete(admin.load_chats())
    logger.info("%s relay chats are registered", chats)

    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            await relay.handle(build_incoming(event.message, event.is_private))
        except Exception:
            logger.exception("Error while processing message")

    # NewMessage skips service messages, so upgrades arrive as raw updates.
    @client.on(events.Raw(types.UpdateNewChannelMessage))
    async def migration_handler(update) -> None:
        migration = migration_from_service(update.message)
        if migration is None:
            return
        try:
            await relay.migrate(*migration)
        except Exception:
            logger.exception("Error while migrating chat %s", migration[0])

    client.start(bot_token=bot_token)
    logger.info("Bot connected. Listening for incoming messages...")
    client.run_until_disconnected()


def _setup() -> None:
    _print_banner()
    from telerelay.frontend.app import CatalogEditorApp

    CatalogEditorApp().run()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="telerelay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the relay bot")
    subparsers.add_parser("config", help="Launch the catalog editor")

    args = parser.parse_args(argv)
    if args.command == "config":
        _setup()
        return
    _run()


if __name__ == "__main__":
    main()
