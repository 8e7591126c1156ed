"""Static configuration for telerelay.

The region catalog, tags and retrieval knobs live in a single JSON file so
the catalog can be edited (by hand or with `telerelay config`) without
touching Python. Secrets and the database location come from `.env`.
"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

# Where to store the SQLite archive.
DB_PATH = os.getenv("DB_PATH") or os.path.join(PROJECT_ROOT, "telerelay.db")

CONFIG_PATH = os.getenv("TELERELAY_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


_CONFIG = _load_json_config()

CONFIG = _CONFIG

# Catalog: regions with their aliases, and the allowed tags.
REGIONS = _CONFIG.get("regions", [])
TAGS = _CONFIG.get("tags", [])

# Leading-character classes for ordering retrieval results, highest first.
TAG_PRIORITY = tuple(_CONFIG.get("tag_priority", []))

# Reserved token meaning "every region", and the code listed last in replies.
COUNTRY_KEYWORD = str(_CONFIG.get("country_keyword", "all")).lower()
COUNTRY_REGION = _CONFIG.get("country_region")

# UTC offset used for "start of today" and the admin day commands.
TIMEZONE = _CONFIG.get("timezone", "+00:00")

# Shorter group texts are treated as noise (or as a mistyped finalize line).
SHORT_TEXT_CHARS = int(_CONFIG.get("short_text_chars", 20))

# Retry-after attempts before a send is given up.
SEND_RETRIES = int(_CONFIG.get("send_retries", 5))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
