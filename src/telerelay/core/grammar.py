"""Text grammar for finalize lines, retrieval queries and slash commands.

Parsing only splits raw chat text into clauses; resolving the clauses against
the catalogs is done by AliasIndex/TagValidator.

- A region word is two or more letters or hyphens.
- A tag token is a single letter.
- Query numbers are hours: "N" is the last N hours, "S D" is a D-hour window
  starting S hours ago.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional

_LETTER = r"[^\W\d_]"
_REGION_WORD = rf"(?:{_LETTER}|-){{2,}}"
_REGIONS = rf"{_REGION_WORD}(?:\s+{_REGION_WORD})*"
_TAGS = rf"(?:{_LETTER}\s+)*{_LETTER}"

FINALIZE_RE = re.compile(rf"(?P<regions>{_REGIONS})?\s*(?P<tags>{_TAGS})?")
QUERY_RE = re.compile(rf"(?P<regions>{_REGIONS})?(?P<hours>(?:\s+\d+){{1,2}})?\s*(?P<tags>{_TAGS})?")
COMMAND_RE = re.compile(r"/(?P<name>\w+)(?:@\w+)?(?:\s+(?P<args>.*))?", re.DOTALL)

# Shapes a catalog alias or tag must have to be typeable at all.
REGION_WORD_RE = re.compile(_REGION_WORD)
TAG_RE = re.compile(_LETTER)


@dataclass(frozen=True)
class FinalizeLine:
    regions: Optional[str]
    tags: Optional[str]


@dataclass(frozen=True)
class Query:
    regions: Optional[str]
    tags: Optional[str]
    since_hours: Optional[str] = None
    duration_hours: Optional[str] = None


@dataclass(frozen=True)
class Command:
    name: str
    args: str


def _group(match: "re.Match[str]", name: str) -> Optional[str]:
    value = match.group(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_finalize(text: Optional[str]) -> FinalizeLine:
    """Split a group message into optional region and tag clauses."""

    match = FINALIZE_RE.fullmatch((text or "").strip())
    if match is None:
        return FinalizeLine(regions=None, tags=None)
    return FinalizeLine(regions=_group(match, "regions"), tags=_group(match, "tags"))


def parse_query(text: Optional[str]) -> Query:
    """Split a private retrieval request into regions, hours and tags."""

    match = QUERY_RE.fullmatch((text or "").strip())
    if match is None:
        return Query(regions=None, tags=None)
    hours = (match.group("hours") or "").split()
    since = hours[0] if hours else None
    duration = hours[1] if len(hours) > 1 else since
    return Query(
        regions=_group(match, "regions"),
        tags=_group(match, "tags"),
        since_hours=since,
        duration_hours=duration,
    )


def parse_command(text: Optional[str]) -> Optional[Command]:
    """Return the slash command in text, or None for plain text."""

    match = COMMAND_RE.fullmatch((text or "").strip())
    if match is None:
        return None
    return Command(name=match.group("name").lower(), args=(match.group("args") or "").strip())
