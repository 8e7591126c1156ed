"""Validation helpers for catalog editing.

These mirror the rules `build_catalog` enforces at bot start, so a catalog
saved from the editor always loads.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any

_CODE_RE = re.compile(r"^(?:[^\W\d_]|-){2,}$")
_TAG_RE = re.compile(r"^[^\W\d_]$")


@dataclass
class FieldResult:
    value: Any
    error: str | None = None


def parse_region_code(raw_value: str) -> FieldResult:
    code = raw_value.strip()
    if not code:
        return FieldResult(None, "code is required")
    if not _CODE_RE.match(code):
        return FieldResult(None, "code must be at least two letters (or '-')")
    return FieldResult(code)


def parse_aliases(raw_value: str) -> FieldResult:
    """Split a comma separated alias list; aliases are stored lowercase."""

    aliases: list[str] = []
    for part in raw_value.split(","):
        alias = part.strip().lower()
        if not alias:
            continue
        if len(alias) < 2:
            return FieldResult(None, f"alias {alias!r} is too short")
        if any(not (char.isalpha() or char == "-") for char in alias):
            return FieldResult(None, f"alias {alias!r} may only contain letters and '-'")
        if alias not in aliases:
            aliases.append(alias)
    return FieldResult(aliases)


def alias_conflict(regions: list[dict[str, Any]], code: str, aliases: list[str], skip: int | None = None) -> str | None:
    """Return an error if the code or an alias is already claimed by another region."""

    wanted = {code.lower(), *aliases}
    for index, region in enumerate(regions):
        if index == skip:
            continue
        other = str(region.get("code", ""))
        if other == code:
            return f"region {code} already exists"
        claimed = {other.lower(), *(str(alias).lower() for alias in region.get("aliases", []))}
        overlap = sorted(wanted & claimed)
        if overlap:
            return f"alias {overlap[0]!r} is already used by {other}"
    return None


def parse_tags(raw_value: str) -> FieldResult:
    """Parse whitespace separated single-letter tags into an uppercase list."""

    tags: list[str] = []
    for part in raw_value.split():
        tag = part.upper()
        if not _TAG_RE.match(tag):
            return FieldResult(None, f"tag {part!r} must be a single letter")
        if tag not in tags:
            tags.append(tag)
    return FieldResult(tags)


def parse_priority(raw_value: str) -> FieldResult:
    """Parse whitespace separated leading-character classes, highest first."""

    classes: list[str] = []
    for part in raw_value.split():
        value = part.upper()
        if value not in classes:
            classes.append(value)
    return FieldResult(classes)
