"""Region and tag catalogs plus free-text resolution (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple, Union

from telerelay.core.grammar import REGION_WORD_RE, TAG_RE
from telerelay.core.models import Region


@dataclass(frozen=True)
class Catalog:
    """Read-only region and tag catalogs, built once at startup."""

    regions: Tuple[Region, ...]
    tags: FrozenSet[str]

    @property
    def region_codes(self) -> Tuple[str, ...]:
        return tuple(region.code for region in self.regions)


def build_catalog(regions_config: Iterable[dict], tags_config: Iterable[str]) -> Catalog:
    """Normalize catalog configs into an immutable Catalog.

    Aliases are lowercased and always include the region code itself. A code
    listed twice, an alias claimed by two regions, or an alias or tag that no
    finalize line or query could contain, is a config error.
    """

    regions: List[Region] = []
    owners: Dict[str, str] = {}
    for entry in regions_config:
        code = str(entry["code"]).strip()
        if not code:
            raise ValueError("Region code must not be empty")
        if any(region.code == code for region in regions):
            raise ValueError(f"Duplicate region code: {code}")
        aliases: List[str] = []
        for alias in [code, *entry.get("aliases", [])]:
            alias = str(alias).strip().lower()
            if not alias or alias in aliases:
                continue
            if not REGION_WORD_RE.fullmatch(alias):
                raise ValueError(
                    f"Alias {alias!r} of {code} must be two or more letters or '-'"
                )
            owner = owners.setdefault(alias, code)
            if owner != code:
                raise ValueError(f"Alias {alias!r} maps to both {owner} and {code}")
            aliases.append(alias)
        regions.append(Region(code=code, aliases=tuple(aliases)))

    tags = frozenset(str(tag).strip().upper() for tag in tags_config if str(tag).strip())
    for tag in sorted(tags):
        if not TAG_RE.fullmatch(tag):
            raise ValueError(f"Tag {tag!r} must be a single letter")
    return Catalog(regions=tuple(regions), tags=tags)


@dataclass(frozen=True)
class AllCountry:
    """The reserved "whole country" keyword was used."""

    regions: Tuple[str, ...]


@dataclass(frozen=True)
class Resolved:
    regions: Tuple[str, ...]


@dataclass(frozen=True)
class Unresolved:
    """First token that failed to resolve, with the regions it could mean."""

    token: str
    candidates: Tuple[str, ...]


RegionResolution = Union[AllCountry, Resolved, Unresolved]


class AliasIndex:
    """Resolve free text to canonical region codes.

    Matching per whitespace token:
    - the country keyword short-circuits to AllCountry;
    - an exact alias resolves directly;
    - otherwise the token is treated as an alias prefix and must point at a
      single region.
    """

    def __init__(self, catalog: Catalog, country_keyword: str) -> None:
        self._catalog = catalog
        self._country_keyword = country_keyword.strip().lower()
        self._aliases: Dict[str, str] = {}
        for region in catalog.regions:
            for alias in region.aliases:
                self._aliases[alias] = region.code
        # Sorted once so prefix scans are deterministic.
        self._sorted_aliases = sorted(self._aliases.items())

    def resolve(self, text: str) -> RegionResolution:
        resolved: List[str] = []
        for token in text.split():
            lowered = token.lower()
            if self._country_keyword and lowered == self._country_keyword:
                return AllCountry(self._catalog.region_codes)

            code = self._aliases.get(lowered)
            if code is not None:
                resolved.append(code)
                continue

            candidates = {code for alias, code in self._sorted_aliases if alias.startswith(lowered)}
            if len(candidates) != 1:
                return Unresolved(token=token, candidates=tuple(sorted(candidates)))
            resolved.append(candidates.pop())
        return Resolved(tuple(resolved))


@dataclass(frozen=True)
class ResolvedTags:
    tags: Tuple[str, ...]


@dataclass(frozen=True)
class UnresolvedTag:
    token: str


TagResolution = Union[ResolvedTags, UnresolvedTag]


class TagValidator:
    """Validate tag tokens case-insensitively against the tag catalog."""

    def __init__(self, catalog: Catalog) -> None:
        self._tags = catalog.tags

    @property
    def tags(self) -> FrozenSet[str]:
        return self._tags

    def resolve(self, text: str) -> TagResolution:
        tags: List[str] = []
        for token in text.split():
            normalized = token.upper()
            if normalized not in self._tags:
                return UnresolvedTag(token)
            tags.append(normalized)
        return ResolvedTags(tuple(tags))
