"""State container for config loading and dirty tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ConfigState:
    data: dict[str, Any] | None = None
    dirty: bool = False
    error: str | None = None

    def section(self, name: str, default: Any) -> Any:
        """Return a config section, or the default when missing or mistyped."""

        value = (self.data or {}).get(name)
        if isinstance(value, type(default)):
            return value
        return default
