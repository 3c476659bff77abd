"""
Engine configuration.

One explicitly scoped object replaces ambient key/value preferences.
It has a defined lifecycle: build it in code, or ``load`` it from a
JSON file, and ``save`` it back.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo


class EngineConfig:
    """Configuration for the progression engine."""

    def __init__(
        self,
        server_address: str = "",
        request_timeout: float = 30.0,
        generate_timeout: float = 120.0,
        save_path: str = "levelup_data",
        xp_per_level_unit: int = 100,
        max_pinned_goals: int = 3,
        timezone: Optional[str] = None,
        max_resolver_passes: int = 64,
        log_level: str = "INFO",
    ):
        self.server_address = server_address
        self.request_timeout = request_timeout
        self.generate_timeout = generate_timeout
        self.save_path = save_path
        self.xp_per_level_unit = xp_per_level_unit
        self.max_pinned_goals = max_pinned_goals
        self.timezone = timezone
        self.max_resolver_passes = max_resolver_passes
        self.log_level = log_level

    @property
    def tzinfo(self) -> Optional[ZoneInfo]:
        """Timezone that decides calendar days for streaks (None = as given)."""
        return ZoneInfo(self.timezone) if self.timezone else None

    def to_dict(self) -> dict[str, Any]:
        return dict(vars(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Build a config, ignoring unknown keys."""
        known = cls().to_dict().keys()
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, path: str | Path) -> EngineConfig:
        """Load from JSON. A missing file yields the defaults."""
        path = Path(path)
        if not path.exists():
            logging.getLogger(__name__).info(f"No config at {path}, using defaults")
            return cls()

        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)


def configure_logging(level: str | int = "INFO") -> None:
    """Set up root logging for scripts and demos."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
