"""
Save/Load system - local state persistence.

Provides:
- Save/load the whole entity store to one JSON file
- Save metadata (timestamp, level, XP, goal count)
- Save integrity validation (checksum)
- Auto-save on progression events
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional

from levelup.core.events import Event, EventBus, ProgressionEvent
from levelup.core.model import utc_now
from levelup.core.store import EntityStore


logger = logging.getLogger(__name__)


class SaveEvent(Enum):
    """Save system events."""
    SAVE_STARTED = auto()
    SAVE_COMPLETED = auto()
    SAVE_FAILED = auto()
    LOAD_STARTED = auto()
    LOAD_COMPLETED = auto()
    LOAD_FAILED = auto()
    AUTO_SAVE_TRIGGERED = auto()


@dataclass
class SaveMetadata:
    """Metadata about the save file."""
    timestamp: str
    level: int
    total_xp: int
    goal_count: int
    tree_count: int
    version: str = "1.0"


# Events that change persisted state
AUTO_SAVE_EVENTS = (
    ProgressionEvent.GOAL_ADDED,
    ProgressionEvent.GOAL_UPDATED,
    ProgressionEvent.GOAL_DELETED,
    ProgressionEvent.GOAL_PINNED,
    ProgressionEvent.GOAL_UNPINNED,
    ProgressionEvent.TREE_ADDED,
    ProgressionEvent.TREE_REFRESHED,
    ProgressionEvent.TREE_DELETED,
    ProgressionEvent.NODE_STARTED,
    ProgressionEvent.XP_GAINED,
)


class SaveManager:
    """
    Manages saving and loading the progression state.

    Features:
    - Single explicit state file instead of scattered preference keys
    - Checksum validation for save integrity
    - Event publishing for save/load operations
    - Optional auto-save whenever state changes

    Usage:
        save_mgr = SaveManager(store, save_path="levelup_data")
        save_mgr.save()
        save_mgr.load()

        save_mgr.enable_auto_save()
    """

    VERSION = "1.0"
    STATE_FILE = "state.json"
    META_FILE = "state_meta.json"

    def __init__(
        self,
        store: EntityStore,
        save_path: str | Path = "levelup_data",
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.save_path = Path(save_path)
        self.event_bus = event_bus or store.event_bus
        self._auto_save_enabled = False

    @property
    def state_path(self) -> Path:
        return self.save_path / self.STATE_FILE

    @property
    def metadata_path(self) -> Path:
        return self.save_path / self.META_FILE

    @property
    def has_save(self) -> bool:
        return self.state_path.exists()

    def save(self) -> bool:
        """
        Write the store to disk.

        Returns:
            True if save was successful
        """
        self.event_bus.publish(SaveEvent.SAVE_STARTED, path=str(self.state_path))

        try:
            self.save_path.mkdir(parents=True, exist_ok=True)

            save_dict = {'version': self.VERSION, 'state': self.store.to_dict()}
            save_dict['checksum'] = self._calculate_checksum(save_dict)

            # Write to a temp file first so a crash never leaves half a save
            tmp_path = self.state_path.with_suffix(".tmp")
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(save_dict, f, indent=2)
            tmp_path.replace(self.state_path)

            with open(self.metadata_path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self._create_metadata()), f, indent=2)

        except (OSError, TypeError, ValueError) as e:
            logger.exception("Save failed")
            self.event_bus.publish(SaveEvent.SAVE_FAILED, error=str(e))
            return False

        self.event_bus.publish(SaveEvent.SAVE_COMPLETED, path=str(self.state_path))
        return True

    def load(self, validate: bool = True) -> bool:
        """
        Load the saved state into the store.

        Args:
            validate: Whether to validate the checksum

        Returns:
            True if load was successful. On failure the store is unchanged.
        """
        if not self.state_path.exists():
            return False

        self.event_bus.publish(SaveEvent.LOAD_STARTED, path=str(self.state_path))

        try:
            with open(self.state_path, 'r', encoding='utf-8') as f:
                save_dict = json.load(f)

            if validate:
                checksum = save_dict.get('checksum')
                if checksum and not self._verify_checksum(save_dict, checksum):
                    logger.error(f"Save file corrupted: checksum mismatch in {self.state_path}")
                    self.event_bus.publish(
                        SaveEvent.LOAD_FAILED,
                        error="Checksum validation failed",
                    )
                    return False

            self.store.load_dict(save_dict.get('state', {}))

        except (OSError, ValueError) as e:
            logger.exception("Load failed")
            self.event_bus.publish(SaveEvent.LOAD_FAILED, error=str(e))
            return False

        self.event_bus.publish(SaveEvent.LOAD_COMPLETED, path=str(self.state_path))
        return True

    def delete_save(self) -> None:
        for path in (self.state_path, self.metadata_path):
            if path.exists():
                path.unlink()

    def read_metadata(self) -> Optional[SaveMetadata]:
        if not self.metadata_path.exists():
            return None
        with open(self.metadata_path, 'r', encoding='utf-8') as f:
            return SaveMetadata(**json.load(f))

    def validate_save(self) -> bool:
        """
        Validate the save file's integrity.

        Returns:
            True if save is valid, False if corrupted or missing
        """
        if not self.state_path.exists():
            return False

        try:
            with open(self.state_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            return False

        checksum = data.get('checksum')
        if not checksum:
            # No checksum = hand-written or old save, assume valid
            return True
        return self._verify_checksum(data, checksum)

    # Auto-save

    def enable_auto_save(self) -> None:
        """Save after every event that changes persisted state."""
        if self._auto_save_enabled:
            return
        for event_type in AUTO_SAVE_EVENTS:
            self.event_bus.subscribe(event_type, self._on_state_changed, priority=-100)
        self._auto_save_enabled = True

    def disable_auto_save(self) -> None:
        for event_type in AUTO_SAVE_EVENTS:
            self.event_bus.unsubscribe(event_type, self._on_state_changed)
        self._auto_save_enabled = False

    @property
    def auto_save_enabled(self) -> bool:
        return self._auto_save_enabled

    def _on_state_changed(self, event: Event) -> None:
        self.event_bus.publish(SaveEvent.AUTO_SAVE_TRIGGERED, cause=event.type.name)
        self.save()

    # Internal

    def _create_metadata(self) -> SaveMetadata:
        stats = self.store.stats
        return SaveMetadata(
            timestamp=utc_now().isoformat(),
            level=stats.level,
            total_xp=stats.total_xp,
            goal_count=self.store.goal_count,
            tree_count=len(self.store.trees),
            version=self.VERSION,
        )

    def _calculate_checksum(self, data: dict) -> str:
        """SHA-256 over a deterministic JSON dump, base64 encoded."""
        json_str = json.dumps(data, sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(json_str.encode('utf-8')).digest()
        return base64.b64encode(hash_bytes).decode('ascii')

    def _verify_checksum(self, data: dict, expected_checksum: str) -> bool:
        data_copy = data.copy()
        data_copy.pop('checksum', None)
        return self._calculate_checksum(data_copy) == expected_checksum
