"""
Core module.

Exports:
- Goal, SkillTree, Branch, SkillNode, UserStats: Stored records
- NodeStatus, GoalStatus, Timeframe, Stat: Record enums
- EntityStore: Single owner of all records
- EventBus, Event, ProgressionEvent: Change records
- EngineConfig, configure_logging: Configuration
"""

from levelup.core.model import (
    Goal,
    SkillTree,
    Branch,
    SkillNode,
    UserStats,
    NodeStatus,
    GoalStatus,
    Timeframe,
    Stat,
    new_id,
)
from levelup.core.store import EntityStore
from levelup.core.events import EventBus, Event, ProgressionEvent
from levelup.core.config import EngineConfig, configure_logging

__all__ = [
    # Records
    "Goal",
    "SkillTree",
    "Branch",
    "SkillNode",
    "UserStats",
    "NodeStatus",
    "GoalStatus",
    "Timeframe",
    "Stat",
    "new_id",
    # Store
    "EntityStore",
    # Events
    "EventBus",
    "Event",
    "ProgressionEvent",
    # Config
    "EngineConfig",
    "configure_logging",
]
