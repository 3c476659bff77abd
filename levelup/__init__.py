"""
LevelUp Engine

Turns goals into skill trees of quests and tracks progression: unlocks,
XP, levels, streaks and attribute stats.

Quick Start:
    from levelup import ProgressionEngine

    engine = ProgressionEngine()
    goal = engine.add_goal("Learn Rust")
    update = engine.create_demo_tree(goal.id)

    node = update.tree.available_nodes[0]
    result = engine.complete_node(node.id)
    print(result.xp_gained, engine.stats.level)
"""

__version__ = "0.1.0"

# Re-export core components for convenience
from levelup.core import (
    EngineConfig,
    EntityStore,
    EventBus,
    Goal,
    NodeStatus,
    ProgressionEvent,
    SkillNode,
    SkillTree,
    UserStats,
)
from levelup.progression import (
    CancellationToken,
    ProgressionEngine,
)
from levelup.backend import (
    DemoGenerationBackend,
    HttpGenerationBackend,
)
from levelup.save import SaveManager

__all__ = [
    "EngineConfig",
    "EntityStore",
    "EventBus",
    "Goal",
    "NodeStatus",
    "ProgressionEvent",
    "SkillNode",
    "SkillTree",
    "UserStats",
    "CancellationToken",
    "ProgressionEngine",
    "DemoGenerationBackend",
    "HttpGenerationBackend",
    "SaveManager",
]
