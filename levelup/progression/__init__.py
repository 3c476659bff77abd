"""
Progression module - unlocks, XP, reconciliation, goals.

Provides:
- Dependency resolution and cycle detection
- XP / level / streak / stat arithmetic
- Merging regenerated trees without losing progress
- Goal lifecycle and pinning
- The engine facade tying it all together
"""

from levelup.progression.resolver import (
    DependencyResolver,
    UnlockReport,
    recompute_unlocks,
    find_cycles,
    find_dangling,
)
from levelup.progression.calculator import (
    ProgressionCalculator,
    LevelCurve,
    CompletionAward,
    StreakUpdate,
    update_streak,
)
from levelup.progression.reconcile import (
    merge,
    MergeResult,
    LEGACY_BRANCH_ID,
)
from levelup.progression.goals import GoalLifecycle
from levelup.progression.engine import (
    ProgressionEngine,
    CancellationToken,
    CompletionResult,
    RefreshResult,
    TreeUpdate,
)

__all__ = [
    # Resolver
    "DependencyResolver",
    "UnlockReport",
    "recompute_unlocks",
    "find_cycles",
    "find_dangling",
    # Calculator
    "ProgressionCalculator",
    "LevelCurve",
    "CompletionAward",
    "StreakUpdate",
    "update_streak",
    # Reconciliation
    "merge",
    "MergeResult",
    "LEGACY_BRANCH_ID",
    # Goals
    "GoalLifecycle",
    # Engine
    "ProgressionEngine",
    "CancellationToken",
    "CompletionResult",
    "RefreshResult",
    "TreeUpdate",
]
