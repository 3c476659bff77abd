"""
Progression calculator - XP, levels, streaks and attribute stats.

Level curve:
    Reaching level n takes ``unit * n**2`` total XP (unit = 100 by
    default), so level 2 starts at 400 XP, level 3 at 900, level 5 at
    2500. Level is derived from total XP and therefore never decreases.

Streaks count consecutive calendar days with at least one completion.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Optional

from levelup.core.model import SkillNode, UserStats


class LevelCurve:
    """Quadratic XP curve."""

    def __init__(self, unit: int = 100):
        if unit <= 0:
            raise ValueError("XP unit must be positive")
        self.unit = unit

    def points_for_level(self, level: int) -> int:
        """Total XP at which ``level`` starts. Levels below 1 clamp to 1."""
        level = max(1, level)
        return self.unit * level * level

    def level_for_xp(self, total_xp: int) -> int:
        if total_xp <= 0:
            return 1
        return max(1, math.isqrt(total_xp // self.unit))

    def xp_to_next_level(self, level: int, total_xp: int) -> int:
        return max(0, self.points_for_level(max(1, level) + 1) - total_xp)

    def level_progress(self, total_xp: int) -> float:
        """Progress through the current level in percent."""
        level = self.level_for_xp(total_xp)
        start = self.points_for_level(level) if level > 1 else 0
        end = self.points_for_level(level + 1)
        return (max(0, total_xp) - start) / (end - start) * 100


@dataclass(frozen=True)
class StreakUpdate:
    current: int
    longest: int
    last_activity_date: Optional[date]


def calendar_day(timestamp: datetime | date, tz: Optional[tzinfo] = None) -> date:
    """Calendar day of a timestamp, in ``tz`` when it is timezone aware."""
    if isinstance(timestamp, datetime):
        if tz is not None and timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(tz)
        return timestamp.date()
    return timestamp


def update_streak(
    current: int,
    longest: int,
    last_activity_date: Optional[date],
    now: datetime | date,
    tz: Optional[tzinfo] = None,
) -> StreakUpdate:
    """
    Compute the streak after an activity at ``now``.

    - same day as the last activity: unchanged
    - the next calendar day: current + 1
    - any larger gap, or no prior activity: reset to 1
    - a day before the last activity: unchanged, date kept
    """
    today = calendar_day(now, tz)

    if last_activity_date is None:
        current = 1
    else:
        gap = (today - last_activity_date).days
        if gap < 0:
            return StreakUpdate(current, longest, last_activity_date)
        if gap == 1:
            current += 1
        elif gap > 1:
            current = 1

    return StreakUpdate(current, max(longest, current), today)


@dataclass(frozen=True)
class CompletionAward:
    """What one completion earned."""
    xp_gained: int
    previous_level: int
    new_level: int
    tree_completed: bool = False

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level


class ProgressionCalculator:
    """
    Applies completions to a UserStats record.

    Deterministic: the result depends only on the node, the timestamp
    and the stats passed in. Nothing but that stats record is touched.
    """

    def __init__(self, curve: LevelCurve | None = None, tz: Optional[tzinfo] = None):
        self.curve = curve or LevelCurve()
        self.tz = tz

    def apply_completion(
        self,
        stats: UserStats,
        node: SkillNode,
        completed_at: datetime,
        tree_completed: bool = False,
    ) -> CompletionAward:
        """
        Award a completed node.

        Args:
            stats: Record to update in place
            node: The node that was completed
            completed_at: Completion timestamp (decides the streak day)
            tree_completed: True if this completion brought the tree to 100%
        """
        previous_level = stats.level

        stats.total_xp += node.xp_value
        # Never lower a level, even if the curve changed between sessions
        stats.level = max(previous_level, self.curve.level_for_xp(stats.total_xp))

        for stat in node.linked_stats:
            setattr(stats, stat.field_name, stats.get_stat(stat) + 1)

        streak = update_streak(
            stats.current_streak,
            stats.longest_streak,
            stats.last_activity_date,
            completed_at,
            self.tz,
        )
        stats.current_streak = streak.current
        stats.longest_streak = streak.longest
        stats.last_activity_date = streak.last_activity_date

        stats.nodes_completed += 1
        if tree_completed:
            stats.trees_completed += 1

        return CompletionAward(
            xp_gained=node.xp_value,
            previous_level=previous_level,
            new_level=stats.level,
            tree_completed=tree_completed,
        )

    def xp_to_next_level(self, stats: UserStats) -> int:
        return self.curve.xp_to_next_level(stats.level, stats.total_xp)
