"""
Goal lifecycle - create, edit, delete, pin, and attach trees.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from levelup.core.errors import ImmutableField
from levelup.core.events import ProgressionEvent
from levelup.core.model import Goal, NodeStatus, SkillTree, Timeframe, utc_now
from levelup.core.store import EntityStore
from levelup.progression.resolver import DependencyResolver, UnlockReport


logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


class GoalLifecycle:
    """
    Manages goals and the single tree each goal may own.

    Usage:
        goals = GoalLifecycle(store)
        goal = goals.add_goal("Run a marathon", timeframe=Timeframe.ANNUAL)
        goals.update_goal(goal.id, title="Run a half marathon")
        goals.delete_goal(goal.id)   # also deletes the goal's tree
    """

    EDITABLE_FIELDS = frozenset({"title", "description", "timeframe", "target_date"})
    IMMUTABLE_FIELDS = frozenset({"id", "tree_id"})

    def __init__(
        self,
        store: EntityStore,
        resolver: DependencyResolver | None = None,
        max_pinned: int = 3,
    ):
        self.store = store
        self.resolver = resolver or DependencyResolver()
        self.max_pinned = max_pinned

    # CRUD

    def add_goal(
        self,
        title: str,
        description: str = "",
        timeframe: Timeframe = Timeframe.QUARTERLY,
        target_date: Optional[date] = None,
    ) -> Goal:
        goal = Goal(
            title=title,
            description=description,
            timeframe=timeframe,
            target_date=target_date,
        )
        return self.store.add_goal(goal)

    def update_goal(self, goal_id: str, **changes: Any) -> Goal:
        """
        Edit title, description, timeframe or target date.

        Raises:
            ImmutableField: on an attempt to change id or tree_id
            ValueError: for any other field, or an invalid value
        """
        for name in changes:
            if name in self.IMMUTABLE_FIELDS:
                raise ImmutableField(name)
            if name not in self.EDITABLE_FIELDS:
                raise ValueError(f"Goal field '{name}' is not editable")

        with self.store.lock:
            goal = self.store.require_goal(goal_id)
            # Validate everything before touching the stored record
            Goal.model_validate({**goal.model_dump(), **changes})
            for name, value in changes.items():
                setattr(goal, name, value)

        self.store.event_bus.publish(
            ProgressionEvent.GOAL_UPDATED, goal=goal, fields=sorted(changes)
        )
        return goal

    def delete_goal(self, goal_id: str) -> Goal:
        """Delete a goal and, with it, its tree and nodes. No undo."""
        goal = self.store.remove_goal(goal_id)
        logger.info(f"Deleted goal {goal_id} ({goal.title})")
        return goal

    @property
    def active_goals(self) -> list[Goal]:
        return [g for g in self.store.goals if g.is_active]

    # Trees

    def attach_tree(self, tree: SkillTree) -> UnlockReport:
        """
        Assign a freshly generated tree to its goal.

        Node statuses are reset (no prerequisites -> available, else
        locked) and the resolver runs once before the tree is stored.

        Raises:
            GoalNotFound: if the goal does not exist
            DanglingPrerequisite: if a prerequisite is not in the tree
        """
        self.store.require_goal(tree.goal_id)

        report = self.resolver.check(tree)
        if report.dangling:
            raise report.dangling[0]

        for node in tree.nodes.values():
            node.status = NodeStatus.LOCKED if node.prerequisites else NodeStatus.AVAILABLE
            node.completed_at = None
            node.completion_notes = None

        report = self.resolver.resolve_until_stable(tree)
        self.store.add_tree(tree)
        return report

    # Pinning

    def pinned_goals(self) -> list[Goal]:
        """Pinned goals, most recently pinned first."""
        pinned = [g for g in self.store.goals if g.is_pinned]
        return sorted(pinned, key=lambda g: g.pinned_at or _NEVER, reverse=True)

    def pin(self, goal_id: str, now: Optional[datetime] = None) -> Optional[Goal]:
        """
        Pin a goal. When the pin limit is reached the oldest pin is dropped.

        Returns:
            The goal that got unpinned to make room, if any
        """
        goal = self.store.require_goal(goal_id)
        if goal.is_pinned:
            return None

        unpinned = None
        pinned = self.pinned_goals()
        if len(pinned) >= self.max_pinned:
            unpinned = pinned[-1]
            self.unpin(unpinned.id)

        goal.is_pinned = True
        goal.pinned_at = now or utc_now()
        self.store.event_bus.publish(ProgressionEvent.GOAL_PINNED, goal=goal, unpinned=unpinned)
        return unpinned

    def unpin(self, goal_id: str) -> None:
        goal = self.store.require_goal(goal_id)
        if not goal.is_pinned:
            return
        goal.is_pinned = False
        goal.pinned_at = None
        self.store.event_bus.publish(ProgressionEvent.GOAL_UNPINNED, goal=goal)

    def auto_pin_if_needed(self) -> bool:
        """Pin the newest active goal when nothing is pinned yet."""
        active = self.active_goals
        if not active or any(g.is_pinned for g in active):
            return False

        newest = max(active, key=lambda g: g.created_at)
        self.pin(newest.id)
        return True
