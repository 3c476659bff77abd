"""
Entity store: the single owner of goals, trees, nodes and stats.

The store holds:
- All goals (newest first when listed)
- All trees, indexed by goal
- A global node id -> tree id index
- The single UserStats record

Every mutation goes through the store under one re-entrant lock, so
there is never more than one writer for a tree.

Usage:
    store = EntityStore()
    goal = store.add_goal(Goal(title="Ship the app"))
    store.add_tree(tree)

    tree, node = store.find_node(node_id)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterator, Optional

from levelup.core.errors import DuplicateNode, GoalNotFound, NodeNotFound, TreeNotFound
from levelup.core.events import EventBus, ProgressionEvent
from levelup.core.model import Goal, SkillNode, SkillTree, UserStats


logger = logging.getLogger(__name__)


class EntityStore:
    """
    Addressable-by-id storage for all progression records.

    Components that work on trees (resolver, calculator, reconciliation)
    receive references into the store and never keep their own copies.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        stats: UserStats | None = None,
    ):
        self.event_bus = event_bus or EventBus()

        self._goals: dict[str, Goal] = {}
        self._trees: dict[str, SkillTree] = {}

        # goal id -> tree id
        self._tree_by_goal: dict[str, str] = {}

        # node id -> tree id
        self._node_index: dict[str, str] = {}

        self._stats = stats or UserStats()
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Writer lock. Hold it to apply several changes as one step."""
        return self._lock

    # Goals

    def add_goal(self, goal: Goal) -> Goal:
        with self._lock:
            if goal.id in self._goals:
                raise ValueError(f"Goal {goal.id} already in store")
            self._goals[goal.id] = goal

        self.event_bus.publish(ProgressionEvent.GOAL_ADDED, goal=goal)
        return goal

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self._goals.get(goal_id)

    def require_goal(self, goal_id: str) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise GoalNotFound(goal_id)
        return goal

    @property
    def goals(self) -> list[Goal]:
        """All goals, most recently added first."""
        return list(reversed(self._goals.values()))

    @property
    def goal_count(self) -> int:
        return len(self._goals)

    def remove_goal(self, goal_id: str) -> Goal:
        """Remove a goal and cascade to its tree."""
        with self._lock:
            goal = self.require_goal(goal_id)
            tree_id = self._tree_by_goal.get(goal_id)
            if tree_id is not None:
                self.remove_tree(tree_id)
            del self._goals[goal_id]

        self.event_bus.publish(ProgressionEvent.GOAL_DELETED, goal=goal)
        return goal

    # Trees

    def add_tree(self, tree: SkillTree) -> SkillTree:
        """
        Store a tree and assign it to its goal.

        A goal owns at most one tree; an existing tree for the same goal
        is destroyed first.

        Raises:
            GoalNotFound: if the owning goal is unknown
            DuplicateNode: if a node id is already used by another tree
        """
        with self._lock:
            goal = self.require_goal(tree.goal_id)
            if tree.id in self._trees:
                raise ValueError(f"Tree {tree.id} already in store")

            previous_id = self._tree_by_goal.get(goal.id)
            self._check_node_ids(tree, ignore_tree_ids={previous_id})

            if previous_id is not None:
                logger.info(f"Goal {goal.id} gets a new tree, dropping {previous_id}")
                self.remove_tree(previous_id)

            tree.reindex()
            self._trees[tree.id] = tree
            self._tree_by_goal[goal.id] = tree.id
            self._index_nodes(tree)
            goal.tree_id = tree.id

        self.event_bus.publish(ProgressionEvent.TREE_ADDED, tree=tree, goal=goal)
        return tree

    def replace_tree(self, tree: SkillTree) -> SkillTree:
        """Swap in a new version of a stored tree (same id, same goal)."""
        with self._lock:
            current = self.require_tree(tree.id)
            if current.goal_id != tree.goal_id:
                raise ValueError(f"Tree {tree.id} cannot move to goal {tree.goal_id}")
            self._check_node_ids(tree, ignore_tree_ids={tree.id})

            self._unindex_nodes(current)
            tree.reindex()
            self._trees[tree.id] = tree
            self._index_nodes(tree)

        self.event_bus.publish(ProgressionEvent.TREE_REFRESHED, tree=tree)
        return tree

    def get_tree(self, tree_id: str) -> Optional[SkillTree]:
        return self._trees.get(tree_id)

    def require_tree(self, tree_id: str) -> SkillTree:
        tree = self._trees.get(tree_id)
        if tree is None:
            raise TreeNotFound(tree_id)
        return tree

    def tree_for_goal(self, goal_id: str) -> Optional[SkillTree]:
        tree_id = self._tree_by_goal.get(goal_id)
        return self._trees.get(tree_id) if tree_id else None

    @property
    def trees(self) -> list[SkillTree]:
        return list(self._trees.values())

    def remove_tree(self, tree_id: str) -> SkillTree:
        with self._lock:
            tree = self.require_tree(tree_id)
            self._unindex_nodes(tree)
            del self._trees[tree_id]
            self._tree_by_goal.pop(tree.goal_id, None)

            goal = self._goals.get(tree.goal_id)
            if goal is not None and goal.tree_id == tree_id:
                goal.tree_id = None

        self.event_bus.publish(ProgressionEvent.TREE_DELETED, tree=tree)
        return tree

    # Nodes

    def find_node(self, node_id: str) -> tuple[SkillTree, SkillNode]:
        """
        Locate a node anywhere in the store.

        Raises:
            NodeNotFound: if no tree contains the node
        """
        tree_id = self._node_index.get(node_id)
        tree = self._trees.get(tree_id) if tree_id else None
        node = tree.node(node_id) if tree else None
        if tree is None or node is None:
            raise NodeNotFound(node_id)
        return tree, node

    def iter_nodes(self) -> Iterator[tuple[SkillTree, SkillNode]]:
        for tree in self._trees.values():
            for node in tree.all_nodes:
                yield tree, node

    # Stats

    @property
    def stats(self) -> UserStats:
        return self._stats

    # Snapshots

    def to_dict(self) -> dict[str, Any]:
        """Serializable snapshot of the whole store."""
        with self._lock:
            return {
                'goals': [g.model_dump(mode='json') for g in self._goals.values()],
                'trees': [t.model_dump(mode='json') for t in self._trees.values()],
                'stats': self._stats.model_dump(mode='json'),
            }

    def load_dict(self, data: dict[str, Any]) -> None:
        """Replace all contents with a snapshot produced by ``to_dict``."""
        goals = [Goal.model_validate(g) for g in data.get('goals', [])]
        trees = [SkillTree.model_validate(t) for t in data.get('trees', [])]
        stats = UserStats.model_validate(data.get('stats', {}))

        with self._lock:
            self._goals = {g.id: g for g in goals}
            self._trees = {}
            self._tree_by_goal = {}
            self._node_index = {}
            for tree in trees:
                if tree.goal_id not in self._goals:
                    logger.warning(f"Dropping orphan tree {tree.id} (goal {tree.goal_id} missing)")
                    continue
                self._trees[tree.id] = tree
                self._tree_by_goal[tree.goal_id] = tree.id
                self._index_nodes(tree)
            self._stats = stats

    # Internal

    def _check_node_ids(self, tree: SkillTree, ignore_tree_ids: set[Optional[str]]) -> None:
        for node_id in tree.nodes:
            owner = self._node_index.get(node_id)
            if owner is not None and owner not in ignore_tree_ids:
                raise DuplicateNode(node_id)

    def _index_nodes(self, tree: SkillTree) -> None:
        for node_id in tree.nodes:
            self._node_index[node_id] = tree.id

    def _unindex_nodes(self, tree: SkillTree) -> None:
        for node_id in tree.nodes:
            if self._node_index.get(node_id) == tree.id:
                del self._node_index[node_id]
