"""
Progression engine - the single entry point for user actions and
backend responses.

User actions (start node, complete node, request refresh) and backend
payloads (generated / refreshed trees) all pass through the entity
store, then the resolver and/or calculator. Refreshes go through the
reconciliation step first.

Backend calls are coroutines. Their responses are applied against the
store's state at the moment they arrive, under the store lock, so
completions made while a refresh was in flight are never lost. A
response whose request was cancelled is discarded.

Usage:
    engine = ProgressionEngine(backend=HttpGenerationBackend("host:8000"))
    goal = await engine.create_goal("Learn Rust")
    update = await engine.generate_tree(goal.id)
    result = engine.complete_node(update.tree.available_nodes[0].id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from levelup.backend.base import GenerationBackend
from levelup.backend.codec import (
    create_goal_request,
    goal_from_payload,
    node_to_payload,
    stats_to_payload,
    tree_from_payload,
    tree_to_payload,
)
from levelup.backend.demo import DemoGenerationBackend, build_demo_tree_payload
from levelup.core.config import EngineConfig
from levelup.core.errors import (
    AlreadyCompleted,
    InvalidPayload,
    InvalidTransition,
    StructuralError,
)
from levelup.core.events import EventBus, ProgressionEvent
from levelup.core.model import Goal, NodeStatus, SkillNode, SkillTree, Timeframe, UserStats, utc_now
from levelup.core.store import EntityStore
from levelup.progression.calculator import LevelCurve, ProgressionCalculator
from levelup.progression.goals import GoalLifecycle
from levelup.progression.reconcile import merge
from levelup.progression.resolver import DependencyResolver, UnlockReport, processing_order


logger = logging.getLogger(__name__)


class CancellationToken:
    """Held by the view that started a request; cancel it when the view goes away."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class TreeUpdate:
    """A tree that was just created from a generated payload."""
    tree: SkillTree
    unlocked: set[str] = field(default_factory=set)
    issues: list[StructuralError] = field(default_factory=list)


@dataclass
class RefreshResult:
    """RefreshTree response; counts come from the local merge."""
    tree: SkillTree
    nodes_added: int = 0
    nodes_modified: int = 0
    nodes_removed: int = 0
    retained_ids: list[str] = field(default_factory=list)
    relocked_ids: list[str] = field(default_factory=list)
    unlocked: set[str] = field(default_factory=set)
    issues: list[StructuralError] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            'tree': tree_to_payload(self.tree),
            'nodesAdded': self.nodes_added,
            'nodesModified': self.nodes_modified,
            'nodesRemoved': self.nodes_removed,
        }


@dataclass
class CompletionResult:
    """CompleteNode response."""
    node: SkillNode
    xp_gained: int
    new_nodes: list[SkillNode] = field(default_factory=list)
    level_up: bool = False
    new_level: Optional[int] = None
    tree_completed: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            'node': node_to_payload(self.node),
            'xpGained': self.xp_gained,
            'newNodes': [node_to_payload(n) for n in self.new_nodes] or None,
            'levelUp': self.level_up,
            'newLevel': self.new_level if self.level_up else None,
        }


class ProgressionEngine:
    """
    Facade over store, resolver, calculator, reconciliation and backend.
    """

    def __init__(
        self,
        store: EntityStore | None = None,
        backend: GenerationBackend | None = None,
        event_bus: EventBus | None = None,
        config: EngineConfig | None = None,
    ):
        self.config = config or EngineConfig()
        self.store = store or EntityStore(event_bus)
        self.event_bus = self.store.event_bus
        self.backend = backend or DemoGenerationBackend()

        self.resolver = DependencyResolver(max_passes=self.config.max_resolver_passes)
        self.calculator = ProgressionCalculator(
            LevelCurve(self.config.xp_per_level_unit),
            tz=self.config.tzinfo,
        )
        self.goals = GoalLifecycle(
            self.store,
            resolver=self.resolver,
            max_pinned=self.config.max_pinned_goals,
        )

    async def close(self) -> None:
        await self.backend.close()

    # Goals

    def add_goal(
        self,
        title: str,
        description: str = "",
        timeframe: Timeframe = Timeframe.QUARTERLY,
        target_date: Optional[date] = None,
    ) -> Goal:
        """Create a goal locally."""
        return self.goals.add_goal(title, description, timeframe, target_date)

    async def create_goal(
        self,
        title: str,
        description: str = "",
        timeframe: Timeframe = Timeframe.QUARTERLY,
        target_date: Optional[date] = None,
    ) -> Goal:
        """Create a goal through the backend and store the returned record."""
        request = create_goal_request(title, description, timeframe, target_date)
        payload = await self.backend.create_goal(request)
        return self.store.add_goal(goal_from_payload(payload))

    def update_goal(self, goal_id: str, **changes: Any) -> Goal:
        return self.goals.update_goal(goal_id, **changes)

    def delete_goal(self, goal_id: str) -> Goal:
        return self.goals.delete_goal(goal_id)

    # Trees

    def create_tree(self, tree: SkillTree) -> TreeUpdate:
        """Attach a generated tree to its goal and run the first unlock pass."""
        report = self.goals.attach_tree(tree)
        self._publish_report(tree, report)
        return TreeUpdate(tree=tree, unlocked=report.changed, issues=report.issues)

    def create_demo_tree(self, goal_id: str) -> TreeUpdate:
        """Give a goal the offline demo tree."""
        goal = self.store.require_goal(goal_id)
        return self.create_tree(tree_from_payload(build_demo_tree_payload(goal.id, goal.title)))

    async def generate_tree(
        self,
        goal_id: str,
        context_source_ids: Optional[list[str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Optional[TreeUpdate]:
        """
        Ask the backend for a tree and attach it to the goal.

        Returns:
            The update, or None when the response was discarded
            (request cancelled or goal deleted meanwhile)
        """
        self.store.require_goal(goal_id)
        payload = await self.backend.generate_tree(goal_id, context_source_ids)

        if self._should_discard(token, "generate", goal_id=goal_id):
            return None
        if self.store.get_goal(goal_id) is None:
            self._discard("generate", reason="goal deleted", goal_id=goal_id)
            return None

        tree = tree_from_payload(payload)
        if tree.goal_id != goal_id:
            raise InvalidPayload("tree", f"generated for goal {tree.goal_id}, expected {goal_id}")

        update = self.create_tree(tree)
        logger.info(f"Generated tree {tree.id} with {tree.total_nodes} nodes for goal {goal_id}")
        return update

    async def refresh_tree(
        self,
        tree_id: str,
        token: Optional[CancellationToken] = None,
    ) -> Optional[RefreshResult]:
        """
        Regenerate a tree and merge it into the local one.

        The merge runs against the tree as it is when the response
        arrives, never against the state at request time.

        Returns:
            The merge result, or None when the response was discarded
        """
        self.store.require_tree(tree_id)
        payload = await self.backend.refresh_tree(tree_id)

        if self._should_discard(token, "refresh", tree_id=tree_id):
            return None

        generated = tree_from_payload(payload)
        if generated.id != tree_id:
            raise InvalidPayload("tree", f"refresh returned tree {generated.id}, expected {tree_id}")

        with self.store.lock:
            existing = self.store.get_tree(tree_id)
            if existing is None:
                self._discard("refresh", reason="tree deleted", tree_id=tree_id)
                return None

            result = merge(existing, generated, self.resolver)
            if result.unlocks.dangling:
                raise result.unlocks.dangling[0]
            self.store.replace_tree(result.tree)

        self._publish_report(result.tree, result.unlocks)
        return RefreshResult(
            tree=result.tree,
            nodes_added=result.nodes_added,
            nodes_modified=result.nodes_modified,
            nodes_removed=result.nodes_removed,
            retained_ids=result.retained_ids,
            relocked_ids=result.relocked_ids,
            unlocked=result.unlocks.changed,
            issues=result.unlocks.issues,
        )

    # Nodes

    def start_node(self, node_id: str) -> SkillNode:
        """
        available -> in_progress. Starting a node already in progress is a no-op.

        Raises:
            NodeNotFound, AlreadyCompleted, InvalidTransition
        """
        with self.store.lock:
            tree, node = self.store.find_node(node_id)
            if node.status == NodeStatus.IN_PROGRESS:
                return node
            if node.status == NodeStatus.COMPLETED:
                raise AlreadyCompleted(node_id)
            if node.status != NodeStatus.AVAILABLE or not node.prerequisite_set <= tree.completed_ids:
                raise InvalidTransition(node_id, node.status, NodeStatus.IN_PROGRESS)

            node.status = NodeStatus.IN_PROGRESS
            tree.last_updated = utc_now()

        self.event_bus.publish(ProgressionEvent.NODE_STARTED, node=node, tree_id=tree.id)
        return node

    def complete_node(
        self,
        node_id: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CompletionResult:
        """
        available | in_progress -> completed, then unlock and award.

        Raises:
            NodeNotFound, AlreadyCompleted, InvalidTransition
        """
        with self.store.lock:
            tree, node = self.store.find_node(node_id)
            if node.status == NodeStatus.COMPLETED:
                raise AlreadyCompleted(node_id)
            # A node is only completable once every prerequisite is done
            if node.status == NodeStatus.LOCKED or not node.prerequisite_set <= tree.completed_ids:
                raise InvalidTransition(node_id, node.status, NodeStatus.COMPLETED)

            now = now or utc_now()
            node.status = NodeStatus.COMPLETED
            node.completed_at = now
            node.completion_notes = notes
            tree.last_updated = now

            report = self.resolver.resolve_until_stable(tree)
            award = self.calculator.apply_completion(
                self.store.stats, node, now, tree_completed=tree.is_complete
            )
            new_nodes = [n for n in processing_order(tree) if n.id in report.changed]

        result = CompletionResult(
            node=node,
            xp_gained=award.xp_gained,
            new_nodes=new_nodes,
            level_up=award.leveled_up,
            new_level=award.new_level,
            tree_completed=award.tree_completed,
        )
        self._publish_completion(tree, result)
        return result

    # Stats

    @property
    def stats(self) -> UserStats:
        return self.store.stats

    def stats_payload(self) -> dict[str, Any]:
        return stats_to_payload(self.store.stats)

    def xp_to_next_level(self) -> int:
        return self.calculator.xp_to_next_level(self.store.stats)

    # Internal

    def _should_discard(self, token: Optional[CancellationToken], request: str, **ids: str) -> bool:
        if token is not None and token.cancelled:
            self._discard(request, reason="cancelled", **ids)
            return True
        return False

    def _discard(self, request: str, reason: str, **ids: str) -> None:
        logger.info(f"Discarding {request} response ({reason}): {ids}")
        self.event_bus.publish(
            ProgressionEvent.RESPONSE_DISCARDED, request=request, reason=reason, **ids
        )

    def _publish_report(self, tree: SkillTree, report: UnlockReport) -> None:
        for issue in report.issues:
            self.event_bus.publish(ProgressionEvent.STRUCTURAL_ERROR, tree_id=tree.id, error=issue)
        if report.changed:
            self.event_bus.publish(
                ProgressionEvent.NODES_UNLOCKED, tree_id=tree.id, node_ids=sorted(report.changed)
            )

    def _publish_completion(self, tree: SkillTree, result: CompletionResult) -> None:
        bus = self.event_bus
        bus.publish(ProgressionEvent.NODE_COMPLETED, node=result.node, tree_id=tree.id)
        if result.new_nodes:
            bus.publish(
                ProgressionEvent.NODES_UNLOCKED,
                tree_id=tree.id,
                node_ids=[n.id for n in result.new_nodes],
            )
        bus.publish(ProgressionEvent.XP_GAINED, amount=result.xp_gained, stats=self.store.stats)
        if result.level_up:
            bus.publish(ProgressionEvent.LEVEL_UP, level=result.new_level)
        if result.tree_completed:
            bus.publish(ProgressionEvent.TREE_COMPLETED, tree=tree)
