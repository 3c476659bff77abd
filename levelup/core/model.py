"""
Records owned by the entity store.

Records are data containers built on Pydantic for:
- Automatic validation (also on assignment)
- JSON serialization for saves
- Type hints and defaults

Skill trees are stored as an arena: ``SkillTree.nodes`` maps node id to
node, branches only keep ordered node ids, and the tree maintains an
id -> branch index so lookups during merges are O(1).
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from levelup.core.errors import DuplicateNode


def new_id() -> str:
    """Generate a fresh record id."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """
    Base class for all stored records.

    Assignments are validated so a bad status or a negative XP value
    never reaches the store.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid',
    )

    def clone(self):
        """Create a deep copy of this record."""
        return self.model_copy(deep=True)


# Enums

class Timeframe(Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class GoalStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class NodeStatus(Enum):
    """SkillNode lifecycle: locked -> available -> in_progress -> completed."""
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Stat(Enum):
    """Attribute stats a node can train."""
    STR = "STR"
    INT = "INT"
    WIS = "WIS"
    DEX = "DEX"
    CHA = "CHA"
    VIT = "VIT"

    @property
    def field_name(self) -> str:
        """Name of the matching counter on UserStats."""
        return _STAT_FIELDS[self]

    @classmethod
    def parse(cls, name: str) -> Optional[Stat]:
        """Case-insensitive lookup, None for unknown names."""
        try:
            return cls(name.strip().upper())
        except ValueError:
            return None


_STAT_FIELDS = {
    Stat.STR: "strength",
    Stat.INT: "intelligence",
    Stat.WIS: "wisdom",
    Stat.DEX: "dexterity",
    Stat.CHA: "charisma",
    Stat.VIT: "vitality",
}


# Records

class Goal(Record):
    """A user goal. Owns at most one skill tree."""
    id: str = Field(default_factory=new_id)
    title: str = Field(min_length=1)
    description: str = ""
    timeframe: Timeframe = Timeframe.QUARTERLY
    target_date: Optional[date] = None
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    tree_id: Optional[str] = None

    # Pinning
    is_pinned: bool = False
    pinned_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE


class SkillNode(Record):
    """A single quest in a skill tree."""
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    tier: int = Field(default=1, ge=0)
    prerequisites: list[str] = Field(default_factory=list)
    completion_criteria: list[str] = Field(default_factory=list)
    estimated_hours: float = Field(default=2.0, ge=0)
    xp_value: int = Field(default=100, ge=0)
    status: NodeStatus = NodeStatus.LOCKED
    linked_stats: list[Stat] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == NodeStatus.COMPLETED

    @property
    def prerequisite_set(self) -> frozenset[str]:
        return frozenset(self.prerequisites)

    @property
    def formatted_estimate(self) -> str:
        """Estimate as "30m", "2h" or "1h 30m"."""
        hours, minutes = divmod(round(self.estimated_hours * 60), 60)
        if hours == 0:
            return f"{minutes}m"
        if minutes == 0:
            return f"{hours}h"
        return f"{hours}h {minutes}m"


class Branch(Record):
    """Ordered group of nodes. Order is display order only."""
    id: str = Field(default_factory=new_id)
    name: str
    node_ids: list[str] = Field(default_factory=list)


class SkillTree(Record):
    """
    A generated skill tree for one goal.

    Nodes live in ``nodes`` keyed by id. Use ``add_node`` to keep the
    branch index in sync; call ``reindex`` after editing branches by hand.
    """
    id: str = Field(default_factory=new_id)
    goal_id: str
    title: str
    branches: list[Branch] = Field(default_factory=list)
    nodes: dict[str, SkillNode] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)

    # node id -> branch id
    _locations: dict[str, str] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self.reindex()

    def reindex(self) -> None:
        """Rebuild the node id -> branch id index."""
        self._locations = {}
        for branch in self.branches:
            for node_id in branch.node_ids:
                self._locations.setdefault(node_id, branch.id)

    # Structure

    def add_branch(self, branch: Branch) -> Branch:
        self.branches.append(branch)
        for node_id in branch.node_ids:
            self._locations.setdefault(node_id, branch.id)
        return branch

    def add_node(self, branch_id: str, node: SkillNode) -> SkillNode:
        """
        Add a node to a branch.

        Raises:
            DuplicateNode: if the id is already used in this tree
            KeyError: if the branch does not exist
        """
        if node.id in self.nodes:
            raise DuplicateNode(node.id)
        branch = self.branch(branch_id)
        if branch is None:
            raise KeyError(f"Branch {branch_id} not found")

        self.nodes[node.id] = node
        branch.node_ids.append(node.id)
        self._locations[node.id] = branch.id
        return node

    def branch(self, branch_id: str) -> Optional[Branch]:
        for branch in self.branches:
            if branch.id == branch_id:
                return branch
        return None

    def branch_of(self, node_id: str) -> Optional[Branch]:
        """Branch that displays a node."""
        branch_id = self._locations.get(node_id)
        return self.branch(branch_id) if branch_id else None

    def node(self, node_id: str) -> Optional[SkillNode]:
        return self.nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    # Aggregates

    @property
    def all_nodes(self) -> list[SkillNode]:
        """Nodes in display order (branch by branch)."""
        return [
            self.nodes[node_id]
            for branch in self.branches
            for node_id in branch.node_ids
            if node_id in self.nodes
        ]

    @property
    def completed_ids(self) -> set[str]:
        return {n.id for n in self.nodes.values() if n.is_completed}

    @property
    def available_nodes(self) -> list[SkillNode]:
        return [n for n in self.all_nodes if n.status == NodeStatus.AVAILABLE]

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @property
    def completed_count(self) -> int:
        return len(self.completed_ids)

    @property
    def progress_percentage(self) -> float:
        """Completed / total * 100, 0 for an empty tree."""
        if not self.nodes:
            return 0.0
        return self.completed_count / self.total_nodes * 100

    @property
    def is_complete(self) -> bool:
        return bool(self.nodes) and self.completed_count == self.total_nodes

    def branch_progress(self, branch_id: str) -> float:
        branch = self.branch(branch_id)
        if branch is None or not branch.node_ids:
            return 0.0
        done = sum(
            1 for node_id in branch.node_ids
            if node_id in self.nodes and self.nodes[node_id].is_completed
        )
        return done / len(branch.node_ids) * 100


class UserStats(Record):
    """
    Player progression.

    Attributes:
        level: Derived from total_xp by the level curve, never decreases
        total_xp: Lifetime XP
        current_streak: Consecutive days with a completion
        longest_streak: Best streak so far
        strength..vitality: Attribute counters trained by linked stats
        last_activity_date: Day of the last completion (internal)
    """
    level: int = Field(default=1, ge=1)
    total_xp: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    nodes_completed: int = Field(default=0, ge=0)
    trees_completed: int = Field(default=0, ge=0)

    strength: int = Field(default=10, ge=0)
    intelligence: int = Field(default=10, ge=0)
    wisdom: int = Field(default=10, ge=0)
    dexterity: int = Field(default=10, ge=0)
    charisma: int = Field(default=10, ge=0)
    vitality: int = Field(default=10, ge=0)

    last_activity_date: Optional[date] = None

    def get_stat(self, stat: Stat) -> int:
        return getattr(self, stat.field_name)

    def stat_totals(self) -> dict[Stat, int]:
        return {stat: self.get_stat(stat) for stat in Stat}
