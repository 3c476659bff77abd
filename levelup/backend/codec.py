"""
Wire codec - camelCase backend payloads <-> records.

Shapes:
    Goal  = {id, title, description, timeframe, targetDate, status, createdAt}
    Tree  = {id, goalId, title, branches: [{id, name, nodes: [Node]}], generatedAt}
    Node  = {id, title, description, tier, prerequisites, completionCriteria,
             estimatedHours, xpValue, status, linkedStats}
    Stats = {level, totalXP, currentStreak, longestStreak, nodesCompleted,
             treesCompleted, str, int, wis, dex, cha, vit}
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from levelup.backend.schema import validate_payload
from levelup.core.model import (
    Branch,
    Goal,
    GoalStatus,
    NodeStatus,
    SkillNode,
    SkillTree,
    Stat,
    Timeframe,
    UserStats,
    utc_now,
)


logger = logging.getLogger(__name__)

_STATUS_ALIASES = {"inProgress": NodeStatus.IN_PROGRESS.value}


# Dates

def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp.

    Accepts a trailing ``Z``, fractional seconds, and timestamps without
    an offset (taken as UTC).
    """
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# Goals

def goal_from_payload(data: dict[str, Any]) -> Goal:
    validate_payload("goal", data)
    return Goal(
        id=data['id'],
        title=data['title'],
        description=data.get('description') or "",
        timeframe=Timeframe(data.get('timeframe') or Timeframe.QUARTERLY.value),
        target_date=parse_date(data.get('targetDate')),
        status=GoalStatus(data.get('status') or GoalStatus.ACTIVE.value),
        created_at=parse_datetime(data.get('createdAt')) or utc_now(),
    )


def goal_to_payload(goal: Goal) -> dict[str, Any]:
    return {
        'id': goal.id,
        'title': goal.title,
        'description': goal.description,
        'timeframe': goal.timeframe.value,
        'targetDate': goal.target_date.isoformat() if goal.target_date else None,
        'status': goal.status.value,
        'createdAt': format_datetime(goal.created_at),
    }


def create_goal_request(
    title: str,
    description: str = "",
    timeframe: Timeframe = Timeframe.QUARTERLY,
    target_date: Optional[date] = None,
) -> dict[str, Any]:
    return {
        'title': title,
        'description': description,
        'timeframe': timeframe.value,
        'targetDate': target_date.isoformat() if target_date else None,
    }


# Nodes and trees

def parse_stats(names: list[str]) -> list[Stat]:
    """Map stat names to Stat members, dropping unknown names."""
    stats = []
    for name in names:
        stat = Stat.parse(name)
        if stat is None:
            logger.warning(f"Ignoring unknown stat '{name}'")
        elif stat not in stats:
            stats.append(stat)
    return stats


def node_from_payload(data: dict[str, Any]) -> SkillNode:
    status = data.get('status') or NodeStatus.LOCKED.value
    return SkillNode(
        id=data['id'],
        title=data['title'],
        description=data.get('description') or "",
        tier=data.get('tier', 1),
        prerequisites=list(dict.fromkeys(data.get('prerequisites', []))),
        completion_criteria=list(data.get('completionCriteria', [])),
        estimated_hours=data.get('estimatedHours', 2.0),
        xp_value=data.get('xpValue', 100),
        status=NodeStatus(_STATUS_ALIASES.get(status, status)),
        linked_stats=parse_stats(data.get('linkedStats', [])),
        completed_at=parse_datetime(data.get('completedAt')),
        completion_notes=data.get('completionNotes'),
    )


def node_to_payload(node: SkillNode) -> dict[str, Any]:
    return {
        'id': node.id,
        'title': node.title,
        'description': node.description,
        'tier': node.tier,
        'prerequisites': list(node.prerequisites),
        'completionCriteria': list(node.completion_criteria),
        'estimatedHours': node.estimated_hours,
        'xpValue': node.xp_value,
        'status': node.status.value,
        'linkedStats': [s.value for s in node.linked_stats],
        'completedAt': format_datetime(node.completed_at),
        'completionNotes': node.completion_notes,
    }


def tree_from_payload(data: dict[str, Any]) -> SkillTree:
    """
    Build a tree from a Tree payload.

    Raises:
        InvalidPayload: if the payload does not match the tree schema
        DuplicateNode: if a node id appears twice
    """
    validate_payload("tree", data)

    tree = SkillTree(
        id=data['id'],
        goal_id=data['goalId'],
        title=data['title'],
        generated_at=parse_datetime(data.get('generatedAt')) or utc_now(),
    )
    for branch_data in data['branches']:
        branch = tree.add_branch(Branch(id=branch_data['id'], name=branch_data['name']))
        for node_data in branch_data['nodes']:
            tree.add_node(branch.id, node_from_payload(node_data))

    return tree


def tree_to_payload(tree: SkillTree) -> dict[str, Any]:
    return {
        'id': tree.id,
        'goalId': tree.goal_id,
        'title': tree.title,
        'branches': [
            {
                'id': branch.id,
                'name': branch.name,
                'nodes': [
                    node_to_payload(tree.nodes[node_id])
                    for node_id in branch.node_ids
                    if node_id in tree.nodes
                ],
            }
            for branch in tree.branches
        ],
        'generatedAt': format_datetime(tree.generated_at),
    }


# Stats

def stats_to_payload(stats: UserStats) -> dict[str, Any]:
    payload = {
        'level': stats.level,
        'totalXP': stats.total_xp,
        'currentStreak': stats.current_streak,
        'longestStreak': stats.longest_streak,
        'nodesCompleted': stats.nodes_completed,
        'treesCompleted': stats.trees_completed,
    }
    for stat in Stat:
        payload[stat.value.lower()] = stats.get_stat(stat)
    return payload
