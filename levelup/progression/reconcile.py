"""
Reconciliation - merge a regenerated tree into the existing one.

Node identity is the id.
- In both trees: local progress (status, completed_at, completion_notes)
  is kept, content is taken from the generated node.
- Only generated: inserted as locked, eligibility recomputed afterwards.
- Only existing: completed nodes are always kept (moved to a "Legacy"
  branch if the new structure no longer shows them); anything else is
  removed.
- Afterwards completed nodes drop prerequisites that are not completed,
  and unfinished nodes whose prerequisites are not all completed relock.

Branch structure and order follow the generated tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from levelup.core.model import Branch, NodeStatus, SkillNode, SkillTree, utc_now
from levelup.progression.resolver import DependencyResolver, UnlockReport


logger = logging.getLogger(__name__)

LEGACY_BRANCH_ID = "legacy"
LEGACY_BRANCH_NAME = "Legacy"

# Content owned by the generator
CONTENT_FIELDS = (
    "title",
    "description",
    "tier",
    "completion_criteria",
    "estimated_hours",
    "xp_value",
    "prerequisites",
    "linked_stats",
)


@dataclass
class MergeResult:
    """Merged tree plus change counts."""
    tree: SkillTree
    nodes_added: int = 0
    nodes_modified: int = 0
    nodes_removed: int = 0
    retained_ids: list[str] = field(default_factory=list)
    relocked_ids: list[str] = field(default_factory=list)
    unlocks: UnlockReport = field(default_factory=UnlockReport)


def _content_differs(old: SkillNode, new: SkillNode) -> bool:
    for name in CONTENT_FIELDS:
        before, after = getattr(old, name), getattr(new, name)
        if name == "prerequisites":
            before, after = set(before), set(after)
        if before != after:
            return True
    return False


def _adopt_content(local: SkillNode, generated: SkillNode) -> SkillNode:
    """Copy of ``generated`` carrying the local progress fields."""
    merged = generated.clone()
    merged.status = local.status
    merged.completed_at = local.completed_at
    merged.completion_notes = local.completion_notes
    return merged


def _settle_progress(tree: SkillTree, result: MergeResult) -> None:
    """
    Make local progress agree with the adopted prerequisites.

    Completed nodes only keep prerequisites that are themselves completed.
    A started or available node whose new prerequisites are not all
    completed goes back to locked.
    """
    completed = tree.completed_ids
    for node in tree.all_nodes:
        if node.is_completed:
            kept = [p for p in node.prerequisites if p in completed]
            if kept != node.prerequisites:
                node.prerequisites = kept
        elif node.status != NodeStatus.LOCKED and not node.prerequisite_set <= completed:
            node.status = NodeStatus.LOCKED
            result.relocked_ids.append(node.id)


def merge(
    existing: SkillTree,
    generated: SkillTree,
    resolver: DependencyResolver | None = None,
) -> MergeResult:
    """
    Three-way merge of a generated tree into an existing one.

    Neither input is modified. The merged tree keeps the existing tree
    id and goal, and the resolver has already run on it to convergence.
    """
    resolver = resolver or DependencyResolver()
    merged = SkillTree(
        id=existing.id,
        goal_id=existing.goal_id,
        title=generated.title,
        generated_at=generated.generated_at,
        last_updated=utc_now(),
    )
    result = MergeResult(tree=merged)

    for gen_branch in generated.branches:
        branch = merged.add_branch(Branch(id=gen_branch.id, name=gen_branch.name))

        for node_id in gen_branch.node_ids:
            gen_node = generated.nodes[node_id]
            local = existing.node(node_id)

            if local is None:
                node = gen_node.clone()
                node.status = NodeStatus.LOCKED
                node.completed_at = None
                node.completion_notes = None
                result.nodes_added += 1
            else:
                node = _adopt_content(local, gen_node)
                if _content_differs(local, gen_node):
                    result.nodes_modified += 1

            merged.add_node(branch.id, node)

    # Existing-only nodes, in the old display order
    legacy: Branch | None = None
    for node in existing.all_nodes:
        if merged.has_node(node.id):
            continue

        if node.is_completed:
            if legacy is None:
                legacy = merged.branch(LEGACY_BRANCH_ID) or merged.add_branch(
                    Branch(id=LEGACY_BRANCH_ID, name=LEGACY_BRANCH_NAME)
                )
            merged.add_node(legacy.id, node.clone())
            result.retained_ids.append(node.id)
        else:
            result.nodes_removed += 1

    _settle_progress(merged, result)
    result.unlocks = resolver.resolve_until_stable(merged)

    logger.info(
        f"Merged tree {existing.id}: +{result.nodes_added} "
        f"~{result.nodes_modified} -{result.nodes_removed} "
        f"(retained {len(result.retained_ids)}, relocked {len(result.relocked_ids)})"
    )
    return result
