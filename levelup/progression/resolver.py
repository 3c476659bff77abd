"""
Dependency resolver - unlock propagation over the prerequisite graph.

A locked node becomes available once every prerequisite is completed.
One pass works against a fixed snapshot of the completed set, so a
node made available in this pass never unlocks anything else in the
same pass. Only locked -> available transitions happen here.

Before unlocking, the whole graph (cross-branch edges included) is
checked for cycles and for prerequisites that point outside the tree.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field

from levelup.core.errors import CycleDetected, DanglingPrerequisite, StructuralError
from levelup.core.model import NodeStatus, SkillNode, SkillTree


logger = logging.getLogger(__name__)


def processing_order(tree: SkillTree) -> list[SkillNode]:
    """Nodes sorted by (tier, id) for deterministic passes."""
    return sorted(tree.nodes.values(), key=lambda n: (n.tier, n.id))


def find_dangling(tree: SkillTree) -> list[DanglingPrerequisite]:
    """Every (node, missing prerequisite) pair in the tree."""
    issues = []
    for node in processing_order(tree):
        for prereq_id in sorted(node.prerequisite_set):
            if prereq_id not in tree.nodes:
                issues.append(DanglingPrerequisite(node.id, prereq_id))
    return issues


def _successors(tree: SkillTree, node_id: str) -> list[str]:
    return [p for p in sorted(tree.nodes[node_id].prerequisite_set) if p in tree.nodes]


def find_cycles(tree: SkillTree) -> list[list[str]]:
    """
    Find prerequisite cycles as strongly connected components (Tarjan).

    Every node that lies on some cycle is reported, including nodes
    that only reach the cycle through an already visited node.

    Returns:
        One sorted list of node ids per component of two or more nodes,
        plus one per self-loop. Components are sorted as well.
    """
    counter = itertools.count()
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[list[str]] = []

    def visit(node_id: str) -> None:
        index[node_id] = low[node_id] = next(counter)
        stack.append(node_id)
        on_stack.add(node_id)

    for start in processing_order(tree):
        if start.id in index:
            continue

        visit(start.id)
        # Iterative DFS: (node id, remaining prerequisite ids)
        work = [(start.id, iter(_successors(tree, start.id)))]

        while work:
            node_id, prereqs = work[-1]
            for prereq_id in prereqs:
                if prereq_id not in index:
                    visit(prereq_id)
                    work.append((prereq_id, iter(_successors(tree, prereq_id))))
                    break
                if prereq_id in on_stack:
                    low[node_id] = min(low[node_id], index[prereq_id])
            else:
                work.pop()
                if work:
                    parent_id = work[-1][0]
                    low[parent_id] = min(low[parent_id], low[node_id])

                if low[node_id] == index[node_id]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node_id:
                            break
                    if len(component) > 1 or node_id in tree.nodes[node_id].prerequisite_set:
                        components.append(sorted(component))

    return sorted(components)


@dataclass
class UnlockReport:
    """Outcome of a resolver pass."""
    changed: set[str] = field(default_factory=set)
    cycles: list[list[str]] = field(default_factory=list)
    dangling: list[DanglingPrerequisite] = field(default_factory=list)

    @property
    def cyclic_ids(self) -> set[str]:
        return {node_id for cycle in self.cycles for node_id in cycle}

    @property
    def issues(self) -> list[StructuralError]:
        """Structural problems as error objects, cycles first."""
        issues: list[StructuralError] = []
        if self.cycles:
            issues.append(CycleDetected(self.cyclic_ids))
        issues.extend(self.dangling)
        return issues

    @property
    def is_clean(self) -> bool:
        return not self.cycles and not self.dangling


class DependencyResolver:
    """
    Computes unlocks for a tree.

    ``resolve`` is lenient: nodes on a cycle or with a dangling
    prerequisite are flagged in the report and skipped, every other node
    is processed. ``recompute_unlocks`` is strict and raises before
    touching anything.
    """

    def __init__(self, max_passes: int = 64):
        self.max_passes = max_passes

    def check(self, tree: SkillTree) -> UnlockReport:
        """Structural check only, no mutation."""
        return UnlockReport(cycles=find_cycles(tree), dangling=find_dangling(tree))

    def resolve(self, tree: SkillTree) -> UnlockReport:
        """One unlock pass. Returns the report with the changed ids."""
        report = self.check(tree)
        blocked = report.cyclic_ids | {d.node_id for d in report.dangling}

        if not report.is_clean:
            for issue in report.issues:
                logger.warning(f"Tree {tree.id}: {issue}")

        completed = frozenset(tree.completed_ids)
        eligible = [
            node for node in processing_order(tree)
            if node.status == NodeStatus.LOCKED
            and node.id not in blocked
            and node.prerequisite_set <= completed
        ]

        for node in eligible:
            node.status = NodeStatus.AVAILABLE
            report.changed.add(node.id)

        if report.changed:
            logger.debug(f"Tree {tree.id}: unlocked {sorted(report.changed)}")
        return report

    def resolve_until_stable(self, tree: SkillTree) -> UnlockReport:
        """
        Re-run ``resolve`` until a pass changes nothing.

        Returns:
            Report with the union of all changes and the last structural findings
        """
        total = UnlockReport()
        for _ in range(self.max_passes):
            report = self.resolve(tree)
            total.cycles = report.cycles
            total.dangling = report.dangling
            if not report.changed:
                return total
            total.changed |= report.changed

        logger.error(f"Tree {tree.id}: resolver did not settle after {self.max_passes} passes")
        return total

    def recompute_unlocks(self, tree: SkillTree) -> set[str]:
        """
        Strict single pass.

        Raises:
            CycleDetected: if any prerequisite cycle exists
            DanglingPrerequisite: if a prerequisite is missing from the tree
        """
        report = self.check(tree)
        if not report.is_clean:
            raise report.issues[0]
        return self.resolve(tree).changed


_default_resolver = DependencyResolver()


def recompute_unlocks(tree: SkillTree) -> set[str]:
    """Module-level shortcut for ``DependencyResolver().recompute_unlocks``."""
    return _default_resolver.recompute_unlocks(tree)
