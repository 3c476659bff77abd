from datetime import datetime, timezone

from levelup.core.model import Branch, NodeStatus, SkillNode, Stat
from levelup.progression.reconcile import LEGACY_BRANCH_ID, merge
from conftest import build_tree


DONE_AT = datetime(2026, 2, 1, 9, tzinfo=timezone.utc)


def completed(tree, node_id, notes=None):
    node = tree.node(node_id)
    node.status = NodeStatus.COMPLETED
    node.completed_at = DONE_AT
    node.completion_notes = notes
    return node


def test_completed_node_missing_from_regeneration_is_retained():
    existing = build_tree([
        ("x", [], NodeStatus.AVAILABLE),
        ("y", [], NodeStatus.AVAILABLE),
    ])
    completed(existing, "x", notes="done early")
    generated = build_tree([("y", [], NodeStatus.AVAILABLE), ("z", ["y"], NodeStatus.LOCKED)])

    result = merge(existing, generated)

    x = result.tree.node("x")
    assert x.status == NodeStatus.COMPLETED
    assert x.completion_notes == "done early"
    assert result.tree.branch_of("x").id == LEGACY_BRANCH_ID
    assert result.retained_ids == ["x"]
    assert result.nodes_removed == 0
    assert result.nodes_added == 1


def test_merge_never_loses_completed_ids():
    existing = build_tree([
        ("a", [], NodeStatus.AVAILABLE),
        ("b", ["a"], NodeStatus.LOCKED),
        ("c", [], NodeStatus.AVAILABLE),
    ])
    completed(existing, "a")
    completed(existing, "c")
    generated = build_tree([("b", [], NodeStatus.AVAILABLE), ("d", [], NodeStatus.AVAILABLE)])

    result = merge(existing, generated)

    assert existing.completed_ids <= result.tree.completed_ids


def test_shared_nodes_keep_progress_and_adopt_content():
    existing = build_tree([("a", [], NodeStatus.AVAILABLE), ("b", [], NodeStatus.IN_PROGRESS)])
    completed(existing, "a", notes="mine")

    generated = build_tree([("a", [], NodeStatus.AVAILABLE), ("b", [], NodeStatus.LOCKED)])
    generated.node("a").title = "Renamed"
    generated.node("a").xp_value = 300
    generated.node("a").linked_stats = [Stat.STR]

    result = merge(existing, generated)

    a = result.tree.node("a")
    assert a.title == "Renamed"
    assert a.xp_value == 300
    assert a.linked_stats == [Stat.STR]
    assert a.status == NodeStatus.COMPLETED
    assert a.completed_at == DONE_AT
    assert a.completion_notes == "mine"
    assert result.tree.node("b").status == NodeStatus.IN_PROGRESS
    assert result.nodes_modified == 1
    assert result.nodes_added == 0


def test_prerequisite_order_is_not_a_modification():
    existing = build_tree([
        ("a", [], NodeStatus.AVAILABLE),
        ("b", [], NodeStatus.AVAILABLE),
        ("c", ["a", "b"], NodeStatus.LOCKED),
    ])
    generated = build_tree([
        ("a", [], NodeStatus.AVAILABLE),
        ("b", [], NodeStatus.AVAILABLE),
        ("c", ["b", "a"], NodeStatus.LOCKED),
    ])
    assert merge(existing, generated).nodes_modified == 0


def test_unfinished_node_missing_from_regeneration_is_removed():
    existing = build_tree([("a", [], NodeStatus.AVAILABLE), ("b", [], NodeStatus.IN_PROGRESS)])
    generated = build_tree([("a", [], NodeStatus.AVAILABLE)])

    result = merge(existing, generated)

    assert not result.tree.has_node("b")
    assert result.nodes_removed == 1
    assert result.tree.branch(LEGACY_BRANCH_ID) is None


def test_new_nodes_start_locked_then_resolve():
    existing = build_tree([("a", [], NodeStatus.AVAILABLE)])
    completed(existing, "a")
    generated = build_tree([
        ("a", [], NodeStatus.AVAILABLE),
        ("n1", ["a"], NodeStatus.COMPLETED),
        ("n2", ["n1"], NodeStatus.AVAILABLE),
    ])

    result = merge(existing, generated)

    # Generated statuses are never trusted
    assert result.tree.node("n1").status == NodeStatus.AVAILABLE
    assert result.tree.node("n2").status == NodeStatus.LOCKED
    assert result.unlocks.changed == {"n1"}
    assert result.nodes_added == 2


def test_branch_structure_follows_generated_tree():
    existing = build_tree([("a", [], NodeStatus.AVAILABLE)], branch_id="old")
    generated = build_tree([("b", [], NodeStatus.AVAILABLE)], branch_id="first")
    second = generated.add_branch(Branch(id="second", name="Second"))
    generated.add_node(second.id, SkillNode(id="a", title="A"))

    result = merge(existing, generated)

    assert [b.id for b in result.tree.branches] == ["first", "second"]
    assert result.tree.branch_of("a").id == "second"


def test_merge_keeps_identity_and_leaves_inputs_alone():
    existing = build_tree([("a", [], NodeStatus.AVAILABLE)], tree_id="keep", goal_id="g")
    completed(existing, "a")
    generated = build_tree([("a", [], NodeStatus.AVAILABLE)], tree_id="keep", goal_id="g")
    generated.title = "New title"

    result = merge(existing, generated)

    assert result.tree.id == "keep"
    assert result.tree.goal_id == "g"
    assert result.tree.title == "New title"
    assert result.tree is not existing
    assert generated.node("a").status == NodeStatus.AVAILABLE

    result.tree.node("a").completion_notes = "changed"
    assert existing.node("a").completion_notes is None


def test_started_node_with_new_unfinished_prerequisite_is_relocked():
    existing = build_tree([("a", [], NodeStatus.AVAILABLE), ("b", [], NodeStatus.IN_PROGRESS)])
    generated = build_tree([
        ("p", [], NodeStatus.AVAILABLE),
        ("a", ["p"], NodeStatus.AVAILABLE),
        ("b", ["p"], NodeStatus.AVAILABLE),
    ])

    result = merge(existing, generated)

    assert result.tree.node("a").status == NodeStatus.LOCKED
    assert result.tree.node("b").status == NodeStatus.LOCKED
    assert sorted(result.relocked_ids) == ["a", "b"]
    # The new root is unlocked by the resolver
    assert result.tree.node("p").status == NodeStatus.AVAILABLE


def test_started_node_whose_new_prerequisite_is_done_stays_started():
    existing = build_tree([("p", [], NodeStatus.AVAILABLE), ("b", [], NodeStatus.IN_PROGRESS)])
    completed(existing, "p")
    generated = build_tree([("p", [], NodeStatus.AVAILABLE), ("b", ["p"], NodeStatus.LOCKED)])

    result = merge(existing, generated)

    assert result.tree.node("b").status == NodeStatus.IN_PROGRESS
    assert result.relocked_ids == []


def test_completed_node_drops_unfinished_prerequisites():
    existing = build_tree([("x", [], NodeStatus.AVAILABLE)])
    completed(existing, "x")
    generated = build_tree([("p", [], NodeStatus.AVAILABLE), ("x", ["p"], NodeStatus.LOCKED)])

    result = merge(existing, generated)

    x = result.tree.node("x")
    assert x.status == NodeStatus.COMPLETED
    assert x.prerequisites == []
    assert result.tree.node("p").status == NodeStatus.AVAILABLE


def test_retained_node_drops_prerequisites_removed_in_same_merge():
    existing = build_tree([("p", [], NodeStatus.AVAILABLE), ("x", ["p"], NodeStatus.LOCKED)])
    completed(existing, "x")
    generated = build_tree([("y", [], NodeStatus.AVAILABLE)])

    result = merge(existing, generated)

    assert result.retained_ids == ["x"]
    assert not result.tree.has_node("p")
    assert result.tree.node("x").prerequisites == []
    assert result.unlocks.dangling == []


def test_merged_tree_is_sound():
    existing = build_tree([
        ("a", [], NodeStatus.AVAILABLE),
        ("b", ["a"], NodeStatus.AVAILABLE),
        ("c", [], NodeStatus.IN_PROGRESS),
    ])
    completed(existing, "a")
    generated = build_tree([
        ("n", [], NodeStatus.AVAILABLE),
        ("a", ["n"], NodeStatus.LOCKED),
        ("b", ["a"], NodeStatus.LOCKED),
        ("c", ["n"], NodeStatus.LOCKED),
    ])

    tree = merge(existing, generated).tree

    done = tree.completed_ids
    for node in tree.all_nodes:
        if node.status != NodeStatus.LOCKED:
            assert node.prerequisite_set <= done
    assert tree.node("b").status == NodeStatus.AVAILABLE
    assert tree.node("c").status == NodeStatus.LOCKED
