import pytest
from pydantic import ValidationError

from levelup.core.errors import DuplicateNode
from levelup.core.model import (
    Branch,
    Goal,
    NodeStatus,
    SkillNode,
    SkillTree,
    Stat,
    Timeframe,
    UserStats,
)
from conftest import build_tree


class TestGoal:
    def test_defaults(self):
        goal = Goal(title="Ship it")
        assert goal.id
        assert goal.timeframe == Timeframe.QUARTERLY
        assert goal.is_active
        assert goal.tree_id is None
        assert not goal.is_pinned

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            Goal(title="")

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            Goal(title="x", colour="red")

    def test_timeframe_display_name(self):
        assert Timeframe.ANNUAL.display_name == "Annual"


class TestSkillNode:
    def test_assignment_is_validated(self):
        node = SkillNode(title="Read the book")
        with pytest.raises(ValidationError):
            node.xp_value = -5

    def test_status_coerced_from_wire_value(self):
        node = SkillNode(title="x", status="in_progress")
        assert node.status == NodeStatus.IN_PROGRESS

    @pytest.mark.parametrize("hours,expected", [
        (0.5, "30m"),
        (2.0, "2h"),
        (1.5, "1h 30m"),
        (0, "0m"),
    ])
    def test_formatted_estimate(self, hours, expected):
        assert SkillNode(title="x", estimated_hours=hours).formatted_estimate == expected

    def test_clone_is_deep(self):
        node = SkillNode(title="x", prerequisites=["a"])
        copy = node.clone()
        copy.prerequisites.append("b")
        assert node.prerequisites == ["a"]


class TestStat:
    def test_parse(self):
        assert Stat.parse("int") == Stat.INT
        assert Stat.parse(" Vit ") == Stat.VIT
        assert Stat.parse("LUCK") is None

    def test_field_names(self):
        stats = UserStats()
        for stat in Stat:
            assert stats.get_stat(stat) == 10


class TestSkillTree:
    def test_progress(self):
        tree = build_tree([
            ("a", [], NodeStatus.COMPLETED),
            ("b", [], NodeStatus.AVAILABLE),
            ("c", ["a", "b"], NodeStatus.LOCKED),
            ("d", ["c"], NodeStatus.LOCKED),
        ])
        assert tree.total_nodes == 4
        assert tree.completed_count == 1
        assert tree.progress_percentage == 25.0
        assert not tree.is_complete
        assert [n.id for n in tree.available_nodes] == ["b"]

    def test_empty_tree(self):
        tree = SkillTree(goal_id="g", title="Empty")
        assert tree.progress_percentage == 0.0
        assert not tree.is_complete

    def test_add_node_duplicate_id(self):
        tree = build_tree([("a", [], NodeStatus.AVAILABLE)])
        with pytest.raises(DuplicateNode):
            tree.add_node("main", SkillNode(id="a", title="again"))

    def test_add_node_unknown_branch(self):
        tree = SkillTree(goal_id="g", title="t")
        with pytest.raises(KeyError):
            tree.add_node("nope", SkillNode(title="x"))

    def test_branch_lookup(self):
        tree = build_tree([("a", [], NodeStatus.AVAILABLE)])
        other = tree.add_branch(Branch(id="side", name="Side"))
        tree.add_node(other.id, SkillNode(id="s", title="Side quest"))

        assert tree.branch_of("a").id == "main"
        assert tree.branch_of("s").id == "side"
        assert tree.branch_of("missing") is None
        assert [n.id for n in tree.all_nodes] == ["a", "s"]

    def test_branch_progress(self):
        tree = build_tree([
            ("a", [], NodeStatus.COMPLETED),
            ("b", [], NodeStatus.AVAILABLE),
        ])
        assert tree.branch_progress("main") == 50.0
        assert tree.branch_progress("missing") == 0.0

    def test_index_survives_round_trip(self):
        tree = build_tree([("a", [], NodeStatus.AVAILABLE)])
        restored = SkillTree.model_validate(tree.model_dump(mode='json'))
        assert restored.branch_of("a").id == "main"
        assert restored.node("a").status == NodeStatus.AVAILABLE


def test_user_stats_defaults():
    stats = UserStats()
    assert stats.level == 1
    assert stats.total_xp == 0
    assert stats.last_activity_date is None
    assert stats.stat_totals()[Stat.CHA] == 10

    with pytest.raises(ValidationError):
        stats.level = 0
