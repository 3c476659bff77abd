import pytest

from levelup.backend.demo import DemoGenerationBackend
from levelup.core.events import EventBus
from levelup.core.model import Branch, Goal, NodeStatus, SkillNode, SkillTree, Stat
from levelup.core.store import EntityStore
from levelup.progression.engine import ProgressionEngine


@pytest.fixture
def event_bus():
    """Fresh EventBus for each test."""
    return EventBus()


@pytest.fixture
def store(event_bus):
    """Empty EntityStore sharing the test's event bus."""
    return EntityStore(event_bus)


@pytest.fixture
def backend():
    """Offline backend; tests can flip ``fail`` or edit ``trees``."""
    return DemoGenerationBackend()


@pytest.fixture
def engine(store, backend):
    """Engine over the shared store with the demo backend."""
    return ProgressionEngine(store=store, backend=backend)


@pytest.fixture
def goal(store):
    """Goal already in the store."""
    return store.add_goal(Goal(title="Learn Rust"))


def build_tree(entries, goal_id="goal-1", tree_id="tree-1", branch_id="main"):
    """
    Build a one-branch tree from ``(id, prerequisites, status)`` tuples.

    A fourth tuple item sets the tier, a fifth the xp value.
    """
    tree = SkillTree(id=tree_id, goal_id=goal_id, title="Test Tree")
    tree.add_branch(Branch(id=branch_id, name="Main"))
    for entry in entries:
        node_id, prereqs, status = entry[:3]
        tier = entry[3] if len(entry) > 3 else 1
        xp = entry[4] if len(entry) > 4 else 100
        tree.add_node(branch_id, SkillNode(
            id=node_id,
            title=node_id.upper(),
            prerequisites=list(prereqs),
            status=status,
            tier=tier,
            xp_value=xp,
        ))
    return tree


@pytest.fixture
def abc_tree():
    """A available; B needs A; C needs A and B."""
    return build_tree([
        ("a", [], NodeStatus.AVAILABLE),
        ("b", ["a"], NodeStatus.LOCKED, 2),
        ("c", ["a", "b"], NodeStatus.LOCKED, 3),
    ])


@pytest.fixture
def chain_tree():
    """a -> b -> c, nothing done yet."""
    return build_tree([
        ("a", [], NodeStatus.AVAILABLE, 1),
        ("b", ["a"], NodeStatus.LOCKED, 2),
        ("c", ["b"], NodeStatus.LOCKED, 3),
    ])


def node_payload(node_id, prereqs=(), status="locked", **fields):
    """Wire node with sensible defaults."""
    payload = {
        'id': node_id,
        'title': fields.pop('title', node_id.upper()),
        'description': "",
        'tier': 1,
        'prerequisites': list(prereqs),
        'completionCriteria': [],
        'estimatedHours': 1.0,
        'xpValue': 100,
        'status': status,
        'linkedStats': [Stat.INT.value],
    }
    payload.update(fields)
    return payload


def tree_payload(nodes, goal_id="goal-1", tree_id="tree-1", branch_id="main"):
    return {
        'id': tree_id,
        'goalId': goal_id,
        'title': "Test Tree",
        'branches': [{'id': branch_id, 'name': "Main", 'nodes': list(nodes)}],
        'generatedAt': "2026-01-05T10:00:00Z",
    }
