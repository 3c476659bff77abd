import asyncio

import pytest

from levelup.backend.codec import tree_from_payload
from levelup.backend.demo import DemoGenerationBackend, build_demo_tree_payload
from levelup.core.errors import BackendUnavailable


def test_demo_tree_shape():
    tree = tree_from_payload(build_demo_tree_payload("goal-1", "Learn Rust", tree_id="t"))

    assert tree.id == "t"
    assert tree.total_nodes == 4
    titles = [n.title for n in tree.all_nodes]
    assert titles[0] == "Research & Planning"
    core = tree.all_nodes[2]
    assert core.prerequisite_set == {tree.all_nodes[0].id, tree.all_nodes[1].id}


def test_generate_uses_goal_title():
    backend = DemoGenerationBackend()

    async def scenario():
        goal = await backend.create_goal({'title': "Learn Rust"})
        return await backend.generate_tree(goal['id'])

    payload = asyncio.run(scenario())
    assert payload['title'] == "Learn Rust"
    assert payload['id'] in backend.trees
    assert backend.calls == ["create_goal", "generate_tree"]


def test_refresh_returns_stored_payload():
    backend = DemoGenerationBackend()
    payload = asyncio.run(backend.generate_tree("goal-1"))

    refreshed = asyncio.run(backend.refresh_tree(payload['id']))

    assert refreshed['id'] == payload['id']
    assert refreshed is not backend.trees[payload['id']]


def test_unknown_tree():
    with pytest.raises(BackendUnavailable):
        asyncio.run(DemoGenerationBackend().refresh_tree("nope"))


def test_fail_flag():
    backend = DemoGenerationBackend()
    backend.fail = True
    with pytest.raises(BackendUnavailable):
        asyncio.run(backend.create_goal({'title': "x"}))
