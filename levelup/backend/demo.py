"""
Offline demo backend.

Produces a small four-quest tree for any goal so the engine can be used
without a generation server. Also handy in tests: payloads can be
edited between calls to simulate a regeneration, ``fail`` simulates an
outage and ``gate`` holds responses until released.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Optional

from levelup.backend.base import GenerationBackend
from levelup.core.errors import BackendUnavailable
from levelup.core.model import new_id, utc_now


def build_demo_tree_payload(
    goal_id: str,
    title: str,
    tree_id: Optional[str] = None,
) -> dict[str, Any]:
    """Tree payload: two starter quests, one core quest, one finale."""
    research, setup, core, ship = (new_id() for _ in range(4))

    nodes = [
        {
            'id': research,
            'title': "Research & Planning",
            'description': "Define scope and research requirements",
            'tier': 1,
            'prerequisites': [],
            'completionCriteria': ["Document requirements", "Create initial roadmap"],
            'estimatedHours': 3.0,
            'xpValue': 100,
            'status': "available",
            'linkedStats': ["INT", "WIS"],
        },
        {
            'id': setup,
            'title': "Setup Development Environment",
            'description': "Configure tools and dependencies",
            'tier': 1,
            'prerequisites': [],
            'completionCriteria': ["Install dependencies", "Configure project"],
            'estimatedHours': 2.0,
            'xpValue': 75,
            'status': "available",
            'linkedStats': ["DEX"],
        },
        {
            'id': core,
            'title': "Core Implementation",
            'description': "Build the main functionality",
            'tier': 2,
            'prerequisites': [research, setup],
            'completionCriteria': ["Implement core features", "Write unit tests"],
            'estimatedHours': 8.0,
            'xpValue': 250,
            'status': "locked",
            'linkedStats': ["INT", "DEX"],
        },
        {
            'id': ship,
            'title': "Polish & Ship",
            'description': "Final refinements and deployment",
            'tier': 3,
            'prerequisites': [core],
            'completionCriteria': ["Fix remaining bugs", "Deploy to production"],
            'estimatedHours': 4.0,
            'xpValue': 300,
            'status': "locked",
            'linkedStats': ["WIS", "CHA"],
        },
    ]

    return {
        'id': tree_id or new_id(),
        'goalId': goal_id,
        'title': title,
        'branches': [{'id': new_id(), 'name': title, 'nodes': nodes}],
        'generatedAt': utc_now().isoformat(),
    }


class DemoGenerationBackend(GenerationBackend):
    """In-memory backend serving demo trees."""

    def __init__(self, gate: Optional[asyncio.Event] = None):
        self.goals: dict[str, dict[str, Any]] = {}
        self.trees: dict[str, dict[str, Any]] = {}
        self.gate = gate
        self.fail = False
        self.calls: list[str] = []

    async def _respond(self, call: str) -> None:
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise BackendUnavailable(f"Demo backend offline ({call})")

    async def create_goal(self, request: dict[str, Any]) -> dict[str, Any]:
        await self._respond("create_goal")
        goal = {
            'id': new_id(),
            'title': request['title'],
            'description': request.get('description', ""),
            'timeframe': request.get('timeframe', "quarterly"),
            'targetDate': request.get('targetDate'),
            'status': "active",
            'createdAt': utc_now().isoformat(),
        }
        self.goals[goal['id']] = goal
        return copy.deepcopy(goal)

    async def generate_tree(
        self,
        goal_id: str,
        context_source_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        await self._respond("generate_tree")
        goal = self.goals.get(goal_id, {})
        payload = build_demo_tree_payload(goal_id, goal.get('title', "Quest Line"))
        self.trees[payload['id']] = payload
        return copy.deepcopy(payload)

    async def refresh_tree(self, tree_id: str) -> dict[str, Any]:
        await self._respond("refresh_tree")
        if tree_id not in self.trees:
            raise BackendUnavailable(f"Unknown tree {tree_id}")
        payload = self.trees[tree_id]
        payload['generatedAt'] = utc_now().isoformat()
        return copy.deepcopy(payload)

    async def get_tree(self, tree_id: str) -> dict[str, Any]:
        await self._respond("get_tree")
        if tree_id not in self.trees:
            raise BackendUnavailable(f"Unknown tree {tree_id}")
        return copy.deepcopy(self.trees[tree_id])
