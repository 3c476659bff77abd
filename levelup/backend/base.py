"""
Generation backend interface.

The backend creates goals remotely and produces skill tree payloads.
It never sees local progress; the engine merges refreshed trees itself.
All methods return raw wire payloads (see ``levelup.backend.codec``) and
raise ``BackendUnavailable`` on failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional


class GenerationBackend(ABC):
    """Remote collaborator that generates tree content."""

    @abstractmethod
    async def create_goal(self, request: dict[str, Any]) -> dict[str, Any]:
        """CreateGoal(title, description, timeframe, targetDate?) -> Goal payload."""

    @abstractmethod
    async def generate_tree(
        self,
        goal_id: str,
        context_source_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """GenerateTree(goalId, contextSourceIds?) -> Tree payload."""

    @abstractmethod
    async def refresh_tree(self, tree_id: str) -> dict[str, Any]:
        """RefreshTree(treeId) -> fresh Tree payload (same tree id)."""

    @abstractmethod
    async def get_tree(self, tree_id: str) -> dict[str, Any]:
        """Fetch the backend's current copy of a tree."""

    async def close(self) -> None:
        """Release transport resources."""
