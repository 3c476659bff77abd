"""
HTTP generation backend (httpx).

Endpoints:
    POST /api/arise/goals                 - create a goal
    POST /api/arise/trees/generate        - generate a tree for a goal
    POST /api/arise/trees/{id}/refresh    - regenerate a tree
    GET  /api/arise/trees/{id}            - fetch a tree
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from levelup.backend.base import GenerationBackend
from levelup.core.config import EngineConfig
from levelup.core.errors import BackendUnavailable


logger = logging.getLogger(__name__)


def normalize_base_url(server_address: str) -> str:
    """Prefix ``http://`` when no scheme is given and drop trailing slashes."""
    address = server_address.strip()
    if not address:
        return ""
    if not address.startswith(("http://", "https://")):
        address = f"http://{address}"
    return address.rstrip("/")


class HttpGenerationBackend(GenerationBackend):
    """
    Talks to the generation service over HTTP.

    Usage:
        backend = HttpGenerationBackend("192.168.1.20:8000")
        payload = await backend.generate_tree(goal_id)
        await backend.close()
    """

    def __init__(
        self,
        server_address: str,
        timeout: float = 30.0,
        generate_timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = normalize_base_url(server_address)
        self.timeout = timeout
        self.generate_timeout = generate_timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: EngineConfig) -> HttpGenerationBackend:
        return cls(
            config.server_address,
            timeout=config.request_timeout,
            generate_timeout=config.generate_timeout,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        if not self.base_url:
            raise BackendUnavailable("Generation server not configured")

        url = f"{self.base_url}{path}"
        try:
            response = await self._get_client().request(
                method, url, json=json, timeout=timeout or self.timeout
            )
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise BackendUnavailable(f"Server error (status: {response.status_code})")

        try:
            return response.json()
        except ValueError as e:
            raise BackendUnavailable(f"Invalid response from server for {path}") from e

    async def create_goal(self, request: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/api/arise/goals", json=request)

    async def generate_tree(
        self,
        goal_id: str,
        context_source_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        logger.info(f"Requesting tree for goal {goal_id}")
        return await self._request(
            "POST",
            "/api/arise/trees/generate",
            json={'goalId': goal_id, 'contextSourceIds': context_source_ids},
            timeout=self.generate_timeout,
        )

    async def refresh_tree(self, tree_id: str) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"/api/arise/trees/{tree_id}/refresh",
            timeout=self.generate_timeout,
        )
        # Server-side counts are ignored, they are recomputed locally
        if isinstance(data, dict) and isinstance(data.get('tree'), dict):
            return data['tree']
        return data

    async def get_tree(self, tree_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/arise/trees/{tree_id}")
