"""
Error taxonomy for the progression engine.

- StructuralError: the tree data itself is inconsistent
- StateError: an attempted transition violates the node/goal state machine
- BackendUnavailable: the generation backend failed (opaque)
- InvalidPayload: a backend payload failed schema validation

Structural and state errors are raised before any mutation happens.
"""

from __future__ import annotations

from typing import Iterable


class EngineError(Exception):
    """Base class for all engine errors."""


# Structural

class StructuralError(EngineError):
    """Data-integrity problem in a skill tree."""


class CycleDetected(StructuralError):
    """One or more prerequisite cycles exist."""

    def __init__(self, node_ids: Iterable[str]):
        self.node_ids = sorted(set(node_ids))
        super().__init__(f"Prerequisite cycle through nodes: {', '.join(self.node_ids)}")


class DanglingPrerequisite(StructuralError):
    """A node references a prerequisite that is not in the tree."""

    def __init__(self, node_id: str, missing_id: str):
        self.node_id = node_id
        self.missing_id = missing_id
        super().__init__(f"Node {node_id} requires unknown node {missing_id}")


class DuplicateNode(StructuralError):
    """The same node id appears more than once in a tree."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id: {node_id}")


# State

class StateError(EngineError):
    """Attempted operation is not valid in the current state."""


class NodeNotFound(StateError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} not found")


class TreeNotFound(StateError):
    def __init__(self, tree_id: str):
        self.tree_id = tree_id
        super().__init__(f"Tree {tree_id} not found")


class GoalNotFound(StateError):
    def __init__(self, goal_id: str):
        self.goal_id = goal_id
        super().__init__(f"Goal {goal_id} not found")


class AlreadyCompleted(StateError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} is already completed")


class InvalidTransition(StateError):
    """Node status change not allowed by the state machine."""

    def __init__(self, node_id: str, current: object, requested: object):
        self.node_id = node_id
        self.current = current
        self.requested = requested
        super().__init__(f"Node {node_id}: cannot go from {current} to {requested}")


class ImmutableField(StateError):
    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' cannot be changed")


# Boundary

class BackendUnavailable(EngineError):
    """The generation backend could not serve the request."""


class InvalidPayload(EngineError):
    """A backend payload does not match its schema."""

    def __init__(self, schema_name: str, message: str):
        self.schema_name = schema_name
        super().__init__(f"Invalid {schema_name} payload: {message}")
