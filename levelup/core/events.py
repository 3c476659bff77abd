"""
Change records for the progression engine.

The engine never calls presentation code. Each state change is published
on the bus as an Enum-typed event; views subscribe to the kinds they
render and unsubscribe (or simply go away) when they close.

Usage:
    bus.subscribe(ProgressionEvent.NODE_COMPLETED, view.on_node_completed)
    bus.publish(ProgressionEvent.NODE_COMPLETED, node=node, tree_id=tree.id)
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Optional
from weakref import WeakMethod, ref


logger = logging.getLogger(__name__)


class ProgressionEvent(Enum):
    """What changed in the store."""
    # Goals
    GOAL_ADDED = auto()
    GOAL_UPDATED = auto()
    GOAL_DELETED = auto()
    GOAL_PINNED = auto()
    GOAL_UNPINNED = auto()

    # Trees
    TREE_ADDED = auto()
    TREE_REFRESHED = auto()
    TREE_DELETED = auto()
    TREE_COMPLETED = auto()

    # Nodes
    NODE_STARTED = auto()
    NODE_COMPLETED = auto()
    NODES_UNLOCKED = auto()

    # Stats
    XP_GAINED = auto()
    LEVEL_UP = auto()

    # Integrity / async
    STRUCTURAL_ERROR = auto()
    RESPONSE_DISCARDED = auto()


@dataclass
class Event:
    """
    One published change.

    Attributes:
        type: Enum member naming the change
        data: Keyword payload given to ``publish``
        consumed: Set by a handler to keep lower-priority handlers from running
    """
    type: Enum
    data: dict[str, Any] = field(default_factory=dict)
    consumed: bool = False

    def consume(self) -> None:
        self.consumed = True

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


EventHandler = Callable[[Event], None]

_sequence = itertools.count()


@dataclass
class _Subscription:
    priority: int
    target: Any
    one_shot: bool
    weak: bool
    # Tie-breaker so equal priorities run in subscription order
    order: int = field(default_factory=lambda: next(_sequence))

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.order)

    def resolve(self) -> Optional[EventHandler]:
        """The live callable, or None once a weak target was collected."""
        return self.target() if self.weak else self.target


class EventBus:
    """
    Publish/subscribe hub keyed by Enum members.

    Handlers run highest priority first. By default the bus only keeps
    weak references, so a view that is garbage collected stops receiving
    events without unsubscribing. Events published from inside a handler
    are queued and delivered after the current dispatch finishes.
    A failing handler is logged and does not stop the others.
    """

    def __init__(self):
        self._subscriptions: dict[Enum, list[_Subscription]] = {}
        self._pending: deque[Event] = deque()
        self._dispatching = False

    def subscribe(
        self,
        event_type: Enum,
        handler: EventHandler,
        priority: int = 0,
        one_shot: bool = False,
        weak: bool = True,
    ) -> None:
        """
        Register ``handler`` for ``event_type``.

        Args:
            priority: Larger runs earlier
            one_shot: Drop the handler after its first call
            weak: Hold only a weak reference (bound methods via WeakMethod)
        """
        if weak:
            target = WeakMethod(handler) if hasattr(handler, '__self__') else ref(handler)
        else:
            target = handler

        subscriptions = self._subscriptions.setdefault(event_type, [])
        subscriptions.append(_Subscription(priority, target, one_shot, weak))
        subscriptions.sort(key=lambda s: s.sort_key)

    def unsubscribe(self, event_type: Enum, handler: EventHandler) -> None:
        subscriptions = self._subscriptions.get(event_type)
        if subscriptions:
            subscriptions[:] = [s for s in subscriptions if s.resolve() != handler]

    def publish(self, event_type: Enum, **data: Any) -> Event:
        """Publish a change and return the Event (see ``consumed``)."""
        event = Event(type=event_type, data=data)
        self.publish_event(event)
        return event

    def publish_event(self, event: Event) -> None:
        self._pending.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                self._deliver(self._pending.popleft())
        finally:
            self._dispatching = False

    def clear(self, event_type: Enum | None = None) -> None:
        """Drop the handlers of one event type, or of all types."""
        if event_type is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(event_type, None)

    def handler_count(self, event_type: Enum) -> int:
        """Number of live handlers registered for an event type."""
        return sum(
            1 for s in self._subscriptions.get(event_type, [])
            if s.resolve() is not None
        )

    def _deliver(self, event: Event) -> None:
        subscriptions = self._subscriptions.get(event.type)
        if not subscriptions:
            return

        finished: list[_Subscription] = []
        # Handlers may (un)subscribe while running, walk a copy
        for subscription in list(subscriptions):
            handler = subscription.resolve()
            if handler is None:
                finished.append(subscription)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in event handler for {event.type}")

            if subscription.one_shot:
                finished.append(subscription)
            if event.consumed:
                break

        if finished:
            subscriptions[:] = [
                s for s in subscriptions
                if not any(s is done for done in finished)
            ]
