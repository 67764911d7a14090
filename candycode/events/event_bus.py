# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""In-process publish/subscribe bus for loop, tool and streaming events."""

import asyncio
import logging

from collections import defaultdict
from typing import Callable, Dict, List, Optional, ClassVar
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..config import settings
from ..types.event_types import EventType, Event

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class EventBus(BaseModel):
    """
    Process-wide event bus used by the loop controller and the host boundary.

    Events are stored per publisher (a loop session id), so that concurrent
    sessions never see each other's history. Subscribers are async callables
    keyed by event type; a failing subscriber is logged and does not stop
    delivery to the others.

    Only the most recent `max_stored_sessions` sessions keep their events;
    hosts call `forget` once they have delivered a finished session.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _instance: ClassVar[Optional["EventBus"]] = None
    _lock: ClassVar[Optional[asyncio.Lock]] = None

    max_stored_sessions: int = Field(default_factory=lambda: settings.EVENT_STORE_SESSIONS)

    _subscribers: Dict[EventType, List[Callable]] = PrivateAttr(
        default_factory=lambda: defaultdict(list)
    )
    _event_store: Dict[str, List[Event]] = PrivateAttr(default_factory=dict)

    def __new__(cls, *args, **kwargs) -> "EventBus":
        raise TypeError(
            "EventBus should not be instantiated directly. "
            "Use 'await EventBus.get_instance()' instead."
        )

    @classmethod
    async def get_instance(cls) -> "EventBus":
        """Get or create the singleton instance.

        Returns:
            The global EventBus instance.
        """
        if not cls._lock:
            cls._lock = asyncio.Lock()

        async with cls._lock:
            if not cls._instance:
                instance = super(EventBus, cls).__new__(cls)
                instance.__init__()
                cls._instance = instance
            return cls._instance

    async def publish(self, event: Event, publisher_id: str) -> None:
        """Publish an event to the bus.

        Args:
            event: The event to publish
            publisher_id: Id of the publishing session
        """
        logger.debug(f"New event from {publisher_id}: {event.type}")
        event.metadata["publisher_id"] = publisher_id

        if publisher_id not in self._event_store:
            while self._event_store and len(self._event_store) >= self.max_stored_sessions:
                # Evict the oldest session
                self._event_store.pop(next(iter(self._event_store)))
            self._event_store[publisher_id] = []
        self._event_store[publisher_id].append(event)

        for callback in list(self._subscribers[event.type]):
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Error in event subscriber {callback}: {e}")

    def subscribe(
        self,
        event_type: EventType | set[EventType] | list[EventType] | tuple[EventType],
        callback: Callable,
    ) -> None:
        """Subscribe to events of one or more types.

        Args:
            event_type: Single EventType or collection of EventTypes to subscribe to
            callback: Async callback function for event handling
        """
        if isinstance(event_type, (set, list, tuple)):
            for et in event_type:
                self._subscribers[et].append(callback)
        else:
            self._subscribers[event_type].append(callback)

    def unsubscribe(
        self,
        event_type: EventType | set[EventType] | list[EventType] | tuple[EventType],
        callback: Callable,
    ) -> None:
        if isinstance(event_type, (set, list, tuple)):
            for et in event_type:
                if callback in self._subscribers[et]:
                    self._subscribers[et].remove(callback)
        elif callback in self._subscribers[event_type]:
            self._subscribers[event_type].remove(callback)

    def get_events(self, publisher_id: str) -> List[Event]:
        """Get all events published by one session."""
        return self._event_store.get(publisher_id, [])

    def get_events_by_type(self, event_type: EventType) -> List[Event]:
        """Get all events of a specific type across all sessions."""
        events = []
        for publisher_events in self._event_store.values():
            events.extend([e for e in publisher_events if e.type == event_type])
        return events

    def forget(self, publisher_id: str) -> None:
        """Drop the stored events of a finished session."""
        self._event_store.pop(publisher_id, None)

    def clear(self) -> None:
        """Clear all events and subscribers (mainly for testing)."""
        self._event_store.clear()
        self._subscribers.clear()
