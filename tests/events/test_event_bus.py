# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Tests for the event bus module.

These tests verify the core functionality of the EventBus class, which carries
loop, tool and error events from each session to the host.
"""
import pytest
from unittest.mock import AsyncMock

from candycode.events.event_bus import EventBus
from candycode.types.event_types import EventType, Event

# Mark all tests as asyncio tests
pytestmark = pytest.mark.asyncio


@pytest.fixture
async def reset_event_bus():
    """Reset the EventBus singleton between tests."""
    EventBus._instance = None
    EventBus._lock = None

    event_bus = await EventBus.get_instance()
    yield event_bus

    event_bus.clear()
    EventBus._instance = None
    EventBus._lock = None


async def test_singleton_pattern(reset_event_bus):
    """Test that EventBus follows the singleton pattern."""
    instance1 = await EventBus.get_instance()
    instance2 = await EventBus.get_instance()

    assert instance1 is instance2

    # Check that direct instantiation is prevented
    with pytest.raises(TypeError):
        EventBus()


async def test_publish_subscribe(reset_event_bus):
    """Test basic publish and subscribe functionality."""
    event_bus = reset_event_bus
    mock_callback = AsyncMock()
    event_bus.subscribe(EventType.TOOL_CALL, mock_callback)

    event = Event(type=EventType.TOOL_CALL, content="read_file")
    await event_bus.publish(event, "session_1")

    mock_callback.assert_called_once()
    called_event = mock_callback.call_args[0][0]
    assert called_event.type == EventType.TOOL_CALL
    assert called_event.content == "read_file"
    assert called_event.metadata.get("publisher_id") == "session_1"


async def test_subscribe_multiple_types(reset_event_bus):
    """Test subscribing to multiple event types at once."""
    event_bus = reset_event_bus
    mock_callback = AsyncMock()

    event_types = {EventType.TOOL_CALL, EventType.TOOL_RESULT}
    event_bus.subscribe(event_types, mock_callback)

    for event_type in event_types:
        await event_bus.publish(Event(type=event_type, content=event_type.value), "session_1")

    assert mock_callback.call_count == len(event_types)


async def test_unsubscribe(reset_event_bus):
    """Test unsubscribing from events."""
    event_bus = reset_event_bus
    mock_callback = AsyncMock()

    event_bus.subscribe(EventType.LOOP_STATUS, mock_callback)
    event_bus.unsubscribe(EventType.LOOP_STATUS, mock_callback)
    await event_bus.publish(Event(type=EventType.LOOP_STATUS, content="active"), "session_1")

    mock_callback.assert_not_called()


async def test_failing_subscriber_does_not_block_others(reset_event_bus):
    event_bus = reset_event_bus
    broken = AsyncMock(side_effect=RuntimeError("subscriber bug"))
    healthy = AsyncMock()
    event_bus.subscribe(EventType.APPLICATION_ERROR, broken)
    event_bus.subscribe(EventType.APPLICATION_ERROR, healthy)

    await event_bus.publish(Event(type=EventType.APPLICATION_ERROR, content="boom"), "session_1")

    healthy.assert_called_once()


async def test_events_are_stored_per_session(reset_event_bus):
    """Test that sessions never see each other's events."""
    event_bus = reset_event_bus

    await event_bus.publish(Event(type=EventType.TOOL_CALL, content="a"), "session_1")
    await event_bus.publish(Event(type=EventType.TOOL_RESULT, content="b"), "session_1")
    await event_bus.publish(Event(type=EventType.TOOL_CALL, content="c"), "session_2")

    assert [e.content for e in event_bus.get_events("session_1")] == ["a", "b"]
    assert [e.content for e in event_bus.get_events("session_2")] == ["c"]
    assert [e.content for e in event_bus.get_events_by_type(EventType.TOOL_CALL)] == ["a", "c"]

    event_bus.forget("session_1")
    assert event_bus.get_events("session_1") == []
    assert event_bus.get_events("nonexistent") == []


async def test_store_keeps_most_recent_sessions(reset_event_bus):
    """Test that the oldest session is evicted once the store is full."""
    event_bus = reset_event_bus
    event_bus.max_stored_sessions = 2

    for session in ("session_1", "session_2", "session_3"):
        await event_bus.publish(Event(type=EventType.LOOP_STATUS, content="active"), session)
    await event_bus.publish(Event(type=EventType.LOOP_STATUS, content="completed"), "session_3")

    assert event_bus.get_events("session_1") == []
    assert len(event_bus.get_events("session_2")) == 1
    assert [e.content for e in event_bus.get_events("session_3")] == ["active", "completed"]
