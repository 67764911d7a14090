# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the agentic loop controller."""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import ValidationError

from candycode.agents import AgenticLoop
from candycode.errors import ProviderError
from candycode.llm.prompts import CONTINUE_PROMPT
from candycode.llm.providers import GroqProvider
from candycode.llm.router import ProviderRouter
from candycode.tools import LocalWorkspace
from candycode.types.common import ChunkType, LicenseTier, ProviderId, Role
from candycode.types.event_types import EventType
from candycode.types.llm_types import ProviderOptions
from candycode.types.loop_types import LoopSession, LoopStatus

from ..llm.fakes import FakeProvider


@pytest.fixture
def event_bus():
    bus = Mock()
    bus.publish = AsyncMock()
    return bus


@pytest.fixture
def workspace(tmp_path):
    return LocalWorkspace(tmp_path)


def make_loop(script, workspace, event_bus, max_iterations=10, block=False):
    adapter = FakeProvider(script=script, block=block)
    router = ProviderRouter({ProviderId.GEMINI: adapter}, default_provider=ProviderId.GEMINI)
    loop = AgenticLoop(router, workspace, max_iterations=max_iterations, event_bus=event_bus)
    return loop, adapter


OPTIONS = ProviderOptions(provider="gemini", license_tier=LicenseTier.PRO)


class TestSessionState:
    def test_new_loop_is_idle(self, workspace, event_bus):
        loop, _ = make_loop([], workspace, event_bus)
        assert loop.session.status == LoopStatus.IDLE
        assert not loop.should_continue_loop()

    def test_active_and_completed_are_exclusive(self):
        with pytest.raises(ValidationError):
            LoopSession(is_active=True, task_completed=True)

    def test_mark_completed_stops_loop(self, workspace, event_bus):
        loop, _ = make_loop([], workspace, event_bus)
        loop.start_task()
        loop.increment_iteration()
        assert loop.should_continue_loop()

        loop.mark_task_completed()

        assert not loop.should_continue_loop()
        assert not loop.session.is_active
        assert loop.session.status == LoopStatus.COMPLETED

    def test_new_task_resets_and_continuation_keeps(self, workspace, event_bus):
        loop, _ = make_loop([], workspace, event_bus, max_iterations=5)
        loop.start_task()
        loop.increment_iteration()
        first_id = loop.session_id
        loop.set_is_active(False)

        loop.start_task(continuation=True)
        assert loop.session_id == first_id
        assert loop.session.current_iteration == 1
        assert loop.session.max_iterations == 6

        loop.set_is_active(False)
        loop.start_task()
        assert loop.session.current_iteration == 0
        assert loop.session_id != first_id

    def test_history_cannot_be_cleared_while_active(self, workspace, event_bus):
        loop, _ = make_loop([], workspace, event_bus)
        loop.start_task()
        with pytest.raises(RuntimeError):
            loop.clear_history()

    def test_iteration_ceiling_by_tier(self, workspace, event_bus):
        loop, _ = make_loop([], workspace, event_bus, max_iterations=50)
        assert loop.iteration_ceiling(LicenseTier.STANDARD) == 15
        assert loop.iteration_ceiling(LicenseTier.FREE) == 50
        assert loop.iteration_ceiling(LicenseTier.PRO) == 50


class TestRun:
    @pytest.mark.asyncio
    async def test_runs_tools_until_task_complete(self, workspace, event_bus, tmp_path):
        script = [
            ("Writing the file", [("write_file", {"file_path": "hello.py", "content": "print(1)\n"})]),
            ("", [("task_complete", {"summary": "Created hello.py"})]),
        ]
        loop, adapter = make_loop(script, workspace, event_bus)
        chunks = []

        outcome = await loop.run("create hello.py", OPTIONS, chunks.append)

        assert outcome.status == LoopStatus.COMPLETED
        assert outcome.iterations == 2
        assert outcome.summary == "Created hello.py"
        assert (tmp_path / "hello.py").read_text() == "print(1)\n"
        assert [m.role for m in outcome.history] == [
            Role.USER,
            Role.ASSISTANT,
            Role.TOOL,
            Role.ASSISTANT,
            Role.TOOL,
        ]
        assert len(adapter.calls) == 2
        assert [c.type for c in chunks].count(ChunkType.TOOL_RESULT) == 2

        published = [call.args[0].type for call in event_bus.publish.call_args_list]
        assert published[0] == EventType.LOOP_STATUS
        assert EventType.TOOL_CALL in published and EventType.TOOL_RESULT in published

    @pytest.mark.asyncio
    async def test_text_only_reply_gets_continue_prompt(self, workspace, event_bus):
        script = [
            ("I will do it now.", []),
            ("", [("task_complete", {"summary": "done"})]),
        ]
        loop, adapter = make_loop(script, workspace, event_bus)

        outcome = await loop.run("do it", OPTIONS)

        assert outcome.status == LoopStatus.COMPLETED
        assert adapter.calls[1][-1].content == CONTINUE_PROMPT

    @pytest.mark.asyncio
    async def test_iteration_ceiling(self, workspace, event_bus):
        loop, adapter = make_loop([("still thinking", [])] * 5, workspace, event_bus, max_iterations=3)
        chunks = []

        outcome = await loop.run("loop forever", OPTIONS, chunks.append)

        assert outcome.status == LoopStatus.ITERATION_EXHAUSTED
        assert outcome.iterations == 3
        assert len(adapter.calls) == 3
        assert "Iteration Limit Reached" in chunks[-1].data
        assert not loop.session.is_active

    @pytest.mark.asyncio
    async def test_results_keep_call_order_and_errors_are_fed_back(self, workspace, event_bus):
        script = [
            (
                "",
                [
                    ("read_file", {}),
                    ("no_such_tool", {"x": 1}),
                    ("list_files", {"directory_path": "."}),
                ],
            ),
            ("", [("task_complete", {"summary": "ok"})]),
        ]
        loop, _ = make_loop(script, workspace, event_bus)

        outcome = await loop.run("explore", OPTIONS)

        assistant, tool_message = outcome.history[1], outcome.history[2]
        results = tool_message.tool_results
        assert [r.call_id for r in results] == [c.call_id for c in assistant.tool_calls]
        assert results[0].is_error and "Invalid arguments" in results[0].error_message
        assert results[1].is_error and "not available" in results[1].error_message
        assert not results[2].is_error
        assert outcome.status == LoopStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_calls_after_task_complete_are_skipped(self, workspace, event_bus, tmp_path):
        script = [
            (
                "",
                [
                    ("task_complete", {"summary": "all done"}),
                    ("write_file", {"file_path": "late.txt", "content": "x"}),
                ],
            ),
        ]
        loop, _ = make_loop(script, workspace, event_bus)

        outcome = await loop.run("finish", OPTIONS)

        results = outcome.history[-1].tool_results
        assert results[1].is_error and results[1].error_message.startswith("Skipped")
        assert not (tmp_path / "late.txt").exists()
        assert outcome.iterations == 1

    @pytest.mark.asyncio
    async def test_invalid_task_complete_does_not_finish(self, workspace, event_bus):
        script = [
            ("", [("task_complete", {})]),
            ("", [("task_complete", {"summary": "really done"})]),
        ]
        loop, _ = make_loop(script, workspace, event_bus)

        outcome = await loop.run("finish", OPTIONS)

        assert outcome.iterations == 2
        assert outcome.summary == "really done"

    @pytest.mark.asyncio
    async def test_provider_error_fails_session(self, workspace, event_bus):
        loop, _ = make_loop([RuntimeError("quota exceeded")], workspace, event_bus)

        with pytest.raises(ProviderError):
            await loop.run("anything", OPTIONS)

        assert loop.session.status == LoopStatus.FAILED
        assert not loop.session.is_active
        published = [call.args[0].type for call in event_bus.publish.call_args_list]
        assert EventType.APPLICATION_ERROR in published

    @pytest.mark.asyncio
    async def test_cancel_stops_the_task(self, workspace, event_bus):
        loop, adapter = make_loop([], workspace, event_bus, block=True)
        chunks = []

        task = asyncio.create_task(loop.run("long task", OPTIONS, chunks.append))
        await adapter.started.wait()
        loop.cancel()
        loop.cancel()
        outcome = await task

        assert outcome.status == LoopStatus.CANCELLED
        assert outcome.iterations == 1
        assert len(adapter.calls) == 1
        assert not any("Iteration Limit" in str(c.data) for c in chunks)

    @pytest.mark.asyncio
    async def test_concurrent_loops_are_isolated(self, tmp_path, event_bus):
        first, _ = make_loop([("", [("task_complete", {"summary": "one"})])], LocalWorkspace(tmp_path), event_bus)
        second, _ = make_loop([("", [("task_complete", {"summary": "two"})])], LocalWorkspace(tmp_path), event_bus)

        a, b = await asyncio.gather(first.run("a", OPTIONS), second.run("b", OPTIONS))

        assert (a.summary, b.summary) == ("one", "two")
        assert a.session_id != b.session_id
        assert a.history[0].content == "a" and b.history[0].content == "b"


class SlowWorkspace(LocalWorkspace):
    """Workspace whose shell commands block until the test has cancelled."""

    def __init__(self, root):
        super().__init__(root)
        self.running = asyncio.Event()

    async def execute_command(self, command, needs_elevation=False):
        self.running.set()
        await asyncio.sleep(0.2)
        return {"command": command, "stdout": "", "stderr": "", "exit_code": 0, "status": "completed"}


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_dispatch_answers_every_call(self, tmp_path, event_bus):
        workspace = SlowWorkspace(tmp_path)
        script = [
            (
                "",
                [
                    ("execute_command", {"command": "sleep 1"}),
                    ("read_file", {"file_path": "notes.txt"}),
                ],
            )
        ]
        loop, _ = make_loop(script, workspace, event_bus)

        task = asyncio.create_task(loop.run("run the build", OPTIONS))
        await workspace.running.wait()
        loop.cancel()
        outcome = await task

        assert outcome.status == LoopStatus.CANCELLED
        assert outcome.summary is None
        assistant, tool_turn = outcome.history[-2:]
        assert assistant.role == Role.ASSISTANT
        assert tool_turn.role == Role.TOOL
        assert [r.call_id for r in tool_turn.tool_results] == [c.call_id for c in assistant.tool_calls]
        assert all(r.is_error and "Cancelled" in r.error_message for r in tool_turn.tool_results)

        messages = GroqProvider(api_key="test-key")._prepare_messages(outcome.history)
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool", "tool"]

    @pytest.mark.asyncio
    async def test_router_cancelled_directly(self, workspace, event_bus):
        loop, adapter = make_loop([], workspace, event_bus, block=True)
        chunks = []

        task = asyncio.create_task(loop.run("long task", OPTIONS, chunks.append))
        await adapter.started.wait()
        loop.router.cancel()
        outcome = await task

        assert outcome.status == LoopStatus.CANCELLED
        assert not loop.session.is_active
        assert not any("Iteration Limit" in str(c.data) for c in chunks)
