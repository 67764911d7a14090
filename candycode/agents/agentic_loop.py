# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The agentic loop: call the model, run the tools it asks for, feed the results
back, and repeat until it calls ``task_complete`` or the iteration ceiling is
reached.

Session state lives in a frozen LoopSession that is replaced on every
transition:

    Idle -> Active -> Completed | Cancelled | IterationExhausted | Failed
"""

import asyncio
import inspect
import logging

from typing import Any, Sequence

from ..config import settings
from ..errors import ProviderError
from ..events import EventBus
from ..llm.prompts import CONTINUE_PROMPT, iteration_limit_notice
from ..llm.providers.base_provider import ChunkCallback
from ..llm.router import ProviderRouter
from ..tools import TASK_COMPLETE, dispatch_tool_call
from ..tools.workspace import Workspace
from ..types.common import ChunkType, LicenseTier, Role
from ..types.event_types import Event, EventType
from ..types.llm_types import (
    LICENSE_LIMITS,
    ChatChunk,
    ConversationMessage,
    ProviderOptions,
    ToolCall,
)
from ..types.loop_types import LoopOutcome, LoopSession, LoopStatus
from ..types.tool_types import ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class AgenticLoop:
    """Controller for one user task window.

    The controller is the only writer of its session. Separate instances share
    nothing, so concurrent tasks (e.g. two open projects) stay isolated.
    """

    def __init__(
        self,
        router: ProviderRouter,
        workspace: Workspace,
        max_iterations: int | None = None,
        tools: Sequence[type] | None = None,
        event_bus: EventBus | None = None,
    ):
        self.router = router
        self.workspace = workspace
        self.max_iterations = max_iterations or settings.MAX_ITERATIONS
        self.tool_names = {t.TOOL_NAME for t in (tools if tools is not None else router.tools)}
        self._event_bus = event_bus
        self._session = LoopSession(max_iterations=self.max_iterations)

    # ------------------------------------------------------------------
    # Session state

    @property
    def session(self) -> LoopSession:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    def get_history(self) -> list[ConversationMessage]:
        return list(self._session.history)

    def _transition(self, **changes: Any) -> LoopSession:
        # Rebuilt through the constructor so the session invariants are re-checked
        self._session = LoopSession(**{**dict(self._session), **changes})
        return self._session

    def iteration_ceiling(self, tier: LicenseTier) -> int:
        tier_limit = LICENSE_LIMITS[tier].max_loops or settings.PRO_MAX_ITERATIONS
        return min(self.max_iterations, tier_limit)

    def reset(self) -> None:
        self._session = LoopSession(max_iterations=self.max_iterations)

    def start_task(self, continuation: bool = False, max_iterations: int | None = None) -> LoopSession:
        """Idle -> Active. A new task starts from a clean session; a
        continuation keeps the iteration count and history and gets a fresh
        allowance of `max_iterations` further passes."""
        ceiling = max_iterations or self.max_iterations
        if continuation:
            return self._transition(
                is_active=True,
                task_completed=False,
                status=LoopStatus.ACTIVE,
                max_iterations=self._session.current_iteration + ceiling,
            )
        self._session = LoopSession(
            max_iterations=ceiling, is_active=True, status=LoopStatus.ACTIVE
        )
        return self._session

    def set_is_active(self, value: bool, continuation: bool = False) -> None:
        if value:
            self.start_task(continuation=continuation)
        elif self._session.is_active:
            self._transition(is_active=False, status=LoopStatus.IDLE)

    def should_continue_loop(self) -> bool:
        s = self._session
        return s.is_active and not s.task_completed and s.current_iteration < s.max_iterations

    def increment_iteration(self) -> int:
        return self._transition(current_iteration=self._session.current_iteration + 1).current_iteration

    def mark_task_completed(self) -> None:
        self._transition(task_completed=True, is_active=False, status=LoopStatus.COMPLETED)

    def add_to_history(self, message: ConversationMessage) -> None:
        self._transition(history=self._session.history + (message,))

    def clear_history(self) -> None:
        if self._session.is_active:
            raise RuntimeError("Cannot clear the history of an active session")
        self._transition(history=())

    def cancel(self) -> None:
        """Stop the current task. Results of tool calls still running are discarded."""
        if self._session.is_active:
            self._transition(is_active=False, status=LoopStatus.CANCELLED)
            logger.info(f"Session {self.session_id} cancelled")
        self.router.cancel()

    def _observed_cancel(self, session_id: str) -> bool:
        return (
            self._session.session_id != session_id
            or self._session.status == LoopStatus.CANCELLED
        )

    # ------------------------------------------------------------------
    # Events and chunks

    async def _publish(self, type: EventType, content: str, **metadata: Any) -> None:
        if self._event_bus is None:
            self._event_bus = await EventBus.get_instance()
        await self._event_bus.publish(
            Event(type=type, content=content, metadata=metadata), self.session_id
        )

    async def _emit(self, on_chunk: ChunkCallback | None, session_id: str, chunk: ChatChunk) -> None:
        if on_chunk is None or self._observed_cancel(session_id):
            return
        result = on_chunk(chunk)
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Execution

    async def _dispatch(self, call: ToolCall) -> ToolResult:
        if call.name not in self.tool_names:
            return ToolResult.error(
                call.name, f"Tool {call.name} is not available in this session", call.call_id
            )
        try:
            async with asyncio.timeout(settings.TOOL_TIMEOUT):
                return await dispatch_tool_call(call, self.workspace)
        except TimeoutError:
            logger.warning(f"Tool {call.name} timed out")
            return ToolResult.error(
                call.name, f"Tool timed out after {settings.TOOL_TIMEOUT}s", call.call_id
            )

    async def _run_tool_calls(
        self, calls: list[ToolCall], on_chunk: ChunkCallback | None, session_id: str
    ) -> tuple[list[ToolResult], str | None]:
        """Dispatch calls in order. Returns the results and, if the task was
        completed, its summary.

        If the session is cancelled meanwhile, the running call and every call
        after it get a "Cancelled" error result, so each call in the history
        still has an answer.
        """
        results: list[ToolResult] = []
        summary: str | None = None

        for index, call in enumerate(calls):
            if summary is not None:
                results.append(
                    ToolResult.error(call.name, "Skipped: the task was already completed", call.call_id)
                )
                continue

            await self._publish(EventType.TOOL_CALL, call.name, call_id=call.call_id, args=call.arguments)
            result = await self._dispatch(call)
            if self._observed_cancel(session_id):
                results.extend(
                    ToolResult.error(c.name, "Cancelled: the task was stopped", c.call_id)
                    for c in calls[index:]
                )
                return results, summary

            results.append(result)
            await self._publish(
                EventType.TOOL_RESULT,
                result.to_plain_string(),
                call_id=call.call_id,
                name=call.name,
                is_error=result.is_error,
            )
            await self._emit(
                on_chunk,
                session_id,
                ChatChunk(
                    type=ChunkType.TOOL_RESULT,
                    data=result.result,
                    name=call.name,
                    call_id=call.call_id,
                ),
            )

            if result.is_error:
                continue
            if call.name == TASK_COMPLETE:
                summary = call.arguments.get("summary", "")
            elif call.name == "create_plan":
                await self._publish(EventType.PLAN_UPDATE, result.to_plain_string())

        return results, summary

    async def run(
        self,
        prompt: str,
        options: ProviderOptions,
        on_chunk: ChunkCallback | None = None,
        continuation: bool = False,
    ) -> LoopOutcome:
        """Run a task until completion, cancellation or the iteration ceiling.

        Raises:
            ProviderError: the backend failed; the session ends as failed.
        """
        self.start_task(
            continuation=continuation or options.continuation_state is not None,
            max_iterations=self.iteration_ceiling(options.tier),
        )
        session_id = self.session_id
        await self._publish(EventType.LOOP_STATUS, LoopStatus.ACTIVE.value)

        next_prompt = prompt
        continuation_state = options.continuation_state
        summary: str | None = None

        while self.should_continue_loop():
            iteration = self.increment_iteration()
            logger.info(f"Session {session_id}: iteration {iteration}/{self._session.max_iterations}")

            request = options.model_copy(
                update={
                    "conversation_history": self.get_history(),
                    "continuation_state": continuation_state,
                }
            )
            continuation_state = None

            try:
                result = await self.router.chat_stream(next_prompt, request, on_chunk)
            except ProviderError as e:
                if not self._observed_cancel(session_id):
                    self._transition(is_active=False, status=LoopStatus.FAILED)
                await self._publish(EventType.APPLICATION_ERROR, str(e), provider=e.provider)
                raise

            if result.cancelled or self._observed_cancel(session_id):
                if self._session.session_id == session_id and self._session.is_active:
                    # The router was cancelled directly, not through this loop
                    self._transition(is_active=False, status=LoopStatus.CANCELLED)
                break

            if next_prompt:
                self.add_to_history(ConversationMessage(role=Role.USER, content=next_prompt))
            self.add_to_history(
                ConversationMessage(
                    role=Role.ASSISTANT,
                    content=result.text,
                    tool_calls=result.tool_calls or None,
                )
            )

            if not result.tool_calls:
                # The model answered in text only: nudge it back to the tools
                next_prompt = CONTINUE_PROMPT
                continue

            results, summary = await self._run_tool_calls(result.tool_calls, on_chunk, session_id)
            if self._session.session_id != session_id:
                break

            self.add_to_history(ConversationMessage(role=Role.TOOL, tool_results=results))
            if self._observed_cancel(session_id):
                summary = None
                break
            if summary is not None:
                self.mark_task_completed()
            next_prompt = ""

        if self._session.is_active and not self._session.task_completed:
            self._transition(is_active=False, status=LoopStatus.ITERATION_EXHAUSTED)
            logger.warning(f"Session {session_id} stopped at the iteration ceiling")
            await self._emit(
                on_chunk,
                session_id,
                ChatChunk(
                    type=ChunkType.TEXT,
                    data=iteration_limit_notice(self._session.max_iterations),
                ),
            )

        await self._publish(EventType.LOOP_STATUS, self._session.status.value)
        return LoopOutcome(
            session_id=session_id,
            status=self._session.status,
            iterations=self._session.current_iteration,
            summary=summary,
            history=self.get_history(),
        )
