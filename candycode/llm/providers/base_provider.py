# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Base provider interface for chat backends."""

import asyncio
import inspect
import logging

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, ClassVar, Sequence

from ..prompts import CONTINUATION_ACK, continuation_prompt
from ...errors import ProviderError
from ...types.common import ChunkType, ProviderId, Role
from ...types.llm_types import (
    ChatChunk,
    ChatResult,
    ContinuationState,
    ConversationMessage,
    ModelDescriptor,
    ProviderOptions,
)

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[ChatChunk], Awaitable[None] | None]


class StreamHandle:
    """Delivery channel for one chat_stream call.

    Once cancelled, the handle drops every further chunk and cancels the task
    doing the network work. Cancelling twice has no further effect.
    """

    def __init__(self, on_chunk: ChunkCallback | None):
        self._on_chunk = on_chunk
        self.cancelled = False
        self.task: asyncio.Task | None = None

    async def emit(self, chunk: ChatChunk) -> None:
        if self.cancelled or self._on_chunk is None:
            return
        result = self._on_chunk(chunk)
        if inspect.isawaitable(result):
            await result

    def cancel(self) -> bool:
        if self.cancelled:
            return False
        self.cancelled = True
        self._on_chunk = None
        if self.task is not None and not self.task.done():
            self.task.cancel()
        return True


class ChatProvider(ABC):
    """A backend adapter: one remote or local chat service.

    Subclasses implement the wire protocol in ``_stream`` and the mapping from
    conversation messages to native messages in ``_prepare_messages``; the
    base class owns streaming delivery, cancellation and error wrapping.
    """

    PROVIDER_ID: ClassVar[ProviderId]
    DISPLAY_NAME: ClassVar[str]
    DESCRIPTION: ClassVar[str] = ""
    DEFAULT_MODEL: ClassVar[str]
    IS_FREE: ClassVar[bool] = False
    REQUIRES_API_KEY: ClassVar[bool] = True

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key
        self._handle: StreamHandle | None = None

    @property
    def is_streaming(self) -> bool:
        return self._handle is not None

    def resolve_api_key(self, options: ProviderOptions) -> str | None:
        key = options.api_key_value() or self.api_key
        if self.REQUIRES_API_KEY and not key:
            raise ProviderError(
                self.PROVIDER_ID.value,
                f"No {self.DISPLAY_NAME} API key provided. Please set it in Settings.",
            )
        return key

    async def chat_stream(
        self,
        prompt: str,
        options: ProviderOptions,
        on_chunk: ChunkCallback | None = None,
        continuation_state: ContinuationState | None = None,
        tools: Sequence[type] | None = None,
    ) -> ChatResult:
        """Stream one model turn. Resolves with the turn's text and tool calls.

        If ``cancel`` is called while the turn is in flight, the network task is
        cancelled, nothing more is delivered to ``on_chunk`` and the call
        resolves with ``cancelled=True``.
        """
        model = options.model or self.DEFAULT_MODEL
        api_key = self.resolve_api_key(options)

        turns = self.build_turns(prompt, options, continuation_state)
        messages = self._prepare_messages(turns)

        handle = StreamHandle(on_chunk)
        self._handle = handle
        handle.task = asyncio.create_task(
            self._stream(handle, model, messages, list(tools or []), api_key)
        )
        try:
            result = await handle.task
        except asyncio.CancelledError:
            if handle.cancelled:
                logger.info(f"{self.DISPLAY_NAME} stream cancelled")
                return ChatResult(provider=self.PROVIDER_ID, model=model, cancelled=True)
            raise
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(self.PROVIDER_ID.value, e) from e
        finally:
            if self._handle is handle:
                self._handle = None

        if handle.cancelled:
            return ChatResult(provider=self.PROVIDER_ID, model=model, cancelled=True)

        for call in result.tool_calls:
            await handle.emit(
                ChatChunk(
                    type=ChunkType.TOOL_CALL,
                    data=call.arguments,
                    name=call.name,
                    call_id=call.call_id,
                )
            )
        await handle.emit(ChatChunk(type=ChunkType.DONE, data=result.finish_reason))
        return result

    def cancel(self) -> None:
        """Abort the in-flight call, if any. Safe to call at any time."""
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    def build_turns(
        self,
        prompt: str,
        options: ProviderOptions,
        continuation_state: ContinuationState | None = None,
    ) -> list[ConversationMessage]:
        """Backend-neutral message list: history, then the new user turn."""
        turns = list(options.conversation_history)

        if continuation_state is not None:
            turns.append(
                ConversationMessage(
                    role=Role.USER,
                    content=continuation_prompt(continuation_state, options.project_dir),
                )
            )
            turns.append(ConversationMessage(role=Role.ASSISTANT, content=CONTINUATION_ACK))

        if prompt:
            content = f"{options.context}\n\n{prompt}" if options.context else prompt
            turns.append(ConversationMessage(role=Role.USER, content=content))
        return turns

    @abstractmethod
    def _prepare_messages(self, turns: list[ConversationMessage]) -> Any:
        """Map conversation messages to the backend's native message format."""
        pass

    @abstractmethod
    def pydantic_to_native_tool(self, tool: type) -> Any:
        """Convert a tool class into this backend's tool declaration."""
        pass

    @abstractmethod
    async def _stream(
        self,
        handle: StreamHandle,
        model: str,
        messages: Any,
        tools: list[type],
        api_key: str | None,
    ) -> ChatResult:
        """Run the request, emitting text chunks through ``handle`` as they arrive."""
        pass

    @abstractmethod
    async def list_models(self) -> list[ModelDescriptor]:
        pass
