# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Scripted backend adapters shared by the router and loop tests."""
import asyncio

from candycode.llm.providers.base_provider import ChatProvider, StreamHandle
from candycode.types.common import ChunkType, ProviderId
from candycode.types.llm_types import ChatChunk, ChatResult, ModelDescriptor, ToolCall


class FakeProvider(ChatProvider):
    """Adapter that replays a script of turns instead of calling a network service.

    Each script entry is either a ChatResult-like tuple (text, tool_calls) or an
    exception instance to raise.
    """

    DISPLAY_NAME = "Fake"
    DEFAULT_MODEL = "fake-model"
    REQUIRES_API_KEY = False

    def __init__(
        self,
        provider_id: ProviderId = ProviderId.GEMINI,
        script: list | None = None,
        models: list[ModelDescriptor] | Exception | None = None,
        block: bool = False,
        requires_key: bool = False,
    ):
        super().__init__()
        self.PROVIDER_ID = provider_id
        self.REQUIRES_API_KEY = requires_key
        self.script = list(script or [])
        self.models = models if models is not None else []
        self.block = block
        self.calls: list[list] = []
        self.started = asyncio.Event()

    def pydantic_to_native_tool(self, tool: type) -> dict:
        return tool.to_openai_tool()

    def _prepare_messages(self, turns):
        return list(turns)

    async def _stream(self, handle: StreamHandle, model, messages, tools, api_key) -> ChatResult:
        self.calls.append(messages)
        await handle.emit(ChatChunk(type=ChunkType.TEXT, data="thinking"))
        self.started.set()
        if self.block:
            await asyncio.Event().wait()

        step = self.script.pop(0) if self.script else ("", [])
        if isinstance(step, Exception):
            raise step
        text, calls = step
        return ChatResult(
            provider=self.PROVIDER_ID,
            model=model,
            text=text,
            tool_calls=[
                call if isinstance(call, ToolCall) else ToolCall(name=call[0], arguments=call[1])
                for call in calls
            ],
            finish_reason="stop",
        )

    async def list_models(self):
        if isinstance(self.models, Exception):
            raise self.models
        return list(self.models)
