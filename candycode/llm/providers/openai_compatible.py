# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Backends that speak the OpenAI chat-completions protocol."""

import json
import logging

from typing import Any, ClassVar
from openai import AsyncOpenAI

from .base_provider import ChatProvider, StreamHandle
from ..prompts import SYSTEM_INSTRUCTION
from ...config import settings
from ...types.common import ChunkType, ProviderId, Role
from ...types.llm_types import (
    ChatChunk,
    ChatResult,
    ConversationMessage,
    ModelDescriptor,
    ToolCall,
)
from ...types.tool_types import new_call_id

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(ChatProvider):
    """Streaming chat completions with native tool calling.

    Subclasses only set the endpoint, the default model and the model catalog.
    Rate-limit retries are left to the openai client (``max_retries``).
    """

    BASE_URL: ClassVar[str]
    MODELS: ClassVar[list[ModelDescriptor]] = []
    TEMPERATURE: ClassVar[float] = 0.7
    MAX_RETRIES: ClassVar[int] = 2

    def __init__(self, api_key: str | None = None):
        super().__init__(api_key or settings.api_key_for(self.PROVIDER_ID.value))

    def make_client(self, api_key: str | None) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self.BASE_URL, max_retries=self.MAX_RETRIES)

    def pydantic_to_native_tool(self, tool: type) -> dict:
        return tool.to_openai_tool()

    def _prepare_messages(self, turns: list[ConversationMessage]) -> list[dict]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_INSTRUCTION}]
        # Tool results may only answer calls that are still in the history
        open_calls: set[str] = set()

        for msg in turns:
            if msg.role == Role.ASSISTANT:
                entry: dict[str, Any] = {"role": "assistant", "content": msg.content or None}
                if msg.tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in msg.tool_calls
                    ]
                    open_calls.update(call.call_id for call in msg.tool_calls)
                elif not msg.content:
                    continue
                messages.append(entry)

            elif msg.role == Role.TOOL:
                orphans = []
                for result in msg.tool_results or []:
                    if result.call_id in open_calls:
                        open_calls.discard(result.call_id)
                        messages.append(
                            {
                                "role": "tool",
                                "tool_call_id": result.call_id,
                                "content": result.to_plain_string(),
                            }
                        )
                    else:
                        orphans.append(result)
                if orphans:
                    text = "\n\n".join(
                        f"Result of {r.name}:\n{r.to_plain_string()}" for r in orphans
                    )
                    messages.append({"role": "user", "content": text})

            else:
                messages.append({"role": "user", "content": msg.content})
        return messages

    async def _open_stream(self, client: AsyncOpenAI, model: str, messages: list, tools: list):
        request: dict[str, Any] = dict(
            model=model,
            messages=messages,
            temperature=self.TEMPERATURE,
            stream=True,
        )
        if tools:
            request["tools"] = [self.pydantic_to_native_tool(t) for t in tools]
            request["tool_choice"] = "auto"
        return await client.chat.completions.create(**request)

    async def _stream(
        self,
        handle: StreamHandle,
        model: str,
        messages: list,
        tools: list[type],
        api_key: str | None,
    ) -> ChatResult:
        client = self.make_client(api_key)
        stream = await self._open_stream(client, model, messages, tools)

        text_parts: list[str] = []
        # Tool calls arrive as fragments keyed by their index in the response
        pending: dict[int, dict[str, str]] = {}
        finish_reason = None

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None and delta.content:
                text_parts.append(delta.content)
                await handle.emit(ChatChunk(type=ChunkType.TEXT, data=delta.content))

            for fragment in (delta.tool_calls if delta is not None else None) or []:
                entry = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                if fragment.id:
                    entry["id"] = fragment.id
                if fragment.function is not None:
                    if fragment.function.name:
                        entry["name"] += fragment.function.name
                    if fragment.function.arguments:
                        entry["arguments"] += fragment.function.arguments

            if choice.finish_reason:
                finish_reason = choice.finish_reason

        tool_calls = [self._to_tool_call(pending[i]) for i in sorted(pending)]
        return ChatResult(
            provider=self.PROVIDER_ID,
            model=model,
            text="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    @staticmethod
    def _to_tool_call(entry: dict[str, str]) -> ToolCall:
        raw = entry["arguments"].strip()
        try:
            arguments = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            logger.warning(f"Could not parse arguments of {entry['name']}: {raw[:200]}")
            arguments = {"raw_arguments": raw}
        return ToolCall(
            name=entry["name"],
            arguments=arguments,
            call_id=entry["id"] or new_call_id(),
        )

    async def list_models(self) -> list[ModelDescriptor]:
        return [m.model_copy(update={"provider": self.PROVIDER_ID}) for m in self.MODELS]


class GroqProvider(OpenAICompatibleProvider):
    PROVIDER_ID = ProviderId.GROQ
    DISPLAY_NAME = "Groq"
    DESCRIPTION = "Ultra-fast inference for open models"
    IS_FREE = True
    BASE_URL = "https://api.groq.com/openai/v1"
    DEFAULT_MODEL = "llama-3.3-70b-versatile"
    MODELS = [
        ModelDescriptor(
            id="llama-3.3-70b-versatile",
            name="Llama 3.3 70B Versatile",
            description="Best balance of quality and speed",
            limits="30 RPM (free)",
            recommended=True,
        ),
        ModelDescriptor(
            id="llama-3.1-8b-instant",
            name="Llama 3.1 8B Instant",
            description="Fastest responses for simple tasks",
            limits="30 RPM (free)",
        ),
        ModelDescriptor(
            id="openai/gpt-oss-120b",
            name="GPT-OSS 120B",
            description="Open-weight reasoning model",
            limits="30 RPM (free)",
        ),
    ]


class GrokProvider(OpenAICompatibleProvider):
    PROVIDER_ID = ProviderId.GROK
    DISPLAY_NAME = "Grok"
    DESCRIPTION = "xAI models with a large context window"
    BASE_URL = "https://api.x.ai/v1"
    DEFAULT_MODEL = "grok-4.1-fast"
    MODELS = [
        ModelDescriptor(
            id="grok-4.1-fast",
            name="Grok 4.1 Fast",
            description="Fast agentic coding, 2M context",
            recommended=True,
        ),
        ModelDescriptor(
            id="grok-code-fast-1",
            name="Grok Code Fast",
            description="Optimised for code generation",
        ),
    ]


class MoonshotProvider(OpenAICompatibleProvider):
    PROVIDER_ID = ProviderId.MOONSHOT
    DISPLAY_NAME = "Moonshot"
    DESCRIPTION = "Kimi models with long context"
    BASE_URL = "https://api.moonshot.cn/v1"
    DEFAULT_MODEL = "moonshot-v1-128k"
    MODELS = [
        ModelDescriptor(
            id="moonshot-v1-128k",
            name="Moonshot v1 128K",
            description="128K context window",
            recommended=True,
        ),
        ModelDescriptor(
            id="moonshot-v1-32k",
            name="Moonshot v1 32K",
            description="32K context window",
        ),
        ModelDescriptor(
            id="kimi-k2-0905-preview",
            name="Kimi K2",
            description="Agentic coding model",
        ),
    ]
