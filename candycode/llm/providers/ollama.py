# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Locally hosted models served by Ollama."""

import re
import json
import asyncio
import inspect
import logging

from typing import Any, Awaitable, Callable

import httpx

from .base_provider import ChatProvider, StreamHandle
from ..prompts import SYSTEM_INSTRUCTION
from ...config import settings
from ...errors import ProviderError
from ...types.common import ChunkType, ProviderId, Role
from ...types.llm_types import (
    ChatChunk,
    ChatResult,
    ConversationMessage,
    ModelDescriptor,
    ToolCall,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], Awaitable[None] | None]

# Tool calls written out as text by models without native tool calling
TEXT_TOOL_CALL_RE = re.compile(r"TOOL_CALL:\s*(\w+)\s*\((.*)\)")


class OllamaProvider(ChatProvider):
    PROVIDER_ID = ProviderId.OLLAMA
    DISPLAY_NAME = "Ollama"
    DESCRIPTION = "Models running on this machine, no API key needed"
    IS_FREE = True
    REQUIRES_API_KEY = False
    DEFAULT_MODEL = "qwen2.5-coder:7b"

    def __init__(self, base_url: str | None = None, timeout: float = 300.0):
        super().__init__()
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._pull_task: asyncio.Task | None = None

    def make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    def pydantic_to_native_tool(self, tool: type) -> dict:
        return tool.to_openai_tool()

    def _prepare_messages(self, turns: list[ConversationMessage]) -> list[dict]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_INSTRUCTION}]
        for msg in turns:
            if msg.role == Role.TOOL:
                for result in msg.tool_results or []:
                    messages.append(
                        {
                            "role": "tool",
                            "tool_name": result.name,
                            "content": result.to_plain_string(),
                        }
                    )
                continue

            entry: dict[str, Any] = {"role": msg.role.value, "content": msg.content}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {"name": c.name, "arguments": c.arguments}}
                    for c in msg.tool_calls
                ]
            messages.append(entry)
        return messages

    async def _stream(
        self,
        handle: StreamHandle,
        model: str,
        messages: list[dict],
        tools: list[type],
        api_key: str | None,
    ) -> ChatResult:
        payload: dict[str, Any] = {"model": model, "messages": messages, "stream": True}
        if tools:
            payload["tools"] = [self.pydantic_to_native_tool(t) for t in tools]

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        finish_reason = None

        async with self.make_client() as client:
            async with client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode(errors="replace")
                    raise ProviderError(
                        self.PROVIDER_ID.value, f"HTTP {response.status_code}: {body[:500]}"
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if "error" in data:
                        raise ProviderError(self.PROVIDER_ID.value, data["error"])

                    message = data.get("message") or {}
                    if message.get("content"):
                        text_parts.append(message["content"])
                        await handle.emit(ChatChunk(type=ChunkType.TEXT, data=message["content"]))
                    for call in message.get("tool_calls") or []:
                        tool_calls.append(self._to_tool_call(call))

                    if data.get("done"):
                        finish_reason = data.get("done_reason", "stop")
                        break

        text = "".join(text_parts)
        if not tool_calls:
            tool_calls = parse_text_tool_calls(text)

        return ChatResult(
            provider=self.PROVIDER_ID,
            model=model,
            text=text,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    @staticmethod
    def _to_tool_call(call: dict) -> ToolCall:
        fn = call.get("function") or {}
        arguments = fn.get("arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {"raw_arguments": arguments}
        return ToolCall(name=fn.get("name", "unknown_tool"), arguments=arguments)

    async def list_models(self) -> list[ModelDescriptor]:
        """Models installed in the local Ollama instance.

        Raises when the daemon is unreachable; the router treats that as an
        empty contribution.
        """
        async with self.make_client() as client:
            response = await client.get("/api/tags")
            response.raise_for_status()
            installed = response.json().get("models", [])

        return [
            ModelDescriptor(
                id=m["name"],
                name=m["name"],
                description=f"Installed locally ({m.get('size', 0) / 1e9:.1f} GB)",
                provider=self.PROVIDER_ID,
                installed=True,
            )
            for m in installed
        ]

    async def pull_model(self, name: str, on_progress: ProgressCallback | None = None) -> bool:
        """Download a model, reporting ``"<status> (<percent>%)"`` progress lines.

        Returns False if the download was cancelled.
        """
        task = asyncio.create_task(self._pull(name, on_progress))
        self._pull_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._pull_task is not task:
                logger.info(f"Pull of {name} cancelled")
                return False
            raise
        finally:
            if self._pull_task is task:
                self._pull_task = None

    async def _pull(self, name: str, on_progress: ProgressCallback | None) -> bool:
        async with self.make_client() as client:
            async with client.stream("POST", "/api/pull", json={"name": name, "stream": True}) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if "error" in data:
                        raise ProviderError(self.PROVIDER_ID.value, data["error"])
                    status = data.get("status", "")
                    if data.get("total"):
                        percent = int(100 * data.get("completed", 0) / data["total"])
                        status = f"{status} ({percent}%)"
                    if on_progress is not None:
                        result = on_progress(status)
                        if inspect.isawaitable(result):
                            await result
        return True

    def cancel(self) -> None:
        super().cancel()
        task, self._pull_task = self._pull_task, None
        if task is not None and not task.done():
            task.cancel()


def parse_text_tool_calls(text: str) -> list[ToolCall]:
    """Read ``TOOL_CALL: name({...json...})`` lines out of a model reply.

    Lines whose arguments are not a JSON object are ignored, and a line
    repeated within one reply yields a single call.
    """
    calls: list[ToolCall] = []
    seen: set[str] = set()
    for line in text.split("\n"):
        match = TEXT_TOOL_CALL_RE.search(line)
        if match is None or line.strip() in seen:
            continue
        try:
            arguments = json.loads(match.group(2))
        except json.JSONDecodeError:
            continue
        if not isinstance(arguments, dict):
            continue
        seen.add(line.strip())
        calls.append(ToolCall(name=match.group(1), arguments=arguments))
    return calls
