# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Google Gemini backend, using the google-genai SDK."""

import logging

from typing import Any
from google import genai
from google.genai import types

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

_TYPE_MAPPING = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
    "object": "OBJECT",
}


def to_gemini_schema(node: Any) -> Any:
    """Convert an inlined JSON schema into the subset Gemini accepts.

    Types are upper-cased, ``Optional[X]`` unions become nullable ``X`` and
    keys Gemini rejects are dropped. Defaults are folded into the description.
    """
    if not isinstance(node, dict):
        return node

    if "anyOf" in node or "oneOf" in node:
        variants = node.get("anyOf") or node.get("oneOf")
        non_null = [v for v in variants if v.get("type") != "null"]
        if len(non_null) != 1:
            raise ValueError("Complex union types are not supported in Gemini API")
        merged = {**non_null[0], **{k: v for k, v in node.items() if k not in ("anyOf", "oneOf")}}
        result = to_gemini_schema(merged)
        if len(non_null) < len(variants):
            result["nullable"] = True
        return result

    result: dict[str, Any] = {}
    if "type" in node:
        result["type"] = _TYPE_MAPPING.get(node["type"].lower(), node["type"].upper())

    if result.get("type") == "OBJECT" and not node.get("properties"):
        # Parameter-less object needs dummy property
        return {
            "type": "OBJECT",
            "properties": {
                "_dummy": {"type": "STRING", "description": "This object takes no properties."}
            },
        }

    if result.get("type") == "ARRAY":
        if "items" not in node:
            raise ValueError("Array type must have items defined")
        result["items"] = to_gemini_schema(node["items"])

    if "properties" in node:
        result["properties"] = {
            name: to_gemini_schema(prop) for name, prop in node["properties"].items()
        }
        if "required" in node:
            result["required"] = node["required"]
        if len(node["properties"]) > 1:
            result["property_ordering"] = list(node["properties"].keys())

    if "enum" in node:
        result["enum"] = [str(v) for v in node["enum"]]

    description = node.get("description", "")
    if "default" in node and node["default"] is not None:
        default = repr(node["default"]) if isinstance(node["default"], str) else node["default"]
        description = f"{description} (default: {default})" if description else f"(default: {default})"
    if description:
        result["description"] = description

    return result


class GeminiProvider(ChatProvider):
    PROVIDER_ID = ProviderId.GEMINI
    DISPLAY_NAME = "Gemini"
    DESCRIPTION = "Google Gemini, free tier with a 1M token context"
    IS_FREE = True
    DEFAULT_MODEL = "gemini-2.5-flash"
    TEMPERATURE = 0.7

    MODELS = [
        ModelDescriptor(
            id="gemini-3-flash-preview",
            name="Gemini 3 Flash Preview",
            description="Pro-grade reasoning at Flash speed",
            limits="5 RPM (free tier)",
        ),
        ModelDescriptor(
            id="gemini-2.5-flash",
            name="Gemini 2.5 Flash",
            description="Fast, 1M context, 65K output",
            limits="15 RPM (free)",
            recommended=True,
        ),
        ModelDescriptor(
            id="gemini-2.5-pro",
            name="Gemini 2.5 Pro",
            description="Most capable, for complex tasks",
            limits="2 RPM (free)",
        ),
        ModelDescriptor(
            id="gemini-2.5-flash-lite",
            name="Gemini 2.5 Flash Lite",
            description="Lowest latency and cost",
            limits="30 RPM (free)",
        ),
    ]

    def __init__(self, api_key: str | None = None):
        super().__init__(api_key or settings.GEMINI_API_KEY)

    def make_client(self, api_key: str | None) -> genai.Client:
        return genai.Client(api_key=api_key)

    def pydantic_to_native_tool(self, tool: type) -> types.FunctionDeclaration:
        return types.FunctionDeclaration(
            name=tool.TOOL_NAME,
            description=tool.TOOL_DESCRIPTION,
            parameters=to_gemini_schema(tool.parameters_schema()),
        )

    def _prepare_messages(self, turns: list[ConversationMessage]) -> list[types.Content]:
        contents: list[types.Content] = []
        open_calls: set[str] = set()

        for msg in turns:
            if msg.role == Role.ASSISTANT:
                parts = [types.Part.from_text(text=msg.content)] if msg.content else []
                for call in msg.tool_calls or []:
                    parts.append(types.Part.from_function_call(name=call.name, args=call.arguments))
                    open_calls.add(call.call_id)
                if parts:
                    contents.append(types.Content(role="model", parts=parts))

            elif msg.role == Role.TOOL:
                parts = []
                for result in msg.tool_results or []:
                    if result.call_id in open_calls:
                        open_calls.discard(result.call_id)
                        # NOTE: 'output' here is really a prompt
                        parts.append(
                            types.Part.from_function_response(
                                name=result.name, response=dict(output=result.result)
                            )
                        )
                    else:
                        parts.append(
                            types.Part.from_text(
                                text=f"Result of {result.name}:\n{result.to_plain_string()}"
                            )
                        )
                if parts:
                    contents.append(types.Content(role="user", parts=parts))

            else:
                contents.append(
                    types.Content(role="user", parts=[types.Part.from_text(text=msg.content)])
                )
        return contents

    async def _stream(
        self,
        handle: StreamHandle,
        model: str,
        messages: list[types.Content],
        tools: list[type],
        api_key: str | None,
    ) -> ChatResult:
        client = self.make_client(api_key)
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            temperature=self.TEMPERATURE,
            tools=(
                [types.Tool(function_declarations=[self.pydantic_to_native_tool(t) for t in tools])]
                if tools
                else None
            ),
        )

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        finish_reason = None

        stream = await client.aio.models.generate_content_stream(
            model=model, contents=messages, config=config
        )
        async for chunk in stream:
            if not chunk.candidates:
                continue
            candidate = chunk.candidates[0]
            if candidate.content is not None:
                for part in candidate.content.parts or []:
                    if part.function_call is not None:
                        fc = part.function_call
                        args = dict(fc.args or {})
                        args.pop("_dummy", None)
                        tool_calls.append(
                            ToolCall(
                                name=fc.name or "unknown_tool",
                                arguments=args,
                                call_id=fc.id or new_call_id(),
                            )
                        )
                    elif part.text:
                        text_parts.append(part.text)
                        await handle.emit(ChatChunk(type=ChunkType.TEXT, data=part.text))
            if candidate.finish_reason is not None:
                finish_reason = str(candidate.finish_reason.value).lower()

        return ChatResult(
            provider=self.PROVIDER_ID,
            model=model,
            text="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    async def list_models(self) -> list[ModelDescriptor]:
        return [m.model_copy(update={"provider": self.PROVIDER_ID}) for m in self.MODELS]
