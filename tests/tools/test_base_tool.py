# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the tool registry, schema advertisement and dispatch."""
import json
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import Field

from candycode.errors import ToolDispatchError
from candycode.llm.providers.gemini import to_gemini_schema
from candycode.tools import (
    BaseTool,
    dispatch_tool_call,
    get_tools,
    tool_registry,
    toolkits,
    validate_tool_call,
)
from candycode.tools.plan_tools import CreatePlan
from candycode.tools.workspace import Workspace
from candycode.types.llm_types import ToolCall
from candycode.types.tool_types import ToolResult


@pytest.fixture
def workspace():
    return Mock(spec=Workspace)


class TestRegistry:
    def setup_method(self):
        self.saved_registry = dict(tool_registry)

    def teardown_method(self):
        tool_registry.clear()
        tool_registry.update(self.saved_registry)

    def test_coding_toolkit_registered(self):
        names = {t.TOOL_NAME for t in toolkits["coding"]}
        assert names == {
            "read_file",
            "write_file",
            "list_files",
            "grep_lines",
            "search_code",
            "create_plan",
            "task_complete",
            "execute_command",
            "search_web",
        }
        assert names <= set(tool_registry)

    def test_subclass_registers_itself(self):
        class EchoTool(BaseTool):
            TOOL_NAME = "echo_for_test"
            TOOL_DESCRIPTION = "Echo the message back"

            message: str = Field(..., description="Text to echo")

            async def run(self) -> ToolResult:
                return self.ok(self.message)

        assert tool_registry["echo_for_test"] is EchoTool
        assert get_tools(["echo_for_test", "missing"]) == [EchoTool]


class TestSchemas:
    def test_openai_declaration_is_inlined(self):
        declaration = CreatePlan.to_openai_tool()
        encoded = json.dumps(declaration)

        assert declaration["function"]["name"] == "create_plan"
        assert "$ref" not in encoded and "$defs" not in encoded
        assert "title" not in declaration["function"]["parameters"]["properties"]["steps"]["items"]
        assert declaration["function"]["parameters"]["required"] == ["title", "steps"]

    def test_gemini_declaration(self):
        schema = to_gemini_schema(CreatePlan.parameters_schema())

        steps = schema["properties"]["steps"]
        assert schema["type"] == "OBJECT"
        assert steps["type"] == "ARRAY"
        assert steps["items"]["properties"]["id"]["nullable"] is True
        assert steps["items"]["properties"]["status"]["enum"] == [
            "pending",
            "in-progress",
            "completed",
            "skipped",
        ]

    def test_parameterless_gemini_object(self):
        assert "_dummy" in to_gemini_schema({"type": "object", "properties": {}})["properties"]


class TestValidation:
    def test_unknown_tool(self, workspace):
        with pytest.raises(ToolDispatchError, match="does not correspond"):
            validate_tool_call(ToolCall(name="format_disk"), workspace)

    def test_missing_argument(self, workspace):
        with pytest.raises(ToolDispatchError, match="Invalid arguments"):
            validate_tool_call(ToolCall(name="write_file", arguments={"file_path": "a"}), workspace)

    def test_extra_argument_rejected(self, workspace):
        with pytest.raises(ToolDispatchError):
            validate_tool_call(
                ToolCall(name="read_file", arguments={"file_path": "a", "mode": "rb"}), workspace
            )

    def test_line_range_order(self, workspace):
        with pytest.raises(ToolDispatchError):
            validate_tool_call(
                ToolCall(
                    name="grep_lines",
                    arguments={"file_path": "a", "start_line": 5, "end_line": 2},
                ),
                workspace,
            )

    def test_search_web_result_bound(self, workspace):
        with pytest.raises(ToolDispatchError):
            validate_tool_call(
                ToolCall(name="search_web", arguments={"query": "q", "max_results": 11}), workspace
            )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_result_carries_call_id(self, workspace):
        workspace.read_file = AsyncMock(return_value={"content": "x"})
        call = ToolCall(name="read_file", arguments={"file_path": "a.py"})

        result = await dispatch_tool_call(call, workspace)

        assert not result.is_error
        assert result.call_id == call.call_id
        assert result.result == {"content": "x"}
        workspace.read_file.assert_awaited_once_with("a.py")

    @pytest.mark.asyncio
    async def test_collaborator_failure_becomes_error_marker(self, workspace):
        workspace.read_file = AsyncMock(side_effect=FileNotFoundError("File not found: a.py"))
        call = ToolCall(name="read_file", arguments={"file_path": "a.py"})

        result = await dispatch_tool_call(call, workspace)

        assert result.is_error
        assert result.result == {"error": "File not found: a.py"}
        assert result.call_id == call.call_id

    @pytest.mark.asyncio
    async def test_invalid_call_becomes_error_marker(self, workspace):
        call = ToolCall(name="nonexistent_tool", arguments={})

        result = await dispatch_tool_call(call, workspace)

        assert result.is_error
        assert "nonexistent_tool" in result.error_message
        assert result.call_id == call.call_id

    @pytest.mark.asyncio
    async def test_plan_steps_are_numbered(self, workspace):
        call = ToolCall(
            name="create_plan",
            arguments={
                "title": "Refactor",
                "steps": [
                    {"description": "Read the module"},
                    {"id": "custom", "description": "Split it", "status": "in-progress"},
                ],
            },
        )

        result = await dispatch_tool_call(call, workspace)

        steps = result.result["steps"]
        assert [s["id"] for s in steps] == ["step_1", "custom"]
        assert [s["order"] for s in steps] == [1, 2]
        assert steps[0]["status"] == "pending"
