# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult


class TaskComplete(BaseTool):
    """Signals the end of a task. This is the only tool that stops the loop."""

    TOOL_NAME = "task_complete"
    TOOL_DESCRIPTION = """Mark the task as done. Provide a markdown summary of what was accomplished.

After calling this tool, stop: no further text or tool calls are processed."""

    summary: str = Field(..., description="Markdown summary of the completed work")

    async def run(self) -> ToolResult:
        return self.ok({"summary": self.summary, "status": "completed"})
