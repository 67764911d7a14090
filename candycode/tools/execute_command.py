# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import logging

from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ExecuteCommand(BaseTool):
    """Tool for executing shell commands in the project directory."""

    TOOL_NAME = "execute_command"
    TOOL_DESCRIPTION = """Execute a shell command from the project root and return its output.

The command must return on its own: long-running services are stopped at the command timeout.
Commands that need elevated privileges (sudo, chown, ...) are only run after the user approves them; set needs_elevation when you know a command requires it."""

    command: str = Field(..., description="The shell command to run", min_length=1)
    needs_elevation: bool = Field(
        False, description="Whether the command requires elevated privileges"
    )

    async def run(self) -> ToolResult:
        try:
            output = await self._workspace.execute_command(self.command, self.needs_elevation)
        except Exception as e:
            logger.info(f"Command failed: {self.command}: {e}")
            return self.failed(str(e))
        return self.ok(output)
