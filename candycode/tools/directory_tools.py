# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult


class ListFiles(BaseTool):
    TOOL_NAME = "list_files"
    TOOL_DESCRIPTION = """List the entries of a directory, with their type (file or folder) and size in bytes."""

    directory_path: str = Field(
        ..., description="Directory to list; use '.' for the project root", min_length=1
    )

    async def run(self) -> ToolResult:
        try:
            return self.ok(await self._workspace.list_files(self.directory_path))
        except Exception as e:
            return self.failed(str(e))
