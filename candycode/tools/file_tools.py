# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import logging

from pydantic import Field, model_validator

from .base_tool import BaseTool
from ..types.tool_types import ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ReadFile(BaseTool):
    TOOL_NAME = "read_file"
    TOOL_DESCRIPTION = """Read the full contents of a file.

Relative paths are resolved against the project root, and a leading ~ expands to the home directory.
The project context only shows signatures for larger files: read a file before modifying it."""

    file_path: str = Field(..., description="Path of the file to read", min_length=1)

    async def run(self) -> ToolResult:
        try:
            return self.ok(await self._workspace.read_file(self.file_path))
        except Exception as e:
            return self.failed(str(e))


class WriteFile(BaseTool):
    TOOL_NAME = "write_file"
    TOOL_DESCRIPTION = """Create a file, or overwrite an existing one, with the given content.

Always provide the complete file content: partial content replaces the whole file. Parent directories are created as needed."""

    file_path: str = Field(..., description="Path of the file to write", min_length=1)
    content: str = Field(..., description="The complete new content of the file")

    async def run(self) -> ToolResult:
        try:
            return self.ok(await self._workspace.write_file(self.file_path, self.content))
        except Exception as e:
            return self.failed(str(e))


class GrepLines(BaseTool):
    TOOL_NAME = "grep_lines"
    TOOL_DESCRIPTION = """Read a range of lines from a file. Lines are 1-indexed and the range is inclusive.

Prefer this over read_file for large files when you only need a known section."""

    file_path: str = Field(..., description="Path of the file to read", min_length=1)
    start_line: int = Field(..., description="First line to return (1-indexed)", ge=1)
    end_line: int = Field(..., description="Last line to return (inclusive)", ge=1)

    @model_validator(mode="after")
    def _ordered_range(self) -> "GrepLines":
        if self.end_line < self.start_line:
            raise ValueError("end_line must not be before start_line")
        return self

    async def run(self) -> ToolResult:
        try:
            return self.ok(
                await self._workspace.read_file(
                    self.file_path, start_line=self.start_line, end_line=self.end_line
                )
            )
        except Exception as e:
            return self.failed(str(e))
