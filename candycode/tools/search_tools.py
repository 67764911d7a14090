# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult


class SearchCode(BaseTool):
    TOOL_NAME = "search_code"
    TOOL_DESCRIPTION = """Search the project's source files for a literal string.

Returns the file, 1-indexed line number and line content of each match."""

    search_term: str = Field(..., description="Text to search for (case-sensitive)", min_length=1)

    async def run(self) -> ToolResult:
        try:
            return self.ok(await self._workspace.search_code(self.search_term))
        except Exception as e:
            return self.failed(str(e))


class SearchWeb(BaseTool):
    TOOL_NAME = "search_web"
    TOOL_DESCRIPTION = """Search the web and return result titles and URLs.

Use this for documentation, error messages or APIs that are not in the project."""

    query: str = Field(..., description="The search query", min_length=1)
    max_results: int = Field(5, description="Maximum number of results", ge=1, le=10)

    async def run(self) -> ToolResult:
        try:
            return self.ok(await self._workspace.search_web(self.query, self.max_results))
        except Exception as e:
            return self.failed(f"Web search failed: {e}")
