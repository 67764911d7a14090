# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Tools the agentic loop can dispatch, and the registry they live in.
"""

from .base_tool import (
    BaseTool,
    dispatch_tool_call,
    get_tools,
    tool_registry,
    validate_tool_call,
)
from .directory_tools import ListFiles
from .execute_command import ExecuteCommand
from .file_tools import GrepLines, ReadFile, WriteFile
from .plan_tools import CreatePlan
from .search_tools import SearchCode, SearchWeb
from .task_tools import TaskComplete
from .workspace import LocalWorkspace, Workspace

TASK_COMPLETE = TaskComplete.TOOL_NAME

toolkits: dict[str, list[type[BaseTool]]] = dict(
    coding=[
        ReadFile,
        WriteFile,
        ListFiles,
        GrepLines,
        SearchCode,
        CreatePlan,
        TaskComplete,
        ExecuteCommand,
        SearchWeb,
    ]
)

__all__ = [
    "BaseTool",
    "CreatePlan",
    "ExecuteCommand",
    "GrepLines",
    "ListFiles",
    "ReadFile",
    "SearchCode",
    "SearchWeb",
    "TaskComplete",
    "WriteFile",
    "LocalWorkspace",
    "TASK_COMPLETE",
    "Workspace",
    "dispatch_tool_call",
    "get_tools",
    "tool_registry",
    "toolkits",
    "validate_tool_call",
]
