# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import copy
import time
import logging

from typing import Any, ClassVar, Iterable
from pydantic import PrivateAttr, ValidationError

from .workspace import Workspace
from ..errors import ToolDispatchError
from ..types.llm_types import ToolCall
from ..types.tool_types import ToolInterface, ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Populated by BaseTool subclasses as they are defined
tool_registry: dict[str, type["BaseTool"]] = {}


class BaseTool(ToolInterface):
    """Abstract base class for all tools.

    The pydantic fields of a subclass are its parameter schema: the same model
    advertises the tool to a provider and validates the model's arguments.
    """

    # Class variables for tool metadata
    TOOL_NAME: ClassVar[str]
    TOOL_DESCRIPTION: ClassVar[str]

    _workspace: Workspace = PrivateAttr()

    def __init__(self, workspace: Workspace, **data):
        super().__init__(**data)
        self._workspace = workspace

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        # Skip registering the BaseTool class itself.
        if cls.__name__ != "BaseTool":
            tool_registry[cls.TOOL_NAME] = cls

    def ok(self, payload: Any) -> ToolResult:
        return ToolResult(name=self.TOOL_NAME, result=payload)

    def failed(self, message: str) -> ToolResult:
        return ToolResult.error(self.TOOL_NAME, message)

    @classmethod
    def parameters_schema(cls) -> dict:
        """JSON schema of the tool arguments, with references inlined."""
        return inline_schema(cls.model_json_schema())

    @classmethod
    def to_openai_tool(cls) -> dict:
        return {
            "type": "function",
            "function": {
                "name": cls.TOOL_NAME,
                "description": cls.TOOL_DESCRIPTION,
                "parameters": cls.parameters_schema(),
            },
        }


def inline_schema(schema: dict) -> dict:
    """Resolve ``$ref`` pointers into ``$defs`` and drop ``title`` annotations."""
    definitions = schema.get("$defs", {})

    def resolve(node: Any) -> Any:
        if isinstance(node, list):
            return [resolve(n) for n in node]
        if not isinstance(node, dict):
            return node
        if "$ref" in node:
            name = node["$ref"].split("/")[-1]
            if name not in definitions:
                raise ValueError(f"Schema reference {name} not found")
            return resolve(copy.deepcopy(definitions[name]))
        # A "title" key holding a schema is a property name, not an annotation
        return {
            k: resolve(v)
            for k, v in node.items()
            if k != "$defs" and not (k == "title" and isinstance(v, str))
        }

    return resolve(schema)


def get_tools(names: Iterable[str] | None = None) -> list[type[BaseTool]]:
    """Registered tool classes, optionally restricted to ``names``."""
    if names is None:
        return list(tool_registry.values())
    return [tool_registry[n] for n in names if n in tool_registry]


def validate_tool_call(call: ToolCall, workspace: Workspace) -> BaseTool:
    """Check a tool call against the registry and the tool's parameter schema.

    Raises:
        ToolDispatchError: when the tool is unknown or the arguments are invalid.
    """
    tool_cls = tool_registry.get(call.name)
    if tool_cls is None:
        raise ToolDispatchError(
            call.name, f"{call.name} does not correspond to a registered tool"
        )
    if not isinstance(call.arguments, dict):
        raise ToolDispatchError(call.name, "Tool arguments must be a JSON object")
    try:
        return tool_cls(workspace, **call.arguments)
    except ValidationError as e:
        raise ToolDispatchError(call.name, f"Invalid arguments: {e}") from e


async def dispatch_tool_call(call: ToolCall, workspace: Workspace) -> ToolResult:
    """Validate and run one tool call. Never raises for tool-level failures.

    Validation errors and collaborator exceptions both become a ToolResult
    carrying the error marker, tagged with the call's id.
    """
    start_time = time.time()
    try:
        tool = validate_tool_call(call, workspace)
        result = await tool.run()
    except ToolDispatchError as e:
        logger.info(f"Tool call rejected: {e}")
        result = ToolResult.error(call.name, e.message)
    except Exception as e:
        logger.error(f"Error during tool execution: {str(e)}")
        result = ToolResult.error(call.name, f"Tool runtime error: {str(e)}")

    return result.model_copy(
        update={"call_id": call.call_id, "duration": time.time() - start_time}
    )
