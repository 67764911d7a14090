# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import uuid

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Literal
from pydantic import BaseModel, ConfigDict, Field


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class ToolResult(BaseModel):
    """The outcome of dispatching one tool call.

    A failed dispatch is still a ToolResult: `is_error` is set and the
    payload is the error marker `{"error": "<message>"}`, so that the model
    sees the failure in its history and can adapt.
    """

    name: str
    result: Any = None
    is_error: bool = False
    call_id: str = Field(default_factory=new_call_id)
    duration: float = 0.0  # on error paths, duration is often 0

    @classmethod
    def error(cls, name: str, message: str, call_id: str | None = None) -> "ToolResult":
        data = dict(name=name, result={"error": message}, is_error=True)
        if call_id:
            data["call_id"] = call_id
        return cls(**data)

    @property
    def error_message(self) -> str | None:
        if self.is_error and isinstance(self.result, dict):
            return self.result.get("error")
        return None

    def to_plain_string(self) -> str:
        """Render the payload as the text fed back to a model."""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, indent=2, default=str)


class PlanStep(BaseModel):
    """One step of a task plan, as produced by the create_plan tool"""

    id: str | None = Field(default=None, description="Stable identifier of the step")
    description: str = Field(..., description="What this step does")
    status: Literal["pending", "in-progress", "completed", "skipped"] = Field(
        default="pending", description="Progress of the step"
    )
    order: int | None = Field(default=None, description="1-indexed position in the plan")


class ToolInterface(BaseModel, ABC):
    """Abstract interface for all tools"""

    # Class variables
    TOOL_NAME: ClassVar[str]
    TOOL_DESCRIPTION: ClassVar[str]

    model_config = ConfigDict(extra="forbid")

    @abstractmethod
    async def run(self) -> ToolResult:
        """Execute the tool's functionality"""
        pass
