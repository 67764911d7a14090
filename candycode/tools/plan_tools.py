# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import PlanStep, ToolResult


class CreatePlan(BaseTool):
    TOOL_NAME = "create_plan"
    TOOL_DESCRIPTION = """Create or update the task plan.

Call this at the start of a complex task with every step "pending", then call it again with the same steps after each one is done, updating its status."""

    title: str = Field(..., description="Short title of the plan", min_length=1)
    steps: list[PlanStep] = Field(..., description="The ordered steps of the plan")

    def normalized_steps(self) -> list[PlanStep]:
        return [
            step.model_copy(
                update={
                    "id": step.id or f"step_{i + 1}",
                    "order": step.order if step.order is not None else i + 1,
                }
            )
            for i, step in enumerate(self.steps)
        ]

    async def run(self) -> ToolResult:
        return self.ok(
            {
                "title": self.title,
                "steps": [s.model_dump() for s in self.normalized_steps()],
            }
        )
