# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import uuid

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .llm_types import ConversationMessage


class LoopStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ITERATION_EXHAUSTED = "iteration_exhausted"
    FAILED = "failed"  # a provider error ended the session


class LoopSession(BaseModel):
    """State of one user-initiated task.

    Instances are frozen; the loop controller replaces the session wholesale on
    every transition, so its validators run again.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    max_iterations: int = Field(default=50, gt=0)
    current_iteration: int = Field(default=0, ge=0)
    is_active: bool = False
    task_completed: bool = False
    status: LoopStatus = LoopStatus.IDLE
    history: tuple[ConversationMessage, ...] = ()

    @model_validator(mode="after")
    def _not_both_active_and_completed(self) -> "LoopSession":
        if self.is_active and self.task_completed:
            raise ValueError("A session cannot be active once its task is completed")
        return self


class LoopOutcome(BaseModel):
    """What a finished (or stopped) run reports back to the host"""

    session_id: str
    status: LoopStatus
    iterations: int
    summary: str | None = None
    history: list[ConversationMessage] = Field(default_factory=list)
