# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from dataclasses import dataclass
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .common import ChunkType, ContextMode, LicenseTier, ProviderId, Role
from .tool_types import PlanStep, ToolResult, new_call_id


class ToolCall(BaseModel):
    """A structured request, emitted by a model, to run a named tool"""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: str = Field(default_factory=new_call_id)


class ConversationMessage(BaseModel):
    """One entry of a conversation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_results: list[ToolResult] | None = None


class ContextFile(BaseModel):
    path: str
    content: str = ""


class ContinuationState(BaseModel):
    """Resumption data for a session that hit a context or time limit"""

    user_input: str
    todo_list: list[PlanStep] = Field(default_factory=list)
    files_created: list[str] = Field(default_factory=list)
    last_file_content: ContextFile | None = None
    recent_summary: str = "Working on task..."


class ProviderOptions(BaseModel):
    """Per-request configuration passed to the router.

    `provider` is kept as a raw string: the router resolves unknown values to
    the default backend instead of rejecting the request.
    """

    provider: str = ""
    model: str | None = None
    api_key: SecretStr | None = None
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    context: str | None = None
    project_dir: str | None = None
    context_mode: ContextMode = ContextMode.SMART
    context_files: list[ContextFile] = Field(default_factory=list)
    license_tier: LicenseTier | None = None
    is_pro: bool = False  # deprecated, use license_tier
    continuation_state: ContinuationState | None = None

    @property
    def tier(self) -> LicenseTier:
        if self.license_tier is not None:
            return self.license_tier
        return LicenseTier.PRO if self.is_pro else LicenseTier.FREE

    def api_key_value(self) -> str | None:
        return self.api_key.get_secret_value() if self.api_key else None


@dataclass(frozen=True)
class TierLimits:
    max_loops: int | None  # None: bounded only by configuration
    allow_smart_context: bool
    allow_full_context: bool


LICENSE_LIMITS: dict[LicenseTier, TierLimits] = {
    LicenseTier.FREE: TierLimits(max_loops=50, allow_smart_context=False, allow_full_context=False),
    LicenseTier.STANDARD: TierLimits(max_loops=15, allow_smart_context=True, allow_full_context=False),
    LicenseTier.PRO: TierLimits(max_loops=None, allow_smart_context=True, allow_full_context=True),
}


def permitted_context_mode(requested: ContextMode, tier: LicenseTier) -> ContextMode:
    """Downgrade a requested context mode to what the tier allows."""
    limits = LICENSE_LIMITS[tier]
    if requested == ContextMode.FULL and not limits.allow_full_context:
        requested = ContextMode.SMART
    if requested == ContextMode.SMART and not limits.allow_smart_context:
        requested = ContextMode.MINIMAL
    return requested


class ChatChunk(BaseModel):
    """A normalised piece of streamed output"""

    type: ChunkType
    data: Any = None
    name: str | None = None
    call_id: str | None = None


class ChatResult(BaseModel):
    """Terminal result of a single chat_stream call"""

    provider: ProviderId
    model: str | None = None
    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str | None = None
    cancelled: bool = False


class ModelDescriptor(BaseModel):
    id: str
    name: str
    description: str = ""
    limits: str | None = None
    provider: ProviderId | None = None
    recommended: bool = False
    installed: bool = False


class ProviderDescriptor(BaseModel):
    id: ProviderId
    name: str
    description: str
    is_free: bool = False
