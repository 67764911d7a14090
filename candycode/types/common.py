# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from enum import Enum


class ProviderId(str, Enum):
    """Supported chat backends"""

    GEMINI = "gemini"
    GROQ = "groq"
    GROK = "grok"
    MOONSHOT = "moonshot"
    OLLAMA = "ollama"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ContextMode(str, Enum):
    """How much of the project is packed into the prompt"""

    FULL = "full"
    SMART = "smart"
    MINIMAL = "minimal"


class LicenseTier(str, Enum):
    FREE = "free"
    STANDARD = "standard"
    PRO = "pro"


class ChunkType(str, Enum):
    """Discriminator for streamed output chunks"""

    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    CONTINUATION = "continuation"
    ERROR = "error"
    DONE = "done"
