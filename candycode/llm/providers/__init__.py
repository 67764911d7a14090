# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from .base_provider import ChatProvider, StreamHandle
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai_compatible import (
    GrokProvider,
    GroqProvider,
    MoonshotProvider,
    OpenAICompatibleProvider,
)

__all__ = [
    "ChatProvider",
    "GeminiProvider",
    "GrokProvider",
    "GroqProvider",
    "MoonshotProvider",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "StreamHandle",
]
