# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Provider routing for the coding assistant.

Normalises streaming chat across Gemini, Groq, Grok, Moonshot and a local
Ollama instance, and bounds the history sent to each of them.
"""

import logging

from .history import optimize_history
from .router import ProviderRouter

# Quieten LLM API call logs to make stdout more useful
logging.getLogger("httpx").setLevel(logging.WARNING)

__all__ = ["ProviderRouter", "optimize_history"]
