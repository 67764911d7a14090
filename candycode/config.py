# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Runtime configuration for the orchestration core.

Values are read from the environment (after loading a local ``.env`` file)
once, at import time, into the module-level ``settings`` instance.
"""

import os

from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class Settings:
    """Configuration for the provider router, loop controller and context engine"""

    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Provider routing
    DEFAULT_PROVIDER: str = field(
        default_factory=lambda: os.getenv("CANDYCODE_DEFAULT_PROVIDER", "gemini")
    )
    OLLAMA_BASE_URL: str = field(
        default_factory=lambda: os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")
    )
    GEMINI_API_KEY: str | None = field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
    GROQ_API_KEY: str | None = field(default_factory=lambda: os.getenv("GROQ_API_KEY"))
    XAI_API_KEY: str | None = field(default_factory=lambda: os.getenv("XAI_API_KEY"))
    MOONSHOT_API_KEY: str | None = field(
        default_factory=lambda: os.getenv("MOONSHOT_API_KEY")
    )

    # Agentic loop
    MAX_ITERATIONS: int = field(
        default_factory=lambda: _env_int("CANDYCODE_MAX_ITERATIONS", 50)
    )
    PRO_MAX_ITERATIONS: int = field(
        default_factory=lambda: _env_int("CANDYCODE_PRO_MAX_ITERATIONS", 500)
    )
    TOOL_TIMEOUT: float = field(
        default_factory=lambda: _env_float("CANDYCODE_TOOL_TIMEOUT", 600.0)
    )
    COMMAND_TIMEOUT: float = field(
        default_factory=lambda: _env_float("CANDYCODE_COMMAND_TIMEOUT", 120.0)
    )

    # Context compression
    CONTEXT_MODE: str = field(
        default_factory=lambda: os.getenv("CANDYCODE_CONTEXT_MODE", "smart")
    )
    MAX_CONTEXT_FILES: int = field(
        default_factory=lambda: _env_int("CANDYCODE_MAX_CONTEXT_FILES", 100)
    )
    TOKEN_BUDGET: int = field(
        default_factory=lambda: _env_int("CANDYCODE_TOKEN_BUDGET", 1_000_000)
    )

    # Host boundary
    SERVER_HOST: str = field(
        default_factory=lambda: os.getenv("CANDYCODE_HOST", "127.0.0.1")
    )
    SERVER_PORT: int = field(default_factory=lambda: _env_int("CANDYCODE_PORT", 8765))
    # Sessions whose events the event bus keeps in memory
    EVENT_STORE_SESSIONS: int = field(
        default_factory=lambda: _env_int("CANDYCODE_EVENT_STORE_SESSIONS", 32)
    )

    def api_key_for(self, provider: str) -> str | None:
        """Return the environment-configured API key for a backend, if any."""
        return {
            "gemini": self.GEMINI_API_KEY,
            "groq": self.GROQ_API_KEY,
            "grok": self.XAI_API_KEY,
            "moonshot": self.MOONSHOT_API_KEY,
        }.get(provider)


# Global settings instance
settings = Settings()
