# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Error taxonomy for the orchestration core."""


class CandycodeError(Exception):
    """Base class for all errors raised by this package."""


class ProviderError(CandycodeError):
    """A backend was unreachable, returned a malformed response or failed upstream.

    Surfaced to the caller of the router; never retried at the router layer.
    """

    def __init__(self, provider: str, cause: BaseException | str):
        self.provider = provider
        self.cause = cause
        super().__init__(f"[{provider}] {cause}")


class ToolDispatchError(CandycodeError):
    """A tool call could not be validated, or its collaborator failed.

    The loop converts this into an error-marked ToolResult.
    """

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"{tool_name}: {message}")


class ConfigurationError(CandycodeError):
    """An option (e.g. the provider identifier) was not recognised."""


class BudgetExceeded(CandycodeError):
    """The context build ran out of token budget."""

    def __init__(self, remaining_files: int):
        self.remaining_files = remaining_files
        super().__init__(f"Token budget exhausted with {remaining_files} files left")
