# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Bound a conversation history before it is sent to a backend."""

from ..types.common import ProviderId, Role
from ..types.llm_types import ConversationMessage

# The local backend has no per-token cost, so it keeps a much longer window
LOCAL_HISTORY_LIMIT = 50
METERED_HISTORY_LIMIT = 10


def summary_message(omitted: int) -> ConversationMessage:
    return ConversationMessage(
        role=Role.ASSISTANT,
        content=(
            f"[Previous conversation history summarized: {omitted} messages omitted "
            "to optimize context usage. I have already completed several steps of the task.]"
        ),
    )


def optimize_history(
    history: list[ConversationMessage] | None, provider: ProviderId
) -> list[ConversationMessage]:
    """Return a bounded copy of `history` for `provider`. Never mutates the input.

    The local backend keeps its most recent 50 messages verbatim. Metered
    backends keep the last 10 verbatim; anything older is collapsed to the
    session's first user message (the original task statement) followed by a
    single synthetic summary saying how many messages were elided.
    """
    if not history:
        return []

    if provider == ProviderId.OLLAMA:
        return list(history[-LOCAL_HISTORY_LIMIT:])

    if len(history) <= METERED_HISTORY_LIMIT:
        return list(history)

    older = history[:-METERED_HISTORY_LIMIT]
    recent = history[-METERED_HISTORY_LIMIT:]

    first_user = next((m for m in older if m.role == Role.USER), None)
    omitted = len(older) - (1 if first_user is not None else 0)

    optimized: list[ConversationMessage] = []
    if first_user is not None:
        optimized.append(first_user)
    if omitted > 0:
        optimized.append(summary_message(omitted))
    optimized.extend(recent)
    return optimized
