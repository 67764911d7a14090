# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Prompt text shared by all backends."""

from ..types.common import ContextMode
from ..types.llm_types import ContinuationState

SYSTEM_INSTRUCTION = """You are Candy, a friendly and autonomous coding assistant for CandyCode.

AGENTIC BEHAVIOR:
- Use function calls to execute actions: call functions directly, don't describe them
- When asked to create or write files, call write_file immediately
- Work autonomously: call functions sequentially without waiting for intermediate responses
- Use read_file to understand a file before modifying it, or grep_lines for a known section
- Give brief text updates as you work, so the user knows what is happening
- After completing all actions, provide a markdown summary and call task_complete
- After calling task_complete, STOP: do not generate any more text or function calls

DYNAMIC TASK TRACKING:
- Use create_plan(title, steps) at the START of complex tasks with all steps set to "pending"
- After completing EACH step, call create_plan again with that step's status updated to "completed"

CONTINUATION SESSIONS:
- If you receive a "CONTINUATION SESSION" message, you are resuming from a previous session that hit context limits
- Check the to-do list, verify files created, and continue working from where you left off
- Do NOT restart the task

AVAILABLE FUNCTIONS:
- read_file(file_path), write_file(file_path, content), list_files(directory_path)
- grep_lines(file_path, start_line, end_line), search_code(search_term)
- create_plan(title, steps), task_complete(summary)
- execute_command(command, needs_elevation), search_web(query, max_results)

Function calling is NOT optional. When a tool can do the job, call it instead of giving the user instructions."""

CONTINUE_PROMPT = (
    "Continue with the task. Use the available tools to make progress. "
    "If done, call task_complete."
)

CONTINUATION_ACK = "Understood. Resuming the task from the current state."


def project_pointer(project_dir: str) -> str:
    """Short context used after the first turn, when the full payload is not resent."""
    return (
        f"Active Project: {project_dir}\n"
        "Use tools (list_files, read_file, search_code) to explore the codebase as needed."
    )


def license_downgrade_notice(mode: ContextMode) -> str:
    return (
        f'> **License Limit:** Context downgraded to "{mode.value}". '
        "Upgrade your license for better context awareness.\n\n"
    )


def iteration_limit_notice(max_iterations: int) -> str:
    return (
        f"\n\n**Iteration Limit Reached:** The autonomous agent has stopped after "
        f"{max_iterations} iterations without calling task_complete. "
        "Send a follow-up message to continue."
    )


_STATUS_MARKS = {"completed": "✓", "in-progress": "▶"}


def continuation_prompt(state: ContinuationState, project_dir: str | None = None) -> str:
    if state.todo_list:
        todo_summary = "\n".join(
            f"  {_STATUS_MARKS.get(t.status, '☐')} [{t.id}] {t.description}"
            for t in state.todo_list
        )
    else:
        todo_summary = "No tasks yet"

    if state.files_created:
        previous_files = "\n".join(f"  • {f}" for f in state.files_created[:-1][:10])
        if len(state.files_created) > 10:
            previous_files += "\n  ... and more"
    else:
        previous_files = "None"

    last_file_section = ""
    if state.last_file_content is not None:
        last_file_section = (
            "\nLast file being written (may be incomplete - continue if needed):\n"
            f"  Path: {state.last_file_content.path}\n"
            f"  Content:\n```\n{state.last_file_content.content[:5000]}\n```\n"
        )

    context_text = ""
    if project_dir:
        context_text = f"\n\nProject context (compressed):\nActive Project: {project_dir}\n"

    return f"""CONTINUATION SESSION - Previous session hit context limit or timeout.

Original task: {state.user_input}

Current status:
To-Do List (fully preserved):
{todo_summary}

Files created: {len(state.files_created)}
Previous files (paths only):
{previous_files}{last_file_section}

Recent progress: {state.recent_summary}
{context_text}

IMPORTANT: Continue from where you left off. Check the to-do list, verify files created, and continue working until task_complete is called. Do NOT restart the task."""
