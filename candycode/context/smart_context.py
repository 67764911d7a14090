# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Context compression: pack a project into a token-budgeted prompt payload.

In smart mode the project tree and the manifest files are always emitted. The
remaining files are visited in descending importance and rendered either in
full (small files) or as extracted signatures, until the running token estimate
would cross the budget; the rest are replaced by a single notice.
"""

import os
import asyncio
import logging

from pathlib import Path

from .file_tree import build_tree
from .importance import rank_by_importance
from .signatures import extract_signatures
from ..config import settings
from ..errors import BudgetExceeded
from ..types.common import ContextMode
from ..types.context_types import FileSummary

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset(
    {
        ".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build",
        "target", ".next", "coverage", ".idea", ".cache", ".pytest_cache", "eggs",
        ".tox", "htmlcov", ".mypy_cache", ".ruff_cache", "bower_components",
        "dist-electron", ".vscode", ".cursor",
    }
)

SOURCE_EXTENSIONS = frozenset(
    {
        ".py", ".js", ".ts", ".jsx", ".tsx", ".java", ".cpp", ".go", ".rs", ".rb",
        ".php", ".sh", ".md", ".json", ".yaml", ".toml", ".html", ".css", ".dart",
        ".kt", ".swift", ".c", ".h", ".sql", ".vue", ".svelte", ".astro",
        ".prisma", ".graphql", ".proto",
    }
)

MANIFEST_FILES = frozenset(
    {
        "package.json", "tsconfig.json", "pyproject.toml", "cargo.toml", "go.mod",
        "requirements.txt", "next.config.js", "vite.config.ts",
    }
)

# Byte thresholds
FULL_CONTENT_THRESHOLD = 500
MANIFEST_SIZE_LIMIT = 5000

# Tokens held back for the prompt scaffolding around the context
RESERVED_TOKENS = 2000


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters."""
    return len(text) // 4


def is_ignored(name: str) -> bool:
    return name in IGNORED_DIRS or name.endswith(".egg-info")


class SmartContext:
    """Builds the project context payload for one project directory."""

    def __init__(
        self,
        project_dir: str | Path,
        compression_mode: ContextMode | str = ContextMode.SMART,
        max_context_files: int | None = None,
        token_budget: int | None = None,
    ):
        self.project_dir = Path(project_dir).expanduser().resolve()
        self.compression_mode = ContextMode(compression_mode)
        self.max_context_files = (
            max_context_files if max_context_files is not None else settings.MAX_CONTEXT_FILES
        )
        self.token_budget = token_budget if token_budget is not None else settings.TOKEN_BUDGET

    @property
    def project_name(self) -> str:
        return self.project_dir.name

    async def build_context(self, mode: ContextMode | str | None = None) -> str:
        """Build the payload for ``mode`` (defaults to the configured mode).

        The traversal is blocking file I/O, so it runs in a worker thread.
        """
        mode = ContextMode(mode) if mode is not None else self.compression_mode
        return await asyncio.to_thread(self.build_context_sync, mode)

    def build_context_sync(self, mode: ContextMode) -> str:
        if mode == ContextMode.FULL:
            return self.build_full_context()
        elif mode == ContextMode.MINIMAL:
            return self.build_minimal_context()
        return self.build_smart_context()

    # ------------------------------------------------------------------
    # Traversal

    def relevant_files(self) -> list[Path]:
        """Walk the project, skipping ignored directories and unreadable entries.

        Entries are visited in lexicographic order, so the result is stable for
        a given snapshot of the project.
        """
        found: list[Path] = []

        def walk(directory: Path) -> None:
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.debug(f"Skipping unreadable directory {directory}: {e}")
                return

            for entry in entries:
                if is_ignored(entry.name):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        walk(Path(entry.path))
                    elif entry.is_file():
                        path = Path(entry.path)
                        if (
                            path.suffix.lower() in SOURCE_EXTENSIONS
                            or entry.name.lower() in MANIFEST_FILES
                        ):
                            found.append(path)
                except OSError:
                    continue

        walk(self.project_dir)
        return found

    def ranked_files(self) -> list[Path]:
        """Relevant files in descending importance, truncated to max_context_files."""
        return rank_by_importance(self.relevant_files())[: self.max_context_files]

    def build_tree(self) -> str:
        return build_tree(self.project_dir, is_ignored)

    def relative(self, path: Path) -> str:
        return path.relative_to(self.project_dir).as_posix()

    # ------------------------------------------------------------------
    # Per-file summaries

    def summarize_file(self, path: Path) -> FileSummary:
        rel = self.relative(path)
        try:
            raw = path.read_bytes()
            content = raw.decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return FileSummary(path=rel, error=str(e))

        line_count = len(content.split("\n"))
        if len(raw) < FULL_CONTENT_THRESHOLD:
            return FileSummary(
                path=rel,
                line_count=line_count,
                byte_length=len(raw),
                content_mode="full",
                payload=content,
                compression_ratio=1.0,
            )

        signatures = extract_signatures(content, path.suffix)
        kept = len(signatures.split("\n")) if signatures else 0
        return FileSummary(
            path=rel,
            line_count=line_count,
            byte_length=len(raw),
            content_mode="signatures",
            payload=signatures,
            compression_ratio=kept / max(1, line_count),
        )

    @staticmethod
    def render_summary(summary: FileSummary) -> str:
        if summary.content_mode == "full":
            return (
                f"\n### {summary.path} ({summary.line_count} lines) [FULL]"
                f"\n```\n{summary.payload}\n```"
            )
        if summary.payload:
            return f"\n### {summary.path} ({summary.ratio_label})\n```\n{summary.payload}\n```"
        lines = summary.line_count or "?"
        return f"\n### {summary.path} ({lines} lines) - Use read_file for content"

    # ------------------------------------------------------------------
    # Payloads

    def build_full_context(self) -> str:
        return (
            f"Project: {self.project_name}\n"
            "Context Mode: Full (all file contents)\n\n"
            "Note: Full context mode reads all files. "
            "Use smart or minimal for better performance."
        )

    def build_minimal_context(self) -> str:
        tree = self.build_tree()
        return f"""# Project: {self.project_name}

## Structure
```
{tree}
```

## Instructions
This is a minimal context view. Use `read_file` to examine any file you need.
Use `search_code` to find specific patterns across the codebase."""

    def manifest_section(self, files: list[Path]) -> list[str]:
        section = []
        for path in files:
            if path.name.lower() not in MANIFEST_FILES:
                continue
            try:
                raw = path.read_bytes()
            except OSError as e:
                logger.debug(f"Skipping unreadable manifest {path}: {e}")
                continue
            if len(raw) >= MANIFEST_SIZE_LIMIT:
                continue
            content = raw.decode("utf-8", errors="replace")
            section.append(f"\n### {self.relative(path)}\n```\n{content}\n```")
        return section

    def pack_files(self, files: list[Path], budget: int, into: list[str]) -> None:
        """Append rendered summaries to ``into`` until ``budget`` would be crossed.

        Raises:
            BudgetExceeded: with the number of files that did not fit.
        """
        used = 0
        for i, path in enumerate(files):
            entry = self.render_summary(self.summarize_file(path))
            cost = estimate_tokens(entry)
            if used + cost > budget:
                raise BudgetExceeded(len(files) - i)
            into.append(entry)
            used += cost

    def build_smart_context(self) -> str:
        files = self.ranked_files()
        tree = self.build_tree()
        config_section = self.manifest_section(files)
        code_files = [p for p in files if p.name.lower() not in MANIFEST_FILES]

        remaining_budget = (
            self.token_budget
            - estimate_tokens(tree)
            - estimate_tokens("".join(config_section))
            - RESERVED_TOKENS
        )

        code_section: list[str] = []
        try:
            self.pack_files(code_files, remaining_budget, code_section)
        except BudgetExceeded as e:
            logger.info(
                f"Context budget reached for {self.project_name}; "
                f"{e.remaining_files} files omitted"
            )
            code_section.append(
                f"\n... and {e.remaining_files} more files. Use read_file to examine them."
            )

        total_tokens = estimate_tokens(tree + "".join(config_section) + "".join(code_section))
        configs = "".join(config_section) if config_section else "No standard config files found."

        return f"""# Project: {self.project_name}
## Context Mode: Smart Compressed (~{total_tokens:,} tokens)

**IMPORTANT**: This is a compressed view showing code signatures and structure.
- Use `read_file(path)` to get full file contents when needed
- Use `search_code(pattern)` to find specific code patterns
- Config files are shown in full below

## Project Structure
```
{tree}
```

## Configuration Files
{configs}

## Code Signatures (functions, classes, exports)
{"".join(code_section)}"""
