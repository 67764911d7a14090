# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import os
import logging

from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

MAX_TREE_LINES = 200


def _sorted_entries(directory: Path, is_ignored: Callable[[str], bool]) -> tuple[list, list]:
    """Split a directory's visible entries into (files, dirs), each sorted by name."""
    files, dirs = [], []
    with os.scandir(directory) as it:
        for entry in it:
            if is_ignored(entry.name):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    dirs.append(entry.name)
                elif entry.is_file():
                    files.append(entry.name)
            except OSError:
                continue
    return sorted(files), sorted(dirs)


def build_tree(
    root: Path,
    is_ignored: Callable[[str], bool],
    max_lines: int = MAX_TREE_LINES,
) -> str:
    """Render a depth-first tree of `root`, files before subdirectories.

    Only the first `max_lines` lines are returned. Unreadable directories are
    shown without children.
    """
    lines = [f"{root.name}/"]

    def add_dir(directory: Path, prefix: str) -> None:
        if len(lines) >= max_lines:
            return
        try:
            files, dirs = _sorted_entries(directory, is_ignored)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return

        for i, name in enumerate(files):
            is_last = i == len(files) - 1 and not dirs
            lines.append(f"{prefix}{'└── ' if is_last else '├── '}{name}")

        for i, name in enumerate(dirs):
            if len(lines) >= max_lines:
                return
            is_last = i == len(dirs) - 1
            lines.append(f"{prefix}{'└── ' if is_last else '├── '}{name}/")
            add_dir(directory / name, prefix + ("    " if is_last else "│   "))

    add_dir(root, "")
    return "\n".join(lines[:max_lines])
