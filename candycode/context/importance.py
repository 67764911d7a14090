# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Deterministic importance tiers used to rank project files."""

from pathlib import PurePath
from typing import Callable

# Score for files no rule matches
BASELINE = 40


def _named(*names: str) -> Callable[[str], bool]:
    return lambda name: name in names


def _contains(*parts: str) -> Callable[[str], bool]:
    return lambda name: any(p in name for p in parts)


# First matching rule wins, so the order matters.
IMPORTANCE_RULES: list[tuple[Callable[[str], bool], int]] = [
    # Entry points
    (_named("main.py", "app.py", "index.js", "index.ts", "main.rs", "main.go", "mod.rs"), 100),
    # Manifests and build configuration
    (_named("package.json", "cargo.toml", "pyproject.toml", "go.mod", "tsconfig.json"), 95),
    (_named("next.config.js", "vite.config.ts", "webpack.config.js", "tailwind.config.js"), 90),
    (_contains("readme"), 85),
    (_contains("config", "settings"), 75),
    (_named(".env.example", "docker-compose.yml", "dockerfile"), 70),
    # Schemas and data models
    (_contains("schema", "types", "interface"), 65),
    (_contains("model", "entity"), 60),
    (_contains("route", "api", "handler"), 55),
    (_contains("component"), 50),
    (_contains("util", "helper", "lib"), 45),
    (_contains("test", "spec"), 20),
]


def importance(path: str | PurePath) -> int:
    """Score a file by its (case-insensitive) base name."""
    name = PurePath(path).name.lower()
    for matches, score in IMPORTANCE_RULES:
        if matches(name):
            return score
    return BASELINE


def rank_by_importance(paths: list) -> list:
    """Sort by descending importance; ties keep their encounter order."""
    return sorted(paths, key=lambda p: -importance(p))
