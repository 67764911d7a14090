# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Orchestration core of a desktop coding assistant: provider routing, the
agentic tool-calling loop, and project context compression.
"""

__version__ = "0.1.0"
