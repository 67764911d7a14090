# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from typing import Literal
from pydantic import BaseModel


class FileSummary(BaseModel):
    """A derived, per-build view of one project file"""

    path: str
    line_count: int = 0
    byte_length: int = 0
    content_mode: Literal["full", "signatures"] = "signatures"
    payload: str = ""
    compression_ratio: float = 1.0
    error: str | None = None

    @property
    def ratio_label(self) -> str:
        extracted = self.payload.count("\n") + 1 if self.payload else 0
        return f"{extracted}/{self.line_count} lines ({int(100 * self.compression_ratio)}%)"
