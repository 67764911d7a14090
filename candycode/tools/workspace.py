# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
External collaborators behind the tool registry.

Tools never touch the filesystem, the shell or the network directly: they call
a Workspace. Hosts that need different behaviour (sandboxing, pending-diff
approval, remote execution) provide their own implementation.
"""

import asyncio
import logging

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from ..config import settings
from ..context.smart_context import SmartContext

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MAX_SEARCH_MATCHES = 200

ELEVATED_PATTERNS = ("sudo", "rm -rf /", "chmod 777", "chown")

DUCKDUCKGO_URL = "https://html.duckduckgo.com/html/"
DUCKDUCKGO_HOST = "duckduckgo.com"

ElevationApprover = Callable[[str], Awaitable[bool]]


class Workspace(ABC):
    """Contract for the operations tools dispatch to.

    Implementations return JSON-able dicts and raise on failure; the tool
    layer turns exceptions into error-marked results.
    """

    @abstractmethod
    async def read_file(
        self, file_path: str, start_line: int | None = None, end_line: int | None = None
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    async def write_file(self, file_path: str, content: str) -> dict[str, Any]:
        pass

    @abstractmethod
    async def list_files(self, directory_path: str) -> dict[str, Any]:
        pass

    @abstractmethod
    async def search_code(self, search_term: str) -> dict[str, Any]:
        pass

    @abstractmethod
    async def execute_command(self, command: str, needs_elevation: bool = False) -> dict[str, Any]:
        pass

    @abstractmethod
    async def search_web(self, query: str, max_results: int = 5) -> dict[str, Any]:
        pass


class LocalWorkspace(Workspace):
    """Workspace rooted at a local project directory."""

    def __init__(
        self,
        root: str | Path,
        approve_elevation: ElevationApprover | None = None,
        command_timeout: float | None = None,
    ):
        self.root = Path(root).expanduser().resolve()
        self.approve_elevation = approve_elevation
        self.command_timeout = command_timeout or settings.COMMAND_TIMEOUT

    def resolve(self, file_path: str) -> Path:
        """Expand ``~`` and anchor relative paths at the project root."""
        path = Path(file_path).expanduser()
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()

    async def read_file(
        self, file_path: str, start_line: int | None = None, end_line: int | None = None
    ) -> dict[str, Any]:
        path = self.resolve(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        if path.is_dir():
            raise IsADirectoryError(f"Path is a directory: {file_path}")

        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        lines = content.split("\n")
        result: dict[str, Any] = {"file_path": file_path, "line_count": len(lines)}

        if start_line or end_line:
            start = max(1, start_line or 1)
            end = min(len(lines), end_line or len(lines))
            if start > end:
                raise ValueError(
                    f"Invalid line range {start}-{end} for a file of {len(lines)} lines"
                )
            result.update(
                content="\n".join(lines[start - 1 : end]), start_line=start, end_line=end
            )
        else:
            result["content"] = content
        return result

    async def write_file(self, file_path: str, content: str) -> dict[str, Any]:
        path = self.resolve(file_path)
        is_new_file = not path.exists()

        def _write() -> int:
            path.parent.mkdir(parents=True, exist_ok=True)
            return path.write_text(content, encoding="utf-8")

        written = await asyncio.to_thread(_write)
        logger.info(f"Wrote {written} characters to {path}")
        return {
            "file_path": file_path,
            "status": "written",
            "is_new_file": is_new_file,
            "characters_written": written,
        }

    async def list_files(self, directory_path: str) -> dict[str, Any]:
        path = self.resolve(directory_path)
        if not path.is_dir():
            raise FileNotFoundError(f"Directory not found: {directory_path}")

        def _list() -> list[dict]:
            files = []
            for item in sorted(path.iterdir(), key=lambda p: p.name):
                is_dir = item.is_dir()
                files.append(
                    {
                        "name": item.name,
                        "path": str(item),
                        "type": "folder" if is_dir else "file",
                        "size": None if is_dir else item.stat().st_size,
                    }
                )
            return files

        return {"directory_path": directory_path, "files": await asyncio.to_thread(_list)}

    async def search_code(self, search_term: str) -> dict[str, Any]:
        if not search_term:
            raise ValueError("No search term provided")

        def _search() -> list[dict]:
            matches = []
            for path in SmartContext(self.root).relevant_files():
                try:
                    text = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    continue
                for number, line in enumerate(text.split("\n"), start=1):
                    if search_term in line:
                        matches.append(
                            {
                                "file": path.relative_to(self.root).as_posix(),
                                "line": number,
                                "content": line.strip(),
                            }
                        )
                        if len(matches) >= MAX_SEARCH_MATCHES:
                            return matches
            return matches

        return {"search_term": search_term, "matches": await asyncio.to_thread(_search)}

    @staticmethod
    def requires_elevation(command: str, needs_elevation: bool = False) -> bool:
        lowered = command.lower()
        return needs_elevation or any(p in lowered for p in ELEVATED_PATTERNS)

    async def execute_command(self, command: str, needs_elevation: bool = False) -> dict[str, Any]:
        if self.requires_elevation(command, needs_elevation):
            approved = (
                await self.approve_elevation(command) if self.approve_elevation else False
            )
            if not approved:
                logger.info(f"Elevated command not approved: {command}")
                return {
                    "command": command,
                    "status": "pending" if self.approve_elevation is None else "rejected",
                    "needs_elevation": True,
                    "needs_password": "sudo" in command.lower(),
                }

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(self.root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.command_timeout
            )
        except asyncio.TimeoutError:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                process.kill()  # Force kill if terminate didn't work
            raise TimeoutError(f"Command timed out after {self.command_timeout}s")

        return {
            "command": command,
            "stdout": stdout.decode(errors="replace"),
            "stderr": stderr.decode(errors="replace"),
            "exit_code": process.returncode,
            "status": "completed",
        }

    async def search_web(self, query: str, max_results: int = 5) -> dict[str, Any]:
        max_results = min(max_results or 5, 10)
        async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
            response = await client.get(
                DUCKDUCKGO_URL,
                params={"q": query},
                headers={
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
                },
            )
            response.raise_for_status()

        return {"query": query, "results": parse_search_results(response.text, max_results)}


def result_url(href: str) -> str | None:
    """Resolve a result link, unwrapping DuckDuckGo's ``/l/?uddg=`` redirect.

    Returns None for links that stay on DuckDuckGo (ads, internal pages).
    """
    if href.startswith("//"):
        href = f"https:{href}"
    parsed = urlparse(href)
    if parsed.netloc.endswith(DUCKDUCKGO_HOST):
        target = parse_qs(parsed.query).get("uddg")
        if not target:
            return None
        href = target[0]
        parsed = urlparse(href)
    if parsed.scheme not in ("http", "https") or parsed.netloc.endswith(DUCKDUCKGO_HOST):
        return None
    return href


def parse_search_results(page: str, max_results: int) -> list[dict[str, str]]:
    """Extract title, url and snippet of each organic result on a DuckDuckGo HTML page."""
    soup = BeautifulSoup(page, "html.parser")
    results = []
    for block in soup.select("div.result"):
        if len(results) >= max_results:
            break
        if "result--ad" in block.get("class", []):
            continue
        link = block.select_one("a.result__a")
        if link is None:
            continue
        url = result_url(link.get("href", ""))
        title = link.get_text(" ", strip=True)
        if not url or not title:
            continue
        snippet = block.select_one(".result__snippet")
        results.append(
            {
                "title": title,
                "url": url,
                "snippet": snippet.get_text(" ", strip=True) if snippet else "",
            }
        )
    return results
