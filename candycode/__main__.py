# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Command-line entrypoint, run with `python -m candycode`.
"""

import sys
import asyncio
import logging
import argparse

from .agents import AgenticLoop
from .config import settings
from .context import SmartContext
from .errors import ProviderError
from .llm.router import ProviderRouter
from .tools import LocalWorkspace
from .types.common import ChunkType, ContextMode, LicenseTier
from .types.llm_types import ChatChunk, ProviderOptions

logging.captureWarnings(True)
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="candycode")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Chat command: run one task through the agentic loop
    chat_parser = subparsers.add_parser("chat", help="Run a task against a project")
    chat_parser.add_argument("prompt", type=str, help="The task to perform")
    chat_parser.add_argument("--project", type=str, default=".", help="Project directory")
    chat_parser.add_argument("--provider", type=str, default=settings.DEFAULT_PROVIDER)
    chat_parser.add_argument("--model", type=str, default=None)
    chat_parser.add_argument(
        "--context-mode",
        type=str,
        choices=[m.value for m in ContextMode],
        default=settings.CONTEXT_MODE,
    )
    chat_parser.add_argument(
        "--tier",
        type=str,
        choices=[t.value for t in LicenseTier],
        default=LicenseTier.FREE.value,
    )
    chat_parser.add_argument(
        "--max-iterations", type=int, default=settings.MAX_ITERATIONS
    )

    # Context command: print the payload the model would receive
    context_parser = subparsers.add_parser("context", help="Print the compressed project context")
    context_parser.add_argument("--project", type=str, default=".")
    context_parser.add_argument(
        "--mode",
        type=str,
        choices=[m.value for m in ContextMode],
        default=settings.CONTEXT_MODE,
    )
    context_parser.add_argument("--token-budget", type=int, default=settings.TOKEN_BUDGET)

    subparsers.add_parser("models", help="List the models of every backend")

    serve_parser = subparsers.add_parser("serve", help="Start the websocket host boundary")
    serve_parser.add_argument("--host", type=str, default=settings.SERVER_HOST)
    serve_parser.add_argument("--port", type=int, default=settings.SERVER_PORT)

    return parser


def print_chunk(chunk: ChatChunk) -> None:
    if chunk.type == ChunkType.TEXT:
        print(chunk.data, end="", flush=True)
    elif chunk.type == ChunkType.TOOL_CALL:
        print(f"\n[tool] {chunk.name}({chunk.data})", flush=True)
    elif chunk.type == ChunkType.ERROR:
        print(f"\n[error] {chunk.data}", file=sys.stderr, flush=True)


async def run_chat(args: argparse.Namespace) -> int:
    router = ProviderRouter()
    loop = AgenticLoop(router, LocalWorkspace(args.project), max_iterations=args.max_iterations)
    options = ProviderOptions(
        provider=args.provider,
        model=args.model,
        project_dir=args.project,
        context_mode=ContextMode(args.context_mode),
        license_tier=LicenseTier(args.tier),
    )
    try:
        outcome = await loop.run(args.prompt, options, print_chunk)
    except ProviderError as e:
        logger.error(f"Task failed: {e}")
        return 1
    print(f"\n\nSession {outcome.session_id}: {outcome.status.value} after {outcome.iterations} iterations")
    if outcome.summary:
        print(outcome.summary)
    return 0


async def run_models() -> int:
    try:
        models = await ProviderRouter().list_models()
    except ProviderError as e:
        logger.error(str(e))
        return 1
    for m in models:
        marker = " (recommended)" if m.recommended else ""
        print(f"{m.provider.value:<10} {m.id:<32} {m.description}{marker}")
    return 0


def main() -> int:
    args = setup_parser().parse_args()

    if args.command == "chat":
        return asyncio.run(run_chat(args))
    elif args.command == "context":
        context = SmartContext(args.project, args.mode, token_budget=args.token_budget)
        print(asyncio.run(context.build_context()))
        return 0
    elif args.command == "models":
        return asyncio.run(run_models())
    elif args.command == "serve":
        from .web_server import run_server

        run_server(args.host, args.port)
        return 0
    return 2


if __name__ == "__main__":
    sys.exit(main())
