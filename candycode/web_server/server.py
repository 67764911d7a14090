# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""FastAPI host boundary: chat, cancellation, model listing and progress events."""

import asyncio
import logging

from typing import Any, Callable, Optional
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError
import uvicorn

from ..agents import AgenticLoop
from ..config import settings
from ..errors import ConfigurationError, ProviderError
from ..events import EventBus
from ..llm.router import ProviderRouter
from ..tools import LocalWorkspace
from ..types.event_types import Event, EventType
from ..types.llm_types import ChatChunk, ModelDescriptor, ProviderDescriptor, ProviderOptions

logger = logging.getLogger(__name__)

RouterFactory = Callable[[], ProviderRouter]


class ChatRequest(BaseModel):
    """Client message starting a task on a websocket session"""

    prompt: str
    options: ProviderOptions = ProviderOptions()
    continuation: bool = False


class Session:
    """Per-connection state: each connection gets its own router and loop."""

    def __init__(self, websocket: WebSocket, router: ProviderRouter):
        self.websocket = websocket
        self.router = router
        self.loop: Optional[AgenticLoop] = None
        self.task: Optional[asyncio.Task] = None

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)

    async def send_chunk(self, chunk: ChatChunk) -> None:
        await self.send({"type": "chunk", "chunk": chunk.model_dump(mode="json")})

    def busy(self) -> bool:
        return self.task is not None and not self.task.done()

    async def forward_event(self, event: Event) -> None:
        """Relay bus events published by this connection's loop."""
        if self.loop is not None and event.metadata.get("publisher_id") == self.loop.session_id:
            await self.send({"type": "event", "event": jsonable_encoder(event)})

    async def run_chat(self, request: ChatRequest) -> None:
        options = request.options
        workspace = LocalWorkspace(options.project_dir or ".")
        event_bus = await EventBus.get_instance()
        if self.loop is None or self.loop.workspace.root != workspace.root:
            self.loop = AgenticLoop(self.router, workspace, event_bus=event_bus)

        event_types = list(EventType)
        event_bus.subscribe(event_types, self.forward_event)
        try:
            outcome = await self.loop.run(
                request.prompt, options, self.send_chunk, continuation=request.continuation
            )
        except ProviderError as e:
            await self.send({"type": "error", "provider": e.provider, "message": str(e)})
            return
        finally:
            event_bus.unsubscribe(event_types, self.forward_event)
            event_bus.forget(self.loop.session_id)
        await self.send({"type": "outcome", "outcome": outcome.model_dump(mode="json")})

    async def run_pull(self, model: str) -> None:
        async def progress(status: str) -> None:
            await self.send({"type": "progress", "model": model, "status": status})

        try:
            completed = await self.router.pull_model(model, progress)
        except (ProviderError, ConfigurationError) as e:
            await self.send({"type": "error", "message": str(e)})
            return
        await self.send({"type": "progress", "model": model, "status": "done" if completed else "cancelled"})

    def cancel(self) -> None:
        if self.loop is not None:
            self.loop.cancel()
        else:
            self.router.cancel()


def create_app(router_factory: RouterFactory = ProviderRouter) -> FastAPI:
    app = FastAPI(title="CandyCode orchestration core")

    # Enable CORS for the desktop renderer
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.router = router_factory()
    app.state.active_sessions = set()

    @app.get("/providers", response_model=list[ProviderDescriptor])
    async def list_providers():
        return app.state.router.list_providers()

    @app.get("/models", response_model=list[ModelDescriptor])
    async def list_models():
        return await app.state.router.list_models()

    @app.post("/cancel")
    async def cancel_all():
        for session in list(app.state.active_sessions):
            session.cancel()
        app.state.router.cancel()
        return {"status": "cancelled"}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        session = Session(websocket, router_factory())
        app.state.active_sessions.add(session)
        try:
            while True:
                message = await websocket.receive_json()
                kind = message.get("type")

                if kind == "cancel":
                    session.cancel()
                elif kind in ("chat", "pull_model") and session.busy():
                    await session.send({"type": "error", "message": "A request is already running"})
                elif kind == "chat":
                    try:
                        request = ChatRequest.model_validate(message)
                    except ValidationError as e:
                        await session.send({"type": "error", "message": str(e)})
                        continue
                    session.task = asyncio.create_task(session.run_chat(request))
                elif kind == "pull_model":
                    session.task = asyncio.create_task(session.run_pull(message.get("model", "")))
                else:
                    await session.send({"type": "error", "message": f"Unknown message type: {kind}"})
        except WebSocketDisconnect:
            logger.info("Websocket client disconnected")
        finally:
            session.cancel()
            if session.task is not None and not session.task.done():
                session.task.cancel()
            app.state.active_sessions.discard(session)

    return app


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Serve the host boundary with uvicorn (blocking)."""
    uvicorn.run(
        create_app(),
        host=host or settings.SERVER_HOST,
        port=port or settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
