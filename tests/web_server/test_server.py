# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the websocket host boundary."""
import pytest
from fastapi.testclient import TestClient

from candycode.events import EventBus
from candycode.llm.router import ProviderRouter
from candycode.types.common import ProviderId
from candycode.types.llm_types import ModelDescriptor
from candycode.web_server import create_app

from ..llm.fakes import FakeProvider


def make_factory(script=None):
    def factory():
        adapters = {
            ProviderId.GEMINI: FakeProvider(
                script=list(script or []),
                models=[ModelDescriptor(id="fake-model", name="Fake")],
            ),
            ProviderId.GROQ: FakeProvider(ProviderId.GROQ, models=RuntimeError("no key")),
        }
        return ProviderRouter(adapters, default_provider=ProviderId.GEMINI)

    return factory


def receive_until(websocket, kind):
    messages = []
    while True:
        message = websocket.receive_json()
        messages.append(message)
        if message["type"] == kind:
            return messages


class TestHttpEndpoints:
    def test_providers(self):
        client = TestClient(create_app(make_factory()))
        response = client.get("/providers")
        assert response.status_code == 200
        assert {p["id"] for p in response.json()} == {"gemini", "groq"}

    def test_models_degrade_on_partial_failure(self):
        client = TestClient(create_app(make_factory()))
        response = client.get("/models")
        assert response.status_code == 200
        assert [m["id"] for m in response.json()] == ["fake-model"]

    def test_cancel_when_idle(self):
        client = TestClient(create_app(make_factory()))
        assert client.post("/cancel").json() == {"status": "cancelled"}


class TestWebsocket:
    def test_chat_runs_to_completion(self, tmp_path):
        script = [("", [("task_complete", {"summary": "All done"})])]
        client = TestClient(create_app(make_factory(script)))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json(
                {
                    "type": "chat",
                    "prompt": "finish up",
                    "options": {"provider": "gemini", "project_dir": str(tmp_path)},
                }
            )
            messages = receive_until(websocket, "outcome")

        chunk_types = [m["chunk"]["type"] for m in messages if m["type"] == "chunk"]
        assert "tool_call" in chunk_types and "tool_result" in chunk_types
        outcome = messages[-1]["outcome"]
        assert outcome["status"] == "completed"
        assert outcome["summary"] == "All done"

    def test_provider_failure_is_reported(self, tmp_path):
        client = TestClient(create_app(make_factory([RuntimeError("quota exceeded")])))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "chat", "prompt": "hi", "options": {"project_dir": str(tmp_path)}})
            messages = receive_until(websocket, "error")

        assert messages[-1]["provider"] == "gemini"
        assert "quota exceeded" in messages[-1]["message"]
        assert any(m["type"] == "chunk" and m["chunk"]["type"] == "error" for m in messages)

    def test_invalid_messages(self):
        client = TestClient(create_app(make_factory()))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "dance"})
            assert "Unknown message type" in websocket.receive_json()["message"]

            websocket.send_json({"type": "chat"})
            assert websocket.receive_json()["type"] == "error"

    def test_pull_without_local_backend(self):
        client = TestClient(create_app(make_factory()))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "pull_model", "model": "llama3"})
            message = websocket.receive_json()

        assert message == {"type": "error", "message": "No local backend is configured"}


class TestEventForwarding:
    def test_loop_events_are_relayed_then_released(self, tmp_path):
        script = [("", [("task_complete", {"summary": "All done"})])]
        client = TestClient(create_app(make_factory(script)))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json(
                {
                    "type": "chat",
                    "prompt": "finish up",
                    "options": {"provider": "gemini", "project_dir": str(tmp_path)},
                }
            )
            messages = receive_until(websocket, "outcome")

        session_id = messages[-1]["outcome"]["session_id"]
        events = [m["event"] for m in messages if m["type"] == "event"]
        assert [e["type"] for e in events] == [
            "loop_status",
            "tool_call",
            "tool_result",
            "loop_status",
        ]
        assert events[1]["content"] == "task_complete"
        assert events[-1]["content"] == "completed"
        assert all(e["metadata"]["publisher_id"] == session_id for e in events)
        assert EventBus._instance.get_events(session_id) == []
