from __future__ import annotations

import json
from collections.abc import Callable

import httpx
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy.orm import Session

from app.api.ai import DEFAULT_BOT_NAME, DEFAULT_SYSTEM_PROMPT
from app.db.tables import UserRow
from tests.conftest import add_user, auth

Handler = Callable[[httpx.Request], httpx.Response]
InstallBackend = Callable[[Handler], None]


def _proxied(endpoint: str, result: str) -> float:
    value = REGISTRY.get_sample_value(
        "ai_proxy_requests_total", {"endpoint": endpoint, "result": result}
    )
    return value or 0.0


def test_bot_config_passes_upstream_json_through(
    client: TestClient, learner_token: str, ai_backend: InstallBackend
) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"id": "bot-1", "name": "Coach"})

    ai_backend(handler)
    before = _proxied("bot", "ok")
    resp = client.get("/api/ai/bot/bot-1", headers=auth(learner_token))
    assert resp.status_code == 200
    assert resp.json() == {"id": "bot-1", "name": "Coach"}
    assert seen == ["/api/admin/bot/bot-1"]
    assert _proxied("bot", "ok") - before == 1


def test_bot_config_requires_login(client: TestClient) -> None:
    assert client.get("/api/ai/bot/bot-1").status_code == 401


def test_upstream_errors_become_502(
    client: TestClient, learner_token: str, ai_backend: InstallBackend
) -> None:
    ai_backend(lambda request: httpx.Response(500, text="boom"))
    resp = client.get("/api/ai/bot/bot-1", headers=auth(learner_token))
    assert resp.status_code == 502
    assert resp.json() == {"success": False, "message": "AI backend unavailable"}


def test_unreachable_backend_becomes_502(
    client: TestClient, learner_token: str, ai_backend: InstallBackend
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    ai_backend(handler)
    before = _proxied("chat_sse", "error")
    resp = client.post(
        "/api/ai/chatbot/bot-1/chat",
        json={"message": "hi"},
        headers=auth(learner_token),
    )
    assert resp.status_code == 502
    assert resp.json()["message"] == "AI backend unavailable"
    assert _proxied("chat_sse", "error") - before == 1


def test_chatbot_chat_relays_as_server_sent_events(
    client: TestClient, learner: UserRow, learner_token: str, ai_backend: InstallBackend
) -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        assert request.url.path == "/agent/chatbot/bot-1/chat"
        return httpx.Response(200, text="Hello there")

    ai_backend(handler)
    resp = client.post(
        "/api/ai/chatbot/bot-1/chat",
        json={"message": "What next?"},
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    frames = [line for line in resp.text.split("\n\n") if line]
    assert frames[0] == 'data: {"content": "Hello there"}'
    assert frames[-1] == 'data: {"done": true}'

    [body] = bodies
    assert body["message"] == "What next?"
    assert body["systemPrompt"] == DEFAULT_SYSTEM_PROMPT
    assert body["botName"] == DEFAULT_BOT_NAME
    assert body["sessionId"].startswith("session-")
    assert body["trainingContext"]["userId"] == learner.id


def test_chat_stream_returns_plain_text(
    client: TestClient, learner_token: str, ai_backend: InstallBackend
) -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, text="Step one. Step two.")

    ai_backend(handler)
    resp = client.post(
        "/api/ai/chat/stream",
        json={
            "message": "Plan my week",
            "botId": "bot-2",
            "systemPrompt": "Be brief.",
            "botName": "Planner",
            "sessionId": "session-abc",
        },
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "Step one. Step two."
    assert bodies[0]["sessionId"] == "session-abc"
    assert bodies[0]["botName"] == "Planner"


def test_chat_stream_requires_message(
    client: TestClient, learner_token: str, ai_backend: InstallBackend
) -> None:
    ai_backend(lambda request: httpx.Response(200, text="unused"))
    resp = client.post(
        "/api/ai/chat/stream",
        json={"botId": "bot-2", "systemPrompt": "Be brief.", "botName": "Planner"},
        headers=auth(learner_token),
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"


def test_training_context_scoping(
    client: TestClient,
    db: Session,
    learner: UserRow,
    learner_token: str,
    admin_token: str,
) -> None:
    own = client.get(
        f"/api/ai/training-context/{learner.id}", headers=auth(learner_token)
    )
    assert own.status_code == 200
    data = own.json()["data"]
    assert data["userId"] == learner.id
    assert data["courses"] == []
    assert data["overallProgress"]["totalCourses"] == 0

    other = add_user(db, email="other@example.com")
    denied = client.get(
        f"/api/ai/training-context/{other.id}", headers=auth(learner_token)
    )
    assert denied.status_code == 403

    missing = client.get("/api/ai/training-context/999", headers=auth(admin_token))
    assert missing.status_code == 404
    assert missing.json()["message"] == "User not found"
