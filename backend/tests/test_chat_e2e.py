"""
End-to-end tests for the chat REST endpoints.

Tests the full flow: POST prompt -> route -> agent -> format -> persist ->
history, with the LLM and data agent replaced by fakes.

Strategy:
    - Build a lightweight FastAPI app that includes ONLY the chat router
      and the SenseiError handler
    - Wire an orchestrator over in-memory stores in a noop lifespan
    - Use Starlette TestClient for synchronous requests
    - Each test is independent (fresh stores per test)
"""

import json
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from errors import SenseiError, TRANSACTION_ID_HINT
from routers.chat_orchestration import TurnOrchestrator
from routers.chat_orchestration.agent_router import GREETING_HTML, ROUTER_SYSTEM_PROMPT
from routers.chat_orchestration.formatter import FORMATTER_SYSTEM_PROMPT
from fakes import FakeLLMClient


ALICE = {"X-User-Id": "alice", "X-User-Role": "DEVELOPER"}
BOB = {"X-User-Id": "bob"}


class FakeDataClient:
    def __init__(self):
        self.calls = []

    async def query(self, prompt, limit):
        self.calls.append((prompt, limit))
        return f"<p>{limit} rows</p>"


def _responder(**kwargs):
    system = kwargs["system_instruction"]
    if system == ROUTER_SYSTEM_PROMPT:
        prompt = kwargs["user_content"].lower()
        target = "DATA_QUERY" if "refunds" in prompt else "LOG_ANALYSIS"
        return json.dumps({"target": target, "reason": "test"})
    if system == FORMATTER_SYSTEM_PROMPT:
        return f"<p>{kwargs['user_content']}</p>"
    return "Root cause: gateway returned 502"


def _build_test_app(conversation_store, evidence_store, llm, data_client):
    """Build a minimal FastAPI app with the chat router and no real backends."""

    @asynccontextmanager
    async def noop_lifespan(app):
        app.state.orchestrator = TurnOrchestrator(conversation_store, evidence_store, llm, data_client)
        yield

    app = FastAPI(lifespan=noop_lifespan)

    from main import sensei_error_handler
    from routers.chat import router as chat_router

    app.add_exception_handler(SenseiError, sensei_error_handler)
    app.include_router(chat_router)
    return app


@pytest.fixture()
def data_client():
    return FakeDataClient()


@pytest.fixture()
def client(conversation_store, evidence_store, data_client):
    app = _build_test_app(conversation_store, evidence_store, FakeLLMClient(responder=_responder), data_client)
    with TestClient(app) as c:
        yield c


class TestPromptEndpoint:
    """POST /api/chat/prompt"""

    def test_greeting(self, client):
        resp = client.post("/api/chat/prompt", json={"prompt": "hello"}, headers=ALICE)

        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == GREETING_HTML
        assert body["chatId"]

    def test_analysis_then_history(self, client):
        resp = client.post("/api/chat/prompt", json={"prompt": "Why did TX651750504 fail?"}, headers=ALICE)
        body = resp.json()
        assert resp.status_code == 200
        assert body["target"] == "LOG_ANALYSIS"
        assert body["response"] == "<p>Root cause: gateway returned 502</p>"

        history = client.get("/api/chat/history", params={"chatId": body["chatId"]}, headers=ALICE).json()
        assert history["chatId"] == body["chatId"]
        assert [m["role"] for m in history["messages"]] == ["USER", "ASSISTANT"]
        assert history["messages"][1]["contentType"] == "HTML"

    def test_followup_without_id_uses_chat_context(self, client):
        first = client.post("/api/chat/prompt", json={"prompt": "Why did TX651750504 fail?"}, headers=ALICE).json()
        second = client.post(
            "/api/chat/prompt",
            json={"prompt": "what was the error?", "chatId": first["chatId"]},
            headers=ALICE,
        )
        assert second.status_code == 200
        assert "Could not extract transaction ID" not in second.json()["response"]

    def test_missing_id_gets_hint(self, client):
        resp = client.post("/api/chat/prompt", json={"prompt": "why did my payment fail"}, headers=ALICE)
        assert resp.status_code == 200
        assert TRANSACTION_ID_HINT in resp.json()["response"]

    def test_data_query_limit(self, client, data_client):
        resp = client.post("/api/chat/prompt", json={"prompt": "list refunds", "limit": 12}, headers=ALICE)
        assert resp.json()["response"] == "<p>12 rows</p>"
        assert data_client.calls == [("list refunds", 12)]

    def test_blank_prompt_is_400(self, client):
        resp = client.post("/api/chat/prompt", json={"prompt": "  "}, headers=ALICE)

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_MISSING_PARAM"

    def test_missing_caller_is_400(self, client):
        resp = client.post("/api/chat/prompt", json={"prompt": "hi"})
        assert resp.status_code == 400
        assert resp.json()["error"]["context"]["parameter"] == "X-User-Id"

    def test_foreign_chat_is_404(self, client):
        chat_id = client.post("/api/chat/prompt", json={"prompt": "hello"}, headers=ALICE).json()["chatId"]
        resp = client.post("/api/chat/prompt", json={"prompt": "hello", "chatId": chat_id}, headers=BOB)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND_CONVERSATION"


class TestQueryEndpoint:
    """POST /api/query"""

    def test_direct_analysis_returns_text(self, client):
        resp = client.post(
            "/api/query",
            json={"query": "TX651750504 failed", "category": "SECURITY_ANALYSIS"},
            headers=ALICE,
        )
        assert resp.status_code == 200
        assert resp.json()["response"] == "Root cause: gateway returned 502"

    def test_no_transaction_is_400(self, client):
        resp = client.post("/api/query", json={"query": "why did it fail"}, headers=ALICE)
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == TRANSACTION_ID_HINT


class TestConversationsAndMessages:
    def test_history_without_chats(self, client):
        resp = client.get("/api/chat/history", headers=BOB)
        assert resp.json() == {"chatId": None, "messages": []}

    def test_create_reuses_empty_chat(self, client):
        first = client.post("/api/chat/conversations", headers=ALICE).json()
        second = client.post("/api/chat/conversations", headers=ALICE).json()
        assert first["chatId"] == second["chatId"]
        assert first["title"] == "New chat"

        listed = client.get("/api/chat/conversations", headers=ALICE).json()
        assert [c["chatId"] for c in listed] == [first["chatId"]]

    def test_edit_and_delete_cascade(self, client):
        chat_id = client.post("/api/chat/prompt", json={"prompt": "hello"}, headers=ALICE).json()["chatId"]
        messages = client.get("/api/chat/history", params={"chatId": chat_id}, headers=ALICE).json()["messages"]
        user_id, ai_id = messages[0]["id"], messages[1]["id"]

        assert client.patch(f"/api/chat/messages/{user_id}", json={"content": "hey"}, headers=ALICE).status_code == 204
        assert client.delete(f"/api/chat/messages/{ai_id}", headers=ALICE).status_code == 403
        assert client.delete(f"/api/chat/messages/{user_id}", headers=BOB).status_code == 403
        assert client.delete(f"/api/chat/messages/{user_id}", headers=ALICE).status_code == 204

        remaining = client.get("/api/chat/history", params={"chatId": chat_id}, headers=ALICE).json()["messages"]
        assert remaining == []

    def test_missing_message_is_404(self, client):
        resp = client.delete("/api/chat/messages/999", headers=ALICE)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND_MESSAGE"


class TestAppEndpoints:
    """Health and runtime config on the real app, with in-memory backends."""

    @pytest.fixture()
    def app_client(self):
        from config import runtime_config
        from main import app

        runtime_config.update(conversation_store="memory", evidence_backend="memory")
        with TestClient(app) as c:
            yield c

    def test_health(self, app_client):
        body = app_client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["backends"] == {"evidence_store": "memory", "conversation_store": "memory"}
        assert app_client.get("/health").headers["X-Frame-Options"] == "DENY"

    def test_config_roundtrip(self, app_client):
        resp = app_client.put("/api/config", json={"log_max_chars": 20000, "bogus": 1})
        assert resp.json()["updated"] == ["log_max_chars"]
        assert resp.json()["ignored"] == ["bogus"]
        assert app_client.get("/api/config").json()["log_max_chars"] == 20000

    def test_endpoint_change_keeps_orchestrator(self, app_client):
        """Swapping the LLM endpoint reuses the orchestrator and its turn locks."""
        from services.llm_client import get_llm_client, reset_llm_client

        orchestrator = app_client.app.state.orchestrator
        resp = app_client.put("/api/config", json={"openai_base_url": "http://llm.internal:8000/v1"})
        assert resp.json()["updated"] == ["openai_base_url"]

        try:
            assert app_client.app.state.orchestrator is orchestrator
            client = get_llm_client()
            assert client.base_url == "http://llm.internal:8000/v1"
            assert orchestrator.router.llm_client is client
            assert orchestrator.formatter.llm_client is client
            assert orchestrator.analyzer.llm_client is client
        finally:
            reset_llm_client()

    def test_body_size_limit(self, app_client):
        resp = app_client.post(
            "/api/chat/prompt",
            content=b"x" * (300 * 1024),
            headers={**ALICE, "Content-Type": "application/json"},
        )
        assert resp.status_code == 413
