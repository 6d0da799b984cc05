"""
Tests for TurnOrchestrator: the full turn flow with fake collaborators.
"""

import asyncio
import json

import httpx
import pytest

from errors import ExternalServiceError, LLMError, NotFoundError, ResolutionError, ValidationError, TRANSACTION_ID_HINT
from routers.chat_orchestration.agent_router import GREETING_HTML, OUT_OF_SCOPE_HTML, ROUTER_SYSTEM_PROMPT
from routers.chat_orchestration.formatter import FORMATTER_SYSTEM_PROMPT
from routers.chat_orchestration.orchestrator import AGENT_FAILURE_MESSAGE, KeyedLock, TurnOrchestrator
from services.conversation_store import ContentType, Role, SqliteConversationStore
from services.evidence_store import ElasticsearchEvidenceStore
from fakes import FakeLLMClient


class _SlowLLMClient(FakeLLMClient):
    """Yields to the event loop before answering so turns can interleave."""

    async def acomplete(self, *, timeout_seconds=None, **kwargs):
        await asyncio.sleep(0.01)
        return await super().acomplete(timeout_seconds=timeout_seconds, **kwargs)


class FakeDataClient:
    def __init__(self, reply="<p>3 rows</p>", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def query(self, prompt, limit):
        self.calls.append((prompt, limit))
        if self.error:
            raise self.error
        return self.reply


def _scripted_llm(route_target="LOG_ANALYSIS", analysis="Root cause: gateway 502", analysis_error=None):
    """Answer router, analysis and formatter calls by their system instruction."""

    def responder(**kwargs):
        system = kwargs["system_instruction"]
        if system == ROUTER_SYSTEM_PROMPT:
            return json.dumps({"target": route_target, "reason": "test"})
        if system == FORMATTER_SYSTEM_PROMPT:
            return f"<p>{kwargs['user_content']}</p>"
        if analysis_error is not None:
            raise analysis_error
        return analysis

    return FakeLLMClient(responder=responder)


@pytest.fixture
def data_client():
    return FakeDataClient()


def _orchestrator(conversation_store, evidence_store, llm, data_client=None):
    return TurnOrchestrator(conversation_store, evidence_store, llm, data_client or FakeDataClient())


class TestGreetingTurn:
    def test_greeting_short_circuits_and_persists(self, conversation_store, evidence_store):
        llm = FakeLLMClient()
        orch = _orchestrator(conversation_store, evidence_store, llm)

        result = asyncio.run(orch.process_turn("alice", "Hello!"))

        assert result.response == GREETING_HTML
        assert result.target is None
        assert llm.calls == []
        conversation = conversation_store.find_conversation("alice")
        messages = conversation_store.messages_for_conversation(conversation.id)
        assert [m.content for m in messages] == ["Hello!", GREETING_HTML]
        assert conversation.title == "Hello!"


class TestLogAnalysisTurn:
    def test_full_flow(self, conversation_store, evidence_store):
        llm = _scripted_llm()
        orch = _orchestrator(conversation_store, evidence_store, llm)

        result = asyncio.run(orch.process_turn("alice", "Why did TX651750504 fail?", role="DEVELOPER"))

        assert result.target == "LOG_ANALYSIS"
        assert result.transaction_id == "TX651750504"
        assert result.response == "<p>Root cause: gateway 502</p>"

        conversation = conversation_store.find_conversation("alice")
        assert result.chat_id == conversation.external_id
        user_msg, ai_msg = conversation_store.messages_for_conversation(conversation.id)
        assert user_msg.transaction_id == "TX651750504"
        assert ai_msg.category == "DEVELOPER_RCA"
        assert ai_msg.content_type == ContentType.HTML

    def test_followup_reuses_prior_transaction(self, conversation_store, evidence_store):
        llm = _scripted_llm()
        orch = _orchestrator(conversation_store, evidence_store, llm)

        first = asyncio.run(orch.process_turn("alice", "Why did TX651750504 fail?"))
        second = asyncio.run(orch.process_turn("alice", "what was the error again?", chat_id=first.chat_id))

        assert second.transaction_id == "TX651750504"
        router_calls = [c for c in llm.calls if c["system_instruction"] == ROUTER_SYSTEM_PROMPT]
        assert "- Why did TX651750504 fail?" in router_calls[1]["user_content"]
        analysis_calls = [
            c for c in llm.calls
            if c["system_instruction"] not in (ROUTER_SYSTEM_PROMPT, FORMATTER_SYSTEM_PROMPT)
        ]
        assert analysis_calls[1]["prior_turns"][0] == {"role": "user", "content": "Why did TX651750504 fail?"}

    def test_missing_transaction_id_replies_with_hint(self, conversation_store, evidence_store):
        llm = _scripted_llm()
        orch = _orchestrator(conversation_store, evidence_store, llm)

        result = asyncio.run(orch.process_turn("alice", "why did my payment fail?"))

        assert TRANSACTION_ID_HINT in result.response
        assert result.transaction_id is None

    def test_no_evidence_is_informational(self, conversation_store, evidence_store):
        llm = _scripted_llm()
        orch = _orchestrator(conversation_store, evidence_store, llm)

        result = asyncio.run(orch.process_turn("alice", "why did TX999999999 fail?"))
        assert "No logs found for transaction ID: TX999999999" in result.response

    def test_upstream_failure_becomes_apology(self, conversation_store, evidence_store):
        llm = _scripted_llm(analysis_error=LLMError("timed out", error_type="timeout"))
        orch = _orchestrator(conversation_store, evidence_store, llm)

        result = asyncio.run(orch.process_turn("alice", "why did TX651750504 fail?"))

        assert result.response == AGENT_FAILURE_MESSAGE
        conversation = conversation_store.find_conversation("alice")
        ai_msg = conversation_store.messages_for_conversation(conversation.id)[-1]
        assert ai_msg.role == Role.ASSISTANT
        assert ai_msg.content_type == ContentType.TEXT

    def test_garbled_evidence_response_becomes_apology(self, conversation_store):
        evidence = ElasticsearchEvidenceStore(
            "http://es:9200",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy error</html>")),
        )
        orch = _orchestrator(conversation_store, evidence, _scripted_llm())

        result = asyncio.run(orch.process_turn("bob", "why did TX651750504 fail"))
        assert result.response == AGENT_FAILURE_MESSAGE


class TestConcurrentTurns:
    """Turns on one conversation run one after another against fresh state."""

    def test_title_set_once_on_sqlite(self, tmp_path, evidence_store):
        store = SqliteConversationStore(tmp_path / "sensei.sqlite")
        llm = _SlowLLMClient(responder=_scripted_llm().responder)
        orch = _orchestrator(store, evidence_store, llm)

        async def main():
            await asyncio.gather(
                orch.process_turn("alice", "first question about TX651750504"),
                orch.process_turn("alice", "second question about TX651750504"),
            )

        asyncio.run(main())

        conversation = store.find_conversation("alice")
        assert conversation.title == "first question about TX651750504"
        messages = store.messages_for_conversation(conversation.id)
        assert [m.content for m in messages if m.role == Role.USER] == [
            "first question about TX651750504",
            "second question about TX651750504",
        ]
        assert len(orch._locks) == 0


class TestOtherAgents:
    def test_data_query_with_limit(self, conversation_store, evidence_store, data_client):
        llm = _scripted_llm(route_target="DATA_QUERY")
        orch = _orchestrator(conversation_store, evidence_store, llm, data_client)

        result = asyncio.run(orch.process_turn("alice", "show top 7 refunds"))

        assert result.target == "DATA_QUERY"
        assert result.response == "<p>3 rows</p>"
        assert data_client.calls == [("show top 7 refunds", 7)]

    def test_data_service_failure(self, conversation_store, evidence_store):
        data_client = FakeDataClient(error=ExternalServiceError("down", service="data"))
        orch = _orchestrator(conversation_store, evidence_store, _scripted_llm(route_target="DATA_QUERY"), data_client)

        result = asyncio.run(orch.process_turn("alice", "list refunds", limit=3))
        assert result.response == AGENT_FAILURE_MESSAGE
        assert data_client.calls == [("list refunds", 3)]

    def test_out_of_scope(self, conversation_store, evidence_store):
        orch = _orchestrator(conversation_store, evidence_store, _scripted_llm(route_target="OUT_OF_SCOPE"))
        result = asyncio.run(orch.process_turn("alice", "write me a poem"))
        assert result.response == OUT_OF_SCOPE_HTML

    def test_router_failure_uses_heuristic(self, conversation_store, evidence_store, data_client):
        def responder(**kwargs):
            if kwargs["system_instruction"] == ROUTER_SYSTEM_PROMPT:
                return "not json at all"
            return "<p>ok</p>"

        orch = _orchestrator(conversation_store, evidence_store, FakeLLMClient(responder=responder), data_client)
        result = asyncio.run(orch.process_turn("alice", "fetch report"))

        assert result.target == "DATA_QUERY"
        assert data_client.calls


class TestValidationAndResolution:
    def test_blank_prompt_rejected_before_calls(self, conversation_store, evidence_store):
        llm = FakeLLMClient()
        orch = _orchestrator(conversation_store, evidence_store, llm)

        with pytest.raises(ValidationError):
            asyncio.run(orch.process_turn("alice", "   "))
        assert llm.calls == []
        assert conversation_store.find_conversation("alice") is None

    def test_blank_owner_rejected(self, conversation_store, evidence_store):
        orch = _orchestrator(conversation_store, evidence_store, FakeLLMClient())
        with pytest.raises(ValidationError):
            asyncio.run(orch.process_turn("", "hi"))

    def test_unknown_chat_id(self, conversation_store, evidence_store):
        orch = _orchestrator(conversation_store, evidence_store, FakeLLMClient())
        with pytest.raises(NotFoundError):
            asyncio.run(orch.process_turn("alice", "hi", chat_id="nope"))


class TestAnalyzeQuery:
    def test_direct_analysis(self, conversation_store, evidence_store):
        llm = FakeLLMClient(["Gateway returned 502"])
        orch = _orchestrator(conversation_store, evidence_store, llm)

        result = asyncio.run(orch.analyze_query("alice", "TX651750504 failed", category="performance_analysis"))

        assert result.response == "Gateway returned 502"
        assert len(llm.calls) == 1
        assert llm.calls[0]["system_instruction"].startswith("ROLE: Performance Analysis Expert")
        conversation = conversation_store.find_conversation("alice")
        ai_msg = conversation_store.messages_for_conversation(conversation.id)[-1]
        assert ai_msg.category == "PERFORMANCE_ANALYSIS"
        assert ai_msg.content_type == ContentType.TEXT

    def test_direct_analysis_without_id(self, conversation_store, evidence_store):
        orch = _orchestrator(conversation_store, evidence_store, FakeLLMClient())
        with pytest.raises(ResolutionError) as exc:
            asyncio.run(orch.analyze_query("alice", "why did it fail"))
        assert exc.value.message == TRANSACTION_ID_HINT


class TestKeyedLock:
    def test_serializes_same_key(self):
        lock = KeyedLock()
        order = []

        async def worker(name, key):
            async with lock.hold(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        async def main():
            await asyncio.gather(worker("a", "k"), worker("b", "k"))

        asyncio.run(main())
        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(lock) == 0

    def test_different_keys_overlap(self):
        lock = KeyedLock()
        order = []

        async def worker(name, key):
            async with lock.hold(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        async def main():
            await asyncio.gather(worker("a", "k1"), worker("b", "k2"))

        asyncio.run(main())
        assert order[:2] == ["a-in", "b-in"]
