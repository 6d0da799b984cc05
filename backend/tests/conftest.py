"""
Shared pytest fixtures for the Sensei test suite.
"""

import pytest

from config import runtime_config
from services.conversation_store import InMemoryConversationStore
from services.evidence_store import InMemoryEvidenceStore, TransactionRecord

from fakes import FakeLLMClient, sample_logs


@pytest.fixture(autouse=True)
def _restore_runtime_config():
    """Tests may tweak the shared config; put it back afterwards."""
    yield
    runtime_config.reset_to_defaults()


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore()


@pytest.fixture
def evidence_store():
    return InMemoryEvidenceStore(
        logs={
            "TX651750504": sample_logs("TX651750504"),
            "corr-7f3a": ["[Line 3] WARN retry scheduled for corr-7f3a"],
        },
        records={
            "TX000000002": TransactionRecord("TX000000002", correlation_id="corr-7f3a", service_id="svc-payments"),
            "TX000000003": TransactionRecord("TX000000003", correlation_id="corr-none", service_id="svc-refunds"),
        },
    )


@pytest.fixture
def fake_llm():
    return FakeLLMClient()
