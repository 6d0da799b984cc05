"""
Sensei Services - Shared infrastructure services.

- llm_client: OpenAI-compatible completion client with timeout and circuit breaker
- evidence_store: log lines and transaction records (Elasticsearch, file, memory)
- conversation_store: conversations and messages (SQLite, memory)
- data_service: data agent HTTP client
- json_repair: JSON extraction/repair for LLM output
"""

from .llm_client import LLMClient, get_llm_client
from .evidence_store import EvidenceStore, TransactionRecord, create_evidence_store
from .conversation_store import ConversationStore, create_conversation_store
from .data_service import DataServiceClient

__all__ = [
    "LLMClient",
    "get_llm_client",
    "EvidenceStore",
    "TransactionRecord",
    "create_evidence_store",
    "ConversationStore",
    "create_conversation_store",
    "DataServiceClient",
]
