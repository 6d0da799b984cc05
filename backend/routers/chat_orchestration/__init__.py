"""
Sensei Chat Orchestration - the decision layer between a prompt and the LLM.

Components:
- TransactionIdExtractor: ordered pattern cascade for transaction ids
- ChatContextResolver: conversation resolution, titles, carried-over transaction, threaded delete
- LogRelevanceSelector: bounded head/tail/keyword-window log selection
- AgentRouter: LLM classifier with deterministic keyword fallback, limit resolution
- ResponseFormatter: HTML fragment formatting with a local fallback
- TransactionAnalyzer: evidence lookup + persona prompt + RCA completion
- TurnOrchestrator: end-to-end turn processing with per-conversation locking

Router fallback:
    Any classifier failure (LLM error, timeout, malformed JSON, unknown
    target) is recovered with the keyword heuristic and never surfaced.
    Only failures of the agent that actually runs reach the user, as a
    fixed apology message.
"""

from .transaction_ids import TransactionIdExtractor
from .chat_context import ChatContextResolver, generate_title
from .log_selection import LogRelevanceSelector
from .agent_router import AgentRouter, AgentTarget, RouterDecision, resolve_limit
from .formatter import ResponseFormatter
from .prompts import PromptCategory
from .analysis import AnalysisResult, TransactionAnalyzer
from .orchestrator import AGENT_FAILURE_MESSAGE, KeyedLock, TurnOrchestrator, TurnResult

__all__ = [
    "TransactionIdExtractor",
    "ChatContextResolver",
    "generate_title",
    "LogRelevanceSelector",
    "AgentRouter",
    "AgentTarget",
    "RouterDecision",
    "resolve_limit",
    "ResponseFormatter",
    "PromptCategory",
    "AnalysisResult",
    "TransactionAnalyzer",
    "AGENT_FAILURE_MESSAGE",
    "KeyedLock",
    "TurnOrchestrator",
    "TurnResult",
]
