"""
Base Handler - Abstract base class for agent handlers.

Each handler knows how to:
1. Detect if it should answer the turn (should_handle)
2. Produce the raw agent text for the turn (handle)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from services.conversation_store import Conversation

from ..agent_router import AgentTarget, RouterDecision
from ..prompts import PromptCategory


@dataclass
class TurnContext:
    """
    Context passed through the handler pipeline.

    Handlers record what they resolved (transaction id, category) so the
    orchestrator can persist it with the turn.
    """

    # Input
    owner: str
    prompt: str
    conversation: Conversation
    role: Optional[str] = None
    limit: Optional[int] = None
    decision: Optional[RouterDecision] = None

    # Chat context
    prior_transaction_id: Optional[str] = None
    history: List[Dict[str, str]] = field(default_factory=list)

    # Populated by handlers
    handler_name: str = ""
    transaction_id: Optional[str] = None
    category: Optional[PromptCategory] = None


class AgentHandler(ABC):
    """
    Abstract base class for agent handlers.

    Handlers are checked in priority order (lowest first).
    First handler where should_handle() returns True wins.
    """

    # Lower = higher priority. The out-of-scope handler has priority 1000.
    priority: int = 100
    name: str = "base"
    target: Optional[AgentTarget] = None

    def should_handle(self, ctx: TurnContext) -> bool:
        """Match on the router's target by default."""
        return ctx.decision is not None and ctx.decision.target == self.target

    @abstractmethod
    async def handle(self, ctx: TurnContext) -> str:
        """
        Produce the raw (unformatted) reply text.

        Raises:
            ResolutionError: The handler needs a transaction id and none was found
            LLMError, ExternalServiceError: Upstream failure
        """
        pass
