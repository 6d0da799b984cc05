"""
Sensei Turn Orchestrator - end-to-end processing of one chat turn.

Stages run strictly in sequence:
    validate -> resolve conversation -> greeting short-circuit
    -> route -> agent handler -> format -> persist

Turns for the same conversation are serialized with a per-key asyncio
lock; turns for different conversations run independently.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

from errors import ExternalServiceError, LLMError, ResolutionError, ValidationError, log_error
from logging_config import log_message_in, log_message_out, log_route
from services.conversation_store import ContentType, ConversationStore
from services.data_service import DataServiceClient
from services.evidence_store import EvidenceStore

from .agent_router import GREETING_HTML, AgentRouter, is_greeting
from .analysis import TransactionAnalyzer
from .chat_context import ChatContextResolver
from .formatter import ResponseFormatter
from .handlers import TurnContext, build_classifier
from .log_selection import LogRelevanceSelector
from .prompts import PromptCategory
from .transaction_ids import TransactionIdExtractor

logger = logging.getLogger(__name__)

AGENT_FAILURE_MESSAGE = "Sorry, I could not reach the backend agent. Please try again later."


class KeyedLock:
    """One asyncio.Lock per key, dropped once no turn holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class TurnResult:
    response: str
    chat_id: str
    target: Optional[str] = None
    transaction_id: Optional[str] = None


def _require(value: Optional[str], parameter: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"'{parameter}' must not be blank", parameter=parameter, expected="non-blank string")
    return value


class TurnOrchestrator:
    """Wires chat context, routing, agents and formatting into a turn."""

    def __init__(
        self,
        store: ConversationStore,
        evidence_store: EvidenceStore,
        llm_client=None,
        data_client: Optional[DataServiceClient] = None,
        extractor: Optional[TransactionIdExtractor] = None,
        selector: Optional[LogRelevanceSelector] = None,
    ):
        self.context = ChatContextResolver(store)
        self.extractor = extractor or TransactionIdExtractor()
        self.analyzer = TransactionAnalyzer(evidence_store, llm_client, selector)
        self.router = AgentRouter(llm_client)
        self.formatter = ResponseFormatter(llm_client)
        self.classifier = build_classifier(self.analyzer, data_client or DataServiceClient(), self.extractor)
        self._locks = KeyedLock()

    def use_llm_client(self, llm_client) -> None:
        """Swap the completion client in place; locks and in-flight turns are kept."""
        self.analyzer.llm_client = llm_client
        self.router.llm_client = llm_client
        self.formatter.llm_client = llm_client

    @asynccontextmanager
    async def _conversation_for(self, owner: str, chat_id: Optional[str]):
        """Resolve (or create) the conversation and hold its lock for the turn."""
        async with self._locks.hold(f"owner:{owner}"):
            conversation = self.context.resolve_or_create_conversation(owner, chat_id)
        async with self._locks.hold(f"conversation:{conversation.id}"):
            # A turn that waited here holds a copy from before the previous turn persisted
            yield self.context.store.get_conversation(conversation.id) or conversation

    async def process_turn(
        self,
        owner: str,
        prompt: str,
        chat_id: Optional[str] = None,
        limit: Optional[int] = None,
        role: Optional[str] = None,
    ) -> TurnResult:
        """
        Run a full chat turn and persist it.

        Raises:
            ValidationError: Blank owner or prompt
            NotFoundError: Explicit chat id not owned by the caller
        """
        _require(owner, "owner")
        _require(prompt, "prompt")
        log_message_in(logger, prompt, owner=owner, chat_id=chat_id, limit=limit)

        async with self._conversation_for(owner, chat_id) as conversation:
            if is_greeting(prompt):
                log_route(logger, "GREETING", "greeting")
                self.context.persist_turn(conversation, prompt, GREETING_HTML)
                log_message_out(logger, "greeting", len(GREETING_HTML))
                return TurnResult(response=GREETING_HTML, chat_id=conversation.external_id)

            recent_prompts = self.context.recent_user_prompts(conversation)
            ctx = TurnContext(
                owner=owner,
                prompt=prompt,
                conversation=conversation,
                role=role,
                limit=limit,
                prior_transaction_id=self.context.resolve_prior_transaction_id(conversation.id),
                history=self.context.history_for_llm(conversation),
            )
            ctx.decision = await self.router.route(prompt, recent_prompts, is_followup=bool(recent_prompts))
            handler = self.classifier.classify(ctx)

            content_type = ContentType.HTML
            try:
                raw = await handler.handle(ctx)
                reply = await self.formatter.format(raw)
            except ResolutionError as e:
                logger.info(f"No transaction id for turn in {conversation.external_id}")
                reply = await self.formatter.format(e.message)
            except (LLMError, ExternalServiceError) as e:
                log_error(logger, e, context=handler.name)
                reply = AGENT_FAILURE_MESSAGE
                content_type = ContentType.TEXT

            self.context.persist_turn(
                conversation,
                prompt,
                reply,
                transaction_id=ctx.transaction_id,
                category=ctx.category.value if ctx.category else None,
                assistant_content_type=content_type,
            )

        target = ctx.decision.target.value
        log_message_out(logger, target, len(reply))
        return TurnResult(
            response=reply,
            chat_id=conversation.external_id,
            target=target,
            transaction_id=ctx.transaction_id,
        )

    async def analyze_query(
        self,
        owner: str,
        query: str,
        chat_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> TurnResult:
        """
        Direct transaction analysis without routing.

        Raises:
            ValidationError: Blank owner or query
            ResolutionError: No transaction id in chat context or query
            LLMError, ExternalServiceError: Upstream failure
        """
        _require(owner, "owner")
        _require(query, "query")
        prompt_category = PromptCategory.parse(category)
        log_message_in(logger, query, owner=owner, chat_id=chat_id, category=prompt_category.value)

        async with self._conversation_for(owner, chat_id) as conversation:
            transaction_id = (
                self.context.resolve_prior_transaction_id(conversation.id)
                or self.extractor.extract(query)
            )
            if not transaction_id:
                raise ResolutionError()
            log_route(logger, "LOG_ANALYSIS", "direct", f"transaction={transaction_id}")

            history: List[Dict[str, str]] = self.context.history_for_llm(conversation)
            result = await self.analyzer.analyze(transaction_id, query, prompt_category, history)

            self.context.persist_turn(
                conversation,
                query,
                result.text,
                transaction_id=transaction_id,
                category=prompt_category.value,
                assistant_content_type=ContentType.TEXT,
            )

        log_message_out(logger, "LOG_ANALYSIS", len(result.text))
        return TurnResult(
            response=result.text,
            chat_id=conversation.external_id,
            target="LOG_ANALYSIS",
            transaction_id=transaction_id,
        )
