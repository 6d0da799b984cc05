"""
Log Analysis Handler - root-cause analysis from transaction logs.

Resolves the transaction the turn is about (chat context first, then the
prompt text) and runs the analysis pipeline for it.
"""

import logging
from typing import Optional

from errors import ResolutionError

from ..agent_router import AgentTarget
from ..analysis import TransactionAnalyzer
from ..prompts import category_for_role
from ..transaction_ids import TransactionIdExtractor
from .base import AgentHandler, TurnContext

logger = logging.getLogger(__name__)


class LogAnalysisHandler(AgentHandler):
    priority = 10
    name = "log_analysis"
    target = AgentTarget.LOG_ANALYSIS

    def __init__(self, analyzer: TransactionAnalyzer, extractor: Optional[TransactionIdExtractor] = None):
        self.analyzer = analyzer
        self.extractor = extractor or TransactionIdExtractor()

    def resolve_transaction_id(self, ctx: TurnContext) -> str:
        transaction_id = ctx.prior_transaction_id or self.extractor.extract(ctx.prompt)
        if not transaction_id:
            raise ResolutionError()
        return transaction_id

    async def handle(self, ctx: TurnContext) -> str:
        ctx.transaction_id = self.resolve_transaction_id(ctx)
        ctx.category = category_for_role(ctx.role)

        result = await self.analyzer.analyze(
            ctx.transaction_id,
            ctx.prompt,
            category=ctx.category,
            prior_turns=ctx.history,
        )
        return result.text
