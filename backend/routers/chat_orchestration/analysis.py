"""
Transaction analysis - evidence lookup, log selection and the RCA completion.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from config import runtime_config
from logging_config import log_agent
from services.evidence_store import EvidenceStore

from .log_selection import LogRelevanceSelector
from .prompts import PromptCategory, build_system_message, build_user_message

logger = logging.getLogger(__name__)


def no_logs_message(transaction_id: str, correlation_id: Optional[str] = None, service_id: Optional[str] = None) -> str:
    message = f"No logs found for transaction ID: {transaction_id}"
    if correlation_id:
        message += f" (UUID: {correlation_id})"
    if service_id:
        message += f" (Service ID: {service_id})"
    return message


@dataclass
class AnalysisResult:
    text: str
    transaction_id: str
    evidence_found: bool = True
    lines_total: int = 0
    lines_selected: int = 0


class TransactionAnalyzer:
    """Runs a root-cause analysis for one transaction."""

    def __init__(self, evidence_store: EvidenceStore, llm_client, selector: Optional[LogRelevanceSelector] = None):
        self.evidence_store = evidence_store
        self.llm_client = llm_client
        self.selector = selector or LogRelevanceSelector()

    async def analyze(
        self,
        transaction_id: str,
        query: str,
        category: PromptCategory = PromptCategory.GENERAL,
        prior_turns: Optional[List[Dict[str, str]]] = None,
    ) -> AnalysisResult:
        """
        Raises:
            ExternalServiceError: Evidence store unreachable
            LLMError: Completion failed or timed out
        """
        log_agent(logger, "analysis", "start", transaction_id=transaction_id, category=category.value)

        logs = await self.evidence_store.find_logs_by_transaction_id(transaction_id)
        record = None
        if not logs:
            record = await self.evidence_store.find_transaction_record(transaction_id)
            if record is not None and record.correlation_id:
                logger.info(f"No logs for {transaction_id}; widening search to correlation id {record.correlation_id}")
                logs = await self.evidence_store.find_logs_by_transaction_id(record.correlation_id)

        if not logs:
            text = no_logs_message(
                transaction_id,
                record.correlation_id if record else None,
                record.service_id if record else None,
            )
            log_agent(logger, "analysis", "end", transaction_id=transaction_id, evidence=False)
            return AnalysisResult(text=text, transaction_id=transaction_id, evidence_found=False)

        selected = self.selector.select(logs)

        content = await self.llm_client.acomplete(
            system_instruction=build_system_message(category),
            user_content=build_user_message(category, query, selected),
            prior_turns=prior_turns or [],
            model=runtime_config.model_analysis,
            temperature=runtime_config.temperature,
            max_tokens=runtime_config.max_output_tokens,
        )

        log_agent(logger, "analysis", "end", transaction_id=transaction_id, lines=f"{len(selected)}/{len(logs)}")
        return AnalysisResult(
            text=content,
            transaction_id=transaction_id,
            lines_total=len(logs),
            lines_selected=len(selected),
        )
