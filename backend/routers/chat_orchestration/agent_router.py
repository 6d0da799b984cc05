"""
Agent Router - decides which backend agent answers a prompt.

Flow:
    1. Greeting short-circuit (handled by the orchestrator via is_greeting)
    2. Routing prompt = prompt + up to 5 previous user prompts, newest first
    3. LLM classifier with a closed JSON contract {"target", "reason"}
    4. Any classifier failure -> deterministic keyword heuristic

Classifier failures never reach the caller. Only the agent that ends up
executing can surface an upstream error.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from config import runtime_config
from errors import ClassifierError, LLMError
from logging_config import log_route
from services.json_repair import parse_json_response, strip_code_fence

logger = logging.getLogger(__name__)


class AgentTarget(str, Enum):
    LOG_ANALYSIS = "LOG_ANALYSIS"
    DATA_QUERY = "DATA_QUERY"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"


# Older classifier prompts used service names for the same targets
_TARGET_ALIASES = {
    "RCA_SERVICE": AgentTarget.LOG_ANALYSIS,
    "DATA_SERVICE": AgentTarget.DATA_QUERY,
}

GREETING_PATTERN = re.compile(r"^(hi|hello|hey|greetings|good\s+(morning|afternoon|evening))(\W.*)?$", re.DOTALL)

_CAPABILITIES_HTML = (
    "<p><strong>Hi! I'm PayU Sensei.</strong></p>"
    "<p>I can help with:</p>"
    "<ul>"
    "<li>Investigating failures and providing RCAs.</li>"
    "<li>Fetching or summarizing transaction/data insights on request.</li>"
    "</ul>"
)

GREETING_HTML = (
    _CAPABILITIES_HTML
    + "<p>How can I help you today? Ask about an incident/failure or a data/metrics request.</p>"
)

OUT_OF_SCOPE_HTML = (
    _CAPABILITIES_HTML
    + "<p>I stay focused on these two areas to be most helpful. Ask me about an incident/failure "
    "or a data/metrics request, and I'll jump in.</p>"
)

DATA_KEYWORDS = ("fetch", "report", "stats", "data", "analytics", "count", "list", "view")
FAILURE_KEYWORDS = ("fail", "error", "exception", "500", "timeout", "bug", "outage", "issue")

_KEYED_LIMIT = re.compile(r"\b(top|limit|last|first|recent)\s+(\d{1,4})\b", re.IGNORECASE)
_BARE_NUMBER = re.compile(r"\b(\d{1,3})\b")

ROUTER_SYSTEM_PROMPT = """You are the router for a transaction support assistant.
Classify the user request and pick the internal agent that should answer it.
You never answer the question yourself; you only route.

Return ONLY a JSON object:
{"target": "LOG_ANALYSIS" | "DATA_QUERY" | "OUT_OF_SCOPE", "reason": "<short explanation>"}

Agents:
1. LOG_ANALYSIS - root-cause analysis of failures, errors, exceptions, timeouts or
   outages; "why did it fail"; anything that asks to look at logs.
2. DATA_QUERY - fetching or listing transactions, counts, metrics, reports,
   filtering or any request to read data from the database.
3. OUT_OF_SCOPE - anything unrelated to failures or data retrieval.

Decision order:
- Mentions of "log" or "logs" -> LOG_ANALYSIS.
- Otherwise mentions of "db" or "database" -> DATA_QUERY.
- "why", "cause", "reason", "explain", "root cause" -> LOG_ANALYSIS.
- "failed" alone does not imply analysis: "get last 10 failed transactions" is DATA_QUERY.
- Unclear but data-like -> DATA_QUERY. Unclear but debugging-like -> LOG_ANALYSIS.

Previous user prompts, when present, show the ongoing intent of the conversation.
Use them for follow-ups such as "and the one before?" or "why?".
"""


@dataclass
class RouterDecision:
    """Ephemeral per-turn routing result."""

    target: AgentTarget
    reason: str = ""
    source: str = "classifier"  # classifier, heuristic, greeting, direct


def is_greeting(prompt: Optional[str]) -> bool:
    if prompt is None:
        return False
    return bool(GREETING_PATTERN.match(prompt.strip().lower()))


def build_routing_prompt(prompt: Optional[str], recent_user_prompts: Optional[List[str]] = None) -> str:
    """Append prior user prompts (most recent first) for intent continuity."""
    prompt = prompt or ""
    previous = [p for p in (recent_user_prompts or []) if p is not None]
    if not previous:
        return prompt

    lines = [prompt, "", "Previous user prompts in this chat (most recent first):"]
    lines.extend(f"- {p}" for p in previous)
    return "\n".join(lines) + "\n"


def parse_decision(content: Optional[str]) -> RouterDecision:
    """Parse the classifier's JSON answer.

    Raises:
        ClassifierError: Missing, blank or unknown target, or unparsable output
    """
    cleaned = strip_code_fence(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = parse_json_response(cleaned)

    if not isinstance(data, dict):
        raise ClassifierError("Router response is not a JSON object", details=(content or "")[:200])

    target = data.get("target")
    if not isinstance(target, str) or not target.strip():
        raise ClassifierError("Router response missing 'target'")

    normalized = target.strip().upper()
    if normalized in _TARGET_ALIASES:
        resolved = _TARGET_ALIASES[normalized]
    else:
        try:
            resolved = AgentTarget(normalized)
        except ValueError:
            raise ClassifierError(f"Unknown router target: {target}", target=target) from None

    reason = data.get("reason")
    return RouterDecision(target=resolved, reason=reason if isinstance(reason, str) else "")


def fallback_heuristic(prompt: Optional[str]) -> AgentTarget:
    lower = (prompt or "").lower()
    wants_data = any(word in lower for word in DATA_KEYWORDS)
    mentions_failure = any(word in lower for word in FAILURE_KEYWORDS)

    if mentions_failure and not wants_data:
        return AgentTarget.LOG_ANALYSIS
    if wants_data and not mentions_failure:
        return AgentTarget.DATA_QUERY
    if not wants_data and not mentions_failure:
        return AgentTarget.OUT_OF_SCOPE
    # Both present: data retrieval wins
    return AgentTarget.DATA_QUERY


def resolve_limit(prompt: Optional[str], explicit_limit: Optional[int] = None) -> int:
    """Row limit for data queries, clamped to [1, max_limit]."""
    max_limit = runtime_config.max_limit
    if explicit_limit is not None and explicit_limit > 0:
        return min(explicit_limit, max_limit)

    text = prompt or ""
    for pattern, group in ((_KEYED_LIMIT, 2), (_BARE_NUMBER, 1)):
        match = pattern.search(text)
        if match:
            value = int(match.group(group))
            if value > 0:
                return min(value, max_limit)

    return max(1, min(runtime_config.default_limit, max_limit))


class AgentRouter:
    """LLM classifier with a keyword fallback."""

    def __init__(self, llm_client=None):
        self.llm_client = llm_client

    async def classify(self, routing_prompt: str) -> RouterDecision:
        """Ask the classifier model.

        Raises:
            ClassifierError, LLMError: Any failure; callers fall back
        """
        if self.llm_client is None:
            raise ClassifierError("No LLM client configured for routing")

        content = await self.llm_client.acomplete(
            system_instruction=ROUTER_SYSTEM_PROMPT,
            user_content=routing_prompt,
            model=runtime_config.model_router,
            temperature=runtime_config.router_temperature,
            json_mode=True,
        )
        return parse_decision(content)

    async def route(
        self,
        prompt: str,
        recent_user_prompts: Optional[List[str]] = None,
        is_followup: bool = False,
    ) -> RouterDecision:
        routing_prompt = build_routing_prompt(prompt, recent_user_prompts)
        if is_followup:
            logger.debug(f"Routing follow-up with {len(recent_user_prompts or [])} previous prompts")

        try:
            decision = await self.classify(routing_prompt)
        except (ClassifierError, LLMError) as e:
            logger.warning(f"Router model failed ({e}); falling back to heuristic routing")
            decision = RouterDecision(
                target=fallback_heuristic(routing_prompt),
                reason="keyword heuristic",
                source="heuristic",
            )

        log_route(logger, decision.target.value, decision.source, decision.reason)
        return decision
