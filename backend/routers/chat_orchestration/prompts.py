"""
Persona prompts for transaction analysis.

Each PromptCategory maps to a PromptRule (role, goal, template). Templates
carry {QUERY} and {LOGS} placeholders. The developer RCA template embeds a
full "ROLE & GOAL:" brief that becomes the system message; the other
categories get a short ROLE/GOAL system message and send the whole
template as the user message.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

NO_LOGS_TEXT = "No logs found matching the transaction ID.\n"


class PromptCategory(str, Enum):
    GENERAL = "GENERAL"
    DEVELOPER_RCA = "DEVELOPER_RCA"
    PERFORMANCE_ANALYSIS = "PERFORMANCE_ANALYSIS"
    SECURITY_ANALYSIS = "SECURITY_ANALYSIS"
    BUSINESS_IMPACT = "BUSINESS_IMPACT"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PromptCategory":
        """Lenient lookup; unknown or empty values fall back to GENERAL."""
        if not value:
            return cls.GENERAL
        try:
            return cls(value.strip().upper())
        except ValueError:
            logger.warning(f"Unknown prompt category {value!r}, using GENERAL")
            return cls.GENERAL


@dataclass(frozen=True)
class PromptRule:
    category: PromptCategory
    role: str
    goal: str
    template: str


_DEVELOPER_RCA_TEMPLATE = """ROLE & GOAL:
You are a senior Site Reliability Engineer (SRE) and backend engineer who knows distributed systems, \
JVM/Python services, message queues, databases and payment/transaction systems.

Your job:
- Analyse the application logs and context you are given.
- Identify the most likely root cause of the issue.
- Explain impact, timeline and contributing factors.
- Suggest concrete fixes engineering teams can act on immediately.
- If the data is insufficient, say so and list what else is needed.

WHAT TO LOOK FOR:
1. Error messages, stack traces and exception types.
2. Timestamps and the ordering of events; reconstruct the timeline up to the failure.
3. Correlation, request and transaction IDs; service, host and pod names.
4. Timeouts, retries, circuit breakers and HTTP status codes.
5. The probable root cause, not just the symptom ("connection pool exhausted by slow queries", not "DB error").
6. Your uncertainty: rank alternative causes and never invent log lines.

OUTPUT FORMAT:
1. High-Level Summary (1-3 lines)
2. Impact (who and what was affected)
3. Timeline (HH:MM:SS - event, based on logs)
4. Evidence from Logs (quote the key lines with timestamps and ids)
5. Root Cause Analysis (primary cause, contributing factors)
6. Short-Term Mitigation (steps for on-call right now)
7. Long-Term Fix / Engineering Action Items (code, config, alerting)
8. Risk & Prevention
9. If information is insufficient: top 2-3 candidate causes and the extra data required

STYLE:
Concise, structured, bullet points and headings. Tie every claim back to log evidence.

---

User Query: {QUERY}

Relevant Logs:
{LOGS}

Please provide your analysis following the format above.
"""

_GENERAL_TEMPLATE = """You are a log analysis assistant. Analyze the following logs and answer the user's question.

User Query: {QUERY}

Relevant Logs:
{LOGS}

Please provide a detailed analysis and answer to the user's question based on the logs above.
"""

_PERFORMANCE_TEMPLATE = """You are a performance analysis expert focused on bottlenecks, slow queries, \
resource constraints and optimization opportunities in distributed systems.

Your goal:
- Find performance bottlenecks in the logs
- Analyze response times, throughput and resource usage
- Highlight slow queries, timeouts and resource exhaustion
- Recommend specific optimizations

User Query: {QUERY}

Relevant Logs:
{LOGS}

Provide a detailed performance analysis with specific recommendations.
"""

_SECURITY_TEMPLATE = """You are a security analyst focused on vulnerabilities, unauthorized access attempts, \
suspicious patterns and security incidents in application logs.

Your goal:
- Identify threats and vulnerabilities
- Detect unauthorized access or suspicious activity
- Analyze authentication and authorization failures
- Recommend remediation steps

User Query: {QUERY}

Relevant Logs:
{LOGS}

Provide a detailed security analysis with a risk assessment and remediation steps.
"""

_BUSINESS_IMPACT_TEMPLATE = """You are a business impact analyst who translates technical issues \
into business metrics and user impact.

Your goal:
- Translate technical errors into business impact
- Identify affected user segments and features
- Quantify the impact (users, transactions, revenue) where the logs allow
- Prioritize issues by business criticality

User Query: {QUERY}

Relevant Logs:
{LOGS}

Provide a detailed business impact analysis with quantified metrics and prioritization.
"""

PROMPT_RULES: Dict[PromptCategory, PromptRule] = {
    PromptCategory.DEVELOPER_RCA: PromptRule(
        PromptCategory.DEVELOPER_RCA,
        "Senior Site Reliability Engineer (SRE) + Backend Engineer",
        "Analyse logs to identify root causes, explain impact, and suggest actionable fixes",
        _DEVELOPER_RCA_TEMPLATE,
    ),
    PromptCategory.GENERAL: PromptRule(
        PromptCategory.GENERAL,
        "Log Analysis Assistant",
        "Analyze logs and answer user questions",
        _GENERAL_TEMPLATE,
    ),
    PromptCategory.PERFORMANCE_ANALYSIS: PromptRule(
        PromptCategory.PERFORMANCE_ANALYSIS,
        "Performance Analysis Expert",
        "Identify performance bottlenecks and optimization opportunities",
        _PERFORMANCE_TEMPLATE,
    ),
    PromptCategory.SECURITY_ANALYSIS: PromptRule(
        PromptCategory.SECURITY_ANALYSIS,
        "Security Analyst",
        "Identify security threats and vulnerabilities in logs",
        _SECURITY_TEMPLATE,
    ),
    PromptCategory.BUSINESS_IMPACT: PromptRule(
        PromptCategory.BUSINESS_IMPACT,
        "Business Impact Analyst",
        "Translate technical issues into business metrics and user impact",
        _BUSINESS_IMPACT_TEMPLATE,
    ),
}


def get_prompt_rule(category: PromptCategory) -> PromptRule:
    return PROMPT_RULES.get(category) or PROMPT_RULES[PromptCategory.GENERAL]


def category_for_role(role: Optional[str]) -> PromptCategory:
    """Developers get the SRE persona; everyone else gets GENERAL."""
    if role and role.strip().upper() == "DEVELOPER":
        return PromptCategory.DEVELOPER_RCA
    return PromptCategory.GENERAL


def _logs_text(logs: Optional[List[str]]) -> str:
    if not logs:
        return NO_LOGS_TEXT
    return "".join(f"{line}\n" for line in logs)


def build_system_message(category: PromptCategory) -> str:
    rule = get_prompt_rule(category)

    if category == PromptCategory.DEVELOPER_RCA:
        template = rule.template
        role_start = template.find("ROLE & GOAL:")
        query_start = template.find("User Query:")
        if 0 <= role_start < query_start:
            return template[role_start:query_start].strip()

    return f"ROLE: {rule.role}\nGOAL: {rule.goal}"


def build_user_message(category: PromptCategory, query: Optional[str], logs: Optional[List[str]]) -> str:
    template = get_prompt_rule(category).template

    # Templates with an embedded role brief send only the user-facing tail
    content = template
    if "ROLE & GOAL:" in template or "ROLE:" in template:
        start = template.find("User Query:")
        if start < 0:
            start = template.find("{QUERY}")
        if start > 0:
            content = template[start:]

    return content.replace("{QUERY}", query or "").replace("{LOGS}", _logs_text(logs))
