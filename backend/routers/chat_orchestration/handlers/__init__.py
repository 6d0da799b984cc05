"""
Agent Handlers - one handler per routing target.

Architecture:
    AgentRouter produces a RouterDecision; AgentClassifier iterates handlers
    by priority and picks the first whose should_handle() matches.

Handler Priority (lower = higher priority):
    10   - LogAnalysisHandler: transaction RCA from logs
    20   - DataQueryHandler: data/metrics requests via the data agent
    1000 - OutOfScopeHandler: everything else
"""

from .base import AgentHandler, TurnContext
from .classifier import AgentClassifier, build_classifier
from .data_query import DataQueryHandler
from .log_analysis import LogAnalysisHandler
from .out_of_scope import OutOfScopeHandler

__all__ = [
    "AgentHandler",
    "TurnContext",
    "AgentClassifier",
    "build_classifier",
    "LogAnalysisHandler",
    "DataQueryHandler",
    "OutOfScopeHandler",
]
