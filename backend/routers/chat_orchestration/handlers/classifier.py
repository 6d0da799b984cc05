"""
Agent Classifier - Selects the handler for a routed turn.

Iterates handlers by priority (lowest first), returns first match.
"""

import logging
from typing import List, Optional

from .base import AgentHandler, TurnContext

logger = logging.getLogger(__name__)


class AgentClassifier:
    """
    Maps a router decision onto a registered handler.

    Usage:
        classifier = AgentClassifier()
        classifier.register(LogAnalysisHandler(analyzer))
        classifier.register(DataQueryHandler(data_client))
        classifier.register(OutOfScopeHandler())

        handler = classifier.classify(ctx)
        raw = await handler.handle(ctx)
    """

    def __init__(self):
        self._handlers: List[AgentHandler] = []
        self._sorted = False

    def register(self, handler: AgentHandler) -> None:
        """Register a handler."""
        self._handlers.append(handler)
        self._sorted = False
        logger.debug(f"Registered handler: {handler.name} (priority {handler.priority})")

    def _ensure_sorted(self) -> None:
        if not self._sorted:
            self._handlers.sort(key=lambda h: h.priority)
            self._sorted = True

    def classify(self, ctx: TurnContext) -> Optional[AgentHandler]:
        """
        Find the handler for a turn.

        Args:
            ctx: Turn context carrying the router decision

        Returns:
            The first matching handler, or the last registered one as a catch-all
        """
        self._ensure_sorted()

        for handler in self._handlers:
            if handler.should_handle(ctx):
                ctx.handler_name = handler.name
                logger.info(f"Turn handled by: {handler.name}")
                return handler

        # Only reachable when no catch-all handler is registered
        logger.warning("No handler matched the routed turn")
        return self._handlers[-1] if self._handlers else None

    def get_handlers(self) -> List[AgentHandler]:
        """Get all registered handlers (sorted by priority)."""
        self._ensure_sorted()
        return self._handlers.copy()


def build_classifier(analyzer, data_client, extractor=None) -> AgentClassifier:
    """Classifier with the three agents registered."""
    from .data_query import DataQueryHandler
    from .log_analysis import LogAnalysisHandler
    from .out_of_scope import OutOfScopeHandler

    classifier = AgentClassifier()
    classifier.register(LogAnalysisHandler(analyzer, extractor))
    classifier.register(DataQueryHandler(data_client))
    classifier.register(OutOfScopeHandler())

    logger.info(f"AgentClassifier initialized with {len(classifier._handlers)} handlers")
    return classifier
