"""
Out Of Scope Handler - catch-all with lowest priority (1000).

Replies with the canned capabilities message; no external call is made.
"""

from ..agent_router import OUT_OF_SCOPE_HTML, AgentTarget
from .base import AgentHandler, TurnContext


class OutOfScopeHandler(AgentHandler):
    priority = 1000
    name = "out_of_scope"
    target = AgentTarget.OUT_OF_SCOPE

    def should_handle(self, ctx: TurnContext) -> bool:
        """Always matches as fallback."""
        return True

    async def handle(self, ctx: TurnContext) -> str:
        return OUT_OF_SCOPE_HTML
