"""
Data Query Handler - forwards data/metrics requests to the data agent.
"""

from services.data_service import DataServiceClient

from ..agent_router import AgentTarget, resolve_limit
from .base import AgentHandler, TurnContext


class DataQueryHandler(AgentHandler):
    priority = 20
    name = "data_query"
    target = AgentTarget.DATA_QUERY

    def __init__(self, data_client: DataServiceClient):
        self.data_client = data_client

    async def handle(self, ctx: TurnContext) -> str:
        ctx.limit = resolve_limit(ctx.prompt, ctx.limit)
        return await self.data_client.query(ctx.prompt, ctx.limit)
