"""
Sensei Chat Router - REST endpoints for chat turns and conversation history.

The caller's identity comes from the X-User-Id header (set by the gateway in
front of this service) and an optional X-User-Role header that selects the
analysis persona. SenseiError subclasses raised here are turned into JSON
error envelopes by the handler registered in main.py.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import BaseModel, Field

from errors import ValidationError

from .chat_orchestration import TurnOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class PromptRequest(BaseModel):
    prompt: str
    chatId: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=0)


class QueryRequest(BaseModel):
    query: str
    chatId: Optional[str] = None
    category: Optional[str] = None


class UpdateMessageRequest(BaseModel):
    content: Optional[str] = None
    contentType: Optional[str] = None


class Caller(BaseModel):
    owner: str
    role: Optional[str] = None


def get_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Caller:
    if not x_user_id or not x_user_id.strip():
        raise ValidationError("Missing caller identity", parameter="X-User-Id", expected="non-blank header")
    return Caller(owner=x_user_id.strip(), role=(x_user_role or "").strip() or None)


def get_orchestrator(request: Request) -> TurnOrchestrator:
    return request.app.state.orchestrator


@router.post("/api/chat/prompt")
async def chat_prompt(
    body: PromptRequest,
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Run one chat turn: route, answer, format and persist."""
    result = await orchestrator.process_turn(
        caller.owner,
        body.prompt,
        chat_id=body.chatId,
        limit=body.limit,
        role=caller.role,
    )
    return {"response": result.response, "chatId": result.chat_id, "target": result.target}


@router.post("/api/query")
async def query(
    body: QueryRequest,
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Direct transaction analysis, skipping the router."""
    result = await orchestrator.analyze_query(
        caller.owner,
        body.query,
        chat_id=body.chatId,
        category=body.category,
    )
    return {"response": result.response, "chatId": result.chat_id}


@router.get("/api/chat/history")
async def chat_history(
    chatId: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    conversation, messages = orchestrator.context.conversation_history(caller.owner, chatId)
    return {
        "chatId": conversation.external_id if conversation else chatId,
        "messages": [m.to_dict() for m in messages],
    }


@router.get("/api/chat/conversations")
async def list_conversations(
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in orchestrator.context.list_conversations(caller.owner)]


@router.post("/api/chat/conversations")
async def create_conversation(
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """New chat; an existing empty chat is handed back instead of a duplicate."""
    return orchestrator.context.create_conversation(caller.owner).to_dict()


@router.patch("/api/chat/messages/{message_id}", status_code=204)
async def update_message(
    message_id: int,
    body: UpdateMessageRequest,
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Response:
    orchestrator.context.edit_message(caller.owner, message_id, body.content, body.contentType)
    return Response(status_code=204)


@router.delete("/api/chat/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    caller: Caller = Depends(get_caller),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Delete a USER message together with the assistant reply that follows it."""
    orchestrator.context.delete_message_for_owner(caller.owner, message_id)
    return Response(status_code=204)
