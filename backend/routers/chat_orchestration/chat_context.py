"""
Chat context resolution.

Precedence for the active conversation is: explicit chat id > the owner's
most recently updated conversation > a freshly created one. The transaction
a thread is about is carried over from earlier turns, favouring the id that
was established earliest inside the recent window.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from config import runtime_config
from errors import AccessDeniedError, ErrorCode, NotFoundError, ValidationError
from services.conversation_store import (
    PLACEHOLDER_TITLE,
    ContentType,
    Conversation,
    ConversationStore,
    Message,
    Role,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# How many recent messages are inspected for a carried-over transaction id
PRIOR_TRANSACTION_WINDOW = 10


def generate_title(prompt: Optional[str], max_length: Optional[int] = None) -> str:
    """Collapse whitespace and cap the length with an ellipsis."""
    max_length = max_length or runtime_config.title_max_length
    if not prompt or not prompt.strip():
        return PLACEHOLDER_TITLE

    cleaned = _WHITESPACE.sub(" ", prompt.strip())
    if len(cleaned) > max_length:
        cleaned = cleaned[: max_length - 1].strip() + "…"
    return cleaned


def needs_title(title: Optional[str]) -> bool:
    return not title or not title.strip() or title.strip().lower() == PLACEHOLDER_TITLE.lower()


class ChatContextResolver:
    """Owns conversation lookup, creation, titling and turn persistence."""

    def __init__(self, store: ConversationStore):
        self.store = store

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def resolve_or_create_conversation(self, owner: str, explicit_id: Optional[str] = None) -> Conversation:
        if explicit_id and explicit_id.strip():
            conversation = self.store.find_conversation(owner, explicit_id.strip())
            if conversation is None:
                raise NotFoundError(
                    "Conversation not found",
                    resource_type="conversation",
                    resource_id=explicit_id,
                )
            return conversation

        conversation = self.store.find_conversation(owner)
        if conversation is not None:
            return conversation

        conversation = self.store.save_conversation(self._new_conversation(owner))
        logger.info(f"Created conversation {conversation.external_id} for {owner}")
        return conversation

    def create_conversation(self, owner: str) -> Conversation:
        """New conversation, unless the latest one is still empty."""
        latest = self.store.find_conversation(owner)
        if latest is not None and self.store.count_messages(latest.id) == 0:
            logger.debug(f"Reusing empty conversation {latest.external_id} for {owner}")
            return latest

        conversation = self.store.save_conversation(self._new_conversation(owner))
        logger.info(f"Created conversation {conversation.external_id} for {owner}")
        return conversation

    def _new_conversation(self, owner: str) -> Conversation:
        now = self.store.now()
        return Conversation(owner=owner, title=PLACEHOLDER_TITLE, created_at=now, updated_at=now)

    def list_conversations(self, owner: str, limit: int = 10) -> List[Conversation]:
        return self.store.recent_conversations(owner, limit)

    def conversation_history(self, owner: str, chat_id: Optional[str] = None) -> Tuple[Optional[Conversation], List[Message]]:
        """Messages oldest first for the explicit or most recent conversation."""
        if chat_id and chat_id.strip():
            conversation = self.store.find_conversation(owner, chat_id.strip())
            if conversation is None:
                raise NotFoundError("Conversation not found", resource_type="conversation", resource_id=chat_id)
        else:
            conversation = self.store.find_conversation(owner)
            if conversation is None:
                return None, []
        return conversation, self.store.messages_for_conversation(conversation.id)

    # ------------------------------------------------------------------
    # Context for the current turn
    # ------------------------------------------------------------------

    def resolve_prior_transaction_id(self, conversation_id: Optional[int]) -> Optional[str]:
        if conversation_id is None:
            return None

        recent = self.store.recent_messages(conversation_id, PRIOR_TRANSACTION_WINDOW)
        # recent is newest first; scan oldest to newest
        for message in reversed(recent):
            if message.transaction_id and message.transaction_id.strip():
                return message.transaction_id.strip()
        return None

    def history_for_llm(self, conversation: Conversation, window: Optional[int] = None) -> List[Dict[str, str]]:
        """Last few USER/ASSISTANT messages in chronological order, as chat turns."""
        window = window or runtime_config.history_window
        recent = self.store.recent_messages(conversation.id, window)
        turns = []
        for message in reversed(recent):
            if not message.content:
                continue
            role = "user" if message.role == Role.USER else "assistant"
            turns.append({"role": role, "content": message.content})
        return turns

    def recent_user_prompts(self, conversation: Conversation, limit: Optional[int] = None) -> List[str]:
        """Most recent first."""
        limit = runtime_config.routing_history_limit if limit is None else limit
        if limit <= 0:
            return []
        prompts = [m.content for m in self.store.messages_for_conversation(conversation.id) if m.role == Role.USER]
        return list(reversed(prompts[-limit:]))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist_turn(
        self,
        conversation: Conversation,
        user_text: str,
        assistant_text: str,
        transaction_id: Optional[str] = None,
        category: Optional[str] = None,
        assistant_content_type: ContentType = ContentType.HTML,
    ) -> Tuple[Message, Message]:
        if needs_title(conversation.title):
            conversation.title = generate_title(user_text)

        user_message = self.store.save_message(
            Message(
                conversation_id=conversation.id,
                role=Role.USER,
                content=user_text,
                content_type=ContentType.TEXT,
                created_at=self.store.now(),
                transaction_id=transaction_id,
                category=category,
            )
        )
        assistant_message = self.store.save_message(
            Message(
                conversation_id=conversation.id,
                role=Role.ASSISTANT,
                content=assistant_text,
                content_type=assistant_content_type,
                created_at=self.store.now(),
                transaction_id=transaction_id,
                category=category,
            )
        )

        conversation.updated_at = assistant_message.created_at
        self.store.save_conversation(conversation)
        return user_message, assistant_message

    def get_owned_message(self, owner: str, message_id: int) -> Message:
        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found", resource_type="message", resource_id=str(message_id))

        conversation = self.store.get_conversation(message.conversation_id)
        if conversation is None or conversation.owner != owner:
            raise AccessDeniedError("Message belongs to another user", reason="owner", message_id=message_id)
        return message

    def edit_message(
        self,
        owner: str,
        message_id: int,
        content: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Message:
        message = self.get_owned_message(owner, message_id)

        if content is not None and content.strip():
            message.content = content
        if content_type is not None and content_type.strip():
            try:
                message.content_type = ContentType(content_type.strip().upper())
            except ValueError:
                raise ValidationError(
                    "Unknown content type",
                    parameter="contentType",
                    expected="TEXT or HTML",
                    received=content_type,
                    code=ErrorCode.VALIDATION_INVALID_FORMAT,
                ) from None
        return self.store.save_message(message)

    def delete_user_message_cascade(self, message: Message) -> Optional[Message]:
        """Delete a USER message and the nearest following ASSISTANT message.

        Returns:
            The assistant message that was removed with it, if any
        """
        if message.role != Role.USER:
            raise AccessDeniedError("Only user messages can be deleted", reason="role", message_id=message.id)

        self.store.delete_message(message.id)
        following = self.store.next_message_after(message.conversation_id, message.created_at, Role.ASSISTANT)
        if following is not None:
            self.store.delete_message(following.id)
        logger.info(
            f"Deleted message {message.id}"
            + (f" and assistant reply {following.id}" if following is not None else "")
        )
        return following

    def delete_message_for_owner(self, owner: str, message_id: int) -> Optional[Message]:
        return self.delete_user_message_cascade(self.get_owned_message(owner, message_id))
