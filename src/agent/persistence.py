from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import uuid4

from agent.errors import PersistenceError
from agent.logger import log_event
from agent.memory import ConversationStore
from agent.places import PlaceDirectory
from models.schemas import Message, ToolCallRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    user_message_id: Optional[str] = None
    assistant_message_id: Optional[str] = None


class PersistenceWriter:
    """
    Finalizes a turn: makes sure a conversation exists and records the user
    message followed by the assistant message. Runs once per turn, after the
    tool loop is done.
    """

    def __init__(self, store: ConversationStore):
        self.store = store

    async def ensure_conversation(
        self,
        user_id: str,
        trip_id: str,
        existing_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> str:
        if existing_id:
            return existing_id
        try:
            conversation = await self.store.create_conversation(user_id, trip_id, title=title)
        except Exception as exc:
            logger.error("Failed to create conversation for trip %s: %s", trip_id, exc)
            raise PersistenceError("Could not create conversation") from exc
        return conversation.id

    async def commit(
        self,
        conversation_id: str,
        user_text: str,
        assistant_text: str,
        tool_audit: List[ToolCallRecord],
        place_directory: Optional[PlaceDirectory] = None,
    ) -> CommitResult:
        user_message = Message(
            id=str(uuid4()),
            conversation_id=conversation_id,
            role="user",
            content=user_text,
        )
        try:
            await self.store.add_message(user_message)
        except Exception as exc:
            logger.error("Failed to save user message for %s: %s", conversation_id, exc)
            log_event(conversation_id, "commit_failed", {"stage": "user", "error": str(exc)})
            return CommitResult(ok=False)

        places = place_directory.snapshot() if place_directory is not None and len(place_directory) else None
        assistant_message = Message(
            id=str(uuid4()),
            conversation_id=conversation_id,
            role="assistant",
            content=assistant_text,
            tool_calls=list(tool_audit) or None,
            places_context=places,
        )
        try:
            await self.store.add_message(assistant_message)
        except Exception as exc:
            logger.error("Failed to save assistant message for %s: %s", conversation_id, exc)
            log_event(conversation_id, "commit_failed", {"stage": "assistant", "error": str(exc)})
            return CommitResult(ok=False, user_message_id=user_message.id)

        return CommitResult(
            ok=True,
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
        )
