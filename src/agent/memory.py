from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from uuid import uuid4

from agent.errors import PlanOwnershipError, StalePlanError
from models.schemas import Conversation, Message, Trip, TripPlan


class TripStore(ABC):
    """Read/write access to trips and their itinerary documents."""

    @abstractmethod
    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        ...

    @abstractmethod
    async def load_plan(self, trip_id: str) -> Optional[TripPlan]:
        ...

    @abstractmethod
    async def save_plan(self, trip_id: str, user_id: str, plan: TripPlan) -> TripPlan:
        """
        Persist ``plan`` if it was read at the current version; returns the
        stored plan with its version bumped.
        """
        ...


class ConversationStore(ABC):
    @abstractmethod
    async def create_conversation(self, user_id: str, trip_id: str, title: Optional[str] = None) -> Conversation:
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def list_conversations(self, trip_id: str, user_id: str) -> List[Conversation]:
        ...

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        ...

    @abstractmethod
    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        ...


class InMemoryTripStore(TripStore):
    """
    In-process trip store. Plans are deep-copied on the way in and out so a
    tool mutating its snapshot never touches the stored document.
    """

    def __init__(self) -> None:
        self._trips: Dict[str, Trip] = {}
        self._plans: Dict[str, TripPlan] = {}
        self._lock = asyncio.Lock()

    def add_trip(self, trip: Trip, plan: Optional[TripPlan] = None) -> None:
        self._trips[trip.id] = trip
        if plan is not None:
            self._plans[trip.id] = plan.model_copy(deep=True)

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self._trips.get(trip_id)

    async def load_plan(self, trip_id: str) -> Optional[TripPlan]:
        plan = self._plans.get(trip_id)
        return plan.model_copy(deep=True) if plan else None

    async def save_plan(self, trip_id: str, user_id: str, plan: TripPlan) -> TripPlan:
        async with self._lock:
            trip = self._trips.get(trip_id)
            if trip is None or trip.user_id != user_id:
                raise PlanOwnershipError(f"User {user_id} cannot write the plan for trip {trip_id}")
            current = self._plans.get(trip_id)
            current_version = current.version if current else 0
            if current is not None and plan.version != current_version:
                raise StalePlanError(trip_id, plan.version, current_version)
            stored = plan.model_copy(deep=True)
            stored.version = current_version + 1
            self._plans[trip_id] = stored
            return stored.model_copy(deep=True)


class InMemoryConversationStore(ConversationStore):
    """Append-only transcript kept in process memory."""

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}

    async def create_conversation(self, user_id: str, trip_id: str, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(id=str(uuid4()), user_id=user_id, trip_id=trip_id, title=title)
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    async def list_conversations(self, trip_id: str, user_id: str) -> List[Conversation]:
        matches = [
            conv
            for conv in self._conversations.values()
            if conv.trip_id == trip_id and conv.user_id == user_id
        ]
        return sorted(matches, key=lambda conv: conv.created_at, reverse=True)

    async def add_message(self, message: Message) -> Message:
        if message.conversation_id not in self._conversations:
            raise KeyError(f"Unknown conversation {message.conversation_id}")
        stored = copy.deepcopy(message)
        self._messages[message.conversation_id].append(stored)
        return stored

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        history = list(self._messages.get(conversation_id, []))
        if limit is not None:
            history = history[-limit:]
        return history

    async def delete_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        del self._conversations[conversation_id]
        self._messages.pop(conversation_id, None)
        return True


def to_claude_messages(history: List[Message]) -> List[Dict[str, Any]]:
    """
    Convert stored transcript rows into a Claude messages payload.

    Consecutive rows with the same role are merged because the Messages API
    requires alternating turns, and a leading assistant row is dropped.
    """
    claude_msgs: List[Dict[str, Any]] = []
    for msg in history:
        if not msg.content:
            continue
        if not claude_msgs and msg.role != "user":
            continue
        if claude_msgs and claude_msgs[-1]["role"] == msg.role:
            claude_msgs[-1]["content"] += "\n\n" + msg.content
            continue
        claude_msgs.append({"role": msg.role, "content": msg.content})
    return claude_msgs
