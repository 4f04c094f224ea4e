import json
from typing import Any, Dict, List, Optional

import httpx

from agent.memory import InMemoryConversationStore, InMemoryTripStore
from models.schemas import DayPlan, PlaceRecord, TimelineEntry, Trip, TripPlan


class MockResponse:
    def __init__(self, payload: dict, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.request = httpx.Request("GET", "https://mock")

    def json(self) -> dict:
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise httpx.HTTPStatusError(
                "mock error",
                request=self.request,
                response=httpx.Response(self.status_code, request=self.request),
            )


class MockAsyncClient:
    def __init__(self, response: MockResponse):
        self.response = response
        self.calls: list[tuple[str, dict | None]] = []
        self.headers: list[dict | None] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def get(self, url: str, params=None, headers=None):
        self.calls.append((url, params))
        self.headers.append(headers)
        return self.response

    async def post(self, url: str, json=None, headers=None):
        self.calls.append((url, json))
        self.headers.append(headers)
        return self.response


# Anthropic raw stream events


def text_events(index: int, text: str, chunks: int = 2) -> List[Dict[str, Any]]:
    size = max(1, len(text) // chunks) if text else 1
    parts = [text[i : i + size] for i in range(0, len(text), size)] or [""]
    events: List[Dict[str, Any]] = [
        {"type": "content_block_start", "index": index, "content_block": {"type": "text", "text": ""}}
    ]
    for part in parts:
        events.append(
            {"type": "content_block_delta", "index": index, "delta": {"type": "text_delta", "text": part}}
        )
    events.append({"type": "content_block_stop", "index": index})
    return events


def tool_events(index: int, tool_id: str, name: str, tool_input: Optional[dict] = None, raw: Optional[str] = None):
    payload = raw if raw is not None else json.dumps(tool_input or {})
    half = len(payload) // 2
    return [
        {
            "type": "content_block_start",
            "index": index,
            "content_block": {"type": "tool_use", "id": tool_id, "name": name, "input": {}},
        },
        {
            "type": "content_block_delta",
            "index": index,
            "delta": {"type": "input_json_delta", "partial_json": payload[:half]},
        },
        {
            "type": "content_block_delta",
            "index": index,
            "delta": {"type": "input_json_delta", "partial_json": payload[half:]},
        },
        {"type": "content_block_stop", "index": index},
    ]


def provider_turn(*blocks: List[Dict[str, Any]], stop_reason: str = "end_turn") -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = [{"type": "message_start", "message": {"id": "msg", "role": "assistant"}}]
    for block in blocks:
        events.extend(block)
    events.append({"type": "message_delta", "delta": {"stop_reason": stop_reason}})
    events.append({"type": "message_stop"})
    return events


class EventStream:
    def __init__(self, events: List[Dict[str, Any]]):
        self._events = list(events)
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event

    async def close(self) -> None:
        self.closed = True


class _ScriptedMessages:
    def __init__(self, owner: "ScriptedAnthropic"):
        self._owner = owner

    async def create(self, **kwargs):
        owner = self._owner
        owner.requests.append(
            {**kwargs, "messages": json.loads(json.dumps(kwargs.get("messages", []), default=str))}
        )
        if not owner.turns:
            raise AssertionError("No scripted provider turn left")
        turn = owner.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        if callable(turn):
            turn = await turn()
        stream = EventStream(turn)
        owner.streams.append(stream)
        return stream


class ScriptedAnthropic:
    """Stands in for AsyncAnthropic: each messages.create call replays the next scripted turn."""

    def __init__(self, turns: List[Any]):
        self.turns = list(turns)
        self.requests: List[Dict[str, Any]] = []
        self.streams: List[EventStream] = []
        self.messages = _ScriptedMessages(self)


class FailingConversationStore(InMemoryConversationStore):
    """Conversation store whose writes fail for the given roles."""

    def __init__(self, fail_roles=("assistant",)):
        super().__init__()
        self.fail_roles = set(fail_roles)

    async def add_message(self, message):
        if message.role in self.fail_roles:
            raise RuntimeError(f"{message.role} write failed")
        return await super().add_message(message)


def sample_trip(trip_id: str = "trip-1", user_id: str = "user-1") -> Trip:
    return Trip(
        id=trip_id,
        user_id=user_id,
        destination="San José, Costa Rica",
        origin="Madrid",
        start_date="2025-03-01",
        end_date="2025-03-04",
        travelers=2,
    )


def sample_plan() -> TripPlan:
    return TripPlan(
        itinerary=[
            DayPlan(
                day=1,
                title="Arrival",
                subtitle="San José",
                timeline=[
                    TimelineEntry(
                        id="a1",
                        time="09:00",
                        activity="Breakfast at Café Miel",
                        location="Barrio Escalante",
                        icon="☕",
                    ),
                    TimelineEntry(
                        id="a2",
                        time="14:00",
                        activity="Museo del Jade",
                        location="Avenida Central",
                        icon="🏛️",
                    ),
                ],
            ),
            DayPlan(day=2, title="Volcano day", timeline=[]),
            DayPlan(day=3, title="Departure", timeline=[]),
        ]
    )


def sample_place(place_id: str = "ChIJ123", name: str = "Café Miel") -> PlaceRecord:
    return PlaceRecord(id=place_id, name=name, category="cafe", rating=4.6, address="Barrio Escalante")


def seeded_stores(trip: Optional[Trip] = None, plan: Optional[TripPlan] = None):
    trips = InMemoryTripStore()
    trips.add_trip(trip or sample_trip(), plan or sample_plan())
    return trips, InMemoryConversationStore()
