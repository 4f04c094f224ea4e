import json
import logging
from typing import Annotated, Any, AsyncIterator, Iterable, Iterator, List, Literal, Optional, Tuple, Union
from uuid import uuid4

import httpx
from pydantic import Field, TypeAdapter, ValidationError

from agent.places import PlaceDirectory, normalize_place_references
from agent.prompts import CONTINUE_MESSAGE
from models.schemas import CamelModel, PlaceRecord, TimelineEntry, ToolCallRecord

logger = logging.getLogger(__name__)


# Push-channel events


class StartEvent(CamelModel):
    type: Literal["start"] = "start"


class TextEvent(CamelModel):
    type: Literal["text"] = "text"
    content: str = ""


class ToolCallEvent(CamelModel):
    type: Literal["tool_call"] = "tool_call"
    tool_name: str
    tool_input: dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(CamelModel):
    type: Literal["tool_result"] = "tool_result"
    tool_name: str
    tool_result: str = ""


class PlacesContextEvent(CamelModel):
    type: Literal["places_context"] = "places_context"
    places_context: dict[str, PlaceRecord] = Field(default_factory=dict)


class TimelineEntryEvent(CamelModel):
    """Emitted by itinerary-generation streams that share this transport."""

    type: Literal["timeline_entry"] = "timeline_entry"
    day: int | None = None
    entry: TimelineEntry


class DoneEvent(CamelModel):
    type: Literal["done"] = "done"
    conversation_id: str | None = None
    tool_calls_count: int = 0
    can_continue: bool = False
    messages_saved: bool = True


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    error: str = "Unknown error"


StreamEvent = Annotated[
    Union[
        StartEvent,
        TextEvent,
        ToolCallEvent,
        ToolResultEvent,
        PlacesContextEvent,
        TimelineEntryEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(StreamEvent)


class SSEParser:
    """Incremental ``text/event-stream`` frame parser fed one line at a time."""

    def __init__(self) -> None:
        self._event: Optional[str] = None
        self._data: List[str] = []

    def feed(self, line: str) -> Optional[Tuple[str, str]]:
        line = line.rstrip("\r\n")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        return None

    def flush(self) -> Optional[Tuple[str, str]]:
        if self._event is None and not self._data:
            return None
        frame = (self._event or "message", "\n".join(self._data))
        self._event = None
        self._data = []
        return frame


def parse_sse(lines: Iterable[str]) -> Iterator[Tuple[str, str]]:
    parser = SSEParser()
    for line in lines:
        frame = parser.feed(line)
        if frame:
            yield frame
    tail = parser.flush()
    if tail:
        yield tail


def decode_event(event_name: str, data: str) -> Optional[StreamEvent]:
    """Typed event for one frame, or None when the frame is malformed or unknown."""
    try:
        payload = json.loads(data) if data else {}
    except json.JSONDecodeError as exc:
        logger.warning("Skipping SSE frame %s with invalid JSON: %s", event_name, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("Skipping SSE frame %s: payload is not an object", event_name)
        return None
    payload.setdefault("type", event_name)
    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        logger.warning("Skipping unrecognised SSE frame %s: %s", event_name, exc)
        return None


async def iter_events(resp: httpx.Response) -> AsyncIterator[StreamEvent]:
    parser = SSEParser()
    async for line in resp.aiter_lines():
        frame = parser.feed(line)
        if frame is None:
            continue
        event = decode_event(*frame)
        if event is not None:
            yield event
    tail = parser.flush()
    if tail:
        event = decode_event(*tail)
        if event is not None:
            yield event


class ChatMessage(CamelModel):
    id: str
    role: Literal["user", "assistant"]
    content: str = ""
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    places_context: dict[str, PlaceRecord] | None = None
    is_streaming: bool = False


class ChatSession:
    """
    Client side of one trip chat.

    ``send`` adds an optimistic user message and a streaming assistant
    placeholder, applies pushed events as they arrive and, once the turn is
    done, replaces the local transcript with the durable one for the
    conversation id carried by the ``done`` event.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        trip_id: str,
        user_id: str,
        conversation_id: Optional[str] = None,
    ):
        self.http = http
        self.trip_id = trip_id
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.messages: List[ChatMessage] = []
        self.directory = PlaceDirectory()
        self.timeline_entries: List[TimelineEntryEvent] = []
        self.is_streaming = False
        self.can_continue = False
        self.messages_saved = True
        self.error: Optional[str] = None

    @property
    def headers(self) -> dict:
        return {"X-User-Id": self.user_id}

    async def load_history(self, conversation_id: str) -> List[ChatMessage]:
        resp = await self.http.get(f"/conversations/{conversation_id}/messages", headers=self.headers)
        resp.raise_for_status()
        rows = resp.json().get("messages", [])
        self.messages = [ChatMessage.model_validate(row) for row in rows]
        self.directory.merge(PlaceDirectory.from_messages(self.messages))
        self.conversation_id = conversation_id
        return self.messages

    def _drop_placeholders(self, *placeholders: ChatMessage) -> None:
        ids = {p.id for p in placeholders}
        self.messages = [m for m in self.messages if m.id not in ids]

    def _fail(self, error: str, *placeholders: ChatMessage) -> None:
        self._drop_placeholders(*placeholders)
        self.error = error

    async def _apply(self, event: StreamEvent, assistant: ChatMessage) -> None:
        if isinstance(event, TextEvent):
            assistant.content += event.content
        elif isinstance(event, ToolCallEvent):
            assistant.tool_calls.append(
                ToolCallRecord(tool_name=event.tool_name, tool_input=event.tool_input, result="")
            )
        elif isinstance(event, ToolResultEvent):
            for call in reversed(assistant.tool_calls):
                if call.tool_name == event.tool_name and not call.result:
                    call.result = event.tool_result
                    break
            else:
                assistant.tool_calls.append(ToolCallRecord(tool_name=event.tool_name, result=event.tool_result))
        elif isinstance(event, PlacesContextEvent):
            self.directory.merge(PlaceDirectory(event.places_context.values()))
            assistant.places_context = self.directory.snapshot()
        elif isinstance(event, TimelineEntryEvent):
            self.timeline_entries.append(event)

    async def _finish(self, done: DoneEvent, assistant: ChatMessage) -> None:
        assistant.is_streaming = False
        self.can_continue = done.can_continue
        self.messages_saved = done.messages_saved
        if done.conversation_id:
            self.conversation_id = done.conversation_id
        assistant.content = normalize_place_references(assistant.content, self.directory)
        if not done.messages_saved or not done.conversation_id:
            # Nothing durable to reload; keep the streamed text.
            return
        try:
            await self.load_history(done.conversation_id)
        except httpx.HTTPError as exc:
            logger.warning("Could not reload conversation %s: %s", done.conversation_id, exc)

    async def send(self, content: str) -> Optional[DoneEvent]:
        text = content.strip()
        if not text or self.is_streaming:
            return None

        user_message = ChatMessage(id=f"temp-{uuid4().hex}", role="user", content=text)
        assistant = ChatMessage(id=f"temp-assistant-{uuid4().hex}", role="assistant", is_streaming=True)
        self.messages.extend([user_message, assistant])
        self.is_streaming = True
        self.can_continue = False
        self.error = None

        body = {"tripId": self.trip_id, "message": text}
        if self.conversation_id:
            body["conversationId"] = self.conversation_id

        done: Optional[DoneEvent] = None
        try:
            async with self.http.stream("POST", "/chat/stream", json=body, headers=self.headers) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    self._fail(_error_text(resp), user_message, assistant)
                    return None
                async for event in iter_events(resp):
                    if isinstance(event, ErrorEvent):
                        self._fail(event.error, user_message, assistant)
                        return None
                    if isinstance(event, DoneEvent):
                        done = event
                        break
                    await self._apply(event, assistant)
        except httpx.HTTPError as exc:
            logger.warning("Chat stream failed: %s", exc)
            self._fail(str(exc) or "Error sending message", user_message, assistant)
            return None
        finally:
            self.is_streaming = False

        if done is None:
            assistant.is_streaming = False
            self.error = "The response ended unexpectedly."
            return None
        await self._finish(done, assistant)
        return done

    async def continue_turn(self) -> Optional[DoneEvent]:
        if not self.can_continue:
            return None
        self.can_continue = False
        return await self.send(CONTINUE_MESSAGE)


def _error_text(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"HTTP error! status: {resp.status_code}"
