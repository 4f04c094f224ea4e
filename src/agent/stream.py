from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, Union

from agent.errors import ProviderStreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)


DecodedEvent = Union[TextDelta, ToolInvocation]


def _attr(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


@dataclass
class _PendingTool:
    id: str
    name: str
    buffer: str = ""


class StreamDecoder:
    """
    Turns Anthropic raw message-stream events into text deltas and fully
    assembled tool invocations.

    Events may be SDK objects or plain dicts. Tool input arrives as
    ``input_json_delta`` fragments and is only parsed when its content block
    closes; an unparseable input drops that single invocation.
    """

    def __init__(self) -> None:
        self._pending: Dict[int, _PendingTool] = {}
        self.finished = False
        self.stop_reason: Optional[str] = None
        self.dropped: List[str] = []

    def feed(self, event: Any) -> List[DecodedEvent]:
        if self.finished:
            return []
        event_type = _attr(event, "type")

        if event_type == "content_block_start":
            block = _attr(event, "content_block")
            if _attr(block, "type") == "tool_use":
                pending = _PendingTool(id=_attr(block, "id") or "", name=_attr(block, "name") or "")
                initial = _attr(block, "input")
                # Non-streamed inputs arrive whole on the start block.
                if isinstance(initial, dict) and initial:
                    pending.buffer = json.dumps(initial)
                self._pending[_attr(event, "index") or 0] = pending
            return []

        if event_type == "content_block_delta":
            delta = _attr(event, "delta")
            delta_type = _attr(delta, "type")
            if delta_type == "text_delta":
                text = _attr(delta, "text") or ""
                return [TextDelta(text)] if text else []
            if delta_type == "input_json_delta":
                pending = self._pending.get(_attr(event, "index") or 0)
                if pending is not None:
                    pending.buffer += _attr(delta, "partial_json") or ""
            return []

        if event_type == "content_block_stop":
            pending = self._pending.pop(_attr(event, "index") or 0, None)
            if pending is None:
                return []
            invocation = self._assemble(pending)
            return [invocation] if invocation else []

        if event_type == "message_delta":
            stop_reason = _attr(_attr(event, "delta"), "stop_reason")
            if stop_reason:
                self.stop_reason = stop_reason
            return []

        if event_type == "message_stop":
            self.finished = True
            return []

        if event_type == "error":
            error = _attr(event, "error")
            message = _attr(error, "message") or "provider stream error"
            raise ProviderStreamError(message)

        return []

    def _assemble(self, pending: _PendingTool) -> Optional[ToolInvocation]:
        raw = pending.buffer.strip()
        if not raw:
            return ToolInvocation(id=pending.id, name=pending.name, input={})
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Dropping tool call %s (%s): invalid input JSON: %s", pending.name, pending.id, exc)
            self.dropped.append(pending.id)
            return None
        if not isinstance(parsed, dict):
            logger.warning("Dropping tool call %s (%s): input is not an object", pending.name, pending.id)
            self.dropped.append(pending.id)
            return None
        return ToolInvocation(id=pending.id, name=pending.name, input=parsed)


async def decode_stream(
    events: AsyncIterable[Any], decoder: Optional[StreamDecoder] = None
) -> AsyncIterator[DecodedEvent]:
    decoder = decoder or StreamDecoder()
    async for event in events:
        for decoded in decoder.feed(event):
            yield decoded
        if decoder.finished:
            break
