import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from anthropic import AsyncAnthropic
from pydantic import ValidationError

from agent.config import Settings
from agent.errors import PersistenceError
from agent.logger import log_event
from agent.memory import ConversationStore, TripStore, to_claude_messages
from agent.persistence import PersistenceWriter
from agent.places import PlaceDirectory, extract_places, normalize_place_references
from agent.prompts import CONTINUATION_NOTE, build_system_prompt
from agent.state import Done, LoopState, Requesting, advance
from agent.stream import StreamDecoder, TextDelta, ToolInvocation, decode_stream
from models.schemas import Message, ToolCallRecord, Trip
from tools import TOOLS_BY_NAME, ToolContext, ToolSpec

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], Any]

EMPTY_REPLY = "I wasn't able to produce a reply. Please try again or provide more detail."


@dataclass
class TurnResult:
    conversation_id: Optional[str]
    reply: str
    tool_calls: List[ToolCallRecord]
    tool_calls_count: int
    can_continue: bool
    messages_saved: bool
    places: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Turn:
    trip: Trip
    user_id: str
    conversation_id: Optional[str]
    directory: PlaceDirectory
    text_parts: List[str] = field(default_factory=list)
    audit: List[ToolCallRecord] = field(default_factory=list)
    executed: int = 0


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class TravelAgent:
    """
    Runs one chat turn against the trip itinerary: streams the model's
    answer, executes the tools it asks for against a freshly read plan, feeds
    results back until the model stops calling tools (or the iteration
    ceiling is hit), then records the exchange.

    Every event is pushed to ``progress_cb`` as soon as it is produced; the
    final ``done`` event is emitted only after the transcript commit.
    """

    def __init__(
        self,
        client: Optional[AsyncAnthropic] = None,
        *,
        trips: TripStore,
        conversations: ConversationStore,
        settings: Optional[Settings] = None,
        tools: Optional[Dict[str, ToolSpec]] = None,
    ):
        self.client = client
        self.trips = trips
        self.conversations = conversations
        self.settings = settings or Settings()
        self.tools: Dict[str, ToolSpec] = dict(tools or TOOLS_BY_NAME)
        self.tool_specs = self._build_tool_specs()
        self.writer = PersistenceWriter(conversations)

    async def _emit_progress(self, cb: Optional[ProgressCallback], payload: Dict[str, Any]) -> None:
        if not cb:
            return
        try:
            result = cb(payload)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            # A broken consumer must not abort the turn.
            logger.debug("Progress callback failed for %s: %s", payload.get("type"), exc)

    def _build_tool_specs(self) -> List[Dict[str, Any]]:
        return [spec.to_anthropic() for spec in self.tools.values()]

    async def _call_llm(self, messages: List[Dict[str, Any]], system: str) -> Any:
        if not self.client:
            raise RuntimeError("Anthropic client not configured")
        return await self.client.messages.create(
            model=self.settings.anthropic_model,
            max_tokens=self.settings.max_tokens,
            system=system,
            messages=messages,
            tools=self.tool_specs,
            tool_choice={"type": "auto"},
            stream=True,
            timeout=self.settings.provider_timeout_seconds,
        )

    def _build_initial_messages(
        self, conversation_id: Optional[str], history: List[Message], user_message: str
    ) -> List[Dict[str, Any]]:
        messages = to_claude_messages(history)
        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] += "\n\n" + user_message
        else:
            messages.append({"role": "user", "content": user_message})
        log_event(
            conversation_id,
            "user_message",
            {"message": user_message, "history_count": len(history)},
        )
        return messages

    async def _request_turn(
        self,
        turn: _Turn,
        messages: List[Dict[str, Any]],
        system: str,
        progress_cb: Optional[ProgressCallback],
    ) -> List[ToolInvocation]:
        stream = await self._call_llm(messages, system)
        decoder = StreamDecoder()
        text_parts: List[str] = []
        invocations: List[ToolInvocation] = []
        try:
            async for item in decode_stream(stream, decoder):
                if isinstance(item, TextDelta):
                    text_parts.append(item.text)
                    await self._emit_progress(progress_cb, {"type": "text", "content": item.text})
                else:
                    invocations.append(item)
                    await self._emit_progress(
                        progress_cb,
                        {"type": "tool_call", "toolName": item.name, "toolInput": item.input},
                    )
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                closed = close()
                if asyncio.iscoroutine(closed):
                    await closed

        for dropped in decoder.dropped:
            log_event(turn.conversation_id, "tool_input_parse_error", {"id": dropped})
        if decoder.stop_reason == "max_tokens":
            logger.warning(
                "Provider output truncated at max_tokens=%s; dropped tool calls: %s",
                self.settings.max_tokens,
                decoder.dropped,
            )
            log_event(
                turn.conversation_id,
                "output_truncated",
                {"max_tokens": self.settings.max_tokens, "dropped": list(decoder.dropped)},
            )

        text = "".join(text_parts)
        turn.text_parts.append(text)
        if invocations:
            content: List[Dict[str, Any]] = []
            if text:
                content.append({"type": "text", "text": text})
            for inv in invocations:
                content.append({"type": "tool_use", "id": inv.id, "name": inv.name, "input": inv.input})
            messages.append({"role": "assistant", "content": content})
            log_event(
                turn.conversation_id,
                "tool_calls",
                {"requested": [{"id": i.id, "name": i.name, "input": i.input} for i in invocations]},
            )
        return invocations

    async def _record(
        self,
        turn: _Turn,
        invocation: ToolInvocation,
        result: str,
        rejected: bool,
        progress_cb: Optional[ProgressCallback],
    ) -> str:
        turn.audit.append(
            ToolCallRecord(
                tool_name=invocation.name,
                tool_input=invocation.input,
                result=result,
                rejected=rejected,
            )
        )
        log_event(
            turn.conversation_id,
            "tool_result",
            {"name": invocation.name, "id": invocation.id, "rejected": rejected, "result": result},
        )
        await self._emit_progress(
            progress_cb,
            {"type": "tool_result", "toolName": invocation.name, "toolResult": result},
        )
        return result

    async def _execute_tool(
        self,
        turn: _Turn,
        invocation: ToolInvocation,
        progress_cb: Optional[ProgressCallback],
    ) -> str:
        spec = self.tools.get(invocation.name)
        if spec is None:
            return await self._record(
                turn, invocation, f'Error: Unknown tool "{invocation.name}".', True, progress_cb
            )

        missing = spec.missing_fields(invocation.input)
        if missing:
            log_event(
                turn.conversation_id,
                "tool_input_invalid",
                {"name": invocation.name, "id": invocation.id, "missing": missing},
            )
            error_msg = (
                f"Error: Invalid tool input for {invocation.name}: missing required field(s) "
                f"{', '.join(missing)}. Ask the user or retry with all required fields."
            )
            return await self._record(turn, invocation, error_msg, True, progress_cb)

        try:
            typed_input = spec.input_model.model_validate(invocation.input)
        except ValidationError as exc:
            log_event(
                turn.conversation_id,
                "tool_input_invalid",
                {"name": invocation.name, "id": invocation.id, "error": str(exc)},
            )
            error_msg = f"Error: Invalid tool input for {invocation.name}: {_validation_summary(exc)}"
            return await self._record(turn, invocation, error_msg, True, progress_cb)

        # Always re-read the plan so this tool sees the latest committed state.
        plan = await self.trips.load_plan(turn.trip.id)
        if plan is None:
            return await self._record(
                turn, invocation, "Error: The trip has no itinerary to work with.", False, progress_cb
            )
        ctx = ToolContext(
            trip=turn.trip,
            user_id=turn.user_id,
            plan=plan,
            trips=self.trips,
            google_api_key=self.settings.google_places_api_key,
        )

        turn.executed += 1
        timeout = self.settings.tool_timeout_seconds
        try:
            result = await asyncio.wait_for(spec.handler(typed_input, ctx), timeout=timeout)
        except asyncio.TimeoutError:
            log_event(turn.conversation_id, "tool_timeout", {"name": invocation.name, "id": invocation.id})
            result = (
                f"Error: {invocation.name} timed out after {timeout:g} seconds. "
                "Its change may or may not have been applied; check before retrying."
            )
        except Exception as exc:
            log_event(
                turn.conversation_id,
                "tool_execution_error",
                {"name": invocation.name, "id": invocation.id, "error": str(exc), "input": invocation.input},
            )
            result = f"Error: Failed to execute {invocation.name}. {exc}"

        new_ids: List[str] = []
        if spec.returns_places:
            result, new_ids = extract_places(result, turn.directory)
        await self._record(turn, invocation, result, False, progress_cb)
        if new_ids:
            await self._emit_progress(
                progress_cb, {"type": "places_context", "placesContext": turn.directory.to_payload()}
            )
        return result

    async def _execute_invocations(
        self,
        turn: _Turn,
        invocations: tuple,
        progress_cb: Optional[ProgressCallback],
    ) -> List[Dict[str, Any]]:
        if self.settings.parallel_tools and len(invocations) > 1:
            results = await asyncio.gather(
                *(self._execute_tool(turn, inv, progress_cb) for inv in invocations)
            )
        else:
            results = [await self._execute_tool(turn, inv, progress_cb) for inv in invocations]
        return [
            {"type": "tool_result", "tool_use_id": inv.id, "content": result}
            for inv, result in zip(invocations, results)
        ]

    async def _run_tool_loop(
        self,
        turn: _Turn,
        messages: List[Dict[str, Any]],
        system: str,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> Done:
        max_iterations = self.settings.max_iterations
        state: LoopState = Requesting(iteration=1)
        while not isinstance(state, Done):
            if isinstance(state, Requesting):
                log_event(turn.conversation_id, "provider_request", {"iteration": state.iteration})
                invocations = await self._request_turn(turn, messages, system, progress_cb)
                state = advance(state, invocations=invocations, max_iterations=max_iterations)
            else:
                tool_results = await self._execute_invocations(turn, state.invocations, progress_cb)
                messages.append({"role": "user", "content": tool_results})
                state = advance(state, max_iterations=max_iterations)
        return state

    async def chat(
        self,
        *,
        user_id: str,
        trip: Trip,
        user_message: str,
        conversation_id: Optional[str] = None,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> TurnResult:
        """
        Runs a full turn. Provider failures propagate to the caller; tool
        failures and persistence failures do not. If no conversation can be
        created the turn still runs and reports that nothing was saved.
        """
        await self._emit_progress(progress_cb, {"type": "start"})
        try:
            conversation_id = await self.writer.ensure_conversation(
                user_id, trip.id, conversation_id, title=user_message[:50]
            )
        except PersistenceError as exc:
            log_event(None, "conversation_create_failed", {"trip_id": trip.id, "error": str(exc)})
            conversation_id = None
        history: List[Message] = []
        if conversation_id:
            history = await self.conversations.get_messages(conversation_id, limit=self.settings.history_limit)
        plan = await self.trips.load_plan(trip.id)

        turn = _Turn(
            trip=trip,
            user_id=user_id,
            conversation_id=conversation_id,
            directory=PlaceDirectory.from_messages(history),
        )
        messages = self._build_initial_messages(conversation_id, history, user_message)
        system = build_system_prompt(trip, len(plan.itinerary) if plan else 0)

        done = await self._run_tool_loop(turn, messages, system, progress_cb)

        if done.hit_limit:
            note = f"\n\n{CONTINUATION_NOTE}"
            turn.text_parts.append(note)
            await self._emit_progress(progress_cb, {"type": "text", "content": note})
            log_event(conversation_id, "iteration_limit_reached", {"iterations": done.iterations})

        reply = normalize_place_references("".join(turn.text_parts).strip(), turn.directory) or EMPTY_REPLY
        saved = False
        if conversation_id:
            commit = await self.writer.commit(conversation_id, user_message, reply, turn.audit, turn.directory)
            saved = commit.ok

        log_event(
            conversation_id,
            "assistant_reply",
            {
                "reply": reply,
                "iterations": done.iterations,
                "tool_calls": turn.executed,
                "hit_limit": done.hit_limit,
                "saved": saved,
            },
        )
        await self._emit_progress(
            progress_cb,
            {
                "type": "done",
                "conversationId": conversation_id,
                "toolCallsCount": turn.executed,
                "canContinue": done.hit_limit,
                "messagesSaved": saved,
            },
        )
        return TurnResult(
            conversation_id=conversation_id,
            reply=reply,
            tool_calls=turn.audit,
            tool_calls_count=turn.executed,
            can_continue=done.hit_limit,
            messages_saved=saved,
            places=turn.directory.to_payload(),
        )
