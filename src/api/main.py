# src/api/main.py
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import anthropic
from anthropic import AsyncAnthropic
from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from agent.agent import TravelAgent
from agent.config import Settings
from agent.errors import ProviderStreamError
from agent.memory import ConversationStore, InMemoryConversationStore, InMemoryTripStore, TripStore
from agent.rate_limit import RateLimiter
from models.schemas import ChatRequest, Conversation

load_dotenv()

logger = logging.getLogger(__name__)

PROVIDER_ERROR_MESSAGE = "AI service error. Please try again."
GENERIC_ERROR_MESSAGE = "Failed to process chat message"


def format_sse(evt: Dict[str, Any]) -> str:
    return f"event: {evt['type']}\ndata: {json.dumps(evt, ensure_ascii=False, default=str)}\n\n"


def _require_user(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id.strip()


def create_app(
    agent: Optional[TravelAgent] = None,
    trips: Optional[TripStore] = None,
    conversations: Optional[ConversationStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or Settings()
    if trips is None:
        trips = agent.trips if agent is not None else InMemoryTripStore()
    if conversations is None:
        conversations = agent.conversations if agent is not None else InMemoryConversationStore()
    if rate_limiter is None:
        rate_limiter = RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    if agent is None:
        api_key = settings.anthropic_api_key
        anthropic_client = AsyncAnthropic(api_key=api_key) if api_key else None
        agent = TravelAgent(
            client=anthropic_client,
            trips=trips,
            conversations=conversations,
            settings=settings,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(rate_limiter.run_sweeper(settings.rate_limit_sweep_seconds))
        try:
            yield
        finally:
            sweeper.cancel()

    app = FastAPI(lifespan=lifespan)
    app.state.agent = agent
    app.state.trips = trips
    app.state.conversations = conversations
    app.state.rate_limiter = rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    async def _owned_conversation(conversation_id: str, user_id: str) -> Conversation:
        conversation = await conversations.get_conversation(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        if conversation.user_id != user_id:
            raise HTTPException(status_code=403, detail="Unauthorized - conversation belongs to another user")
        return conversation

    @app.post("/chat/stream")
    async def chat_stream(req: ChatRequest, x_user_id: Optional[str] = Header(default=None)):
        user_id = _require_user(x_user_id)

        admission = rate_limiter.admit(user_id)
        if not admission.allowed:
            retry_after = admission.retry_after_seconds or 1
            raise HTTPException(
                status_code=429,
                detail={
                    "error": f"Too many messages. Please wait {retry_after} seconds.",
                    "retryAfterSeconds": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        if not req.trip_id:
            raise HTTPException(status_code=400, detail="tripId is required")
        message = (req.message or "").strip()
        if not message:
            raise HTTPException(status_code=400, detail="message cannot be empty")

        trip = await trips.get_trip(req.trip_id)
        if trip is None:
            raise HTTPException(status_code=404, detail="Trip not found")
        if trip.user_id != user_id:
            raise HTTPException(status_code=403, detail="Unauthorized - trip belongs to another user")
        plan = await trips.load_plan(trip.id)
        if plan is None:
            raise HTTPException(status_code=409, detail="Trip does not have a generated plan yet")

        if req.conversation_id:
            conversation = await _owned_conversation(req.conversation_id, user_id)
            if conversation.trip_id != trip.id:
                raise HTTPException(status_code=403, detail="Conversation belongs to another trip")

        async def event_generator():
            queue: asyncio.Queue = asyncio.Queue()

            async def progress(evt: dict) -> None:
                await queue.put(evt)

            async def run_agent() -> None:
                try:
                    await agent.chat(
                        user_id=user_id,
                        trip=trip,
                        user_message=message,
                        conversation_id=req.conversation_id,
                        progress_cb=progress,
                    )
                except (anthropic.APIError, ProviderStreamError) as exc:
                    logger.error("Provider error during chat turn for trip %s: %s", trip.id, exc)
                    await queue.put({"type": "error", "error": PROVIDER_ERROR_MESSAGE})
                except Exception:
                    logger.exception("Chat turn failed for trip %s", trip.id)
                    await queue.put({"type": "error", "error": GENERIC_ERROR_MESSAGE})
                finally:
                    await queue.put(None)

            runner = asyncio.create_task(run_agent())
            try:
                while True:
                    evt = await queue.get()
                    if evt is None:
                        break
                    yield format_sse(evt)
            finally:
                runner.cancel()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/conversations/trip/{trip_id}")
    async def list_conversations(trip_id: str, x_user_id: Optional[str] = Header(default=None)):
        user_id = _require_user(x_user_id)
        trip = await trips.get_trip(trip_id)
        if trip is None:
            raise HTTPException(status_code=404, detail="Trip not found")
        if trip.user_id != user_id:
            raise HTTPException(status_code=403, detail="Unauthorized - trip belongs to another user")
        found = await conversations.list_conversations(trip_id, user_id)
        return {"conversations": [c.model_dump(mode="json", by_alias=True) for c in found]}

    @app.get("/conversations/{conversation_id}/messages")
    async def get_messages(conversation_id: str, x_user_id: Optional[str] = Header(default=None)):
        user_id = _require_user(x_user_id)
        conversation = await _owned_conversation(conversation_id, user_id)
        messages = await conversations.get_messages(conversation.id)
        return {
            "conversation": conversation.model_dump(mode="json", by_alias=True),
            "messages": [m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in messages],
        }

    @app.delete("/conversations/{conversation_id}")
    async def delete_conversation(conversation_id: str, x_user_id: Optional[str] = Header(default=None)):
        user_id = _require_user(x_user_id)
        conversation = await _owned_conversation(conversation_id, user_id)
        await conversations.delete_conversation(conversation.id)
        return {"success": True}

    return app


app = create_app()
