"""AI assistant endpoints: bot config, streamed chat and learner context."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.dependencies import CurrentUser, DbSession, ensure_can_act_for
from app.api.schemas import CamelModel, Envelope, NonEmptyStr, ok
from app.services import ai_service
from app.services.ai_service import AIBackend, get_ai_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

Backend = Annotated[AIBackend, Depends(get_ai_backend)]

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant for the training platform."
DEFAULT_BOT_NAME = "Training Assistant"


class ChatStreamIn(CamelModel):
    message: NonEmptyStr
    bot_id: NonEmptyStr
    system_prompt: NonEmptyStr
    bot_name: NonEmptyStr
    session_id: str | None = None


class ChatIn(CamelModel):
    message: NonEmptyStr
    system_prompt: str | None = None
    bot_name: str | None = None
    session_id: str | None = None


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _as_events(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for chunk in chunks:
            yield _sse({"content": chunk})
    except httpx.HTTPError as e:
        logger.warning("AI stream interrupted: %s", e)
        yield _sse({"error": str(e) or "AI stream interrupted"})
        return
    yield _sse({"done": True})


@router.get("/bot/{bot_id}")
async def bot_config(bot_id: str, _user: CurrentUser, backend: Backend) -> Any:
    return await backend.bot_config(bot_id)


@router.post("/chat/stream")
async def chat_stream(
    payload: ChatStreamIn, session: DbSession, principal: CurrentUser, backend: Backend
) -> StreamingResponse:
    context = await ai_service.context_or_none(session, principal.id)
    chunks = await backend.open_chat(
        payload.bot_id,
        ai_service.chat_body(
            payload.message,
            system_prompt=payload.system_prompt,
            bot_name=payload.bot_name,
            session_id=payload.session_id,
            training_context=context,
        ),
        endpoint="chat_stream",
    )
    return StreamingResponse(
        chunks,
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/chatbot/{bot_id}/chat")
async def chatbot_chat(
    bot_id: str,
    payload: ChatIn,
    session: DbSession,
    principal: CurrentUser,
    backend: Backend,
) -> StreamingResponse:
    context = await ai_service.context_or_none(session, principal.id)
    chunks = await backend.open_chat(
        bot_id,
        ai_service.chat_body(
            payload.message,
            system_prompt=payload.system_prompt or DEFAULT_SYSTEM_PROMPT,
            bot_name=payload.bot_name or DEFAULT_BOT_NAME,
            session_id=payload.session_id,
            training_context=context,
        ),
        endpoint="chat_sse",
    )
    return StreamingResponse(
        _as_events(chunks),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/training-context/{user_id}", response_model=Envelope[dict[str, Any]])
async def training_context(user_id: int, session: DbSession, principal: CurrentUser) -> dict:
    ensure_can_act_for(principal, user_id)
    context = await ai_service.training_context(session, user_id)
    return ok("User training context retrieved successfully", context)
